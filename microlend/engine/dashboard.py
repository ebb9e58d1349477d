"""Back-office dashboard figures and per-payment standing."""

from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable

from microlend.engine.money import ZERO, to_cents
from microlend.models.lending import DashboardSummary, Loan, LoanStatus, Payment, PaymentStanding

SETTLED_TOLERANCE = Decimal("1")

STATUS_GROUPS = {
    LoanStatus.ACTIVE: "Active",
    LoanStatus.DEFAULT: "Default",
    LoanStatus.ARREARS: "Default",
    LoanStatus.REPAID: "Repaid",
    LoanStatus.SETTLED: "Repaid",
}


def summarize_dashboard(
    loans: Iterable[Loan],
    payments: Iterable[Payment],
    pending_applications: int = 0,
) -> DashboardSummary:
    """Headline totals for the admin dashboard.

    Profit here is cash collected minus principal disbursed, across the
    whole book.
    """
    loans = list(loans)
    total_disbursed = sum((l.principal_amount for l in loans), ZERO)
    total_collected = sum((p.amount for p in payments), ZERO)
    net_profit = total_collected - total_disbursed

    profit_margin = ZERO
    if total_disbursed > 0:
        profit_margin = (net_profit / total_disbursed * Decimal(100)).quantize(
            Decimal("0.1"), rounding=ROUND_HALF_UP
        )

    status_counts = {"Active": 0, "Default": 0, "Repaid": 0}
    for loan in loans:
        group = STATUS_GROUPS.get(loan.status)
        if group:
            status_counts[group] += 1

    return DashboardSummary(
        total_disbursed=to_cents(total_disbursed),
        total_collected=to_cents(total_collected),
        net_profit_amount=to_cents(net_profit),
        profit_margin=profit_margin,
        active_loans_count=status_counts["Active"],
        pending_applications=pending_applications,
        portfolio_status=status_counts,
    )


def classify_payment_standing(
    outstanding_balance: Decimal,
    monthly_installment: Decimal,
    amount_paid: Decimal,
) -> PaymentStanding:
    """Classify a received payment against the loan's balance and installment.

    A balance within one currency unit of zero counts as settled; a
    balance more than one unit below zero is a credit (overpaid).
    """
    if outstanding_balance < -SETTLED_TOLERANCE:
        return PaymentStanding.OVERPAID
    if outstanding_balance <= SETTLED_TOLERANCE:
        return PaymentStanding.SETTLED
    if amount_paid < monthly_installment:
        return PaymentStanding.PARTIAL
    return PaymentStanding.ON_TRACK
