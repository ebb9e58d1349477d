"""Waterfall ledger engine.

Replays a loan's payment history month by month against its contract and
produces one ``LedgerRow`` per calendar month, from the loan's start month
through the ``as_of`` month. Nothing here is persisted: the ledger is
rebuilt from (loan, payments) on every read.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Iterable

from microlend.config import LedgerConfig
from microlend.engine.money import ZERO, add_months, as_date, first_of_month, month_key, to_cents
from microlend.exceptions import ComputationError, ReferentialIntegrityError
from microlend.models.lending import Application, Client, LedgerRow, Loan, Offer, Payment

logger = logging.getLogger(__name__)

UNIDENTIFIED_CUSTOMER = "Unidentified"


@dataclass(frozen=True)
class WaterfallBuckets:
    """Amounts still owed in each bucket, in recovery order."""

    initiation_fee: Decimal
    admin_fee: Decimal
    interest: Decimal
    principal: Decimal


@dataclass(frozen=True)
class Allocation:
    """How one month's cash was applied."""

    initiation: Decimal
    admin: Decimal
    interest: Decimal
    principal: Decimal
    overpayment: Decimal

    @property
    def fees(self) -> Decimal:
        return self.initiation + self.admin

    @property
    def profit(self) -> Decimal:
        return self.initiation + self.admin + self.interest


def normalize_annual_rate(rate: Decimal) -> Decimal:
    """Return the rate as a decimal fraction.

    Rates above 1 were stored as whole percentages (``20`` for 20%).
    """
    if rate < 0:
        raise ComputationError(f"Interest rate must not be negative, got {rate}")
    if rate > 1:
        return rate / Decimal(100)
    return rate


def monthly_rate(annual_rate: Decimal) -> Decimal:
    return normalize_annual_rate(annual_rate) / Decimal(12)


def allocate(cash_in: Decimal, buckets: WaterfallBuckets) -> tuple[Allocation, WaterfallBuckets]:
    """Apply cash to the buckets in priority order.

    Order: initiation fee, admin fee, interest, principal. Whatever is left
    after principal is overpayment.

    Returns
    -------
    tuple[Allocation, WaterfallBuckets]
        Amounts applied and the buckets remaining afterwards.
    """
    if cash_in < 0:
        raise ComputationError(f"Cash received must not be negative, got {cash_in}")

    remaining = cash_in

    initiation = min(remaining, buckets.initiation_fee)
    remaining -= initiation

    admin = min(remaining, buckets.admin_fee)
    remaining -= admin

    interest = min(remaining, buckets.interest)
    remaining -= interest

    principal = min(remaining, buckets.principal)
    remaining -= principal

    allocation = Allocation(
        initiation=initiation,
        admin=admin,
        interest=interest,
        principal=principal,
        overpayment=remaining,
    )
    after = WaterfallBuckets(
        initiation_fee=buckets.initiation_fee - initiation,
        admin_fee=buckets.admin_fee - admin,
        interest=buckets.interest - interest,
        principal=max(buckets.principal - principal, ZERO),
    )
    return allocation, after


def build_ledger(
    loan: Loan,
    payments: Iterable[Payment],
    as_of: date,
    offer: Offer | None = None,
    customer: str | None = None,
    config: LedgerConfig | None = None,
) -> list[LedgerRow]:
    """Replay a loan's payments into monthly ledger rows.

    Parameters
    ----------
    loan : Loan
        The loan to replay.
    payments : Iterable[Payment]
        The loan's payments. Payments dated outside the replayed months are
        not allocated.
    as_of : date
        Current date; the last row is for this calendar month. Rows for
        earlier months with principal still outstanding are flagged as
        arrears.
    offer : Offer | None
        The application's offer; supplies the initiation and admin fee
        totals and the contract total. Without it the fee buckets start
        empty and the contract total is the loan's total repayment.
    customer : str | None
        Display name for the rows.
    config : LedgerConfig | None
        Row cap and accrual threshold.

    Returns
    -------
    list[LedgerRow]
        Rows in month order, at most ``config.max_months`` of them.
    """
    config = config or LedgerConfig()
    as_of = as_date(as_of)

    if loan.principal_amount < 0:
        raise ComputationError(
            f"Loan {loan.loan_id} has negative principal {loan.principal_amount}"
        )

    rate = monthly_rate(loan.interest_rate)

    cash_by_month: dict[str, Decimal] = defaultdict(lambda: ZERO)
    for payment in sorted(payments, key=lambda p: (as_date(p.payment_date), p.payment_id)):
        if payment.loan_id != loan.loan_id:
            raise ComputationError(
                f"Payment {payment.payment_id} belongs to loan {payment.loan_id}, not {loan.loan_id}"
            )
        if payment.amount < 0:
            raise ComputationError(
                f"Payment {payment.payment_id} has negative amount {payment.amount}"
            )
        cash_by_month[month_key(payment.payment_date)] += payment.amount

    buckets = WaterfallBuckets(
        initiation_fee=offer.total_initiation_fee if offer else ZERO,
        admin_fee=offer.total_admin_fees if offer else ZERO,
        interest=ZERO,
        principal=loan.principal_amount,
    )
    contract_total = offer.total_repayment if offer else loan.total_repayment
    customer = customer or UNIDENTIFIED_CUSTOMER
    current_month = month_key(as_of)

    rows: list[LedgerRow] = []
    total_paid = ZERO
    month_start = first_of_month(as_date(loan.start_date))

    while month_start <= as_of:
        if len(rows) >= config.max_months:
            logger.debug(
                "Ledger for loan %s truncated at %d months (start=%s)",
                loan.loan_id,
                config.max_months,
                loan.start_date,
            )
            break

        month = month_key(month_start)
        opening_principal = buckets.principal

        accrued = ZERO
        if opening_principal > config.accrual_threshold:
            accrued = to_cents(opening_principal * rate)
        buckets = WaterfallBuckets(
            initiation_fee=buckets.initiation_fee,
            admin_fee=buckets.admin_fee,
            interest=buckets.interest + accrued,
            principal=buckets.principal,
        )

        cash_in = cash_by_month.get(month, ZERO)
        total_paid += cash_in
        allocation, buckets = allocate(cash_in, buckets)

        if buckets.principal > 0 and month < current_month:
            arrears = buckets.principal
        else:
            arrears = ZERO

        rows.append(
            LedgerRow(
                month=month,
                loan_id=loan.loan_id,
                client_id=loan.client_id,
                customer=customer,
                status=loan.status,
                opening_principal=opening_principal,
                principal_outstanding=buckets.principal,
                interest_accrued=accrued,
                interest_receivable=buckets.interest,
                arrears_amount=arrears,
                total_paid_to_date=total_paid,
                contract_total=contract_total,
                initiation_collected=allocation.initiation,
                admin_collected=allocation.admin,
                fees_collected=allocation.fees,
                interest_collected=allocation.interest,
                profit_collected=allocation.profit,
                principal_collected=allocation.principal,
                overpayment_collected=allocation.overpayment,
                payment_received=cash_in,
            )
        )

        if month == current_month:
            break
        month_start = add_months(month_start, 1)

    return rows


def build_portfolio_ledger(
    loans: Iterable[Loan],
    payments: Iterable[Payment],
    applications: Iterable[Application],
    clients: Iterable[Client],
    as_of: date,
    config: LedgerConfig | None = None,
) -> list[LedgerRow]:
    """Build ledger rows for every loan in the book.

    Loans are joined to their application's offer and client's name by id.
    Loans are replayed in ``(created_at, loan_id)`` order so the output
    order is stable.
    """
    offers = {a.application_id: a.offer for a in applications}
    names = {c.client_id: c.full_name for c in clients}
    ordered_loans = sorted(loans, key=lambda l: (l.created_at, l.loan_id))
    known_loans = {l.loan_id for l in ordered_loans}

    payments_by_loan: dict[str, list[Payment]] = defaultdict(list)
    for payment in sorted(payments, key=lambda p: (as_date(p.payment_date), p.payment_id)):
        if payment.loan_id not in known_loans:
            raise ReferentialIntegrityError(
                f"Payment {payment.payment_id} references unknown loan {payment.loan_id}"
            )
        payments_by_loan[payment.loan_id].append(payment)

    rows: list[LedgerRow] = []
    for loan in ordered_loans:
        rows.extend(
            build_ledger(
                loan,
                payments_by_loan.get(loan.loan_id, []),
                as_of,
                offer=offers.get(loan.application_id),
                customer=names.get(loan.client_id),
                config=config,
            )
        )

    logger.debug("Built %d ledger rows for %d loans", len(rows), len(ordered_loans))
    return rows
