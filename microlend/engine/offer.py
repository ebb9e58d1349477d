"""Offer calculator: contractual economics of an approved application."""

from datetime import date, timedelta
from decimal import Decimal

from microlend.engine.money import to_cents
from microlend.exceptions import ComputationError, InvalidTermError
from microlend.models.lending import Offer, PolicyTerms

DEFAULT_FIRST_PAYMENT_OFFSET_DAYS = 30


def calculate_offer(
    principal: Decimal,
    term_months: int,
    policy: PolicyTerms,
    scheduled_date: date | None = None,
    today: date | None = None,
    first_payment_offset_days: int = DEFAULT_FIRST_PAYMENT_OFFSET_DAYS,
) -> Offer:
    """Derive total interest, fees, repayment and installment.

    The interest component uses ``annual_rate - initiation_fee_rate`` as its
    rate. This subtracts a one-off fee rate from an annual rate and is a
    modeling assumption of the product, kept as-is so offers match the ones
    already issued.

    Every component is rounded to cents; the total is the sum of the rounded
    components and the installment is the rounded total divided by the term.

    Parameters
    ----------
    principal : Decimal
        Offered principal.
    term_months : int
        Loan term in months.
    policy : PolicyTerms
        Output of ``resolve_policy``.
    scheduled_date : date | None
        Scheduled first-payment date chosen by the client or an admin.
    today : date | None
        Reference date for the fallback first-payment date.
    first_payment_offset_days : int
        Days from ``today`` to the fallback first-payment date.

    Returns
    -------
    Offer
        Locked-in offer economics.
    """
    if term_months < 1:
        raise InvalidTermError(f"Loan term must be at least 1 month, got {term_months}")
    if principal < 0:
        raise ComputationError(f"Principal must not be negative, got {principal}")

    term = Decimal(term_months)
    interest_only_rate = policy.annual_rate - policy.initiation_fee_rate

    total_interest = to_cents(principal * interest_only_rate * (term / Decimal(12)))
    total_initiation_fee = to_cents(principal * policy.initiation_fee_rate)
    total_admin_fees = to_cents(policy.monthly_admin_fee * term)
    total_repayment = principal + total_interest + total_initiation_fee + total_admin_fees
    monthly_installment = to_cents(total_repayment / term)

    if scheduled_date is None:
        today = today or date.today()
        scheduled_date = today + timedelta(days=first_payment_offset_days)

    return Offer(
        principal=principal,
        annual_rate=policy.annual_rate,
        total_interest=total_interest,
        total_initiation_fee=total_initiation_fee,
        total_admin_fees=total_admin_fees,
        total_repayment=total_repayment,
        monthly_installment=monthly_installment,
        first_payment_date=scheduled_date,
    )
