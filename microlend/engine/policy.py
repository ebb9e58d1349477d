"""Rate and fee policy for new offers."""

from decimal import Decimal

from microlend.config import PolicyConfig
from microlend.exceptions import ComputationError, InvalidTermError
from microlend.models.lending import PolicyTerms


def resolve_policy(
    principal: Decimal,
    term_months: int,
    prior_loan_count: int,
    config: PolicyConfig | None = None,
) -> PolicyTerms:
    """Return the contractual rate and fee schedule for an application.

    Clients with fewer than ``repeat_client_threshold`` materialized loans
    pay the base annual rate; repeat clients get the discounted rate. The
    initiation fee rate and monthly admin fee are flat.

    Parameters
    ----------
    principal : Decimal
        Requested principal.
    term_months : int
        Loan term in months (at least 1).
    prior_loan_count : int
        Number of loans already materialized for the client.
    config : PolicyConfig | None
        Policy constants (defaults when omitted).

    Returns
    -------
    PolicyTerms
        Annual rate, initiation fee rate and monthly admin fee.

    Raises
    ------
    InvalidTermError
        If ``term_months`` is less than 1.
    ComputationError
        If principal or prior loan count is negative.
    """
    config = config or PolicyConfig()

    if term_months < 1:
        raise InvalidTermError(f"Loan term must be at least 1 month, got {term_months}")
    if principal < 0:
        raise ComputationError(f"Principal must not be negative, got {principal}")
    if prior_loan_count < 0:
        raise ComputationError(f"Prior loan count must not be negative, got {prior_loan_count}")

    if prior_loan_count < config.repeat_client_threshold:
        annual_rate = config.base_annual_rate
    else:
        annual_rate = config.repeat_annual_rate

    return PolicyTerms(
        annual_rate=annual_rate,
        initiation_fee_rate=config.initiation_fee_rate,
        monthly_admin_fee=config.monthly_admin_fee,
    )
