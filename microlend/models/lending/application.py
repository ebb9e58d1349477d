"""Loan application and offer models."""

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal

from microlend.models.lending.enums import ApplicationStatus


@dataclass(frozen=True)
class PolicyTerms:
    """Contractual rate and fee schedule for one application."""

    annual_rate: Decimal  # e.g. 0.20
    initiation_fee_rate: Decimal
    monthly_admin_fee: Decimal


@dataclass(frozen=True)
class Offer:
    """Economics locked onto an application when it enters an approval state."""

    principal: Decimal
    annual_rate: Decimal
    total_interest: Decimal
    total_initiation_fee: Decimal
    total_admin_fees: Decimal
    total_repayment: Decimal
    monthly_installment: Decimal
    first_payment_date: date


@dataclass
class Application:
    """Funding request from a client."""

    application_id: str
    client_id: str
    amount: Decimal  # Requested principal
    term_months: int
    status: ApplicationStatus
    created_at: datetime
    repayment_start_date: date | None = None
    notes: str = ""
    offer: Offer | None = None
    updated_at: datetime | None = None
