"""Loan and payment models for lending domain."""

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal

from microlend.models.lending.enums import LoanStatus


@dataclass
class Loan:
    """Disbursable contract materialized from exactly one application."""

    loan_id: str
    application_id: str
    client_id: str
    principal_amount: Decimal
    interest_rate: Decimal  # Annual rate (e.g., 0.20 for 20%)
    term_months: int
    monthly_payment: Decimal
    status: LoanStatus
    start_date: date
    first_payment_date: date
    next_payment_date: date
    outstanding_balance: Decimal
    total_repayment: Decimal
    created_at: datetime


@dataclass
class Payment:
    """Client cash receipt against a loan. Append-only."""

    payment_id: str
    loan_id: str
    amount: Decimal
    payment_date: date
    client_id: str | None = None
