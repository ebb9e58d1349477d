"""Enumeration types for lending domain entities."""

from enum import Enum


class ApplicationStatus(str, Enum):
    SUBMITTED = "SUBMITTED"
    OFFERED = "OFFERED"
    OFFER_ACCEPTED = "OFFER_ACCEPTED"
    READY_TO_DISBURSE = "READY_TO_DISBURSE"
    DISBURSED = "DISBURSED"
    ACTIVE = "ACTIVE"
    DECLINED = "DECLINED"


class LoanStatus(str, Enum):
    ACTIVE = "ACTIVE"
    ARREARS = "ARREARS"
    DEFAULT = "DEFAULT"
    REPAID = "REPAID"
    SETTLED = "SETTLED"


class MaterializationVariant(str, Enum):
    """How a loan's installment and opening balance are derived.

    ``CONTRACT_TOTAL`` copies the offer and opens the balance at the total
    contractual repayment. ``PRINCIPAL_BALANCE`` recomputes a flat installment
    from principal and rate and opens the balance at bare principal.
    """

    CONTRACT_TOTAL = "CONTRACT_TOTAL"
    PRINCIPAL_BALANCE = "PRINCIPAL_BALANCE"


class TimeRange(str, Enum):
    ONE_MONTH = "1M"
    THREE_MONTHS = "3M"
    SIX_MONTHS = "6M"
    ONE_YEAR = "1Y"
    YEAR_TO_DATE = "YTD"


class PaymentStanding(str, Enum):
    OVERPAID = "OVERPAID"
    SETTLED = "SETTLED"
    PARTIAL = "PARTIAL"
    ON_TRACK = "ON_TRACK"
