"""Lending domain models."""

from microlend.models.lending.application import Application, Offer, PolicyTerms
from microlend.models.lending.client import Client
from microlend.models.lending.enums import (
    ApplicationStatus,
    LoanStatus,
    MaterializationVariant,
    PaymentStanding,
    TimeRange,
)
from microlend.models.lending.ledger import (
    BalanceSheet,
    DashboardSummary,
    IncomeStatement,
    LedgerRow,
    PortfolioReport,
    RiskRatios,
)
from microlend.models.lending.loan import Loan, Payment

__all__ = [
    "Application",
    "ApplicationStatus",
    "BalanceSheet",
    "Client",
    "DashboardSummary",
    "IncomeStatement",
    "LedgerRow",
    "Loan",
    "LoanStatus",
    "MaterializationVariant",
    "Offer",
    "Payment",
    "PaymentStanding",
    "PolicyTerms",
    "PortfolioReport",
    "RiskRatios",
    "TimeRange",
]
