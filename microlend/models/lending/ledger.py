"""Derived ledger and report models."""

from dataclasses import dataclass
from decimal import Decimal

from microlend.models.lending.enums import LoanStatus, TimeRange


@dataclass(frozen=True)
class LedgerRow:
    """One loan's statement for one calendar month.

    Rows are recomputed from the loan and its payments on every read and
    are never persisted. Balances are post-allocation except
    ``opening_principal``.
    """

    month: str  # YYYY-MM
    loan_id: str
    client_id: str
    customer: str
    status: LoanStatus

    opening_principal: Decimal
    principal_outstanding: Decimal
    interest_accrued: Decimal
    interest_receivable: Decimal
    arrears_amount: Decimal
    total_paid_to_date: Decimal
    contract_total: Decimal

    # Collected this month (cash basis)
    initiation_collected: Decimal
    admin_collected: Decimal
    fees_collected: Decimal
    interest_collected: Decimal
    profit_collected: Decimal
    principal_collected: Decimal
    overpayment_collected: Decimal
    payment_received: Decimal

    @property
    def in_arrears(self) -> bool:
        return self.arrears_amount > 0


@dataclass(frozen=True)
class IncomeStatement:
    interest_income: Decimal
    nii: Decimal  # Net interest income
    fee_income: Decimal
    nir: Decimal  # Non-interest revenue
    commission_income: Decimal
    penalty_income: Decimal
    total_revenue: Decimal


@dataclass(frozen=True)
class BalanceSheet:
    total_loan_book: Decimal
    active_clients: int
    avg_loan_per_client: Decimal
    annualized_yield: Decimal  # percent
    arrears_percentage: Decimal  # percent


@dataclass(frozen=True)
class RiskRatios:
    credit_loss_percentage: Decimal
    nii_to_revenue: Decimal
    nir_to_revenue: Decimal


@dataclass(frozen=True)
class PortfolioReport:
    """Income statement, balance sheet and ratios for one reporting window."""

    period: TimeRange
    window_start: str  # YYYY-MM
    annualization_factor: Decimal
    income_statement: IncomeStatement
    balance_sheet: BalanceSheet
    ratios: RiskRatios


@dataclass(frozen=True)
class DashboardSummary:
    total_disbursed: Decimal
    total_collected: Decimal
    net_profit_amount: Decimal
    profit_margin: Decimal  # percent, one decimal place
    active_loans_count: int
    pending_applications: int
    portfolio_status: dict[str, int]
