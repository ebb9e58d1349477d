"""Portfolio aggregator: income statement, balance sheet and risk ratios."""

from datetime import date
from decimal import Decimal
from typing import Iterable

from dateutil.relativedelta import relativedelta

from microlend.config import LedgerConfig
from microlend.engine.money import ZERO, as_date, month_key, to_cents
from microlend.exceptions import ComputationError
from microlend.models.lending import (
    BalanceSheet,
    IncomeStatement,
    LedgerRow,
    PortfolioReport,
    RiskRatios,
    TimeRange,
)

HUNDRED = Decimal(100)

# Window length and annualization factor per range; YTD is resolved from the date.
WINDOWS = {
    TimeRange.ONE_MONTH: (relativedelta(months=1), Decimal(12)),
    TimeRange.THREE_MONTHS: (relativedelta(months=3), Decimal(4)),
    TimeRange.SIX_MONTHS: (relativedelta(months=6), Decimal(2)),
    TimeRange.ONE_YEAR: (relativedelta(years=1), Decimal(1)),
}


def parse_time_range(value: TimeRange | str) -> TimeRange:
    if isinstance(value, TimeRange):
        return value
    try:
        return TimeRange(str(value).upper())
    except ValueError:
        raise ComputationError(
            f"Unknown time range {value!r}; expected one of {[t.value for t in TimeRange]}"
        ) from None


def resolve_window(time_range: TimeRange | str, as_of: date) -> tuple[str, Decimal]:
    """Return the window's first month key and its annualization factor.

    ``1M``/``3M``/``6M``/``1Y`` start that far back from ``as_of``; ``YTD``
    starts in January and annualizes by ``12 / months elapsed``.
    """
    time_range = parse_time_range(time_range)
    as_of = as_date(as_of)

    if time_range == TimeRange.YEAR_TO_DATE:
        return f"{as_of.year:04d}-01", Decimal(12) / Decimal(as_of.month)

    delta, factor = WINDOWS[time_range]
    return month_key(as_of - delta), factor


def latest_rows(rows: Iterable[LedgerRow]) -> list[LedgerRow]:
    """Return the most recent row of each loan, ordered by loan id."""
    latest: dict[str, LedgerRow] = {}
    for row in rows:
        current = latest.get(row.loan_id)
        if current is None or row.month >= current.month:
            latest[row.loan_id] = row
    return [latest[loan_id] for loan_id in sorted(latest)]


def _percent(numerator: Decimal, denominator: Decimal) -> Decimal:
    if denominator <= 0:
        return ZERO
    return to_cents(numerator / denominator * HUNDRED)


def aggregate_portfolio(
    rows: Iterable[LedgerRow],
    time_range: TimeRange | str,
    as_of: date,
    config: LedgerConfig | None = None,
) -> PortfolioReport:
    """Reduce ledger rows to a portfolio report for one window.

    Income is on a cash-collected basis: the interest and fee columns of
    rows inside the window. Book value and risk figures come from each
    loan's latest row regardless of the window.

    Parameters
    ----------
    rows : Iterable[LedgerRow]
        All ledger rows (every loan, every month).
    time_range : TimeRange | str
        ``1M``, ``3M``, ``6M``, ``1Y`` or ``YTD``.
    as_of : date
        Reference date for the window.
    config : LedgerConfig | None
        Arrears and credit-loss thresholds.

    Returns
    -------
    PortfolioReport
        Complete report.
    """
    config = config or LedgerConfig()
    period = parse_time_range(time_range)
    window_start, factor = resolve_window(period, as_of)

    rows = list(rows)
    in_window = [r for r in rows if r.month >= window_start]
    snapshots = latest_rows(rows)

    interest_income = sum((r.interest_collected for r in in_window), ZERO)
    fee_income = sum((r.fees_collected for r in in_window), ZERO)
    total_revenue = interest_income + fee_income

    book_value = sum((s.principal_outstanding for s in snapshots), ZERO)

    annualized_yield = ZERO
    if book_value > 0:
        annualized_yield = to_cents(total_revenue / book_value * factor * HUNDRED)

    active_clients = sum(1 for s in snapshots if s.principal_outstanding > 0)
    client_base = Decimal(max(active_clients, 1))

    in_arrears = sum(1 for s in snapshots if s.arrears_amount > config.arrears_threshold)
    arrears_percentage = _percent(Decimal(in_arrears), client_base)

    at_risk = sum(
        (
            s.principal_outstanding
            for s in snapshots
            if s.arrears_amount > s.principal_outstanding * config.credit_loss_arrears_ratio
        ),
        ZERO,
    )

    return PortfolioReport(
        period=period,
        window_start=window_start,
        annualization_factor=factor,
        income_statement=IncomeStatement(
            interest_income=to_cents(interest_income),
            nii=to_cents(interest_income),
            fee_income=to_cents(fee_income),
            nir=to_cents(fee_income),
            commission_income=ZERO,
            penalty_income=ZERO,
            total_revenue=to_cents(total_revenue),
        ),
        balance_sheet=BalanceSheet(
            total_loan_book=to_cents(book_value),
            active_clients=active_clients,
            avg_loan_per_client=to_cents(book_value / client_base),
            annualized_yield=annualized_yield,
            arrears_percentage=arrears_percentage,
        ),
        ratios=RiskRatios(
            credit_loss_percentage=_percent(at_risk, book_value),
            nii_to_revenue=_percent(interest_income, total_revenue),
            nir_to_revenue=_percent(fee_income, total_revenue),
        ),
    )
