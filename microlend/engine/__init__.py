"""Loan economics and cash-waterfall engine."""

from microlend.engine.dashboard import classify_payment_standing, summarize_dashboard
from microlend.engine.ledger import (
    Allocation,
    WaterfallBuckets,
    allocate,
    build_ledger,
    build_portfolio_ledger,
    normalize_annual_rate,
)
from microlend.engine.materializer import LoanMaterializer, build_loan
from microlend.engine.offer import calculate_offer
from microlend.engine.policy import resolve_policy
from microlend.engine.portfolio import aggregate_portfolio, resolve_window
from microlend.engine.workflow import ALLOWED_TRANSITIONS, ApplicationWorkflow

__all__ = [
    "ALLOWED_TRANSITIONS",
    "Allocation",
    "ApplicationWorkflow",
    "LoanMaterializer",
    "WaterfallBuckets",
    "aggregate_portfolio",
    "allocate",
    "build_ledger",
    "build_loan",
    "build_portfolio_ledger",
    "calculate_offer",
    "classify_payment_standing",
    "normalize_annual_rate",
    "resolve_policy",
    "resolve_window",
    "summarize_dashboard",
]
