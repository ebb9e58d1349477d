"""Synthetic data generators for lending scenarios."""

from microlend.generators.lending import ApplicationGenerator, ClientGenerator, PaymentBehavior
from microlend.generators.portfolio import PortfolioScenario

__all__ = [
    "ApplicationGenerator",
    "ClientGenerator",
    "PaymentBehavior",
    "PortfolioScenario",
]
