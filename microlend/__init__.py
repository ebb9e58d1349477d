"""Loan economics and cash-waterfall engine for a microlending back office."""

__version__ = "0.1.0"
