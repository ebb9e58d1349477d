"""Pytest configuration and fixtures."""

from datetime import date, datetime
from decimal import Decimal
from typing import Callable

import pytest

from microlend.models.lending import (
    Application,
    ApplicationStatus,
    Client,
    Loan,
    LoanStatus,
    Offer,
    Payment,
)
from microlend.store.lending import LendingDataStore


@pytest.fixture
def seed() -> int:
    """Fixed seed for reproducible tests."""
    return 42


@pytest.fixture
def now() -> datetime:
    """Fixed wall-clock time for service and workflow tests."""
    return datetime(2024, 3, 15, 10, 0, 0)


@pytest.fixture
def sample_client() -> Client:
    """Create a sample client."""
    return Client(
        client_id="client-001",
        full_name="Test Client",
        created_at=datetime(2023, 1, 10, 9, 0, 0),
    )


@pytest.fixture
def sample_application(sample_client: Client) -> Application:
    """Create a submitted application for 10000 over 6 months."""
    return Application(
        application_id="app-001",
        client_id=sample_client.client_id,
        amount=Decimal("10000"),
        term_months=6,
        status=ApplicationStatus.SUBMITTED,
        created_at=datetime(2024, 3, 1, 9, 0, 0),
    )


@pytest.fixture
def sample_offer() -> Offer:
    """Offer for 10000 over 6 months at 20%."""
    return Offer(
        principal=Decimal("10000"),
        annual_rate=Decimal("0.20"),
        total_interest=Decimal("250.00"),
        total_initiation_fee=Decimal("1500.00"),
        total_admin_fees=Decimal("360.00"),
        total_repayment=Decimal("12110.00"),
        monthly_installment=Decimal("2018.33"),
        first_payment_date=date(2024, 4, 14),
    )


@pytest.fixture
def store(sample_client: Client, sample_application: Application) -> LendingDataStore:
    """Store holding one client and one submitted application."""
    store = LendingDataStore()
    store.add_client(sample_client)
    store.add_application(sample_application)
    return store


@pytest.fixture
def make_loan() -> Callable[..., Loan]:
    """Factory for loans with sensible defaults."""

    def _make_loan(**overrides) -> Loan:
        values = dict(
            loan_id="loan-001",
            application_id="app-001",
            client_id="client-001",
            principal_amount=Decimal("1000"),
            interest_rate=Decimal("0.12"),
            term_months=12,
            monthly_payment=Decimal("100.00"),
            status=LoanStatus.ACTIVE,
            start_date=date(2024, 1, 10),
            first_payment_date=date(2024, 2, 10),
            next_payment_date=date(2024, 2, 10),
            outstanding_balance=Decimal("1000"),
            total_repayment=Decimal("1200"),
            created_at=datetime(2024, 1, 10, 9, 0, 0),
        )
        values.update(overrides)
        return Loan(**values)

    return _make_loan


@pytest.fixture
def make_payment() -> Callable[..., Payment]:
    """Factory for payments against ``loan-001``."""
    counter = iter(range(1, 10_000))

    def _make_payment(amount: str, payment_date: date, loan_id: str = "loan-001") -> Payment:
        return Payment(
            payment_id=f"pay-{next(counter):04d}",
            loan_id=loan_id,
            amount=Decimal(amount),
            payment_date=payment_date,
        )

    return _make_payment
