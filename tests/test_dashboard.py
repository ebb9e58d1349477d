"""Tests for dashboard figures and payment standing."""

from datetime import date
from decimal import Decimal

import pytest

from microlend.engine.dashboard import classify_payment_standing, summarize_dashboard
from microlend.models.lending import LoanStatus, PaymentStanding


class TestSummarizeDashboard:
    """Tests for summarize_dashboard."""

    def test_totals_and_margin(self, make_loan, make_payment) -> None:
        loans = [
            make_loan(loan_id="loan-001", principal_amount=Decimal("1000")),
            make_loan(loan_id="loan-002", principal_amount=Decimal("2000")),
        ]
        payments = [
            make_payment("1500", date(2024, 2, 1), loan_id="loan-001"),
            make_payment("1700", date(2024, 2, 1), loan_id="loan-002"),
        ]

        summary = summarize_dashboard(loans, payments, pending_applications=4)

        assert summary.total_disbursed == Decimal("3000.00")
        assert summary.total_collected == Decimal("3200.00")
        assert summary.net_profit_amount == Decimal("200.00")
        # 200 / 3000 = 6.67%
        assert summary.profit_margin == Decimal("6.7")
        assert summary.pending_applications == 4

    def test_status_distribution(self, make_loan) -> None:
        loans = [
            make_loan(loan_id="l1", status=LoanStatus.ACTIVE),
            make_loan(loan_id="l2", status=LoanStatus.ACTIVE),
            make_loan(loan_id="l3", status=LoanStatus.ARREARS),
            make_loan(loan_id="l4", status=LoanStatus.DEFAULT),
            make_loan(loan_id="l5", status=LoanStatus.SETTLED),
        ]

        summary = summarize_dashboard(loans, [])

        assert summary.active_loans_count == 2
        assert summary.portfolio_status == {"Active": 2, "Default": 2, "Repaid": 1}

    def test_negative_margin(self, make_loan, make_payment) -> None:
        summary = summarize_dashboard(
            [make_loan(principal_amount=Decimal("1000"))],
            [make_payment("250", date(2024, 2, 1))],
        )

        assert summary.net_profit_amount == Decimal("-750.00")
        assert summary.profit_margin == Decimal("-75.0")

    def test_empty_book(self) -> None:
        summary = summarize_dashboard([], [])

        assert summary.total_disbursed == Decimal("0")
        assert summary.profit_margin == Decimal("0")
        assert summary.active_loans_count == 0


class TestPaymentStanding:
    """Tests for classify_payment_standing."""

    @pytest.mark.parametrize(
        ("balance", "installment", "paid", "expected"),
        [
            ("-5", "100", "100", PaymentStanding.OVERPAID),
            ("-1", "100", "100", PaymentStanding.SETTLED),
            ("0", "100", "100", PaymentStanding.SETTLED),
            ("1", "100", "40", PaymentStanding.SETTLED),
            ("500", "100", "40", PaymentStanding.PARTIAL),
            ("500", "100", "100", PaymentStanding.ON_TRACK),
            ("500", "100", "250", PaymentStanding.ON_TRACK),
        ],
    )
    def test_classification(
        self, balance: str, installment: str, paid: str, expected: PaymentStanding
    ) -> None:
        assert (
            classify_payment_standing(Decimal(balance), Decimal(installment), Decimal(paid))
            is expected
        )
