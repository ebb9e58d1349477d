"""Tests for the waterfall ledger engine."""

from datetime import date, datetime
from decimal import Decimal

import pytest

from microlend.config import LedgerConfig
from microlend.engine.ledger import (
    UNIDENTIFIED_CUSTOMER,
    WaterfallBuckets,
    allocate,
    build_ledger,
    build_portfolio_ledger,
    monthly_rate,
    normalize_annual_rate,
)
from microlend.exceptions import ComputationError, ReferentialIntegrityError
from microlend.models.lending import Application, ApplicationStatus, Client, Offer


class TestRateNormalization:
    """Tests for normalize_annual_rate and monthly_rate."""

    def test_fraction_unchanged(self) -> None:
        assert normalize_annual_rate(Decimal("0.20")) == Decimal("0.20")

    def test_whole_percentage_divided(self) -> None:
        """A stored rate of 20 means 20%."""
        assert normalize_annual_rate(Decimal("20")) == Decimal("0.20")

    def test_one_is_a_fraction(self) -> None:
        assert normalize_annual_rate(Decimal("1")) == Decimal("1")

    def test_negative_rejected(self) -> None:
        with pytest.raises(ComputationError):
            normalize_annual_rate(Decimal("-0.1"))

    def test_monthly_rate(self) -> None:
        assert monthly_rate(Decimal("12")) == Decimal("0.01")


class TestAllocate:
    """Tests for the allocation waterfall."""

    def test_priority_order(self) -> None:
        """Cash settles initiation, then admin, then interest, then principal."""
        buckets = WaterfallBuckets(
            initiation_fee=Decimal("100"),
            admin_fee=Decimal("50"),
            interest=Decimal("30"),
            principal=Decimal("1000"),
        )

        allocation, after = allocate(Decimal("120"), buckets)

        assert allocation.initiation == Decimal("100")
        assert allocation.admin == Decimal("20")
        assert allocation.interest == Decimal("0")
        assert allocation.principal == Decimal("0")
        assert allocation.overpayment == Decimal("0")
        assert after == WaterfallBuckets(
            initiation_fee=Decimal("0"),
            admin_fee=Decimal("30"),
            interest=Decimal("30"),
            principal=Decimal("1000"),
        )

    def test_reaches_principal(self) -> None:
        buckets = WaterfallBuckets(Decimal("10"), Decimal("10"), Decimal("10"), Decimal("100"))

        allocation, after = allocate(Decimal("80"), buckets)

        assert allocation.fees == Decimal("20")
        assert allocation.profit == Decimal("30")
        assert allocation.principal == Decimal("50")
        assert after.principal == Decimal("50")

    def test_overpayment_is_excess(self) -> None:
        """Cash beyond every bucket is reported as overpayment."""
        buckets = WaterfallBuckets(Decimal("5"), Decimal("5"), Decimal("5"), Decimal("85"))

        allocation, after = allocate(Decimal("130"), buckets)

        assert allocation.overpayment == Decimal("30")
        assert after == WaterfallBuckets(Decimal("0"), Decimal("0"), Decimal("0"), Decimal("0"))

    def test_allocation_sums_to_cash(self) -> None:
        buckets = WaterfallBuckets(Decimal("7.50"), Decimal("60"), Decimal("12.34"), Decimal("500"))

        allocation, _ = allocate(Decimal("321.09"), buckets)

        total = (
            allocation.initiation
            + allocation.admin
            + allocation.interest
            + allocation.principal
            + allocation.overpayment
        )
        assert total == Decimal("321.09")

    def test_zero_cash(self) -> None:
        buckets = WaterfallBuckets(Decimal("5"), Decimal("5"), Decimal("5"), Decimal("85"))

        allocation, after = allocate(Decimal("0"), buckets)

        assert allocation.profit == Decimal("0")
        assert after == buckets

    def test_negative_cash_rejected(self) -> None:
        buckets = WaterfallBuckets(Decimal("0"), Decimal("0"), Decimal("0"), Decimal("1"))

        with pytest.raises(ComputationError):
            allocate(Decimal("-1"), buckets)


class TestBuildLedger:
    """Tests for build_ledger."""

    def test_one_row_per_month_through_as_of(self, make_loan, make_payment) -> None:
        """Rows run from the start month to the as_of month inclusive."""
        loan = make_loan()
        payments = [make_payment("110", date(2024, 1, 25))]

        rows = build_ledger(loan, payments, date(2024, 3, 20))

        assert [r.month for r in rows] == ["2024-01", "2024-02", "2024-03"]

    def test_accrual_and_allocation(self, make_loan, make_payment) -> None:
        """1% monthly interest accrues before the payment is applied."""
        loan = make_loan()
        payments = [make_payment("110", date(2024, 1, 25))]

        rows = build_ledger(loan, payments, date(2024, 3, 20))
        jan, feb = rows[0], rows[1]

        assert jan.opening_principal == Decimal("1000")
        assert jan.interest_accrued == Decimal("10.00")
        assert jan.interest_collected == Decimal("10.00")
        assert jan.principal_collected == Decimal("100.00")
        assert jan.principal_outstanding == Decimal("900.00")
        assert jan.payment_received == Decimal("110")

        assert feb.interest_accrued == Decimal("9.00")
        assert feb.interest_receivable == Decimal("9.00")
        assert feb.payment_received == Decimal("0")

    def test_stored_percentage_rate_matches_fraction(self, make_loan, make_payment) -> None:
        """A loan stored with rate 20 replays exactly like one with 0.20."""
        payments = [make_payment("300", date(2024, 2, 5))]
        as_percent = build_ledger(
            make_loan(interest_rate=Decimal("20")), payments, date(2024, 4, 1)
        )
        as_fraction = build_ledger(
            make_loan(interest_rate=Decimal("0.20")), payments, date(2024, 4, 1)
        )

        assert as_percent == as_fraction

    def test_arrears_only_for_past_months(self, make_loan) -> None:
        """Outstanding principal is arrears in past months, never in the current one."""
        loan = make_loan(
            principal_amount=Decimal("500"),
            interest_rate=Decimal("0"),
            start_date=date(2024, 1, 5),
        )

        rows = build_ledger(loan, [], date(2024, 2, 15))

        assert rows[0].month == "2024-01"
        assert rows[0].arrears_amount == Decimal("500")
        assert rows[0].in_arrears is True
        assert rows[1].month == "2024-02"
        assert rows[1].arrears_amount == Decimal("0")
        assert rows[1].in_arrears is False

    def test_overpayment(self, make_loan, make_payment) -> None:
        """Cash beyond the remaining balance is overpayment."""
        loan = make_loan(principal_amount=Decimal("100"), interest_rate=Decimal("0"))

        rows = build_ledger(loan, [make_payment("150", date(2024, 1, 20))], date(2024, 1, 31))

        assert len(rows) == 1
        assert rows[0].principal_collected == Decimal("100")
        assert rows[0].overpayment_collected == Decimal("50")
        assert rows[0].principal_outstanding == Decimal("0")
        assert rows[0].arrears_amount == Decimal("0")

    def test_no_accrual_once_repaid(self, make_loan, make_payment) -> None:
        loan = make_loan(principal_amount=Decimal("100"), interest_rate=Decimal("0.12"))

        rows = build_ledger(loan, [make_payment("200", date(2024, 1, 20))], date(2024, 3, 1))

        assert rows[1].opening_principal == Decimal("0")
        assert rows[1].interest_accrued == Decimal("0")
        assert rows[2].interest_accrued == Decimal("0")

    def test_offer_fees_collected_first(self, make_loan, make_payment, sample_offer: Offer) -> None:
        """Initiation and admin fees from the offer absorb the first cash."""
        loan = make_loan(
            principal_amount=Decimal("10000"),
            interest_rate=Decimal("0.20"),
            total_repayment=Decimal("12110.00"),
        )
        payments = [make_payment("2018.33", date(2024, 1, 20))]

        rows = build_ledger(loan, payments, date(2024, 1, 31), offer=sample_offer)
        row = rows[0]

        assert row.interest_accrued == Decimal("166.67")
        assert row.initiation_collected == Decimal("1500.00")
        assert row.admin_collected == Decimal("360.00")
        assert row.fees_collected == Decimal("1860.00")
        assert row.interest_collected == Decimal("158.33")
        assert row.interest_receivable == Decimal("8.34")
        assert row.profit_collected == Decimal("2018.33")
        assert row.principal_collected == Decimal("0")
        assert row.contract_total == Decimal("12110.00")

    def test_contract_total_without_offer(self, make_loan) -> None:
        rows = build_ledger(make_loan(), [], date(2024, 1, 31))

        assert rows[0].contract_total == Decimal("1200")

    def test_payments_in_same_month_are_summed(self, make_loan, make_payment) -> None:
        loan = make_loan(interest_rate=Decimal("0"))
        payments = [
            make_payment("40", date(2024, 1, 11)),
            make_payment("60", date(2024, 1, 28)),
            make_payment("25", date(2024, 2, 3)),
        ]

        rows = build_ledger(loan, payments, date(2024, 2, 28))

        assert rows[0].payment_received == Decimal("100")
        assert rows[0].total_paid_to_date == Decimal("100")
        assert rows[1].total_paid_to_date == Decimal("125")
        assert rows[1].principal_outstanding == Decimal("875")

    def test_payments_outside_replay_ignored(self, make_loan, make_payment) -> None:
        """Cash dated before the start month or after as_of is not allocated."""
        loan = make_loan(interest_rate=Decimal("0"))
        payments = [
            make_payment("50", date(2023, 12, 20)),
            make_payment("70", date(2024, 5, 1)),
        ]

        rows = build_ledger(loan, payments, date(2024, 2, 10))

        assert all(r.payment_received == Decimal("0") for r in rows)
        assert rows[-1].principal_outstanding == Decimal("1000")

    def test_customer_name(self, make_loan) -> None:
        assert build_ledger(make_loan(), [], date(2024, 1, 31))[0].customer == UNIDENTIFIED_CUSTOMER
        assert build_ledger(make_loan(), [], date(2024, 1, 31), customer="Ana")[0].customer == "Ana"

    def test_accepts_datetime_as_of(self, make_loan) -> None:
        rows = build_ledger(make_loan(), [], datetime(2024, 2, 1, 12, 0))

        assert [r.month for r in rows] == ["2024-01", "2024-02"]

    def test_as_of_before_start_gives_no_rows(self, make_loan) -> None:
        assert build_ledger(make_loan(), [], date(2023, 12, 31)) == []

    def test_deterministic(self, make_loan, make_payment) -> None:
        """Replaying the same history twice produces identical rows."""
        loan = make_loan()
        payments = [
            make_payment("100", date(2024, 2, 10)),
            make_payment("100", date(2024, 3, 12)),
        ]

        first = build_ledger(loan, payments, date(2024, 6, 1))
        second = build_ledger(loan, list(reversed(payments)), date(2024, 6, 1))

        assert first == second

    def test_fifteen_year_old_loan_capped(self, make_loan) -> None:
        """Replay stops after the configured maximum number of months."""
        loan = make_loan(start_date=date(2009, 1, 1))

        rows = build_ledger(loan, [], date(2024, 3, 1))

        assert len(rows) == 120
        assert rows[0].month == "2009-01"
        assert rows[-1].month == "2018-12"

    def test_custom_cap(self, make_loan) -> None:
        rows = build_ledger(make_loan(), [], date(2024, 12, 1), config=LedgerConfig(max_months=3))

        assert len(rows) == 3

    def test_negative_payment_rejected(self, make_loan, make_payment) -> None:
        with pytest.raises(ComputationError, match="negative amount"):
            build_ledger(make_loan(), [make_payment("-1", date(2024, 1, 20))], date(2024, 2, 1))

    def test_foreign_payment_rejected(self, make_loan, make_payment) -> None:
        payment = make_payment("10", date(2024, 1, 20), loan_id="loan-999")

        with pytest.raises(ComputationError, match="belongs to loan"):
            build_ledger(make_loan(), [payment], date(2024, 2, 1))

    def test_negative_principal_rejected(self, make_loan) -> None:
        with pytest.raises(ComputationError, match="negative principal"):
            build_ledger(make_loan(principal_amount=Decimal("-1")), [], date(2024, 2, 1))


class TestBuildPortfolioLedger:
    """Tests for build_portfolio_ledger."""

    @pytest.fixture
    def clients(self) -> list[Client]:
        return [
            Client("client-001", "Ana Silva", datetime(2023, 1, 1)),
            Client("client-002", "Ben Okafor", datetime(2023, 1, 1)),
        ]

    @pytest.fixture
    def applications(self, sample_offer: Offer) -> list[Application]:
        return [
            Application(
                application_id="app-001",
                client_id="client-001",
                amount=Decimal("1000"),
                term_months=12,
                status=ApplicationStatus.DISBURSED,
                created_at=datetime(2024, 1, 1),
            ),
            Application(
                application_id="app-002",
                client_id="client-002",
                amount=Decimal("10000"),
                term_months=6,
                status=ApplicationStatus.DISBURSED,
                created_at=datetime(2024, 1, 1),
                offer=sample_offer,
            ),
        ]

    def test_joins_names_and_offers(self, make_loan, make_payment, clients, applications) -> None:
        loans = [
            make_loan(),
            make_loan(
                loan_id="loan-002",
                application_id="app-002",
                client_id="client-002",
                principal_amount=Decimal("10000"),
                created_at=datetime(2024, 1, 5),
            ),
        ]
        payments = [make_payment("2000", date(2024, 1, 20), loan_id="loan-002")]

        rows = build_portfolio_ledger(loans, payments, applications, clients, date(2024, 1, 31))

        by_loan = {r.loan_id: r for r in rows}
        assert by_loan["loan-001"].customer == "Ana Silva"
        assert by_loan["loan-002"].customer == "Ben Okafor"
        assert by_loan["loan-002"].initiation_collected == Decimal("1500.00")
        assert by_loan["loan-001"].payment_received == Decimal("0")

    def test_ordered_by_creation(self, make_loan, clients, applications) -> None:
        """Loans are replayed oldest first regardless of input order."""
        older = make_loan(loan_id="loan-b", created_at=datetime(2024, 1, 1))
        newer = make_loan(
            loan_id="loan-a",
            application_id="app-002",
            client_id="client-002",
            created_at=datetime(2024, 1, 2),
        )

        rows = build_portfolio_ledger([newer, older], [], applications, clients, date(2024, 1, 31))

        assert [r.loan_id for r in rows] == ["loan-b", "loan-a"]

    def test_unknown_client_name(self, make_loan, applications) -> None:
        rows = build_portfolio_ledger([make_loan()], [], applications, [], date(2024, 1, 31))

        assert rows[0].customer == UNIDENTIFIED_CUSTOMER

    def test_payment_for_unknown_loan(self, make_loan, make_payment, clients, applications) -> None:
        orphan = make_payment("10", date(2024, 1, 20), loan_id="loan-404")

        with pytest.raises(ReferentialIntegrityError):
            build_portfolio_ledger([make_loan()], [orphan], applications, clients, date(2024, 1, 31))

    def test_empty_book(self) -> None:
        assert build_portfolio_ledger([], [], [], [], date(2024, 1, 31)) == []
