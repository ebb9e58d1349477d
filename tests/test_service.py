"""Tests for the back-office lending service."""

from dataclasses import replace
from datetime import date, datetime
from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from microlend.config import MicrolendConfig
from microlend.exceptions import (
    ComputationError,
    DataSourceError,
    InvalidTransitionError,
    NotFoundError,
    SinkError,
)
from microlend.models.base import Event
from microlend.models.lending import (
    Application,
    ApplicationStatus,
    MaterializationVariant,
    Payment,
    TimeRange,
)
from microlend.service import LendingService
from microlend.store.lending import LendingDataStore

S = ApplicationStatus


@pytest.fixture
def sink() -> MagicMock:
    return MagicMock()


@pytest.fixture
def service(store: LendingDataStore, now: datetime, sink: MagicMock) -> LendingService:
    ids = iter(f"loan-{i:03d}" for i in range(1, 100))
    return LendingService(store, event_sink=sink, clock=lambda: now, id_factory=lambda: next(ids))


def disburse(service: LendingService, application_id: str = "app-001") -> Application:
    service.transition_application_status(application_id, S.OFFERED)
    return service.transition_application_status(application_id, S.DISBURSED)


def published(sink: MagicMock) -> list[tuple[str, Event]]:
    return [(c.args[0], c.args[1][0]) for c in sink.write_batch.call_args_list]


class TestTransitions:
    """Tests for transition_application_status."""

    def test_returns_updated_application(self, service: LendingService) -> None:
        application = service.transition_application_status("app-001", "OFFER_ACCEPTED")

        assert application.status == S.OFFER_ACCEPTED
        assert application.offer.total_repayment == Decimal("12110.00")

    def test_disbursal_creates_loan(self, service: LendingService, store: LendingDataStore) -> None:
        disburse(service)

        loan = store.get_loan_for_application("app-001")
        assert loan.loan_id == "loan-001"
        assert loan.outstanding_balance == Decimal("12110.00")

    def test_status_event(self, service: LendingService, sink: MagicMock, now: datetime) -> None:
        service.transition_application_status("app-001", S.OFFERED)

        [(topic, event)] = published(sink)
        assert topic == "dev.lending.applications"
        assert event.event_type == "application.status_changed"
        assert event.subject == "app-001"
        assert event.event_time == now
        assert event.data["previous_status"] == S.SUBMITTED
        assert event.data["status"] == S.OFFERED
        assert event.data["application"]["status"] == "OFFERED"

    def test_materialized_event_once(self, service: LendingService, sink: MagicMock) -> None:
        """Only the transition that creates the loan announces it."""
        disburse(service)
        service.transition_application_status("app-001", S.ACTIVE)

        loan_events = [e for topic, e in published(sink) if topic == "dev.lending.loans"]
        assert len(loan_events) == 1
        assert loan_events[0].event_type == "loan.materialized"
        assert loan_events[0].subject == "loan-001"

    def test_topic_prefix_from_config(self, store: LendingDataStore, sink: MagicMock) -> None:
        config = MicrolendConfig()
        config.kafka.topic_prefix = "prod.lending"
        service = LendingService(store, config=config, event_sink=sink)

        service.transition_application_status("app-001", S.OFFERED)

        assert published(sink)[0][0] == "prod.lending.applications"

    def test_no_sink(self, store: LendingDataStore) -> None:
        service = LendingService(store)

        assert service.transition_application_status("app-001", S.OFFERED).status == S.OFFERED

    def test_invalid_transition(self, service: LendingService, sink: MagicMock) -> None:
        with pytest.raises(InvalidTransitionError):
            service.transition_application_status("app-001", S.DISBURSED)

        sink.write_batch.assert_not_called()

    def test_missing_application(self, service: LendingService) -> None:
        with pytest.raises(NotFoundError):
            service.transition_application_status("app-404", S.OFFERED)

    def test_sink_failure_after_commit(
        self, service: LendingService, sink: MagicMock, store: LendingDataStore
    ) -> None:
        """A publishing failure is reported; the committed change stays."""
        sink.write_batch.side_effect = SinkError("broker unavailable")

        with pytest.raises(SinkError):
            service.transition_application_status("app-001", S.OFFERED)

        assert store.get_application("app-001").status == S.OFFERED

    def test_principal_balance_variant(self, store: LendingDataStore, now: datetime) -> None:
        config = MicrolendConfig(materialization_variant=MaterializationVariant.PRINCIPAL_BALANCE)
        service = LendingService(store, config=config, clock=lambda: now)

        disburse(service)

        assert store.get_loan_for_application("app-001").outstanding_balance == Decimal("10000")


class TestMaterializeLoan:
    """Tests for materialize_loan."""

    def test_idempotent(self, service: LendingService, store: LendingDataStore, sink: MagicMock) -> None:
        application = service.transition_application_status("app-001", S.OFFER_ACCEPTED)
        sink.reset_mock()

        first = service.materialize_loan(application)
        second = service.materialize_loan(application)

        assert first == second
        assert len(store.loans) == 1
        assert sink.write_batch.call_count == 1


class TestReporting:
    """Tests for ledger, financials and dashboard."""

    @pytest.fixture
    def funded(self, service: LendingService, store: LendingDataStore) -> LendingDataStore:
        disburse(service)
        store.add_payment(
            Payment(
                payment_id="pay-001",
                loan_id="loan-001",
                amount=Decimal("2018.33"),
                payment_date=date(2024, 4, 20),
                client_id="client-001",
            )
        )
        return store

    def test_ledger(self, service: LendingService, funded: LendingDataStore) -> None:
        rows = service.ledger(date(2024, 4, 30))

        assert [r.month for r in rows] == ["2024-03", "2024-04"]
        assert rows[0].customer == "Test Client"
        assert rows[0].arrears_amount == Decimal("10000")
        assert rows[1].fees_collected == Decimal("1860.00")
        assert rows[1].interest_collected == Decimal("158.33")

    def test_ledger_defaults_to_clock(self, service: LendingService, funded: LendingDataStore) -> None:
        rows = service.ledger()

        assert rows[-1].month == "2024-03"

    def test_financials(self, service: LendingService, funded: LendingDataStore) -> None:
        report = service.financials("1M", as_of=date(2024, 4, 30))

        assert report.period is TimeRange.ONE_MONTH
        assert report.income_statement.total_revenue == Decimal("2018.33")
        assert report.balance_sheet.total_loan_book == Decimal("10000.00")
        assert report.balance_sheet.annualized_yield == Decimal("242.20")
        assert report.balance_sheet.arrears_percentage == Decimal("0")

    def test_financials_unknown_range(self, service: LendingService) -> None:
        with pytest.raises(ComputationError):
            service.financials("5Y")

    def test_store_failure_surfaces_as_data_source_error(self, now: datetime) -> None:
        store = MagicMock()
        store.list_loans.side_effect = RuntimeError("connection reset")
        service = LendingService(store, clock=lambda: now)

        with pytest.raises(DataSourceError, match="connection reset"):
            service.financials("YTD")

    def test_dashboard(self, service: LendingService, funded: LendingDataStore, sample_application: Application) -> None:
        funded.add_application(replace(sample_application, application_id="app-002"))

        summary = service.dashboard()

        assert summary.total_disbursed == Decimal("10000.00")
        assert summary.total_collected == Decimal("2018.33")
        assert summary.active_loans_count == 1
        assert summary.pending_applications == 1


class TestSyncApplications:
    """Tests for sync_applications."""

    def test_disburses_and_collects_failures(
        self, service: LendingService, store: LendingDataStore, sample_application: Application
    ) -> None:
        service.transition_application_status("app-001", S.OFFER_ACCEPTED)
        store.add_application(
            replace(
                sample_application,
                application_id="app-002",
                status=S.OFFER_ACCEPTED,
                term_months=0,
            )
        )

        summary = service.sync_applications()

        assert summary.total == 2
        assert summary.success == 1
        assert [f.application_id for f in summary.failures] == ["app-002"]
        assert "at least 1 month" in summary.failures[0].error
        assert store.get_application("app-001").status == S.DISBURSED
        assert store.get_application("app-002").status == S.OFFER_ACCEPTED

    def test_nothing_to_sync(self, service: LendingService) -> None:
        summary = service.sync_applications(S.READY_TO_DISBURSE)

        assert (summary.total, summary.success, summary.failures) == (0, 0, [])

    def test_unknown_status(self, service: LendingService) -> None:
        with pytest.raises(InvalidTransitionError):
            service.sync_applications("PENDING")
