"""Back-office lending service.

Composes the store, the status workflow, the materializer and the pure
ledger/portfolio functions behind the operations the admin console calls.
"""

import logging
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Callable, Iterator, Protocol

from microlend.config import MicrolendConfig
from microlend.engine.dashboard import summarize_dashboard
from microlend.engine.ledger import build_portfolio_ledger
from microlend.engine.materializer import LoanMaterializer
from microlend.engine.portfolio import aggregate_portfolio, parse_time_range
from microlend.engine.workflow import MATERIALIZE_STATES, TERMINAL_STATES, ApplicationWorkflow
from microlend.exceptions import DataSourceError, InvalidTransitionError, MicrolendError
from microlend.models.base import Event
from microlend.models.lending import (
    Application,
    ApplicationStatus,
    DashboardSummary,
    LedgerRow,
    Loan,
    PortfolioReport,
    TimeRange,
)
from microlend.sinks.serialization import to_dict
from microlend.store.lending import LendingStore

logger = logging.getLogger(__name__)

EVENT_SOURCE = "microlend.service"


class EventSink(Protocol):
    def write_batch(self, entity_type: str, records: list[Any]) -> None: ...


@dataclass
class SyncFailure:
    application_id: str
    error: str


@dataclass
class SyncSummary:
    """Outcome of a bulk disbursement run."""

    total: int = 0
    success: int = 0
    failures: list[SyncFailure] = field(default_factory=list)


class LendingService:
    """Entry point for application workflow, loans and portfolio reporting.

    Parameters
    ----------
    store : LendingStore
        Persistence backend.
    config : MicrolendConfig | None
        Policy, ledger and event topic settings.
    event_sink : EventSink | None
        When set, committed changes are published as ``Event`` envelopes.
    clock : Callable[[], datetime] | None
        Source of the current time (default ``datetime.now``).
    id_factory : Callable[[], str] | None
        Generator for new loan ids (default UUID4).
    """

    def __init__(
        self,
        store: LendingStore,
        config: MicrolendConfig | None = None,
        event_sink: EventSink | None = None,
        clock: Callable[[], datetime] | None = None,
        id_factory: Callable[[], str] | None = None,
    ) -> None:
        self.store = store
        self.config = config or MicrolendConfig()
        self.event_sink = event_sink
        self._clock = clock or datetime.now

        self.materializer = LoanMaterializer(
            store,
            variant=self.config.materialization_variant,
            policy_config=self.config.policy,
            clock=self._clock,
            id_factory=id_factory,
        )
        self.workflow = ApplicationWorkflow(
            store,
            self.materializer,
            policy_config=self.config.policy,
            clock=self._clock,
        )

    @contextmanager
    def _store_errors(self, operation: str) -> Iterator[None]:
        """Surface non-domain store failures as ``DataSourceError``."""
        try:
            yield
        except MicrolendError:
            logger.error("%s failed", operation, exc_info=True)
            raise
        except Exception as exc:
            logger.exception("%s failed: data source error", operation)
            raise DataSourceError(str(exc)) from exc

    def transition_application_status(
        self,
        application_id: str,
        new_status: ApplicationStatus | str,
    ) -> Application:
        """Move an application to a new status, applying its side effects.

        Entering an approval state recomputes the offer; entering
        ``DISBURSED`` or ``ACTIVE`` also materializes the loan. The whole
        transition is committed or rejected as one unit.
        """
        with self._store_errors(f"Transition of application {application_id}"):
            had_loan = self.store.get_loan_for_application(application_id) is not None
            previous = self.store.get_application(application_id).status
            application, loan = self.workflow.transition(application_id, new_status)

        self._publish(
            "applications",
            "application.status_changed",
            application.application_id,
            {
                "previous_status": previous,
                "status": application.status,
                "application": to_dict(application),
            },
        )
        if loan is not None and not had_loan:
            self._publish("loans", "loan.materialized", loan.loan_id, to_dict(loan))
        return application

    def materialize_loan(self, application: Application) -> Loan:
        """Return the application's loan, creating it if it does not exist yet."""
        with self._store_errors(f"Materialization for application {application.application_id}"):
            had_loan = (
                self.store.get_loan_for_application(application.application_id) is not None
            )
            loan = self.materializer.materialize(application)

        if not had_loan:
            self._publish("loans", "loan.materialized", loan.loan_id, to_dict(loan))
        return loan

    def ledger(self, as_of: date | None = None) -> list[LedgerRow]:
        """Rebuild the ledger rows of every loan in the book."""
        as_of = as_of or self._clock().date()
        with self._store_errors("Ledger build"):
            loans = self.store.list_loans()
            payments = self.store.list_payments()
            applications = self.store.list_applications()
            clients = self.store.list_clients()

            rows = build_portfolio_ledger(
                loans,
                payments,
                applications,
                clients,
                as_of,
                config=self.config.ledger,
            )

        logger.info("Ledger built as of %s: %d loans, %d rows", as_of, len(loans), len(rows))
        return rows

    def financials(
        self,
        time_range: TimeRange | str = TimeRange.YEAR_TO_DATE,
        as_of: date | None = None,
    ) -> PortfolioReport:
        """Income statement, balance sheet and risk ratios for a window."""
        period = parse_time_range(time_range)
        as_of = as_of or self._clock().date()
        rows = self.ledger(as_of)

        report = aggregate_portfolio(rows, period, as_of, config=self.config.ledger)

        logger.info(
            "Financials %s: revenue=%s book=%s yield=%s%%",
            period.value,
            report.income_statement.total_revenue,
            report.balance_sheet.total_loan_book,
            report.balance_sheet.annualized_yield,
        )
        return report

    def dashboard(self) -> DashboardSummary:
        """Headline figures for the admin dashboard."""
        with self._store_errors("Dashboard"):
            loans = self.store.list_loans()
            payments = self.store.list_payments()
            pending = sum(
                1
                for application in self.store.list_applications()
                if application.status not in TERMINAL_STATES
                and application.status not in MATERIALIZE_STATES
            )
        return summarize_dashboard(loans, payments, pending_applications=pending)

    def sync_applications(
        self,
        status: ApplicationStatus | str = ApplicationStatus.OFFER_ACCEPTED,
    ) -> SyncSummary:
        """Disburse every application currently in ``status``.

        Each application is transitioned independently; a failure is
        recorded in the summary and the run continues with the next one.
        """
        try:
            status = ApplicationStatus(status)
        except ValueError:
            raise InvalidTransitionError(f"Unknown application status {status!r}") from None
        with self._store_errors(f"Listing {status.value} applications"):
            applications = self.store.list_applications(status)

        summary = SyncSummary(total=len(applications))
        for application in applications:
            try:
                self.transition_application_status(
                    application.application_id, ApplicationStatus.DISBURSED
                )
            except MicrolendError as exc:
                logger.warning(
                    "Could not disburse application %s: %s", application.application_id, exc
                )
                summary.failures.append(SyncFailure(application.application_id, str(exc)))
            else:
                summary.success += 1

        logger.info(
            "Synced %d %s applications: %d disbursed, %d failed",
            summary.total,
            status.value,
            summary.success,
            len(summary.failures),
        )
        return summary

    def _publish(self, entity: str, event_type: str, subject: str, data: dict) -> None:
        if self.event_sink is None:
            return
        event = Event(
            event_id=str(uuid.uuid4()),
            event_type=event_type,
            event_time=self._clock(),
            source=EVENT_SOURCE,
            subject=subject,
            data=data,
        )
        topic = f"{self.config.kafka.topic_prefix}.{entity}"
        self.event_sink.write_batch(topic, [event])
