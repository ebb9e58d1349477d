"""Loan portfolio scenario: a seeded book of clients, loans and repayments."""

from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta

from microlend.config import MicrolendConfig
from microlend.generators.lending import ApplicationGenerator, ClientGenerator, PaymentBehavior
from microlend.models.lending import ApplicationStatus
from microlend.service import LendingService
from microlend.store.lending import LendingDataStore

logger = logging.getLogger(__name__)


class _ScenarioClock:
    """Settable clock so applications can be processed on past dates."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


class PortfolioScenario:
    """Generate a realistic microloan book with repayment history.

    This scenario creates:
    - Clients, each with one or more applications spread over the lookback
    - Disbursed loans, processed through the normal status workflow on
      their historical dates (so repeat clients get the repeat rate)
    - Payments following a per-loan behavior profile
    - A share of applications left pending or declined
    """

    def __init__(
        self,
        num_clients: int = 50,
        as_of: date | None = None,
        months_back: int = 18,
        disbursal_rate: float = 0.80,
        decline_rate: float = 0.10,
        max_applications_per_client: int = 4,
        seed: int | None = None,
        *,
        config: MicrolendConfig | None = None,
    ) -> None:
        """Initialize portfolio scenario.

        Parameters
        ----------
        num_clients : int
            Number of clients to generate.
        as_of : date | None
            Last day of generated history (default today).
        months_back : int
            How far back the first applications may be dated.
        disbursal_rate : float
            Share of applications that are disbursed.
        decline_rate : float
            Share of applications that are declined; the rest stay pending.
        max_applications_per_client : int
            Upper bound on applications per client.
        seed : int | None
            Random seed for reproducibility.
        config : MicrolendConfig | None
            Policy and ledger configuration for the service.
        """
        self.num_clients = num_clients
        self.as_of = as_of or date.today()
        self.months_back = months_back
        self.disbursal_rate = disbursal_rate
        self.decline_rate = decline_rate
        self.max_applications_per_client = max_applications_per_client
        self.seed = seed
        self.config = config or MicrolendConfig()

        self.store = LendingDataStore()
        self.clock = _ScenarioClock(datetime.combine(self.as_of, time(9, 0)))
        self.service = LendingService(self.store, config=self.config, clock=self.clock)

        self._client_gen = ClientGenerator(seed=seed)
        self._application_gen = ApplicationGenerator(seed=seed)
        self._payment_behavior = PaymentBehavior(seed=seed)

    def generate(self) -> LendingDataStore:
        """Generate all data for the scenario.

        Returns
        -------
        LendingDataStore
            Store containing clients, applications, loans and payments.
        """
        logger.info(
            "Starting portfolio scenario: %d clients over %d months to %s",
            self.num_clients,
            self.months_back,
            self.as_of,
        )
        rng = self._application_gen.rng
        start = self.as_of - timedelta(days=30 * self.months_back)

        for _ in range(self.num_clients):
            joined = start + timedelta(days=rng.randint(0, 30 * self.months_back))
            client = self._client_gen.generate(created_at=datetime.combine(joined, time(9, 0)))
            self.store.add_client(client)

            count = rng.randint(1, self.max_applications_per_client)
            submitted = sorted(
                joined + timedelta(days=rng.randint(0, max((self.as_of - joined).days, 0)))
                for _ in range(count)
            )
            for day in submitted:
                self._process_application(client.client_id, day)

        # Payments need the loans first; replay them loan by loan
        for loan in self.store.list_loans():
            for payment in self._payment_behavior.generate(loan, self.as_of):
                self.store.add_payment(payment)

        self.clock.now = datetime.combine(self.as_of, time(9, 0))
        logger.info("Generated %s", self.store.summary())
        return self.store

    def _process_application(self, client_id: str, day: date) -> None:
        self.clock.now = datetime.combine(day, time(9, 0))
        application = self._application_gen.generate(client_id, created_at=self.clock.now)
        self.store.add_application(application)

        roll = self._application_gen.rng.random()
        if roll < self.decline_rate:
            self.service.transition_application_status(
                application.application_id, ApplicationStatus.DECLINED
            )
        elif roll < self.decline_rate + self.disbursal_rate:
            for status in (
                ApplicationStatus.OFFERED,
                ApplicationStatus.OFFER_ACCEPTED,
                ApplicationStatus.DISBURSED,
            ):
                self.service.transition_application_status(application.application_id, status)
