"""Client, application and payment generators for the lending domain."""

from __future__ import annotations

from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Iterator

from microlend.engine.money import add_months, to_cents
from microlend.generators.base import BaseGenerator
from microlend.models.lending import (
    Application,
    ApplicationStatus,
    Client,
    Loan,
    Payment,
)


class ClientGenerator(BaseGenerator):
    """Generate synthetic borrowers."""

    def generate(self, created_at: datetime | None = None) -> Client:
        """Generate a single client.

        Returns
        -------
        Client
            Generated client.
        """
        return Client(
            client_id=self.fake.uuid4(),
            full_name=self.fake.name(),
            created_at=created_at or datetime.now(),
        )

    def generate_batch(self, count: int, created_at: datetime | None = None) -> Iterator[Client]:
        """Generate multiple clients.

        Yields
        ------
        Client
            Generated clients.
        """
        for _ in range(count):
            yield self.generate(created_at)


class ApplicationGenerator(BaseGenerator):
    """Generate loan applications in the ``SUBMITTED`` state."""

    # Microloan sizes, in whole currency units
    AMOUNT_RANGE = (1000, 20000)
    AMOUNT_STEP = 500
    TERMS = [3, 6, 9, 12, 18, 24]
    TERM_WEIGHTS = [0.10, 0.30, 0.15, 0.25, 0.10, 0.10]

    def generate(self, client_id: str, created_at: datetime | None = None) -> Application:
        """Generate an application for a client.

        Parameters
        ----------
        client_id : str
            Owning client.
        created_at : datetime | None
            Submission time (default now).

        Returns
        -------
        Application
            Generated application.
        """
        low, high = self.AMOUNT_RANGE
        amount = self.rng.randrange(low, high + 1, self.AMOUNT_STEP)
        term = self.rng.choices(self.TERMS, weights=self.TERM_WEIGHTS, k=1)[0]

        return Application(
            application_id=self.fake.uuid4(),
            client_id=client_id,
            amount=Decimal(amount),
            term_months=term,
            status=ApplicationStatus.SUBMITTED,
            created_at=created_at or datetime.now(),
            notes=self.fake.sentence(nb_words=6),
        )


class PaymentBehavior(BaseGenerator):
    """Simulate realistic repayment behavior for a loan.

    Each loan is assigned one behavior profile:

    - ``good``: pays the installment within a few days of each due date
    - ``partial``: usually pays, sometimes only part of the installment
    - ``early_settler``: pays on schedule, then settles the balance in one go
    - ``defaulter``: pays the first few installments, then stops
    """

    PROFILES = ["good", "partial", "early_settler", "defaulter"]

    def __init__(
        self,
        seed: int | None = None,
        on_time_rate: float = 0.70,
        partial_rate: float = 0.15,
        settle_rate: float = 0.05,
        default_rate: float = 0.10,
    ) -> None:
        super().__init__(seed)
        self.weights = [on_time_rate, partial_rate, settle_rate, default_rate]

    def generate(self, loan: Loan, reference_date: date) -> list[Payment]:
        """Generate the payments a loan has received up to ``reference_date``.

        Parameters
        ----------
        loan : Loan
            Materialized loan.
        reference_date : date
            Payments due after this date are not generated.

        Returns
        -------
        list[Payment]
            Payments in date order.
        """
        profile = self.rng.choices(self.PROFILES, weights=self.weights, k=1)[0]
        stop_after = self.rng.randint(1, 4)
        settle_after = self.rng.randint(2, max(loan.term_months - 1, 2))

        payments: list[Payment] = []
        paid = Decimal(0)

        for number in range(loan.term_months):
            due = add_months(loan.first_payment_date, number)
            if due > reference_date:
                break

            amount = loan.monthly_payment
            if profile == "defaulter" and number >= stop_after:
                break
            if profile == "partial" and self.rng.random() < 0.3:
                amount = to_cents(amount * Decimal(str(self.rng.uniform(0.3, 0.8))))
            if profile == "early_settler" and number == settle_after:
                amount = loan.total_repayment - paid

            paid_on = min(due + timedelta(days=self.rng.randint(0, 5)), reference_date)
            payments.append(
                Payment(
                    payment_id=self.fake.uuid4(),
                    loan_id=loan.loan_id,
                    amount=amount,
                    payment_date=paid_on,
                    client_id=loan.client_id,
                )
            )
            paid += amount
            if paid >= loan.total_repayment:
                break

        return payments
