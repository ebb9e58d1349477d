"""Lending data store with referential integrity."""

import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import ContextManager, Iterator, Protocol

from microlend.exceptions import (
    ComputationError,
    DuplicateLoanError,
    NotFoundError,
    ReferentialIntegrityError,
)
from microlend.models.lending import (
    Application,
    ApplicationStatus,
    Client,
    Loan,
    Payment,
)


class LendingStore(Protocol):
    """Read/write surface the back-office service needs from a data store."""

    def get_application(self, application_id: str) -> Application: ...

    def list_applications(self, status: ApplicationStatus | None = None) -> list[Application]: ...

    def save_application(self, application: Application) -> None: ...

    def get_client(self, client_id: str) -> Client: ...

    def list_clients(self) -> list[Client]: ...

    def count_client_loans(self, client_id: str) -> int: ...

    def get_loan_for_application(self, application_id: str) -> Loan | None: ...

    def insert_loan(self, loan: Loan) -> Loan: ...

    def list_loans(self) -> list[Loan]: ...

    def list_payments(self) -> list[Payment]: ...

    def transaction(self) -> ContextManager["LendingStore"]: ...


@dataclass
class LendingDataStore:
    """In-memory store for lending entities with relationship tracking.

    The application-to-loan index is unique: ``insert_loan`` raises
    ``DuplicateLoanError`` for a second loan on the same application, and
    the check and insert happen under one lock.
    """

    # Primary entities
    clients: dict[str, Client] = field(default_factory=dict)
    applications: dict[str, Application] = field(default_factory=dict)
    loans: dict[str, Loan] = field(default_factory=dict)

    # Append-only
    payments: list[Payment] = field(default_factory=list)

    # Relationship indexes
    _client_loans: dict[str, list[str]] = field(default_factory=dict)
    _application_loan: dict[str, str] = field(default_factory=dict)
    _loan_payments: dict[str, list[int]] = field(default_factory=dict)

    _lock: threading.RLock = field(default_factory=threading.RLock, repr=False, compare=False)

    def add_client(self, client: Client) -> None:
        """Add a client to the store."""
        with self._lock:
            self.clients[client.client_id] = client
            self._client_loans.setdefault(client.client_id, [])

    def add_application(self, application: Application) -> None:
        """Add a new application to the store."""
        if application.client_id not in self.clients:
            raise ReferentialIntegrityError(f"Client {application.client_id} not found")

        with self._lock:
            self.applications[application.application_id] = application

    def save_application(self, application: Application) -> None:
        """Replace a stored application with its updated version."""
        with self._lock:
            if application.application_id not in self.applications:
                raise NotFoundError(f"Application {application.application_id} not found")
            self.applications[application.application_id] = application

    def insert_loan(self, loan: Loan) -> Loan:
        """Insert a loan, enforcing one loan per application."""
        if loan.client_id not in self.clients:
            raise ReferentialIntegrityError(f"Client {loan.client_id} not found")

        if loan.application_id not in self.applications:
            raise ReferentialIntegrityError(f"Application {loan.application_id} not found")

        with self._lock:
            if loan.application_id in self._application_loan:
                raise DuplicateLoanError(
                    f"Application {loan.application_id} already has loan "
                    f"{self._application_loan[loan.application_id]}"
                )
            self.loans[loan.loan_id] = loan
            self._application_loan[loan.application_id] = loan.loan_id
            self._client_loans.setdefault(loan.client_id, []).append(loan.loan_id)
            self._loan_payments[loan.loan_id] = []
        return loan

    def add_payment(self, payment: Payment) -> None:
        """Append a payment to the store."""
        if payment.loan_id not in self.loans:
            raise ReferentialIntegrityError(f"Loan {payment.loan_id} not found")

        if payment.amount < 0:
            raise ComputationError(f"Payment {payment.payment_id} has negative amount {payment.amount}")

        with self._lock:
            idx = len(self.payments)
            self.payments.append(payment)
            self._loan_payments[payment.loan_id].append(idx)

    @contextmanager
    def transaction(self) -> Iterator["LendingDataStore"]:
        """Apply every write inside the block, or none of them."""
        with self._lock:
            snapshot = (
                dict(self.clients),
                dict(self.applications),
                dict(self.loans),
                list(self.payments),
                {k: list(v) for k, v in self._client_loans.items()},
                dict(self._application_loan),
                {k: list(v) for k, v in self._loan_payments.items()},
            )
            try:
                yield self
            except BaseException:
                (
                    self.clients,
                    self.applications,
                    self.loans,
                    self.payments,
                    self._client_loans,
                    self._application_loan,
                    self._loan_payments,
                ) = snapshot
                raise

    # Query methods
    def get_application(self, application_id: str) -> Application:
        """Get an application by id."""
        try:
            return self.applications[application_id]
        except KeyError:
            raise NotFoundError(f"Application {application_id} not found") from None

    def list_applications(self, status: ApplicationStatus | None = None) -> list[Application]:
        """Get applications, optionally filtered by status, oldest first."""
        apps = [a for a in self.applications.values() if status is None or a.status == status]
        return sorted(apps, key=lambda a: (a.created_at, a.application_id))

    def get_client(self, client_id: str) -> Client:
        """Get a client by id."""
        try:
            return self.clients[client_id]
        except KeyError:
            raise NotFoundError(f"Client {client_id} not found") from None

    def list_clients(self) -> list[Client]:
        """Get all clients."""
        return sorted(self.clients.values(), key=lambda c: c.client_id)

    def count_client_loans(self, client_id: str) -> int:
        """Count the loans already materialized for a client."""
        return len(self._client_loans.get(client_id, []))

    def get_client_loans(self, client_id: str) -> list[Loan]:
        """Get all loans for a client."""
        loan_ids = self._client_loans.get(client_id, [])
        return [self.loans[lid] for lid in loan_ids]

    def get_loan_for_application(self, application_id: str) -> Loan | None:
        """Get the loan materialized from an application, if any."""
        loan_id = self._application_loan.get(application_id)
        return self.loans[loan_id] if loan_id else None

    def list_loans(self) -> list[Loan]:
        """Get all loans, oldest first."""
        return sorted(self.loans.values(), key=lambda l: (l.created_at, l.loan_id))

    def get_loan_payments(self, loan_id: str) -> list[Payment]:
        """Get all payments for a loan."""
        indices = self._loan_payments.get(loan_id, [])
        return [self.payments[i] for i in indices]

    def list_payments(self) -> list[Payment]:
        """Get all payments in ascending date order."""
        return sorted(self.payments, key=lambda p: (p.payment_date, p.payment_id))

    def summary(self) -> dict[str, int]:
        """Return summary counts of all entities."""
        return {
            "clients": len(self.clients),
            "applications": len(self.applications),
            "loans": len(self.loans),
            "payments": len(self.payments),
        }
