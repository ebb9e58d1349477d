"""PostgreSQL-backed lending store."""

import logging
from contextlib import contextmanager
from dataclasses import fields
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Iterator

from microlend.exceptions import DataSourceError, DuplicateLoanError, NotFoundError
from microlend.models.lending import (
    Application,
    ApplicationStatus,
    Client,
    Loan,
    LoanStatus,
    Offer,
    Payment,
)

logger = logging.getLogger(__name__)

OFFER_COLUMNS = [
    "offer_principal",
    "offer_interest_rate",
    "offer_total_interest",
    "offer_total_initiation_fees",
    "offer_total_admin_fees",
    "offer_total_repayment",
    "offer_monthly_repayment",
    "offer_first_payment_date",
]

DDL = """
CREATE TABLE IF NOT EXISTS clients (
    client_id VARCHAR(64) PRIMARY KEY,
    full_name VARCHAR(200) NOT NULL,
    created_at TIMESTAMP NOT NULL
);

CREATE TABLE IF NOT EXISTS loan_applications (
    application_id VARCHAR(64) PRIMARY KEY,
    client_id VARCHAR(64) NOT NULL REFERENCES clients(client_id),
    amount NUMERIC(15, 2) NOT NULL,
    term_months INTEGER NOT NULL,
    status VARCHAR(32) NOT NULL,
    created_at TIMESTAMP NOT NULL,
    repayment_start_date DATE,
    notes TEXT NOT NULL DEFAULT '',
    offer_principal NUMERIC(15, 2),
    offer_interest_rate NUMERIC(5, 4),
    offer_total_interest NUMERIC(15, 2),
    offer_total_initiation_fees NUMERIC(15, 2),
    offer_total_admin_fees NUMERIC(15, 2),
    offer_total_repayment NUMERIC(15, 2),
    offer_monthly_repayment NUMERIC(15, 2),
    offer_first_payment_date DATE,
    updated_at TIMESTAMP
);

CREATE TABLE IF NOT EXISTS loans (
    loan_id VARCHAR(64) PRIMARY KEY,
    application_id VARCHAR(64) NOT NULL UNIQUE REFERENCES loan_applications(application_id),
    client_id VARCHAR(64) NOT NULL REFERENCES clients(client_id),
    principal_amount NUMERIC(15, 2) NOT NULL,
    interest_rate NUMERIC(7, 4) NOT NULL,
    term_months INTEGER NOT NULL,
    monthly_payment NUMERIC(15, 2) NOT NULL,
    status VARCHAR(32) NOT NULL,
    start_date DATE NOT NULL,
    first_payment_date DATE NOT NULL,
    next_payment_date DATE NOT NULL,
    outstanding_balance NUMERIC(15, 2) NOT NULL,
    total_repayment NUMERIC(15, 2) NOT NULL,
    created_at TIMESTAMP NOT NULL
);

CREATE TABLE IF NOT EXISTS payments (
    payment_id VARCHAR(64) PRIMARY KEY,
    loan_id VARCHAR(64) NOT NULL REFERENCES loans(loan_id),
    amount NUMERIC(15, 2) NOT NULL CHECK (amount >= 0),
    payment_date DATE NOT NULL,
    client_id VARCHAR(64)
);

CREATE INDEX IF NOT EXISTS idx_loans_client ON loans(client_id);
CREATE INDEX IF NOT EXISTS idx_payments_loan_date ON payments(loan_id, payment_date);
"""


class PostgresLendingStore:
    """Lending store over PostgreSQL (psycopg 3).

    The connection runs in autocommit mode; ``transaction()`` groups writes
    into a single database transaction. One loan per application is
    enforced by the ``UNIQUE`` constraint on ``loans.application_id``.
    """

    TABLE_COLUMNS = {
        "clients": ["client_id", "full_name", "created_at"],
        "loan_applications": [
            "application_id",
            "client_id",
            "amount",
            "term_months",
            "status",
            "created_at",
            "repayment_start_date",
            "notes",
            *OFFER_COLUMNS,
            "updated_at",
        ],
        "loans": [f.name for f in fields(Loan)],
        "payments": [f.name for f in fields(Payment)],
    }

    def __init__(self, connection_string: str) -> None:
        """Initialize PostgreSQL store.

        Parameters
        ----------
        connection_string : str
            PostgreSQL connection string.
        """
        try:
            import psycopg
        except ImportError:
            raise ImportError(
                "psycopg is required for PostgresLendingStore. "
                "Install with: pip install 'psycopg[binary]'"
            )

        self._psycopg = psycopg
        try:
            self.conn = psycopg.connect(connection_string, autocommit=True)
        except psycopg.Error as exc:
            raise DataSourceError(str(exc)) from exc

    def create_tables(self) -> None:
        """Create tables if they don't exist."""
        with self.conn.cursor() as cur:
            cur.execute(DDL)
        logger.info("Lending tables created")

    def close(self) -> None:
        """Close the connection."""
        self.conn.close()

    @contextmanager
    def transaction(self) -> Iterator["PostgresLendingStore"]:
        """Group every statement in the block into one transaction."""
        with self.conn.transaction():
            yield self

    # Writes
    def add_client(self, client: Client) -> None:
        self._insert("clients", client, conflict="client_id")

    def add_application(self, application: Application) -> None:
        columns = self.TABLE_COLUMNS["loan_applications"]
        sql = (
            f"INSERT INTO loan_applications ({', '.join(columns)}) "
            f"VALUES ({', '.join(['%s'] * len(columns))})"
        )
        self._execute(sql, self._application_row(application))

    def save_application(self, application: Application) -> None:
        columns = self.TABLE_COLUMNS["loan_applications"]
        assignments = ", ".join(f"{c} = EXCLUDED.{c}" for c in columns[1:])
        sql = (
            f"INSERT INTO loan_applications ({', '.join(columns)}) "
            f"VALUES ({', '.join(['%s'] * len(columns))}) "
            f"ON CONFLICT (application_id) DO UPDATE SET {assignments}"
        )
        self._execute(sql, self._application_row(application))

    def insert_loan(self, loan: Loan) -> Loan:
        columns = self.TABLE_COLUMNS["loans"]
        sql = (
            f"INSERT INTO loans ({', '.join(columns)}) "
            f"VALUES ({', '.join(['%s'] * len(columns))}) "
            "ON CONFLICT (application_id) DO NOTHING RETURNING loan_id"
        )
        row = self._fetchone(sql, self._extract_row(loan, columns))
        if row is None:
            raise DuplicateLoanError(f"Application {loan.application_id} already has a loan")
        return loan

    def add_payment(self, payment: Payment) -> None:
        self._insert("payments", payment)

    # Reads
    def get_application(self, application_id: str) -> Application:
        columns = self.TABLE_COLUMNS["loan_applications"]
        row = self._fetchone(
            f"SELECT {', '.join(columns)} FROM loan_applications WHERE application_id = %s",
            (application_id,),
        )
        if row is None:
            raise NotFoundError(f"Application {application_id} not found")
        return self._application_from_row(dict(zip(columns, row)))

    def list_applications(self, status: ApplicationStatus | None = None) -> list[Application]:
        columns = self.TABLE_COLUMNS["loan_applications"]
        sql = f"SELECT {', '.join(columns)} FROM loan_applications"
        params: tuple = ()
        if status is not None:
            sql += " WHERE status = %s"
            params = (status.value,)
        sql += " ORDER BY created_at, application_id"
        return [self._application_from_row(dict(zip(columns, r))) for r in self._fetchall(sql, params)]

    def get_client(self, client_id: str) -> Client:
        columns = self.TABLE_COLUMNS["clients"]
        row = self._fetchone(
            f"SELECT {', '.join(columns)} FROM clients WHERE client_id = %s", (client_id,)
        )
        if row is None:
            raise NotFoundError(f"Client {client_id} not found")
        return Client(**dict(zip(columns, row)))

    def list_clients(self) -> list[Client]:
        columns = self.TABLE_COLUMNS["clients"]
        rows = self._fetchall(f"SELECT {', '.join(columns)} FROM clients ORDER BY client_id")
        return [Client(**dict(zip(columns, r))) for r in rows]

    def count_client_loans(self, client_id: str) -> int:
        row = self._fetchone("SELECT COUNT(*) FROM loans WHERE client_id = %s", (client_id,))
        return int(row[0]) if row else 0

    def get_loan_for_application(self, application_id: str) -> Loan | None:
        columns = self.TABLE_COLUMNS["loans"]
        row = self._fetchone(
            f"SELECT {', '.join(columns)} FROM loans WHERE application_id = %s", (application_id,)
        )
        return self._loan_from_row(dict(zip(columns, row))) if row else None

    def list_loans(self) -> list[Loan]:
        columns = self.TABLE_COLUMNS["loans"]
        rows = self._fetchall(f"SELECT {', '.join(columns)} FROM loans ORDER BY created_at, loan_id")
        return [self._loan_from_row(dict(zip(columns, r))) for r in rows]

    def list_payments(self) -> list[Payment]:
        columns = self.TABLE_COLUMNS["payments"]
        rows = self._fetchall(
            f"SELECT {', '.join(columns)} FROM payments ORDER BY payment_date, payment_id"
        )
        return [Payment(**dict(zip(columns, r))) for r in rows]

    # Helpers
    def _insert(self, table: str, record: Any, conflict: str | None = None) -> None:
        columns = self.TABLE_COLUMNS[table]
        sql = (
            f"INSERT INTO {table} ({', '.join(columns)}) "
            f"VALUES ({', '.join(['%s'] * len(columns))})"
        )
        if conflict:
            sql += f" ON CONFLICT ({conflict}) DO NOTHING"
        self._execute(sql, self._extract_row(record, columns))

    def _execute(self, sql: str, params: tuple = ()) -> None:
        try:
            with self.conn.cursor() as cur:
                cur.execute(sql, params)
        except self._psycopg.Error as exc:
            raise DataSourceError(str(exc)) from exc

    def _fetchone(self, sql: str, params: tuple = ()) -> tuple | None:
        try:
            with self.conn.cursor() as cur:
                cur.execute(sql, params)
                return cur.fetchone()
        except self._psycopg.Error as exc:
            raise DataSourceError(str(exc)) from exc

    def _fetchall(self, sql: str, params: tuple = ()) -> list[tuple]:
        try:
            with self.conn.cursor() as cur:
                cur.execute(sql, params)
                return cur.fetchall()
        except self._psycopg.Error as exc:
            raise DataSourceError(str(exc)) from exc

    def _extract_row(self, record: Any, columns: list[str]) -> tuple:
        """Extract column values from a dataclass or dict in column order."""
        if isinstance(record, dict):
            data = record
        elif hasattr(record, "__dataclass_fields__"):
            data = {c: getattr(record, c, None) for c in columns}
        else:
            raise ValueError(f"Unsupported record type: {type(record)}")

        row = []
        for col in columns:
            value = data.get(col)
            if isinstance(value, Enum):
                value = value.value
            row.append(value)
        return tuple(row)

    def _application_row(self, application: Application) -> tuple:
        offer = application.offer
        data = {
            "application_id": application.application_id,
            "client_id": application.client_id,
            "amount": application.amount,
            "term_months": application.term_months,
            "status": application.status,
            "created_at": application.created_at,
            "repayment_start_date": application.repayment_start_date,
            "notes": application.notes,
            "offer_principal": offer.principal if offer else None,
            "offer_interest_rate": offer.annual_rate if offer else None,
            "offer_total_interest": offer.total_interest if offer else None,
            "offer_total_initiation_fees": offer.total_initiation_fee if offer else None,
            "offer_total_admin_fees": offer.total_admin_fees if offer else None,
            "offer_total_repayment": offer.total_repayment if offer else None,
            "offer_monthly_repayment": offer.monthly_installment if offer else None,
            "offer_first_payment_date": offer.first_payment_date if offer else None,
            "updated_at": application.updated_at,
        }
        return self._extract_row(data, self.TABLE_COLUMNS["loan_applications"])

    def _application_from_row(self, row: dict[str, Any]) -> Application:
        offer = None
        if row.get("offer_total_repayment") is not None:
            offer = Offer(
                principal=Decimal(
                    row["offer_principal"] if row["offer_principal"] is not None else row["amount"]
                ),
                annual_rate=Decimal(row["offer_interest_rate"]),
                total_interest=Decimal(row["offer_total_interest"]),
                total_initiation_fee=Decimal(row["offer_total_initiation_fees"]),
                total_admin_fees=Decimal(row["offer_total_admin_fees"]),
                total_repayment=Decimal(row["offer_total_repayment"]),
                monthly_installment=Decimal(row["offer_monthly_repayment"]),
                first_payment_date=_as_date(row["offer_first_payment_date"]),
            )
        return Application(
            application_id=row["application_id"],
            client_id=row["client_id"],
            amount=Decimal(row["amount"]),
            term_months=int(row["term_months"]),
            status=ApplicationStatus(row["status"]),
            created_at=row["created_at"],
            repayment_start_date=_as_date(row["repayment_start_date"]),
            notes=row.get("notes") or "",
            offer=offer,
            updated_at=row.get("updated_at"),
        )

    def _loan_from_row(self, row: dict[str, Any]) -> Loan:
        row["status"] = LoanStatus(row["status"])
        return Loan(**row)


def _as_date(value: Any) -> date | None:
    if isinstance(value, datetime):
        return value.date()
    return value
