"""Loan materializer: one durable loan per approved application."""

import logging
import uuid
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Callable

from microlend.config import PolicyConfig
from microlend.engine.money import to_cents
from microlend.exceptions import ComputationError, DuplicateLoanError
from microlend.models.lending import (
    Application,
    Loan,
    LoanStatus,
    MaterializationVariant,
)
from microlend.store.lending import LendingStore

logger = logging.getLogger(__name__)


def build_loan(
    application: Application,
    loan_id: str,
    now: datetime,
    variant: MaterializationVariant = MaterializationVariant.CONTRACT_TOTAL,
    policy_config: PolicyConfig | None = None,
) -> Loan:
    """Construct (without persisting) the loan for an application.

    Parameters
    ----------
    application : Application
        Application whose offer is already populated.
    loan_id : str
        Identifier for the new loan.
    now : datetime
        Materialization time; its date becomes the loan start date.
    variant : MaterializationVariant
        ``CONTRACT_TOTAL`` copies the offer and opens the balance at the
        total contractual repayment. ``PRINCIPAL_BALANCE`` uses a flat
        installment and opens the balance at principal.
    policy_config : PolicyConfig | None
        Supplies the admin fee and fallback first-payment offset.

    Returns
    -------
    Loan
        The loan record to insert.
    """
    policy_config = policy_config or PolicyConfig()
    offer = application.offer
    if offer is None:
        raise ComputationError(
            f"Application {application.application_id} has no offer; "
            "it must enter an approval state before a loan can be materialized"
        )
    if application.term_months < 1:
        raise ComputationError(
            f"Application {application.application_id} has invalid term {application.term_months}"
        )

    principal = offer.principal if offer.principal is not None else application.amount
    today = now.date()
    repayment_date = (
        application.repayment_start_date
        or offer.first_payment_date
        or today + timedelta(days=policy_config.first_payment_offset_days)
    )

    if variant == MaterializationVariant.CONTRACT_TOTAL:
        monthly_payment = offer.monthly_installment
        outstanding = offer.total_repayment
        total_repayment = offer.total_repayment
    else:
        term = Decimal(application.term_months)
        monthly_payment = to_cents(
            principal / term
            + principal * offer.annual_rate / Decimal(12)
            + policy_config.monthly_admin_fee
        )
        outstanding = principal
        total_repayment = monthly_payment * term

    return Loan(
        loan_id=loan_id,
        application_id=application.application_id,
        client_id=application.client_id,
        principal_amount=principal,
        interest_rate=offer.annual_rate,
        term_months=application.term_months,
        monthly_payment=monthly_payment,
        status=LoanStatus.ACTIVE,
        start_date=today,
        first_payment_date=repayment_date,
        next_payment_date=repayment_date,
        outstanding_balance=outstanding,
        total_repayment=total_repayment,
        created_at=now,
    )


class LoanMaterializer:
    """Convert approved applications into loans, at most once each."""

    def __init__(
        self,
        store: LendingStore,
        variant: MaterializationVariant = MaterializationVariant.CONTRACT_TOTAL,
        policy_config: PolicyConfig | None = None,
        clock: Callable[[], datetime] = datetime.now,
        id_factory: Callable[[], str] | None = None,
    ) -> None:
        self.store = store
        self.variant = variant
        self.policy_config = policy_config or PolicyConfig()
        self._clock = clock
        self._id_factory = id_factory or (lambda: str(uuid.uuid4()))

    def materialize(self, application: Application) -> Loan:
        """Return the application's loan, creating it on first call.

        An existing loan is returned unchanged. If a concurrent caller wins
        the insert, the store's uniqueness constraint raises
        ``DuplicateLoanError`` and the winner's loan is returned instead.
        """
        existing = self.store.get_loan_for_application(application.application_id)
        if existing is not None:
            logger.debug(
                "Loan %s already exists for application %s",
                existing.loan_id,
                application.application_id,
            )
            return existing

        loan = build_loan(
            application,
            loan_id=self._id_factory(),
            now=self._clock(),
            variant=self.variant,
            policy_config=self.policy_config,
        )

        try:
            self.store.insert_loan(loan)
        except DuplicateLoanError:
            winner = self.store.get_loan_for_application(application.application_id)
            if winner is None:
                raise
            logger.info(
                "Concurrent materialization for application %s; using loan %s",
                application.application_id,
                winner.loan_id,
            )
            return winner

        logger.info(
            "Materialized loan %s for application %s (balance=%s, variant=%s)",
            loan.loan_id,
            application.application_id,
            loan.outstanding_balance,
            self.variant.value,
        )
        return loan
