"""Application status state machine."""

import logging
from dataclasses import replace
from datetime import datetime
from typing import Callable

from microlend.config import PolicyConfig
from microlend.engine.materializer import LoanMaterializer
from microlend.engine.offer import calculate_offer
from microlend.engine.policy import resolve_policy
from microlend.exceptions import InvalidTransitionError
from microlend.models.lending import Application, ApplicationStatus, Loan
from microlend.store.lending import LendingStore

logger = logging.getLogger(__name__)

S = ApplicationStatus

ALLOWED_TRANSITIONS: dict[ApplicationStatus, frozenset[ApplicationStatus]] = {
    S.SUBMITTED: frozenset({S.OFFERED, S.OFFER_ACCEPTED, S.READY_TO_DISBURSE, S.DECLINED}),
    S.OFFERED: frozenset({S.OFFER_ACCEPTED, S.READY_TO_DISBURSE, S.DISBURSED, S.DECLINED}),
    S.OFFER_ACCEPTED: frozenset({S.OFFER_ACCEPTED, S.READY_TO_DISBURSE, S.DISBURSED, S.DECLINED}),
    S.READY_TO_DISBURSE: frozenset({S.READY_TO_DISBURSE, S.OFFER_ACCEPTED, S.DISBURSED, S.DECLINED}),
    S.DISBURSED: frozenset({S.ACTIVE}),
    S.ACTIVE: frozenset(),
    S.DECLINED: frozenset(),
}

# Entering these recomputes and overwrites the offer
OFFER_STATES = frozenset({S.READY_TO_DISBURSE, S.OFFER_ACCEPTED, S.DISBURSED})

# Entering these materializes the loan
MATERIALIZE_STATES = frozenset({S.DISBURSED, S.ACTIVE})

TERMINAL_STATES = frozenset(s for s, targets in ALLOWED_TRANSITIONS.items() if not targets)


def check_transition(current: ApplicationStatus, new: ApplicationStatus) -> None:
    """Raise ``InvalidTransitionError`` unless ``current -> new`` is allowed."""
    if new not in ALLOWED_TRANSITIONS[current]:
        raise InvalidTransitionError(f"Cannot move application from {current.value} to {new.value}")


class ApplicationWorkflow:
    """Apply status transitions and their economic side effects.

    A transition runs inside one store transaction: the offer update, the
    status change and any loan insert are persisted together or not at all.
    """

    def __init__(
        self,
        store: LendingStore,
        materializer: LoanMaterializer,
        policy_config: PolicyConfig | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.store = store
        self.materializer = materializer
        self.policy_config = policy_config or PolicyConfig()
        self._clock = clock

    def transition(
        self,
        application_id: str,
        new_status: ApplicationStatus | str,
    ) -> tuple[Application, Loan | None]:
        """Move an application to ``new_status``.

        Returns
        -------
        tuple[Application, Loan | None]
            The updated application and, for disbursement states, its loan.
        """
        try:
            new_status = ApplicationStatus(new_status)
        except ValueError:
            raise InvalidTransitionError(f"Unknown application status {new_status!r}") from None

        with self.store.transaction():
            application = self.store.get_application(application_id)
            check_transition(application.status, new_status)

            now = self._clock()
            updated = replace(application, status=new_status, updated_at=now)

            if new_status in OFFER_STATES:
                prior_loans = self.store.count_client_loans(application.client_id)
                policy = resolve_policy(
                    application.amount,
                    application.term_months,
                    prior_loans,
                    self.policy_config,
                )
                scheduled = application.repayment_start_date or (
                    application.offer.first_payment_date if application.offer else None
                )
                offer = calculate_offer(
                    application.amount,
                    application.term_months,
                    policy,
                    scheduled_date=scheduled,
                    today=now.date(),
                    first_payment_offset_days=self.policy_config.first_payment_offset_days,
                )
                updated = replace(
                    updated,
                    offer=offer,
                    repayment_start_date=offer.first_payment_date,
                )
                logger.debug(
                    "Offer for application %s: rate=%s total=%s installment=%s (prior loans=%d)",
                    application_id,
                    offer.annual_rate,
                    offer.total_repayment,
                    offer.monthly_installment,
                    prior_loans,
                )

            self.store.save_application(updated)

            loan = None
            if new_status in MATERIALIZE_STATES:
                loan = self.materializer.materialize(updated)

        logger.info(
            "Application %s: %s -> %s",
            application_id,
            application.status.value,
            new_status.value,
        )
        return updated, loan
