"""
Dispute service: party-initiated escrow freeze.

A dispute moves an open escrow (paid, buyer_confirmed, seller_confirmed)
into `disputed`. While disputed, confirmations and further disputes are
rejected until an operator resolves it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, List
from uuid import UUID

from domain.errors import ConcurrentModification, TransactionNotFound
from domain.events import ActorRole, EscrowEvent, EscrowEventKind
from domain.sale import SaleTransaction
from domain.time import utc_now
from domain.transitions import plan_dispute, validate_dispute_reason
from repositories.sale_transaction_repository import SaleTransactionRepository
from services.confirmation_service import MAX_TRANSITION_ATTEMPTS
from services.outbox import EventOutbox, TransitionRecorder

logger = logging.getLogger(__name__)

DISPUTE_SUBMITTED_MESSAGE = "Dispute submitted successfully. Our team will review it shortly."


@dataclass(frozen=True, slots=True)
class DisputeResult:
    message: str
    transaction: SaleTransaction
    events: List[EscrowEvent] = field(default_factory=list)


class DisputeService:
    def __init__(
        self,
        transactions: SaleTransactionRepository,
        recorder: TransitionRecorder,
        *,
        clock: Callable[[], datetime] = utc_now,
        max_attempts: int = MAX_TRANSITION_ATTEMPTS,
    ) -> None:
        self._transactions = transactions
        self._recorder = recorder
        self._clock = clock
        self._max_attempts = max_attempts

    def raise_dispute(self, transaction_id: UUID, caller_id: UUID, reason: str) -> DisputeResult:
        """
        Freeze a transaction pending operator review.

        The reason is validated before the transaction is read, so a
        too-short reason never touches the store.

        Raises:
            ValidationError: reason shorter than the minimum length
            TransactionNotFound: no transaction with this ID
            Unauthorized: caller is neither buyer nor seller
            DisputeAlreadyOpen: the transaction is already disputed
            InvalidState: status does not accept disputes
        """

        text = validate_dispute_reason(reason)
        outbox = EventOutbox()

        for attempt in range(1, self._max_attempts + 1):
            before = self._transactions.get_by_id(transaction_id)
            if before is None:
                raise TransactionNotFound("Transaction not found")

            update = plan_dispute(before, caller_id, text, self._clock())
            after = self._transactions.apply(transaction_id, update)
            if after is not None:
                break

            logger.warning(
                "Dispute lost a concurrent update, re-reading",
                extra={"transaction_id": str(transaction_id), "attempt": attempt},
            )
        else:
            raise ConcurrentModification("Transaction was modified concurrently. Please try again.")

        role = after.disputed_by or before.role_of(caller_id)
        self._recorder.record(
            outbox,
            EscrowEventKind.DISPUTE_RAISED,
            after,
            from_status=before.status,
            actor_role=ActorRole.for_party(role),
            actor_id=caller_id,
            detail=after.dispute_reason,
        )

        return DisputeResult(message=DISPUTE_SUBMITTED_MESSAGE, transaction=after, events=outbox.drain())


__all__ = ["DisputeResult", "DisputeService", "DISPUTE_SUBMITTED_MESSAGE"]
