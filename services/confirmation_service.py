"""
Confirmation service for dual-confirmation of sales.

Process:
1. Load the transaction and validate the caller, role and status
2. Apply the confirmation as a guarded update (re-read and re-plan when a
   concurrent request changed the row first)
3. If the other party had already confirmed, the sale is completed and the
   payout runs synchronously in the same call
4. Hand back the events for notification fan-out; the caller dispatches
   them after responding
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, List, Optional
from uuid import UUID

from domain.errors import ConcurrentModification, TransactionNotFound
from domain.events import ActorRole, EscrowEvent, EscrowEventKind
from domain.payout import PayoutIntent, PayoutResult
from domain.sale import PartyRole, SaleStatus, SaleTransaction
from domain.time import utc_now
from domain.transitions import plan_confirmation
from repositories.sale_transaction_repository import SaleTransactionRepository
from services.outbox import EventOutbox, TransitionRecorder
from services.payout_service import PayoutService

logger = logging.getLogger(__name__)

MAX_TRANSITION_ATTEMPTS = 3


@dataclass(frozen=True, slots=True)
class ConfirmationResult:
    """
    Result of a confirmation.

    status: status after the confirmation was applied
    message: plain-language description of what happened and what is pending
    payout: payout attempt, present only when the sale completed
    """

    status: SaleStatus
    message: str
    transaction: SaleTransaction
    payout: Optional[PayoutResult] = None
    events: List[EscrowEvent] = field(default_factory=list)


def confirmation_message(role: PartyRole, status: SaleStatus, payout: Optional[PayoutResult]) -> str:
    if status is not SaleStatus.COMPLETED:
        return (
            f"{role.value.capitalize()} confirmation recorded. "
            f"Waiting for {role.counterparty.value} confirmation."
        )
    if payout is None or payout.outcome.money_moved:
        return "Sale completed! Funds have been released to the seller."
    return f"Sale completed. {payout.note}"


class ConfirmationService:
    def __init__(
        self,
        transactions: SaleTransactionRepository,
        payouts: PayoutService,
        recorder: TransitionRecorder,
        *,
        clock: Callable[[], datetime] = utc_now,
        max_attempts: int = MAX_TRANSITION_ATTEMPTS,
    ) -> None:
        self._transactions = transactions
        self._payouts = payouts
        self._recorder = recorder
        self._clock = clock
        self._max_attempts = max_attempts

    def confirm_sale(self, transaction_id: UUID, role: PartyRole, caller_id: UUID) -> ConfirmationResult:
        """
        Record a buyer or seller confirmation.

        Raises:
            TransactionNotFound: no transaction with this ID
            Unauthorized: caller is not the party implied by `role`
            AlreadyConfirmed: this role already confirmed
            InvalidState: status does not accept confirmations (e.g. disputed)
            ConcurrentModification: the guarded update kept losing to concurrent writers
        """

        outbox = EventOutbox()

        for attempt in range(1, self._max_attempts + 1):
            before = self._transactions.get_by_id(transaction_id)
            if before is None:
                raise TransactionNotFound("Transaction not found")

            update = plan_confirmation(before, role, caller_id, self._clock())
            after = self._transactions.apply(transaction_id, update)
            if after is not None:
                break

            logger.warning(
                "Confirmation lost a concurrent update, re-reading",
                extra={"transaction_id": str(transaction_id), "role": role.value, "attempt": attempt},
            )
        else:
            raise ConcurrentModification("Transaction was modified concurrently. Please try again.")

        self._recorder.record(
            outbox,
            EscrowEventKind.for_confirmation(role),
            after,
            from_status=before.status,
            actor_role=ActorRole.for_party(role),
            actor_id=caller_id,
        )

        payout: Optional[PayoutResult] = None
        if after.status is SaleStatus.COMPLETED:
            self._recorder.record(
                outbox,
                EscrowEventKind.TRANSACTION_COMPLETED,
                after,
                from_status=before.status,
                actor_role=ActorRole.for_party(role),
                actor_id=caller_id,
                detail="Both parties confirmed",
            )
            payout = self._payouts.initiate_payout(after, PayoutIntent.DUAL_CONFIRMATION, outbox)
            try:
                after = self._transactions.get_by_id(transaction_id) or after
            except RuntimeError as e:
                logger.warning(
                    "Could not re-read completed transaction",
                    extra={"transaction_id": str(transaction_id), "error": str(e)},
                )

        return ConfirmationResult(
            status=after.status,
            message=confirmation_message(role, after.status, payout),
            transaction=after,
            payout=payout,
            events=outbox.drain(),
        )


__all__ = ["ConfirmationResult", "ConfirmationService", "confirmation_message", "MAX_TRANSITION_ATTEMPTS"]
