"""
Resolution service: operator exit from `disputed`.

An operator resolves a dispute by refunding the buyer (-> refunded) or by
releasing the seller payout (-> completed). The decision is authoritative and
does not look at confirmation timestamps.

The money movement happens first. The status only changes once the
processor accepted it, so a failed refund or transfer leaves the
transaction `disputed` and the error reaches the operator. Both calls
use deterministic idempotency keys, so retrying a resolution can't refund
or pay twice.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, List, Optional
from uuid import UUID

from domain.errors import (
    ConcurrentModification,
    InvalidState,
    PayoutFailed,
    TransactionNotFound,
    Unauthorized,
)
from domain.events import ActorRole, EscrowEvent, EscrowEventKind
from domain.payout import PayoutIntent, refund_idempotency_key
from domain.sale import Resolution, SaleStatus, SaleTransaction
from domain.time import utc_now
from domain.transitions import plan_resolution, require_resolvable, resolution_note
from repositories.profile_repository import ProfileRepository
from repositories.sale_transaction_repository import SaleTransactionRepository
from services.outbox import EventOutbox, TransitionRecorder
from services.payout_service import PayoutService
from services.stripe_gateway import PaymentProcessorError

logger = logging.getLogger(__name__)

_RESOLUTION_MESSAGES = {
    Resolution.REFUND_BUYER: "Dispute resolved: Full refund issued to buyer",
    Resolution.RELEASE_TO_SELLER: "Dispute resolved: Payment released to seller",
}


@dataclass(frozen=True, slots=True)
class ResolutionResult:
    status: SaleStatus
    message: str
    transaction: SaleTransaction
    events: List[EscrowEvent] = field(default_factory=list)


class ResolutionService:
    def __init__(
        self,
        transactions: SaleTransactionRepository,
        profiles: ProfileRepository,
        gateway: Any,
        payouts: PayoutService,
        recorder: TransitionRecorder,
        *,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._transactions = transactions
        self._profiles = profiles
        self._gateway = gateway
        self._payouts = payouts
        self._recorder = recorder
        self._clock = clock

    def require_operator(self, operator_id: UUID) -> None:
        if not self._profiles.is_admin(operator_id):
            logger.warning("Non-admin attempted an operator action", extra={"user_id": str(operator_id)})
            raise Unauthorized("Admin access required")

    def _refund(self, transaction: SaleTransaction) -> str:
        if not transaction.payment_intent_id:
            raise InvalidState("No payment intent found for this transaction")
        try:
            return self._gateway.create_refund(
                payment_intent_id=transaction.payment_intent_id,
                idempotency_key=refund_idempotency_key(transaction.transaction_id),
                metadata={
                    "transaction_id": str(transaction.transaction_id),
                    "dispute_resolution": Resolution.REFUND_BUYER.value,
                },
            )
        except PaymentProcessorError as e:
            logger.warning(
                "Refund failed",
                extra={"transaction_id": str(transaction.transaction_id), "error": e.message},
            )
            raise PayoutFailed(f"Refund failed: {e.message}") from e

    def resolve_dispute(
        self,
        transaction_id: UUID,
        operator_id: UUID,
        resolution: Resolution,
        admin_notes: Optional[str] = None,
    ) -> ResolutionResult:
        """
        Resolve a disputed transaction.

        Raises:
            Unauthorized: operator lacks the admin capability
            TransactionNotFound: no transaction with this ID
            InvalidState: not disputed (already resolved/closed, or never disputed),
                no payment intent to refund, or the seller cannot be paid out yet
            PayoutFailed: the refund or transfer was rejected; status stays disputed
            ConcurrentModification: another resolution was recorded first
        """

        self.require_operator(operator_id)

        before = self._transactions.get_by_id(transaction_id)
        if before is None:
            raise TransactionNotFound("Transaction not found")
        require_resolvable(before)

        logger.info(
            "Resolving dispute",
            extra={
                "transaction_id": str(transaction_id),
                "resolution": resolution.value,
                "operator_id": str(operator_id),
            },
        )

        if resolution is Resolution.REFUND_BUYER:
            refund_id = self._refund(before)
            update = plan_resolution(
                before, resolution, operator_id, self._clock(), admin_notes, refund_id=refund_id
            )
        else:
            transfer_id = self._payouts.release_funds(before, PayoutIntent.DISPUTE_RELEASE)
            update = plan_resolution(
                before, resolution, operator_id, self._clock(), admin_notes, transfer_id=transfer_id
            )

        after = self._transactions.apply(transaction_id, update)
        if after is None:
            logger.error(
                "Processor call succeeded but the resolution was not recorded",
                extra={"transaction_id": str(transaction_id), "resolution": resolution.value},
            )
            raise ConcurrentModification(
                "Transaction changed while the dispute was being resolved. "
                "Reload it before trying again."
            )

        outbox = EventOutbox()
        self._recorder.record(
            outbox,
            EscrowEventKind.DISPUTE_RESOLVED,
            after,
            from_status=before.status,
            actor_role=ActorRole.ADMIN,
            actor_id=operator_id,
            detail=resolution_note(resolution, admin_notes),
        )

        return ResolutionResult(
            status=after.status,
            message=_RESOLUTION_MESSAGES[resolution],
            transaction=after,
            events=outbox.drain(),
        )

    def list_open_disputes(self, operator_id: UUID) -> List[SaleTransaction]:
        self.require_operator(operator_id)
        return self._transactions.list_disputed()


__all__ = ["ResolutionResult", "ResolutionService"]
