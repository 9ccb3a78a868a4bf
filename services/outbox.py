"""
Event outbox and transition recorder shared by the escrow services.

Services never call notification channels themselves. They emit domain
events into an `EventOutbox` while handling a request and hand the drained
events back to the caller, which dispatches them once the request's state
changes are committed.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Iterator, List, Optional
from uuid import UUID

from domain.events import ActorRole, EscrowEvent, EscrowEventKind, TransitionRecord
from domain.sale import SaleStatus, SaleTransaction
from domain.time import utc_now
from repositories.transition_log_repository import TransitionLogRepository

logger = logging.getLogger(__name__)


class EventOutbox:
    """Ordered, in-memory buffer of events produced by one request."""

    def __init__(self) -> None:
        self._events: List[EscrowEvent] = []

    def emit(self, event: EscrowEvent) -> None:
        self._events.append(event)

    def drain(self) -> List[EscrowEvent]:
        events, self._events = self._events, []
        return events

    def __iter__(self) -> Iterator[EscrowEvent]:
        return iter(self._events)

    def __len__(self) -> int:
        return len(self._events)


class TransitionRecorder:
    """
    Writes audit entries and emits the matching domain event.

    The audit insert runs after the state change is committed; a failure
    there is logged and does not undo or fail the transition.
    """

    def __init__(
        self,
        log_repository: TransitionLogRepository,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._log = log_repository
        self._clock = clock

    def record(
        self,
        outbox: EventOutbox,
        kind: EscrowEventKind,
        transaction: SaleTransaction,
        *,
        from_status: Optional[SaleStatus],
        actor_role: ActorRole,
        actor_id: Optional[UUID] = None,
        detail: Optional[str] = None,
    ) -> EscrowEvent:
        record = TransitionRecord(
            transaction_id=transaction.transaction_id,
            event=kind,
            from_status=from_status,
            to_status=transaction.status,
            actor_role=actor_role,
            actor_id=actor_id,
            detail=detail,
            created_at=self._clock(),
        )
        try:
            self._log.append(record)
        except Exception:
            logger.exception(
                "Failed to append transition record",
                extra={"transaction_id": str(transaction.transaction_id), "event": kind.value},
            )

        logger.info(
            "Escrow transition",
            extra={
                "transaction_id": str(transaction.transaction_id),
                "event": kind.value,
                "from_status": from_status.value if from_status else None,
                "to_status": transaction.status.value,
                "actor_role": actor_role.value,
            },
        )

        event = EscrowEvent(
            kind=kind,
            transaction=transaction,
            actor_role=actor_role,
            actor_id=actor_id,
            detail=detail,
        )
        outbox.emit(event)
        return event


__all__ = ["EventOutbox", "TransitionRecorder"]
