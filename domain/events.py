"""
Domain: escrow events.

The state machine emits events instead of talking to notification channels
directly. Events are handed to the dispatcher only after the transition that
produced them has been committed.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID

from .sale import PartyRole, SaleStatus, SaleTransaction
from .time import require_utc_timestamp


class EscrowEventKind(str, Enum):
    BUYER_CONFIRMED = "buyer_confirmed"
    SELLER_CONFIRMED = "seller_confirmed"
    TRANSACTION_COMPLETED = "transaction_completed"
    PAYOUT_COMPLETED = "payout_completed"
    PAYOUT_DEFERRED = "payout_deferred"
    PAYOUT_FAILED = "payout_failed"
    DISPUTE_RAISED = "dispute_raised"
    DISPUTE_RESOLVED = "dispute_resolved"

    @staticmethod
    def for_confirmation(role: PartyRole) -> "EscrowEventKind":
        if role is PartyRole.BUYER:
            return EscrowEventKind.BUYER_CONFIRMED
        return EscrowEventKind.SELLER_CONFIRMED


class ActorRole(str, Enum):
    BUYER = "buyer"
    SELLER = "seller"
    ADMIN = "admin"
    SYSTEM = "system"

    @staticmethod
    def for_party(role: PartyRole) -> "ActorRole":
        return ActorRole(role.value)


@dataclass(frozen=True, slots=True)
class EscrowEvent:
    """A committed state change, carrying the post-transition snapshot."""

    kind: EscrowEventKind
    transaction: SaleTransaction
    actor_role: ActorRole
    actor_id: Optional[UUID] = None
    detail: Optional[str] = None


@dataclass(frozen=True, slots=True)
class TransitionRecord:
    """
    Append-only audit entry for one transition.

    Replaces the practice of overwriting a single free-text note with every
    status change.
    """

    transaction_id: UUID
    event: EscrowEventKind
    from_status: Optional[SaleStatus]
    to_status: SaleStatus
    actor_role: ActorRole
    created_at: datetime
    actor_id: Optional[UUID] = None
    detail: Optional[str] = None
    record_id: Optional[UUID] = None

    def __post_init__(self) -> None:
        require_utc_timestamp("created_at", self.created_at)


__all__ = ["EscrowEventKind", "ActorRole", "EscrowEvent", "TransitionRecord"]
