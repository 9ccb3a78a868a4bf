"""
Domain: Sale transactions held in escrow.

Contract excerpts relevant here:
- Parties and money (amount, platform fee, seller payout) are fixed at checkout.
- `buyer_confirmed_at` and `seller_confirmed_at` are append-only: each is set
  at most once, independently, by the respective party.
- `transfer_id` is set at most once, only for a completed transaction.
- Terminal statuses are completed, refunded and cancelled.

This module contains only pure domain entities/value objects: no I/O, no
database, no frameworks. All timestamps must be passed explicitly.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID

from .time import require_utc_timestamp


class SaleStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    BUYER_CONFIRMED = "buyer_confirmed"
    SELLER_CONFIRMED = "seller_confirmed"
    COMPLETED = "completed"
    DISPUTED = "disputed"
    REFUNDED = "refunded"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({SaleStatus.COMPLETED, SaleStatus.REFUNDED, SaleStatus.CANCELLED})


class PartyRole(str, Enum):
    BUYER = "buyer"
    SELLER = "seller"

    @property
    def counterparty(self) -> "PartyRole":
        return PartyRole.SELLER if self is PartyRole.BUYER else PartyRole.BUYER

    @property
    def confirmed_at_field(self) -> str:
        """Column holding this party's confirmation timestamp."""
        return f"{self.value}_confirmed_at"

    @property
    def confirmed_status(self) -> SaleStatus:
        return SaleStatus.BUYER_CONFIRMED if self is PartyRole.BUYER else SaleStatus.SELLER_CONFIRMED


class Resolution(str, Enum):
    REFUND_BUYER = "refund_buyer"
    RELEASE_TO_SELLER = "release_to_seller"


@dataclass(frozen=True, slots=True)
class SaleTransaction:
    """
    Immutable snapshot of one sale held in escrow.

    Snapshots are read from the store, never mutated in place; every state
    change goes through a guarded update and yields a fresh snapshot.
    """

    transaction_id: UUID
    buyer_id: UUID
    seller_id: UUID
    amount: Decimal
    platform_fee: Decimal
    seller_payout: Decimal
    status: SaleStatus
    currency: str = "usd"
    listing_id: Optional[UUID] = None
    payment_intent_id: Optional[str] = None
    fulfillment_type: Optional[str] = None  # pickup, delivery

    buyer_confirmed_at: Optional[datetime] = None
    seller_confirmed_at: Optional[datetime] = None

    # Payout tracking
    transfer_id: Optional[str] = None  # Stripe transfer ID
    payout_completed_at: Optional[datetime] = None
    refund_id: Optional[str] = None

    # Dispute tracking
    dispute_reason: Optional[str] = None
    disputed_by: Optional[PartyRole] = None
    disputed_at: Optional[datetime] = None
    resolution: Optional[Resolution] = None
    resolved_by: Optional[UUID] = None
    resolved_at: Optional[datetime] = None

    operational_note: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        for name in (
            "buyer_confirmed_at",
            "seller_confirmed_at",
            "payout_completed_at",
            "disputed_at",
            "resolved_at",
            "created_at",
            "updated_at",
        ):
            value = getattr(self, name)
            if value is not None:
                require_utc_timestamp(name, value)

        if min(self.amount, self.platform_fee, self.seller_payout) < 0:
            raise ValueError("amount, platform_fee and seller_payout must be non-negative")
        if self.seller_payout > self.amount:
            raise ValueError("seller_payout cannot exceed amount")

    def party_id(self, role: PartyRole) -> UUID:
        return self.buyer_id if role is PartyRole.BUYER else self.seller_id

    def role_of(self, user_id: UUID) -> Optional[PartyRole]:
        """Return the caller's role on this transaction, or None for outsiders."""

        if user_id == self.buyer_id:
            return PartyRole.BUYER
        if user_id == self.seller_id:
            return PartyRole.SELLER
        return None

    def confirmed_at(self, role: PartyRole) -> Optional[datetime]:
        return self.buyer_confirmed_at if role is PartyRole.BUYER else self.seller_confirmed_at

    def has_confirmed(self, role: PartyRole) -> bool:
        return self.confirmed_at(role) is not None

    @property
    def both_confirmed(self) -> bool:
        return self.buyer_confirmed_at is not None and self.seller_confirmed_at is not None

    @property
    def payout_pending(self) -> bool:
        """Completed, but the seller has not been paid yet."""
        return self.status is SaleStatus.COMPLETED and self.payout_completed_at is None


__all__ = [
    "SaleStatus",
    "TERMINAL_STATUSES",
    "PartyRole",
    "Resolution",
    "SaleTransaction",
]
