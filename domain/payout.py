"""
Domain: seller payouts.

A payout moves the seller's net proceeds (gross amount minus platform fee)
from the platform account to the seller's connected account. Payout outcomes
are values, not exceptions: a sale can be logically complete while the money
is still outstanding.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Optional
from uuid import UUID

_CENT = Decimal("0.01")


class PayoutIntent(str, Enum):
    """Why a transfer is being requested; recorded in processor metadata."""

    DUAL_CONFIRMATION = "dual_confirmation"
    DISPUTE_RELEASE = "dispute_release"
    RETRY = "retry"


class PayoutOutcome(str, Enum):
    TRANSFERRED = "transferred"
    ALREADY_PAID = "already_paid"
    DEFERRED_NO_ACCOUNT = "deferred_no_account"
    DEFERRED_INSUFFICIENT_BALANCE = "deferred_insufficient_balance"
    FAILED = "failed"

    @property
    def is_deferred(self) -> bool:
        return self in (PayoutOutcome.DEFERRED_NO_ACCOUNT, PayoutOutcome.DEFERRED_INSUFFICIENT_BALANCE)

    @property
    def money_moved(self) -> bool:
        return self in (PayoutOutcome.TRANSFERRED, PayoutOutcome.ALREADY_PAID)


@dataclass(frozen=True, slots=True)
class PayoutResult:
    """Outcome of one payout attempt for a transaction."""

    transaction_id: UUID
    outcome: PayoutOutcome
    amount_cents: int
    note: Optional[str] = None  # Human-readable status stored on the transaction
    transfer_id: Optional[str] = None
    completed_at: Optional[datetime] = None


def to_cents(amount: Decimal) -> int:
    """Convert a dollar amount to integer cents, rounding half up."""

    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_cents(cents: int) -> Decimal:
    return (Decimal(cents) / 100).quantize(_CENT)


def format_dollars(cents: int) -> str:
    return f"${from_cents(cents):,.2f}"


def payout_idempotency_key(transaction_id: UUID) -> str:
    """
    Deterministic processor idempotency key for the seller payout.

    Every transfer attempt for a transaction (dual confirmation, retry, or an
    operator release) shares the key, so the processor executes it once.
    """

    return f"sale-payout:{transaction_id}"


def refund_idempotency_key(transaction_id: UUID) -> str:
    return f"sale-refund:{transaction_id}"


def transfer_group(transaction_id: UUID) -> str:
    return f"sale_{transaction_id}"


NO_ACCOUNT_NOTE = "Payout pending - seller needs to connect a Stripe account."


def insufficient_balance_note(required_cents: int, available_cents: int) -> str:
    return (
        "Payout pending - insufficient platform balance "
        f"(need {format_dollars(required_cents)}, have {format_dollars(available_cents)}). "
        "The transfer will be retried."
    )


def transfer_failed_note(error: str) -> str:
    return f"Payout transfer failed: {error}. The transfer will be retried."


def transfer_unrecorded_note(transfer_id: str, error: str) -> str:
    return f"Payout transfer {transfer_id} was created but could not be recorded: {error}. The retry will record it."


__all__ = [
    "PayoutIntent",
    "PayoutOutcome",
    "PayoutResult",
    "to_cents",
    "from_cents",
    "format_dollars",
    "payout_idempotency_key",
    "refund_idempotency_key",
    "transfer_group",
    "NO_ACCOUNT_NOTE",
    "insufficient_balance_note",
    "transfer_failed_note",
    "transfer_unrecorded_note",
]
