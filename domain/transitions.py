"""
Domain: escrow state machine.

Transitions implemented here:
- paid / buyer_confirmed / seller_confirmed -> <role>_confirmed   (first confirmation)
- paid / buyer_confirmed / seller_confirmed -> completed          (second confirmation)
- paid / buyer_confirmed / seller_confirmed -> disputed           (either party)
- disputed -> refunded | completed                                (operator only)

Each planner validates a snapshot and returns a `GuardedUpdate`: the new
column values plus the preconditions the store must re-check atomically when
it applies them. If the row changed between the read and the write, the
update matches nothing and the caller re-reads and re-plans.

No I/O happens here; all timestamps are passed in.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, FrozenSet, Optional, Tuple
from uuid import UUID

from .errors import (
    AlreadyConfirmed,
    DisputeAlreadyOpen,
    InvalidState,
    Unauthorized,
    ValidationError,
)
from .sale import PartyRole, Resolution, SaleStatus, SaleTransaction
from .time import require_utc_timestamp

MIN_DISPUTE_REASON_LENGTH = 10

# Statuses in which the sale is funded and still waiting on the parties.
OPEN_ESCROW_STATUSES: FrozenSet[SaleStatus] = frozenset(
    {SaleStatus.PAID, SaleStatus.BUYER_CONFIRMED, SaleStatus.SELLER_CONFIRMED}
)
CONFIRMABLE_STATUSES = OPEN_ESCROW_STATUSES
DISPUTABLE_STATUSES = OPEN_ESCROW_STATUSES


@dataclass(frozen=True, slots=True)
class GuardedUpdate:
    """
    A compare-and-set update against one transaction row.

    expected_statuses: the row's status must be one of these
    require_null: columns that must still be NULL
    require_not_null: columns that must already be set
    changes: column -> new domain value (datetimes, enums, UUIDs, strings, None)
    """

    expected_statuses: FrozenSet[SaleStatus]
    to_status: SaleStatus
    changes: Dict[str, Any]
    require_null: Tuple[str, ...] = ()
    require_not_null: Tuple[str, ...] = ()
    completes_sale: bool = field(default=False)


def plan_confirmation(
    transaction: SaleTransaction,
    role: PartyRole,
    caller_id: UUID,
    confirmed_at: datetime,
) -> GuardedUpdate:
    """
    Validate a confirmation and compute its guarded update.

    Raises:
        Unauthorized: caller is not the party implied by `role`
        AlreadyConfirmed: this role's timestamp is already set
        InvalidState: status is not paid / buyer_confirmed / seller_confirmed
    """

    require_utc_timestamp("confirmed_at", confirmed_at)

    if transaction.party_id(role) != caller_id:
        raise Unauthorized(f"Not authorized to confirm as {role.value}")

    if transaction.has_confirmed(role):
        raise AlreadyConfirmed(f"{role.value.capitalize()} has already confirmed")

    if transaction.status not in CONFIRMABLE_STATUSES:
        raise InvalidState(f"Cannot confirm transaction with status: {transaction.status.value}")

    other = role.counterparty
    other_confirmed = transaction.has_confirmed(other)
    new_status = SaleStatus.COMPLETED if other_confirmed else role.confirmed_status

    return GuardedUpdate(
        expected_statuses=CONFIRMABLE_STATUSES,
        to_status=new_status,
        changes={
            "status": new_status,
            role.confirmed_at_field: confirmed_at,
            "updated_at": confirmed_at,
        },
        require_null=(role.confirmed_at_field,) + (() if other_confirmed else (other.confirmed_at_field,)),
        require_not_null=(other.confirmed_at_field,) if other_confirmed else (),
        completes_sale=other_confirmed,
    )


def validate_dispute_reason(reason: Optional[str]) -> str:
    """Return the trimmed reason, or raise ValidationError when it is too short."""

    text = (reason or "").strip()
    if len(text) < MIN_DISPUTE_REASON_LENGTH:
        raise ValidationError(
            f"Please provide a more detailed reason (at least {MIN_DISPUTE_REASON_LENGTH} characters)"
        )
    return text


def format_dispute_reason(role: PartyRole, reason: str) -> str:
    return f"[{role.value.upper()} DISPUTE] {reason}"


def plan_dispute(
    transaction: SaleTransaction,
    caller_id: UUID,
    reason: str,
    disputed_at: datetime,
) -> GuardedUpdate:
    """
    Validate a dispute and compute its guarded update.

    Raises:
        ValidationError: reason shorter than MIN_DISPUTE_REASON_LENGTH
        Unauthorized: caller is neither buyer nor seller
        DisputeAlreadyOpen: the transaction is already disputed
        InvalidState: status is not paid / buyer_confirmed / seller_confirmed
    """

    require_utc_timestamp("disputed_at", disputed_at)
    text = validate_dispute_reason(reason)

    role = transaction.role_of(caller_id)
    if role is None:
        raise Unauthorized("Not authorized to dispute this transaction")

    if transaction.status is SaleStatus.DISPUTED:
        raise DisputeAlreadyOpen("A dispute is already open for this transaction")

    if transaction.status not in DISPUTABLE_STATUSES:
        raise InvalidState(f"Cannot dispute transaction with status: {transaction.status.value}")

    return GuardedUpdate(
        expected_statuses=DISPUTABLE_STATUSES,
        to_status=SaleStatus.DISPUTED,
        changes={
            "status": SaleStatus.DISPUTED,
            "dispute_reason": format_dispute_reason(role, text),
            "disputed_by": role,
            "disputed_at": disputed_at,
            "updated_at": disputed_at,
        },
    )


def require_resolvable(transaction: SaleTransaction) -> None:
    """
    Only a disputed transaction can be resolved by an operator.

    A terminal transaction was already resolved (or closed), so a repeated
    resolution is rejected instead of moving money a second time.
    """

    if transaction.status is SaleStatus.DISPUTED:
        return
    if transaction.status.is_terminal:
        raise InvalidState(
            f"Transaction is already resolved or closed (status: {transaction.status.value})"
        )
    raise InvalidState(
        f"Transaction is not in disputed status (status: {transaction.status.value})"
    )


def resolution_note(resolution: Resolution, admin_notes: Optional[str]) -> str:
    note = f"Dispute resolved by admin: {resolution.value}"
    if admin_notes and admin_notes.strip():
        note += f". Notes: {admin_notes.strip()}"
    return note


def plan_resolution(
    transaction: SaleTransaction,
    resolution: Resolution,
    operator_id: UUID,
    resolved_at: datetime,
    admin_notes: Optional[str] = None,
    *,
    refund_id: Optional[str] = None,
    transfer_id: Optional[str] = None,
) -> GuardedUpdate:
    """
    Compute the exit transition from `disputed` once the money movement succeeded.

    The operator's decision is authoritative: confirmation timestamps are
    neither required nor checked.
    """

    require_utc_timestamp("resolved_at", resolved_at)
    require_resolvable(transaction)

    changes: Dict[str, Any] = {
        "resolution": resolution,
        "resolved_by": operator_id,
        "resolved_at": resolved_at,
        "operational_note": resolution_note(resolution, admin_notes),
        "updated_at": resolved_at,
    }

    if resolution is Resolution.REFUND_BUYER:
        if not refund_id:
            raise ValueError("refund_id is required to resolve with a refund")
        changes.update(status=SaleStatus.REFUNDED, refund_id=refund_id)
        return GuardedUpdate(
            expected_statuses=frozenset({SaleStatus.DISPUTED}),
            to_status=SaleStatus.REFUNDED,
            changes=changes,
            require_null=("refund_id",),
        )

    if not transfer_id:
        raise ValueError("transfer_id is required to release funds to the seller")
    changes.update(
        status=SaleStatus.COMPLETED,
        transfer_id=transfer_id,
        payout_completed_at=resolved_at,
    )
    return GuardedUpdate(
        expected_statuses=frozenset({SaleStatus.DISPUTED}),
        to_status=SaleStatus.COMPLETED,
        changes=changes,
        require_null=("transfer_id",),
        completes_sale=True,
    )


__all__ = [
    "MIN_DISPUTE_REASON_LENGTH",
    "OPEN_ESCROW_STATUSES",
    "CONFIRMABLE_STATUSES",
    "DISPUTABLE_STATUSES",
    "GuardedUpdate",
    "plan_confirmation",
    "validate_dispute_reason",
    "format_dispute_reason",
    "plan_dispute",
    "require_resolvable",
    "resolution_note",
    "plan_resolution",
]
