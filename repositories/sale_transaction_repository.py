"""
Sale transaction repository (persistence).

This module provides persistence operations for the SaleTransaction domain
entity. It does not decide which transitions are legal; it only applies the
guarded updates the domain planners produce, atomically, as
`UPDATE ... WHERE id = ? AND status IN (...) AND col IS [NOT] NULL`, and
reports whether a row matched.
"""

from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, List, Mapping, Optional
from uuid import UUID

from domain.sale import PartyRole, Resolution, SaleStatus, SaleTransaction
from domain.time import parse_utc_timestamp, to_iso_utc
from domain.transitions import GuardedUpdate
from repositories.client import fetch_rows, get_supabase

logger = logging.getLogger(__name__)

# Supabase table name for sale transactions.
# Keep this aligned with your database schema.
_SALE_TRANSACTIONS_TABLE: str = "sale_transactions"


def _serialize(name: str, value: Any) -> Any:
    """Convert a domain value into its PostgREST JSON representation."""

    if value is None:
        return None
    if isinstance(value, datetime):
        return to_iso_utc(value, name=name)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (UUID, Decimal)):
        return str(value)
    return value


def _optional_uuid(value: Any) -> Optional[UUID]:
    return UUID(str(value)) if value else None


def _row_to_transaction(row: Mapping[str, Any]) -> SaleTransaction:
    """Convert a Supabase row into a SaleTransaction."""

    disputed_by = row.get("disputed_by")
    resolution = row.get("resolution")

    return SaleTransaction(
        transaction_id=UUID(str(row["id"])),
        buyer_id=UUID(str(row["buyer_id"])),
        seller_id=UUID(str(row["seller_id"])),
        amount=Decimal(str(row["amount"])),
        platform_fee=Decimal(str(row.get("platform_fee") or 0)),
        seller_payout=Decimal(str(row["seller_payout"])),
        status=SaleStatus(str(row["status"])),
        currency=str(row.get("currency") or "usd"),
        listing_id=_optional_uuid(row.get("listing_id")),
        payment_intent_id=row.get("payment_intent_id"),
        fulfillment_type=row.get("fulfillment_type"),
        buyer_confirmed_at=parse_utc_timestamp(row.get("buyer_confirmed_at")),
        seller_confirmed_at=parse_utc_timestamp(row.get("seller_confirmed_at")),
        transfer_id=row.get("transfer_id"),
        payout_completed_at=parse_utc_timestamp(row.get("payout_completed_at")),
        refund_id=row.get("refund_id"),
        dispute_reason=row.get("dispute_reason"),
        disputed_by=PartyRole(disputed_by) if disputed_by else None,
        disputed_at=parse_utc_timestamp(row.get("disputed_at")),
        resolution=Resolution(resolution) if resolution else None,
        resolved_by=_optional_uuid(row.get("resolved_by")),
        resolved_at=parse_utc_timestamp(row.get("resolved_at")),
        operational_note=row.get("operational_note"),
        created_at=parse_utc_timestamp(row.get("created_at")),
        updated_at=parse_utc_timestamp(row.get("updated_at")),
    )


class SaleTransactionRepository:
    """Reads and guarded writes against the `sale_transactions` table."""

    def __init__(self, client: Any = None) -> None:
        self._client = client if client is not None else get_supabase()

    def _table(self) -> Any:
        return self._client.table(_SALE_TRANSACTIONS_TABLE)

    def get_by_id(self, transaction_id: UUID) -> Optional[SaleTransaction]:
        """
        Retrieve a single transaction by its ID.

        Returns:
            SaleTransaction or None if not found
        """

        query = self._table().select("*").eq("id", str(transaction_id)).limit(1)
        rows = fetch_rows(query, "get sale transaction")
        if not rows:
            return None
        return _row_to_transaction(rows[0])

    def apply(self, transaction_id: UUID, update: GuardedUpdate) -> Optional[SaleTransaction]:
        """
        Apply a guarded update in a single statement.

        Returns:
            The authoritative post-update snapshot, or None when the row no
            longer satisfied the guard (a concurrent writer got there first).
        """

        payload = {name: _serialize(name, value) for name, value in update.changes.items()}
        query = (
            self._table()
            .update(payload)
            .eq("id", str(transaction_id))
            .in_("status", sorted(status.value for status in update.expected_statuses))
        )
        for column in update.require_null:
            query = query.is_(column, "null")
        for column in update.require_not_null:
            query = query.not_.is_(column, "null")

        rows = fetch_rows(query, "update sale transaction")
        if not rows:
            logger.warning(
                "Guarded update did not apply",
                extra={
                    "transaction_id": str(transaction_id),
                    "to_status": update.to_status.value,
                    "expected_statuses": sorted(s.value for s in update.expected_statuses),
                },
            )
            return None
        return _row_to_transaction(rows[0])

    def record_payout(
        self,
        transaction_id: UUID,
        transfer_id: str,
        completed_at: datetime,
    ) -> Optional[SaleTransaction]:
        """
        Store the processor transfer reference on a completed transaction.

        Guarded by `transfer_id IS NULL` so a transaction is paid out at most once.
        """

        payload = {
            "transfer_id": transfer_id,
            "payout_completed_at": to_iso_utc(completed_at, name="payout_completed_at"),
            "operational_note": None,
            "updated_at": to_iso_utc(completed_at, name="updated_at"),
        }
        query = (
            self._table()
            .update(payload)
            .eq("id", str(transaction_id))
            .eq("status", SaleStatus.COMPLETED.value)
            .is_("transfer_id", "null")
        )
        rows = fetch_rows(query, "record payout")
        return _row_to_transaction(rows[0]) if rows else None

    def set_operational_note(
        self,
        transaction_id: UUID,
        note: str,
        updated_at: datetime,
    ) -> Optional[SaleTransaction]:
        """Record a payout status note; never overwrites notes on paid-out rows."""

        payload = {
            "operational_note": note,
            "updated_at": to_iso_utc(updated_at, name="updated_at"),
        }
        query = self._table().update(payload).eq("id", str(transaction_id)).is_("transfer_id", "null")
        rows = fetch_rows(query, "update operational note")
        return _row_to_transaction(rows[0]) if rows else None

    def list_pending_payouts(self, limit: Optional[int] = None) -> List[SaleTransaction]:
        """Completed transactions whose payout has not happened yet, oldest first."""

        query = (
            self._table()
            .select("*")
            .eq("status", SaleStatus.COMPLETED.value)
            .is_("payout_completed_at", "null")
            .order("created_at")
        )
        if limit is not None:
            query = query.limit(limit)
        rows = fetch_rows(query, "list pending payouts")
        return [_row_to_transaction(row) for row in rows]

    def list_disputed(self) -> List[SaleTransaction]:
        """Open disputes, oldest first."""

        query = (
            self._table()
            .select("*")
            .eq("status", SaleStatus.DISPUTED.value)
            .order("disputed_at")
        )
        rows = fetch_rows(query, "list disputed transactions")
        return [_row_to_transaction(row) for row in rows]


__all__ = ["SaleTransactionRepository"]
