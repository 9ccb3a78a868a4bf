"""
Transition log repository (persistence).

Append-only audit trail of escrow state changes, one row per transition.
Rows are inserted and read, never updated or deleted.
"""

from __future__ import annotations

from typing import Any, List, Mapping
from uuid import UUID, uuid4

from domain.events import ActorRole, EscrowEventKind, TransitionRecord
from domain.sale import SaleStatus
from domain.time import parse_utc_timestamp, to_iso_utc
from repositories.client import fetch_rows, get_supabase

_EVENTS_TABLE: str = "sale_transaction_events"


def _row_to_record(row: Mapping[str, Any]) -> TransitionRecord:
    from_status = row.get("from_status")
    actor_id = row.get("actor_id")
    return TransitionRecord(
        record_id=UUID(str(row["id"])),
        transaction_id=UUID(str(row["transaction_id"])),
        event=EscrowEventKind(str(row["event"])),
        from_status=SaleStatus(from_status) if from_status else None,
        to_status=SaleStatus(str(row["to_status"])),
        actor_role=ActorRole(str(row["actor_role"])),
        actor_id=UUID(str(actor_id)) if actor_id else None,
        detail=row.get("detail"),
        created_at=parse_utc_timestamp(row["created_at"]),
    )


class TransitionLogRepository:
    def __init__(self, client: Any = None) -> None:
        self._client = client if client is not None else get_supabase()

    def append(self, record: TransitionRecord) -> TransitionRecord:
        """Insert one audit entry and return it with its assigned ID."""

        record_id = record.record_id or uuid4()
        payload = {
            "id": str(record_id),
            "transaction_id": str(record.transaction_id),
            "event": record.event.value,
            "from_status": record.from_status.value if record.from_status else None,
            "to_status": record.to_status.value,
            "actor_role": record.actor_role.value,
            "actor_id": str(record.actor_id) if record.actor_id else None,
            "detail": record.detail,
            "created_at": to_iso_utc(record.created_at, name="created_at"),
        }

        fetch_rows(self._client.table(_EVENTS_TABLE).insert(payload), "append transition record")

        return TransitionRecord(
            record_id=record_id,
            transaction_id=record.transaction_id,
            event=record.event,
            from_status=record.from_status,
            to_status=record.to_status,
            actor_role=record.actor_role,
            actor_id=record.actor_id,
            detail=record.detail,
            created_at=record.created_at,
        )

    def list_for_transaction(self, transaction_id: UUID) -> List[TransitionRecord]:
        query = self._client.table(_EVENTS_TABLE).select("*").eq("transaction_id", str(transaction_id)).order("created_at")
        rows = fetch_rows(query, "list transition records")
        return [_row_to_record(row) for row in rows]


__all__ = ["TransitionLogRepository"]
