"""
In-app notification repository (persistence).

Inserts rows into the `notifications` table that the dashboard reads.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, List, Sequence
from uuid import UUID

from repositories.client import fetch_rows, get_supabase

_NOTIFICATIONS_TABLE: str = "notifications"


@dataclass(frozen=True, slots=True)
class InAppNotification:
    user_id: UUID
    type: str  # sale, payout, dispute
    title: str
    message: str
    link: str = "/dashboard?tab=sales"


class NotificationRepository:
    def __init__(self, client: Any = None) -> None:
        self._client = client if client is not None else get_supabase()

    def insert_many(self, notifications: Sequence[InAppNotification]) -> int:
        """
        Insert in-app notifications in one request.

        Returns:
            Number of rows written
        """

        if not notifications:
            return 0

        payload: List[dict] = [
            {
                "user_id": str(n.user_id),
                "type": n.type,
                "title": n.title,
                "message": n.message,
                "link": n.link,
            }
            for n in notifications
        ]
        fetch_rows(self._client.table(_NOTIFICATIONS_TABLE).insert(payload), "insert notifications")
        return len(payload)


__all__ = ["InAppNotification", "NotificationRepository"]
