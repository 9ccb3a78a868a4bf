"""
Profile repository for marketplace users.

Read-only lookups the escrow core needs about the parties: the seller's
connected payout account, contact details for notifications, and the
operator capability check (the `is_admin` database function).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional
from uuid import UUID

from repositories.client import fetch_rows, get_supabase

_PROFILES_TABLE: str = "profiles"
_LISTINGS_TABLE: str = "listings"


@dataclass(frozen=True, slots=True)
class PartyContact:
    """Name and email used when notifying a party."""

    user_id: UUID
    full_name: Optional[str] = None
    email: Optional[str] = None


class ProfileRepository:
    def __init__(self, client: Any = None) -> None:
        self._client = client if client is not None else get_supabase()

    def _fetch_profile(self, user_id: UUID, columns: str) -> Optional[dict]:
        query = self._client.table(_PROFILES_TABLE).select(columns).eq("id", str(user_id)).limit(1)
        rows = fetch_rows(query, "fetch profile")
        return rows[0] if rows else None

    def get_payout_account(self, user_id: UUID) -> Optional[str]:
        """
        Get the Stripe connected account a user is paid out to.

        Returns:
            Stripe account ID (acct_...) or None when the user never connected one
        """

        row = self._fetch_profile(user_id, "stripe_account_id")
        if row is None:
            return None
        return row.get("stripe_account_id") or None

    def get_contact(self, user_id: UUID) -> Optional[PartyContact]:
        row = self._fetch_profile(user_id, "full_name, email")
        if row is None:
            return None
        return PartyContact(user_id=user_id, full_name=row.get("full_name"), email=row.get("email"))

    def is_admin(self, user_id: UUID) -> bool:
        """Check the operator capability through the `is_admin` database function."""

        result = fetch_rows(self._client.rpc("is_admin", {"user_id": str(user_id)}), "check admin role")
        return result is True

    def get_listing_title(self, listing_id: Optional[UUID]) -> Optional[str]:
        if listing_id is None:
            return None
        query = self._client.table(_LISTINGS_TABLE).select("title").eq("id", str(listing_id)).limit(1)
        rows = fetch_rows(query, "fetch listing")
        return rows[0].get("title") if rows else None


__all__ = ["PartyContact", "ProfileRepository"]
