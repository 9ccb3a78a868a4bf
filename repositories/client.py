"""
Supabase client initialization.

This module contains *only* the database connection setup and exposes a
single cached Supabase client for the repository modules and the API's auth
dependency.

Environment variables required:
- SUPABASE_URL: Your Supabase project URL
- SUPABASE_KEY: Your Supabase API key (service-role key; backend only)

The client is created on first use rather than at import time so that the
domain and service layers can be imported (and tested) without credentials.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Any, List, Mapping

from postgrest.exceptions import APIError

# The dependency is `supabase` (supabase-py). If your editor can't resolve it,
# install it in your environment: `pip install supabase`.
from supabase import Client, create_client  # type: ignore[import-not-found]

from config.settings import get_settings


@lru_cache(maxsize=1)
def get_supabase() -> Client:
    """Return the process-wide Supabase client, creating it on first call."""

    settings = get_settings()
    url = settings.require("supabase_url")
    key = settings.require("supabase_key")
    return create_client(url, key)


def fetch_rows(query: Any, action: str) -> List[Mapping[str, Any]]:
    """Execute a query and return its rows, raising RuntimeError on any store error."""

    try:
        response = query.execute()
    except APIError as e:
        raise RuntimeError(f"Failed to {action}: {e.message}") from e

    error = getattr(response, "error", None)
    if error:
        raise RuntimeError(f"Failed to {action}: {error}")
    return getattr(response, "data", None) or []


__all__ = ["fetch_rows", "get_supabase"]
