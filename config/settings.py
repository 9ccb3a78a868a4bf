"""
Environment-backed settings.

Values are read from the process environment after loading the `.env` file
that sits next to the project root. Required values are validated lazily by
`Settings.require`, so modules that never talk to an external service can be
imported without credentials.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Optional, Tuple

from dotenv import load_dotenv

env_path = Path(__file__).parent.parent / ".env"


def _split_csv(value: str) -> Tuple[str, ...]:
    return tuple(part.strip() for part in value.split(",") if part.strip())


@dataclass(frozen=True, slots=True)
class Settings:
    """Immutable snapshot of the service configuration."""

    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None

    stripe_secret_key: Optional[str] = None
    stripe_api_base: str = "https://api.stripe.com"
    payout_currency: str = "usd"

    resend_api_key: Optional[str] = None
    email_from: str = "Vendibook <updates@vendibook.com>"
    support_email: str = "support@vendibook.com"

    zendesk_subdomain: Optional[str] = None
    zendesk_email: Optional[str] = None
    zendesk_api_key: Optional[str] = None

    http_timeout_seconds: float = 10.0
    cors_allow_origins: Tuple[str, ...] = ("*",)
    log_level: str = "INFO"

    def require(self, name: str) -> str:
        """
        Return a configured value or fail with the standard missing-variable error.

        Args:
            name: Attribute name, e.g. "stripe_secret_key"
        """

        value = getattr(self, name)
        if not value:
            raise RuntimeError(
                f"Missing environment variable: {name.upper()}. "
                f"Set {name.upper()} in the environment or the .env file."
            )
        return value

    @property
    def zendesk_configured(self) -> bool:
        return bool(self.zendesk_subdomain and self.zendesk_email and self.zendesk_api_key)

    @classmethod
    def from_env(cls) -> "Settings":
        load_dotenv(dotenv_path=env_path)
        return cls(
            supabase_url=os.getenv("SUPABASE_URL"),
            supabase_key=os.getenv("SUPABASE_KEY"),
            stripe_secret_key=os.getenv("STRIPE_SECRET_KEY"),
            stripe_api_base=os.getenv("STRIPE_API_BASE", "https://api.stripe.com").rstrip("/"),
            payout_currency=os.getenv("PAYOUT_CURRENCY", "usd").lower(),
            resend_api_key=os.getenv("RESEND_API_KEY"),
            email_from=os.getenv("EMAIL_FROM", "Vendibook <updates@vendibook.com>"),
            support_email=os.getenv("SUPPORT_EMAIL", "support@vendibook.com"),
            zendesk_subdomain=os.getenv("ZENDESK_SUBDOMAIN"),
            zendesk_email=os.getenv("ZENDESK_EMAIL"),
            zendesk_api_key=os.getenv("ZENDESK_API_KEY"),
            http_timeout_seconds=float(os.getenv("HTTP_TIMEOUT_SECONDS", "10")),
            cors_allow_origins=_split_csv(os.getenv("CORS_ALLOW_ORIGINS", "*")) or ("*",),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load settings once per process."""

    return Settings.from_env()


__all__ = ["Settings", "get_settings"]
