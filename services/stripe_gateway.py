"""
Stripe gateway for escrow money movement.

Thin synchronous wrapper over the three Stripe REST endpoints the escrow core
uses: balance lookup, Connect transfers (seller payouts) and refunds. Every
mutating call carries an `Idempotency-Key` header so a retried request never
moves money twice.

Every failure (HTTP error status or network error) is raised as
`PaymentProcessorError` with Stripe's human-readable message.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Optional

import httpx

from config.settings import Settings

logger = logging.getLogger(__name__)


class PaymentProcessorError(Exception):
    """Raised when the payment processor rejects a request or cannot be reached."""

    def __init__(self, message: str, *, status_code: Optional[int] = None, code: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.code = code


def _form_metadata(metadata: Optional[Mapping[str, Any]]) -> Dict[str, str]:
    """Flatten metadata into Stripe's bracketed form-encoding."""

    return {f"metadata[{key}]": str(value) for key, value in (metadata or {}).items() if value is not None}


class StripeGateway:
    """
    Balance, transfer and refund calls against the Stripe API.

    Args:
        secret_key: Platform secret key (sk_...)
        api_base: API root, overridable for tests or a proxy
        timeout: Per-request timeout in seconds
        http_client: Optional preconfigured httpx.Client (tests pass one
            backed by httpx.MockTransport)
    """

    def __init__(
        self,
        secret_key: str,
        *,
        api_base: str = "https://api.stripe.com",
        timeout: float = 10.0,
        http_client: Optional[httpx.Client] = None,
    ) -> None:
        self._client = http_client or httpx.Client(timeout=timeout)
        self._api_base = api_base.rstrip("/")
        self._headers = {"Authorization": f"Bearer {secret_key}"}

    @classmethod
    def from_settings(cls, settings: Settings) -> "StripeGateway":
        return cls(
            settings.require("stripe_secret_key"),
            api_base=settings.stripe_api_base,
            timeout=settings.http_timeout_seconds,
        )

    def close(self) -> None:
        self._client.close()

    def _request(
        self,
        method: str,
        path: str,
        *,
        data: Optional[Mapping[str, Any]] = None,
        idempotency_key: Optional[str] = None,
    ) -> Dict[str, Any]:
        headers = dict(self._headers)
        if idempotency_key:
            headers["Idempotency-Key"] = idempotency_key

        try:
            response = self._client.request(
                method,
                f"{self._api_base}{path}",
                data=data,
                headers=headers,
            )
        except httpx.HTTPError as e:
            raise PaymentProcessorError(f"Payment processor unreachable: {e}") from e

        if response.is_error:
            message = f"Stripe API error (HTTP {response.status_code})"
            code = None
            try:
                error = response.json().get("error", {})
                message = error.get("message") or message
                code = error.get("code")
            except ValueError:
                pass
            raise PaymentProcessorError(message, status_code=response.status_code, code=code)

        return response.json()

    def get_available_balance(self, currency: str) -> int:
        """
        Available platform balance for a currency, in cents.

        Pending (not yet settled) funds are not counted.
        """

        balance = self._request("GET", "/v1/balance")
        return sum(
            int(entry.get("amount", 0))
            for entry in balance.get("available", [])
            if str(entry.get("currency", "")).lower() == currency.lower()
        )

    def create_transfer(
        self,
        *,
        amount_cents: int,
        currency: str,
        destination: str,
        idempotency_key: str,
        transfer_group: Optional[str] = None,
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> str:
        """
        Transfer funds to a connected account.

        Returns:
            Stripe transfer ID (tr_...)
        """

        if amount_cents <= 0:
            raise PaymentProcessorError("Transfer amount must be positive")

        data: Dict[str, Any] = {
            "amount": amount_cents,
            "currency": currency,
            "destination": destination,
            **_form_metadata(metadata),
        }
        if transfer_group:
            data["transfer_group"] = transfer_group

        transfer = self._request("POST", "/v1/transfers", data=data, idempotency_key=idempotency_key)
        logger.info(
            "Stripe transfer created",
            extra={"transfer_id": transfer.get("id"), "amount_cents": amount_cents, "destination": destination},
        )
        return str(transfer["id"])

    def create_refund(
        self,
        *,
        payment_intent_id: str,
        idempotency_key: str,
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> str:
        """
        Fully refund a captured payment intent.

        Returns:
            Stripe refund ID (re_...)
        """

        data = {"payment_intent": payment_intent_id, **_form_metadata(metadata)}
        refund = self._request("POST", "/v1/refunds", data=data, idempotency_key=idempotency_key)
        logger.info(
            "Stripe refund created",
            extra={"refund_id": refund.get("id"), "payment_intent_id": payment_intent_id},
        )
        return str(refund["id"])


__all__ = ["PaymentProcessorError", "StripeGateway"]
