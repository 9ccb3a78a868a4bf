"""
Tests for `services/stripe_gateway.py` against httpx.MockTransport.

Covers:
- Balance is summed per currency from available funds only
- Transfers and refunds send the idempotency key and form-encoded metadata
- Processor errors surface Stripe's message
"""

from __future__ import annotations

from typing import List
from urllib.parse import parse_qs

import httpx
import pytest

from services.stripe_gateway import PaymentProcessorError, StripeGateway


def _gateway(handler) -> StripeGateway:
    return StripeGateway(
        "sk_test_123",
        api_base="https://stripe.test",
        http_client=httpx.Client(transport=httpx.MockTransport(handler)),
    )


def _form(request: httpx.Request) -> dict:
    return {k: v[0] for k, v in parse_qs(request.content.decode()).items()}


def test_available_balance_for_currency() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/v1/balance"
        assert request.headers["Authorization"] == "Bearer sk_test_123"
        return httpx.Response(200, json={
            "available": [{"amount": 125000, "currency": "usd"}, {"amount": 500, "currency": "eur"}],
            "pending": [{"amount": 999999, "currency": "usd"}],
        })

    assert _gateway(handler).get_available_balance("usd") == 125000


def test_create_transfer_sends_idempotency_key() -> None:
    requests: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json={"id": "tr_123"})

    transfer_id = _gateway(handler).create_transfer(
        amount_cents=87000,
        currency="usd",
        destination="acct_seller",
        idempotency_key="sale-payout:abc",
        transfer_group="sale_abc",
        metadata={"transaction_id": "abc", "listing_id": None},
    )

    assert transfer_id == "tr_123"
    request = requests[0]
    assert request.method == "POST"
    assert request.url.path == "/v1/transfers"
    assert request.headers["Idempotency-Key"] == "sale-payout:abc"
    form = _form(request)
    assert form["amount"] == "87000"
    assert form["destination"] == "acct_seller"
    assert form["transfer_group"] == "sale_abc"
    assert form["metadata[transaction_id]"] == "abc"
    assert "metadata[listing_id]" not in form


def test_create_refund() -> None:
    requests: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json={"id": "re_456"})

    refund_id = _gateway(handler).create_refund(payment_intent_id="pi_123", idempotency_key="sale-refund:abc")

    assert refund_id == "re_456"
    assert _form(requests[0])["payment_intent"] == "pi_123"
    assert requests[0].headers["Idempotency-Key"] == "sale-refund:abc"


def test_processor_error_message_is_surfaced() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json={"error": {"message": "No such destination: 'acct_x'", "code": "resource_missing"}})

    with pytest.raises(PaymentProcessorError) as excinfo:
        _gateway(handler).create_transfer(
            amount_cents=100, currency="usd", destination="acct_x", idempotency_key="k"
        )

    assert excinfo.value.message == "No such destination: 'acct_x'"
    assert excinfo.value.status_code == 400
    assert excinfo.value.code == "resource_missing"


def test_network_error_is_wrapped() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(PaymentProcessorError, match="unreachable"):
        _gateway(handler).get_available_balance("usd")


def test_non_positive_transfer_is_rejected_locally() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    with pytest.raises(PaymentProcessorError):
        _gateway(handler).create_transfer(amount_cents=0, currency="usd", destination="acct", idempotency_key="k")
