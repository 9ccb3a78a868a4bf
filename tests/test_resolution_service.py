"""
Tests for `services/resolution_service.py`.

Covers:
- Only admins can resolve or list disputes
- Refunds move the sale to refunded; releases pay the seller and complete it
- Processor failures keep the dispute open
- A second resolution is rejected and never moves money twice
"""

from __future__ import annotations

import pytest

from conftest import ADMIN_ID, BUYER_ID, NOW
from domain.errors import InvalidState, PayoutFailed, Unauthorized
from domain.events import EscrowEventKind
from domain.payout import refund_idempotency_key
from domain.sale import Resolution, SaleStatus

DISPUTED = dict(
    status="disputed",
    dispute_reason="[BUYER DISPUTE] Generator does not work",
    disputed_by="buyer",
    disputed_at="2024-12-30T09:00:00+00:00",
)


def test_non_admin_cannot_resolve(add_sale, resolution_service, gateway) -> None:
    sale_id = add_sale(**DISPUTED)

    with pytest.raises(Unauthorized, match="Admin access required"):
        resolution_service.resolve_dispute(sale_id, BUYER_ID, Resolution.REFUND_BUYER)
    assert gateway.refunds == []


def test_refund_resolution(db, add_sale, resolution_service, gateway) -> None:
    sale_id = add_sale(**DISPUTED)

    result = resolution_service.resolve_dispute(sale_id, ADMIN_ID, Resolution.REFUND_BUYER, "Seller agreed")

    assert result.status is SaleStatus.REFUNDED
    assert result.message == "Dispute resolved: Full refund issued to buyer"
    assert gateway.refunds[0]["payment_intent_id"] == "pi_123"
    assert gateway.refunds[0]["idempotency_key"] == refund_idempotency_key(sale_id)

    row = db.row(sale_id)
    assert row["status"] == "refunded"
    assert row["refund_id"] == "re_1"
    assert row["resolution"] == "refund_buyer"
    assert row["resolved_by"] == str(ADMIN_ID)
    assert row["resolved_at"] == NOW.isoformat()
    assert row["operational_note"] == "Dispute resolved by admin: refund_buyer. Notes: Seller agreed"
    assert [e.kind for e in result.events] == [EscrowEventKind.DISPUTE_RESOLVED]


def test_release_resolution_pays_seller(db, add_sale, resolution_service, gateway) -> None:
    sale_id = add_sale(**DISPUTED)

    result = resolution_service.resolve_dispute(sale_id, ADMIN_ID, Resolution.RELEASE_TO_SELLER)

    assert result.status is SaleStatus.COMPLETED
    assert result.message == "Dispute resolved: Payment released to seller"
    assert len(gateway.transfers) == 1
    assert gateway.transfers[0]["metadata"]["intent"] == "dispute_release"

    row = db.row(sale_id)
    assert row["status"] == "completed"
    assert row["transfer_id"] == "tr_1"
    assert row["payout_completed_at"] == NOW.isoformat()
    # Confirmations were never given; the operator's decision is authoritative.
    assert row["buyer_confirmed_at"] is None


def test_second_resolution_is_rejected(add_sale, resolution_service, gateway) -> None:
    sale_id = add_sale(**DISPUTED)
    resolution_service.resolve_dispute(sale_id, ADMIN_ID, Resolution.REFUND_BUYER)

    with pytest.raises(InvalidState, match="already resolved or closed"):
        resolution_service.resolve_dispute(sale_id, ADMIN_ID, Resolution.RELEASE_TO_SELLER)

    assert len(gateway.refunds) == 1
    assert gateway.transfers == []


def test_undisputed_sale_cannot_be_resolved(add_sale, resolution_service) -> None:
    sale_id = add_sale(status="buyer_confirmed", buyer_confirmed_at="2024-12-31T09:00:00+00:00")

    with pytest.raises(InvalidState, match="not in disputed status"):
        resolution_service.resolve_dispute(sale_id, ADMIN_ID, Resolution.REFUND_BUYER)


def test_failed_refund_keeps_dispute_open(db, add_sale, resolution_service, gateway) -> None:
    gateway.refund_error = "Charge has already been refunded"
    sale_id = add_sale(**DISPUTED)

    with pytest.raises(PayoutFailed, match="Refund failed: Charge has already been refunded"):
        resolution_service.resolve_dispute(sale_id, ADMIN_ID, Resolution.REFUND_BUYER)

    assert db.row(sale_id)["status"] == "disputed"


def test_failed_release_keeps_dispute_open(db, add_sale, resolution_service, gateway) -> None:
    gateway.balance_cents = 100
    sale_id = add_sale(**DISPUTED)

    with pytest.raises(InvalidState, match="Insufficient platform balance"):
        resolution_service.resolve_dispute(sale_id, ADMIN_ID, Resolution.RELEASE_TO_SELLER)

    assert db.row(sale_id)["status"] == "disputed"
    assert gateway.transfers == []


def test_refund_requires_payment_intent(add_sale, resolution_service) -> None:
    sale_id = add_sale(payment_intent_id=None, **DISPUTED)

    with pytest.raises(InvalidState, match="No payment intent"):
        resolution_service.resolve_dispute(sale_id, ADMIN_ID, Resolution.REFUND_BUYER)


def test_list_open_disputes_oldest_first(add_sale, resolution_service) -> None:
    newer = add_sale(**{**DISPUTED, "disputed_at": "2024-12-31T09:00:00+00:00"})
    older = add_sale(**DISPUTED)
    add_sale()

    disputes = resolution_service.list_open_disputes(ADMIN_ID)

    assert [d.transaction_id for d in disputes] == [older, newer]

    with pytest.raises(Unauthorized):
        resolution_service.list_open_disputes(BUYER_ID)
