"""
Tests for `domain/sale.py`.

Covers contract rules:
- Timestamps on a SaleTransaction must be UTC.
- SaleTransaction is immutable (frozen).
- Money fields are non-negative and the seller payout never exceeds the amount.
- Party helpers resolve roles from user IDs.
"""

from __future__ import annotations

from dataclasses import FrozenInstanceError
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from uuid import UUID

import pytest

from domain.sale import PartyRole, SaleStatus, SaleTransaction

BUYER = UUID("00000000-0000-0000-0000-0000000000b1")
SELLER = UUID("00000000-0000-0000-0000-0000000000c1")


def _sale(**overrides) -> SaleTransaction:
    fields = dict(
        transaction_id=UUID("00000000-0000-0000-0000-000000000001"),
        buyer_id=BUYER,
        seller_id=SELLER,
        amount=Decimal("1000.00"),
        platform_fee=Decimal("130.00"),
        seller_payout=Decimal("870.00"),
        status=SaleStatus.PAID,
    )
    fields.update(overrides)
    return SaleTransaction(**fields)


def test_confirmation_timestamps_must_be_utc() -> None:
    """Verify confirmation timestamps enforce UTC timezone-aware values."""

    with pytest.raises(ValueError):
        _sale(buyer_confirmed_at=datetime(2025, 1, 1, 0, 0, 0))

    with pytest.raises(ValueError):
        _sale(seller_confirmed_at=datetime(2025, 1, 1, 0, 0, 0, tzinfo=timezone(timedelta(hours=2))))


def test_sale_transaction_is_immutable() -> None:
    """Verify SaleTransaction cannot be mutated after creation (frozen entity)."""

    sale = _sale()

    with pytest.raises(FrozenInstanceError):
        sale.status = SaleStatus.COMPLETED  # type: ignore[misc]


def test_money_fields_are_validated() -> None:
    with pytest.raises(ValueError):
        _sale(platform_fee=Decimal("-1.00"))

    with pytest.raises(ValueError):
        _sale(seller_payout=Decimal("1000.01"))


def test_role_of_resolves_parties_and_rejects_outsiders() -> None:
    sale = _sale()

    assert sale.role_of(BUYER) is PartyRole.BUYER
    assert sale.role_of(SELLER) is PartyRole.SELLER
    assert sale.role_of(UUID("00000000-0000-0000-0000-0000000000ff")) is None
    assert sale.party_id(PartyRole.SELLER) == SELLER


def test_confirmation_helpers() -> None:
    at = datetime(2025, 1, 1, tzinfo=timezone.utc)
    sale = _sale(status=SaleStatus.BUYER_CONFIRMED, buyer_confirmed_at=at)

    assert sale.has_confirmed(PartyRole.BUYER)
    assert not sale.has_confirmed(PartyRole.SELLER)
    assert not sale.both_confirmed
    assert sale.confirmed_at(PartyRole.BUYER) == at


def test_payout_pending_only_for_unpaid_completed_sales() -> None:
    at = datetime(2025, 1, 1, tzinfo=timezone.utc)

    assert _sale(status=SaleStatus.COMPLETED).payout_pending
    assert not _sale(status=SaleStatus.COMPLETED, payout_completed_at=at, transfer_id="tr_1").payout_pending
    assert not _sale(status=SaleStatus.PAID).payout_pending


def test_terminal_statuses() -> None:
    assert {s for s in SaleStatus if s.is_terminal} == {
        SaleStatus.COMPLETED,
        SaleStatus.REFUNDED,
        SaleStatus.CANCELLED,
    }
    assert PartyRole.BUYER.counterparty is PartyRole.SELLER
    assert PartyRole.SELLER.confirmed_at_field == "seller_confirmed_at"
