"""Tests for `services/sale_query_service.py`."""

from __future__ import annotations

from uuid import uuid4

import pytest

from conftest import BUYER_ID, OUTSIDER_ID, SELLER_ID
from domain.errors import TransactionNotFound, Unauthorized
from domain.events import EscrowEventKind
from domain.sale import PartyRole


def test_party_sees_transaction_with_history(add_sale, confirmation_service, query_service) -> None:
    sale_id = add_sale()
    confirmation_service.confirm_sale(sale_id, PartyRole.BUYER, BUYER_ID)
    confirmation_service.confirm_sale(sale_id, PartyRole.SELLER, SELLER_ID)

    view = query_service.get_transaction_for_party(sale_id, SELLER_ID)

    assert view.transaction.transfer_id == "tr_1"
    assert [r.event for r in view.history] == [
        EscrowEventKind.BUYER_CONFIRMED,
        EscrowEventKind.SELLER_CONFIRMED,
        EscrowEventKind.TRANSACTION_COMPLETED,
        EscrowEventKind.PAYOUT_COMPLETED,
    ]


def test_outsiders_and_missing_transactions(add_sale, query_service) -> None:
    sale_id = add_sale()

    with pytest.raises(Unauthorized):
        query_service.get_transaction_for_party(sale_id, OUTSIDER_ID)
    with pytest.raises(TransactionNotFound):
        query_service.get_transaction_for_party(uuid4(), BUYER_ID)
