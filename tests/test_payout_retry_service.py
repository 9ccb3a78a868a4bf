"""
Tests for `services/payout_retry_service.py`.

Covers:
- Pending payouts are retried oldest first
- The remaining platform balance is spent down and larger payouts are skipped
- Balance lookup failures surface as PayoutFailed
"""

from __future__ import annotations

import pytest

from domain.errors import PayoutFailed
from domain.events import EscrowEventKind
from domain.payout import PayoutOutcome


def _pending(add_sale, created_at: str, payout: str = "870.00"):
    return add_sale(
        status="completed",
        seller_payout=payout,
        created_at=created_at,
        operational_note="Payout pending - seller needs to connect a Stripe account.",
    )


def test_retry_pays_pending_payouts_oldest_first(db, add_sale, retry_service, gateway) -> None:
    newer = _pending(add_sale, "2024-12-21T10:00:00+00:00")
    older = _pending(add_sale, "2024-12-20T10:00:00+00:00")
    add_sale(status="completed", transfer_id="tr_done", payout_completed_at="2024-12-22T10:00:00+00:00")

    report = retry_service.retry_pending_payouts()

    assert report.processed == 2
    assert report.failed == 0
    assert report.skipped == 0
    assert [r.transaction_id for r in report.results] == [older, newer]
    assert all(r.outcome is PayoutOutcome.TRANSFERRED for r in report.results)
    assert db.row(older)["operational_note"] is None
    assert report.message == "Processed 2 payouts, 0 failed, 0 skipped"
    assert [e.kind for e in report.events] == [EscrowEventKind.PAYOUT_COMPLETED] * 2


def test_retry_skips_payouts_the_balance_cannot_cover(db, add_sale, retry_service, gateway) -> None:
    gateway.balance_cents = 100000
    first = _pending(add_sale, "2024-12-20T10:00:00+00:00", payout="600.00")
    second = _pending(add_sale, "2024-12-21T10:00:00+00:00", payout="600.00")
    third = _pending(add_sale, "2024-12-22T10:00:00+00:00", payout="300.00")

    report = retry_service.retry_pending_payouts()

    assert report.processed == 2
    assert report.skipped == 1
    assert report.available_balance_cents == 10000
    assert db.row(first)["transfer_id"] is not None
    assert db.row(second)["transfer_id"] is None
    assert db.row(third)["transfer_id"] is not None


def test_retry_counts_failures_and_keeps_going(db, add_sale, retry_service, gateway) -> None:
    db.tables["profiles"][1]["stripe_account_id"] = None
    _pending(add_sale, "2024-12-20T10:00:00+00:00")

    report = retry_service.retry_pending_payouts()

    assert report.processed == 0
    assert report.failed == 1
    assert report.results[0].outcome is PayoutOutcome.DEFERRED_NO_ACCOUNT
    assert gateway.transfers == []


def test_retry_with_no_balance(add_sale, retry_service, gateway) -> None:
    gateway.balance_cents = 0
    _pending(add_sale, "2024-12-20T10:00:00+00:00")

    report = retry_service.retry_pending_payouts()

    assert report.message == "No available balance for payouts"
    assert gateway.transfers == []


def test_retry_with_nothing_pending(retry_service) -> None:
    assert retry_service.retry_pending_payouts().message == "No pending payouts to process"


def test_retry_respects_limit(add_sale, retry_service) -> None:
    _pending(add_sale, "2024-12-20T10:00:00+00:00")
    _pending(add_sale, "2024-12-21T10:00:00+00:00")

    report = retry_service.retry_pending_payouts(limit=1)

    assert report.processed == 1


def test_balance_lookup_failure(retry_service, gateway) -> None:
    gateway.balance_error = "Invalid API Key provided"

    with pytest.raises(PayoutFailed, match="Could not read platform balance: Invalid API Key provided"):
        retry_service.retry_pending_payouts()
