#!/usr/bin/env python3
"""
Pending Payout Retry Script

Sends outstanding seller payouts for completed sales whose payout was
deferred (no connected account, low platform balance) or failed. Meant to
run on a schedule; safe to run repeatedly because every transfer carries
the sale's idempotency key.

Usage:
    python retry_pending_payouts.py
    python retry_pending_payouts.py --limit 50
    python retry_pending_payouts.py --no-notify
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from config.settings import get_settings
from domain.payout import format_dollars
from repositories.notification_repository import NotificationRepository
from repositories.profile_repository import ProfileRepository
from repositories.sale_transaction_repository import SaleTransactionRepository
from repositories.transition_log_repository import TransitionLogRepository
from services.notification_service import NotificationDispatcher
from services.outbox import TransitionRecorder
from services.payout_retry_service import PayoutRetryService
from services.payout_service import PayoutService
from services.stripe_gateway import StripeGateway


def main() -> int:
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        description="Retry pending seller payouts for completed sales",
    )

    parser.add_argument(
        "--limit",
        "-l",
        type=int,
        default=None,
        help="Maximum number of pending payouts to attempt"
    )

    parser.add_argument(
        "--no-notify",
        action="store_true",
        help="Do not send payout notifications"
    )

    args = parser.parse_args()

    settings = get_settings()
    logging.basicConfig(level=settings.log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    gateway = None
    try:
        transactions = SaleTransactionRepository()
        profiles = ProfileRepository()
        gateway = StripeGateway.from_settings(settings)
        recorder = TransitionRecorder(TransitionLogRepository())
        payouts = PayoutService(transactions, profiles, gateway, recorder, currency=settings.payout_currency)
        service = PayoutRetryService(transactions, payouts, gateway, currency=settings.payout_currency)

        report = service.retry_pending_payouts(limit=args.limit)

        print("=" * 60)
        print("PAYOUT RETRY SUMMARY")
        print("=" * 60)
        print(report.message)
        for result in report.results:
            print(f"  {result.transaction_id}  {format_dollars(result.amount_cents):>12}  {result.outcome.value}")
        print(f"Remaining platform balance: {format_dollars(report.available_balance_cents)}")
        print("=" * 60)

        if report.events and not args.no_notify:
            dispatcher = NotificationDispatcher.from_settings(settings, profiles, NotificationRepository())
            try:
                dispatcher.dispatch(report.events)
            finally:
                dispatcher.close()

        return 0 if report.failed == 0 else 2

    except KeyboardInterrupt:
        print("\n\nPayout retry interrupted by user")
        return 130

    except Exception as e:
        print(f"\nERROR: {e}", file=sys.stderr)
        import traceback
        traceback.print_exc()
        return 1

    finally:
        if gateway is not None:
            gateway.close()


if __name__ == "__main__":
    sys.exit(main())
