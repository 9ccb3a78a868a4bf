"""
Pending payout retry.

Completed sales whose payout was deferred or failed keep
`payout_completed_at` NULL. This job walks them oldest first and spends the
available platform balance on them, skipping any payout the remaining
balance can no longer cover.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, List, Optional

from domain.errors import PayoutFailed
from domain.events import EscrowEvent
from domain.payout import PayoutIntent, PayoutOutcome, PayoutResult, format_dollars, to_cents
from repositories.sale_transaction_repository import SaleTransactionRepository
from services.outbox import EventOutbox
from services.payout_service import PayoutService
from services.stripe_gateway import PaymentProcessorError

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class PayoutRetryReport:
    """
    processed: payouts transferred in this run
    failed: payouts attempted but deferred or rejected
    skipped: payouts not attempted because the remaining balance was too low
    """

    processed: int
    failed: int
    skipped: int
    available_balance_cents: int
    results: List[PayoutResult] = field(default_factory=list)
    events: List[EscrowEvent] = field(default_factory=list)

    @property
    def message(self) -> str:
        if not self.results and self.skipped == 0:
            if self.available_balance_cents <= 0:
                return "No available balance for payouts"
            return "No pending payouts to process"
        return f"Processed {self.processed} payouts, {self.failed} failed, {self.skipped} skipped"


class PayoutRetryService:
    def __init__(
        self,
        transactions: SaleTransactionRepository,
        payouts: PayoutService,
        gateway: Any,
        *,
        currency: str = "usd",
    ) -> None:
        self._transactions = transactions
        self._payouts = payouts
        self._gateway = gateway
        self._currency = currency

    def retry_pending_payouts(self, limit: Optional[int] = None) -> PayoutRetryReport:
        """
        Retry every outstanding payout the platform balance can cover.

        Raises:
            PayoutFailed: the platform balance could not be read
        """

        try:
            remaining = self._gateway.get_available_balance(self._currency)
        except PaymentProcessorError as e:
            raise PayoutFailed(f"Could not read platform balance: {e.message}") from e

        logger.info("Payout retry started", extra={"available_balance": format_dollars(remaining)})
        if remaining <= 0:
            return PayoutRetryReport(processed=0, failed=0, skipped=0, available_balance_cents=0)

        pending = self._transactions.list_pending_payouts(limit=limit)
        outbox = EventOutbox()
        results: List[PayoutResult] = []
        processed = failed = skipped = 0

        for transaction in pending:
            amount_cents = to_cents(transaction.seller_payout)
            if amount_cents > remaining:
                logger.info(
                    "Insufficient balance for payout, skipping",
                    extra={
                        "transaction_id": str(transaction.transaction_id),
                        "required": format_dollars(amount_cents),
                        "available": format_dollars(remaining),
                    },
                )
                skipped += 1
                continue

            result = self._payouts.initiate_payout(
                transaction, PayoutIntent.RETRY, outbox, available_cents=remaining
            )
            results.append(result)
            if result.outcome is PayoutOutcome.TRANSFERRED:
                remaining -= amount_cents
                processed += 1
            elif result.outcome is not PayoutOutcome.ALREADY_PAID:
                failed += 1

        report = PayoutRetryReport(
            processed=processed,
            failed=failed,
            skipped=skipped,
            available_balance_cents=remaining,
            results=results,
            events=outbox.drain(),
        )
        logger.info(
            "Payout retry complete",
            extra={"processed": processed, "failed": failed, "skipped": skipped},
        )
        return report


__all__ = ["PayoutRetryReport", "PayoutRetryService"]
