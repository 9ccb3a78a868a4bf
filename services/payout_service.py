"""
Payout service for releasing escrowed funds to sellers.

Handles:
- Best-effort payout when a sale completes by dual confirmation
- Deferral when the seller has no connected account or the platform balance
  is short (the sale stays completed; the payout is retried out-of-band)
- Recording processor failures without rolling back the completed sale
- Strict transfers for operator releases, where failures are surfaced

All transfers for a transaction share one deterministic idempotency key and
the transfer reference is stored behind a `transfer_id IS NULL` guard, so a
transaction is paid out at most once.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Optional

from domain.errors import InvalidState, PayoutFailed
from domain.events import ActorRole, EscrowEventKind
from domain.payout import (
    NO_ACCOUNT_NOTE,
    PayoutIntent,
    PayoutOutcome,
    PayoutResult,
    format_dollars,
    insufficient_balance_note,
    payout_idempotency_key,
    to_cents,
    transfer_failed_note,
    transfer_group,
    transfer_unrecorded_note,
)
from domain.sale import SaleStatus, SaleTransaction
from domain.time import utc_now
from repositories.profile_repository import ProfileRepository
from repositories.sale_transaction_repository import SaleTransactionRepository
from services.outbox import EventOutbox, TransitionRecorder
from services.stripe_gateway import PaymentProcessorError

logger = logging.getLogger(__name__)


class PayoutService:
    def __init__(
        self,
        transactions: SaleTransactionRepository,
        profiles: ProfileRepository,
        gateway: Any,
        recorder: TransitionRecorder,
        *,
        currency: str = "usd",
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._transactions = transactions
        self._profiles = profiles
        self._gateway = gateway
        self._recorder = recorder
        self._currency = currency
        self._clock = clock

    def _transfer(self, transaction: SaleTransaction, destination: str, intent: PayoutIntent) -> str:
        return self._gateway.create_transfer(
            amount_cents=to_cents(transaction.seller_payout),
            currency=transaction.currency or self._currency,
            destination=destination,
            idempotency_key=payout_idempotency_key(transaction.transaction_id),
            transfer_group=transfer_group(transaction.transaction_id),
            metadata={
                "transaction_id": str(transaction.transaction_id),
                "listing_id": str(transaction.listing_id) if transaction.listing_id else None,
                "intent": intent.value,
            },
        )

    def _defer(
        self,
        transaction: SaleTransaction,
        outcome: PayoutOutcome,
        note: str,
        outbox: EventOutbox,
        *,
        transfer_id: Optional[str] = None,
    ) -> PayoutResult:
        try:
            updated = self._transactions.set_operational_note(transaction.transaction_id, note, self._clock())
        except RuntimeError as e:
            logger.error(
                "Could not store payout note",
                extra={"transaction_id": str(transaction.transaction_id), "error": str(e)},
            )
            updated = None
        snapshot = updated or transaction

        if outcome is PayoutOutcome.FAILED:
            kind = EscrowEventKind.PAYOUT_FAILED
        else:
            kind = EscrowEventKind.PAYOUT_DEFERRED

        logger.warning(
            "Payout not completed",
            extra={"transaction_id": str(transaction.transaction_id), "outcome": outcome.value, "note": note},
        )
        self._recorder.record(
            outbox,
            kind,
            snapshot,
            from_status=transaction.status,
            actor_role=ActorRole.SYSTEM,
            detail=note,
        )
        return PayoutResult(
            transaction_id=transaction.transaction_id,
            outcome=outcome,
            amount_cents=to_cents(transaction.seller_payout),
            note=note,
            transfer_id=transfer_id,
        )

    def initiate_payout(
        self,
        transaction: SaleTransaction,
        intent: PayoutIntent,
        outbox: EventOutbox,
        *,
        available_cents: Optional[int] = None,
    ) -> PayoutResult:
        """
        Attempt the seller payout for a completed transaction.

        Never raises for payout problems: deferrals, processor errors and
        store errors are stored on the transaction as an operational note
        (when the store accepts it) and returned as the result's outcome.

        Args:
            transaction: Snapshot in `completed` status
            intent: Why the payout runs (recorded in processor metadata)
            outbox: Receives PayoutCompleted / PayoutDeferred / PayoutFailed
            available_cents: Known platform balance; looked up when omitted
        """

        if transaction.status is not SaleStatus.COMPLETED:
            raise ValueError(f"Cannot pay out transaction with status: {transaction.status.value}")

        amount_cents = to_cents(transaction.seller_payout)
        if transaction.transfer_id:
            return PayoutResult(
                transaction_id=transaction.transaction_id,
                outcome=PayoutOutcome.ALREADY_PAID,
                amount_cents=amount_cents,
                transfer_id=transaction.transfer_id,
                completed_at=transaction.payout_completed_at,
            )

        try:
            destination = self._profiles.get_payout_account(transaction.seller_id)
            if not destination:
                return self._defer(transaction, PayoutOutcome.DEFERRED_NO_ACCOUNT, NO_ACCOUNT_NOTE, outbox)

            if available_cents is None:
                available_cents = self._gateway.get_available_balance(transaction.currency or self._currency)
            if amount_cents > available_cents:
                return self._defer(
                    transaction,
                    PayoutOutcome.DEFERRED_INSUFFICIENT_BALANCE,
                    insufficient_balance_note(amount_cents, available_cents),
                    outbox,
                )

            logger.info(
                "Creating payout transfer",
                extra={
                    "transaction_id": str(transaction.transaction_id),
                    "amount": format_dollars(amount_cents),
                    "destination": destination,
                    "intent": intent.value,
                },
            )
            transfer_id = self._transfer(transaction, destination, intent)
        except (PaymentProcessorError, RuntimeError) as e:
            return self._defer(transaction, PayoutOutcome.FAILED, transfer_failed_note(str(e)), outbox)

        completed_at = self._clock()
        try:
            updated = self._transactions.record_payout(transaction.transaction_id, transfer_id, completed_at)
        except RuntimeError as e:
            # The next attempt reuses the idempotency key and gets this transfer back.
            logger.error(
                "Payout transfer created but not recorded",
                extra={"transaction_id": str(transaction.transaction_id), "transfer_id": transfer_id, "error": str(e)},
            )
            return self._defer(
                transaction,
                PayoutOutcome.FAILED,
                transfer_unrecorded_note(transfer_id, str(e)),
                outbox,
                transfer_id=transfer_id,
            )

        if updated is None:
            # Another attempt recorded its transfer first; the shared idempotency
            # key means the processor executed a single transfer.
            try:
                current = self._transactions.get_by_id(transaction.transaction_id)
            except RuntimeError:
                current = None
            logger.warning(
                "Payout already recorded by a concurrent attempt",
                extra={"transaction_id": str(transaction.transaction_id), "transfer_id": transfer_id},
            )
            return PayoutResult(
                transaction_id=transaction.transaction_id,
                outcome=PayoutOutcome.ALREADY_PAID,
                amount_cents=amount_cents,
                transfer_id=current.transfer_id if current else transfer_id,
                completed_at=current.payout_completed_at if current else None,
            )

        self._recorder.record(
            outbox,
            EscrowEventKind.PAYOUT_COMPLETED,
            updated,
            from_status=transaction.status,
            actor_role=ActorRole.SYSTEM,
            detail=f"Transfer {transfer_id} for {format_dollars(amount_cents)}",
        )
        return PayoutResult(
            transaction_id=transaction.transaction_id,
            outcome=PayoutOutcome.TRANSFERRED,
            amount_cents=amount_cents,
            transfer_id=transfer_id,
            completed_at=completed_at,
        )

    def release_funds(self, transaction: SaleTransaction, intent: PayoutIntent) -> str:
        """
        Transfer the seller payout or raise; used when an operator releases funds.

        Unlike `initiate_payout`, nothing is written to the transaction here:
        the caller records the transfer as part of its own guarded transition.

        Raises:
            InvalidState: no payout account, or the platform balance cannot cover it
            PayoutFailed: the processor rejected the transfer
        """

        amount_cents = to_cents(transaction.seller_payout)
        try:
            destination = self._profiles.get_payout_account(transaction.seller_id)
            if not destination:
                raise InvalidState("Seller has no connected Stripe account")

            available_cents = self._gateway.get_available_balance(transaction.currency or self._currency)
            if amount_cents > available_cents:
                raise InvalidState(
                    f"Insufficient platform balance: need {format_dollars(amount_cents)}, "
                    f"have {format_dollars(available_cents)}"
                )

            return self._transfer(transaction, destination, intent)
        except PaymentProcessorError as e:
            logger.warning(
                "Release transfer failed",
                extra={"transaction_id": str(transaction.transaction_id), "error": e.message},
            )
            raise PayoutFailed(f"Transfer failed: {e.message}") from e


__all__ = ["PayoutService"]
