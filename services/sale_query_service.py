"""Read-side queries for parties to a sale."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List
from uuid import UUID

from domain.errors import TransactionNotFound, Unauthorized
from domain.events import TransitionRecord
from domain.sale import SaleTransaction
from repositories.sale_transaction_repository import SaleTransactionRepository
from repositories.transition_log_repository import TransitionLogRepository


@dataclass(frozen=True, slots=True)
class TransactionView:
    transaction: SaleTransaction
    history: List[TransitionRecord]


class SaleQueryService:
    def __init__(self, transactions: SaleTransactionRepository, log: TransitionLogRepository) -> None:
        self._transactions = transactions
        self._log = log

    def get_transaction_for_party(self, transaction_id: UUID, caller_id: UUID) -> TransactionView:
        """Return a transaction and its transition history to its buyer or seller."""

        transaction = self._transactions.get_by_id(transaction_id)
        if transaction is None:
            raise TransactionNotFound("Transaction not found")
        if transaction.role_of(caller_id) is None:
            raise Unauthorized("Not authorized to view this transaction")
        return TransactionView(transaction=transaction, history=self._log.list_for_transaction(transaction_id))


__all__ = ["SaleQueryService", "TransactionView"]
