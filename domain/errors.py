"""
Domain: escrow error taxonomy.

Validation and authorization failures are raised before any state mutation
(fail closed). Payout problems inside the confirmation flow are recorded as
outcomes (see domain.payout) and never raised; only an operator-initiated
money movement surfaces `PayoutFailed`.
"""

from __future__ import annotations


class EscrowError(Exception):
    """Base class for every failure the escrow core reports to a caller."""

    http_status: int = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class TransactionNotFound(EscrowError):
    http_status = 404


class Unauthorized(EscrowError):
    """Caller is not the party (or not an operator) required for the action."""

    http_status = 403


class ValidationError(EscrowError):
    http_status = 400


class InvalidState(EscrowError):
    """The action is not valid for the transaction's current status."""

    http_status = 409


class AlreadyConfirmed(InvalidState):
    pass


class DisputeAlreadyOpen(InvalidState):
    pass


class ConcurrentModification(InvalidState):
    """A guarded update kept losing to concurrent writers."""


class PayoutFailed(EscrowError):
    """The payment processor rejected an operator-initiated money movement."""

    http_status = 502


__all__ = [
    "EscrowError",
    "TransactionNotFound",
    "Unauthorized",
    "ValidationError",
    "InvalidState",
    "AlreadyConfirmed",
    "DisputeAlreadyOpen",
    "ConcurrentModification",
    "PayoutFailed",
]
