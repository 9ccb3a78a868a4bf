"""
API Request and Response Models.

Pydantic models for validating API requests and serializing responses.
"""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from domain.events import TransitionRecord
from domain.payout import PayoutResult
from domain.sale import PartyRole, Resolution, SaleStatus, SaleTransaction


# ============================================================================
# Sale Models
# ============================================================================

class ConfirmRequest(BaseModel):
    """Request to confirm a sale as buyer or seller."""
    transaction_id: UUID
    role: PartyRole

    class Config:
        json_schema_extra = {
            "example": {
                "transaction_id": "123e4567-e89b-12d3-a456-426614174000",
                "role": "buyer"
            }
        }


class PayoutResponse(BaseModel):
    """Outcome of one payout attempt."""
    transaction_id: UUID
    outcome: str  # "transferred", "deferred_no_account", ...
    amount_cents: int
    note: Optional[str] = None
    transfer_id: Optional[str] = None

    @classmethod
    def from_result(cls, result: PayoutResult) -> "PayoutResponse":
        return cls(
            transaction_id=result.transaction_id,
            outcome=result.outcome.value,
            amount_cents=result.amount_cents,
            note=result.note,
            transfer_id=result.transfer_id,
        )


class ConfirmResponse(BaseModel):
    """Response for a sale confirmation."""
    success: bool = True
    status: SaleStatus
    message: str
    payout: Optional[PayoutResponse] = None

    class Config:
        json_schema_extra = {
            "example": {
                "success": True,
                "status": "buyer_confirmed",
                "message": "Buyer confirmation recorded. Waiting for seller confirmation.",
                "payout": None
            }
        }


class DisputeRequest(BaseModel):
    """Request to open a dispute on a sale."""
    transaction_id: UUID
    reason: str = Field(..., description="What went wrong, at least 10 characters")

    class Config:
        json_schema_extra = {
            "example": {
                "transaction_id": "123e4567-e89b-12d3-a456-426614174000",
                "reason": "The trailer was not in the condition described in the listing."
            }
        }


class DisputeResponse(BaseModel):
    """Response for a submitted dispute."""
    success: bool = True
    message: str

    class Config:
        json_schema_extra = {
            "example": {
                "success": True,
                "message": "Dispute submitted successfully. Our team will review it shortly."
            }
        }


class TransitionResponse(BaseModel):
    """One entry of a transaction's audit history."""
    event: str
    from_status: Optional[SaleStatus] = None
    to_status: SaleStatus
    actor_role: str
    actor_id: Optional[UUID] = None
    detail: Optional[str] = None
    created_at: datetime

    @classmethod
    def from_record(cls, record: TransitionRecord) -> "TransitionResponse":
        return cls(
            event=record.event.value,
            from_status=record.from_status,
            to_status=record.to_status,
            actor_role=record.actor_role.value,
            actor_id=record.actor_id,
            detail=record.detail,
            created_at=record.created_at,
        )


class TransactionResponse(BaseModel):
    """A sale transaction as seen by one of its parties or an operator."""
    transaction_id: UUID
    listing_id: Optional[UUID] = None
    buyer_id: UUID
    seller_id: UUID
    amount: Decimal
    platform_fee: Decimal
    seller_payout: Decimal
    currency: str
    status: SaleStatus
    fulfillment_type: Optional[str] = None
    buyer_confirmed_at: Optional[datetime] = None
    seller_confirmed_at: Optional[datetime] = None
    payout_completed_at: Optional[datetime] = None
    dispute_reason: Optional[str] = None
    disputed_by: Optional[PartyRole] = None
    disputed_at: Optional[datetime] = None
    resolution: Optional[Resolution] = None
    resolved_at: Optional[datetime] = None
    operational_note: Optional[str] = None
    created_at: Optional[datetime] = None
    history: List[TransitionResponse] = Field(default_factory=list)

    class Config:
        json_schema_extra = {
            "example": {
                "transaction_id": "123e4567-e89b-12d3-a456-426614174000",
                "listing_id": "123e4567-e89b-12d3-a456-426614174009",
                "buyer_id": "123e4567-e89b-12d3-a456-426614174001",
                "seller_id": "123e4567-e89b-12d3-a456-426614174002",
                "amount": "12500.00",
                "platform_fee": "1625.00",
                "seller_payout": "10875.00",
                "currency": "usd",
                "status": "buyer_confirmed",
                "buyer_confirmed_at": "2025-01-01T12:00:00Z",
                "history": []
            }
        }

    @classmethod
    def from_transaction(
        cls,
        transaction: SaleTransaction,
        history: Optional[List[TransitionRecord]] = None,
    ) -> "TransactionResponse":
        return cls(
            transaction_id=transaction.transaction_id,
            listing_id=transaction.listing_id,
            buyer_id=transaction.buyer_id,
            seller_id=transaction.seller_id,
            amount=transaction.amount,
            platform_fee=transaction.platform_fee,
            seller_payout=transaction.seller_payout,
            currency=transaction.currency,
            status=transaction.status,
            fulfillment_type=transaction.fulfillment_type,
            buyer_confirmed_at=transaction.buyer_confirmed_at,
            seller_confirmed_at=transaction.seller_confirmed_at,
            payout_completed_at=transaction.payout_completed_at,
            dispute_reason=transaction.dispute_reason,
            disputed_by=transaction.disputed_by,
            disputed_at=transaction.disputed_at,
            resolution=transaction.resolution,
            resolved_at=transaction.resolved_at,
            operational_note=transaction.operational_note,
            created_at=transaction.created_at,
            history=[TransitionResponse.from_record(r) for r in history or []],
        )


# ============================================================================
# Admin Models
# ============================================================================

class ResolveDisputeRequest(BaseModel):
    """Operator decision on a disputed sale."""
    transaction_id: UUID
    resolution: Resolution
    admin_notes: Optional[str] = None

    class Config:
        json_schema_extra = {
            "example": {
                "transaction_id": "123e4567-e89b-12d3-a456-426614174000",
                "resolution": "refund_buyer",
                "admin_notes": "Seller confirmed the item was damaged in transit."
            }
        }


class ResolveDisputeResponse(BaseModel):
    """Response for a resolved dispute."""
    success: bool = True
    status: SaleStatus
    message: str

    class Config:
        json_schema_extra = {
            "example": {
                "success": True,
                "status": "refunded",
                "message": "Dispute resolved: Full refund issued to buyer"
            }
        }


class DisputeListResponse(BaseModel):
    """Open disputes, oldest first."""
    items: List[TransactionResponse]
    total_count: int


class PayoutRetryResponse(BaseModel):
    """Summary of a pending payout retry run."""
    success: bool = True
    message: str
    processed: int
    failed: int
    skipped: int
    available_balance_cents: int
    results: List[PayoutResponse] = Field(default_factory=list)

    class Config:
        json_schema_extra = {
            "example": {
                "success": True,
                "message": "Processed 2 payouts, 0 failed, 1 skipped",
                "processed": 2,
                "failed": 0,
                "skipped": 1,
                "available_balance_cents": 4200,
                "results": []
            }
        }


class ErrorResponse(BaseModel):
    """Body of every failed request."""
    error: str

    class Config:
        json_schema_extra = {
            "example": {
                "error": "Not authorized to confirm as buyer"
            }
        }
