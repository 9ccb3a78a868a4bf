"""
Admin API Endpoints.

Operator-only endpoints: dispute queue, dispute resolution and the pending
payout retry. Every endpoint checks the caller's admin capability.
"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query

from api.auth import get_current_user_id
from api.dependencies import (
    get_notification_dispatcher,
    get_payout_retry_service,
    get_resolution_service,
)
from api.models import (
    DisputeListResponse,
    ErrorResponse,
    PayoutResponse,
    PayoutRetryResponse,
    ResolveDisputeRequest,
    ResolveDisputeResponse,
    TransactionResponse,
)
from domain.errors import EscrowError
from services.notification_service import NotificationDispatcher
from services.payout_retry_service import PayoutRetryService
from services.resolution_service import ResolutionService

router = APIRouter()

_ERRORS = {
    401: {"model": ErrorResponse},
    403: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
    502: {"model": ErrorResponse},
}


@router.post(
    "/admin/disputes/resolve",
    response_model=ResolveDisputeResponse,
    responses=_ERRORS,
    summary="Resolve Dispute",
    description="Refund the buyer or release the payout to the seller for a disputed sale."
)
def resolve_dispute(
    request: ResolveDisputeRequest,
    background_tasks: BackgroundTasks,
    operator_id: UUID = Depends(get_current_user_id),
    service: ResolutionService = Depends(get_resolution_service),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
):
    """
    Resolve a dispute.

    **Resolutions:**
    - `refund_buyer`: full refund of the payment, status becomes `refunded`
    - `release_to_seller`: seller payout is transferred, status becomes `completed`

    If the refund or transfer is rejected the dispute stays open and the
    processor's error is returned with status 502.
    """
    try:
        result = service.resolve_dispute(
            request.transaction_id, operator_id, request.resolution, request.admin_notes
        )
        background_tasks.add_task(dispatcher.dispatch, result.events)
        return ResolveDisputeResponse(status=result.status, message=result.message)

    except (HTTPException, EscrowError):
        raise
    except Exception as e:
        raise HTTPException(
            status_code=500,
            detail=f"Failed to resolve dispute: {str(e)}"
        )


@router.get(
    "/admin/disputes",
    response_model=DisputeListResponse,
    responses=_ERRORS,
    summary="List Open Disputes",
    description="All disputed sales, oldest dispute first."
)
def list_disputes(
    operator_id: UUID = Depends(get_current_user_id),
    service: ResolutionService = Depends(get_resolution_service),
):
    try:
        disputes = service.list_open_disputes(operator_id)
        return DisputeListResponse(
            items=[TransactionResponse.from_transaction(t) for t in disputes],
            total_count=len(disputes),
        )

    except (HTTPException, EscrowError):
        raise
    except Exception as e:
        raise HTTPException(
            status_code=500,
            detail=f"Failed to list disputes: {str(e)}"
        )


@router.post(
    "/admin/payouts/retry",
    response_model=PayoutRetryResponse,
    responses=_ERRORS,
    summary="Retry Pending Payouts",
    description="Send outstanding seller payouts for completed sales, as far as the platform balance allows."
)
def retry_payouts(
    background_tasks: BackgroundTasks,
    limit: Optional[int] = Query(None, ge=1, le=500, description="Maximum number of pending payouts to attempt"),
    operator_id: UUID = Depends(get_current_user_id),
    resolution_service: ResolutionService = Depends(get_resolution_service),
    service: PayoutRetryService = Depends(get_payout_retry_service),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
):
    try:
        resolution_service.require_operator(operator_id)
        report = service.retry_pending_payouts(limit=limit)
        background_tasks.add_task(dispatcher.dispatch, report.events)

        return PayoutRetryResponse(
            message=report.message,
            processed=report.processed,
            failed=report.failed,
            skipped=report.skipped,
            available_balance_cents=report.available_balance_cents,
            results=[PayoutResponse.from_result(r) for r in report.results],
        )

    except (HTTPException, EscrowError):
        raise
    except Exception as e:
        raise HTTPException(
            status_code=500,
            detail=f"Failed to retry payouts: {str(e)}"
        )
