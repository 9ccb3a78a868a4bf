"""
Sales API Endpoints.

Endpoints for the buyer and seller of a sale: dual confirmation, disputes
and the transaction view. Notifications for a committed change are sent in
a background task after the response.
"""

from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException

from api.auth import get_current_user_id
from api.dependencies import (
    get_confirmation_service,
    get_dispute_service,
    get_notification_dispatcher,
    get_sale_query_service,
)
from api.models import (
    ConfirmRequest,
    ConfirmResponse,
    DisputeRequest,
    DisputeResponse,
    ErrorResponse,
    PayoutResponse,
    TransactionResponse,
)
from domain.errors import EscrowError
from services.confirmation_service import ConfirmationService
from services.dispute_service import DisputeService
from services.notification_service import NotificationDispatcher
from services.sale_query_service import SaleQueryService

router = APIRouter()

_ERRORS = {
    400: {"model": ErrorResponse},
    401: {"model": ErrorResponse},
    403: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
}


@router.post(
    "/sales/confirm",
    response_model=ConfirmResponse,
    responses=_ERRORS,
    summary="Confirm Sale",
    description="Record the caller's buyer or seller confirmation. The second confirmation completes the sale."
)
def confirm_sale(
    request: ConfirmRequest,
    background_tasks: BackgroundTasks,
    caller_id: UUID = Depends(get_current_user_id),
    service: ConfirmationService = Depends(get_confirmation_service),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
):
    """
    Confirm a sale held in escrow.

    **Process:**
    1. Verifies the caller is the party named by `role`
    2. Records the confirmation timestamp (at most once per party)
    3. If the other party already confirmed, the sale completes and the
       seller payout is attempted immediately

    A completed sale whose payout could not be sent (no connected account,
    low platform balance, transfer error) still succeeds; the message says
    what is pending and the payout is retried later.
    """
    try:
        result = service.confirm_sale(request.transaction_id, request.role, caller_id)
        background_tasks.add_task(dispatcher.dispatch, result.events)

        return ConfirmResponse(
            status=result.status,
            message=result.message,
            payout=PayoutResponse.from_result(result.payout) if result.payout else None,
        )

    except (HTTPException, EscrowError):
        raise
    except Exception as e:
        raise HTTPException(
            status_code=500,
            detail=f"Failed to confirm sale: {str(e)}"
        )


@router.post(
    "/sales/dispute",
    response_model=DisputeResponse,
    responses=_ERRORS,
    summary="Raise Dispute",
    description="Freeze an open sale for operator review. No funds move while a dispute is open."
)
def raise_dispute(
    request: DisputeRequest,
    background_tasks: BackgroundTasks,
    caller_id: UUID = Depends(get_current_user_id),
    service: DisputeService = Depends(get_dispute_service),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
):
    """
    Raise a dispute on a sale.

    Either party can dispute while the sale is `paid`, `buyer_confirmed` or
    `seller_confirmed`. The reason must be at least 10 characters.
    """
    try:
        result = service.raise_dispute(request.transaction_id, caller_id, request.reason)
        background_tasks.add_task(dispatcher.dispatch, result.events)
        return DisputeResponse(message=result.message)

    except (HTTPException, EscrowError):
        raise
    except Exception as e:
        raise HTTPException(
            status_code=500,
            detail=f"Failed to raise dispute: {str(e)}"
        )


@router.get(
    "/sales/{transaction_id}",
    response_model=TransactionResponse,
    responses=_ERRORS,
    summary="Get Sale",
    description="Retrieve a sale and its transition history. Only the buyer and seller can view it."
)
def get_sale(
    transaction_id: UUID,
    caller_id: UUID = Depends(get_current_user_id),
    service: SaleQueryService = Depends(get_sale_query_service),
):
    try:
        view = service.get_transaction_for_party(transaction_id, caller_id)
        return TransactionResponse.from_transaction(view.transaction, view.history)

    except (HTTPException, EscrowError):
        raise
    except Exception as e:
        raise HTTPException(
            status_code=500,
            detail=f"Failed to retrieve sale: {str(e)}"
        )
