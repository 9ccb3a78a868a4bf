"""
Dependency providers for the API routers.

Each provider builds one collaborator from the ones below it, so tests can
replace any layer through `app.dependency_overrides`.

Collaborators that own an HTTP connection pool (the Stripe gateway and the
notification channels) are built once per process and closed by
`close_http_clients` on application shutdown.
"""

from functools import lru_cache
from typing import Any, List, Optional

from fastapi import Depends

from config.settings import Settings, get_settings
from repositories.notification_repository import NotificationRepository
from repositories.profile_repository import ProfileRepository
from repositories.sale_transaction_repository import SaleTransactionRepository
from repositories.transition_log_repository import TransitionLogRepository
from services.confirmation_service import ConfirmationService
from services.dispute_service import DisputeService
from services.notification_service import (
    NotificationDispatcher,
    ResendEmailSender,
    ZendeskSupportDesk,
    email_sender_from_settings,
    support_desk_from_settings,
)
from services.outbox import TransitionRecorder
from services.payout_retry_service import PayoutRetryService
from services.payout_service import PayoutService
from services.resolution_service import ResolutionService
from services.sale_query_service import SaleQueryService
from services.stripe_gateway import StripeGateway

_open_clients: List[Any] = []


@lru_cache(maxsize=1)
def _stripe_gateway(settings: Settings) -> StripeGateway:
    gateway = StripeGateway.from_settings(settings)
    _open_clients.append(gateway)
    return gateway


@lru_cache(maxsize=1)
def _email_sender(settings: Settings) -> Optional[ResendEmailSender]:
    sender = email_sender_from_settings(settings)
    if sender is not None:
        _open_clients.append(sender)
    return sender


@lru_cache(maxsize=1)
def _support_desk(settings: Settings) -> Optional[ZendeskSupportDesk]:
    desk = support_desk_from_settings(settings)
    if desk is not None:
        _open_clients.append(desk)
    return desk


def close_http_clients() -> None:
    """Close every cached HTTP client and forget it."""

    while _open_clients:
        _open_clients.pop().close()
    _stripe_gateway.cache_clear()
    _email_sender.cache_clear()
    _support_desk.cache_clear()


def get_transaction_repository() -> SaleTransactionRepository:
    return SaleTransactionRepository()


def get_transition_log_repository() -> TransitionLogRepository:
    return TransitionLogRepository()


def get_profile_repository() -> ProfileRepository:
    return ProfileRepository()


def get_notification_repository() -> NotificationRepository:
    return NotificationRepository()


def get_gateway(settings: Settings = Depends(get_settings)) -> StripeGateway:
    return _stripe_gateway(settings)


def get_recorder(
    log: TransitionLogRepository = Depends(get_transition_log_repository),
) -> TransitionRecorder:
    return TransitionRecorder(log)


def get_payout_service(
    settings: Settings = Depends(get_settings),
    transactions: SaleTransactionRepository = Depends(get_transaction_repository),
    profiles: ProfileRepository = Depends(get_profile_repository),
    gateway: StripeGateway = Depends(get_gateway),
    recorder: TransitionRecorder = Depends(get_recorder),
) -> PayoutService:
    return PayoutService(transactions, profiles, gateway, recorder, currency=settings.payout_currency)


def get_confirmation_service(
    transactions: SaleTransactionRepository = Depends(get_transaction_repository),
    payouts: PayoutService = Depends(get_payout_service),
    recorder: TransitionRecorder = Depends(get_recorder),
) -> ConfirmationService:
    return ConfirmationService(transactions, payouts, recorder)


def get_dispute_service(
    transactions: SaleTransactionRepository = Depends(get_transaction_repository),
    recorder: TransitionRecorder = Depends(get_recorder),
) -> DisputeService:
    return DisputeService(transactions, recorder)


def get_resolution_service(
    transactions: SaleTransactionRepository = Depends(get_transaction_repository),
    profiles: ProfileRepository = Depends(get_profile_repository),
    gateway: StripeGateway = Depends(get_gateway),
    payouts: PayoutService = Depends(get_payout_service),
    recorder: TransitionRecorder = Depends(get_recorder),
) -> ResolutionService:
    return ResolutionService(transactions, profiles, gateway, payouts, recorder)


def get_payout_retry_service(
    settings: Settings = Depends(get_settings),
    transactions: SaleTransactionRepository = Depends(get_transaction_repository),
    payouts: PayoutService = Depends(get_payout_service),
    gateway: StripeGateway = Depends(get_gateway),
) -> PayoutRetryService:
    return PayoutRetryService(transactions, payouts, gateway, currency=settings.payout_currency)


def get_sale_query_service(
    transactions: SaleTransactionRepository = Depends(get_transaction_repository),
    log: TransitionLogRepository = Depends(get_transition_log_repository),
) -> SaleQueryService:
    return SaleQueryService(transactions, log)


def get_notification_dispatcher(
    settings: Settings = Depends(get_settings),
    profiles: ProfileRepository = Depends(get_profile_repository),
    notifications: NotificationRepository = Depends(get_notification_repository),
) -> NotificationDispatcher:
    return NotificationDispatcher(
        profiles,
        notifications,
        email_sender=_email_sender(settings),
        support_desk=_support_desk(settings),
        support_email=settings.support_email,
    )
