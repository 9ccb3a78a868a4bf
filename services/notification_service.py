"""
Notification fan-out for escrow events.

Consumes the domain events produced by the escrow services after their state
change has been committed, and broadcasts them over three independent
channels:
- Transactional email (Resend)
- In-app notifications (Supabase `notifications` table)
- Support tickets for disputes (Zendesk)

Every send is isolated: a failing channel (or a failing contact lookup) is
logged and counted, never raised, and never affects the other channels or
the already-committed transition.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Iterable, List, Optional, Sequence
from uuid import UUID

import httpx

from config.settings import Settings
from domain.events import EscrowEvent, EscrowEventKind
from domain.payout import format_dollars, to_cents
from domain.sale import PartyRole, Resolution, SaleStatus
from repositories.notification_repository import InAppNotification, NotificationRepository
from repositories.profile_repository import PartyContact, ProfileRepository
from services.email_templates import EmailContext, render_party_email, render_support_email

logger = logging.getLogger(__name__)


class ResendEmailSender:
    """Sends transactional email through the Resend REST API."""

    def __init__(
        self,
        api_key: str,
        sender: str,
        *,
        timeout: float = 10.0,
        http_client: Optional[httpx.Client] = None,
    ) -> None:
        self._client = http_client or httpx.Client(timeout=timeout)
        self._api_key = api_key
        self._sender = sender

    def close(self) -> None:
        self._client.close()

    def send(self, to: Sequence[str], subject: str, html: str) -> Optional[str]:
        response = self._client.post(
            "https://api.resend.com/emails",
            json={"from": self._sender, "to": list(to), "subject": subject, "html": html},
            headers={"Authorization": f"Bearer {self._api_key}"},
        )
        response.raise_for_status()
        return response.json().get("id")


class ZendeskSupportDesk:
    """Creates and solves dispute tickets through the Zendesk Support API."""

    def __init__(
        self,
        subdomain: str,
        email: str,
        api_key: str,
        *,
        timeout: float = 10.0,
        http_client: Optional[httpx.Client] = None,
    ) -> None:
        self._client = http_client or httpx.Client(timeout=timeout)
        self._base_url = f"https://{subdomain}.zendesk.com/api/v2"
        self._auth = httpx.BasicAuth(f"{email}/token", api_key)

    def close(self) -> None:
        self._client.close()

    @staticmethod
    def ticket_subject(listing_title: str, transaction_id: UUID) -> str:
        return f"[DISPUTE] {listing_title} - Transaction {str(transaction_id)[:8]}"

    def create_ticket(
        self,
        *,
        subject: str,
        description: str,
        requester_name: str,
        requester_email: str,
        tags: Sequence[str],
    ) -> int:
        response = self._client.post(
            f"{self._base_url}/tickets.json",
            json={
                "ticket": {
                    "subject": subject,
                    "comment": {"body": description},
                    "requester": {"name": requester_name, "email": requester_email},
                    "priority": "urgent",
                    "type": "problem",
                    "tags": list(tags),
                }
            },
            auth=self._auth,
        )
        response.raise_for_status()
        return int(response.json()["ticket"]["id"])

    def solve_dispute_ticket(self, transaction_id: UUID, body: str, tags: Sequence[str]) -> Optional[int]:
        """
        Find the open dispute ticket for a transaction and mark it solved.

        Returns:
            The solved ticket ID, or None when no matching ticket exists
        """

        short_id = str(transaction_id)[:8]
        search = self._client.get(
            f"{self._base_url}/search.json",
            params={"query": f'type:ticket subject:"{short_id}"'},
            auth=self._auth,
        )
        search.raise_for_status()

        tickets = [
            r
            for r in search.json().get("results", [])
            if r.get("result_type") == "ticket"
            and "[DISPUTE]" in (r.get("subject") or "")
            and short_id in (r.get("subject") or "")
        ]
        if not tickets:
            logger.info("No matching support ticket found for dispute", extra={"transaction_id": str(transaction_id)})
            return None

        ticket_id = int(tickets[0]["id"])
        update = self._client.put(
            f"{self._base_url}/tickets/{ticket_id}.json",
            json={
                "ticket": {
                    "status": "solved",
                    "comment": {"body": body, "public": False},
                    "tags": list(tags),
                }
            },
            auth=self._auth,
        )
        update.raise_for_status()
        return ticket_id


def email_sender_from_settings(settings: Settings) -> Optional[ResendEmailSender]:
    if not settings.resend_api_key:
        logger.info("RESEND_API_KEY not set, email notifications disabled")
        return None
    return ResendEmailSender(settings.resend_api_key, settings.email_from, timeout=settings.http_timeout_seconds)


def support_desk_from_settings(settings: Settings) -> Optional[ZendeskSupportDesk]:
    if not settings.zendesk_configured:
        logger.info("Zendesk not configured, support tickets disabled")
        return None
    return ZendeskSupportDesk(
        settings.zendesk_subdomain,
        settings.zendesk_email,
        settings.zendesk_api_key,
        timeout=settings.http_timeout_seconds,
    )


@dataclass
class DispatchSummary:
    sent: int = 0
    failed: int = 0


class NotificationDispatcher:
    """
    Routes escrow events to email, in-app and support-ticket channels.

    Channels without credentials are passed as None and skipped.
    """

    def __init__(
        self,
        profiles: ProfileRepository,
        notifications: NotificationRepository,
        *,
        email_sender: Optional[ResendEmailSender] = None,
        support_desk: Optional[ZendeskSupportDesk] = None,
        support_email: Optional[str] = None,
    ) -> None:
        self._profiles = profiles
        self._notifications = notifications
        self._email = email_sender
        self._support_desk = support_desk
        self._support_email = support_email

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        profiles: ProfileRepository,
        notifications: NotificationRepository,
    ) -> "NotificationDispatcher":
        return cls(
            profiles,
            notifications,
            email_sender=email_sender_from_settings(settings),
            support_desk=support_desk_from_settings(settings),
            support_email=settings.support_email,
        )

    def close(self) -> None:
        """Close the channels' HTTP clients."""

        if self._email is not None:
            self._email.close()
        if self._support_desk is not None:
            self._support_desk.close()

    def _attempt(
        self,
        summary: DispatchSummary,
        channel: str,
        event: EscrowEvent,
        send: Callable[..., Any],
        *args: Any,
        **kwargs: Any,
    ) -> Any:
        try:
            result = send(*args, **kwargs)
        except Exception as e:
            summary.failed += 1
            logger.warning(
                "Notification delivery failed",
                extra={
                    "channel": channel,
                    "event": event.kind.value,
                    "transaction_id": str(event.transaction.transaction_id),
                    "error": str(e),
                },
            )
            return None
        summary.sent += 1
        return result

    def _lookup(self, lookup: Callable[..., Any], *args: Any) -> Any:
        try:
            return lookup(*args)
        except Exception as e:
            logger.warning("Notification context lookup failed", extra={"error": str(e)})
            return None

    def _context(self, event: EscrowEvent) -> EmailContext:
        tx = event.transaction
        buyer: Optional[PartyContact] = self._lookup(self._profiles.get_contact, tx.buyer_id)
        seller: Optional[PartyContact] = self._lookup(self._profiles.get_contact, tx.seller_id)
        title = self._lookup(self._profiles.get_listing_title, tx.listing_id)
        return EmailContext(
            listing_title=title or "Item",
            buyer_name=(buyer.full_name if buyer else None) or "Buyer",
            seller_name=(seller.full_name if seller else None) or "Seller",
            buyer_email=buyer.email if buyer else None,
            seller_email=seller.email if seller else None,
        )

    def dispatch(self, events: Iterable[EscrowEvent]) -> DispatchSummary:
        """Fan out every event; returns how many sends succeeded and failed."""

        summary = DispatchSummary()
        for event in events:
            self._dispatch_one(event, summary)
        logger.info("Notification fan-out finished", extra={"sent": summary.sent, "failed": summary.failed})
        return summary

    def _dispatch_one(self, event: EscrowEvent, summary: DispatchSummary) -> None:
        kind = event.kind
        tx = event.transaction

        # A confirmation that completed the sale is announced by TransactionCompleted.
        if kind in (EscrowEventKind.BUYER_CONFIRMED, EscrowEventKind.SELLER_CONFIRMED):
            if tx.status is SaleStatus.COMPLETED:
                return

        ctx = self._context(event)

        for role in self._email_audience(event):
            email = ctx.buyer_email if role is PartyRole.BUYER else ctx.seller_email
            content = render_party_email(event, role, ctx)
            if self._email is None or not email or content is None:
                continue
            self._attempt(summary, "email", event, self._email.send, [email], content.subject, content.html)

        if kind is EscrowEventKind.DISPUTE_RAISED and self._email is not None and self._support_email:
            content = render_support_email(event, ctx)
            self._attempt(
                summary, "email", event, self._email.send, [self._support_email], content.subject, content.html
            )

        in_app = self._in_app_notifications(event, ctx)
        if in_app:
            self._attempt(summary, "in_app", event, self._notifications.insert_many, in_app)

        if self._support_desk is not None:
            if kind is EscrowEventKind.DISPUTE_RAISED:
                self._attempt(summary, "support_ticket", event, self._open_ticket, event, ctx)
            elif kind is EscrowEventKind.DISPUTE_RESOLVED:
                self._attempt(summary, "support_ticket", event, self._solve_ticket, event, ctx)

    @staticmethod
    def _email_audience(event: EscrowEvent) -> List[PartyRole]:
        if event.kind in (
            EscrowEventKind.PAYOUT_COMPLETED,
            EscrowEventKind.PAYOUT_DEFERRED,
            EscrowEventKind.PAYOUT_FAILED,
        ):
            return [PartyRole.SELLER]
        return [PartyRole.BUYER, PartyRole.SELLER]

    @staticmethod
    def _in_app_notifications(event: EscrowEvent, ctx: EmailContext) -> List[InAppNotification]:
        tx = event.transaction
        title = ctx.listing_title
        payout = format_dollars(to_cents(tx.seller_payout))
        kind = event.kind

        if kind in (EscrowEventKind.BUYER_CONFIRMED, EscrowEventKind.SELLER_CONFIRMED):
            confirmer = PartyRole.BUYER if kind is EscrowEventKind.BUYER_CONFIRMED else PartyRole.SELLER
            return [
                InAppNotification(
                    user_id=tx.party_id(confirmer.counterparty),
                    type="sale",
                    title="Confirmation needed",
                    message=f'The {confirmer.value} confirmed the sale of "{title}". '
                    "Confirm from your dashboard to complete it.",
                )
            ]

        if kind is EscrowEventKind.TRANSACTION_COMPLETED:
            return [
                InAppNotification(user_id=tx.buyer_id, type="sale", title="Sale completed",
                                  message=f'Your purchase of "{title}" is complete.'),
                InAppNotification(user_id=tx.seller_id, type="sale", title="Sale completed",
                                  message=f'Your sale of "{title}" is complete. Your payout of {payout} is being released.'),
            ]

        if kind is EscrowEventKind.PAYOUT_COMPLETED:
            return [
                InAppNotification(user_id=tx.seller_id, type="payout", title="Payout sent",
                                  message=f'{payout} for "{title}" has been transferred to your account.'),
            ]

        if kind in (EscrowEventKind.PAYOUT_DEFERRED, EscrowEventKind.PAYOUT_FAILED):
            return [
                InAppNotification(user_id=tx.seller_id, type="payout", title="Payout pending",
                                  message=event.detail or f'Your payout for "{title}" is pending.'),
            ]

        if kind is EscrowEventKind.DISPUTE_RAISED:
            raiser = tx.disputed_by or PartyRole.BUYER
            raiser_name = ctx.buyer_name if raiser is PartyRole.BUYER else ctx.seller_name
            reason = tx.dispute_reason or ""
            excerpt = reason[:100] + ("..." if len(reason) > 100 else "")
            return [
                InAppNotification(
                    user_id=tx.party_id(raiser.counterparty),
                    type="dispute",
                    title="Dispute Raised",
                    message=f'{raiser_name} raised a dispute for {title}: "{excerpt}"',
                    link="/dashboard",
                )
            ]

        if kind is EscrowEventKind.DISPUTE_RESOLVED:
            refunded = tx.resolution is Resolution.REFUND_BUYER
            buyer_msg = (
                f'The dispute for "{title}" has been resolved. A full refund has been issued.'
                if refunded
                else f'The dispute for "{title}" has been resolved. Payment was released to the seller.'
            )
            seller_msg = (
                f'The dispute for "{title}" has been resolved. A refund was issued to the buyer.'
                if refunded
                else f'The dispute for "{title}" has been resolved. Payment has been released to you.'
            )
            return [
                InAppNotification(user_id=tx.buyer_id, type="dispute", title="Dispute Resolved",
                                  message=buyer_msg, link="/dashboard"),
                InAppNotification(user_id=tx.seller_id, type="dispute", title="Dispute Resolved",
                                  message=seller_msg, link="/dashboard"),
            ]

        return []

    def _open_ticket(self, event: EscrowEvent, ctx: EmailContext) -> int:
        tx = event.transaction
        raiser = tx.disputed_by or PartyRole.BUYER
        raiser_name = ctx.buyer_name if raiser is PartyRole.BUYER else ctx.seller_name
        raiser_email = ctx.buyer_email if raiser is PartyRole.BUYER else ctx.seller_email
        amount = format_dollars(to_cents(tx.amount))
        payout = format_dollars(to_cents(tx.seller_payout))

        description = (
            "A dispute has been raised for a Vendibook transaction.\n\n"
            "TRANSACTION DETAILS:\n"
            f"- Transaction ID: {tx.transaction_id}\n"
            f"- Listing: {ctx.listing_title}\n"
            f"- Amount: {amount}\n"
            f"- Seller Payout: {payout}\n\n"
            "PARTIES:\n"
            f"- Buyer: {ctx.buyer_name} ({ctx.buyer_email or 'No email'})\n"
            f"- Seller: {ctx.seller_name} ({ctx.seller_email or 'No email'})\n\n"
            f"DISPUTE RAISED BY: {raiser_name} ({raiser.value})\n\n"
            f"REASON:\n{tx.dispute_reason or ''}"
        )
        return self._support_desk.create_ticket(
            subject=ZendeskSupportDesk.ticket_subject(ctx.listing_title, tx.transaction_id),
            description=description,
            requester_name=raiser_name,
            requester_email=raiser_email or "unknown@vendibook.com",
            tags=["vendibook", "dispute", "escrow", f"{raiser.value}-dispute"],
        )

    def _solve_ticket(self, event: EscrowEvent, ctx: EmailContext) -> Optional[int]:
        tx = event.transaction
        resolution = tx.resolution.value if tx.resolution else "unknown"
        body = (
            "DISPUTE RESOLVED\n\n"
            f"Resolution: {resolution}\n\n"
            f"Transaction: {tx.transaction_id}\n"
            f"Listing: {ctx.listing_title}\n"
            f"Buyer: {ctx.buyer_name}\n"
            f"Seller: {ctx.seller_name}\n\n"
            f"{event.detail or ''}"
        )
        return self._support_desk.solve_dispute_ticket(
            tx.transaction_id, body, ["dispute-resolved", resolution.replace("_", "-")]
        )


__all__ = [
    "DispatchSummary",
    "NotificationDispatcher",
    "ResendEmailSender",
    "ZendeskSupportDesk",
    "email_sender_from_settings",
    "support_desk_from_settings",
]
