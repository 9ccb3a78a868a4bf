"""
Transactional email content for escrow events.

Pure rendering: takes the event plus the looked-up names and returns a
subject and HTML body per audience. User-supplied text (dispute reasons,
admin notes, names) is HTML-escaped.
"""

from __future__ import annotations

from dataclasses import dataclass
from html import escape
from typing import Optional

from domain.events import EscrowEvent, EscrowEventKind
from domain.payout import format_dollars, to_cents
from domain.sale import PartyRole, Resolution

_WRAPPER = (
    '<div style="font-family: -apple-system, BlinkMacSystemFont, \'Segoe UI\', Roboto, sans-serif; '
    'max-width: 600px; margin: 0 auto; padding: 20px;">{body}'
    '<p style="color: #4a4a4a; margin-top: 24px;">Best regards,<br><strong>The Vendibook Team</strong></p>'
    "</div>"
)


@dataclass(frozen=True, slots=True)
class EmailContent:
    subject: str
    html: str


@dataclass(frozen=True, slots=True)
class EmailContext:
    """Names and amounts the templates need, resolved once per event."""

    listing_title: str
    buyer_name: str
    seller_name: str
    buyer_email: Optional[str] = None
    seller_email: Optional[str] = None


def _page(body: str) -> str:
    return _WRAPPER.format(body=body)


def _amounts(event: EscrowEvent) -> tuple[str, str]:
    tx = event.transaction
    return format_dollars(to_cents(tx.amount)), format_dollars(to_cents(tx.seller_payout))


def render_party_email(event: EscrowEvent, audience: PartyRole, ctx: EmailContext) -> Optional[EmailContent]:
    """
    Email for the buyer or seller about an event.

    Returns None when the event carries nothing for this audience.
    """

    title = escape(ctx.listing_title)
    amount, payout = _amounts(event)
    kind = event.kind

    if kind in (EscrowEventKind.BUYER_CONFIRMED, EscrowEventKind.SELLER_CONFIRMED):
        confirmer = PartyRole.BUYER if kind is EscrowEventKind.BUYER_CONFIRMED else PartyRole.SELLER
        if audience is confirmer:
            return EmailContent(
                subject=f"Confirmation Received - {ctx.listing_title}",
                html=_page(
                    f"<h1>Thanks for confirming</h1><p>Your confirmation for <strong>{title}</strong> "
                    f"has been recorded. We're waiting for the {confirmer.counterparty.value} to confirm "
                    "before funds are released.</p>"
                ),
            )
        return EmailContent(
            subject=f"Action Needed: Confirm Your Sale - {ctx.listing_title}",
            html=_page(
                f"<h1>The {confirmer.value} has confirmed</h1><p>The {confirmer.value} confirmed the "
                f"transaction for <strong>{title}</strong>. Please confirm from your dashboard to "
                "complete the sale.</p>"
            ),
        )

    if kind is EscrowEventKind.TRANSACTION_COMPLETED:
        if audience is PartyRole.BUYER:
            return EmailContent(
                subject=f"Sale Complete - {ctx.listing_title}",
                html=_page(
                    f"<h1>Sale complete</h1><p>Both parties confirmed the sale of <strong>{title}</strong> "
                    f"({amount}). Thank you for using Vendibook!</p>"
                ),
            )
        return EmailContent(
            subject=f"Sale Complete - {ctx.listing_title}",
            html=_page(
                f"<h1>Sale complete</h1><p>Both parties confirmed the sale of <strong>{title}</strong>. "
                f"Your payout of <strong>{payout}</strong> is being released.</p>"
            ),
        )

    if kind is EscrowEventKind.PAYOUT_COMPLETED and audience is PartyRole.SELLER:
        return EmailContent(
            subject=f"Payout Sent - {ctx.listing_title}",
            html=_page(
                f"<h1>Your payout is on its way</h1><p><strong>{payout}</strong> for "
                f"<strong>{title}</strong> has been transferred to your connected account.</p>"
            ),
        )

    if kind in (EscrowEventKind.PAYOUT_DEFERRED, EscrowEventKind.PAYOUT_FAILED) and audience is PartyRole.SELLER:
        detail = escape(event.detail or "Your payout is pending.")
        return EmailContent(
            subject=f"Payout Pending - {ctx.listing_title}",
            html=_page(
                f"<h1>Your payout is pending</h1><p>The sale of <strong>{title}</strong> is complete, "
                f"but your payout of <strong>{payout}</strong> has not been sent yet.</p><p>{detail}</p>"
            ),
        )

    if kind is EscrowEventKind.DISPUTE_RAISED:
        reason = escape(event.transaction.dispute_reason or "")
        raiser = event.transaction.disputed_by
        raiser_name = ctx.buyer_name if raiser is PartyRole.BUYER else ctx.seller_name
        if audience is raiser:
            return EmailContent(
                subject=f"Dispute Submitted - {ctx.listing_title}",
                html=_page(
                    f"<h1>Dispute Submitted</h1><p>Your dispute for <strong>{title}</strong> has been "
                    f"submitted and is under review.</p><p>{reason}</p><ul>"
                    "<li>Payment will remain in escrow until the dispute is resolved</li>"
                    "<li>Our team will review and may contact both parties</li>"
                    "<li>Resolution typically takes 3-5 business days</li></ul>"
                ),
            )
        return EmailContent(
            subject=f"Dispute Raised - {ctx.listing_title}",
            html=_page(
                f"<h1>Dispute Raised</h1><p><strong>{escape(raiser_name)}</strong> has raised a dispute "
                f"for the transaction involving <strong>{title}</strong>.</p><p>{reason}</p><ul>"
                "<li>Payment is now held pending dispute resolution</li>"
                "<li>No funds will be released until this is resolved</li>"
                "<li>Our team may contact you for more information</li></ul>"
            ),
        )

    if kind is EscrowEventKind.DISPUTE_RESOLVED:
        tx = event.transaction
        if tx.resolution is Resolution.REFUND_BUYER:
            outcome = "A full refund has been issued to the buyer."
        else:
            outcome = "The payment has been released to the seller."
        notes = f"<p>{escape(event.detail)}</p>" if event.detail else ""
        return EmailContent(
            subject="Dispute Resolved - Vendibook",
            html=_page(
                f"<h1>Dispute Resolved</h1><p>Our team has reviewed the dispute for "
                f"<strong>{title}</strong> and made a decision.</p>"
                f"<p><strong>Resolution:</strong> {outcome}</p>{notes}"
            ),
        )

    return None


def render_support_email(event: EscrowEvent, ctx: EmailContext) -> EmailContent:
    """Operator-queue email for a newly raised dispute."""

    tx = event.transaction
    amount, payout = _amounts(event)
    role = tx.disputed_by.value if tx.disputed_by else "unknown"
    return EmailContent(
        subject=f"[ACTION REQUIRED] New Dispute - {ctx.listing_title}",
        html=_page(
            "<h1>New Dispute Requires Attention</h1><table>"
            f"<tr><td>Transaction ID:</td><td>{tx.transaction_id}</td></tr>"
            f"<tr><td>Listing:</td><td>{escape(ctx.listing_title)}</td></tr>"
            f"<tr><td>Raised By:</td><td>{role}</td></tr>"
            f"<tr><td>Amount:</td><td>{amount}</td></tr>"
            f"<tr><td>Seller Payout:</td><td>{payout}</td></tr></table>"
            f"<p>{escape(tx.dispute_reason or '')}</p>"
            f"<p><strong>Buyer:</strong> {escape(ctx.buyer_name)} ({escape(ctx.buyer_email or 'No email')})</p>"
            f"<p><strong>Seller:</strong> {escape(ctx.seller_name)} ({escape(ctx.seller_email or 'No email')})</p>"
        ),
    )


__all__ = ["EmailContent", "EmailContext", "render_party_email", "render_support_email"]
