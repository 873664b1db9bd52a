"""Notification templates and helpers that create in-app notifications and,
where the recipient's preferences allow it, a matching email."""

from __future__ import annotations

import logging
from typing import Dict, Optional, Tuple

from sqlalchemy.orm import Session

from .. import models
from ..crud import crud_notification
from ..models import NotificationType
from .email import send_branded_email

logger = logging.getLogger(__name__)

BOOKING_TYPES = {
    NotificationType.BOOKING_REQUEST,
    NotificationType.BOOKING_ACCEPTED,
    NotificationType.BOOKING_DECLINED,
    NotificationType.BOOKING_CONFIRMED,
    NotificationType.BOOKING_CANCELLED,
    NotificationType.BOOKING_COMPLETED,
}
PAYMENT_TYPES = {
    NotificationType.PAYMENT_RECEIVED,
    NotificationType.PAYMENT_FAILED,
    NotificationType.PAYOUT_SENT,
    NotificationType.PAYOUT_COMPLETED,
    NotificationType.REFUND_ISSUED,
    NotificationType.TICKET_PURCHASED,
}
EVENT_TYPES = {
    NotificationType.EVENT_REMINDER,
    NotificationType.EVENT_CANCELLED,
    NotificationType.EVENT_UPDATED,
    NotificationType.TICKET_CHECKIN,
}
MESSAGE_TYPES = {NotificationType.MESSAGE_RECEIVED}
REVIEW_TYPES = {NotificationType.REVIEW_RECEIVED}


def alert_scheduler_failure(exc: Exception) -> None:
    """Emit an error log when a background scheduler run fails."""
    logger.exception("Scheduler run failed: %s", exc)


# ─── Templates ──────────────────────────────────────────────────────────────

Template = Tuple[str, str]


def _plural(n: int, word: str) -> str:
    return f"{n} {word}{'' if n == 1 else 's'}"


TEMPLATES = {
    "booking_request": lambda organizer, event: (
        "New Booking Request",
        f'You\'ve received a booking request from {organizer} for "{event}"',
    ),
    "booking_accepted": lambda performer, event: (
        "Booking Accepted!",
        f'{performer} has accepted your booking for "{event}". Please proceed with payment to confirm.',
    ),
    "booking_declined": lambda performer, event, reason=None: (
        "Booking Declined",
        f'{performer} has declined your booking for "{event}"'
        + (f". Reason: {reason}" if reason else "")
        + ".",
    ),
    "booking_confirmed": lambda event, date: (
        "Booking Confirmed!",
        f'Your booking for "{event}" on {date} is confirmed. Payment received.',
    ),
    "booking_cancelled": lambda event, by_whom: (
        "Booking Cancelled",
        f'The booking for "{event}" has been cancelled by the {by_whom}.',
    ),
    "booking_completed": lambda event, amount: (
        "Booking Completed",
        f'Your performance at "{event}" is complete! {amount} has been released to your wallet.',
    ),
    "payment_received": lambda amount, label: (
        "Payment Received",
        f'You received {amount} for "{label}".',
    ),
    "payment_failed": lambda label: (
        "Payment Failed",
        f'Payment for "{label}" failed. Please try again or use a different payment method.',
    ),
    "payout_sent": lambda amount: (
        "Payout Initiated",
        f"Your payout of {amount} has been initiated. It should arrive within 24 hours.",
    ),
    "payout_completed": lambda amount: (
        "Payout Complete",
        f"Your payout of {amount} has been deposited to your bank account.",
    ),
    "refund_issued": lambda amount, reason: (
        "Refund Issued",
        f"A refund of {amount} has been processed. Reason: {reason}",
    ),
    "ticket_purchased": lambda event, quantity, code: (
        "Ticket Purchased!",
        f'You bought {_plural(quantity, "ticket")} for "{event}". Your code: {code}',
    ),
    "ticket_checkin": lambda event: (
        "Checked In!",
        f'You\'ve been checked in to "{event}". Enjoy the event!',
    ),
    "event_cancelled": lambda event: (
        "Event Cancelled",
        f'"{event}" has been cancelled. A refund will be processed.',
    ),
    "event_updated": lambda event, changes: (
        "Event Updated",
        f'"{event}" has been updated: {changes}',
    ),
    "welcome": lambda name: (
        "Welcome to Ziyawa!",
        f"Hey {name}! Your account is ready. Start exploring events or create your first one.",
    ),
    "review_received": lambda rating, event: (
        f"New {rating}★ Review",
        f'You received a {rating}-star review for "{event}".',
    ),
    "message_received": lambda sender, preview: (
        f"New message from {sender}",
        preview,
    ),
    "account_warning": lambda reason: (
        "Account Warning",
        f"Your account received a warning from the Ziyawa team. Reason: {reason}",
    ),
}


def render(template: str, *args, **kwargs) -> Template:
    return TEMPLATES[template](*args, **kwargs)


# ─── Preference gating ──────────────────────────────────────────────────────


def _category_field(ntype: NotificationType) -> str:
    if ntype in BOOKING_TYPES:
        return "booking_notifications"
    if ntype in PAYMENT_TYPES:
        return "payment_notifications"
    if ntype in EVENT_TYPES:
        return "event_notifications"
    if ntype in MESSAGE_TYPES:
        return "message_notifications"
    if ntype in REVIEW_TYPES:
        return "review_notifications"
    return "system_notifications"


def should_send_email(ntype: NotificationType, prefs: Optional[models.NotificationPreference]) -> bool:
    """No stored preferences means the defaults apply, which allow email."""
    if prefs is None:
        return True
    if not prefs.email_enabled:
        return False
    return bool(getattr(prefs, _category_field(ntype), True))


# ─── Core ───────────────────────────────────────────────────────────────────


def notify(
    db: Session,
    user: Optional[models.User],
    ntype: NotificationType,
    template: Template,
    link: Optional[str] = None,
    *,
    send_email: bool = False,
    commit: bool = True,
    **refs,
) -> Optional[models.Notification]:
    """Create an in-app notification for ``user`` and optionally email it.

    ``refs`` accepts ``event_id``, ``booking_id``, ``transaction_id`` and
    ``metadata``. With ``commit=False`` the row joins the caller's
    transaction and no email is sent until the caller commits.
    """
    if user is None:
        logger.warning("Skipping %s notification: user missing", ntype.value)
        return None
    title, message = template
    notification = crud_notification.create_notification(
        db, user.id, ntype, title, message, link, commit=commit, **refs
    )
    if send_email and commit:
        deliver_email(db, user, notification)
    return notification


def deliver_email(db: Session, user: models.User, notification: models.Notification) -> bool:
    if not user.email:
        return False
    prefs = crud_notification.get_preferences(db, user.id)
    if not should_send_email(notification.type, prefs):
        logger.info("Email suppressed by preferences user_id=%s type=%s", user.id, notification.type.value)
        return False
    sent = send_branded_email(user.email, notification.title, notification.message)
    if sent:
        notification.email_sent = True
        db.commit()
    return sent


def notify_many(db: Session, user_ids, ntype: NotificationType, template: Template, link: Optional[str] = None, **refs) -> int:
    title, message = template
    items: list[Dict] = [
        {"user_id": uid, "type": ntype, "title": title, "message": message, "link": link, **refs}
        for uid in dict.fromkeys(user_ids)
    ]
    return crud_notification.create_bulk_notifications(db, items)
