from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional
import logging

from sqlalchemy.orm import Session

from ..database import SessionLocal
from .. import models
from ..core.config import settings
from ..crud import crud_notification
from ..models import TransactionState, TransactionType
from .state_machine import TRANSACTION_TRANSITIONS, transition

logger = logging.getLogger(__name__)

# Gateway checkouts never completed within this window are failed
CHECKOUT_EXPIRY = timedelta(hours=24)

CHECKOUT_TYPES = (
    TransactionType.TICKET_PURCHASE,
    TransactionType.WALLET_DEPOSIT,
    TransactionType.BOOKING_PAYMENT,
)


def handle_notification_cleanup(db: Session, now: Optional[datetime] = None) -> int:
    """Delete read notifications older than the retention window."""
    deleted = crud_notification.delete_old_notifications(
        db, days=settings.NOTIFICATION_RETENTION_DAYS, now=now
    )
    if deleted:
        logger.info("Deleted %s old notifications", deleted)
    return deleted


def handle_abandoned_checkouts(db: Session, now: Optional[datetime] = None) -> int:
    """Fail checkout transactions that never received a charge callback."""
    cutoff = (now or datetime.utcnow()) - CHECKOUT_EXPIRY
    stale = (
        db.query(models.Transaction)
        .filter(
            models.Transaction.state == TransactionState.INITIATED,
            models.Transaction.type.in_(CHECKOUT_TYPES),
            models.Transaction.created_at < cutoff,
        )
        .all()
    )
    for txn in stale:
        transition(txn, TRANSACTION_TRANSITIONS, TransactionState.FAILED, kind="transaction", now=now)
        txn.failure_reason = "Checkout abandoned"
    db.commit()
    if stale:
        logger.info("Expired %s abandoned checkouts", len(stale))
    return len(stale)


def run_maintenance() -> dict:
    """Run all operational maintenance tasks once and return a summary.

    Each task gets its own short-lived DB session.
    """
    with SessionLocal() as db:
        notifications = handle_notification_cleanup(db)

    with SessionLocal() as db:
        checkouts = handle_abandoned_checkouts(db)

    return {"notifications_deleted": notifications, "checkouts_expired": checkouts}
