from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from .. import models

PREFERENCE_FIELDS = (
    "email_enabled",
    "push_enabled",
    "booking_notifications",
    "payment_notifications",
    "event_notifications",
    "message_notifications",
    "review_notifications",
    "system_notifications",
    "marketing_notifications",
)

DEFAULT_PREFERENCES: Dict[str, bool] = {
    field: field != "marketing_notifications" for field in PREFERENCE_FIELDS
}


def create_notification(
    db: Session,
    user_id: int,
    type: models.NotificationType,
    title: str,
    message: str,
    link: Optional[str] = None,
    *,
    event_id: Optional[int] = None,
    booking_id: Optional[int] = None,
    transaction_id: Optional[int] = None,
    metadata: Optional[dict] = None,
    commit: bool = True,
) -> models.Notification:
    db_obj = models.Notification(
        user_id=user_id,
        type=type,
        title=title,
        message=message,
        link=link,
        event_id=event_id,
        booking_id=booking_id,
        transaction_id=transaction_id,
        meta=metadata or {},
        is_read=False,
        email_sent=False,
    )
    db.add(db_obj)
    if commit:
        db.commit()
        db.refresh(db_obj)
    else:
        db.flush()
    return db_obj


def create_bulk_notifications(db: Session, items: Iterable[dict], commit: bool = True) -> int:
    """Insert many notifications at once; each item uses create_notification's kwargs."""
    rows = []
    for item in items:
        data = dict(item)
        data["meta"] = data.pop("metadata", None) or {}
        rows.append(models.Notification(is_read=False, email_sent=False, **data))
    if not rows:
        return 0
    db.add_all(rows)
    if commit:
        db.commit()
    else:
        db.flush()
    return len(rows)


def list_notifications(
    db: Session,
    user_id: int,
    *,
    limit: int = 20,
    offset: int = 0,
    unread_only: bool = False,
) -> Tuple[List[models.Notification], int]:
    """Return a page of notifications, newest first, plus the total count."""
    query = db.query(models.Notification).filter(models.Notification.user_id == user_id)
    if unread_only:
        query = query.filter(models.Notification.is_read.is_(False))
    total = query.count()
    items = (
        query.order_by(models.Notification.created_at.desc(), models.Notification.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    return items, total


def get_notification(db: Session, notification_id: int) -> models.Notification | None:
    return (
        db.query(models.Notification)
        .filter(models.Notification.id == notification_id)
        .first()
    )


def unread_count(db: Session, user_id: int) -> int:
    return (
        db.query(func.count(models.Notification.id))
        .filter(
            models.Notification.user_id == user_id,
            models.Notification.is_read.is_(False),
        )
        .scalar()
        or 0
    )


def mark_read(db: Session, user_id: int, notification_id: int) -> bool:
    updated = (
        db.query(models.Notification)
        .filter(
            models.Notification.id == notification_id,
            models.Notification.user_id == user_id,
        )
        .update({"is_read": True, "read_at": datetime.utcnow()}, synchronize_session=False)
    )
    db.commit()
    return bool(updated)


def mark_all_read(db: Session, user_id: int) -> int:
    updated = (
        db.query(models.Notification)
        .filter(
            models.Notification.user_id == user_id,
            models.Notification.is_read.is_(False),
        )
        .update({"is_read": True, "read_at": datetime.utcnow()}, synchronize_session=False)
    )
    db.commit()
    return updated


def delete_notification(db: Session, user_id: int, notification_id: int) -> bool:
    deleted = (
        db.query(models.Notification)
        .filter(
            models.Notification.id == notification_id,
            models.Notification.user_id == user_id,
        )
        .delete(synchronize_session=False)
    )
    db.commit()
    return bool(deleted)


def delete_old_notifications(db: Session, days: int = 90, now: Optional[datetime] = None) -> int:
    """Remove read notifications older than ``days``."""
    cutoff = (now or datetime.utcnow()) - timedelta(days=days)
    deleted = (
        db.query(models.Notification)
        .filter(
            models.Notification.created_at < cutoff,
            models.Notification.is_read.is_(True),
        )
        .delete(synchronize_session=False)
    )
    db.commit()
    return deleted


def get_preferences(db: Session, user_id: int) -> models.NotificationPreference | None:
    return db.get(models.NotificationPreference, user_id)


def preferences_as_dict(user_id: int, prefs: models.NotificationPreference | None) -> Dict[str, object]:
    data: Dict[str, object] = {"user_id": user_id}
    for field in PREFERENCE_FIELDS:
        data[field] = getattr(prefs, field) if prefs is not None else DEFAULT_PREFERENCES[field]
    return data


def upsert_preferences(db: Session, user_id: int, updates: Dict[str, bool]) -> models.NotificationPreference:
    prefs = get_preferences(db, user_id)
    if prefs is None:
        prefs = models.NotificationPreference(user_id=user_id, **DEFAULT_PREFERENCES)
        db.add(prefs)
    for field, value in updates.items():
        if field in PREFERENCE_FIELDS:
            setattr(prefs, field, bool(value))
    db.commit()
    db.refresh(prefs)
    return prefs
