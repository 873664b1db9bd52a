from fastapi import APIRouter, Body, Depends, Query, status
from sqlalchemy.orm import Session
from typing import Any, Dict, Optional
import logging

from .. import models, schemas
from ..crud import crud_notification
from .dependencies import get_db, get_current_active_user
from ..utils import error_response
from ..utils.errors import not_found

router = APIRouter(tags=["notifications"])

logger = logging.getLogger(__name__)


@router.get("", response_model=schemas.NotificationList)
def read_my_notifications(
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    unread: bool = False,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_active_user),
):
    """Newest first, with the total and unread counts for badge display."""
    items, total = crud_notification.list_notifications(
        db, current_user.id, limit=limit, offset=offset, unread_only=unread
    )
    return {
        "notifications": items,
        "total": total,
        "unread_count": crud_notification.unread_count(db, current_user.id),
        "has_more": offset + len(items) < total,
    }


@router.patch("")
def mark_notifications_read(
    payload: schemas.NotificationMarkRead,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_active_user),
):
    if payload.mark_all_read:
        updated = crud_notification.mark_all_read(db, current_user.id)
        logger.info("Marked %s notifications read for user %s", updated, current_user.id)
        return {"success": True, "updated": updated}
    if payload.notification_id is None:
        raise error_response(
            "notification_id or mark_all_read is required",
            {"notification_id": "required"},
            status.HTTP_400_BAD_REQUEST,
        )
    if not crud_notification.mark_read(db, current_user.id, payload.notification_id):
        raise not_found("Notification", "notification_id")
    return {"success": True, "updated": 1}


@router.delete("")
def delete_notification(
    id: Optional[int] = None,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_active_user),
):
    if id is None:
        raise error_response("Notification id is required", {"id": "required"}, status.HTTP_400_BAD_REQUEST)
    if not crud_notification.delete_notification(db, current_user.id, id):
        raise not_found("Notification")
    return {"success": True}


@router.get("/preferences")
def read_preferences(
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_active_user),
):
    prefs = crud_notification.get_preferences(db, current_user.id)
    return crud_notification.preferences_as_dict(current_user.id, prefs)


@router.patch("/preferences")
def update_preferences(
    updates: Dict[str, Any] = Body(...),
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_active_user),
):
    """Only known keys with boolean values are applied."""
    valid = {
        key: value
        for key, value in updates.items()
        if key in crud_notification.PREFERENCE_FIELDS and isinstance(value, bool)
    }
    if not valid:
        raise error_response(
            "No valid preference fields provided",
            {key: "invalid" for key in updates} or {"body": "empty"},
            status.HTTP_400_BAD_REQUEST,
        )
    prefs = crud_notification.upsert_preferences(db, current_user.id, valid)
    return crud_notification.preferences_as_dict(current_user.id, prefs)
