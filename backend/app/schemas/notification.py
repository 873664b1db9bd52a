from pydantic import BaseModel, Field
from datetime import datetime
from typing import Any, Optional

from ..models.notification import NotificationType


class NotificationResponse(BaseModel):
    id: int
    user_id: int
    type: NotificationType
    title: str
    message: str
    link: str | None = None
    event_id: int | None = None
    booking_id: int | None = None
    transaction_id: int | None = None
    metadata: dict[str, Any] | None = Field(default=None, validation_alias="meta")
    is_read: bool
    read_at: datetime | None = None
    created_at: datetime

    model_config = {"from_attributes": True}


class NotificationList(BaseModel):
    notifications: list[NotificationResponse]
    total: int
    unread_count: int
    has_more: bool


class NotificationMarkRead(BaseModel):
    notification_id: Optional[int] = None
    mark_all_read: bool = False
