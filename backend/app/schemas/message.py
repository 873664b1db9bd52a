from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class ConversationStart(BaseModel):
    recipient_id: int
    context_type: Optional[str] = None
    context_id: Optional[int] = None


class MessageCreate(BaseModel):
    content: str = Field(min_length=1, max_length=5000)


class MessageResponse(BaseModel):
    id: int
    conversation_id: int
    sender_id: int
    content: str
    is_read: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class ConversationResponse(BaseModel):
    id: int
    other_participant_id: int
    other_participant_name: str | None = None
    context_type: str | None = None
    context_id: int | None = None
    last_message_at: datetime | None = None
    last_message_preview: str | None = None
    unread_count: int
