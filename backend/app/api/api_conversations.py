from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import List
import logging

from ..database import get_db
from .. import models
from ..crud import crud_message
from ..models import NotificationType, User
from ..schemas.message import (
    ConversationResponse,
    ConversationStart,
    MessageCreate,
    MessageResponse,
)
from ..utils.errors import error_response, forbidden, not_found
from ..utils.notifications import notify, render
from .dependencies import get_current_active_user

router = APIRouter(tags=["conversations"])
logger = logging.getLogger(__name__)


def _get_conversation(db: Session, conversation_id: int, user: User) -> models.Conversation:
    conversation = db.get(models.Conversation, conversation_id)
    if conversation is None:
        raise not_found("Conversation")
    if not conversation.has_participant(user.id):
        raise forbidden("Not a participant in this conversation")
    return conversation


@router.post("/start")
def start_conversation(
    payload: ConversationStart,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    if payload.recipient_id == current_user.id:
        raise error_response(
            "Cannot start a conversation with yourself",
            {"recipient_id": "self"},
            status.HTTP_400_BAD_REQUEST,
        )
    if db.get(models.User, payload.recipient_id) is None:
        raise not_found("Recipient", "recipient_id")
    conversation, is_new = crud_message.get_or_create_conversation(
        db,
        current_user.id,
        payload.recipient_id,
        payload.context_type,
        payload.context_id,
    )
    if is_new:
        logger.info("Conversation %s started by %s", conversation.id, current_user.id)
    return {"conversation_id": conversation.id, "is_new": is_new}


@router.get("", response_model=List[ConversationResponse])
def list_conversations(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    result = []
    for conv in crud_message.list_conversations(db, current_user.id):
        other_id = conv.other_participant_id(current_user.id)
        other = conv.participant_two if other_id == conv.participant_two_id else conv.participant_one
        result.append(
            ConversationResponse(
                id=conv.id,
                other_participant_id=other_id,
                other_participant_name=other.full_name if other else None,
                context_type=conv.context_type,
                context_id=conv.context_id,
                last_message_at=conv.last_message_at,
                last_message_preview=conv.last_message_preview,
                unread_count=crud_message.unread_for(conv, current_user.id),
            )
        )
    return result


@router.get("/{conversation_id}/messages", response_model=List[MessageResponse])
def read_messages(
    conversation_id: int,
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    """Messages oldest first; opening the thread marks it read for the caller."""
    conversation = _get_conversation(db, conversation_id, current_user)
    crud_message.mark_conversation_read(db, conversation, current_user.id)
    return crud_message.get_messages(db, conversation.id, offset=skip, limit=limit)


@router.post(
    "/{conversation_id}/messages",
    response_model=MessageResponse,
    status_code=status.HTTP_201_CREATED,
)
def send_message(
    conversation_id: int,
    payload: MessageCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    conversation = _get_conversation(db, conversation_id, current_user)
    content = payload.content.strip()
    if not content:
        raise error_response("Message cannot be empty", {"content": "required"}, status.HTTP_400_BAD_REQUEST)
    msg = crud_message.create_message(db, conversation, current_user.id, content)

    recipient = db.get(models.User, conversation.other_participant_id(current_user.id))
    notify(
        db,
        recipient,
        NotificationType.MESSAGE_RECEIVED,
        render("message_received", current_user.full_name, conversation.last_message_preview),
        f"/messages/{conversation.id}",
        metadata={"conversation_id": conversation.id},
    )
    return msg
