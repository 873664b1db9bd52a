from typing import List, Optional, Tuple
from datetime import datetime

from sqlalchemy.orm import Session
from sqlalchemy import or_, and_

from .. import models

PREVIEW_LENGTH = 100


def find_conversation(db: Session, user_a: int, user_b: int) -> Optional[models.Conversation]:
    """Return the thread between two users regardless of who started it."""
    return (
        db.query(models.Conversation)
        .filter(
            or_(
                and_(
                    models.Conversation.participant_one_id == user_a,
                    models.Conversation.participant_two_id == user_b,
                ),
                and_(
                    models.Conversation.participant_one_id == user_b,
                    models.Conversation.participant_two_id == user_a,
                ),
            )
        )
        .order_by(models.Conversation.id.asc())
        .first()
    )


def get_or_create_conversation(
    db: Session,
    sender_id: int,
    recipient_id: int,
    context_type: str | None = None,
    context_id: int | None = None,
) -> Tuple[models.Conversation, bool]:
    existing = find_conversation(db, sender_id, recipient_id)
    if existing:
        return existing, False
    conversation = models.Conversation(
        participant_one_id=sender_id,
        participant_two_id=recipient_id,
        context_type=context_type,
        context_id=context_id,
        participant_one_unread=0,
        participant_two_unread=0,
    )
    db.add(conversation)
    db.commit()
    db.refresh(conversation)
    return conversation, True


def list_conversations(db: Session, user_id: int) -> List[models.Conversation]:
    return (
        db.query(models.Conversation)
        .filter(
            or_(
                models.Conversation.participant_one_id == user_id,
                models.Conversation.participant_two_id == user_id,
            )
        )
        .order_by(
            models.Conversation.last_message_at.is_(None),
            models.Conversation.last_message_at.desc(),
            models.Conversation.id.desc(),
        )
        .all()
    )


def unread_for(conversation: models.Conversation, user_id: int) -> int:
    if conversation.participant_one_id == user_id:
        return conversation.participant_one_unread or 0
    return conversation.participant_two_unread or 0


def create_message(db: Session, conversation: models.Conversation, sender_id: int, content: str) -> models.Message:
    """Append a message and bump the recipient's unread counter."""
    now = datetime.utcnow()
    db_msg = models.Message(
        conversation_id=conversation.id,
        sender_id=sender_id,
        content=content,
        is_read=False,
    )
    db.add(db_msg)
    conversation.last_message_at = now
    conversation.last_message_preview = content[:PREVIEW_LENGTH]
    if conversation.participant_one_id == sender_id:
        conversation.participant_two_unread = (conversation.participant_two_unread or 0) + 1
    else:
        conversation.participant_one_unread = (conversation.participant_one_unread or 0) + 1
    db.commit()
    db.refresh(db_msg)
    return db_msg


def get_messages(
    db: Session, conversation_id: int, *, offset: int = 0, limit: int = 50
) -> List[models.Message]:
    return (
        db.query(models.Message)
        .filter(models.Message.conversation_id == conversation_id)
        .order_by(models.Message.created_at.asc(), models.Message.id.asc())
        .offset(offset)
        .limit(limit)
        .all()
    )


def mark_conversation_read(db: Session, conversation: models.Conversation, user_id: int) -> int:
    """Mark the other participant's messages read and reset the caller's counter."""
    updated = (
        db.query(models.Message)
        .filter(
            models.Message.conversation_id == conversation.id,
            models.Message.sender_id != user_id,
            models.Message.is_read.is_(False),
        )
        .update({"is_read": True}, synchronize_session=False)
    )
    if conversation.participant_one_id == user_id:
        conversation.participant_one_unread = 0
    else:
        conversation.participant_two_unread = 0
    db.commit()
    return updated
