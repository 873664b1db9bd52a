from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, Text
from sqlalchemy.orm import relationship

from .base import BaseModel


class Conversation(BaseModel):
    """Direct thread between exactly two users.

    ``context_type``/``context_id`` optionally pin the thread to an event or
    booking it was started from.
    """

    __tablename__ = "conversations"

    id = Column(Integer, primary_key=True, index=True)
    participant_one_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    participant_two_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    context_type = Column(String, nullable=True)
    context_id = Column(Integer, nullable=True)
    last_message_at = Column(DateTime, nullable=True, index=True)
    last_message_preview = Column(String, nullable=True)
    participant_one_unread = Column(Integer, nullable=False, default=0)
    participant_two_unread = Column(Integer, nullable=False, default=0)

    participant_one = relationship("User", foreign_keys=[participant_one_id])
    participant_two = relationship("User", foreign_keys=[participant_two_id])
    messages = relationship(
        "Message",
        back_populates="conversation",
        cascade="all, delete-orphan",
        order_by="Message.id",
    )

    def other_participant_id(self, user_id: int) -> int:
        return self.participant_two_id if self.participant_one_id == user_id else self.participant_one_id

    def has_participant(self, user_id: int) -> bool:
        return user_id in (self.participant_one_id, self.participant_two_id)


class Message(BaseModel):
    __tablename__ = "messages"

    id = Column(Integer, primary_key=True, index=True)
    conversation_id = Column(Integer, ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False, index=True)
    sender_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    content = Column(Text, nullable=False)
    is_read = Column(Boolean, nullable=False, default=False)

    conversation = relationship("Conversation", back_populates="messages")
    sender = relationship("User")
