from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, BigInteger
from sqlalchemy.orm import relationship
import enum

from .base import BaseModel
from .types import CaseInsensitiveEnum


class TicketStatus(str, enum.Enum):
    CONFIRMED = "confirmed"
    CHECKED_IN = "checked_in"
    REFUNDED = "refunded"
    CANCELLED = "cancelled"


class Ticket(BaseModel):
    __tablename__ = "tickets"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    transaction_id = Column(Integer, ForeignKey("transactions.id"), nullable=True, index=True)

    ticket_code = Column(String(16), unique=True, index=True, nullable=False)
    ticket_type = Column(String, nullable=True, default="general")
    price_paid = Column(BigInteger, nullable=False, default=0)  # cents
    status = Column(CaseInsensitiveEnum(TicketStatus, name="ticketstatus"), nullable=False, default=TicketStatus.CONFIRMED)

    checked_in = Column(Boolean, nullable=False, default=False)
    checked_in_at = Column(DateTime, nullable=True)
    checked_in_by = Column(Integer, ForeignKey("users.id"), nullable=True)

    event = relationship("Event", back_populates="tickets")
    holder = relationship("User", foreign_keys=[user_id])
    transaction = relationship("Transaction", back_populates="tickets")
