from sqlalchemy import Column, Integer, DateTime, Text, ForeignKey, BigInteger
from sqlalchemy.orm import relationship
import enum

from .base import BaseModel
from .types import CaseInsensitiveEnum


class RefundStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    COMPLETED = "completed"
    PARTIAL = "partial"


class RefundMethod(str, enum.Enum):
    WALLET = "wallet"
    ORIGINAL = "original"


class RefundRequest(BaseModel):
    __tablename__ = "refund_requests"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    transaction_id = Column(Integer, ForeignKey("transactions.id"), nullable=False, index=True)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=True)
    amount = Column(BigInteger, nullable=False)
    reason = Column(Text, nullable=False)
    refund_method = Column(CaseInsensitiveEnum(RefundMethod, name="refundmethod"), nullable=False, default=RefundMethod.WALLET)

    status = Column(CaseInsensitiveEnum(RefundStatus, name="refundstatus"), nullable=False, default=RefundStatus.PENDING, index=True)
    refunded_amount = Column(BigInteger, nullable=True)
    admin_notes = Column(Text, nullable=True)
    processed_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    processed_at = Column(DateTime, nullable=True)

    user = relationship("User", foreign_keys=[user_id])
    transaction = relationship("Transaction")
