from sqlalchemy import Column, Integer, String, DateTime, Text, ForeignKey, BigInteger
from sqlalchemy.orm import relationship
import enum

from .base import BaseModel
from .types import CaseInsensitiveEnum


class PayoutStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    COMPLETED = "completed"


class PayoutRequest(BaseModel):
    """Manual payout queued for admin approval.

    ``amount`` moves from the user's wallet balance into pending balance when
    the request is created and leaves pending balance on completion.
    """

    __tablename__ = "payout_requests"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    amount = Column(BigInteger, nullable=False)
    reference = Column(String, unique=True, nullable=False)
    bank_name = Column(String, nullable=False)
    account_number_last4 = Column(String(4), nullable=False)
    account_holder = Column(String, nullable=False)

    status = Column(CaseInsensitiveEnum(PayoutStatus, name="payoutstatus"), nullable=False, default=PayoutStatus.PENDING, index=True)
    admin_notes = Column(Text, nullable=True)
    processed_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    processed_at = Column(DateTime, nullable=True)

    user = relationship("User", foreign_keys=[user_id])
