from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, BigInteger, JSON
from sqlalchemy.orm import relationship
import enum

from .base import BaseModel
from .types import CaseInsensitiveEnum


class TransactionState(str, enum.Enum):
    INITIATED = "initiated"
    AUTHORIZED = "authorized"
    HELD = "held"
    RELEASED = "released"
    SETTLED = "settled"
    REFUNDED = "refunded"
    PARTIAL_REFUND = "partial_refund"
    FAILED = "failed"
    # Withdrawals wait here while the gateway transfer is in flight
    PROCESSING = "processing"


class TransactionType(str, enum.Enum):
    TICKET_PURCHASE = "ticket_purchase"
    BOOKING_PAYMENT = "booking_payment"
    WALLET_DEPOSIT = "wallet_deposit"
    WITHDRAWAL = "withdrawal"
    PAYOUT = "payout"
    REFUND = "refund"
    COMMISSION = "commission"


class Transaction(BaseModel):
    __tablename__ = "transactions"

    id = Column(Integer, primary_key=True, index=True)
    reference = Column(String, unique=True, index=True, nullable=False)
    type = Column(CaseInsensitiveEnum(TransactionType, name="transactiontype"), nullable=False, index=True)
    state = Column(CaseInsensitiveEnum(TransactionState, name="transactionstate"), nullable=False, default=TransactionState.INITIATED, index=True)

    # All amounts are integer cents; refunds carry a negative net_amount
    amount = Column(BigInteger, nullable=False)
    platform_fee = Column(BigInteger, nullable=False, default=0)
    net_amount = Column(BigInteger, nullable=False, default=0)
    currency = Column(String(3), nullable=False, default="ZAR")

    payer_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    recipient_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    recipient_type = Column(String, nullable=True)  # organizer|artist|vendor|user|platform
    event_id = Column(Integer, ForeignKey("events.id"), nullable=True, index=True)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=True, index=True)
    parent_id = Column(Integer, ForeignKey("transactions.id"), nullable=True)

    gateway_provider = Column(String, nullable=True, default="paystack")
    gateway_reference = Column(String, nullable=True)
    gateway_response = Column(JSON, nullable=True)
    meta = Column("metadata", JSON, nullable=True)

    authorized_at = Column(DateTime, nullable=True)
    held_at = Column(DateTime, nullable=True)
    released_at = Column(DateTime, nullable=True)
    settled_at = Column(DateTime, nullable=True)
    refunded_at = Column(DateTime, nullable=True)
    failed_at = Column(DateTime, nullable=True)
    failure_reason = Column(Text, nullable=True)
    refund_amount = Column(BigInteger, nullable=True)
    refund_reason = Column(Text, nullable=True)

    payer = relationship("User", foreign_keys=[payer_id])
    recipient = relationship("User", foreign_keys=[recipient_id])
    event = relationship("Event")
    booking = relationship("Booking")
    tickets = relationship("Ticket", back_populates="transaction")
