from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, BigInteger, Numeric
from sqlalchemy.orm import relationship
import enum

from .base import BaseModel
from .types import CaseInsensitiveEnum


class BookingState(str, enum.Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    DISPUTED = "disputed"


class BookingType(str, enum.Enum):
    ARTIST = "artist"
    VENDOR = "vendor"


class Booking(BaseModel):
    """An organizer hiring an artist or vendor for an event."""

    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True)
    organizer_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    performer_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    booking_type = Column(CaseInsensitiveEnum(BookingType, name="bookingtype"), nullable=False, default=BookingType.ARTIST)

    state = Column(CaseInsensitiveEnum(BookingState, name="bookingstate"), nullable=False, default=BookingState.PENDING, index=True)

    offered_amount = Column(BigInteger, nullable=False)  # cents
    final_amount = Column(BigInteger, nullable=True)
    commission_percent = Column(Numeric(5, 2), nullable=True)
    platform_fee = Column(BigInteger, nullable=True)
    performer_payout = Column(BigInteger, nullable=True)

    organizer_notes = Column(Text, nullable=True)
    performer_notes = Column(Text, nullable=True)

    accepted_at = Column(DateTime, nullable=True)
    declined_at = Column(DateTime, nullable=True)
    confirmed_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)
    disputed_at = Column(DateTime, nullable=True)
    cancelled_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    cancellation_reason = Column(String, nullable=True)

    event = relationship("Event", back_populates="bookings")
    organizer = relationship("User", foreign_keys=[organizer_id])
    performer = relationship("User", foreign_keys=[performer_id])

    @property
    def agreed_amount(self) -> int:
        return int(self.final_amount or self.offered_amount or 0)
