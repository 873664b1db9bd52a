from datetime import date, datetime, time

from sqlalchemy import Column, Integer, String, Text, Date, Time, DateTime, ForeignKey, BigInteger
from sqlalchemy.orm import relationship
import enum

from .base import BaseModel
from .types import CaseInsensitiveEnum


class EventState(str, enum.Enum):
    DRAFT = "draft"
    PUBLISHED = "published"
    LOCKED = "locked"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class Event(BaseModel):
    __tablename__ = "events"

    id = Column(Integer, primary_key=True, index=True)
    organizer_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    category = Column(String, nullable=True)
    venue = Column(String, nullable=True)
    venue_address = Column(String, nullable=True)
    location = Column(String, nullable=True, index=True)  # province / city

    event_date = Column(Date, nullable=False, index=True)
    start_time = Column(Time, nullable=True)
    end_time = Column(Time, nullable=True)
    end_date = Column(Date, nullable=True)

    ticket_price = Column(BigInteger, nullable=False, default=0)  # cents
    capacity = Column(Integer, nullable=False, default=0)
    tickets_sold = Column(Integer, nullable=False, default=0)
    total_revenue = Column(BigInteger, nullable=False, default=0)  # organizer net, cents

    state = Column(CaseInsensitiveEnum(EventState, name="eventstate"), nullable=False, default=EventState.DRAFT, index=True)
    published_at = Column(DateTime, nullable=True)
    locked_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)
    cancellation_reason = Column(Text, nullable=True)

    organizer = relationship("User")
    tickets = relationship("Ticket", back_populates="event", cascade="all, delete-orphan")
    bookings = relationship("Booking", back_populates="event", cascade="all, delete-orphan")
    reviews = relationship("Review", back_populates="event", cascade="all, delete-orphan")

    @property
    def is_published(self) -> bool:
        return self.state in (EventState.PUBLISHED, EventState.LOCKED)

    @property
    def ends_at(self) -> datetime:
        last_day: date = self.end_date or self.event_date
        return datetime.combine(last_day, self.end_time or time.max)

    @property
    def tickets_available(self) -> int:
        return max(0, (self.capacity or 0) - (self.tickets_sold or 0))
