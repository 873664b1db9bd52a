from datetime import date, datetime, time
from typing import Optional

from pydantic import BaseModel, Field

from ..models.event import EventState


class EventBase(BaseModel):
    title: str = Field(min_length=1)
    description: Optional[str] = None
    category: Optional[str] = None
    venue: Optional[str] = None
    venue_address: Optional[str] = None
    location: Optional[str] = None
    event_date: date
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    end_date: Optional[date] = None
    capacity: int = Field(ge=0)


class EventCreate(EventBase):
    # Rands at the API edge; stored as cents
    ticket_price: float = Field(ge=0, allow_inf_nan=False)


class EventResponse(EventBase):
    id: int
    organizer_id: int
    ticket_price: int
    tickets_sold: int
    total_revenue: int
    state: EventState
    published_at: datetime | None = None
    locked_at: datetime | None = None
    completed_at: datetime | None = None
    cancelled_at: datetime | None = None
    cancellation_reason: str | None = None

    model_config = {"from_attributes": True}


class EventTransition(BaseModel):
    state: EventState
    reason: Optional[str] = None
