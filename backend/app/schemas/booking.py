from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from ..models.booking import BookingState, BookingType


class BookingCreate(BaseModel):
    event_id: int
    performer_id: int
    booking_type: BookingType = BookingType.ARTIST
    # Rands; falls back to the performer's base price when omitted
    offered_amount: Optional[float] = Field(default=None, gt=0, allow_inf_nan=False)
    organizer_notes: Optional[str] = None


class BookingAction(BaseModel):
    notes: Optional[str] = None
    reason: Optional[str] = None
    # Rands; only honoured when the performer accepts
    final_amount: Optional[float] = Field(default=None, gt=0, allow_inf_nan=False)


class BookingResponse(BaseModel):
    id: int
    event_id: int
    organizer_id: int
    performer_id: int
    booking_type: BookingType
    state: BookingState
    offered_amount: int
    final_amount: int | None = None
    commission_percent: Decimal | None = None
    platform_fee: int | None = None
    performer_payout: int | None = None
    organizer_notes: str | None = None
    performer_notes: str | None = None
    accepted_at: datetime | None = None
    confirmed_at: datetime | None = None
    completed_at: datetime | None = None
    cancelled_at: datetime | None = None
    cancellation_reason: str | None = None
    created_at: datetime

    model_config = {"from_attributes": True}
