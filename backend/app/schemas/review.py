from pydantic import BaseModel, Field
from typing import Optional, Annotated
from datetime import datetime


class ReviewBase(BaseModel):
  rating: Annotated[int, Field(ge=1, le=5)]
  title: Optional[str] = None
  comment: Optional[str] = None
  is_anonymous: bool = False


class ReviewCreate(ReviewBase):
  """Attendee review of an event that has ended."""
  event_id: int


class ReviewUpdate(BaseModel):
  rating: Optional[Annotated[int, Field(ge=1, le=5)]] = None
  title: Optional[str] = None
  comment: Optional[str] = None
  is_anonymous: Optional[bool] = None
  # Organizer only; an empty string clears the response
  organizer_response: Optional[str] = None


class ReviewResponse(ReviewBase):
  id: int
  event_id: int
  user_id: int | None = None
  reviewer_name: str | None = None
  is_verified_attendee: bool
  helpful_count: int
  organizer_response: str | None = None
  organizer_responded_at: datetime | None = None
  created_at: datetime
  updated_at: datetime


class RatingSummary(BaseModel):
  average_rating: float
  total_reviews: int
  distribution: dict[int, int]
