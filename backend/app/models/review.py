from sqlalchemy import Column, Integer, String, Boolean, DateTime, Text, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship

from .base import BaseModel


class Review(BaseModel):
    __tablename__ = "reviews"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    rating = Column(Integer, nullable=False)
    title = Column(String, nullable=True)
    comment = Column(Text, nullable=True)
    is_verified_attendee = Column(Boolean, nullable=False, default=False)
    is_anonymous = Column(Boolean, nullable=False, default=False)
    is_visible = Column(Boolean, nullable=False, default=True)
    helpful_count = Column(Integer, nullable=False, default=0)

    organizer_response = Column(Text, nullable=True)
    organizer_responded_at = Column(DateTime, nullable=True)

    #   Each Review is attached to exactly one Event
    event = relationship("Event", back_populates="reviews")
    author = relationship("User")
    votes = relationship("ReviewHelpfulVote", back_populates="review", cascade="all, delete-orphan")

    __table_args__ = (
        UniqueConstraint("event_id", "user_id", name="uq_reviews_event_user"),
    )


class ReviewHelpfulVote(BaseModel):
    __tablename__ = "review_helpful_votes"

    id = Column(Integer, primary_key=True, index=True)
    review_id = Column(Integer, ForeignKey("reviews.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)

    review = relationship("Review", back_populates="votes")

    __table_args__ = (
        UniqueConstraint("review_id", "user_id", name="uq_review_helpful_votes"),
    )
