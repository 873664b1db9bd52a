from datetime import datetime
from typing import Any, Literal, Optional
import math

from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy.orm import Session

from ..database import get_db
from .. import crud, models
from ..models import NotificationType, User
from ..schemas.review import ReviewCreate, ReviewResponse, ReviewUpdate
from ..utils import error_response
from ..utils.errors import forbidden, not_found
from ..utils.notifications import notify, render
from .dependencies import get_current_active_user, get_optional_user

router = APIRouter(tags=["Reviews"])

AUTHOR_FIELDS = ("rating", "title", "comment", "is_anonymous")


def serialize_review(review: models.Review) -> ReviewResponse:
    """Anonymous reviews hide the author's identity."""
    anonymous = bool(review.is_anonymous)
    return ReviewResponse(
        id=review.id,
        event_id=review.event_id,
        user_id=None if anonymous else review.user_id,
        reviewer_name=None if anonymous or review.author is None else review.author.full_name,
        rating=review.rating,
        title=review.title,
        comment=review.comment,
        is_anonymous=anonymous,
        is_verified_attendee=bool(review.is_verified_attendee),
        helpful_count=review.helpful_count or 0,
        organizer_response=review.organizer_response,
        organizer_responded_at=review.organizer_responded_at,
        created_at=review.created_at,
        updated_at=review.updated_at,
    )


def _get_review(db: Session, review_id: int) -> models.Review:
    review = crud.review.get_review(db, review_id)
    if review is None:
        raise not_found("Review")
    return review


@router.get("")
def list_reviews(
    event_id: Optional[int] = None,
    user_id: Optional[int] = None,
    sort: Literal["recent", "helpful", "highest", "lowest"] = "recent",
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=50),
    db: Session = Depends(get_db),
) -> Any:
    items, total = crud.review.list_reviews(
        db,
        event_id=event_id,
        user_id=user_id,
        sort=sort,
        offset=(page - 1) * limit,
        limit=limit,
    )
    body = {
        "reviews": [serialize_review(r) for r in items],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "total_pages": math.ceil(total / limit) if total else 0,
        },
    }
    if event_id is not None:
        body["summary"] = crud.review.rating_summary(db, event_id)
    return body


@router.post("", response_model=ReviewResponse, status_code=status.HTTP_201_CREATED)
def create_review(
    *,
    db: Session = Depends(get_db),
    review_in: ReviewCreate,
    current_user: User = Depends(get_current_active_user),
) -> Any:
    """
    Review an event the caller attended.
    The event must have ended and each user may review it once.
    """
    event = db.get(models.Event, review_in.event_id)
    if event is None:
        raise not_found("Event", "event_id")
    if event.organizer_id == current_user.id:
        raise forbidden("You cannot review your own event.")
    if event.ends_at > datetime.utcnow():
        raise error_response(
            "You can only review events that have ended.",
            {"event_id": "not_ended"},
            status.HTTP_400_BAD_REQUEST,
        )
    if crud.review.get_user_review(db, event.id, current_user.id):
        raise error_response(
            "You have already reviewed this event.",
            {"event_id": "review_exists"},
            status.HTTP_409_CONFLICT,
        )

    db_review = models.Review(
        event_id=event.id,
        user_id=current_user.id,
        rating=review_in.rating,
        title=review_in.title,
        comment=review_in.comment,
        is_anonymous=review_in.is_anonymous,
        is_verified_attendee=crud.review.is_verified_attendee(db, event.id, current_user.id),
        is_visible=True,
        helpful_count=0,
    )
    db.add(db_review)
    db.commit()
    db.refresh(db_review)

    notify(
        db,
        event.organizer,
        NotificationType.REVIEW_RECEIVED,
        render("review_received", db_review.rating, event.title),
        f"/events/{event.id}/reviews",
        event_id=event.id,
    )
    return serialize_review(db_review)


@router.get("/{review_id}", response_model=ReviewResponse)
def read_review(
    review_id: int = Path(..., title="The ID of the review"),
    db: Session = Depends(get_db),
    current_user: Optional[User] = Depends(get_optional_user),
) -> Any:
    review = _get_review(db, review_id)
    if not review.is_visible and (current_user is None or current_user.id != review.user_id):
        raise not_found("Review")
    return serialize_review(review)


@router.patch("/{review_id}", response_model=ReviewResponse)
def update_review(
    review_id: int,
    review_in: ReviewUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> Any:
    review = _get_review(db, review_id)
    is_author = review.user_id == current_user.id
    is_organizer = review.event is not None and review.event.organizer_id == current_user.id
    updates = review_in.model_dump(exclude_unset=True)

    if not (is_author or is_organizer):
        raise forbidden("You cannot edit this review.")
    if "organizer_response" in updates and not is_organizer:
        raise forbidden("Only the event organizer can respond to reviews.")
    if any(field in updates for field in AUTHOR_FIELDS) and not is_author:
        raise forbidden("Only the author can edit this review.")

    for field in AUTHOR_FIELDS:
        if field in updates and updates[field] is not None:
            setattr(review, field, updates[field])
    if "organizer_response" in updates:
        text = (updates["organizer_response"] or "").strip()
        review.organizer_response = text or None
        review.organizer_responded_at = datetime.utcnow() if text else None

    db.commit()
    db.refresh(review)
    return serialize_review(review)


@router.delete("/{review_id}")
def delete_review(
    review_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    review = _get_review(db, review_id)
    if review.user_id != current_user.id:
        raise forbidden("Only the author can delete this review.")
    db.delete(review)
    db.commit()
    return {"success": True}


@router.post("/{review_id}/helpful")
def toggle_helpful(
    review_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    review = _get_review(db, review_id)
    if review.user_id == current_user.id:
        raise error_response(
            "You cannot vote on your own review.",
            {"review_id": "own_review"},
            status.HTTP_400_BAD_REQUEST,
        )
    voted = crud.review.toggle_helpful(db, review, current_user.id)
    return {"voted": voted, "helpful_count": review.helpful_count}


@router.get("/{review_id}/helpful")
def get_helpful(
    review_id: int,
    db: Session = Depends(get_db),
    current_user: Optional[User] = Depends(get_optional_user),
):
    if current_user is None:
        return {"voted": False}
    return {"voted": crud.review.get_vote(db, review_id, current_user.id) is not None}
