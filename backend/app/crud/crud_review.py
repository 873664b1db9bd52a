from sqlalchemy import func
from sqlalchemy.orm import Session
from typing import Dict, Iterable, List, Optional, Tuple

from .. import models

SORTS = {
    "recent": (models.Review.created_at.desc(), models.Review.id.desc()),
    "helpful": (models.Review.helpful_count.desc(), models.Review.created_at.desc()),
    "highest": (models.Review.rating.desc(), models.Review.created_at.desc()),
    "lowest": (models.Review.rating.asc(), models.Review.created_at.desc()),
}


def _empty_summary() -> Dict[str, object]:
    return {
        "average_rating": 0.0,
        "total_reviews": 0,
        "distribution": {star: 0 for star in range(1, 6)},
    }


class CRUDReview:
    def get_review(self, db: Session, review_id: int) -> Optional[models.Review]:
        return db.query(models.Review).filter(models.Review.id == review_id).first()

    def get_user_review(self, db: Session, event_id: int, user_id: int) -> Optional[models.Review]:
        return (
            db.query(models.Review)
            .filter(models.Review.event_id == event_id, models.Review.user_id == user_id)
            .first()
        )

    def list_reviews(
        self,
        db: Session,
        *,
        event_id: Optional[int] = None,
        user_id: Optional[int] = None,
        sort: str = "recent",
        offset: int = 0,
        limit: int = 10,
    ) -> Tuple[List[models.Review], int]:
        query = db.query(models.Review).filter(models.Review.is_visible.is_(True))
        if event_id is not None:
            query = query.filter(models.Review.event_id == event_id)
        if user_id is not None:
            query = query.filter(models.Review.user_id == user_id)
        total = query.count()
        items = query.order_by(*SORTS.get(sort, SORTS["recent"])).offset(offset).limit(limit).all()
        return items, total

    def rating_summaries(self, db: Session, event_ids: Iterable[int]) -> Dict[int, Dict[str, object]]:
        """Average, count and per-star distribution of visible reviews per event."""
        ids = list(event_ids)
        summaries = {event_id: _empty_summary() for event_id in ids}
        if not ids:
            return summaries
        rows = (
            db.query(models.Review.event_id, models.Review.rating, func.count(models.Review.id))
            .filter(models.Review.event_id.in_(ids), models.Review.is_visible.is_(True))
            .group_by(models.Review.event_id, models.Review.rating)
            .all()
        )
        for event_id, rating, count in rows:
            summary = summaries[event_id]
            summary["distribution"][int(rating)] = int(count)
        for summary in summaries.values():
            dist = summary["distribution"]
            total = sum(dist.values())
            summary["total_reviews"] = total
            if total:
                summary["average_rating"] = round(
                    sum(star * n for star, n in dist.items()) / total, 1
                )
        return summaries

    def rating_summary(self, db: Session, event_id: int) -> Dict[str, object]:
        return self.rating_summaries(db, [event_id])[event_id]

    def is_verified_attendee(self, db: Session, event_id: int, user_id: int) -> bool:
        return (
            db.query(models.Ticket.id)
            .filter(
                models.Ticket.event_id == event_id,
                models.Ticket.user_id == user_id,
                models.Ticket.status.in_([models.TicketStatus.CONFIRMED, models.TicketStatus.CHECKED_IN]),
            )
            .first()
            is not None
        )

    def get_vote(self, db: Session, review_id: int, user_id: int) -> Optional[models.ReviewHelpfulVote]:
        return (
            db.query(models.ReviewHelpfulVote)
            .filter(
                models.ReviewHelpfulVote.review_id == review_id,
                models.ReviewHelpfulVote.user_id == user_id,
            )
            .first()
        )

    def toggle_helpful(self, db: Session, review: models.Review, user_id: int) -> bool:
        """Add or remove the user's helpful vote; returns True when now voted."""
        vote = self.get_vote(db, review.id, user_id)
        if vote:
            db.delete(vote)
            review.helpful_count = max(0, (review.helpful_count or 0) - 1)
            voted = False
        else:
            db.add(models.ReviewHelpfulVote(review_id=review.id, user_id=user_id))
            review.helpful_count = (review.helpful_count or 0) + 1
            voted = True
        db.commit()
        db.refresh(review)
        return voted


review = CRUDReview()
