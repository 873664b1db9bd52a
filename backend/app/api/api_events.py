from datetime import date, datetime
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import func, or_
from sqlalchemy.orm import Session, joinedload
import logging
import math

from .. import crud, models
from ..database import atomic, get_db
from ..models import EventState, NotificationType, TicketStatus, User
from ..schemas.event import EventCreate, EventResponse, EventTransition
from ..services.fees import to_cents, to_rands
from ..services.state_machine import EVENT_TRANSITIONS, InvalidTransition, transition
from ..utils import redis_cache
from ..utils.errors import error_response, forbidden, invalid_transition, not_found
from ..utils.notifications import notify_many, render
from .dependencies import get_current_active_user, get_current_organizer

logger = logging.getLogger(__name__)

router = APIRouter(tags=["events"])

LISTED_STATES = (EventState.PUBLISHED, EventState.LOCKED)
DEFAULT_PRICE_RANGE = {"min": 0, "max": 1000}


def _search_filters(db: Session, today: date) -> dict:
    """Locations and price range (Rands) across upcoming listed events."""
    cached = redis_cache.get_cached_search_filters()
    if cached:
        return cached
    base = db.query(models.Event).filter(
        models.Event.state.in_(LISTED_STATES),
        models.Event.event_date >= today,
    )
    locations = sorted(
        {loc for (loc,) in base.with_entities(models.Event.location).distinct() if loc}
    )
    low, high = base.with_entities(
        func.min(models.Event.ticket_price), func.max(models.Event.ticket_price)
    ).one()
    price_range = (
        {"min": to_rands(low), "max": to_rands(high)} if high is not None else dict(DEFAULT_PRICE_RANGE)
    )
    filters = {"locations": locations, "price_range": price_range}
    redis_cache.cache_search_filters(filters)
    return filters


def _event_card(event: models.Event, rating: dict) -> dict:
    data = EventResponse.model_validate(event).model_dump()
    organizer = event.organizer
    data["organizer"] = {
        "id": organizer.id,
        "full_name": organizer.full_name,
        "avatar_url": organizer.avatar_url,
    } if organizer else None
    data["tickets_available"] = event.tickets_available
    data["rating"] = {
        "average_rating": rating["average_rating"],
        "total_reviews": rating["total_reviews"],
    }
    return data


@router.get("/search")
def search_events(
    q: Optional[str] = None,
    location: Optional[str] = None,
    city: Optional[str] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    price_min: Optional[float] = Query(default=None, ge=0),
    price_max: Optional[float] = Query(default=None, ge=0),
    is_free: bool = False,
    category: Optional[str] = None,
    sort_by: Literal["date", "price-low", "price-high", "popular"] = "date",
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=12, ge=1, le=100),
    db: Session = Depends(get_db),
):
    """Public listing of upcoming published events with filter metadata."""
    today = date.today()
    query = (
        db.query(models.Event)
        .options(joinedload(models.Event.organizer))
        .filter(models.Event.state.in_(LISTED_STATES))
    )
    if q:
        like = f"%{q.strip()}%"
        query = query.filter(
            or_(
                models.Event.title.ilike(like),
                models.Event.description.ilike(like),
                models.Event.venue.ilike(like),
            )
        )
    if location:
        query = query.filter(models.Event.location == location)
    if city:
        like = f"%{city.strip()}%"
        query = query.filter(
            or_(models.Event.venue.ilike(like), models.Event.venue_address.ilike(like))
        )
    query = query.filter(models.Event.event_date >= (date_from or today))
    if date_to:
        query = query.filter(models.Event.event_date <= date_to)
    if is_free:
        query = query.filter(models.Event.ticket_price == 0)
    else:
        if price_min is not None:
            query = query.filter(models.Event.ticket_price >= to_cents(price_min))
        if price_max is not None:
            query = query.filter(models.Event.ticket_price <= to_cents(price_max))
    if category:
        like = f"%{category.strip()}%"
        query = query.filter(
            or_(models.Event.description.ilike(like), models.Event.category.ilike(like))
        )

    if sort_by == "price-low":
        query = query.order_by(models.Event.ticket_price.asc(), models.Event.id.asc())
    elif sort_by == "price-high":
        query = query.order_by(models.Event.ticket_price.desc(), models.Event.id.asc())
    elif sort_by == "popular":
        query = query.order_by(models.Event.tickets_sold.desc(), models.Event.id.asc())
    else:
        query = query.order_by(models.Event.event_date.asc(), models.Event.id.asc())

    total = query.count()
    events = query.offset((page - 1) * limit).limit(limit).all()
    ratings = crud.review.rating_summaries(db, [e.id for e in events])
    return {
        "events": [_event_card(e, ratings[e.id]) for e in events],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "total_pages": math.ceil(total / limit) if total else 0,
        },
        "filters": _search_filters(db, today),
    }


@router.post("", response_model=EventResponse, status_code=status.HTTP_201_CREATED)
def create_event(
    payload: EventCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_organizer),
):
    if payload.end_date and payload.end_date < payload.event_date:
        raise error_response("End date cannot be before the event date", {"end_date": "invalid"})
    data = payload.model_dump()
    data["ticket_price"] = to_cents(payload.ticket_price)
    event = models.Event(
        organizer_id=current_user.id,
        state=EventState.DRAFT,
        tickets_sold=0,
        total_revenue=0,
        **data,
    )
    db.add(event)
    db.commit()
    db.refresh(event)
    logger.info("Organizer %s created event %s", current_user.id, event.id)
    return event


@router.get("/mine", response_model=list[EventResponse])
def list_my_events(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_organizer),
):
    return (
        db.query(models.Event)
        .filter(models.Event.organizer_id == current_user.id)
        .order_by(models.Event.event_date.desc(), models.Event.id.desc())
        .all()
    )


@router.get("/{event_id}")
def get_event(event_id: int, db: Session = Depends(get_db)):
    event = db.get(models.Event, event_id)
    if event is None or event.state == EventState.DRAFT:
        raise not_found("Event")
    return _event_card(event, crud.review.rating_summary(db, event.id))


@router.post("/{event_id}/transition", response_model=EventResponse)
def transition_event(
    event_id: int,
    payload: EventTransition,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    event = db.get(models.Event, event_id)
    if event is None:
        raise not_found("Event")
    if event.organizer_id != current_user.id:
        raise forbidden("Only the organizer can change this event")

    try:
        with atomic(db):
            transition(event, EVENT_TRANSITIONS, payload.state, kind="event")
            if payload.state == EventState.CANCELLED:
                event.cancellation_reason = payload.reason
    except InvalidTransition as exc:
        raise invalid_transition(exc)
    redis_cache.invalidate_search_filters()

    if payload.state == EventState.CANCELLED:
        holders = [
            uid
            for (uid,) in db.query(models.Ticket.user_id)
            .filter(
                models.Ticket.event_id == event.id,
                models.Ticket.status.in_([TicketStatus.CONFIRMED, TicketStatus.CHECKED_IN]),
            )
            .distinct()
        ]
        sent = notify_many(
            db,
            holders,
            NotificationType.EVENT_CANCELLED,
            render("event_cancelled", event.title),
            f"/events/{event.id}",
            event_id=event.id,
        )
        logger.info("Event %s cancelled; notified %s ticket holders", event.id, sent)
    db.refresh(event)
    return event


@router.get("/{event_id}/attendance")
def event_attendance(
    event_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    event = db.get(models.Event, event_id)
    if event is None:
        raise not_found("Event")
    if event.organizer_id != current_user.id:
        raise forbidden("Not authorized")

    tickets = (
        db.query(models.Ticket)
        .filter(models.Ticket.event_id == event.id)
        .order_by(models.Ticket.checked_in_at.asc())
        .all()
    )
    total = len(tickets)
    checked_in = sum(1 for t in tickets if t.checked_in)

    timeline: dict[str, int] = {}
    by_type: dict[str, dict[str, int]] = {}
    for ticket in tickets:
        if ticket.checked_in and ticket.checked_in_at:
            key = f"{ticket.checked_in_at.hour}:00"
            timeline[key] = timeline.get(key, 0) + 1
        bucket = by_type.setdefault(ticket.ticket_type or "general", {"total": 0, "checked_in": 0})
        bucket["total"] += 1
        if ticket.checked_in:
            bucket["checked_in"] += 1

    return {
        "event_id": event.id,
        "event_title": event.title,
        "stats": {
            "total_tickets": total,
            "checked_in": checked_in,
            "not_checked_in": total - checked_in,
            "attendance_rate": round(checked_in / total * 100) if total else 0,
        },
        "timeline": timeline,
        "by_type": by_type,
        "generated_at": datetime.utcnow(),
    }
