from datetime import date, datetime
from typing import Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy import func
from sqlalchemy.orm import Session
import logging

from .. import models
from ..database import atomic, get_db
from ..models import NotificationType, TicketStatus, User
from ..schemas.ticket import TicketCheckinRequest, TicketValidateRequest
from ..utils.errors import error_response, forbidden
from ..utils.notifications import notify, render
from .dependencies import get_current_active_user

logger = logging.getLogger(__name__)

router = APIRouter(tags=["tickets"])


def days_until(event_date: date, today: Optional[date] = None) -> int:
    return (event_date - (today or date.today())).days


def door_status(ticket: models.Ticket, today: Optional[date] = None) -> tuple[str, str]:
    """Classify a ticket at the door: ``used``, ``early``, ``expired`` or ``valid``."""
    if ticket.checked_in:
        at = ticket.checked_in_at.strftime("%H:%M") if ticket.checked_in_at else "an earlier time"
        return "used", f"Already checked in at {at}"
    diff = days_until(ticket.event.event_date, today)
    if diff > 1:
        return "early", f"Event is in {diff} days. Check-in opens on event day."
    if diff < -1:
        return "expired", "This event has already ended."
    return "valid", "Ticket is valid and ready for check-in."


def _load_ticket(
    db: Session,
    user: User,
    *,
    ticket_code: Optional[str] = None,
    ticket_id: Optional[int] = None,
    event_id: Optional[int] = None,
) -> models.Ticket:
    query = db.query(models.Ticket)
    if ticket_id is not None:
        ticket = query.filter(models.Ticket.id == ticket_id).first()
    else:
        code = (ticket_code or "").strip().upper()
        ticket = query.filter(func.upper(models.Ticket.ticket_code) == code).first()
    if ticket is None:
        raise error_response(
            "This ticket code does not exist in our system.",
            {"ticket_code": "not_found"},
            status.HTTP_404_NOT_FOUND,
        )
    if event_id is not None and ticket.event_id != event_id:
        raise error_response(
            "This ticket is for a different event.",
            {"event_id": "wrong_event"},
            status.HTTP_400_BAD_REQUEST,
        )
    if ticket.event.organizer_id != user.id:
        raise forbidden("You are not authorized to manage tickets for this event")
    return ticket


def _ticket_summary(ticket: models.Ticket) -> dict:
    holder = ticket.holder
    event = ticket.event
    return {
        "id": ticket.id,
        "code": ticket.ticket_code,
        "type": ticket.ticket_type,
        "price_paid": ticket.price_paid,
        "status": ticket.status.value,
        "checked_in": ticket.checked_in,
        "checked_in_at": ticket.checked_in_at,
        "holder": {
            "id": holder.id,
            "full_name": holder.full_name,
            "avatar_url": holder.avatar_url,
        } if holder else None,
        "event": {
            "id": event.id,
            "title": event.title,
            "event_date": event.event_date,
            "start_time": event.start_time,
            "venue": event.venue,
            "location": event.location,
        },
    }


@router.post("/validate")
def validate_ticket(
    payload: TicketValidateRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    """Preview a ticket at the door without checking it in."""
    if not payload.ticket_code:
        raise error_response("Ticket code is required", {"ticket_code": "required"}, status.HTTP_400_BAD_REQUEST)
    ticket = _load_ticket(db, current_user, ticket_code=payload.ticket_code, event_id=payload.event_id)
    state, message = door_status(ticket)
    return {
        "valid": state == "valid",
        "status": state,
        "message": message,
        "ticket": _ticket_summary(ticket),
    }


@router.post("/checkin")
def checkin_ticket(
    payload: TicketCheckinRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    if not payload.ticket_code and payload.ticket_id is None:
        raise error_response(
            "Ticket code or ticket ID is required",
            {"ticket_code": "required"},
            status.HTTP_400_BAD_REQUEST,
        )
    ticket = _load_ticket(
        db,
        current_user,
        ticket_code=payload.ticket_code,
        ticket_id=payload.ticket_id,
        event_id=payload.event_id,
    )
    holder_name = ticket.holder.full_name if ticket.holder else "Guest"

    if ticket.status in (TicketStatus.REFUNDED, TicketStatus.CANCELLED):
        raise error_response(
            f"This ticket has been {ticket.status.value}.",
            {"ticket_code": ticket.status.value},
            status.HTTP_400_BAD_REQUEST,
        )
    state, message = door_status(ticket)
    if state == "used":
        return {
            "success": False,
            "already_checked_in": True,
            "message": message,
            "ticket": {
                "id": ticket.id,
                "code": ticket.ticket_code,
                "type": ticket.ticket_type,
                "holder": holder_name,
                "checked_in_at": ticket.checked_in_at,
            },
        }
    if state == "early":
        raise error_response(
            f"Check-in for this event opens on {ticket.event.event_date.isoformat()}",
            {"ticket_code": "too_early"},
            status.HTTP_400_BAD_REQUEST,
        )
    if state == "expired":
        raise error_response("This event has already ended.", {"ticket_code": "event_ended"}, status.HTTP_400_BAD_REQUEST)

    now = datetime.utcnow()
    with atomic(db):
        ticket.checked_in = True
        ticket.checked_in_at = now
        ticket.checked_in_by = current_user.id
        ticket.status = TicketStatus.CHECKED_IN
    logger.info("Checked in ticket %s for event %s", ticket.ticket_code, ticket.event_id)

    notify(
        db,
        ticket.holder,
        NotificationType.TICKET_CHECKIN,
        render("ticket_checkin", ticket.event.title),
        f"/events/{ticket.event_id}",
        event_id=ticket.event_id,
    )

    checked_in = (
        db.query(func.count(models.Ticket.id))
        .filter(models.Ticket.event_id == ticket.event_id, models.Ticket.checked_in.is_(True))
        .scalar()
    )
    total = (
        db.query(func.count(models.Ticket.id))
        .filter(models.Ticket.event_id == ticket.event_id)
        .scalar()
    )
    return {
        "success": True,
        "message": "Check-in successful!",
        "ticket": {
            "id": ticket.id,
            "code": ticket.ticket_code,
            "type": ticket.ticket_type,
            "holder": holder_name,
            "checked_in_at": now,
        },
        "attendance": {"checked_in": checked_in or 0, "total": total or 0},
    }
