import logging
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, status
from fastapi.responses import ORJSONResponse
from sqlalchemy.orm import Session

from .. import models
from ..database import atomic, get_db
from ..models import (
    BookingState,
    BookingType,
    EventState,
    NotificationType,
    TransactionState,
    User,
)
from ..schemas.booking import BookingAction, BookingCreate, BookingResponse
from ..services.fees import calculate_booking_commission, format_zar, to_cents
from ..services.payments import (
    PaymentProcessingError,
    credit_wallet,
    held_booking_payment,
    release_booking_funds,
)
from ..services.state_machine import (
    BOOKING_TRANSITIONS,
    TRANSACTION_TRANSITIONS,
    InvalidTransition,
    transition,
)
from ..utils.errors import error_response, forbidden, invalid_transition, not_found
from ..utils.notifications import notify, render
from .dependencies import get_current_active_user, get_current_organizer

router = APIRouter(tags=["bookings"], default_response_class=ORJSONResponse)
logger = logging.getLogger(__name__)

CLOSED_EVENT_STATES = (EventState.COMPLETED, EventState.CANCELLED)


def performer_name(user: Optional[User]) -> str:
    if user is None:
        return "The performer"
    if user.artist_profile and user.artist_profile.stage_name:
        return user.artist_profile.stage_name
    if user.provider_profile and user.provider_profile.business_name:
        return user.provider_profile.business_name
    return user.full_name


def _event_title(booking: models.Booking) -> str:
    return booking.event.title if booking.event else "your event"


def _get_booking(db: Session, booking_id: int, user: User) -> models.Booking:
    booking = db.get(models.Booking, booking_id)
    if booking is None:
        raise not_found("Booking")
    if user.id not in (booking.organizer_id, booking.performer_id):
        raise forbidden("Not a party to this booking")
    return booking


def _move(db: Session, booking: models.Booking, new: BookingState, apply=None) -> models.Booking:
    """Apply a booking transition plus any extra writes as one unit."""
    try:
        with atomic(db):
            transition(booking, BOOKING_TRANSITIONS, new, kind="booking")
            if apply is not None:
                apply()
    except InvalidTransition as exc:
        raise invalid_transition(exc)
    db.refresh(booking)
    return booking


@router.post("", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
def create_booking(
    *,
    db: Session = Depends(get_db),
    booking_in: BookingCreate,
    current_user: User = Depends(get_current_organizer),
):
    """Request an artist or vendor for one of the caller's events."""
    event = db.get(models.Event, booking_in.event_id)
    if event is None:
        raise not_found("Event", "event_id")
    if event.organizer_id != current_user.id:
        raise forbidden("Only the event organizer can book performers")
    if event.state in CLOSED_EVENT_STATES:
        raise error_response(
            f"Cannot book for a {event.state.value} event",
            {"event_id": event.state.value},
            status.HTTP_400_BAD_REQUEST,
        )

    performer = db.get(models.User, booking_in.performer_id)
    if performer is None:
        raise not_found("Performer", "performer_id")
    if performer.id == current_user.id:
        raise error_response("You cannot book yourself", {"performer_id": "self"}, status.HTTP_400_BAD_REQUEST)
    if booking_in.booking_type == BookingType.VENDOR:
        profile = performer.provider_profile if performer.is_provider else None
    else:
        profile = performer.artist_profile if performer.is_artist else None
    if profile is None:
        raise error_response(
            f"User is not a bookable {booking_in.booking_type.value}",
            {"performer_id": "not_bookable"},
            status.HTTP_400_BAD_REQUEST,
        )

    if booking_in.offered_amount is not None:
        amount = to_cents(booking_in.offered_amount)
    else:
        amount = int(profile.base_price or 0)
    if amount <= 0:
        raise error_response(
            "An offered amount is required",
            {"offered_amount": "required"},
            status.HTTP_400_BAD_REQUEST,
        )

    booking = models.Booking(
        event_id=event.id,
        organizer_id=current_user.id,
        performer_id=performer.id,
        booking_type=booking_in.booking_type,
        state=BookingState.PENDING,
        offered_amount=amount,
        organizer_notes=booking_in.organizer_notes,
    )
    db.add(booking)
    db.commit()
    db.refresh(booking)
    logger.info(
        "Booking %s requested: event=%s performer=%s amount=%s",
        booking.id,
        event.id,
        performer.id,
        amount,
    )

    notify(
        db,
        performer,
        NotificationType.BOOKING_REQUEST,
        render("booking_request", current_user.full_name, event.title),
        f"/bookings/{booking.id}",
        send_email=True,
        booking_id=booking.id,
        event_id=event.id,
    )
    return booking


@router.get("", response_model=List[BookingResponse])
def list_bookings(
    role: Literal["organizer", "performer", "any"] = "any",
    state: Optional[BookingState] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    query = db.query(models.Booking)
    if role == "organizer":
        query = query.filter(models.Booking.organizer_id == current_user.id)
    elif role == "performer":
        query = query.filter(models.Booking.performer_id == current_user.id)
    else:
        query = query.filter(
            (models.Booking.organizer_id == current_user.id)
            | (models.Booking.performer_id == current_user.id)
        )
    if state is not None:
        query = query.filter(models.Booking.state == state)
    return query.order_by(models.Booking.created_at.desc(), models.Booking.id.desc()).all()


@router.get("/{booking_id}", response_model=BookingResponse)
def read_booking(
    booking_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    return _get_booking(db, booking_id, current_user)


@router.post("/{booking_id}/accept", response_model=BookingResponse)
def accept_booking(
    booking_id: int,
    payload: Optional[BookingAction] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    payload = payload or BookingAction()
    booking = _get_booking(db, booking_id, current_user)
    if booking.performer_id != current_user.id:
        raise forbidden("Only the performer can accept this booking")

    def _apply():
        if payload.final_amount is not None:
            booking.final_amount = to_cents(payload.final_amount)
        commission = calculate_booking_commission(booking.agreed_amount, booking.booking_type)
        booking.commission_percent = commission["percent"]
        booking.platform_fee = commission["commission"]
        booking.performer_payout = commission["payout"]
        if payload.notes:
            booking.performer_notes = payload.notes

    booking = _move(db, booking, BookingState.ACCEPTED, _apply)
    notify(
        db,
        booking.organizer,
        NotificationType.BOOKING_ACCEPTED,
        render("booking_accepted", performer_name(current_user), _event_title(booking)),
        f"/bookings/{booking.id}",
        send_email=True,
        booking_id=booking.id,
        event_id=booking.event_id,
    )
    return booking


@router.post("/{booking_id}/decline", response_model=BookingResponse)
def decline_booking(
    booking_id: int,
    payload: Optional[BookingAction] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    payload = payload or BookingAction()
    booking = _get_booking(db, booking_id, current_user)
    if booking.performer_id != current_user.id:
        raise forbidden("Only the performer can decline this booking")

    def _apply():
        booking.performer_notes = payload.reason or payload.notes

    booking = _move(db, booking, BookingState.DECLINED, _apply)
    notify(
        db,
        booking.organizer,
        NotificationType.BOOKING_DECLINED,
        render("booking_declined", performer_name(current_user), _event_title(booking), payload.reason),
        f"/bookings/{booking.id}",
        send_email=True,
        booking_id=booking.id,
        event_id=booking.event_id,
    )
    return booking


@router.post("/{booking_id}/cancel", response_model=BookingResponse)
def cancel_booking(
    booking_id: int,
    payload: Optional[BookingAction] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    """Either party may cancel; a held payment goes back to the organizer's wallet."""
    payload = payload or BookingAction()
    booking = _get_booking(db, booking_id, current_user)
    by_organizer = booking.organizer_id == current_user.id

    def _apply():
        booking.cancelled_by = current_user.id
        booking.cancellation_reason = payload.reason
        held = held_booking_payment(db, booking.id)
        if held is not None:
            transition(held, TRANSACTION_TRANSITIONS, TransactionState.REFUNDED, kind="transaction")
            held.refund_amount = held.amount
            held.refund_reason = payload.reason or "Booking cancelled"
            credit_wallet(booking.organizer, int(held.amount))
            logger.info("Refunded held booking payment %s amount=%s", held.reference, held.amount)

    booking = _move(db, booking, BookingState.CANCELLED, _apply)
    other = booking.performer if by_organizer else booking.organizer
    notify(
        db,
        other,
        NotificationType.BOOKING_CANCELLED,
        render("booking_cancelled", _event_title(booking), "organizer" if by_organizer else "performer"),
        f"/bookings/{booking.id}",
        send_email=True,
        booking_id=booking.id,
        event_id=booking.event_id,
    )
    return booking


@router.post("/{booking_id}/complete", response_model=BookingResponse)
def complete_booking(
    booking_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    booking = _get_booking(db, booking_id, current_user)
    if booking.organizer_id != current_user.id:
        raise forbidden("Only the organizer can complete this booking")

    payout = {}

    def _apply():
        payout["amount"] = release_booking_funds(db, booking)

    try:
        booking = _move(db, booking, BookingState.COMPLETED, _apply)
    except PaymentProcessingError as exc:
        raise error_response(str(exc), {"booking_id": "no_held_payment"}, status.HTTP_400_BAD_REQUEST)
    logger.info("Booking %s completed; released %s to performer %s", booking.id, payout["amount"], booking.performer_id)

    notify(
        db,
        booking.performer,
        NotificationType.BOOKING_COMPLETED,
        render("booking_completed", _event_title(booking), format_zar(payout["amount"])),
        "/wallet",
        send_email=True,
        booking_id=booking.id,
        event_id=booking.event_id,
    )
    return booking


@router.post("/{booking_id}/dispute", response_model=BookingResponse)
def dispute_booking(
    booking_id: int,
    payload: Optional[BookingAction] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    payload = payload or BookingAction()
    booking = _get_booking(db, booking_id, current_user)
    if booking.organizer_id != current_user.id:
        raise forbidden("Only the organizer can dispute this booking")

    def _apply():
        if payload.reason:
            booking.organizer_notes = payload.reason

    booking = _move(db, booking, BookingState.DISPUTED, _apply)
    logger.warning("Booking %s disputed by organizer %s", booking.id, current_user.id)
    return booking
