"""Settlement of gateway callbacks into local ledger rows.

Each handler applies its writes inside one database transaction and only
acts on a transaction that is still waiting for that callback, so Paystack
retries are harmless.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session

from .. import models
from ..database import atomic
from ..models import (
    BookingState,
    NotificationType,
    TicketStatus,
    TransactionState,
    TransactionType,
)
from ..utils.notifications import notify, render
from . import paystack
from .fees import format_zar
from .state_machine import BOOKING_TRANSITIONS, TRANSACTION_TRANSITIONS, can_transition, transition

logger = logging.getLogger(__name__)

MAX_CODE_ATTEMPTS = 10


class PaymentProcessingError(Exception):
    """A paid charge could not be applied to its transaction."""


def get_transaction(db: Session, reference: str) -> Optional[models.Transaction]:
    return db.query(models.Transaction).filter(models.Transaction.reference == reference).first()


def credit_wallet(user: models.User, amount: int) -> None:
    user.wallet_balance = int(user.wallet_balance or 0) + int(amount)


def debit_wallet(user: models.User, amount: int) -> None:
    balance = int(user.wallet_balance or 0)
    if amount > balance:
        raise PaymentProcessingError("Insufficient wallet balance")
    user.wallet_balance = balance - int(amount)


def unique_ticket_code(db: Session, taken: set[str]) -> str:
    for _ in range(MAX_CODE_ATTEMPTS):
        code = paystack.generate_ticket_code()
        if code in taken:
            continue
        if not db.query(models.Ticket.id).filter(models.Ticket.ticket_code == code).first():
            taken.add(code)
            return code
    raise PaymentProcessingError("Could not allocate a unique ticket code")


# ─── charge.success ─────────────────────────────────────────────────────────


def _issue_tickets(db: Session, txn: models.Transaction, now: datetime) -> List[models.Ticket]:
    meta = txn.meta or {}
    quantity = int(meta.get("quantity") or 1)
    event = db.get(models.Event, txn.event_id) if txn.event_id else None
    if event is None:
        raise PaymentProcessingError("Event not found for ticket purchase")
    if (event.tickets_sold or 0) + quantity > (event.capacity or 0):
        raise PaymentProcessingError("Not enough tickets available")

    transition(txn, TRANSACTION_TRANSITIONS, TransactionState.AUTHORIZED, kind="transaction", now=now)
    price_paid = int(txn.amount) // quantity
    taken: set[str] = set()
    tickets = []
    for _ in range(quantity):
        ticket = models.Ticket(
            event_id=event.id,
            user_id=txn.payer_id,
            transaction_id=txn.id,
            ticket_code=unique_ticket_code(db, taken),
            ticket_type=meta.get("ticket_type") or "general",
            price_paid=price_paid,
            status=TicketStatus.CONFIRMED,
            checked_in=False,
        )
        db.add(ticket)
        tickets.append(ticket)
    event.tickets_sold = (event.tickets_sold or 0) + quantity
    event.total_revenue = (event.total_revenue or 0) + int(txn.net_amount or 0)
    transition(txn, TRANSACTION_TRANSITIONS, TransactionState.HELD, kind="transaction", now=now)
    return tickets


def _settle_deposit(db: Session, txn: models.Transaction, now: datetime) -> None:
    payer = db.get(models.User, txn.payer_id)
    if payer is None:
        raise PaymentProcessingError("Depositing user not found")
    transition(txn, TRANSACTION_TRANSITIONS, TransactionState.SETTLED, kind="transaction", now=now)
    credit_wallet(payer, int(txn.net_amount))


def _confirm_booking(db: Session, txn: models.Transaction, now: datetime) -> Optional[str]:
    """Hold the payment and confirm the booking.

    A charge for a booking that can no longer be confirmed goes back to the
    payer's wallet; the returned string is the reason.
    """
    booking = db.get(models.Booking, txn.booking_id) if txn.booking_id else None
    if booking is None:
        raise PaymentProcessingError("Booking not found for payment")
    transition(txn, TRANSACTION_TRANSITIONS, TransactionState.AUTHORIZED, kind="transaction", now=now)
    if not can_transition(BOOKING_TRANSITIONS, booking.state, BookingState.CONFIRMED):
        payer = db.get(models.User, txn.payer_id) if txn.payer_id else None
        if payer is None:
            raise PaymentProcessingError("Paying user not found")
        reason = f"Booking is already {booking.state.value}"
        transition(txn, TRANSACTION_TRANSITIONS, TransactionState.REFUNDED, kind="transaction", now=now)
        txn.refund_amount = int(txn.amount)
        txn.refund_reason = reason
        credit_wallet(payer, int(txn.amount))
        return reason
    transition(txn, TRANSACTION_TRANSITIONS, TransactionState.HELD, kind="transaction", now=now)
    transition(booking, BOOKING_TRANSITIONS, BookingState.CONFIRMED, kind="booking", now=now)
    return None


def _notify_charge(db: Session, txn: models.Transaction, tickets: List[models.Ticket]) -> None:
    payer = db.get(models.User, txn.payer_id) if txn.payer_id else None
    if txn.type == TransactionType.TICKET_PURCHASE:
        event = db.get(models.Event, txn.event_id)
        codes = ", ".join(t.ticket_code for t in tickets)
        notify(
            db,
            payer,
            NotificationType.TICKET_PURCHASED,
            render("ticket_purchased", event.title, len(tickets), codes),
            "/tickets",
            send_email=True,
            event_id=event.id,
            transaction_id=txn.id,
        )
    elif txn.type == TransactionType.WALLET_DEPOSIT:
        notify(
            db,
            payer,
            NotificationType.PAYMENT_RECEIVED,
            render("payment_received", format_zar(txn.net_amount), "Wallet deposit"),
            "/wallet",
            transaction_id=txn.id,
        )
    elif txn.type == TransactionType.BOOKING_PAYMENT:
        booking = db.get(models.Booking, txn.booking_id)
        event = booking.event
        date = event.event_date.isoformat() if event and event.event_date else ""
        title = event.title if event else "your event"
        notify(
            db,
            booking.performer,
            NotificationType.BOOKING_CONFIRMED,
            render("booking_confirmed", title, date),
            f"/bookings/{booking.id}",
            send_email=True,
            booking_id=booking.id,
            event_id=booking.event_id,
            transaction_id=txn.id,
        )


def _mark_failed(db: Session, reference: str, reason: str) -> None:
    txn = get_transaction(db, reference)
    if txn is None or not can_transition(TRANSACTION_TRANSITIONS, txn.state, TransactionState.FAILED):
        return
    with atomic(db):
        transition(txn, TRANSACTION_TRANSITIONS, TransactionState.FAILED, kind="transaction")
        txn.failure_reason = reason[:500]


def handle_charge_success(db: Session, data: dict) -> str:
    """Apply a successful charge to its transaction. Returns the outcome."""
    reference = str(data.get("reference") or "")
    if not reference:
        return "ignored"
    verified = paystack.verify_payment(reference)
    if str(verified.get("status", "")).lower() != "success":
        logger.info("Charge %s not successful on re-verify (%s)", reference, verified.get("status"))
        return "ignored"

    txn = get_transaction(db, reference)
    if txn is None:
        logger.warning("charge.success for unknown reference %s", reference)
        return "unknown"
    if txn.state != TransactionState.INITIATED:
        logger.info("charge.success for %s already processed (state=%s)", reference, txn.state.value)
        return "duplicate"

    now = datetime.utcnow()
    tickets: List[models.Ticket] = []
    returned: Optional[str] = None
    try:
        with atomic(db):
            txn.gateway_response = verified
            if txn.type == TransactionType.TICKET_PURCHASE:
                tickets = _issue_tickets(db, txn, now)
            elif txn.type == TransactionType.WALLET_DEPOSIT:
                _settle_deposit(db, txn, now)
            elif txn.type == TransactionType.BOOKING_PAYMENT:
                returned = _confirm_booking(db, txn, now)
            else:
                raise PaymentProcessingError(f"Unexpected charge for {txn.type.value} transaction")
    except Exception as exc:
        logger.exception("Failed to process charge %s: %s", reference, exc)
        _mark_failed(db, reference, str(exc))
        return "failed"

    if returned:
        logger.warning(
            "Booking charge %s returned to wallet of user %s amount=%s: %s",
            reference,
            txn.payer_id,
            txn.amount,
            returned,
        )
        notify(
            db,
            db.get(models.User, txn.payer_id),
            NotificationType.REFUND_ISSUED,
            render("refund_issued", format_zar(txn.amount), returned),
            "/wallet",
            send_email=True,
            booking_id=txn.booking_id,
            transaction_id=txn.id,
        )
        return "refunded"

    logger.info(
        "Processed charge reference=%s type=%s amount=%s state=%s",
        reference,
        txn.type.value,
        txn.amount,
        txn.state.value,
    )
    _notify_charge(db, txn, tickets)
    return "processed"


# ─── transfer.* ─────────────────────────────────────────────────────────────


TRANSFER_OUTCOMES = {
    "transfer.success": TransactionState.SETTLED,
    "transfer.failed": TransactionState.FAILED,
    "transfer.reversed": TransactionState.REFUNDED,
}


def handle_transfer_event(db: Session, event: str, data: dict) -> str:
    """Finish a withdrawal; failed and reversed transfers go back to the wallet."""
    reference = str(data.get("reference") or "")
    txn = get_transaction(db, reference) if reference else None
    if txn is None:
        logger.warning("%s for unknown reference %s", event, reference)
        return "unknown"
    target = TRANSFER_OUTCOMES[event]
    if txn.state != TransactionState.PROCESSING or not can_transition(
        TRANSACTION_TRANSITIONS, txn.state, target
    ):
        logger.info("%s for %s ignored (state=%s)", event, reference, txn.state.value)
        return "duplicate"

    with atomic(db):
        transition(txn, TRANSACTION_TRANSITIONS, target, kind="transaction")
        txn.gateway_response = data
        if target != TransactionState.SETTLED:
            txn.failure_reason = str(data.get("reason") or data.get("status") or event)
            payer = db.get(models.User, txn.payer_id)
            credit_wallet(payer, int(txn.amount))
    logger.info("Withdrawal %s -> %s amount=%s", reference, target.value, txn.amount)

    payer = db.get(models.User, txn.payer_id)
    if target == TransactionState.SETTLED:
        notify(
            db,
            payer,
            NotificationType.PAYOUT_COMPLETED,
            render("payout_completed", format_zar(txn.net_amount)),
            "/wallet",
            send_email=True,
            transaction_id=txn.id,
        )
    else:
        notify(
            db,
            payer,
            NotificationType.PAYMENT_FAILED,
            render("payment_failed", "Withdrawal"),
            "/wallet",
            send_email=True,
            transaction_id=txn.id,
        )
    return "processed"


# ─── Booking completion ─────────────────────────────────────────────────────


def held_booking_payment(db: Session, booking_id: int) -> Optional[models.Transaction]:
    return (
        db.query(models.Transaction)
        .filter(
            models.Transaction.booking_id == booking_id,
            models.Transaction.type == TransactionType.BOOKING_PAYMENT,
            models.Transaction.state == TransactionState.HELD,
        )
        .order_by(models.Transaction.id.desc())
        .first()
    )


def release_booking_funds(db: Session, booking: models.Booking, now: Optional[datetime] = None) -> int:
    """Credit the performer's payout and release the held payment.

    Runs inside the caller's transaction. Returns the payout in cents.
    """
    now = now or datetime.utcnow()
    payout = int(booking.performer_payout or 0)
    txn = held_booking_payment(db, booking.id)
    if txn is None:
        raise PaymentProcessingError("No held payment for this booking")
    transition(txn, TRANSACTION_TRANSITIONS, TransactionState.RELEASED, kind="transaction", now=now)
    txn.recipient_id = booking.performer_id
    credit_wallet(booking.performer, payout)
    return payout
