from datetime import datetime

import pytest

from app import models
from app.models import BookingState, EventState, PayoutStatus, ReportStatus, TransactionState
from app.services.state_machine import (
    BOOKING_TRANSITIONS,
    EVENT_TRANSITIONS,
    PAYOUT_TRANSITIONS,
    REPORT_TRANSITIONS,
    TRANSACTION_TRANSITIONS,
    InvalidTransition,
    can_transition,
    is_terminal,
    transition,
)


def test_event_machine():
    assert can_transition(EVENT_TRANSITIONS, EventState.DRAFT, EventState.PUBLISHED)
    assert can_transition(EVENT_TRANSITIONS, EventState.LOCKED, EventState.COMPLETED)
    assert not can_transition(EVENT_TRANSITIONS, EventState.DRAFT, EventState.LOCKED)
    assert not can_transition(EVENT_TRANSITIONS, EventState.CANCELLED, EventState.PUBLISHED)
    assert is_terminal(EVENT_TRANSITIONS, EventState.COMPLETED)


def test_booking_machine():
    assert can_transition(BOOKING_TRANSITIONS, BookingState.CONFIRMED, BookingState.DISPUTED)
    assert can_transition(BOOKING_TRANSITIONS, BookingState.DISPUTED, BookingState.COMPLETED)
    assert not can_transition(BOOKING_TRANSITIONS, BookingState.PENDING, BookingState.CONFIRMED)
    assert is_terminal(BOOKING_TRANSITIONS, BookingState.DECLINED)
    assert not is_terminal(BOOKING_TRANSITIONS, BookingState.DISPUTED)


def test_transaction_machine_withdrawal_and_deposit_paths():
    assert can_transition(TRANSACTION_TRANSITIONS, TransactionState.INITIATED, TransactionState.SETTLED)
    assert can_transition(TRANSACTION_TRANSITIONS, TransactionState.PROCESSING, TransactionState.REFUNDED)
    assert not can_transition(TRANSACTION_TRANSITIONS, TransactionState.SETTLED, TransactionState.HELD)
    assert not can_transition(TRANSACTION_TRANSITIONS, TransactionState.FAILED, TransactionState.SETTLED)


def test_transition_stamps_timestamp():
    event = models.Event(state=EventState.DRAFT)
    when = datetime(2030, 1, 1, 18, 0)
    transition(event, EVENT_TRANSITIONS, EventState.PUBLISHED, now=when)
    assert event.state == EventState.PUBLISHED
    assert event.published_at == when


def test_transition_on_status_field():
    payout = models.PayoutRequest(status=PayoutStatus.PENDING)
    transition(payout, PAYOUT_TRANSITIONS, PayoutStatus.APPROVED, field="status", kind="payout")
    assert payout.status == PayoutStatus.APPROVED

    report = models.Report(status=ReportStatus.DISMISSED)
    with pytest.raises(InvalidTransition):
        transition(report, REPORT_TRANSITIONS, ReportStatus.RESOLVED, field="status")


def test_invalid_transition_message():
    booking = models.Booking(state=BookingState.COMPLETED)
    with pytest.raises(InvalidTransition) as exc_info:
        transition(booking, BOOKING_TRANSITIONS, BookingState.CANCELLED)
    assert str(exc_info.value) == "Cannot move booking from completed to cancelled"
    assert booking.state == BookingState.COMPLETED
