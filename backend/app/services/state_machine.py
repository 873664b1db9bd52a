"""Allowed status transitions for events, bookings, transactions and the
admin-managed request queues.

Money never moves without a state change, so every flow that touches a
balance first checks the transition here.
"""

from __future__ import annotations

import enum
import logging
from datetime import datetime
from typing import Dict, FrozenSet, Mapping

from ..models import (
    BookingState,
    EventState,
    PayoutStatus,
    RefundStatus,
    ReportStatus,
    TransactionState,
)

logger = logging.getLogger(__name__)

Table = Mapping[enum.Enum, FrozenSet[enum.Enum]]

EVENT_TRANSITIONS: Table = {
    EventState.DRAFT: frozenset({EventState.PUBLISHED, EventState.CANCELLED}),
    EventState.PUBLISHED: frozenset({EventState.LOCKED, EventState.CANCELLED}),
    EventState.LOCKED: frozenset({EventState.COMPLETED, EventState.CANCELLED}),
    EventState.COMPLETED: frozenset(),
    EventState.CANCELLED: frozenset(),
}

BOOKING_TRANSITIONS: Table = {
    BookingState.PENDING: frozenset({BookingState.ACCEPTED, BookingState.DECLINED}),
    BookingState.ACCEPTED: frozenset({BookingState.CONFIRMED, BookingState.CANCELLED}),
    BookingState.DECLINED: frozenset(),
    BookingState.CONFIRMED: frozenset(
        {BookingState.COMPLETED, BookingState.CANCELLED, BookingState.DISPUTED}
    ),
    BookingState.COMPLETED: frozenset(),
    BookingState.CANCELLED: frozenset(),
    BookingState.DISPUTED: frozenset({BookingState.COMPLETED, BookingState.CANCELLED}),
}

TRANSACTION_TRANSITIONS: Table = {
    # Deposits settle as soon as the charge succeeds; withdrawals go to
    # processing while the gateway transfer is in flight.
    TransactionState.INITIATED: frozenset(
        {
            TransactionState.AUTHORIZED,
            TransactionState.FAILED,
            TransactionState.SETTLED,
            TransactionState.PROCESSING,
        }
    ),
    TransactionState.AUTHORIZED: frozenset(
        {TransactionState.HELD, TransactionState.REFUNDED, TransactionState.FAILED}
    ),
    TransactionState.HELD: frozenset(
        {TransactionState.RELEASED, TransactionState.REFUNDED, TransactionState.PARTIAL_REFUND}
    ),
    TransactionState.RELEASED: frozenset(
        {
            TransactionState.SETTLED,
            TransactionState.FAILED,
            TransactionState.REFUNDED,
            TransactionState.PARTIAL_REFUND,
        }
    ),
    TransactionState.PROCESSING: frozenset(
        {TransactionState.SETTLED, TransactionState.FAILED, TransactionState.REFUNDED}
    ),
    TransactionState.SETTLED: frozenset(
        {TransactionState.REFUNDED, TransactionState.PARTIAL_REFUND}
    ),
    TransactionState.PARTIAL_REFUND: frozenset({TransactionState.REFUNDED}),
    TransactionState.REFUNDED: frozenset(),
    TransactionState.FAILED: frozenset(),
}

PAYOUT_TRANSITIONS: Table = {
    PayoutStatus.PENDING: frozenset({PayoutStatus.APPROVED, PayoutStatus.REJECTED}),
    PayoutStatus.APPROVED: frozenset({PayoutStatus.COMPLETED, PayoutStatus.REJECTED}),
    PayoutStatus.REJECTED: frozenset(),
    PayoutStatus.COMPLETED: frozenset(),
}

REFUND_TRANSITIONS: Table = {
    RefundStatus.PENDING: frozenset(
        {RefundStatus.APPROVED, RefundStatus.REJECTED, RefundStatus.COMPLETED, RefundStatus.PARTIAL}
    ),
    RefundStatus.APPROVED: frozenset(
        {RefundStatus.COMPLETED, RefundStatus.PARTIAL, RefundStatus.REJECTED}
    ),
    RefundStatus.REJECTED: frozenset(),
    RefundStatus.COMPLETED: frozenset(),
    RefundStatus.PARTIAL: frozenset(),
}

REPORT_TRANSITIONS: Table = {
    ReportStatus.PENDING: frozenset(
        {ReportStatus.UNDER_REVIEW, ReportStatus.RESOLVED, ReportStatus.DISMISSED}
    ),
    ReportStatus.UNDER_REVIEW: frozenset({ReportStatus.RESOLVED, ReportStatus.DISMISSED}),
    ReportStatus.RESOLVED: frozenset(),
    ReportStatus.DISMISSED: frozenset(),
}

# Timestamp column stamped on entry to a state, when the model has one
_STAMP_COLUMNS: Dict[str, str] = {
    "published": "published_at",
    "locked": "locked_at",
    "accepted": "accepted_at",
    "declined": "declined_at",
    "confirmed": "confirmed_at",
    "completed": "completed_at",
    "cancelled": "cancelled_at",
    "disputed": "disputed_at",
    "authorized": "authorized_at",
    "held": "held_at",
    "released": "released_at",
    "settled": "settled_at",
    "refunded": "refunded_at",
    "partial_refund": "refunded_at",
    "failed": "failed_at",
}


class InvalidTransition(Exception):
    """Raised when a requested status change is not allowed."""

    def __init__(self, kind: str, current, new) -> None:
        self.kind = kind
        self.current = getattr(current, "value", current)
        self.new = getattr(new, "value", new)
        super().__init__(f"Cannot move {kind} from {self.current} to {self.new}")


def can_transition(table: Table, current, new) -> bool:
    for state, targets in table.items():
        if state == current:
            return any(t == new for t in targets)
    return False


def is_terminal(table: Table, current) -> bool:
    return not any(True for state, targets in table.items() if state == current and targets)


def transition(obj, table: Table, new, *, field: str = "state", kind: str | None = None, now: datetime | None = None):
    """Move ``obj.<field>`` to ``new`` or raise :class:`InvalidTransition`.

    Stamps the matching ``<state>_at`` column when the model defines one.
    """
    current = getattr(obj, field)
    kind = kind or type(obj).__name__.lower()
    if not can_transition(table, current, new):
        raise InvalidTransition(kind, current, new)
    setattr(obj, field, new)
    stamp = _STAMP_COLUMNS.get(getattr(new, "value", str(new)))
    if stamp and hasattr(type(obj), stamp):
        setattr(obj, stamp, now or datetime.utcnow())
    logger.info(
        "%s %s: %s -> %s",
        kind,
        getattr(obj, "id", None),
        getattr(current, "value", current),
        getattr(new, "value", new),
    )
    return obj
