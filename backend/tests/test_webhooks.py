import json

import pytest

from app import models
from app.core.config import settings
from app.models import BookingState, NotificationType, TicketStatus, TransactionState, TransactionType
from app.services import paystack
from factories import make_booking, make_event, make_transaction, make_user, setup_app

URL = "/api/webhooks/paystack"


def post_event(client, event, data, *, secret=None):
    body = json.dumps({"event": event, "data": data}).encode()
    signature = paystack.compute_signature(body, secret or settings.webhook_secret)
    return client.post(
        URL,
        content=body,
        headers={"x-paystack-signature": signature, "Content-Type": "application/json"},
    )


@pytest.fixture
def verified(monkeypatch):
    """Make charge re-verification report success for any reference."""
    seen = []

    def fake_verify(reference):
        seen.append(reference)
        return {"status": "success", "reference": reference, "amount": 0}

    monkeypatch.setattr(paystack, "verify_payment", fake_verify)
    return seen


def _ticket_checkout(db, *, quantity=2, capacity=100, tickets_sold=0):
    organizer = make_user(db, "org@test.com", organizer=True)
    buyer = make_user(db, "buyer@test.com")
    event = make_event(db, organizer, capacity=capacity, tickets_sold=tickets_sold)
    txn = make_transaction(
        db,
        type=TransactionType.TICKET_PURCHASE,
        amount=15700 * quantity,
        platform_fee=2200 * quantity,
        net_amount=13500 * quantity,
        payer_id=buyer.id,
        recipient_id=organizer.id,
        event_id=event.id,
        meta={"quantity": quantity},
    )
    return buyer, event, txn


def test_rejects_bad_signature(verified):
    _, client = setup_app()
    res = post_event(client, "charge.success", {"reference": "X"}, secret="wrong")
    assert res.status_code == 401
    assert verified == []

    res = client.post(URL, content=b"{}")
    assert res.status_code == 401


def test_rejects_non_object_payload():
    _, client = setup_app()
    body = b"[1, 2]"
    res = client.post(
        URL,
        content=body,
        headers={"x-paystack-signature": paystack.compute_signature(body, settings.webhook_secret)},
    )
    assert res.status_code == 400


def test_ticket_charge_issues_tickets_once(verified, outbox):
    Session, client = setup_app()
    with Session() as db:
        buyer, event, txn = _ticket_checkout(db)

    res = post_event(client, "charge.success", {"reference": txn.reference})
    assert res.json() == {"received": True, "outcome": "processed"}

    with Session() as db:
        saved = db.get(models.Transaction, txn.id)
        assert saved.state == TransactionState.HELD
        assert saved.held_at is not None and saved.authorized_at is not None
        tickets = db.query(models.Ticket).filter_by(transaction_id=txn.id).all()
        assert len(tickets) == 2
        assert all(t.price_paid == 15700 and t.status == TicketStatus.CONFIRMED for t in tickets)
        assert len({t.ticket_code for t in tickets}) == 2
        ev = db.get(models.Event, event.id)
        assert ev.tickets_sold == 2
        assert ev.total_revenue == 27000
        note = db.query(models.Notification).filter_by(user_id=buyer.id).one()
        assert note.type == NotificationType.TICKET_PURCHASED
        assert note.email_sent is True
        for t in tickets:
            assert t.ticket_code in note.message
    assert outbox[0]["to"] == "buyer@test.com"
    assert outbox[0]["subject"] == "Ticket Purchased!"

    res = post_event(client, "charge.success", {"reference": txn.reference})
    assert res.json()["outcome"] == "duplicate"
    with Session() as db:
        assert db.query(models.Ticket).count() == 2
        assert db.get(models.Event, event.id).tickets_sold == 2


def test_over_capacity_charge_fails_transaction(verified):
    Session, client = setup_app()
    with Session() as db:
        _, event, txn = _ticket_checkout(db, quantity=2, capacity=10, tickets_sold=9)

    res = post_event(client, "charge.success", {"reference": txn.reference})
    assert res.json()["outcome"] == "failed"
    with Session() as db:
        saved = db.get(models.Transaction, txn.id)
        assert saved.state == TransactionState.FAILED
        assert saved.failure_reason == "Not enough tickets available"
        assert db.query(models.Ticket).count() == 0
        assert db.get(models.Event, event.id).tickets_sold == 9


def test_deposit_charge_credits_wallet(verified):
    Session, client = setup_app()
    with Session() as db:
        user = make_user(db, "a@test.com", wallet=1000)
        txn = make_transaction(
            db,
            type=TransactionType.WALLET_DEPOSIT,
            amount=10550,
            platform_fee=550,
            net_amount=10000,
            payer_id=user.id,
            recipient_id=user.id,
        )

    assert post_event(client, "charge.success", {"reference": txn.reference}).json()["outcome"] == "processed"
    with Session() as db:
        assert db.get(models.User, user.id).wallet_balance == 11000
        saved = db.get(models.Transaction, txn.id)
        assert saved.state == TransactionState.SETTLED
        assert saved.gateway_response["status"] == "success"


def test_booking_charge_confirms_booking(verified, outbox):
    Session, client = setup_app()
    with Session() as db:
        organizer = make_user(db, "org@test.com", organizer=True)
        artist = make_user(db, "artist@test.com", artist=True)
        event = make_event(db, organizer, title="Durban Beach Fest")
        booking = make_booking(db, event, artist, state=BookingState.ACCEPTED, performer_payout=200000)
        txn = make_transaction(
            db,
            type=TransactionType.BOOKING_PAYMENT,
            amount=250000,
            platform_fee=50000,
            net_amount=200000,
            payer_id=organizer.id,
            recipient_id=artist.id,
            booking_id=booking.id,
            event_id=event.id,
        )

    assert post_event(client, "charge.success", {"reference": txn.reference}).json()["outcome"] == "processed"
    with Session() as db:
        assert db.get(models.Booking, booking.id).state == BookingState.CONFIRMED
        assert db.get(models.Transaction, txn.id).state == TransactionState.HELD
        note = db.query(models.Notification).filter_by(user_id=artist.id).one()
        assert note.type == NotificationType.BOOKING_CONFIRMED
        assert "Durban Beach Fest" in note.message
    assert [m["to"] for m in outbox] == ["artist@test.com"]


def test_unsuccessful_verification_is_ignored(monkeypatch):
    monkeypatch.setattr(paystack, "verify_payment", lambda ref: {"status": "abandoned"})
    Session, client = setup_app()
    with Session() as db:
        user = make_user(db, "a@test.com")
        txn = make_transaction(db, type=TransactionType.WALLET_DEPOSIT, payer_id=user.id)
    assert post_event(client, "charge.success", {"reference": txn.reference}).json()["outcome"] == "ignored"
    with Session() as db:
        assert db.get(models.Transaction, txn.id).state == TransactionState.INITIATED


def test_unknown_reference(verified):
    _, client = setup_app()
    assert post_event(client, "charge.success", {"reference": "NOPE"}).json()["outcome"] == "unknown"


def test_verification_outage_asks_for_retry(monkeypatch):
    def down(reference):
        raise paystack.PaystackError("Paystack unreachable: timeout")

    monkeypatch.setattr(paystack, "verify_payment", down)
    _, client = setup_app()
    res = post_event(client, "charge.success", {"reference": "DEP-1"})
    assert res.status_code == 502


def _withdrawal(db, wallet_after_debit=5000):
    user = make_user(db, "a@test.com", wallet=wallet_after_debit)
    txn = make_transaction(
        db,
        type=TransactionType.WITHDRAWAL,
        state=TransactionState.PROCESSING,
        amount=10000,
        platform_fee=2000,
        net_amount=8000,
        payer_id=user.id,
        recipient_id=user.id,
    )
    return user, txn


def test_transfer_success_settles_withdrawal(outbox):
    Session, client = setup_app()
    with Session() as db:
        user, txn = _withdrawal(db)
    res = post_event(client, "transfer.success", {"reference": txn.reference, "status": "success"})
    assert res.json()["outcome"] == "processed"
    with Session() as db:
        assert db.get(models.Transaction, txn.id).state == TransactionState.SETTLED
        assert db.get(models.User, user.id).wallet_balance == 5000
    assert outbox[0]["subject"] == "Payout Complete"
    assert "R80.00" in outbox[0]["body"]


@pytest.mark.parametrize(
    "event, final_state",
    [("transfer.failed", TransactionState.FAILED), ("transfer.reversed", TransactionState.REFUNDED)],
)
def test_failed_transfer_returns_funds(event, final_state):
    Session, client = setup_app()
    with Session() as db:
        user, txn = _withdrawal(db)
    res = post_event(client, event, {"reference": txn.reference, "reason": "Account closed"})
    assert res.json()["outcome"] == "processed"
    with Session() as db:
        saved = db.get(models.Transaction, txn.id)
        assert saved.state == final_state
        assert saved.failure_reason == "Account closed"
        assert db.get(models.User, user.id).wallet_balance == 15000
        note = db.query(models.Notification).filter_by(user_id=user.id).one()
        assert note.type == NotificationType.PAYMENT_FAILED

    # A repeated callback must not credit twice
    assert post_event(client, event, {"reference": txn.reference}).json()["outcome"] == "duplicate"
    with Session() as db:
        assert db.get(models.User, user.id).wallet_balance == 15000


def test_unhandled_event_is_acknowledged():
    _, client = setup_app()
    res = post_event(client, "subscription.create", {"reference": "SUB-1"})
    assert res.status_code == 200
    assert res.json() == {"received": True, "outcome": "ignored"}


def _booking_charge(db, booking_state):
    organizer = make_user(db, "org@test.com", organizer=True)
    artist = make_user(db, "artist@test.com", artist=True)
    event = make_event(db, organizer)
    booking = make_booking(db, event, artist, state=booking_state)
    txn = make_transaction(
        db,
        type=TransactionType.BOOKING_PAYMENT,
        amount=250000,
        platform_fee=50000,
        net_amount=200000,
        payer_id=organizer.id,
        recipient_id=artist.id,
        booking_id=booking.id,
        event_id=event.id,
    )
    return organizer, booking, txn


@pytest.mark.parametrize("booking_state", [BookingState.CANCELLED, BookingState.CONFIRMED])
def test_booking_charge_that_cannot_confirm_goes_to_wallet(verified, outbox, booking_state):
    Session, client = setup_app()
    with Session() as db:
        organizer, booking, txn = _booking_charge(db, booking_state)

    res = post_event(client, "charge.success", {"reference": txn.reference})
    assert res.json()["outcome"] == "refunded"
    with Session() as db:
        saved = db.get(models.Transaction, txn.id)
        assert saved.state == TransactionState.REFUNDED
        assert saved.refund_amount == 250000
        assert saved.refund_reason == f"Booking is already {booking_state.value}"
        assert db.get(models.User, organizer.id).wallet_balance == 250000
        assert db.get(models.Booking, booking.id).state == booking_state
        note = db.query(models.Notification).filter_by(user_id=organizer.id).one()
        assert note.type == NotificationType.REFUND_ISSUED
    assert [m["to"] for m in outbox] == ["org@test.com"]

    # a retried callback does not credit twice
    assert post_event(client, "charge.success", {"reference": txn.reference}).json()["outcome"] == "duplicate"
    with Session() as db:
        assert db.get(models.User, organizer.id).wallet_balance == 250000
