import pytest

from app import models
from app.models import (
    AdminRole,
    RefundStatus,
    TicketStatus,
    TransactionState,
    TransactionType,
)
from app.services import paystack
from factories import (
    auth_headers,
    make_event,
    make_transaction,
    make_user,
    setup_app,
    ticket_purchase,
)


def _setup(Session, *, quantity=2):
    with Session() as db:
        organizer = make_user(db, "org@test.com", organizer=True)
        buyer = make_user(db, "fan@test.com", full_name="Lerato Dlamini")
        admin = make_user(db, "admin@test.com", admin_role=AdminRole.ADMIN)
        event = make_event(db, organizer)
        txn, tickets = ticket_purchase(db, event, buyer, quantity=quantity)
    return buyer, admin, event, txn, tickets


def _request(client, buyer, txn, **extra):
    body = {"transaction_id": txn.id, "reason": "Can no longer attend", **extra}
    return client.post("/api/refunds", json=body, headers=auth_headers(buyer))


def test_request_refund_defaults_to_full_amount():
    Session, client = setup_app()
    buyer, _, _, txn, _ = _setup(Session)
    res = _request(client, buyer, txn)
    assert res.status_code == 201
    body = res.json()
    assert body["amount"] == 31400
    assert body["status"] == "pending"
    assert body["refund_method"] == "wallet"

    assert _request(client, buyer, txn).status_code == 409
    mine = client.get("/api/refunds", headers=auth_headers(buyer)).json()
    assert [r["id"] for r in mine] == [body["id"]]


def test_request_refund_rules():
    Session, client = setup_app()
    buyer, _, _, txn, _ = _setup(Session)
    with Session() as db:
        stranger = make_user(db, "other@test.com")
        deposit = make_transaction(
            db, type=TransactionType.WALLET_DEPOSIT, state=TransactionState.SETTLED, payer_id=buyer.id
        )
        pending = make_transaction(db, type=TransactionType.TICKET_PURCHASE, payer_id=buyer.id)

    assert _request(client, stranger, txn).status_code == 403
    assert client.post(
        "/api/refunds", json={"transaction_id": 999, "reason": "x"}, headers=auth_headers(buyer)
    ).status_code == 404

    res = _request(client, buyer, deposit)
    assert res.status_code == 400
    assert res.json()["detail"]["message"] == "This transaction cannot be refunded"
    assert _request(client, buyer, pending).status_code == 400

    res = _request(client, buyer, txn, amount=500)
    assert res.status_code == 400
    assert res.json()["detail"]["field_errors"] == {"amount": "too_large"}


def test_full_wallet_refund_cancels_tickets(outbox):
    Session, client = setup_app()
    buyer, admin, event, txn, tickets = _setup(Session)
    refund_id = _request(client, buyer, txn).json()["id"]

    res = client.post(
        f"/api/admin/refunds/{refund_id}/process",
        json={"action": "process", "notes": "Approved per policy"},
        headers=auth_headers(admin),
    )
    assert res.status_code == 200
    body = res.json()
    assert body["status"] == "completed"
    assert body["refunded_amount"] == 31400

    with Session() as db:
        assert db.get(models.User, buyer.id).wallet_balance == 31400
        original = db.get(models.Transaction, txn.id)
        assert original.state == TransactionState.REFUNDED
        assert original.refund_amount == 31400
        ledger = db.query(models.Transaction).filter_by(type=TransactionType.REFUND).one()
        assert ledger.reference == f"REFUND-{txn.reference}"
        assert ledger.net_amount == -31400
        assert ledger.parent_id == txn.id
        assert ledger.gateway_provider == "wallet"
        statuses = {t.status for t in db.query(models.Ticket).filter_by(transaction_id=txn.id)}
        assert statuses == {TicketStatus.REFUNDED}
        saved_event = db.get(models.Event, event.id)
        assert (saved_event.tickets_sold, saved_event.total_revenue) == (0, 0)

    assert outbox[-1]["to"] == "fan@test.com"
    assert outbox[-1]["subject"] == "Refund Issued"
    assert "R314.00" in outbox[-1]["body"]

    again = client.post(
        f"/api/admin/refunds/{refund_id}/process", json={"action": "reject"}, headers=auth_headers(admin)
    )
    assert again.status_code == 409


def test_partial_refund_keeps_tickets():
    Session, client = setup_app()
    buyer, admin, event, txn, _ = _setup(Session)
    refund_id = _request(client, buyer, txn).json()["id"]
    url = f"/api/admin/refunds/{refund_id}/process"

    res = client.post(url, json={"action": "process", "partial_amount": 400}, headers=auth_headers(admin))
    assert res.status_code == 400
    assert res.json()["detail"]["field_errors"] == {"partial_amount": "too_large"}

    res = client.post(url, json={"action": "process", "partial_amount": 100}, headers=auth_headers(admin))
    assert res.json()["status"] == "partial"
    assert res.json()["refunded_amount"] == 10000

    with Session() as db:
        original = db.get(models.Transaction, txn.id)
        assert original.state == TransactionState.PARTIAL_REFUND
        assert original.refund_amount == 10000
        assert db.get(models.User, buyer.id).wallet_balance == 10000
        statuses = {t.status for t in db.query(models.Ticket).filter_by(transaction_id=txn.id)}
        assert statuses == {TicketStatus.CONFIRMED}
        assert db.get(models.Event, event.id).tickets_sold == 2

    # a second request may claim the remainder
    second = _request(client, buyer, txn, amount=214).json()
    res = client.post(
        f"/api/admin/refunds/{second['id']}/process", json={"action": "process"}, headers=auth_headers(admin)
    )
    assert res.json()["status"] == "completed"
    with Session() as db:
        assert db.get(models.Transaction, txn.id).state == TransactionState.REFUNDED
        refs = sorted(t.reference for t in db.query(models.Transaction).filter_by(type=TransactionType.REFUND))
        assert refs == sorted([f"REFUND-{txn.reference}", f"REFUND-{txn.reference}-{second['id']}"])


def test_refund_to_original_card(monkeypatch):
    Session, client = setup_app()
    buyer, admin, _, txn, _ = _setup(Session, quantity=1)
    calls = []

    def fake_refund(*, reference, amount, reason=""):
        calls.append((reference, amount, reason))
        return {"id": 42, "status": "pending"}

    monkeypatch.setattr(paystack, "refund_payment", fake_refund)
    refund_id = _request(client, buyer, txn, refund_method="original").json()["id"]
    res = client.post(
        f"/api/admin/refunds/{refund_id}/process", json={"action": "process"}, headers=auth_headers(admin)
    )
    assert res.status_code == 200
    assert calls == [(txn.reference, 15700, "Can no longer attend")]
    with Session() as db:
        assert db.get(models.User, buyer.id).wallet_balance == 0
        ledger = db.query(models.Transaction).filter_by(type=TransactionType.REFUND).one()
        assert ledger.gateway_provider == "paystack"
        assert ledger.gateway_response == {"id": 42, "status": "pending"}


def test_gateway_refund_failure_rolls_back(monkeypatch):
    Session, client = setup_app()
    buyer, admin, event, txn, _ = _setup(Session, quantity=1)

    def failing_refund(**kwargs):
        raise paystack.PaystackError("Transaction has been fully reversed", 400)

    monkeypatch.setattr(paystack, "refund_payment", failing_refund)
    refund_id = _request(client, buyer, txn, refund_method="original").json()["id"]
    res = client.post(
        f"/api/admin/refunds/{refund_id}/process", json={"action": "process"}, headers=auth_headers(admin)
    )
    assert res.status_code == 502
    assert res.json()["detail"]["field_errors"] == {"gateway": "Transaction has been fully reversed"}
    with Session() as db:
        assert db.get(models.RefundRequest, refund_id).status == RefundStatus.PENDING
        assert db.get(models.Transaction, txn.id).state == TransactionState.HELD
        assert db.query(models.Transaction).filter_by(type=TransactionType.REFUND).count() == 0
        assert db.get(models.Event, event.id).tickets_sold == 1


@pytest.mark.parametrize("role, code", [(AdminRole.SUPPORT, 403), (AdminRole.MODERATOR, 403), (AdminRole.SUPER_ADMIN, 200)])
def test_processing_refunds_needs_finance_role(role, code):
    Session, client = setup_app()
    buyer, _, _, txn, _ = _setup(Session, quantity=1)
    with Session() as db:
        staff = make_user(db, "staff@test.com", admin_role=role)
    refund_id = _request(client, buyer, txn).json()["id"]
    res = client.post(
        f"/api/admin/refunds/{refund_id}/process", json={"action": "approve"}, headers=auth_headers(staff)
    )
    assert res.status_code == code


def test_refund_queue_listing():
    Session, client = setup_app()
    buyer, admin, _, txn, _ = _setup(Session)
    refund_id = _request(client, buyer, txn).json()["id"]
    client.post(f"/api/admin/refunds/{refund_id}/process", json={"action": "approve"}, headers=auth_headers(admin))

    body = client.get("/api/admin/refunds", params={"status": "approved"}, headers=auth_headers(admin)).json()
    assert [r["id"] for r in body["refunds"]] == [refund_id]
    assert body["stats"] == {"pending_count": 1, "pending_total": 31400, "refunded_today": 0}
    assert body["pagination"]["total"] == 1

    client.post(f"/api/admin/refunds/{refund_id}/process", json={"action": "process"}, headers=auth_headers(admin))
    stats = client.get("/api/admin/refunds", headers=auth_headers(admin)).json()["stats"]
    assert stats == {"pending_count": 0, "pending_total": 0, "refunded_today": 31400}


def test_second_request_is_capped_at_what_is_left():
    Session, client = setup_app()
    buyer, admin, _, txn, _ = _setup(Session, quantity=1)
    first = _request(client, buyer, txn).json()
    client.post(
        f"/api/admin/refunds/{first['id']}/process",
        json={"action": "process", "partial_amount": 100},
        headers=auth_headers(admin),
    )

    res = _request(client, buyer, txn, amount=157)
    assert res.status_code == 400
    assert res.json()["detail"]["field_errors"] == {"amount": "too_large"}

    second = _request(client, buyer, txn)
    assert second.status_code == 201
    assert second.json()["amount"] == 5700
    client.post(
        f"/api/admin/refunds/{second.json()['id']}/process", json={"action": "process"}, headers=auth_headers(admin)
    )
    with Session() as db:
        original = db.get(models.Transaction, txn.id)
        assert original.refund_amount == 15700
        assert original.state == TransactionState.REFUNDED
        assert db.get(models.User, buyer.id).wallet_balance == 15700


def test_processing_never_refunds_more_than_was_paid():
    Session, client = setup_app()
    buyer, admin, _, txn, _ = _setup(Session, quantity=1)
    refund_id = _request(client, buyer, txn).json()["id"]
    # another refund landed on the payment after this request was filed
    with Session() as db:
        original = db.get(models.Transaction, txn.id)
        original.refund_amount = 10000
        original.state = TransactionState.PARTIAL_REFUND
        db.commit()

    res = client.post(
        f"/api/admin/refunds/{refund_id}/process", json={"action": "process"}, headers=auth_headers(admin)
    )
    assert res.status_code == 409
    assert res.json()["detail"]["field_errors"] == {"amount": "exceeds_remaining"}
    with Session() as db:
        assert db.get(models.User, buyer.id).wallet_balance == 0
        assert db.get(models.RefundRequest, refund_id).status == RefundStatus.PENDING
        assert db.get(models.Transaction, txn.id).refund_amount == 10000
