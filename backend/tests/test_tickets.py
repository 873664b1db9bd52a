from datetime import date, datetime

from app import models
from app.api.api_tickets import door_status
from app.models import NotificationType, TicketStatus
from factories import auth_headers, make_event, make_ticket, make_user, setup_app


def _door(days_ahead, **ticket_kwargs):
    Session, client = setup_app()
    with Session() as db:
        organizer = make_user(db, "org@test.com", organizer=True)
        fan = make_user(db, "fan@test.com", full_name="Sipho Dlamini")
        event = make_event(db, organizer, days_ahead=days_ahead)
        ticket = make_ticket(db, event, fan, code="ZIY-ABCD-EFGH", **ticket_kwargs)
    return Session, client, organizer, fan, event, ticket


def test_door_status_windows():
    event = models.Event(event_date=date(2030, 6, 16))
    ticket = models.Ticket(checked_in=False, event=event)
    assert door_status(ticket, today=date(2030, 6, 13))[0] == "early"
    assert door_status(ticket, today=date(2030, 6, 15))[0] == "valid"
    assert door_status(ticket, today=date(2030, 6, 17))[0] == "valid"
    assert door_status(ticket, today=date(2030, 6, 18))[0] == "expired"

    ticket.checked_in = True
    ticket.checked_in_at = datetime(2030, 6, 16, 19, 5)
    assert door_status(ticket, today=date(2030, 6, 16)) == ("used", "Already checked in at 19:05")


def test_validate_is_case_insensitive_and_read_only():
    Session, client, organizer, _, event, ticket = _door(0)
    res = client.post(
        "/api/tickets/validate",
        json={"ticket_code": " ziy-abcd-efgh ", "event_id": event.id},
        headers=auth_headers(organizer),
    )
    assert res.status_code == 200
    body = res.json()
    assert body["valid"] is True
    assert body["status"] == "valid"
    assert body["ticket"]["holder"]["full_name"] == "Sipho Dlamini"
    with Session() as db:
        assert db.get(models.Ticket, ticket.id).checked_in is False


def test_validate_errors():
    Session, client, organizer, fan, event, _ = _door(0)
    headers = auth_headers(organizer)
    assert client.post("/api/tickets/validate", json={}, headers=headers).status_code == 400
    res = client.post("/api/tickets/validate", json={"ticket_code": "ZIY-0000-0000"}, headers=headers)
    assert res.status_code == 404
    res = client.post(
        "/api/tickets/validate",
        json={"ticket_code": "ZIY-ABCD-EFGH", "event_id": event.id + 1},
        headers=headers,
    )
    assert res.status_code == 400
    assert res.json()["detail"]["field_errors"] == {"event_id": "wrong_event"}
    res = client.post("/api/tickets/validate", json={"ticket_code": "ZIY-ABCD-EFGH"}, headers=auth_headers(fan))
    assert res.status_code == 403


def test_checkin_then_repeat():
    Session, client, organizer, fan, event, ticket = _door(0)
    headers = auth_headers(organizer)
    res = client.post("/api/tickets/checkin", json={"ticket_code": "ZIY-ABCD-EFGH"}, headers=headers)
    assert res.status_code == 200
    body = res.json()
    assert body["success"] is True
    assert body["ticket"]["holder"] == "Sipho Dlamini"
    assert body["attendance"] == {"checked_in": 1, "total": 1}

    with Session() as db:
        saved = db.get(models.Ticket, ticket.id)
        assert saved.status == TicketStatus.CHECKED_IN
        assert saved.checked_in_by == organizer.id
        note = db.query(models.Notification).filter_by(user_id=fan.id).one()
        assert note.type == NotificationType.TICKET_CHECKIN

    again = client.post("/api/tickets/checkin", json={"ticket_id": ticket.id}, headers=headers)
    assert again.status_code == 200
    assert again.json()["success"] is False
    assert again.json()["already_checked_in"] is True


def test_checkin_rejects_early_expired_and_refunded():
    _, client, organizer, _, _, _ = _door(3)
    res = client.post("/api/tickets/checkin", json={"ticket_code": "ZIY-ABCD-EFGH"}, headers=auth_headers(organizer))
    assert res.status_code == 400
    assert res.json()["detail"]["field_errors"] == {"ticket_code": "too_early"}

    _, client, organizer, _, _, _ = _door(-3)
    res = client.post("/api/tickets/checkin", json={"ticket_code": "ZIY-ABCD-EFGH"}, headers=auth_headers(organizer))
    assert res.json()["detail"]["field_errors"] == {"ticket_code": "event_ended"}

    _, client, organizer, _, _, _ = _door(0, status=TicketStatus.REFUNDED)
    res = client.post("/api/tickets/checkin", json={"ticket_code": "ZIY-ABCD-EFGH"}, headers=auth_headers(organizer))
    assert res.status_code == 400
    assert res.json()["detail"]["message"] == "This ticket has been refunded."

    res = client.post("/api/tickets/checkin", json={}, headers=auth_headers(organizer))
    assert res.status_code == 400


def test_attendance_report():
    Session, client = setup_app()
    with Session() as db:
        organizer = make_user(db, "org@test.com", organizer=True)
        fan = make_user(db, "fan@test.com")
        event = make_event(db, organizer, days_ahead=0)
        make_ticket(db, event, fan, ticket_type="vip", checked_in=True, checked_in_at=datetime(2030, 1, 1, 19, 30))
        make_ticket(db, event, fan, ticket_type="vip", checked_in=True, checked_in_at=datetime(2030, 1, 1, 19, 45))
        make_ticket(db, event, fan, checked_in=True, checked_in_at=datetime(2030, 1, 1, 20, 10))
        make_ticket(db, event, fan)

    res = client.get(f"/api/events/{event.id}/attendance", headers=auth_headers(organizer))
    assert res.status_code == 200
    body = res.json()
    assert body["stats"] == {"total_tickets": 4, "checked_in": 3, "not_checked_in": 1, "attendance_rate": 75}
    assert body["timeline"] == {"19:00": 2, "20:00": 1}
    assert body["by_type"] == {
        "vip": {"total": 2, "checked_in": 2},
        "general": {"total": 2, "checked_in": 1},
    }

    res = client.get(f"/api/events/{event.id}/attendance", headers=auth_headers(fan))
    assert res.status_code == 403
