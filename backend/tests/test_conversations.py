from app import models
from app.models import NotificationType
from factories import auth_headers, make_user, setup_app


def _pair(db):
    organizer = make_user(db, "org@test.com", organizer=True, full_name="Naledi Mthembu")
    artist = make_user(db, "artist@test.com", artist=True, full_name="Kabza Jr")
    return organizer, artist


def test_start_is_idempotent_in_both_directions():
    Session, client = setup_app()
    with Session() as db:
        organizer, artist = _pair(db)
    res = client.post(
        "/api/conversations/start",
        json={"recipient_id": artist.id, "context_type": "booking", "context_id": 7},
        headers=auth_headers(organizer),
    )
    assert res.json()["is_new"] is True
    conversation_id = res.json()["conversation_id"]

    res = client.post("/api/conversations/start", json={"recipient_id": organizer.id}, headers=auth_headers(artist))
    assert res.json() == {"conversation_id": conversation_id, "is_new": False}


def test_start_validation():
    Session, client = setup_app()
    with Session() as db:
        organizer, _ = _pair(db)
    res = client.post("/api/conversations/start", json={"recipient_id": organizer.id}, headers=auth_headers(organizer))
    assert res.status_code == 400
    res = client.post("/api/conversations/start", json={"recipient_id": 999}, headers=auth_headers(organizer))
    assert res.status_code == 404


def test_messages_unread_counts_and_notifications():
    Session, client = setup_app()
    with Session() as db:
        organizer, artist = _pair(db)
        outsider = make_user(db, "x@test.com")
    conversation_id = client.post(
        "/api/conversations/start", json={"recipient_id": artist.id}, headers=auth_headers(organizer)
    ).json()["conversation_id"]
    url = f"/api/conversations/{conversation_id}/messages"

    long_text = "Can you play a two hour set? " * 10
    res = client.post(url, json={"content": long_text}, headers=auth_headers(organizer))
    assert res.status_code == 201
    assert res.json()["sender_id"] == organizer.id
    client.post(url, json={"content": "We start at 8pm"}, headers=auth_headers(organizer))

    inbox = client.get("/api/conversations", headers=auth_headers(artist)).json()
    assert len(inbox) == 1
    assert inbox[0]["other_participant_name"] == "Naledi Mthembu"
    assert inbox[0]["unread_count"] == 2
    assert inbox[0]["last_message_preview"] == "We start at 8pm"

    with Session() as db:
        notes = db.query(models.Notification).filter_by(user_id=artist.id).order_by(models.Notification.id).all()
        assert [n.type for n in notes] == [NotificationType.MESSAGE_RECEIVED] * 2
        assert notes[0].title == "New message from Naledi Mthembu"
        assert len(notes[0].message) == 100
        assert notes[0].meta == {"conversation_id": conversation_id}

    messages = client.get(url, headers=auth_headers(artist)).json()
    assert [m["content"] for m in messages] == [long_text.strip(), "We start at 8pm"]
    assert all(m["is_read"] for m in messages)
    assert client.get("/api/conversations", headers=auth_headers(artist)).json()[0]["unread_count"] == 0

    # Sending never bumps the sender's own counter
    assert client.get("/api/conversations", headers=auth_headers(organizer)).json()[0]["unread_count"] == 0

    assert client.get(url, headers=auth_headers(outsider)).status_code == 403
    assert client.post(url, json={"content": "hi"}, headers=auth_headers(outsider)).status_code == 403
    assert client.post(url, json={"content": "   "}, headers=auth_headers(artist)).status_code == 400
    assert client.get("/api/conversations/999/messages", headers=auth_headers(artist)).status_code == 404
