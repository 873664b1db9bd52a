from app import models
from app.models import AdminRole, EventState, NotificationType, ReportStatus, UserStatus
from factories import auth_headers, make_event, make_user, setup_app


def _staff(Session):
    with Session() as db:
        admin = make_user(db, "admin@test.com", full_name="Sipho Admin", admin_role=AdminRole.ADMIN)
        mod = make_user(db, "mod@test.com", admin_role=AdminRole.MODERATOR)
        fan = make_user(db, "fan@test.com", full_name="Lerato Dlamini")
    return admin, mod, fan


def _review(db, event, author, **extra):
    review = models.Review(event_id=event.id, user_id=author.id, rating=1, comment="Terrible sound", **extra)
    db.add(review)
    db.commit()
    db.refresh(review)
    return review


def _report(client, reporter, reported_type, reported_id, reason="Abusive content"):
    res = client.post(
        "/api/reports",
        json={
            "reported_type": reported_type,
            "reported_id": reported_id,
            "reason": reason,
            "description": "  Posted insults in the comments  ",
        },
        headers=auth_headers(reporter),
    )
    assert res.status_code == 201
    return res.json()


# ─── Email ──────────────────────────────────────────────────────────────────


def test_send_email_personalizes_and_logs(outbox):
    Session, client = setup_app()
    admin, _, fan = _staff(Session)
    res = client.post(
        "/api/admin/send-email",
        json={"to": "fan@test.com", "subject": "Your tickets", "body": "Hi {{ name }}, see you there."},
        headers=auth_headers(admin),
    )
    assert res.status_code == 200
    assert res.json() == {"success": True, "message": "Email sent to fan@test.com"}
    assert outbox == [{"to": "fan@test.com", "subject": "Your tickets", "body": "Hi Lerato, see you there."}]

    with Session() as db:
        log = db.query(models.EmailLog).one()
        assert log.recipient_ids == [fan.id]
        assert log.email_type == "individual"
        assert log.body == "Hi {{ name }}, see you there."
        entry = db.query(models.AdminAuditLog).one()
        assert (entry.action_type, entry.entity_id) == ("email_sent", fan.id)


def test_send_email_failure_is_logged(monkeypatch):
    Session, client = setup_app()
    admin, _, _ = _staff(Session)
    monkeypatch.setattr("app.api.api_admin.send_branded_email", lambda *a: False)
    res = client.post(
        "/api/admin/send-email",
        json={"to": "nobody@example.com", "subject": "Hello", "body": "Hi {{name}}"},
        headers=auth_headers(admin),
    )
    assert res.status_code == 502
    with Session() as db:
        log = db.query(models.EmailLog).one()
        assert (log.status, log.sent_count, log.recipient_ids) == ("failed", 0, [])


def test_send_email_requires_configured_smtp(monkeypatch):
    Session, client = setup_app()
    admin, _, _ = _staff(Session)
    monkeypatch.setattr("app.api.api_admin.email_configured", lambda: False)
    res = client.post(
        "/api/admin/send-email",
        json={"to": "fan@test.com", "subject": "Hello", "body": "Hi"},
        headers=auth_headers(admin),
    )
    assert res.status_code == 503


def test_bulk_email_by_audience(outbox):
    Session, client = setup_app()
    admin, mod, _ = _staff(Session)
    with Session() as db:
        make_user(db, "dj@test.com", full_name="DJ Maphorisa", artist=True)
        make_user(db, "band@test.com", full_name="Kabza Band", artist=True)
        banned = make_user(db, "gone@test.com", artist=True)
        db.get(models.User, banned.id).status = UserStatus.BANNED
        db.commit()

    res = client.post(
        "/api/admin/bulk-email",
        json={"subject": "Lineup news", "body": "Hey {{name}}", "audience": "artists"},
        headers=auth_headers(admin),
    )
    assert res.json() == {"success": True, "sent": 2, "failed": 0, "total": 2}
    assert [(m["to"], m["body"]) for m in outbox] == [
        ("dj@test.com", "Hey DJ"),
        ("band@test.com", "Hey Kabza"),
    ]
    with Session() as db:
        log = db.query(models.EmailLog).one()
        assert (log.email_type, log.sent_count) == ("bulk", 2)

    res = client.post(
        "/api/admin/bulk-email",
        json={"subject": "x", "body": "y", "audience": "providers"},
        headers=auth_headers(admin),
    )
    assert res.status_code == 400

    res = client.post(
        "/api/admin/bulk-email",
        json={"subject": "x", "body": "y"},
        headers=auth_headers(mod),
    )
    assert res.status_code == 403


def test_bulk_email_test_mode_only_mails_sender(outbox):
    Session, client = setup_app()
    admin, _, _ = _staff(Session)
    res = client.post(
        "/api/admin/bulk-email",
        json={"subject": "Launch", "body": "Dear {{name}}", "test_mode": True},
        headers=auth_headers(admin),
    )
    assert res.json() == {"success": True, "test_mode": True, "sent": 1, "total": 1}
    assert outbox == [{"to": "admin@test.com", "subject": "[TEST] Launch", "body": "Dear Sipho"}]
    with Session() as db:
        assert db.query(models.EmailLog).count() == 0


def test_admin_routes_reject_regular_users():
    Session, client = setup_app()
    _, _, fan = _staff(Session)
    for path in ("/api/admin/payouts", "/api/admin/refunds", "/api/admin/reports", "/api/admin/audit-logs"):
        res = client.get(path, headers=auth_headers(fan))
        assert res.status_code == 403
        assert res.json()["detail"] == "Admin access required"
    assert client.get("/api/admin/reports").status_code == 401


# ─── Reports and moderation ─────────────────────────────────────────────────


def test_create_report_validation():
    Session, client = setup_app()
    _, _, fan = _staff(Session)
    res = client.post(
        "/api/reports",
        json={"reported_type": "event", "reported_id": 1, "reason": "Scam", "description": "   "},
        headers=auth_headers(fan),
    )
    assert res.status_code == 400
    assert res.json()["detail"]["field_errors"] == {"description": "required"}

    report = _report(client, fan, "user", 99)
    assert report["status"] == "pending"
    assert report["priority"] == "medium"
    assert report["description"] == "Posted insults in the comments"


def test_review_escalate_and_dismiss():
    Session, client = setup_app()
    admin, mod, fan = _staff(Session)
    report = _report(client, fan, "user", admin.id)

    res = client.post(
        f"/api/admin/reports/{report['id']}/action", json={"action": "escalate"}, headers=auth_headers(mod)
    )
    assert res.json()["priority"] == "urgent"
    assert res.json()["status"] == "under_review"
    assert client.post(
        f"/api/admin/reports/{report['id']}/review", headers=auth_headers(mod)
    ).status_code == 409

    listed = client.get("/api/admin/reports", params={"priority": "urgent"}, headers=auth_headers(admin)).json()
    assert [r["id"] for r in listed["reports"]] == [report["id"]]

    res = client.post(
        f"/api/admin/reports/{report['id']}/action",
        json={"action": "dismiss", "notes": "No evidence"},
        headers=auth_headers(mod),
    )
    body = res.json()
    assert (body["status"], body["resolved_by"], body["admin_notes"]) == ("dismissed", mod.id, "No evidence")

    res = client.post(
        f"/api/admin/reports/{report['id']}/action", json={"action": "resolve"}, headers=auth_headers(mod)
    )
    assert res.status_code == 409


def test_start_review():
    Session, client = setup_app()
    _, mod, fan = _staff(Session)
    with Session() as db:
        support = make_user(db, "support@test.com", admin_role=AdminRole.SUPPORT)
    report = _report(client, fan, "user", mod.id)
    url = f"/api/admin/reports/{report['id']}/review"
    assert client.post(url, headers=auth_headers(support)).status_code == 403
    res = client.post(url, headers=auth_headers(mod))
    assert res.json()["status"] == "under_review"


def test_warn_user_sends_system_notification():
    Session, client = setup_app()
    _, mod, fan = _staff(Session)
    with Session() as db:
        troll = make_user(db, "troll@test.com")
    report = _report(client, fan, "user", troll.id, reason="Harassment")

    res = client.post(
        f"/api/admin/reports/{report['id']}/action",
        json={"action": "action", "content_action": "warn_user"},
        headers=auth_headers(mod),
    )
    assert res.json()["status"] == "resolved"
    with Session() as db:
        note = db.query(models.Notification).filter_by(user_id=troll.id).one()
        assert note.type == NotificationType.SYSTEM
        assert note.title == "Account Warning"
        assert "Harassment" in note.message
        entry = db.query(models.AdminAuditLog).filter_by(action_type="report_action").one()
        assert entry.details["content_action"] == "warn_user"
        assert entry.details["user_id"] == troll.id


def test_suspend_user_blocks_their_session():
    Session, client = setup_app()
    _, mod, fan = _staff(Session)
    with Session() as db:
        organizer = make_user(db, "org@test.com", organizer=True)
        event = make_event(db, organizer)
    report = _report(client, fan, "event", event.id, reason="Fake event")

    res = client.post(
        f"/api/admin/reports/{report['id']}/action",
        json={"action": "action"},
        headers=auth_headers(mod),
    )
    assert res.status_code == 400
    assert res.json()["detail"]["field_errors"] == {"content_action": "required"}

    client.post(
        f"/api/admin/reports/{report['id']}/action",
        json={"action": "action", "content_action": "suspend_user"},
        headers=auth_headers(mod),
    )
    with Session() as db:
        saved = db.get(models.User, organizer.id)
        assert saved.status == UserStatus.SUSPENDED
        assert saved.suspended_at is not None
    res = client.get("/api/notifications", headers=auth_headers(organizer))
    assert res.status_code == 403
    assert res.json()["detail"] == "Account suspended"


def test_remove_content_hides_review_and_unpublishes_event():
    Session, client = setup_app()
    _, mod, fan = _staff(Session)
    with Session() as db:
        organizer = make_user(db, "org@test.com", organizer=True)
        event = make_event(db, organizer)
        review = _review(db, event, fan)

    report = _report(client, organizer, "review", review.id)
    client.post(
        f"/api/admin/reports/{report['id']}/action",
        json={"action": "action", "content_action": "remove_content"},
        headers=auth_headers(mod),
    )
    report = _report(client, fan, "event", event.id)
    client.post(
        f"/api/admin/reports/{report['id']}/action",
        json={"action": "action", "content_action": "remove_content"},
        headers=auth_headers(mod),
    )
    with Session() as db:
        assert db.get(models.Review, review.id).is_visible is False
        assert db.get(models.Event, event.id).state == EventState.DRAFT
    assert client.get(f"/api/events/{event.id}").status_code == 404


def test_delete_content_removes_review():
    Session, client = setup_app()
    _, mod, fan = _staff(Session)
    with Session() as db:
        organizer = make_user(db, "org@test.com", organizer=True)
        event = make_event(db, organizer)
        review = _review(db, event, fan)
    report = _report(client, organizer, "review", review.id)
    client.post(
        f"/api/admin/reports/{report['id']}/action",
        json={"action": "action", "content_action": "delete_content"},
        headers=auth_headers(mod),
    )
    with Session() as db:
        assert db.get(models.Review, review.id) is None


def test_content_action_must_fit_target():
    Session, client = setup_app()
    _, mod, fan = _staff(Session)
    with Session() as db:
        troll = make_user(db, "troll@test.com")
    report = _report(client, fan, "user", troll.id)
    res = client.post(
        f"/api/admin/reports/{report['id']}/action",
        json={"action": "action", "content_action": "remove_content"},
        headers=auth_headers(mod),
    )
    assert res.status_code == 400
    assert res.json()["detail"]["field_errors"] == {"content_action": "not_applicable"}
    with Session() as db:
        assert db.get(models.Report, report["id"]).status == ReportStatus.PENDING


def test_review_visibility_toggle():
    Session, client = setup_app()
    _, mod, fan = _staff(Session)
    with Session() as db:
        organizer = make_user(db, "org@test.com", organizer=True)
        review = _review(db, make_event(db, organizer), fan)
    url = f"/api/admin/reviews/{review.id}/visibility"
    res = client.post(url, json={"visible": False}, headers=auth_headers(mod))
    assert res.json() == {"success": True, "id": review.id, "is_visible": False}
    res = client.post(url, json={"visible": True}, headers=auth_headers(mod))
    assert res.json()["is_visible"] is True
    assert client.post("/api/admin/reviews/999/visibility", json={"visible": True}, headers=auth_headers(mod)).status_code == 404


def test_audit_log_filters():
    Session, client = setup_app()
    admin, mod, fan = _staff(Session)
    with Session() as db:
        organizer = make_user(db, "org@test.com", organizer=True)
        review = _review(db, make_event(db, organizer), fan)
    client.post(f"/api/admin/reviews/{review.id}/visibility", json={"visible": False}, headers=auth_headers(mod))
    client.post(
        "/api/admin/send-email",
        json={"to": "fan@test.com", "subject": "Hello", "body": "Hi"},
        headers=auth_headers(admin),
    )

    body = client.get("/api/admin/audit-logs", headers=auth_headers(admin)).json()
    assert body["pagination"]["total"] == 2
    assert {entry["action_type"] for entry in body["logs"]} == {"review_visibility", "email_sent"}

    body = client.get(
        "/api/admin/audit-logs", params={"action_type": "review_visibility"}, headers=auth_headers(admin)
    ).json()
    assert [entry["admin_id"] for entry in body["logs"]] == [mod.id]
    assert body["logs"][0]["details"] == {"visible": False}

    body = client.get("/api/admin/audit-logs", params={"admin_id": admin.id}, headers=auth_headers(admin)).json()
    assert [entry["action_type"] for entry in body["logs"]] == ["email_sent"]
