import logging

from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from app import main
from app.main import app
from app.utils.errors import error_response, invalid_transition, not_found
from app.services.state_machine import InvalidTransition


def test_root_message():
    client = TestClient(app)
    res = client.get("/")
    assert res.json() == {"message": "Welcome to the Ziyawa API"}


def test_security_headers_over_http():
    client = TestClient(app)
    res = client.get("/")
    assert res.headers["X-Content-Type-Options"] == "nosniff"
    assert res.headers["X-Frame-Options"] == "DENY"
    assert res.headers["Content-Security-Policy"] == "default-src 'none'; frame-ancestors 'none'"
    assert res.headers["Referrer-Policy"] == "strict-origin-when-cross-origin"
    assert "Strict-Transport-Security" not in res.headers


def test_hsts_only_over_https():
    client = TestClient(app, base_url="https://testserver")
    res = client.get("/")
    assert res.headers["Strict-Transport-Security"].startswith("max-age=63072000")


def test_healthz_reports_db_ping(monkeypatch):
    monkeypatch.setattr(main, "_db_ping_sync", lambda: 1.234)
    res = TestClient(app).get("/healthz")
    assert res.status_code == 200
    assert res.json()["status"] == "ok"
    assert res.json()["db_ping_ms"] == 1.23
    assert res.headers["Cache-Control"] == "no-store"


def test_healthz_db_down(monkeypatch):
    def down():
        raise OperationalError("SELECT 1", {}, Exception("unable to open database"))

    monkeypatch.setattr(main, "_db_ping_sync", down)
    res = TestClient(app).get("/healthz")
    assert res.status_code == 503
    assert res.json() == {"status": "error", "reason": "OperationalError"}


def test_validation_errors_are_logged(caplog):
    client = TestClient(app)
    with caplog.at_level(logging.WARNING, logger="app.main"):
        res = client.post("/auth/register", json={})
    assert res.status_code == 422
    assert isinstance(res.json()["detail"], list)
    assert "Validation error at /auth/register" in caplog.text


def test_error_response_shape(caplog):
    with caplog.at_level(logging.ERROR, logger="app.utils.errors"):
        exc = error_response("Insufficient balance", {"amount": "insufficient_balance"}, 400)
    assert exc.status_code == 400
    assert exc.detail == {"message": "Insufficient balance", "field_errors": {"amount": "insufficient_balance"}}
    assert "Insufficient balance" in caplog.text

    assert error_response("Bad").detail == {"message": "Bad", "field_errors": {}}
    assert error_response("Bad").status_code == 422
    assert not_found("Event", "event_id").detail["field_errors"] == {"event_id": "not_found"}


def test_invalid_transition_maps_to_conflict():
    exc = invalid_transition(InvalidTransition("payout", "completed", "rejected"))
    assert exc.status_code == 409
    assert exc.detail["message"] == "Cannot move payout from completed to rejected"
    assert exc.detail["field_errors"] == {"state": "invalid_transition"}
