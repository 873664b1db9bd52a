from pathlib import Path
from dotenv import load_dotenv
import pytest

# Load environment variables for tests before any app module reads settings
load_dotenv(Path(__file__).resolve().parents[1] / ".env.test", override=True)


@pytest.fixture(autouse=True)
def outbox(monkeypatch):
    """Capture outgoing email instead of talking to SMTP."""
    sent = []

    def fake_send(recipient, subject, body):
        sent.append({"to": recipient, "subject": subject, "body": body})
        return True

    monkeypatch.setattr("app.utils.notifications.send_branded_email", fake_send)
    monkeypatch.setattr("app.api.api_admin.send_branded_email", fake_send)
    monkeypatch.setattr("app.api.api_admin.email_configured", lambda: True)
    return sent


@pytest.fixture(autouse=True)
def reset_overrides():
    yield
    from app.main import app

    app.dependency_overrides.clear()
