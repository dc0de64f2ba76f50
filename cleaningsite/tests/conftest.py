import uuid
from datetime import date, timedelta

import pytest

from cleaningsite import create_app
from cleaningsite.observability import RecordingSink


def build_test_app(tmp_path, overrides=None):
    db_path = tmp_path / f"submissions_test_{uuid.uuid4().hex[:8]}.db"
    config = {
        "TESTING": True,
        "SECRET_KEY": "test-secret-key",
        "SQLALCHEMY_DATABASE_URI": f"sqlite:///{db_path}",
        "SQLALCHEMY_ENGINE_OPTIONS": {},
        "TRUST_PROXY_HEADERS": False,
        "RATE_LIMIT_BACKEND": "memory",
        "NOTIFICATION_EMAIL": "office@example.com",
        "MAIL_FROM": "noreply@example.com",
        "RESEND_API_KEY": "",
        "SMTP_HOST": "",
        "SENTRY_DSN": "",
        "LOG_JSON": False,
    }
    if overrides:
        config.update(overrides)

    app = create_app(config)
    app.extensions["observability_sink"] = RecordingSink()
    return app


@pytest.fixture()
def make_app(tmp_path):
    def factory(overrides=None):
        return build_test_app(tmp_path, overrides)
    return factory


@pytest.fixture()
def app(make_app):
    return make_app()


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def sink(app):
    return app.extensions["observability_sink"]


@pytest.fixture()
def sent_emails(monkeypatch):
    """Capture outgoing notifications instead of talking to a provider."""
    from cleaningsite.notifications import EmailSendResult
    from cleaningsite.routes import api as api_routes

    captured = []

    def fake_send_email(to, subject, html, text=None, reply_to=None, attachments=None):
        captured.append(
            {
                "to": to,
                "subject": subject,
                "html": html,
                "text": text,
                "reply_to": reply_to,
                "attachments": attachments,
            }
        )
        return EmailSendResult(success=True, id=f"test-{len(captured)}")

    monkeypatch.setattr(api_routes, "send_email", fake_send_email)
    return captured


@pytest.fixture()
def contact_payload():
    return {
        "name": "Ada Lovelace",
        "email": "Ada@Example.com",
        "phone": "555-123-4567",
        "message": "We need nightly cleaning for a two-floor office.",
    }


@pytest.fixture()
def quote_payload():
    return {
        "full_name": "Grace Hopper",
        "company": "Compiler Works",
        "email": "grace@example.com",
        "phone": "(413) 555-0199",
        "address": "12 Main Street",
        "city": "Springfield",
        "zip_code": "01089",
        "square_footage": 5000,
        "facility_type": "office",
        "cleaning_frequency": "weekly",
        "desired_start_date": (date.today() + timedelta(days=14)).isoformat(),
        "services": ["office-cleaning", "window-cleaning"],
        "special_requests": "Green products only.",
        "consent": True,
    }
