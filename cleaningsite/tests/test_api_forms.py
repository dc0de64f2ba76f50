import io
import json

import pytest

from cleaningsite.models import (
    CareerApplication,
    ContactSubmission,
    NewsletterSubscription,
    PageFeedback,
    QuoteRequest,
    SecurityEvent,
    db,
)
from cleaningsite.routes.api import (
    CAREERS_SUCCESS_MESSAGE,
    CONTACT_SUCCESS_MESSAGE,
    NEWSLETTER_SUCCESS_MESSAGE,
    QUOTE_SUCCESS_MESSAGE,
)

PDF_BYTES = b"%PDF-1.4\n1 0 obj\n<< /Type /Catalog >>\nendobj\n%%EOF\n"


def career_form(resume=None):
    data = {
        "first_name": "Katherine",
        "last_name": "Johnson",
        "email": "katherine@example.com",
        "phone": "413-555-0142",
        "applying_for": "Night Shift Supervisor",
        "message": "Ten years of facilities experience.",
    }
    if resume is not None:
        data["resume"] = resume
    return data


def test_newsletter_rate_limit_allows_three_then_blocks(client, sent_emails):
    for _ in range(3):
        response = client.post("/api/newsletter", json={"email": "ada@example.com"})
        assert response.status_code == 200
        assert response.get_json() == {"success": True, "message": NEWSLETTER_SUCCESS_MESSAGE}

    blocked = client.post("/api/newsletter", json={"email": "ada@example.com"})
    assert blocked.status_code == 429
    assert blocked.headers["X-RateLimit-Remaining"] == "0"
    assert blocked.headers["X-RateLimit-Limit"] == "3"
    assert blocked.get_json()["success"] is False
    assert len(sent_emails) == 3


def test_rate_limits_are_scoped_per_form(client, sent_emails):
    for _ in range(3):
        client.post("/api/newsletter", json={"email": "ada@example.com"})
    assert client.post("/api/newsletter", json={"email": "ada@example.com"}).status_code == 429

    response = client.post("/api/feedback", json={"page_id": "/services", "vote": "yes"})
    assert response.status_code == 200


def test_rate_limited_request_is_recorded_as_security_event(client, app):
    for _ in range(4):
        client.post("/api/newsletter", json={"email": "ada@example.com"})

    with app.app_context():
        event = SecurityEvent.query.filter_by(event_type="rate_limited").one()
        assert event.scope == "newsletter_form"
        assert event.ip == "127.0.0.1"
        assert event.path == "/api/newsletter"


def test_spoofed_forwarded_for_does_not_bypass_limit(client):
    for index in range(3):
        client.post(
            "/api/newsletter",
            json={"email": "ada@example.com"},
            headers={"X-Forwarded-For": f"198.51.100.{index}"},
        )
    blocked = client.post(
        "/api/newsletter",
        json={"email": "ada@example.com"},
        headers={"X-Forwarded-For": "198.51.100.99"},
    )
    assert blocked.status_code == 429


def test_trusted_proxy_header_keys_the_limit(make_app):
    client = make_app({"TRUST_PROXY_HEADERS": True}).test_client()
    for _ in range(3):
        client.post("/api/newsletter", json={"email": "ada@example.com"}, headers={"X-Forwarded-For": "198.51.100.7"})

    other = client.post("/api/newsletter", json={"email": "ada@example.com"}, headers={"X-Forwarded-For": "198.51.100.8"})
    assert other.status_code == 200


def test_rotating_first_forwarded_hop_does_not_bypass_limit(make_app):
    client = make_app({"TRUST_PROXY_HEADERS": True}).test_client()
    statuses = [
        client.post(
            "/api/newsletter",
            json={"email": "ada@example.com"},
            headers={"X-Forwarded-For": f"198.51.100.{index}, 203.0.113.50"},
        ).status_code
        for index in range(5)
    ]
    assert statuses == [200, 200, 200, 429, 429]


def test_contact_honeypot_stores_and_sends_nothing(client, app, sent_emails):
    response = client.post(
        "/api/contact",
        json={
            "name": "Bot",
            "email": "a@b.com",
            "phone": "1234567890",
            "message": "hi",
            "website": "http://spam.example",
        },
    )
    assert response.status_code == 200
    assert response.get_json() == {"success": True, "message": CONTACT_SUCCESS_MESSAGE}
    assert sent_emails == []
    with app.app_context():
        assert ContactSubmission.query.count() == 0
        assert SecurityEvent.query.filter_by(event_type="honeypot_triggered", scope="contact_form").count() == 1


def test_contact_success_persists_and_notifies(client, app, sent_emails, contact_payload):
    response = client.post(
        "/api/contact",
        json=contact_payload,
        headers={"Referer": "https://example.com/contact", "User-Agent": "pytest-browser"},
    )
    assert response.status_code == 200
    assert response.get_json() == {"success": True, "message": CONTACT_SUCCESS_MESSAGE}
    assert response.headers["X-RateLimit-Remaining"] == "4"

    with app.app_context():
        saved = ContactSubmission.query.one()
        assert saved.email == "ada@example.com"
        assert saved.source_page == "https://example.com/contact"
        assert saved.user_agent == "pytest-browser"
        assert saved.ip_address is None

    email = sent_emails[0]
    assert email["to"] == ["office@example.com"]
    assert email["subject"] == "New Contact Form Submission from Ada Lovelace"
    assert email["reply_to"] == "ada@example.com"
    assert "(555) 123-4567" in email["text"]
    assert "two-floor office" in email["html"]


def test_contact_sanitizes_control_characters(client, app, sent_emails, contact_payload):
    contact_payload["message"] = "  Please\x00 call   me\x07 back soon  "
    response = client.post("/api/contact", json=contact_payload)
    assert response.status_code == 200
    with app.app_context():
        assert ContactSubmission.query.one().message == "Please call me back soon"


def test_contact_html_email_escapes_user_input(client, sent_emails, contact_payload):
    contact_payload["message"] = "<script>alert('x')</script> please call"
    client.post("/api/contact", json=contact_payload)
    assert "<script>" not in sent_emails[0]["html"]
    assert "&lt;script&gt;" in sent_emails[0]["html"]


def test_quote_missing_email_reports_field_detail(client, app, quote_payload):
    del quote_payload["email"]
    response = client.post("/api/quote", json=quote_payload)

    assert response.status_code == 400
    body = response.get_json()
    assert body["success"] is False
    assert body["error"] == "Invalid form data"
    assert body["details"]["email"] == ["Email is required"]
    with app.app_context():
        assert QuoteRequest.query.count() == 0


@pytest.mark.parametrize(
    "field, value",
    [
        ("zip_code", "1089"),
        ("facility_type", "spaceship"),
        ("services", []),
        ("services", ["teleportation"]),
        ("consent", False),
        ("desired_start_date", "2001-01-01"),
    ],
)
def test_quote_rejects_invalid_fields(client, quote_payload, field, value):
    quote_payload[field] = value
    response = client.post("/api/quote", json=quote_payload)
    assert response.status_code == 400
    assert field in response.get_json()["details"]


def test_quote_success_maps_columns(client, app, sent_emails, quote_payload):
    response = client.post("/api/quote", json=quote_payload)
    assert response.status_code == 200
    assert response.get_json() == {"success": True, "message": QUOTE_SUCCESS_MESSAGE}

    with app.app_context():
        saved = QuoteRequest.query.one()
        assert saved.company_name == "Compiler Works"
        assert saved.contact_name == "Grace Hopper"
        assert saved.square_footage == "5000"
        assert saved.address == "12 Main Street, Springfield, 01089"
        assert saved.services == ["office-cleaning", "window-cleaning"]
        assert saved.start_date == quote_payload["desired_start_date"]
        assert saved.source_page == "/quote"

    email = sent_emails[0]
    assert email["subject"] == "New Quote Request from Grace Hopper - Compiler Works"
    assert "Office &amp; Commercial Cleaning" in email["html"]
    assert "5,000 sq ft" in email["text"]


def test_careers_rejects_executable_upload(client, app, sent_emails):
    response = client.post(
        "/api/careers",
        data=career_form((io.BytesIO(b"MZ\x90\x00fake"), "resume.exe", "application/x-msdownload")),
        content_type="multipart/form-data",
    )
    assert response.status_code == 400
    assert response.get_json() == {
        "success": False,
        "error": "Invalid file type. Please upload a PDF or Word document.",
    }
    assert sent_emails == []
    with app.app_context():
        assert CareerApplication.query.count() == 0


def test_careers_rejects_executable_disguised_as_pdf(client):
    response = client.post(
        "/api/careers",
        data=career_form((io.BytesIO(b"MZ\x90\x00fake"), "resume.pdf", "application/pdf")),
        content_type="multipart/form-data",
    )
    assert response.status_code == 400
    assert response.get_json()["error"] == "File rejected: executable content detected."


def test_careers_rejects_oversized_resume(make_app):
    client = make_app({"RESUME_MAX_BYTES": 1024}).test_client()
    response = client.post(
        "/api/careers",
        data=career_form((io.BytesIO(b"%PDF" + b"0" * 2048), "resume.pdf", "application/pdf")),
        content_type="multipart/form-data",
    )
    assert response.status_code == 400
    assert response.get_json()["error"].startswith("File too large.")


def test_careers_success_attaches_resume(client, app, sent_emails):
    response = client.post(
        "/api/careers",
        data=career_form((io.BytesIO(PDF_BYTES), "My Resume (final).pdf", "application/pdf")),
        content_type="multipart/form-data",
    )
    assert response.status_code == 200
    assert response.get_json() == {"success": True, "message": CAREERS_SUCCESS_MESSAGE}

    with app.app_context():
        saved = CareerApplication.query.one()
        assert saved.name == "Katherine Johnson"
        assert saved.position == "Night Shift Supervisor"
        assert saved.resume_filename == "My_Resume_final_.pdf"
        assert saved.source_page == "/apply"

    email = sent_emails[0]
    assert email["subject"] == "New Job Application: Katherine Johnson - Night Shift Supervisor"
    attachment = email["attachments"][0]
    assert attachment.content == PDF_BYTES
    assert attachment.content_type == "application/pdf"


def test_careers_without_resume_uses_general_application(client, app, sent_emails):
    form = career_form()
    form["applying_for"] = ""
    response = client.post("/api/careers", data=form, content_type="multipart/form-data")
    assert response.status_code == 200

    with app.app_context():
        saved = CareerApplication.query.one()
        assert saved.position == "General Application"
        assert saved.resume_filename is None
    assert sent_emails[0]["subject"] == "New Job Application: Katherine Johnson"
    assert sent_emails[0]["attachments"] is None


def test_newsletter_normalizes_email(client, app, sent_emails):
    response = client.post("/api/newsletter", json={"email": "  Ada@Example.COM "})
    assert response.status_code == 200
    with app.app_context():
        saved = NewsletterSubscription.query.one()
        assert saved.email == "ada@example.com"
        assert saved.status == "active"
    assert sent_emails[0]["subject"] == "New Newsletter Subscription: ada@example.com"
    assert sent_emails[0]["reply_to"] is None


def test_feedback_is_stored_without_notification(client, app, sent_emails):
    response = client.post("/api/feedback", json={"page_id": "/services/janitorial", "vote": "no", "feedback": "Pricing?"})
    assert response.status_code == 200
    assert sent_emails == []
    with app.app_context():
        saved = PageFeedback.query.one()
        assert saved.vote == "no"
        assert saved.source_page == "/services/janitorial"


def test_success_responses_share_one_shape(client, sent_emails, contact_payload, quote_payload):
    responses = [
        client.post("/api/contact", json=contact_payload),
        client.post("/api/quote", json=quote_payload),
        client.post("/api/newsletter", json={"email": "ada@example.com"}),
        client.post(
            "/api/careers",
            data=career_form((io.BytesIO(PDF_BYTES), "cv.pdf", "application/pdf")),
            content_type="multipart/form-data",
        ),
    ]
    for response in responses:
        assert response.status_code == 200
        body = response.get_json()
        assert set(body) == {"success", "message"}
        assert body["success"] is True


def test_notification_failure_does_not_fail_submission(client, app, monkeypatch, contact_payload):
    from cleaningsite.notifications import EmailDeliveryError
    from cleaningsite.routes import api as api_routes

    def broken_send_email(**kwargs):
        raise EmailDeliveryError("SMTP delivery failed: connection refused")

    monkeypatch.setattr(api_routes, "send_email", broken_send_email)
    response = client.post("/api/contact", json=contact_payload)
    assert response.status_code == 200
    with app.app_context():
        assert ContactSubmission.query.count() == 1


def test_database_failure_returns_generic_error(client, app, sink, monkeypatch, contact_payload):
    from sqlalchemy.exc import OperationalError

    from cleaningsite.models import db

    def failing_commit():
        raise OperationalError("INSERT", {}, Exception("db down"))

    monkeypatch.setattr(db.session, "commit", failing_commit)
    response = client.post("/api/contact", json=contact_payload)

    assert response.status_code == 500
    body = response.get_json()
    assert body == {"success": False, "error": "Unable to save submission. Please try again later."}
    assert "db down" not in response.get_data(as_text=True)
    assert any(tags.get("table") == "contact_submissions" for _, tags in sink.errors)


@pytest.mark.parametrize("path", ["/api/contact", "/api/quote", "/api/newsletter", "/api/careers", "/api/feedback"])
def test_preflight_returns_cors_headers(client, path):
    response = client.options(path)
    assert response.status_code == 204
    assert response.headers["Access-Control-Allow-Origin"] == "*"
    assert response.headers["Access-Control-Allow-Methods"] == "POST, OPTIONS"
    assert response.headers["Access-Control-Allow-Headers"] == "Content-Type"


def test_unknown_api_route_and_wrong_method_are_json(client):
    missing = client.post("/api/unknown", json={})
    assert missing.status_code == 404
    assert missing.get_json()["success"] is False

    wrong_method = client.get("/api/contact")
    assert wrong_method.status_code == 405
    assert wrong_method.get_json()["success"] is False


def test_oversized_body_is_rejected(make_app):
    client = make_app({"MAX_CONTENT_LENGTH": 1024}).test_client()
    response = client.post("/api/contact", data=b"x" * 4096, content_type="application/json")
    assert response.status_code == 413
    assert response.get_json() == {"success": False, "error": "Request body too large."}


def test_request_id_is_echoed(client):
    response = client.post("/api/feedback", json={"page_id": "/", "vote": "yes"}, headers={"X-Request-ID": "req-12345678"})
    assert response.headers["X-Request-ID"] == "req-12345678"

    generated = client.get("/healthz")
    assert len(generated.headers["X-Request-ID"]) == 32


def test_health_and_readiness(client):
    assert client.get("/healthz").get_json() == {"status": "ok"}
    ready = client.get("/readyz")
    assert ready.status_code == 200
    assert ready.get_json()["checks"] == {"database": True, "tables": True}


def test_json_body_is_parsed_regardless_of_content_type(client, app, sent_emails, contact_payload):
    response = client.post("/api/contact", data=json.dumps(contact_payload), content_type="text/plain")
    assert response.status_code == 200
    with app.app_context():
        assert ContactSubmission.query.count() == 1


@pytest.mark.parametrize("model", [PageFeedback, SecurityEvent])
def test_readiness_fails_when_a_table_is_missing(client, app, model):
    with app.app_context():
        model.__table__.drop(db.engine)
    response = client.get("/readyz")
    assert response.status_code == 503
    assert response.get_json()["checks"] == {"database": True, "tables": False}
