import sys
from types import ModuleType

import pytest

from hoa_tracker.services import email as email_service
from hoa_tracker.services.email import (
    mask_email,
    render_resident_notice,
    render_subscription_email,
    render_violation_notification,
    send_email,
)


def _install_fake_sendgrid(monkeypatch, sent_messages):
    sendgrid_module = ModuleType("sendgrid")
    helpers_module = ModuleType("sendgrid.helpers")
    mail_module = ModuleType("sendgrid.helpers.mail")

    class Email:
        def __init__(self, email, name=None):
            self.email = email
            self.name = name

    class Mail:
        def __init__(self, from_email, to_emails, subject, html_content):
            self.from_email = from_email
            self.to_emails = to_emails
            self.subject = subject
            self.html_content = html_content
            self.reply_to = None

    class SendGridAPIClient:
        def __init__(self, api_key):
            self.api_key = api_key

        def send(self, message):
            sent_messages.append(message)

            class Response:
                status_code = 202
                headers = {"X-Message-Id": "test-message-id"}

            return Response()

    sendgrid_module.SendGridAPIClient = SendGridAPIClient
    mail_module.Email = Email
    mail_module.Mail = Mail
    sendgrid_module.helpers = helpers_module

    monkeypatch.setitem(sys.modules, "sendgrid", sendgrid_module)
    monkeypatch.setitem(sys.modules, "sendgrid.helpers", helpers_module)
    monkeypatch.setitem(sys.modules, "sendgrid.helpers.mail", mail_module)


def test_mask_email():
    assert mask_email("jane@example.com") == "j***e@example.com"
    assert mask_email("jo@example.com") == "j***@example.com"
    assert mask_email("nonsense") == "***"


def test_local_backend_writes_html_file(email_outbox):
    result = send_email("Hello", "<p>Hi</p>", ["a@example.com", "A@example.com", ""])

    assert result.backend == "local"
    assert result.error is None
    files = list(email_outbox.glob("*.html"))
    assert len(files) == 1
    assert "Recipients: a@example.com\n" in files[0].read_text(encoding="utf-8")


def test_send_without_recipients_is_skipped(email_outbox):
    result = send_email("Hello", "<p>Hi</p>", [])
    assert result.error == "No recipients provided."
    assert not email_outbox.exists()


def test_sendgrid_backend_sends_html(monkeypatch, email_outbox):
    sent_messages = []
    _install_fake_sendgrid(monkeypatch, sent_messages)
    monkeypatch.setattr(email_service.settings, "email_backend", "sendgrid")
    monkeypatch.setattr(email_service.settings, "sendgrid_api_key", "test-api-key")
    monkeypatch.setattr(email_service.settings, "email_from_address", "no-reply@example.com")
    monkeypatch.setattr(email_service.settings, "email_reply_to", "reply@example.com")

    result = send_email("Report", "<p>Body</p>", ["boss@example.com"])

    assert result.backend == "sendgrid"
    assert result.status_code == 202
    assert result.request_id == "test-message-id"
    message = sent_messages[0]
    assert message.from_email.email == "no-reply@example.com"
    assert message.from_email.name == "HOA Violation Tracker"
    assert message.reply_to.email == "reply@example.com"
    assert message.html_content == "<p>Body</p>"
    assert not email_outbox.exists()


def test_sendgrid_backend_requires_api_key(monkeypatch):
    _install_fake_sendgrid(monkeypatch, [])
    monkeypatch.setattr(email_service.settings, "email_backend", "sendgrid")
    monkeypatch.setattr(email_service.settings, "sendgrid_api_key", None)

    with pytest.raises(RuntimeError):
        send_email("Report", "<p>Body</p>", ["boss@example.com"])


def test_violation_notification_escapes_reporter_input():
    subject, body = render_violation_notification(
        {
            "type": "Noise",
            "address": "1 Elm",
            "description": "<script>alert(1)</script>",
            "status": "pending",
            "photos": ["https://cdn/a.jpg", "https://cdn/b.jpg"],
        },
        "acme",
    )

    assert subject == "New Violation Report - Noise"
    assert "<script>" not in body
    assert "Photo 2" in body
    assert "Reporter Email" not in body


def test_resident_notice_lists_reference_photos():
    body = render_resident_notice({"type": "Parking", "address": "1 Elm", "photos": ["https://cdn/a.jpg"]}, "Hi")
    assert "Reference Photos" in body
    assert "View Photo 1" in body


@pytest.mark.parametrize(
    ("kind", "subject"),
    [
        ("welcome", "Welcome to HOA Violation Tracker"),
        ("payment_failed", "Payment Failed - HOA Violation Tracker"),
        ("subscription_cancelled", "Subscription Cancelled - HOA Violation Tracker"),
    ],
)
def test_subscription_templates(kind, subject):
    rendered_subject, body = render_subscription_email(kind, "Acme & Co", "acme-co")
    assert rendered_subject == subject
    assert body


def test_welcome_email_links_admin_panel():
    _, body = render_subscription_email("welcome", "Acme & Co", "acme-co")
    assert "Acme &amp; Co" in body
    assert "/acme-co/admin" in body


def test_unknown_subscription_email_type():
    with pytest.raises(ValueError):
        render_subscription_email("refund", "Acme", "acme")
