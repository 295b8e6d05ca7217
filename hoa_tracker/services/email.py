import html
import logging
import smtplib
import ssl
from dataclasses import dataclass
from datetime import datetime, timezone
from email.message import EmailMessage
from email.utils import formataddr
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from ..config import settings

logger = logging.getLogger(__name__)

MAX_LOG_RECIPIENTS = 3
MAX_SUBJECT_PREVIEW = 12


@dataclass
class SendResult:
    backend: str
    status_code: Optional[int]
    request_id: Optional[str]
    error: Optional[str]


def mask_email(value: str) -> str:
    if not value or "@" not in value:
        return "***"
    name, domain = value.split("@", 1)
    if not name:
        masked = "***"
    elif len(name) <= 2:
        masked = f"{name[0]}***"
    else:
        masked = f"{name[0]}***{name[-1]}"
    return f"{masked}@{domain}"


def _mask_subject(subject: str) -> str:
    if not subject:
        return ""
    preview = subject[:MAX_SUBJECT_PREVIEW]
    return f"{preview}... (len={len(subject)})"


def _backend_name() -> str:
    return (settings.email_backend or "local").strip().strip("'\"").lower()


def _normalize_recipients(recipients: Iterable[str]) -> List[str]:
    normalized: List[str] = []
    seen = set()
    for email in recipients:
        if not email:
            continue
        cleaned = email.strip()
        if not cleaned:
            continue
        lowered = cleaned.lower()
        if lowered in seen:
            continue
        seen.add(lowered)
        normalized.append(cleaned)
    return normalized


def _resolve_sender() -> Tuple[str, str]:
    from_address = settings.email_from_address or "notifications@hoa-tracker.app"
    display_name = settings.email_from_name or "HOA Violation Tracker"
    return str(from_address), display_name


def _write_local_email(subject: str, body: str, recipients: List[str]) -> str:
    timestamp = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S%f")
    safe_subject = "".join(ch for ch in subject if ch.isalnum() or ch in (" ", "_", "-")).strip() or "email"
    filename = f"{timestamp}_{safe_subject.replace(' ', '_')}.html"
    output_dir = Path(settings.email_output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    path = output_dir / filename
    contents = "\n".join(
        [
            f"Subject: {subject}",
            f"Recipients: {', '.join(recipients)}",
            "",
            body,
        ]
    )
    path.write_text(contents, encoding="utf-8")
    logger.info("[LOCAL EMAIL] %s", path)
    return str(path)


def _send_via_sendgrid(subject: str, body: str, recipients: List[str]) -> SendResult:
    from sendgrid import SendGridAPIClient
    from sendgrid.helpers.mail import Email, Mail

    from_address, display_name = _resolve_sender()
    if not settings.sendgrid_api_key:
        raise RuntimeError("SendGrid backend requires SENDGRID_API_KEY.")

    message = Mail(
        from_email=Email(email=from_address, name=display_name),
        to_emails=recipients,
        subject=subject,
        html_content=body,
    )
    reply_to = settings.email_reply_to or from_address
    if reply_to:
        message.reply_to = Email(email=str(reply_to))
    client = SendGridAPIClient(settings.sendgrid_api_key)
    try:
        response = client.send(message)
    except Exception as exc:  # pragma: no cover - network failure surface varies by client version
        status_code = getattr(exc, "status_code", None)
        headers = getattr(exc, "headers", None) or {}
        request_id = headers.get("X-Message-Id") if isinstance(headers, dict) else None
        logger.exception("SendGrid dispatch failed (status=%s request_id=%s).", status_code, request_id)
        return SendResult(backend="sendgrid", status_code=status_code, request_id=request_id, error=str(exc))

    request_id = None
    if isinstance(response.headers, dict):
        request_id = response.headers.get("X-Message-Id") or response.headers.get("X-Request-Id")
    logger.info(
        "Sent email via SendGrid to %d recipients (status=%s request_id=%s).",
        len(recipients),
        response.status_code,
        request_id,
    )
    return SendResult(backend="sendgrid", status_code=response.status_code, request_id=request_id, error=None)


def _send_via_smtp(subject: str, body: str, recipients: List[str]) -> SendResult:
    if not settings.email_host:
        raise RuntimeError("SMTP backend requires EMAIL_HOST.")
    if not settings.email_host_user or not settings.email_host_password:
        raise RuntimeError("SMTP backend requires EMAIL_HOST_USER and EMAIL_HOST_PASSWORD.")
    from_address, display_name = _resolve_sender()

    message = EmailMessage()
    message["Subject"] = subject
    message["From"] = formataddr((display_name, from_address))
    message["To"] = ", ".join(recipients)
    message["Reply-To"] = str(settings.email_reply_to or from_address)
    message.set_content("This message requires an HTML-capable email client.")
    message.add_alternative(body, subtype="html")

    context = ssl.create_default_context()
    with smtplib.SMTP(settings.email_host, settings.email_port or 587) as connection:
        connection.ehlo()
        if settings.email_use_tls:
            connection.starttls(context=context)
            connection.ehlo()
        connection.login(settings.email_host_user, settings.email_host_password)
        connection.send_message(message)
    logger.info("Sent email via SMTP to %d recipients.", len(recipients))
    return SendResult(backend="smtp", status_code=250, request_id=None, error=None)


def _log_send_attempt(backend: str, subject: str, recipients: List[str]) -> None:
    masked_recipients = [mask_email(addr) for addr in recipients[:MAX_LOG_RECIPIENTS]]
    if len(recipients) > MAX_LOG_RECIPIENTS:
        masked_recipients.append(f"+{len(recipients) - MAX_LOG_RECIPIENTS} more")
    logger.info(
        "Dispatching email backend=%s to=%s subject=%s",
        backend,
        masked_recipients,
        _mask_subject(subject),
    )


def send_email(subject: str, body: str, recipients: Iterable[str]) -> SendResult:
    """Dispatch an HTML email using the configured backend.

    Raises when the backend cannot be used at all; a provider-side rejection
    is reported through ``SendResult.error``.
    """
    recipient_list = _normalize_recipients(recipients)
    backend = _backend_name()
    if not recipient_list:
        logger.info("Email dispatch skipped: no recipients (subject=%s).", _mask_subject(subject))
        return SendResult(backend=backend, status_code=None, request_id=None, error="No recipients provided.")

    _log_send_attempt(backend, subject, recipient_list)
    try:
        if backend == "sendgrid":
            return _send_via_sendgrid(subject, body, recipient_list)
        if backend in {"smtp", "sendgrid_smtp"}:
            return _send_via_smtp(subject, body, recipient_list)
        if backend != "local":
            logger.warning("Unknown EMAIL_BACKEND '%s'. Defaulting to local stub.", backend)
        _write_local_email(subject, body, recipient_list)
        return SendResult(backend="local", status_code=200, request_id=None, error=None)
    except Exception:
        logger.exception("Email dispatch failed for backend=%s.", backend)
        raise


# --- Templates ---

def _e(value: Any) -> str:
    return html.escape(str(value if value is not None else ""))


def _photo_links(photos: Iterable[str], label: str) -> str:
    links = [f'<p><a href="{_e(url)}" target="_blank">{label} {index}</a></p>' for index, url in enumerate(photos, 1)]
    return "".join(links)


def _format_timestamp(value: Any) -> str:
    if isinstance(value, datetime):
        return value.strftime("%b %d, %Y %I:%M %p UTC")
    return _e(value)


def admin_dashboard_url(hoa_slug: str) -> str:
    return f"{settings.frontend_url.rstrip('/')}/{hoa_slug}/admin"


def render_violation_notification(violation: Mapping[str, Any], hoa_slug: str) -> Tuple[str, str]:
    subject = f"New Violation Report - {violation.get('type', '')}"
    parts = [
        "<h2>New Violation Report</h2>",
        f"<p><strong>Type:</strong> {_e(violation.get('type'))}</p>",
        f"<p><strong>Address:</strong> {_e(violation.get('address'))}</p>",
        f"<p><strong>Description:</strong> {_e(violation.get('description'))}</p>",
        f"<p><strong>Status:</strong> {_e(violation.get('status'))}</p>",
        f"<p><strong>Reported:</strong> {_format_timestamp(violation.get('created_at'))}</p>",
    ]
    if violation.get("reporter_email"):
        parts.append(f"<p><strong>Reporter Email:</strong> {_e(violation['reporter_email'])}</p>")
    if violation.get("reporter_phone"):
        parts.append(f"<p><strong>Reporter Phone:</strong> {_e(violation['reporter_phone'])}</p>")
    photos = violation.get("photos") or []
    if photos:
        parts.append("<p><strong>Photos:</strong></p>")
        parts.append(_photo_links(photos, "Photo"))
    parts.append("<p>Please log in to your admin panel to manage this violation.</p>")
    parts.append(f'<p><a href="{_e(admin_dashboard_url(hoa_slug))}">Admin Dashboard</a></p>')
    return subject, "\n".join(parts)


def render_resident_notice(violation: Mapping[str, Any], message: str) -> str:
    photos = violation.get("photos") or []
    photo_block = ""
    if photos:
        photo_block = (
            '<div style="margin: 20px 0;"><p><strong>Reference Photos:</strong></p>'
            f"{_photo_links(photos, 'View Photo')}</div>"
        )
    return (
        '<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">'
        '<h2 style="color: #333;">Violation Notice</h2>'
        '<div style="background-color: #f5f5f5; padding: 15px; border-radius: 5px; margin: 15px 0;">'
        f"<p><strong>Violation Type:</strong> {_e(violation.get('type'))}</p>"
        f"<p><strong>Address:</strong> {_e(violation.get('address'))}</p>"
        f"<p><strong>Date Reported:</strong> {_format_timestamp(violation.get('created_at'))}</p>"
        "</div>"
        f'<div style="margin: 20px 0;">{_e(message).replace(chr(10), "<br>")}</div>'
        f"{photo_block}"
        '<div style="margin-top: 30px; padding-top: 20px; border-top: 1px solid #ccc; color: #666; font-size: 12px;">'
        "<p>This email was sent from your HOA management system.</p>"
        "</div></div>"
    )


SUBSCRIPTION_TEMPLATES: Dict[str, Dict[str, str]] = {
    "welcome": {
        "subject": "Welcome to HOA Violation Tracker",
        "body": (
            "<h2>Welcome to HOA Violation Tracker!</h2>"
            "<p>Thank you for subscribing to our HOA violation management system.</p>"
            "<p><strong>HOA:</strong> {hoa_name}</p>"
            "<p>You can now manage violations and notifications for your community.</p>"
            '<p><a href="{admin_url}">Access Admin Panel</a></p>'
        ),
    },
    "payment_failed": {
        "subject": "Payment Failed - HOA Violation Tracker",
        "body": (
            "<h2>Payment Failed</h2>"
            "<p>We were unable to process your monthly payment for HOA Violation Tracker.</p>"
            "<p>Please update your payment information to continue using our service.</p>"
        ),
    },
    "subscription_cancelled": {
        "subject": "Subscription Cancelled - HOA Violation Tracker",
        "body": (
            "<h2>Subscription Cancelled</h2>"
            "<p>Your subscription to HOA Violation Tracker has been cancelled.</p>"
            "<p>You can reactivate your subscription at any time.</p>"
        ),
    },
}


def render_subscription_email(kind: str, hoa_name: str, hoa_slug: str) -> Tuple[str, str]:
    if kind not in SUBSCRIPTION_TEMPLATES:
        raise ValueError(f"Unknown subscription email type: {kind}")
    template = SUBSCRIPTION_TEMPLATES[kind]
    body = template["body"].format(hoa_name=_e(hoa_name), admin_url=_e(admin_dashboard_url(hoa_slug)))
    return template["subject"], body
