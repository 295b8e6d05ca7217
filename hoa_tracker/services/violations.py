from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence

from ..constants import HOAS_COLLECTION, VIOLATION_STATUSES, VIOLATIONS_COLLECTION
from .documents import Document, DocumentNotFound, DocumentStore, Subscription
from .email import SendResult, render_resident_notice, render_violation_notification, send_email
from .tenants import accepts_reports

logger = logging.getLogger(__name__)


class TenantNotAcceptingReports(Exception):
    def __init__(self, hoa_slug: str) -> None:
        super().__init__(f"HOA {hoa_slug} is not accepting violation reports.")
        self.hoa_slug = hoa_slug


def submit_violation(
    store: DocumentStore,
    hoa_slug: str,
    *,
    violation_type: str,
    address: str,
    description: str,
    photos: Optional[Sequence[str]] = None,
    reporter_email: Optional[str] = None,
    reporter_phone: Optional[str] = None,
) -> Document:
    """Record a public report against an HOA; every report starts as ``pending``."""
    tenant = store.get(HOAS_COLLECTION, hoa_slug)
    if not accepts_reports(tenant):
        raise TenantNotAcceptingReports(hoa_slug)
    allowed = tenant.get("violation_types") or []
    if allowed and violation_type not in allowed:
        raise ValueError(f"Unknown violation type for this HOA: {violation_type}")
    for name, value in (("address", address), ("description", description)):
        if not (value or "").strip():
            raise ValueError(f"Violation {name} is required.")
    violation = store.add(
        VIOLATIONS_COLLECTION,
        {
            "hoa_id": hoa_slug,
            "type": violation_type,
            "address": address.strip(),
            "description": description.strip(),
            "photos": list(photos or []),
            "reporter_email": reporter_email or None,
            "reporter_phone": reporter_phone or None,
            "status": "pending",
            "admin_notes": "",
        },
    )
    logger.info("Violation %s reported for HOA %s", violation.key, hoa_slug)
    return violation


def list_violations(store: DocumentStore, hoa_slug: str, status: Optional[str] = None) -> List[Document]:
    where: Dict[str, Any] = {"hoa_id": hoa_slug}
    if status and status != "all":
        if status not in VIOLATION_STATUSES:
            raise ValueError(f"Invalid violation status: {status}")
        where["status"] = status
    violations = store.query(VIOLATIONS_COLLECTION, where)
    return sorted(violations, key=lambda doc: doc.created_at, reverse=True)


def watch_violations(store: DocumentStore, hoa_slug: str) -> Subscription:
    return store.subscribe(VIOLATIONS_COLLECTION, {"hoa_id": hoa_slug})


def get_violation(store: DocumentStore, hoa_slug: str, violation_id: str) -> Document:
    violation = store.get(VIOLATIONS_COLLECTION, violation_id)
    if violation.get("hoa_id") != hoa_slug:
        raise DocumentNotFound(VIOLATIONS_COLLECTION, violation_id)
    return violation


def update_violation(
    store: DocumentStore,
    hoa_slug: str,
    violation_id: str,
    *,
    status: Optional[str] = None,
    admin_notes: Optional[str] = None,
) -> Document:
    get_violation(store, hoa_slug, violation_id)
    updates: Dict[str, Any] = {}
    if status is not None:
        if status not in VIOLATION_STATUSES:
            raise ValueError(f"Invalid violation status: {status}")
        updates["status"] = status
    if admin_notes is not None:
        updates["admin_notes"] = admin_notes
    if not updates:
        raise ValueError("Nothing to update.")
    violation = store.update(VIOLATIONS_COLLECTION, violation_id, updates)
    logger.info("Violation %s updated (%s)", violation_id, ", ".join(sorted(updates)))
    return violation


def delete_violation(store: DocumentStore, hoa_slug: str, violation_id: str) -> Document:
    violation = get_violation(store, hoa_slug, violation_id)
    store.delete(VIOLATIONS_COLLECTION, violation_id)
    logger.info("Violation %s deleted", violation_id)
    return violation


def admin_recipients(tenant: Mapping[str, Any]) -> List[str]:
    recipients = [tenant.get("admin_email")] + list(tenant.get("additional_emails") or [])
    return [email for email in recipients if email]


def notify_admins(tenant: Document, violation: Document) -> Optional[SendResult]:
    """Email the HOA's admins about a new report. Failures are logged, never raised."""
    try:
        subject, body = render_violation_notification(violation.to_dict(), tenant.key)
        return send_email(subject, body, admin_recipients(tenant.data))
    except Exception:
        logger.exception("Failed to send violation notification for %s", violation.key)
        return None


def notify_resident(
    store: DocumentStore,
    hoa_slug: str,
    violation_id: str,
    *,
    recipient_email: str,
    message: str,
    subject: Optional[str] = None,
) -> SendResult:
    violation = get_violation(store, hoa_slug, violation_id)
    if not (message or "").strip():
        raise ValueError("A message is required.")
    subject = (subject or "").strip() or default_notice_subject(violation)
    body = render_resident_notice(violation.to_dict(), message)
    return send_email(subject, body, [recipient_email])


def default_notice_subject(violation: Document) -> str:
    return f"Violation Notice - {violation.get('type', '')}"
