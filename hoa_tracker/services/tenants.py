from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from ..config import settings
from ..constants import (
    DEFAULT_PRIMARY_COLOR,
    DEFAULT_VIOLATION_TYPES,
    HOAS_COLLECTION,
    SUBSCRIPTION_STATUSES,
)
from ..models.models import utcnow
from .documents import Document, DocumentAlreadyExists, DocumentStore
from .slugs import find_free_slug, generate_slug

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = (
    "name",
    "address",
    "city",
    "state",
    "zip",
    "phone",
    "admin_email",
    "additional_emails",
    "violation_types",
)


def _clean_violation_types(violation_types: Sequence[str]) -> List[str]:
    labels = [label for label in violation_types if label and label.strip()]
    if not labels:
        raise ValueError("At least one violation type is required.")
    return list(labels)


def build_tenant_record(
    *,
    name: str,
    slug: str,
    address: str,
    city: str,
    state: str,
    zip_code: str,
    phone: str,
    admin_email: str,
    admin_uid: Optional[str] = None,
    additional_emails: Optional[Sequence[str]] = None,
    violation_types: Optional[Sequence[str]] = None,
    primary_color: Optional[str] = None,
    logo_url: Optional[str] = None,
    subscription_status: str = "trial",
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    now = now or utcnow()
    return {
        "name": name,
        "slug": slug,
        "address": address,
        "city": city,
        "state": state,
        "zip": zip_code,
        "phone": phone,
        "admin_email": admin_email,
        "admin_uid": admin_uid,
        "additional_emails": list(additional_emails or []),
        "violation_types": list(violation_types) if violation_types else list(DEFAULT_VIOLATION_TYPES),
        "branding": {
            "primary_color": primary_color or DEFAULT_PRIMARY_COLOR,
            "logo_url": logo_url or "",
        },
        "subscription_status": subscription_status,
        "subscription_id": None,
        "trial_ends_at": (now + timedelta(days=settings.trial_period_days)).isoformat(),
    }


def write_tenant(store: DocumentStore, slug: str, record: Mapping[str, Any]) -> Document:
    """Create the tenant document; raises DocumentAlreadyExists when the slug is taken."""
    return store.create(HOAS_COLLECTION, slug, record)


def write_tenant_claiming_slug(
    store: DocumentStore,
    base_slug: str,
    slug: str,
    index: int,
    record_for: Callable[[str], Mapping[str, Any]],
) -> Document:
    """Write the tenant, moving to the next free suffix each time a concurrent writer wins."""
    while True:
        try:
            return write_tenant(store, slug, record_for(slug))
        except DocumentAlreadyExists:
            logger.warning("Slug %s was claimed concurrently; probing for the next one.", slug)
            slug, index = find_free_slug(store, base_slug, start=index + 1)


def get_tenant(store: DocumentStore, slug: str) -> Document:
    return store.get(HOAS_COLLECTION, slug)


def list_tenants(store: DocumentStore, subscription_status: Optional[str] = None) -> List[Document]:
    where = {"subscription_status": subscription_status} if subscription_status else None
    tenants = store.query(HOAS_COLLECTION, where)
    return sorted(tenants, key=lambda doc: (doc.get("name") or "").lower())


def trial_expired(tenant: Document, now: Optional[datetime] = None) -> bool:
    if tenant.get("subscription_status") != "trial" or not tenant.get("trial_ends_at"):
        return False
    ends_at = datetime.fromisoformat(tenant.get("trial_ends_at"))
    return (now or utcnow()) >= ends_at


def accepts_reports(tenant: Document, now: Optional[datetime] = None) -> bool:
    """Inactive HOAs and lapsed trials stop taking public reports."""
    if tenant.get("subscription_status") == "inactive":
        return False
    return not trial_expired(tenant, now)


def create_tenant(store: DocumentStore, payload: Mapping[str, Any]) -> Document:
    """Explicit super-admin creation: no login identity is provisioned."""
    base_slug = generate_slug(payload.get("name", ""))
    if not base_slug:
        raise ValueError("HOA name must contain at least one letter or digit.")
    status = payload.get("subscription_status") or "pending"
    if status not in SUBSCRIPTION_STATUSES:
        raise ValueError(f"Invalid subscription status: {status}")
    slug, index = find_free_slug(store, base_slug)

    def record_for(candidate: str) -> Dict[str, Any]:
        return build_tenant_record(
            name=payload["name"],
            slug=candidate,
            address=payload.get("address", ""),
            city=payload.get("city", ""),
            state=payload.get("state", ""),
            zip_code=payload.get("zip", ""),
            phone=payload.get("phone", ""),
            admin_email=payload.get("admin_email", ""),
            additional_emails=payload.get("additional_emails"),
            violation_types=payload.get("violation_types"),
            subscription_status=status,
        )

    tenant = write_tenant_claiming_slug(store, base_slug, slug, index, record_for)
    logger.info("Created HOA %s (status=%s)", tenant.key, status)
    return tenant


def update_tenant_settings(store: DocumentStore, slug: str, changes: Mapping[str, Any]) -> Document:
    tenant = get_tenant(store, slug)
    updates: Dict[str, Any] = {name: changes[name] for name in EDITABLE_FIELDS if changes.get(name) is not None}
    if "violation_types" in updates:
        updates["violation_types"] = _clean_violation_types(updates["violation_types"])
    if "additional_emails" in updates:
        updates["additional_emails"] = [str(email) for email in updates["additional_emails"]]
    if "admin_email" in updates:
        updates["admin_email"] = str(updates["admin_email"])
    branding = changes.get("branding")
    if branding:
        current = dict(tenant.get("branding") or {})
        current.update({key: value for key, value in branding.items() if value is not None})
        updates["branding"] = current
    if not updates:
        raise ValueError("No settings to update.")
    return store.update(HOAS_COLLECTION, slug, updates)


def set_subscription_status(
    store: DocumentStore,
    slug: str,
    status: str,
    subscription_id: Optional[str] = None,
) -> Document:
    if status not in SUBSCRIPTION_STATUSES:
        raise ValueError(f"Invalid subscription status: {status}")
    updates: Dict[str, Any] = {"subscription_status": status}
    if subscription_id is not None:
        updates["subscription_id"] = subscription_id
    tenant = store.update(HOAS_COLLECTION, slug, updates)
    logger.info("HOA %s subscription status set to %s", slug, status)
    return tenant


def delete_tenant(store: DocumentStore, slug: str) -> None:
    # Violations and users pointing at the slug are left in place.
    get_tenant(store, slug)
    store.delete(HOAS_COLLECTION, slug)
    logger.warning("Deleted HOA %s", slug)
