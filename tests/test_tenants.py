from datetime import datetime, timedelta

import pytest

from hoa_tracker.constants import DEFAULT_VIOLATION_TYPES
from hoa_tracker.services.documents import Document, DocumentAlreadyExists, DocumentNotFound
from hoa_tracker.services.tenants import (
    accepts_reports,
    build_tenant_record,
    create_tenant,
    delete_tenant,
    list_tenants,
    set_subscription_status,
    trial_expired,
    update_tenant_settings,
    write_tenant,
)


def _record(**overrides):
    values = dict(
        name="Acme Villas",
        slug="acme-villas",
        address="1 Main",
        city="Mesa",
        state="AZ",
        zip_code="85201",
        phone="555-0101",
        admin_email="boss@example.com",
    )
    values.update(overrides)
    return build_tenant_record(**values)


def test_build_tenant_record_defaults():
    now = datetime(2026, 1, 1, 12, 0, 0)
    record = _record(now=now)

    assert record["zip"] == "85201"
    assert record["violation_types"] == DEFAULT_VIOLATION_TYPES
    assert record["violation_types"] is not DEFAULT_VIOLATION_TYPES
    assert record["additional_emails"] == []
    assert record["subscription_status"] == "trial"
    assert record["trial_ends_at"] == (now + timedelta(days=14)).isoformat()


def test_write_tenant_refuses_to_overwrite(store):
    write_tenant(store, "acme-villas", _record())
    with pytest.raises(DocumentAlreadyExists):
        write_tenant(store, "acme-villas", _record(name="Other"))
    assert store.get("hoas", "acme-villas").get("name") == "Acme Villas"


def test_create_tenant_defaults_to_pending(store):
    tenant = create_tenant(store, {"name": "Acme Villas", "admin_email": "boss@example.com"})
    assert tenant.key == "acme-villas"
    assert tenant.get("subscription_status") == "pending"
    assert tenant.get("admin_uid") is None

    second = create_tenant(store, {"name": "Acme Villas", "subscription_status": "active"})
    assert second.key == "acme-villas-1"
    assert second.get("subscription_status") == "active"


def test_create_tenant_rejects_unusable_names(store):
    with pytest.raises(ValueError):
        create_tenant(store, {"name": "???"})


def test_list_tenants_sorted_and_filtered(store):
    create_tenant(store, {"name": "Zeta Park", "subscription_status": "active"})
    create_tenant(store, {"name": "alpha grove"})

    assert [tenant.get("name") for tenant in list_tenants(store)] == ["alpha grove", "Zeta Park"]
    assert [tenant.key for tenant in list_tenants(store, "active")] == ["zeta-park"]


def test_update_settings_merges_branding(store):
    write_tenant(store, "acme-villas", _record(primary_color="#000000", logo_url="https://cdn/logo.png"))

    tenant = update_tenant_settings(
        store,
        "acme-villas",
        {"phone": "555-9999", "branding": {"primary_color": "#FFFFFF", "logo_url": None}},
    )

    assert tenant.get("phone") == "555-9999"
    assert tenant.get("branding") == {"primary_color": "#FFFFFF", "logo_url": "https://cdn/logo.png"}
    assert tenant.get("slug") == "acme-villas"


def test_update_settings_validates_violation_types(store):
    write_tenant(store, "acme-villas", _record())
    with pytest.raises(ValueError):
        update_tenant_settings(store, "acme-villas", {"violation_types": ["  "]})
    with pytest.raises(ValueError):
        update_tenant_settings(store, "acme-villas", {})

    tenant = update_tenant_settings(store, "acme-villas", {"violation_types": ["Parking", ""]})
    assert tenant.get("violation_types") == ["Parking"]


def test_subscription_status_changes(store):
    write_tenant(store, "acme-villas", _record())

    tenant = set_subscription_status(store, "acme-villas", "active", subscription_id="sub_123")
    assert tenant.get("subscription_status") == "active"
    assert tenant.get("subscription_id") == "sub_123"

    with pytest.raises(ValueError):
        set_subscription_status(store, "acme-villas", "cancelled")


def test_trial_expiry():
    now = datetime(2026, 1, 1)
    record = _record(now=now)
    tenant = Document(collection="hoas", key="acme-villas", data=record, created_at=now, updated_at=now)

    assert not trial_expired(tenant, now + timedelta(days=13))
    assert trial_expired(tenant, now + timedelta(days=14))



@pytest.mark.parametrize(
    ("status", "days_later", "expected"),
    [
        ("trial", 13, True),
        ("trial", 14, False),
        ("active", 400, True),
        ("pending", 400, True),
        ("inactive", 0, False),
    ],
)
def test_accepts_reports_follows_subscription(status, days_later, expected):
    now = datetime(2026, 1, 1)
    record = _record(now=now, subscription_status=status)
    tenant = Document(collection="hoas", key="acme-villas", data=record, created_at=now, updated_at=now)

    assert accepts_reports(tenant, now + timedelta(days=days_later)) is expected


def test_delete_tenant_keeps_dependents(store):
    write_tenant(store, "acme-villas", _record())
    store.add("violations", {"hoa_id": "acme-villas"})

    delete_tenant(store, "acme-villas")

    assert not store.exists("hoas", "acme-villas")
    assert len(store.query("violations", {"hoa_id": "acme-villas"})) == 1
    with pytest.raises(DocumentNotFound):
        delete_tenant(store, "acme-villas")
