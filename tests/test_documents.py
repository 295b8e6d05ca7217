from datetime import timedelta

import pytest

from hoa_tracker.services import documents as documents_module
from hoa_tracker.services.documents import DocumentAlreadyExists, DocumentNotFound


def test_put_find_and_get(store):
    created = store.put("hoas", "acme", {"name": "Acme"})
    assert created.key == "acme"
    assert created.created_at == created.updated_at

    assert store.exists("hoas", "acme")
    assert store.find("hoas", "missing") is None
    assert store.get("hoas", "acme").get("name") == "Acme"
    with pytest.raises(DocumentNotFound):
        store.get("hoas", "missing")


def test_create_is_conditional(store):
    store.create("hoas", "acme", {"name": "First"})
    with pytest.raises(DocumentAlreadyExists):
        store.create("hoas", "acme", {"name": "Second"})
    assert store.get("hoas", "acme").get("name") == "First"

    # The store stays usable after a rejected create.
    store.create("hoas", "acme-1", {"name": "Second"})
    assert store.exists("hoas", "acme-1")


def test_put_replaces_body(store):
    store.put("users", "u1", {"email": "a@example.com", "role": "hoa_admin"})
    store.put("users", "u1", {"email": "b@example.com"})
    assert store.get("users", "u1").data == {"email": "b@example.com"}


def test_update_merges_and_bumps_updated_at(store, monkeypatch):
    ticks = iter(range(1, 100))
    base = documents_module.utcnow()

    def fake_now():
        return base + timedelta(seconds=next(ticks))

    monkeypatch.setattr(documents_module, "utcnow", fake_now)
    created = store.put("hoas", "acme", {"name": "Acme", "city": "Mesa"})
    updated = store.update("hoas", "acme", {"city": "Tempe"})

    assert updated.data == {"name": "Acme", "city": "Tempe"}
    assert updated.created_at == created.created_at
    assert updated.updated_at > created.updated_at


def test_update_missing_document_raises(store):
    with pytest.raises(DocumentNotFound):
        store.update("hoas", "ghost", {"name": "Ghost"})


def test_delete_is_idempotent(store):
    store.put("hoas", "acme", {"name": "Acme"})
    store.delete("hoas", "acme")
    store.delete("hoas", "acme")
    assert not store.exists("hoas", "acme")


def test_add_generates_keys_and_query_filters(store):
    first = store.add("violations", {"hoa_id": "acme", "status": "pending"})
    second = store.add("violations", {"hoa_id": "acme", "status": "resolved"})
    store.add("violations", {"hoa_id": "other", "status": "pending"})

    assert first.key != second.key
    assert len(store.query("violations")) == 3
    assert {doc.key for doc in store.query("violations", {"hoa_id": "acme"})} == {first.key, second.key}
    assert [doc.key for doc in store.query("violations", {"hoa_id": "acme", "status": "resolved"})] == [second.key]


def test_to_dict_exposes_id_and_timestamps(store):
    document = store.put("hoas", "acme", {"name": "Acme"})
    payload = document.to_dict()
    assert payload["id"] == "acme"
    assert payload["name"] == "Acme"
    assert payload["created_at"] == document.created_at


def test_subscription_receives_snapshots(store):
    store.add("violations", {"hoa_id": "acme"})
    subscription = store.subscribe("violations", {"hoa_id": "acme"})
    assert len(subscription.snapshot) == 1
    assert subscription.next_snapshot(timeout=0) is None

    store.add("violations", {"hoa_id": "acme"})
    snapshot = subscription.next_snapshot(timeout=0)
    assert snapshot is not None and len(snapshot) == 2

    store.add("violations", {"hoa_id": "other"})
    assert len(subscription.next_snapshot(timeout=0)) == 2

    subscription.unsubscribe()
    store.add("violations", {"hoa_id": "acme"})
    assert subscription.next_snapshot(timeout=0) is None
    assert not subscription.active
