import pytest

from hoa_tracker.services.documents import DocumentNotFound
from hoa_tracker.services.identity import EmailAlreadyInUse
from hoa_tracker.services.tenants import create_tenant
from hoa_tracker.services.users import (
    SessionContext,
    build_admin_record,
    create_user,
    delete_user,
    list_users,
    load_session_context,
    update_user,
    write_admin_user,
)


def test_build_admin_record_only_tenant_admins_carry_hoa_id():
    admin = build_admin_record(email="a@example.com", first_name="A", last_name="B", hoa_id="acme")
    assert admin["role"] == "hoa_admin"
    assert admin["hoa_id"] == "acme"

    root = build_admin_record(email="r@example.com", first_name="R", last_name="S", role="super_admin", hoa_id="acme")
    assert "hoa_id" not in root

    with pytest.raises(ValueError):
        build_admin_record(email="x@example.com", first_name="X", last_name="Y", role="owner")


def test_session_context_permissions():
    admin = SessionContext(principal_id="p1", email="a@example.com", role="hoa_admin", hoa_id="acme")
    root = SessionContext(principal_id="p2", email="r@example.com", role="super_admin", hoa_id=None)

    assert admin.can_manage("acme")
    assert not admin.can_manage("other")
    assert root.is_super_admin
    assert root.can_manage("other")


def test_load_session_context(store):
    assert load_session_context(store, "p1") is None

    write_admin_user(store, "p1", build_admin_record(email="a@example.com", first_name="Ann", last_name="Lee", hoa_id="acme"))
    context = load_session_context(store, "p1")

    assert context.role == "hoa_admin"
    assert context.hoa_id == "acme"
    assert context.first_name == "Ann"


def test_create_user_requires_existing_tenant(store, auth):
    with pytest.raises(ValueError):
        create_user(store, auth, email="a@example.com", password="secret123", role="hoa_admin", hoa_id="ghost")
    with pytest.raises(ValueError):
        create_user(store, auth, email="a@example.com", password="secret123", role="hoa_admin")

    create_tenant(store, {"name": "Acme"})
    user = create_user(store, auth, email="a@example.com", password="secret123", role="hoa_admin", hoa_id="acme")
    assert user.get("hoa_id") == "acme"
    assert auth.sign_in("a@example.com", "secret123").principal_id == user.key

    with pytest.raises(EmailAlreadyInUse):
        create_user(store, auth, email="a@example.com", password="secret123", role="super_admin")


def test_list_users_filters_by_tenant(store):
    write_admin_user(store, "p1", build_admin_record(email="b@example.com", first_name="", last_name="", hoa_id="acme"))
    write_admin_user(store, "p2", build_admin_record(email="a@example.com", first_name="", last_name="", hoa_id="other"))
    write_admin_user(store, "p3", build_admin_record(email="c@example.com", first_name="", last_name="", role="super_admin"))

    assert [user.key for user in list_users(store)] == ["p2", "p1", "p3"]
    assert [user.key for user in list_users(store, "acme")] == ["p1"]


def test_update_user_promotion_clears_tenant(store):
    create_tenant(store, {"name": "Acme"})
    write_admin_user(store, "p1", build_admin_record(email="a@example.com", first_name="", last_name="", hoa_id="acme"))

    renamed = update_user(store, "p1", {"first_name": "Ann"})
    assert renamed.get("first_name") == "Ann"

    promoted = update_user(store, "p1", {"role": "super_admin"})
    assert promoted.get("role") == "super_admin"
    assert promoted.get("hoa_id") is None

    with pytest.raises(ValueError):
        update_user(store, "p1", {"role": "hoa_admin", "hoa_id": "ghost"})


def test_delete_user_keeps_login(store, auth):
    create_tenant(store, {"name": "Acme"})
    user = create_user(store, auth, email="a@example.com", password="secret123", role="hoa_admin", hoa_id="acme")

    delete_user(store, user.key)

    assert load_session_context(store, user.key) is None
    assert auth.get_principal(user.key) is not None
    with pytest.raises(DocumentNotFound):
        delete_user(store, user.key)
