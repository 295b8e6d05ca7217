import pytest

from hoa_tracker.services.tenants import build_tenant_record, write_tenant


@pytest.fixture
def root(create_admin):
    return create_admin(email="root@example.com", role="super_admin")


@pytest.fixture
def tenant(store):
    record = build_tenant_record(
        name="Birch Hollow",
        slug="birch-hollow",
        address="3 Birch Rd",
        city="Salem",
        state="OR",
        zip_code="97301",
        phone="555-0103",
        admin_email="board@birch.example.org",
    )
    return write_tenant(store, "birch-hollow", record)


def test_super_admin_creates_hoa_admin(client, root, tenant, auth):
    response = client.post(
        "/users",
        json={"email": "new@birch.example.org", "password": "changeme", "hoa_id": "birch-hollow", "first_name": "Nia"},
        headers=root["headers"],
    )

    assert response.status_code == 201
    body = response.json()
    assert body["role"] == "hoa_admin"
    assert body["hoa_id"] == "birch-hollow"
    assert auth.sign_in("new@birch.example.org", "changeme").principal_id == body["id"]


def test_hoa_admin_requires_existing_hoa(client, root):
    response = client.post(
        "/users",
        json={"email": "new@birch.example.org", "password": "changeme", "hoa_id": "missing"},
        headers=root["headers"],
    )
    assert response.status_code == 400


def test_duplicate_login_is_a_conflict(client, root, tenant):
    payload = {"email": "dup@birch.example.org", "password": "changeme", "hoa_id": "birch-hollow"}
    assert client.post("/users", json=payload, headers=root["headers"]).status_code == 201
    assert client.post("/users", json=payload, headers=root["headers"]).status_code == 409


def test_only_super_admins_manage_users(client, tenant, create_admin):
    tenant_admin = create_admin(email="board-admin@example.com", hoa_id="birch-hollow")
    assert client.get("/users", headers=tenant_admin["headers"]).status_code == 403


def test_list_filter_update_and_delete(client, root, tenant, create_admin, store):
    member = create_admin(email="member@example.com", hoa_id="birch-hollow")

    listing = client.get("/users", params={"hoa_id": "birch-hollow"}, headers=root["headers"])
    assert [user["email"] for user in listing.json()] == ["member@example.com"]

    promoted = client.patch(
        f"/users/{member['principal_id']}", json={"role": "super_admin"}, headers=root["headers"]
    )
    assert promoted.status_code == 200
    assert promoted.json()["role"] == "super_admin"
    assert promoted.json()["hoa_id"] is None

    assert client.delete(f"/users/{member['principal_id']}", headers=root["headers"]).status_code == 204
    assert store.find("users", member["principal_id"]) is None
    assert client.delete(f"/users/{member['principal_id']}", headers=root["headers"]).status_code == 404


def test_cannot_delete_self(client, root):
    response = client.delete(f"/users/{root['principal_id']}", headers=root["headers"])
    assert response.status_code == 400
