"""Tests for the /api/users endpoints."""

import pytest
from conftest import add_book, add_checkout, add_user
from fastapi.testclient import TestClient

from library_service.api import create_app
from library_service.database.schema import UserRoleEnum

MEMBER = {"Authorization": "Bearer member-token"}
ADMIN = {"Authorization": "Bearer admin-token"}


@pytest.fixture
def client(container, verifier, member_id, admin_id) -> TestClient:
    verifier.add("member-token", member_id, "member@example.com", "Mary Member")
    verifier.add("admin-token", admin_id, "admin@example.com", "Ada Admin")
    return TestClient(create_app(container))


class TestMe:
    def test_returns_caller(self, client, member_id):
        body = client.get("/api/users/me", headers=MEMBER).json()
        assert body["id"] == member_id
        assert body["role"] == "USER"

    def test_first_sign_in_provisions_account(self, client, verifier):
        verifier.add("new-token", "ext-42", "newcomer@example.com", "New Comer")

        response = client.get("/api/users/me", headers={"Authorization": "Bearer new-token"})

        assert response.status_code == 200
        assert response.json()["id"] == "ext-42"
        assert response.json()["max_checkouts"] == 5

    def test_disabled_account_is_unauthorised(self, client, db, verifier):
        user_id = add_user(db, email="gone@example.com", is_active=False)
        verifier.add("gone-token", user_id, "gone@example.com")

        response = client.get("/api/users/me", headers={"Authorization": "Bearer gone-token"})
        assert response.status_code == 401


class TestListUsers:
    def test_staff_only(self, client):
        assert client.get("/api/users", headers=MEMBER).status_code == 403

    def test_filters(self, client, db):
        add_user(db, name="Dev Person", role=UserRoleEnum.DEVELOPER)

        body = client.get("/api/users", params={"role": "DEVELOPER"}, headers=ADMIN).json()

        assert [u["name"] for u in body["items"]] == ["Dev Person"]
        assert body["hasMore"] is False


class TestGetUser:
    def test_self(self, client, member_id):
        assert client.get(f"/api/users/{member_id}", headers=MEMBER).status_code == 200

    def test_other_user_forbidden_for_member(self, client, admin_id):
        response = client.get(f"/api/users/{admin_id}", headers=MEMBER)
        assert response.status_code == 403
        assert response.json() == {"detail": "Forbidden"}

    def test_staff_sees_anyone(self, client, member_id):
        assert client.get(f"/api/users/{member_id}", headers=ADMIN).status_code == 200

    def test_by_email(self, client, member_id):
        own = client.get("/api/users/email/member@example.com", headers=MEMBER)
        other = client.get("/api/users/email/admin@example.com", headers=MEMBER)
        missing = client.get("/api/users/email/nobody@example.com", headers=ADMIN)

        assert own.json()["id"] == member_id
        assert other.status_code == 403
        assert missing.status_code == 404


class TestWriteUsers:
    def test_create(self, client, dispatcher):
        response = client.post(
            "/api/users",
            json={"email": "Fresh@Example.com", "name": "Fresh", "max_checkouts": 3},
            headers=ADMIN,
        )

        assert response.status_code == 201
        assert response.json()["email"] == "fresh@example.com"
        assert response.json()["max_checkouts"] == 3
        assert dispatcher.actions() == ["upsert_user"]

    def test_create_duplicate_email(self, client):
        payload = {"email": "member@example.com", "name": "Again"}
        assert client.post("/api/users", json=payload, headers=ADMIN).status_code == 409

    def test_create_requires_staff(self, client):
        payload = {"email": "x@example.com", "name": "X"}
        assert client.post("/api/users", json=payload, headers=MEMBER).status_code == 403

    def test_member_can_rename_self(self, client, member_id):
        response = client.put(f"/api/users/{member_id}", json={"name": "Mary M."}, headers=MEMBER)
        assert response.status_code == 200
        assert response.json()["name"] == "Mary M."

    def test_member_cannot_raise_own_limit(self, client, member_id):
        response = client.put(
            f"/api/users/{member_id}", json={"max_checkouts": 50}, headers=MEMBER
        )
        assert response.status_code == 403

    def test_admin_changes_role(self, client, member_id):
        response = client.put(f"/api/users/{member_id}", json={"role": "ADMIN"}, headers=ADMIN)
        assert response.json()["role"] == "ADMIN"

    def test_delete(self, client, db):
        user_id = add_user(db)
        assert client.delete(f"/api/users/{user_id}", headers=ADMIN).status_code == 204
        assert client.get(f"/api/users/{user_id}", headers=ADMIN).status_code == 404

    def test_delete_with_checkouts_conflicts(self, client, db, member_id, clock):
        add_checkout(db, member_id, add_book(db), clock())
        assert client.delete(f"/api/users/{member_id}", headers=ADMIN).status_code == 409
