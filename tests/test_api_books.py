"""Tests for the /api/books endpoints."""

import pytest
from conftest import add_book, add_checkout
from fastapi.testclient import TestClient

from library_service.api import create_app

MEMBER = {"Authorization": "Bearer member-token"}
ADMIN = {"Authorization": "Bearer admin-token"}


@pytest.fixture
def client(container, verifier, member_id, admin_id) -> TestClient:
    verifier.add("member-token", member_id, "member@example.com", "Mary Member")
    verifier.add("admin-token", admin_id, "admin@example.com", "Ada Admin")
    return TestClient(create_app(container))


NEW_BOOK = {
    "isbn": "978-0-13-235088-4",
    "title": "Clean Code",
    "author": "Robert C. Martin",
    "genre": "Programming",
    "total_copies": 2,
}


class TestAuthentication:
    def test_health_is_public(self, client):
        assert client.get("/health").json() == {"status": "ok"}

    def test_missing_token(self, client):
        response = client.get("/api/books")
        assert response.status_code == 401
        assert response.headers["WWW-Authenticate"] == "Bearer"
        assert response.json() == {"detail": "Authentication required"}

    def test_unknown_token(self, client):
        response = client.get("/api/books", headers={"Authorization": "Bearer forged"})
        assert response.status_code == 401


class TestListBooks:
    def test_pagination_envelope(self, client, db):
        for i in range(3):
            add_book(db, title=f"Book {i}")

        response = client.get("/api/books", params={"limit": 2}, headers=MEMBER)

        assert response.status_code == 200
        body = response.json()
        assert body["total"] == 3
        assert body["limit"] == 2
        assert body["offset"] == 0
        assert body["hasMore"] is True
        assert [b["title"] for b in body["items"]] == ["Book 0", "Book 1"]

    def test_filters(self, client, db):
        add_book(db, title="Dune", author="Frank Herbert", genre="Science Fiction")
        add_book(db, title="Emma", author="Jane Austen", genre="Romance")

        by_author = client.get("/api/books", params={"author": "austen"}, headers=MEMBER).json()
        by_query = client.get("/api/books", params={"query": "dune"}, headers=MEMBER).json()

        assert [b["title"] for b in by_author["items"]] == ["Emma"]
        assert [b["title"] for b in by_query["items"]] == ["Dune"]
        assert by_query["hasMore"] is False

    def test_filter_values_are_not_sql(self, client, db):
        add_book(db, title="Dune")
        response = client.get("/api/books", params={"genre": "x' OR '1'='1"}, headers=MEMBER)
        assert response.json()["total"] == 0

    def test_limit_above_maximum_rejected(self, client):
        response = client.get("/api/books", params={"limit": 101}, headers=MEMBER)
        assert response.status_code == 422


class TestGetBook:
    def test_by_id_and_isbn(self, client, book_id):
        by_id = client.get(f"/api/books/{book_id}", headers=MEMBER)
        by_isbn = client.get("/api/books/isbn/978-0134685479", headers=MEMBER)

        assert by_id.status_code == 200
        assert by_id.json()["available_copies"] == 3
        assert by_isbn.json()["id"] == book_id

    def test_not_found(self, client):
        response = client.get("/api/books/missing", headers=MEMBER)
        assert response.status_code == 404
        assert response.json() == {"detail": "Not found"}


class TestAdminBookWrites:
    def test_create_requires_staff(self, client):
        assert client.post("/api/books", json=NEW_BOOK, headers=MEMBER).status_code == 403

    def test_create(self, client, dispatcher):
        response = client.post("/api/books", json=NEW_BOOK, headers=ADMIN)

        assert response.status_code == 201
        body = response.json()
        assert body["isbn"] == "9780132350884"
        assert body["available_copies"] == 2
        assert dispatcher.actions() == ["upsert_book"]

    def test_duplicate_isbn(self, client):
        client.post("/api/books", json=NEW_BOOK, headers=ADMIN)
        response = client.post("/api/books", json=NEW_BOOK, headers=ADMIN)
        assert response.status_code == 409
        assert response.json() == {"detail": "Conflict"}

    def test_invalid_copy_counts(self, client):
        response = client.post(
            "/api/books", json={**NEW_BOOK, "available_copies": 5}, headers=ADMIN
        )
        assert response.status_code == 422

    def test_update_stock_keeps_loans(self, client, db, book_id, member_id, clock):
        add_checkout(db, member_id, book_id, clock())

        response = client.put(f"/api/books/{book_id}", json={"total_copies": 5}, headers=ADMIN)

        assert response.status_code == 200
        assert response.json()["total_copies"] == 5
        assert response.json()["available_copies"] == 4

    def test_update_stock_below_loans(self, client, db, book_id, member_id, clock):
        add_checkout(db, member_id, book_id, clock())
        add_checkout(db, member_id, book_id, clock())

        response = client.put(f"/api/books/{book_id}", json={"total_copies": 1}, headers=ADMIN)

        assert response.status_code == 409

    def test_delete(self, client, book_id):
        assert client.delete(f"/api/books/{book_id}", headers=ADMIN).status_code == 204
        assert client.get(f"/api/books/{book_id}", headers=ADMIN).status_code == 404

    def test_delete_with_history_conflicts(self, client, db, book_id, member_id, clock):
        add_checkout(db, member_id, book_id, clock())
        assert client.delete(f"/api/books/{book_id}", headers=ADMIN).status_code == 409
