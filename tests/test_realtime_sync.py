"""Tests for the realtime sync client and its task builders."""

import json
from datetime import datetime

import httpx
import pytest

from library_service.models.book import Book
from library_service.models.checkout import CheckoutBook, CheckoutStatus, CheckoutUser
from library_service.models.checkout import CheckoutWithDetails
from library_service.services.dispatcher import OutboundTask
from library_service.services.realtime_sync import (
    CHANNEL,
    RealtimeSyncClient,
    SyncError,
    book_counts_task,
    book_upsert_task,
    checkout_patch_task,
    checkout_upsert_task,
)

NOW = datetime(2024, 1, 1, 12, 0)


def _book() -> Book:
    return Book(
        id="book-1",
        isbn="9780134685479",
        title="Effective Java",
        author="Joshua Bloch",
        total_copies=3,
        available_copies=2,
        created_at=NOW,
        updated_at=NOW,
    )


def _checkout(**overrides) -> CheckoutWithDetails:
    values = {
        "id": "co-1",
        "user_id": "user-1",
        "book_id": "book-1",
        "status": CheckoutStatus.ACTIVE,
        "checked_out_at": NOW,
        "due_date": datetime(2024, 1, 15, 12, 0),
        "created_at": NOW,
        "updated_at": NOW,
        "user": CheckoutUser(id="user-1", name="Mary", email="mary@example.com"),
        "book": CheckoutBook(id="book-1", title="Effective Java", author="J", isbn="9780134685479"),
    }
    values.update(overrides)
    return CheckoutWithDetails(**values)


def _client(handler) -> RealtimeSyncClient:
    return RealtimeSyncClient(
        "https://sync.example.com/", "service-key", transport=httpx.MockTransport(handler)
    )


class TestRealtimeSyncClient:
    def test_upsert_request_shape(self):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(201)

        _client(handler).handle(book_upsert_task(_book()))

        (request,) = requests
        assert request.method == "POST"
        assert str(request.url) == "https://sync.example.com/rest/v1/books"
        assert request.headers["Authorization"] == "Bearer service-key"
        assert request.headers["apikey"] == "service-key"
        assert request.headers["Prefer"] == "resolution=merge-duplicates,return=minimal"
        assert json.loads(request.content)["isbn"] == "9780134685479"

    def test_patch_request_shape(self):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(204)

        _client(handler).handle(book_counts_task(_book()))

        (request,) = requests
        assert request.method == "PATCH"
        assert request.url.path == "/rest/v1/books"
        assert request.url.params["id"] == "eq.book-1"
        assert request.headers["Prefer"] == "return=minimal"
        assert json.loads(request.content) == {
            "available_copies": 2,
            "total_copies": 3,
            "updated_at": NOW.isoformat(),
        }

    def test_non_success_raises(self):
        client = _client(lambda request: httpx.Response(500))
        with pytest.raises(SyncError):
            client.handle(checkout_patch_task(_checkout()))

    def test_transport_error_raises(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(SyncError):
            _client(handler).handle(book_upsert_task(_book()))

    def test_unknown_action(self):
        client = _client(lambda request: httpx.Response(200))
        task = OutboundTask(channel=CHANNEL, action="drop_table", entity="book", entity_id="x")
        with pytest.raises(SyncError):
            client.handle(task)


class TestTaskBuilders:
    def test_checkout_upsert_sends_stored_status(self):
        task = checkout_upsert_task(_checkout(status=CheckoutStatus.OVERDUE))

        assert task.action == "upsert_checkout"
        assert task.payload["status"] == "ACTIVE"
        assert "user" not in task.payload
        assert task.payload["due_date"] == "2024-01-15T12:00:00"

    def test_checkout_patch_for_return(self):
        returned = _checkout(status=CheckoutStatus.RETURNED, returned_at=NOW)
        task = checkout_patch_task(returned)

        assert task.entity_id == "co-1"
        assert task.payload["status"] == "RETURNED"
        assert task.payload["returned_at"] == NOW.isoformat()
