"""
Realtime sync channel.

Mirrors books, checkouts and users into an external PostgREST-style store that
front-ends subscribe to. The library database stays authoritative: a failed
push is reported by the dispatcher and the next change to the same row
overwrites the mirror anyway.
"""

import logging
from typing import Any

import httpx

from ..config import ServiceConfig
from ..models.book import Book
from ..models.checkout import Checkout
from ..models.user import User
from .dispatcher import OutboundTask

logger = logging.getLogger(__name__)

CHANNEL = "realtime_sync"


class SyncError(Exception):
    """Raised when the sync endpoint rejects a request or cannot be reached."""


class RealtimeSyncClient:
    """
    Upsert/patch client for the realtime store.

    - upsert: ``POST /rest/v1/{table}`` with merge-duplicates resolution
    - patch: ``PATCH /rest/v1/{table}?id=eq.{id}``
    """

    def __init__(
        self,
        base_url: str,
        service_key: str,
        timeout: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ):
        self._client = httpx.Client(
            base_url=f"{base_url.rstrip('/')}/rest/v1",
            headers={
                "Authorization": f"Bearer {service_key}",
                "apikey": service_key,
                "Content-Type": "application/json",
            },
            timeout=timeout,
            transport=transport,
        )

    @classmethod
    def from_config(cls, config: ServiceConfig) -> "RealtimeSyncClient":
        return cls(
            config.sync_base_url,
            config.sync_service_key,
            timeout=config.http_timeout_seconds,
        )

    def _send(self, method: str, path: str, body: dict[str, Any], prefer: str) -> None:
        try:
            response = self._client.request(method, path, json=body, headers={"Prefer": prefer})
        except httpx.HTTPError as e:
            raise SyncError(f"Sync request {method} {path} failed: {e}") from e

        if not response.is_success:
            logger.error("Realtime sync rejected %s %s: %s", method, path, response.status_code)
            raise SyncError(f"Sync request {method} {path} returned {response.status_code}")

    def upsert(self, table: str, row: dict[str, Any]) -> None:
        self._send("POST", f"/{table}", row, "resolution=merge-duplicates,return=minimal")

    def patch(self, table: str, row_id: str, changes: dict[str, Any]) -> None:
        self._send("PATCH", f"/{table}?id=eq.{row_id}", changes, "return=minimal")

    def handle(self, task: OutboundTask) -> None:
        """Dispatcher entry point for the realtime sync channel."""
        if task.action == "upsert_book":
            self.upsert("books", task.payload)
        elif task.action == "patch_book_counts":
            self.patch("books", task.entity_id, task.payload)
        elif task.action == "upsert_checkout":
            self.upsert("checkouts", task.payload)
        elif task.action == "patch_checkout":
            self.patch("checkouts", task.entity_id, task.payload)
        elif task.action == "upsert_user":
            self.upsert("users", task.payload)
        else:
            raise SyncError(f"Unknown sync action: {task.action}")

        logger.info("Synced %s %s (%s)", task.entity, task.entity_id, task.action)

    def close(self) -> None:
        self._client.close()


def _stored_status(checkout: Checkout) -> str:
    # The mirror stores the persisted status; OVERDUE is derived by readers
    return "RETURNED" if checkout.returned_at is not None else "ACTIVE"


def book_upsert_task(book: Book) -> OutboundTask:
    return OutboundTask(
        channel=CHANNEL,
        action="upsert_book",
        entity="book",
        entity_id=book.id,
        payload=book.model_dump(mode="json"),
    )


def book_counts_task(book: Book) -> OutboundTask:
    return OutboundTask(
        channel=CHANNEL,
        action="patch_book_counts",
        entity="book",
        entity_id=book.id,
        payload={
            "available_copies": book.available_copies,
            "total_copies": book.total_copies,
            "updated_at": book.updated_at.isoformat(),
        },
    )


def checkout_upsert_task(checkout: Checkout) -> OutboundTask:
    row = Checkout.model_validate(checkout.model_dump()).model_dump(mode="json")
    row["status"] = _stored_status(checkout)
    return OutboundTask(
        channel=CHANNEL,
        action="upsert_checkout",
        entity="checkout",
        entity_id=checkout.id,
        payload=row,
    )


def checkout_patch_task(checkout: Checkout) -> OutboundTask:
    return OutboundTask(
        channel=CHANNEL,
        action="patch_checkout",
        entity="checkout",
        entity_id=checkout.id,
        payload={
            "status": _stored_status(checkout),
            "due_date": checkout.due_date.isoformat(),
            "returned_at": checkout.returned_at.isoformat() if checkout.returned_at else None,
            "renewal_count": checkout.renewal_count,
            "updated_at": checkout.updated_at.isoformat(),
        },
    )


def user_upsert_task(user: User) -> OutboundTask:
    return OutboundTask(
        channel=CHANNEL,
        action="upsert_user",
        entity="user",
        entity_id=user.id,
        payload=user.model_dump(mode="json"),
    )
