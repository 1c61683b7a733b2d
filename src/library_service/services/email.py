"""Overdue e-mail channel."""

import html
import logging
from typing import Protocol

import httpx
from pydantic import BaseModel

from ..config import ServiceConfig
from ..models.checkout import CheckoutWithDetails

logger = logging.getLogger(__name__)


class EmailDeliveryError(Exception):
    """Raised when the provider does not accept a message."""


class OverdueNotice(BaseModel):
    """Everything needed to tell a borrower about one overdue loan."""

    checkout_id: str
    user_name: str
    user_email: str
    book_title: str
    book_author: str
    due_date: str  # YYYY-MM-DD

    @classmethod
    def from_checkout(cls, checkout: CheckoutWithDetails) -> "OverdueNotice":
        return cls(
            checkout_id=checkout.id,
            user_name=checkout.user.name,
            user_email=checkout.user.email,
            book_title=checkout.book.title,
            book_author=checkout.book.author,
            due_date=checkout.due_date.strftime("%Y-%m-%d"),
        )

    @property
    def subject(self) -> str:
        return f"Overdue Book: {self.book_title}"

    def render_html(self) -> str:
        return (
            "<h2>Overdue Book Notification</h2>"
            f"<p>Dear {html.escape(self.user_name)},</p>"
            "<p>You have an overdue book:</p>"
            "<ul>"
            f"<li><strong>Title:</strong> {html.escape(self.book_title)}</li>"
            f"<li><strong>Author:</strong> {html.escape(self.book_author)}</li>"
            f"<li><strong>Due Date:</strong> {self.due_date}</li>"
            "</ul>"
            "<p>Please return this book as soon as possible to avoid any late fees.</p>"
            "<p>Thank you,<br>Library Management System</p>"
        )


class EmailSender(Protocol):
    def send_overdue_notice(self, notice: OverdueNotice) -> None:
        """Deliver the notice or raise ``EmailDeliveryError``."""
        ...


class ResendEmailSender:
    """Sends overdue notices through a Resend-compatible HTTP API."""

    def __init__(
        self,
        api_url: str,
        api_key: str,
        sender: str,
        timeout: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ):
        self.api_url = api_url
        self.sender = sender
        self._client = httpx.Client(
            headers={"Authorization": f"Bearer {api_key}", "Content-Type": "application/json"},
            timeout=timeout,
            transport=transport,
        )

    @classmethod
    def from_config(cls, config: ServiceConfig) -> "ResendEmailSender":
        if not config.email_api_key:
            raise ValueError("email_api_key is required to send overdue notices")
        return cls(
            config.email_api_url,
            config.email_api_key,
            config.email_from,
            timeout=config.http_timeout_seconds,
        )

    def send_overdue_notice(self, notice: OverdueNotice) -> None:
        body = {
            "from": self.sender,
            "to": [notice.user_email],
            "subject": notice.subject,
            "html": notice.render_html(),
        }
        try:
            response = self._client.post(self.api_url, json=body)
        except httpx.HTTPError as e:
            raise EmailDeliveryError(f"Network error: {e}") from e

        if not response.is_success:
            raise EmailDeliveryError(f"HTTP {response.status_code}")

        logger.info("Sent overdue notification for checkout %s", notice.checkout_id)

    def close(self) -> None:
        self._client.close()
