"""Tests for the Resend-compatible e-mail sender."""

import json

import httpx
import pytest

from library_service.config import ServiceConfig
from library_service.services.email import EmailDeliveryError, OverdueNotice, ResendEmailSender


@pytest.fixture
def notice() -> OverdueNotice:
    return OverdueNotice(
        checkout_id="co-1",
        user_name="Mary Member",
        user_email="mary@example.com",
        book_title="Effective Java",
        book_author="Joshua Bloch",
        due_date="2024-01-15",
    )


def _sender(handler) -> ResendEmailSender:
    return ResendEmailSender(
        "https://mail.example.com/emails",
        "re_test",
        "Library <noreply@library.test>",
        transport=httpx.MockTransport(handler),
    )


class TestResendEmailSender:
    def test_posts_provider_payload(self, notice):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json={"id": "msg-1"})

        _sender(handler).send_overdue_notice(notice)

        (request,) = requests
        body = json.loads(request.content)
        assert request.headers["Authorization"] == "Bearer re_test"
        assert body["from"] == "Library <noreply@library.test>"
        assert body["to"] == ["mary@example.com"]
        assert body["subject"] == "Overdue Book: Effective Java"
        assert "Due Date:</strong> 2024-01-15" in body["html"]

    def test_http_error_status(self, notice):
        sender = _sender(lambda request: httpx.Response(422))
        with pytest.raises(EmailDeliveryError, match="HTTP 422"):
            sender.send_overdue_notice(notice)

    def test_network_error(self, notice):
        def handler(request):
            raise httpx.ConnectTimeout("timed out", request=request)

        with pytest.raises(EmailDeliveryError, match="Network error"):
            _sender(handler).send_overdue_notice(notice)

    def test_from_config_requires_api_key(self):
        with pytest.raises(ValueError):
            ResendEmailSender.from_config(ServiceConfig(_env_file=None))
