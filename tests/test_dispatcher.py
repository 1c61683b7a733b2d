"""Tests for the post-commit side-effect dispatchers."""

import logging
import threading

import pytest
from pydantic import ValidationError

from library_service.services.dispatcher import BackgroundDispatcher, NullDispatcher, OutboundTask


def _task(action: str = "upsert_book", channel: str = "realtime_sync") -> OutboundTask:
    return OutboundTask(
        channel=channel,
        action=action,
        entity="book",
        entity_id="book-1",
        payload={"id": "book-1"},
    )


class TestBackgroundDispatcher:
    def test_runs_handler_for_channel(self):
        seen = []
        done = threading.Event()

        def handler(task):
            seen.append(task.action)
            done.set()

        dispatcher = BackgroundDispatcher({"realtime_sync": handler}, max_workers=1)
        future = dispatcher.dispatch(_task())

        assert future.result(timeout=5) is True
        assert done.is_set()
        assert seen == ["upsert_book"]
        dispatcher.shutdown()

    def test_failure_is_logged_not_raised(self, caplog):
        def handler(task):
            raise RuntimeError("sync endpoint down")

        dispatcher = BackgroundDispatcher({"realtime_sync": handler}, max_workers=1)

        with caplog.at_level(logging.ERROR):
            future = dispatcher.dispatch(_task("patch_checkout"))
            assert future.result(timeout=5) is False
        dispatcher.shutdown()

        assert "Side effect realtime_sync/patch_checkout failed" in caplog.text

    def test_unknown_channel_is_dropped(self, caplog):
        dispatcher = BackgroundDispatcher({}, max_workers=1)

        with caplog.at_level(logging.WARNING):
            assert dispatcher.dispatch(_task(channel="pager")) is None
        dispatcher.shutdown()

        assert "No handler for channel pager" in caplog.text

    def test_shutdown_waits_for_queued_tasks(self):
        seen = []
        dispatcher = BackgroundDispatcher({"realtime_sync": lambda t: seen.append(t)}, 2)
        for _ in range(5):
            dispatcher.dispatch(_task())

        dispatcher.shutdown(wait=True)

        assert len(seen) == 5


class TestNullDispatcher:
    def test_drops_tasks(self):
        dispatcher = NullDispatcher()
        assert dispatcher.dispatch(_task()) is None
        dispatcher.shutdown()


class TestOutboundTask:
    def test_is_immutable(self):
        task = _task()
        with pytest.raises(ValidationError):
            task.action = "other"
        assert task.action == "upsert_book"
