"""
Side-effect dispatcher for the Library Service.

State changes are propagated to external systems only after the database
transaction that produced them has committed. Each propagation is described by
an ``OutboundTask`` and handed to a dispatcher; the dispatcher runs it without
blocking the caller, and a failing task is logged and counted, never raised
back into the request that triggered it.
"""

import logging
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Protocol

import logfire
from pydantic import BaseModel, ConfigDict, Field

from ..observability.metrics import record_side_effect_failure

logger = logging.getLogger(__name__)

TaskHandler = Callable[["OutboundTask"], None]


class OutboundTask(BaseModel):
    """One side effect to perform after commit."""

    channel: str = Field(..., description="Destination channel", examples=["realtime_sync"])
    action: str = Field(..., description="What to do on the channel", examples=["upsert_checkout"])
    entity: str = Field(..., description="Entity kind", examples=["checkout"])
    entity_id: str
    payload: dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(frozen=True)


class SideEffectDispatcher(Protocol):
    def dispatch(self, task: OutboundTask) -> None: ...

    def shutdown(self, wait: bool = True) -> None: ...


class NullDispatcher:
    """Drops every task. Used when no outbound channel is configured."""

    def dispatch(self, task: OutboundTask) -> None:
        logger.debug("No outbound channel configured; dropping %s/%s", task.channel, task.action)

    def shutdown(self, wait: bool = True) -> None:
        return None


class BackgroundDispatcher:
    """
    Runs tasks on a thread pool.

    ``handlers`` maps a channel name to the callable that performs its tasks.
    Tasks for channels without a handler are logged and dropped.
    """

    def __init__(self, handlers: dict[str, TaskHandler], max_workers: int = 4):
        self.handlers = dict(handlers)
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="side-effects"
        )

    def dispatch(self, task: OutboundTask) -> Future | None:
        handler = self.handlers.get(task.channel)
        if handler is None:
            logger.warning("No handler for channel %s; dropping %s", task.channel, task.action)
            return None
        return self._executor.submit(self._run, handler, task)

    def _run(self, handler: TaskHandler, task: OutboundTask) -> bool:
        with logfire.span(
            "side_effect.{channel}.{action}",
            channel=task.channel,
            action=task.action,
            entity=task.entity,
            entity_id=task.entity_id,
        ) as span:
            try:
                handler(task)
            except Exception:
                # The committed transaction stands; the failure is only reported
                logger.exception(
                    "Side effect %s/%s failed for %s %s",
                    task.channel,
                    task.action,
                    task.entity,
                    task.entity_id,
                )
                span.set_attribute("side_effect.success", False)
                record_side_effect_failure(task.channel, task.action)
                return False

            span.set_attribute("side_effect.success", True)
            logger.debug("Side effect %s/%s done for %s", task.channel, task.action, task.entity_id)
            return True

    def shutdown(self, wait: bool = True) -> None:
        """Stop accepting tasks; with ``wait`` block until queued ones finish."""
        self._executor.shutdown(wait=wait)
