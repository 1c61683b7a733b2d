"""Decorators for tracing Library Service operations."""

import functools
from collections.abc import Callable
from datetime import datetime

import logfire


def trace_operation(operation: str):
    """Wrap a synchronous operation in a Logfire span.

    Keyword arguments with scalar values are attached as ``input.*`` attributes.
    """

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            with logfire.span(
                f"library.{operation}",
                operation=operation,
                category=_categorize(operation),
            ) as span:
                start_time = datetime.now()
                _add_attributes(span, "input", kwargs)

                try:
                    result = func(*args, **kwargs)
                except Exception as e:
                    span.set_attribute("operation.success", False)
                    span.set_attribute("operation.error", type(e).__name__)
                    raise

                span.set_attribute("operation.success", True)
                span.set_attribute(
                    "operation.duration_ms", (datetime.now() - start_time).total_seconds() * 1000
                )
                return result

        return wrapper

    return decorator


def trace_tool(tool_name: str):
    """Wrap an async MCP tool handler in a Logfire span."""

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            with logfire.span(
                f"tool.execution.{tool_name}",
                tool_name=tool_name,
                tool_category=_categorize(tool_name),
            ) as span:
                result = await func(*args, **kwargs)
                is_error = isinstance(result, dict) and bool(result.get("isError"))
                span.set_attribute("tool.success", not is_error)
                return result

        return wrapper

    return decorator


def _categorize(name: str) -> str:
    if any(word in name for word in ("checkout", "return", "renew")):
        return "circulation"
    if "overdue" in name or "sweep" in name:
        return "notification"
    if "sync" in name:
        return "sync"
    return "general"


def _add_attributes(span, prefix: str, data: dict) -> None:
    for key, value in data.items():
        if isinstance(value, str | int | float | bool):
            span.set_attribute(f"{prefix}.{key}", value)
