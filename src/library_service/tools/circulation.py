"""
Circulation tools for the Library Service MCP server.

The tools give an operator (or an assistant acting for one) staff-level access
to the checkout lifecycle:

1. checkout_book: lend a copy to a user, by book id or ISBN
2. return_book: close an active loan
3. renew_checkout: extend an active loan
4. list_overdue_checkouts: every ACTIVE loan past its due date
5. run_overdue_sweep: the daily overdue notification pass, on demand

Handlers take the raw ``arguments`` dict, validate it with a Pydantic input
model and return MCP content, with ``isError`` set on failure.
"""

import asyncio
import logging
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field, ValidationError, model_validator

from ..database.repository import ConflictError, NotFoundError, StorageError
from ..observability.decorators import trace_tool
from ..runtime import get_container

logger = logging.getLogger(__name__)


def _error(text: str) -> dict[str, Any]:
    return {"isError": True, "content": [{"type": "text", "text": text}]}


def _ok(text: str, data: dict[str, Any]) -> dict[str, Any]:
    return {"content": [{"type": "text", "text": text}], "data": data}


async def _run_operation(label: str, func, *args, **kwargs) -> tuple[Any, dict | None]:
    """
    Run a blocking service call off the event loop.

    Returns ``(result, None)`` on success or ``(None, error_response)``.
    """
    try:
        return await asyncio.to_thread(func, *args, **kwargs), None
    except NotFoundError as e:
        logger.info("%s failed - not found: %s", label, e)
        return None, _error(str(e))
    except ConflictError as e:
        logger.info("%s failed - conflict: %s", label, e)
        return None, _error(str(e))
    except StorageError:
        logger.exception("%s failed - storage error", label)
        return None, _error(f"{label} failed: the database is unavailable")


# =============================================================================
# CHECKOUT
# =============================================================================


class CheckoutBookInput(BaseModel):
    """Input schema for the checkout_book tool."""

    user_id: str = Field(..., description="Borrowing user's id")
    book_id: str | None = Field(default=None, description="Book id; give this or isbn")
    isbn: str | None = Field(
        default=None,
        description="Book ISBN; give this or book_id",
        examples=["9780134685479"],
    )
    due_date: datetime | None = Field(
        default=None,
        description="Optional due date; the configured loan period applies otherwise",
    )

    @model_validator(mode="after")
    def one_book_reference(self) -> "CheckoutBookInput":
        if (self.book_id is None) == (self.isbn is None):
            raise ValueError("Provide exactly one of book_id or isbn")
        return self


@trace_tool("checkout_book")
async def checkout_book_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    """Handler for the checkout_book tool."""
    try:
        params = CheckoutBookInput.model_validate(arguments)
    except ValidationError as e:
        logger.warning("Invalid checkout parameters: %s", e)
        return _error(f"Invalid checkout parameters: {e}")

    circulation = get_container().circulation
    checkout, error = await _run_operation(
        "Checkout",
        circulation.checkout,
        user_id=params.user_id,
        book_id=params.book_id,
        isbn=params.isbn,
        due_date=params.due_date,
    )
    if error:
        return error

    return _ok(
        f"Checked out '{checkout.book.title}' to {checkout.user.name}. "
        f"Due date: {checkout.due_date.strftime('%B %d, %Y')}",
        {"checkout": checkout.model_dump(mode="json")},
    )


# =============================================================================
# RETURN / RENEW
# =============================================================================


class CheckoutIdInput(BaseModel):
    checkout_id: str = Field(..., description="Id of the checkout record")


@trace_tool("return_book")
async def return_book_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    """Handler for the return_book tool."""
    try:
        params = CheckoutIdInput.model_validate(arguments)
    except ValidationError as e:
        return _error(f"Invalid return parameters: {e}")

    circulation = get_container().circulation
    checkout, error = await _run_operation(
        "Return", circulation.return_checkout, checkout_id=params.checkout_id
    )
    if error:
        return error

    return _ok(
        f"Returned '{checkout.book.title}' for {checkout.user.name}.",
        {"checkout": checkout.model_dump(mode="json")},
    )


@trace_tool("renew_checkout")
async def renew_checkout_handler(arguments: dict[str, Any]) -> dict[str, Any]:
    """Handler for the renew_checkout tool."""
    try:
        params = CheckoutIdInput.model_validate(arguments)
    except ValidationError as e:
        return _error(f"Invalid renewal parameters: {e}")

    circulation = get_container().circulation
    checkout, error = await _run_operation(
        "Renewal", circulation.renew, checkout_id=params.checkout_id
    )
    if error:
        return error

    return _ok(
        f"Renewed '{checkout.book.title}' until {checkout.due_date.strftime('%B %d, %Y')} "
        f"({checkout.renewals_remaining} renewals left).",
        {"checkout": checkout.model_dump(mode="json")},
    )


# =============================================================================
# OVERDUE
# =============================================================================


@trace_tool("list_overdue_checkouts")
async def list_overdue_checkouts_handler(arguments: dict[str, Any] | None = None) -> dict[str, Any]:
    """Handler for the list_overdue_checkouts tool. Takes no arguments."""
    circulation = get_container().circulation
    overdue, error = await _run_operation("Overdue listing", circulation.list_overdue)
    if error:
        return error

    lines = [
        f"- {c.book.title} ({c.user.name}), due {c.due_date.strftime('%Y-%m-%d')}" for c in overdue
    ]
    text = f"{len(overdue)} overdue checkouts" + (":\n" + "\n".join(lines) if lines else ".")
    return _ok(text, {"checkouts": [c.model_dump(mode="json") for c in overdue]})


@trace_tool("run_overdue_sweep")
async def run_overdue_sweep_handler(arguments: dict[str, Any] | None = None) -> dict[str, Any]:
    """Handler for the run_overdue_sweep tool. Takes no arguments."""
    container = get_container()
    if container.email_sender is None:
        return _error("Overdue sweep unavailable: no e-mail provider configured")

    report, error = await _run_operation("Overdue sweep", container.overdue_sweep.run)
    if error:
        return error

    if report.skipped:
        return _ok("An overdue sweep is already running.", {"report": report.model_dump()})

    return _ok(
        f"Overdue sweep examined {report.examined} loans: "
        f"{report.sent} notices sent, {report.failed} failed.",
        {"report": report.model_dump()},
    )


# =============================================================================
# TOOL REGISTRATION
# =============================================================================

checkout_book = {
    "name": "checkout_book",
    "description": (
        "Check out a book to a user by book id or ISBN. Fails when the user is unknown or "
        "inactive, has reached their loan limit, or no copy is available."
    ),
    "inputSchema": CheckoutBookInput.model_json_schema(),
    "handler": checkout_book_handler,
}

return_book = {
    "name": "return_book",
    "description": "Return an active checkout and restore the book's available copy count.",
    "inputSchema": CheckoutIdInput.model_json_schema(),
    "handler": return_book_handler,
}

renew_checkout = {
    "name": "renew_checkout",
    "description": (
        "Extend an active checkout by the renewal period, counted from its current due date. "
        "Fails once the renewal limit is reached."
    ),
    "inputSchema": CheckoutIdInput.model_json_schema(),
    "handler": renew_checkout_handler,
}

list_overdue_checkouts = {
    "name": "list_overdue_checkouts",
    "description": "List every active checkout past its due date, most overdue first.",
    "inputSchema": {"type": "object", "properties": {}},
    "handler": list_overdue_checkouts_handler,
}

run_overdue_sweep = {
    "name": "run_overdue_sweep",
    "description": (
        "Send overdue notices for loans that have not been notified yet and report how many "
        "were sent or failed."
    ),
    "inputSchema": {"type": "object", "properties": {}},
    "handler": run_overdue_sweep_handler,
}

circulation_tools = [
    checkout_book,
    return_book,
    renew_checkout,
    list_overdue_checkouts,
    run_overdue_sweep,
]
