"""
Checkout models for the Library Service.

A checkout is one loan of one copy of a book. Only ACTIVE and RETURNED are
stored; OVERDUE is how an ACTIVE loan past its due date is presented, computed
at read time against the current clock so it can never go stale.
"""

from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator


def utc_now() -> datetime:
    """Current UTC time as a naive datetime, the form stored in the database."""
    return datetime.now(UTC).replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    """Convert an aware datetime to naive UTC; naive values are assumed UTC already."""
    if value.tzinfo is not None:
        return value.astimezone(UTC).replace(tzinfo=None)
    return value


class CheckoutStatus(str, Enum):
    """Status of a checkout as presented to clients."""

    ACTIVE = "ACTIVE"
    RETURNED = "RETURNED"
    OVERDUE = "OVERDUE"


def present_status(stored_status: str, due_date: datetime, now: datetime) -> CheckoutStatus:
    """Map a stored status to the presented one, deriving OVERDUE from the due date."""
    status = CheckoutStatus(getattr(stored_status, "value", stored_status))
    if status is CheckoutStatus.ACTIVE and due_date < now:
        return CheckoutStatus.OVERDUE
    return status


class CheckoutUser(BaseModel):
    """User summary embedded in checkout responses."""

    id: str
    name: str
    email: str

    model_config = ConfigDict(from_attributes=True)


class CheckoutBook(BaseModel):
    """Book summary embedded in checkout responses."""

    id: str
    title: str
    author: str
    isbn: str

    model_config = ConfigDict(from_attributes=True)


class Checkout(BaseModel):
    """A loan record."""

    id: str = Field(..., description="Checkout identifier (UUID)")
    user_id: str = Field(..., description="Borrowing user")
    book_id: str = Field(..., description="Borrowed book")
    status: CheckoutStatus = Field(..., description="ACTIVE, RETURNED or the derived OVERDUE")
    checked_out_at: datetime
    due_date: datetime = Field(..., description="Date and time the loan is due (UTC)")
    returned_at: datetime | None = Field(None, description="Set exactly when status is RETURNED")
    renewal_count: int = Field(default=0, ge=0)
    max_renewals: int = Field(default=2, ge=0)
    overdue_email_sent: bool = False
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)

    @model_validator(mode="after")
    def validate_loan_state(self) -> "Checkout":
        """A loan is returned exactly when it has a return timestamp."""
        if (self.status == CheckoutStatus.RETURNED) != (self.returned_at is not None):
            raise ValueError("returned_at must be set exactly when status is RETURNED")
        if self.renewal_count > self.max_renewals:
            raise ValueError("renewal_count cannot exceed max_renewals")
        return self

    @property
    def renewals_remaining(self) -> int:
        return max(0, self.max_renewals - self.renewal_count)


class CheckoutWithDetails(Checkout):
    """Checkout joined with user and book summaries."""

    user: CheckoutUser
    book: CheckoutBook


class CreateCheckoutRequest(BaseModel):
    """Checkout by book id. ``user_id`` defaults to the caller."""

    book_id: str
    user_id: str | None = None
    due_date: datetime | None = Field(
        None, description="Explicit due date; defaults to the configured loan period"
    )


class CheckoutByIsbnRequest(BaseModel):
    """Checkout by ISBN, as used by the scanner flow."""

    isbn: str = Field(..., min_length=10, max_length=20)
    user_id: str | None = None
    due_date: datetime | None = None


class ReturnCheckoutRequest(BaseModel):
    checkout_id: str


class RenewCheckoutRequest(BaseModel):
    checkout_id: str


class CheckoutFilter(BaseModel):
    """
    Filters for checkout listing.

    ``status=OVERDUE`` and ``overdue=true`` both select ACTIVE loans past due;
    ``status=ACTIVE`` matches every stored ACTIVE loan, overdue or not.
    """

    user_id: str | None = None
    book_id: str | None = None
    status: CheckoutStatus | None = None
    overdue: bool | None = None
