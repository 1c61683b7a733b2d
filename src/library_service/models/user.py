"""
User models for the Library Service.

Users are library members and staff. Staff (ADMIN and DEVELOPER roles) may act
on any user's checkouts; members only on their own.
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class UserRole(str, Enum):
    """Role of a user account."""

    USER = "USER"
    ADMIN = "ADMIN"
    DEVELOPER = "DEVELOPER"


STAFF_ROLES = frozenset({UserRole.ADMIN, UserRole.DEVELOPER})


class User(BaseModel):
    """A user account as returned by the API."""

    id: str = Field(..., description="User identifier (UUID)")
    email: str = Field(..., description="Unique e-mail address", examples=["jane@example.com"])
    name: str = Field(..., description="Display name", examples=["Jane Doe"])
    role: UserRole = Field(default=UserRole.USER)
    is_active: bool = Field(default=True, description="Disabled accounts cannot borrow or log in")
    max_checkouts: int = Field(..., description="Maximum simultaneous active loans", ge=0)
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)

    @property
    def is_staff(self) -> bool:
        return self.role in STAFF_ROLES


class UserCreate(BaseModel):
    """Request body for creating a user (admin only)."""

    email: EmailStr
    name: str = Field(..., min_length=1, max_length=200)
    role: UserRole | None = None
    max_checkouts: int | None = Field(None, ge=0, le=100)


class UserUpdate(BaseModel):
    """Request body for updating a user.

    Members may change only ``name`` on their own account; the remaining fields
    are staff-only and the API rejects them otherwise.
    """

    name: str | None = Field(None, min_length=1, max_length=200)
    role: UserRole | None = None
    is_active: bool | None = None
    max_checkouts: int | None = Field(None, ge=0, le=100)

    def staff_fields_set(self) -> set[str]:
        return self.model_fields_set & {"role", "is_active", "max_checkouts"}


class UserSearchParams(BaseModel):
    query: str | None = None  # Name or e-mail contains
    role: UserRole | None = None
    is_active: bool | None = None
