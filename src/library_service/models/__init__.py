"""
Pydantic models for the Library Service.

These models are the JSON shapes exchanged over the HTTP API and returned by
the MCP tools. Database rows are converted into them inside the repositories.
"""

from .book import Book, BookCreate, BookSearchParams, BookUpdate, normalize_isbn
from .checkout import (
    Checkout,
    CheckoutBook,
    CheckoutByIsbnRequest,
    CheckoutFilter,
    CheckoutStatus,
    CheckoutUser,
    CheckoutWithDetails,
    CreateCheckoutRequest,
    RenewCheckoutRequest,
    ReturnCheckoutRequest,
)
from .user import STAFF_ROLES, User, UserCreate, UserRole, UserSearchParams, UserUpdate

__all__ = [
    "STAFF_ROLES",
    "Book",
    "BookCreate",
    "BookSearchParams",
    "BookUpdate",
    "Checkout",
    "CheckoutBook",
    "CheckoutByIsbnRequest",
    "CheckoutFilter",
    "CheckoutStatus",
    "CheckoutUser",
    "CheckoutWithDetails",
    "CreateCheckoutRequest",
    "RenewCheckoutRequest",
    "ReturnCheckoutRequest",
    "User",
    "UserCreate",
    "UserRole",
    "UserSearchParams",
    "UserUpdate",
    "normalize_isbn",
]
