"""
Database layer for the Library Service.

- ``schema``: SQLAlchemy tables and their invariants
- ``session``: engine, session factory and the unit-of-work scope
- ``repository``: error taxonomy, pagination and the repository base class
- ``inventory_ledger``: the only writer of book copy counters
- ``*_repository``: per-entity data access
"""

from .book_repository import BookRepository
from .circulation_repository import CirculationRepository
from .inventory_ledger import InventoryLedger
from .repository import (
    CheckoutNotActiveError,
    ConflictError,
    DuplicateError,
    LoanLimitExceededError,
    NoCopiesAvailableError,
    NotFoundError,
    PaginatedResponse,
    PaginationParams,
    RenewalLimitReachedError,
    RepositoryException,
    StorageError,
)
from .schema import (
    Base,
    Book,
    Checkout,
    CheckoutStatusEnum,
    OverdueEmailFailure,
    User,
    UserRoleEnum,
)
from .session import DatabaseManager
from .user_repository import UserRepository

__all__ = [
    "Base",
    "Book",
    "BookRepository",
    "Checkout",
    "CheckoutNotActiveError",
    "CheckoutStatusEnum",
    "CirculationRepository",
    "ConflictError",
    "DatabaseManager",
    "DuplicateError",
    "InventoryLedger",
    "LoanLimitExceededError",
    "NoCopiesAvailableError",
    "NotFoundError",
    "OverdueEmailFailure",
    "PaginatedResponse",
    "PaginationParams",
    "RenewalLimitReachedError",
    "RepositoryException",
    "StorageError",
    "User",
    "UserRepository",
    "UserRoleEnum",
]
