"""
Repository pattern implementation for the Library Service.

Repositories keep SQL out of the service and HTTP layers:

1. **Unit of work**: repositories flush but never commit; the caller's
   ``session_scope`` decides the transaction boundary, so a checkout can span
   the ledger, the checkout row and the user lookup atomically
2. **Testability**: services take repositories built on a plain ``Session``
3. **Consistency**: every query goes through ``guarded_query`` so storage
   failures surface as ``StorageError`` with the detail only in the logs
4. **Serialisation**: read methods return Pydantic models ready for JSON
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from .schema import Base
from .schema import Checkout as CheckoutDB

logger = logging.getLogger(__name__)

ModelType = TypeVar("ModelType", bound=Base)
ResponseSchemaType = TypeVar("ResponseSchemaType", bound=BaseModel)
T = TypeVar("T")

DEFAULT_PAGE_LIMIT = 20
MAX_PAGE_LIMIT = 100


class RepositoryException(Exception):
    """Base exception for repository operations."""


class NotFoundError(RepositoryException):
    """Raised when an entity is not found."""


class ConflictError(RepositoryException):
    """Raised when a request collides with current state (capacity, limits, uniqueness)."""


class DuplicateError(ConflictError):
    """Raised when attempting to create a duplicate entity."""


class NoCopiesAvailableError(ConflictError):
    """Raised when a book has no copy left to lend."""


class LoanLimitExceededError(ConflictError):
    """Raised when a user already holds ``max_checkouts`` active loans."""


class RenewalLimitReachedError(ConflictError):
    """Raised when a checkout has used all of its renewals."""


class CheckoutNotActiveError(ConflictError):
    """Raised when renewing a checkout that is no longer active."""


class StorageError(RepositoryException):
    """Raised when the database itself fails."""


def guarded_query(session: Session, query_func: Callable[[Session], T], error_msg: str) -> T:
    """
    Execute a query, converting driver failures into ``StorageError``.

    Args:
        session: The database session
        query_func: Function that performs the query
        error_msg: Context for the log entry and the raised error
    """
    try:
        return query_func(session)
    except SQLAlchemyError as e:
        logger.exception("Query failed: %s", error_msg)
        raise StorageError(error_msg) from e


def guarded_flush(session: Session, operation: str) -> None:
    """
    Flush pending changes, mapping unique violations to ``DuplicateError``.

    Args:
        session: The database session
        operation: Description of the operation (for error messages)
    """
    try:
        session.flush()
    except IntegrityError as e:
        logger.info("Integrity violation during %s: %s", operation, e.orig)
        raise DuplicateError(f"{operation} violates a uniqueness constraint") from e
    except SQLAlchemyError as e:
        logger.exception("Flush failed during %s", operation)
        raise StorageError(f"Database operation '{operation}' failed") from e


class PaginationParams(BaseModel):
    """Limit/offset pagination used by every list endpoint."""

    limit: int = DEFAULT_PAGE_LIMIT
    offset: int = 0

    def validate_params(self) -> None:
        """Clamp the limit to the allowed window and reject negative offsets."""
        if self.offset < 0:
            raise ValueError("Offset must be >= 0")
        if self.limit < 1:
            raise ValueError("Limit must be >= 1")
        self.limit = min(self.limit, MAX_PAGE_LIMIT)


class PaginatedResponse(BaseModel, Generic[ResponseSchemaType]):
    """
    Standard paginated response: ``{items, total, limit, offset, hasMore}``.
    """

    model_config = ConfigDict(populate_by_name=True)

    items: list[ResponseSchemaType]
    total: int
    limit: int
    offset: int
    has_more: bool = Field(alias="hasMore")

    @classmethod
    def build(
        cls, items: list, total: int, pagination: PaginationParams
    ) -> "PaginatedResponse":
        return cls(
            items=items,
            total=total,
            limit=pagination.limit,
            offset=pagination.offset,
            has_more=pagination.offset + pagination.limit < total,
        )


class BaseRepository(ABC, Generic[ModelType, ResponseSchemaType]):
    """
    Abstract base repository providing common read and write operations.

    Write methods only flush; the enclosing unit of work commits.
    """

    def __init__(self, session: Session):
        """Initialize repository with database session."""
        self.session = session

    @property
    @abstractmethod
    def model_class(self) -> type[ModelType]:
        """Return the SQLAlchemy model class."""

    @property
    @abstractmethod
    def response_schema(self) -> type[ResponseSchemaType]:
        """Return the Pydantic response schema."""

    def _to_response_model(self, db_obj: ModelType) -> ResponseSchemaType:
        """Convert database model to Pydantic response model."""
        return self.response_schema.model_validate(db_obj, from_attributes=True)

    def get_entity(self, id: str, for_update: bool = False) -> ModelType:
        """
        Load the ORM entity or raise ``NotFoundError``.

        ``for_update`` takes a row lock on backends that support one.
        """
        query = (
            select(self.model_class)
            .where(self.model_class.id == str(id))
            # Counters may have been changed by conditional UPDATEs in this session
            .execution_options(populate_existing=True)
        )
        if for_update:
            query = query.with_for_update()
        db_obj = guarded_query(
            self.session,
            lambda s: s.execute(query).scalar_one_or_none(),
            f"Failed to get {self.model_class.__name__} by ID",
        )
        if db_obj is None:
            raise NotFoundError(f"{self.model_class.__name__} {id} not found")
        return db_obj

    def get_by_id(self, id: str) -> ResponseSchemaType | None:
        """Get entity by ID as a response model, or None."""
        try:
            return self._to_response_model(self.get_entity(id))
        except NotFoundError:
            return None

    def _paginate(self, query, pagination: PaginationParams | None) -> PaginatedResponse:
        """Count and slice a select() built by a subclass."""
        pagination = pagination or PaginationParams()
        pagination.validate_params()

        count_query = select(func.count()).select_from(query.order_by(None).subquery())
        total = (
            guarded_query(
                self.session,
                lambda s: s.execute(count_query).scalar(),
                "Failed to count total for pagination",
            )
            or 0
        )

        page_query = query.offset(pagination.offset).limit(pagination.limit)
        results = guarded_query(
            self.session,
            lambda s: s.execute(page_query).unique().scalars().all(),
            "Failed to get paginated results",
        )
        items = [self._to_response_model(item) for item in results]
        return PaginatedResponse[self.response_schema].build(items, total, pagination)

    def _save(self, db_obj: ModelType, operation: str) -> ModelType:
        """Add and flush an entity, reloading server-side defaults such as timestamps."""
        self.session.add(db_obj)
        guarded_flush(self.session, operation)
        self.session.refresh(db_obj)
        return db_obj

    def _has_checkouts(self, column) -> bool:
        """True when any checkout row references the entity through ``column``."""
        query = select(func.count()).select_from(CheckoutDB).where(column)
        count = guarded_query(
            self.session, lambda s: s.execute(query).scalar(), "Failed to count checkouts"
        )
        return count > 0

    def exists(self, id: str) -> bool:
        """Check if entity exists by ID."""
        query = (
            select(func.count()).select_from(self.model_class).where(self.model_class.id == str(id))
        )
        count = guarded_query(
            self.session, lambda s: s.execute(query).scalar(), "Failed to check existence"
        )
        return count > 0
