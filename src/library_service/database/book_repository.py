"""
Book repository for the Library Service.

Catalog reads and writes. Copy counters are delegated to the inventory ledger:
creation validates the initial counts through it and stock changes on update go
through ``InventoryLedger.set_total_copies``.
"""

import logging

from sqlalchemy import and_, or_, select

from ..models.book import Book as BookModel
from ..models.book import BookCreate, BookSearchParams, BookUpdate, normalize_isbn
from .inventory_ledger import InventoryLedger
from .repository import (
    BaseRepository,
    ConflictError,
    DuplicateError,
    PaginatedResponse,
    PaginationParams,
    guarded_flush,
    guarded_query,
)
from .schema import Book as BookDB
from .schema import Checkout as CheckoutDB

logger = logging.getLogger(__name__)


class BookRepository(BaseRepository[BookDB, BookModel]):
    """
    Repository for the book catalog.

    - Search filters are bound parameters, never interpolated
    - ISBNs are stored and compared without hyphens
    """

    @property
    def model_class(self):
        return BookDB

    @property
    def response_schema(self):
        return BookModel

    def get_entity_by_isbn(self, isbn: str) -> BookDB | None:
        query = select(BookDB).where(BookDB.isbn == normalize_isbn(isbn))
        return guarded_query(
            self.session,
            lambda s: s.execute(query).scalar_one_or_none(),
            "Failed to get book by ISBN",
        )

    def get_by_isbn(self, isbn: str) -> BookModel | None:
        """
        Get book by ISBN.

        Args:
            isbn: ISBN-10 or ISBN-13 (with or without hyphens)

        Returns:
            Book model or None if not found
        """
        db_book = self.get_entity_by_isbn(isbn)
        return self._to_response_model(db_book) if db_book else None

    def create(self, data: BookCreate) -> BookModel:
        """
        Add a book to the catalog.

        Raises:
            DuplicateError: If the ISBN is already catalogued
            ConflictError: If the copy counts are inconsistent
        """
        if self.get_entity_by_isbn(data.isbn) is not None:
            raise DuplicateError(f"Book with ISBN {data.isbn} already exists")

        total, available = InventoryLedger.initial_counts(data.total_copies, data.available_copies)

        db_book = BookDB(
            **data.model_dump(exclude={"total_copies", "available_copies"}),
            total_copies=total,
            available_copies=available,
        )
        self._save(db_book, "create book")
        logger.info("Added book %s (%s) with %d copies", db_book.id, db_book.isbn, total)
        return self._to_response_model(db_book)

    def search(
        self, search_params: BookSearchParams, pagination: PaginationParams | None = None
    ) -> PaginatedResponse[BookModel]:
        """
        Search for books with various filters.

        Args:
            search_params: Search and filter criteria
            pagination: Limit/offset window

        Returns:
            Paginated response with matching books, ordered by title
        """
        query = select(BookDB)
        filters = []

        # General search across multiple fields
        if search_params.query:
            search_term = f"%{search_params.query}%"
            filters.append(
                or_(
                    BookDB.title.ilike(search_term),
                    BookDB.author.ilike(search_term),
                    BookDB.description.ilike(search_term),
                )
            )

        if search_params.isbn:
            filters.append(BookDB.isbn == normalize_isbn(search_params.isbn))

        if search_params.author:
            filters.append(BookDB.author.ilike(f"%{search_params.author}%"))

        if search_params.genre:
            filters.append(BookDB.genre.ilike(search_params.genre))

        if filters:
            query = query.where(and_(*filters))

        query = query.order_by(BookDB.title.asc(), BookDB.id)
        return self._paginate(query, pagination)

    def update(self, book_id: str, data: BookUpdate) -> BookModel:
        """
        Update bibliographic fields and, optionally, the stock.

        Raises:
            NotFoundError: If the book does not exist
            ConflictError: If ``total_copies`` drops below the copies on loan
        """
        db_book = self.get_entity(book_id, for_update=True)
        changes = data.model_dump(exclude_unset=True)
        new_total = changes.pop("total_copies", None)

        for field, value in changes.items():
            setattr(db_book, field, value)

        if new_total is not None:
            InventoryLedger(self.session).set_total_copies(db_book, new_total)

        guarded_flush(self.session, "update book")
        self.session.refresh(db_book)
        return self._to_response_model(db_book)

    def delete(self, book_id: str) -> None:
        """
        Remove a book with no loan history.

        Raises:
            NotFoundError: If the book does not exist
            ConflictError: If any checkout references the book
        """
        db_book = self.get_entity(book_id)
        if self._has_checkouts(CheckoutDB.book_id == book_id):
            raise ConflictError(f"Book {book_id} is referenced by checkouts")

        self.session.delete(db_book)
        guarded_flush(self.session, "delete book")
        logger.info("Deleted book %s", book_id)
