"""
Inventory ledger for the Library Service.

The ledger is the only writer of ``books.available_copies``. Every change is a
single conditional UPDATE whose WHERE clause carries the precondition, so two
concurrent checkouts can never both take the last copy: the database applies
one decrement, the other matches zero rows and is reported as a conflict.

The ledger runs inside the caller's unit of work and never commits.
"""

import logging

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from .repository import (
    ConflictError,
    NoCopiesAvailableError,
    NotFoundError,
    guarded_query,
)
from .schema import Book as BookDB
from .schema import Checkout as CheckoutDB
from .schema import CheckoutStatusEnum

logger = logging.getLogger(__name__)


class InventoryLedger:
    """Copy-counter bookkeeping for books."""

    def __init__(self, session: Session):
        self.session = session

    def _book_exists(self, book_id: str) -> bool:
        query = select(func.count()).select_from(BookDB).where(BookDB.id == book_id)
        count = guarded_query(
            self.session, lambda s: s.execute(query).scalar(), "Failed to look up book"
        )
        return count > 0

    def reserve_copy(self, book_id: str) -> None:
        """
        Take one copy off the shelf.

        Raises:
            NotFoundError: If the book does not exist
            NoCopiesAvailableError: If every copy is already on loan
        """
        stmt = (
            update(BookDB)
            .where(BookDB.id == book_id, BookDB.available_copies > 0)
            .values(available_copies=BookDB.available_copies - 1, updated_at=func.now())
            .execution_options(synchronize_session=False)
        )
        result = guarded_query(
            self.session, lambda s: s.execute(stmt), "Failed to reserve book copy"
        )

        if result.rowcount == 0:
            if not self._book_exists(book_id):
                raise NotFoundError(f"Book {book_id} not found")
            raise NoCopiesAvailableError(f"No copies of book {book_id} are available")

        logger.debug("Reserved a copy of book %s", book_id)

    def release_copy(self, book_id: str) -> None:
        """
        Put one copy back on the shelf, never exceeding ``total_copies``.

        A release on a book already at full stock is logged and ignored.

        Raises:
            NotFoundError: If the book does not exist
        """
        stmt = (
            update(BookDB)
            .where(BookDB.id == book_id, BookDB.available_copies < BookDB.total_copies)
            .values(available_copies=BookDB.available_copies + 1, updated_at=func.now())
            .execution_options(synchronize_session=False)
        )
        result = guarded_query(
            self.session, lambda s: s.execute(stmt), "Failed to release book copy"
        )

        if result.rowcount == 0:
            if not self._book_exists(book_id):
                raise NotFoundError(f"Book {book_id} not found")
            logger.warning(
                "Release for book %s ignored: available copies already equal total copies",
                book_id,
            )
            return

        logger.debug("Released a copy of book %s", book_id)

    def loaned_copies(self, book_id: str) -> int:
        """Number of ACTIVE checkouts (overdue included) holding a copy of the book."""
        query = (
            select(func.count())
            .select_from(CheckoutDB)
            .where(
                CheckoutDB.book_id == book_id,
                CheckoutDB.status == CheckoutStatusEnum.ACTIVE,
            )
        )
        return guarded_query(
            self.session, lambda s: s.execute(query).scalar(), "Failed to count loaned copies"
        ) or 0

    def set_total_copies(self, book: BookDB, new_total: int) -> None:
        """
        Change a book's stock, keeping ``available = total - on loan``.

        Raises:
            ConflictError: If the new total is below the copies currently on loan
        """
        if new_total < 0:
            raise ConflictError("Total copies cannot be negative")

        on_loan = self.loaned_copies(book.id)
        if new_total < on_loan:
            raise ConflictError(
                f"Cannot reduce total copies to {new_total}: {on_loan} copies are on loan"
            )

        book.total_copies = new_total
        book.available_copies = new_total - on_loan
        logger.info(
            "Book %s stock set to %d (%d available, %d on loan)",
            book.id,
            new_total,
            book.available_copies,
            on_loan,
        )

    @staticmethod
    def initial_counts(total: int, available: int | None = None) -> tuple[int, int]:
        """
        Validate the copy counters of a new book.

        ``available`` defaults to ``total``.
        """
        if available is None:
            available = total
        if total < 0 or available < 0:
            raise ConflictError("Copy counts cannot be negative")
        if available > total:
            raise ConflictError("Available copies cannot exceed total copies")
        return total, available
