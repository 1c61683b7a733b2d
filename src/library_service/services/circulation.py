"""
Checkout lifecycle orchestration.

Each operation is one unit of work: the user check, the loan-limit check, the
inventory ledger update and the checkout row change either all commit or all
roll back. Side effects are handed to the dispatcher only once the commit has
succeeded.

States::

    ACTIVE --return--> RETURNED
    ACTIVE --renew---> ACTIVE (due date + renewal period, renewal_count + 1)
    ACTIVE --time----> shown as OVERDUE (derived, still ACTIVE in storage)
"""

import logging
from collections.abc import Callable
from datetime import datetime, timedelta

from ..config import ServiceConfig
from ..database.book_repository import BookRepository
from ..database.circulation_repository import CirculationRepository
from ..database.inventory_ledger import InventoryLedger
from ..database.repository import (
    LoanLimitExceededError,
    NotFoundError,
    PaginatedResponse,
    PaginationParams,
)
from ..database.session import DatabaseManager
from ..database.user_repository import UserRepository
from ..models.book import Book
from ..models.checkout import CheckoutFilter, CheckoutWithDetails, to_naive_utc, utc_now
from ..observability.decorators import trace_operation
from ..observability.metrics import record_circulation_event
from .dispatcher import NullDispatcher, SideEffectDispatcher
from .realtime_sync import book_counts_task, checkout_patch_task, checkout_upsert_task

logger = logging.getLogger(__name__)


class CirculationService:
    """Checkout, return and renewal over one database."""

    def __init__(
        self,
        db: DatabaseManager,
        config: ServiceConfig,
        dispatcher: SideEffectDispatcher | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.db = db
        self.config = config
        self.dispatcher = dispatcher or NullDispatcher()
        self.clock = clock

    def _dispatch_changes(self, checkout: CheckoutWithDetails, book: Book, created: bool) -> None:
        self.dispatcher.dispatch(
            checkout_upsert_task(checkout) if created else checkout_patch_task(checkout)
        )
        self.dispatcher.dispatch(book_counts_task(book))

    @trace_operation("checkout_book")
    def checkout(
        self,
        *,
        user_id: str,
        book_id: str | None = None,
        isbn: str | None = None,
        due_date: datetime | None = None,
    ) -> CheckoutWithDetails:
        """
        Lend one copy of a book to a user.

        Exactly one of ``book_id`` or ``isbn`` identifies the book.

        Raises:
            NotFoundError: Unknown or disabled user, unknown book
            LoanLimitExceededError: User already holds ``max_checkouts`` active loans
            NoCopiesAvailableError: Every copy is on loan
        """
        if (book_id is None) == (isbn is None):
            raise ValueError("Provide exactly one of book_id or isbn")

        with self.db.session_scope() as session:
            users = UserRepository(session)
            books = BookRepository(session)
            loans = CirculationRepository(session, clock=self.clock)

            # Serialises concurrent checkouts by the same user on row-locking backends
            user = users.get_entity(user_id, for_update=True)
            if not user.is_active:
                raise NotFoundError(f"User {user_id} not found or inactive")

            if isbn is not None:
                db_book = books.get_entity_by_isbn(isbn)
                if db_book is None:
                    raise NotFoundError(f"Book with ISBN {isbn} not found")
                book_id = db_book.id
            else:
                books.get_entity(book_id)

            active = loans.count_active_for_user(user.id)
            if active >= user.max_checkouts:
                raise LoanLimitExceededError(
                    f"User {user.id} has {active} active checkouts (limit {user.max_checkouts})"
                )

            InventoryLedger(session).reserve_copy(book_id)

            due = (
                to_naive_utc(due_date)
                if due_date is not None
                else self.clock() + timedelta(days=self.config.loan_period_days)
            )
            db_checkout = loans.create(user.id, book_id, due, self.config.max_renewals)
            result = loans.get_details(db_checkout.id)
            book = books.get_by_id(book_id)

        logger.info(
            "Checked out book %s to user %s (checkout %s, due %s)",
            book_id,
            user_id,
            result.id,
            result.due_date.isoformat(),
        )
        record_circulation_event("checkout")
        self._dispatch_changes(result, book, created=True)
        return result

    @trace_operation("return_book")
    def return_checkout(self, *, checkout_id: str) -> CheckoutWithDetails:
        """
        Close an active loan and put the copy back on the shelf.

        Raises:
            NotFoundError: No ACTIVE checkout with this id
        """
        with self.db.session_scope() as session:
            loans = CirculationRepository(session, clock=self.clock)
            db_checkout = loans.mark_returned(checkout_id)
            InventoryLedger(session).release_copy(db_checkout.book_id)
            result = loans.get_details(checkout_id)
            book = BookRepository(session).get_by_id(db_checkout.book_id)

        logger.info("Returned checkout %s (book %s)", checkout_id, result.book_id)
        record_circulation_event("return")
        self._dispatch_changes(result, book, created=False)
        return result

    @trace_operation("renew_checkout")
    def renew(self, *, checkout_id: str) -> CheckoutWithDetails:
        """
        Extend an active loan by the renewal period, counted from its current due date.

        Raises:
            NotFoundError: Unknown checkout
            CheckoutNotActiveError: Checkout already returned
            RenewalLimitReachedError: No renewals left
        """
        with self.db.session_scope() as session:
            loans = CirculationRepository(session, clock=self.clock)
            loans.renew(checkout_id, self.config.renewal_period_days)
            result = loans.get_details(checkout_id)

        logger.info(
            "Renewed checkout %s until %s (%d/%d)",
            checkout_id,
            result.due_date.isoformat(),
            result.renewal_count,
            result.max_renewals,
        )
        record_circulation_event("renew")
        self.dispatcher.dispatch(checkout_patch_task(result))
        return result

    def get(self, checkout_id: str) -> CheckoutWithDetails:
        with self.db.session_scope() as session:
            return CirculationRepository(session, clock=self.clock).get_details(checkout_id)

    def search(
        self, filters: CheckoutFilter, pagination: PaginationParams | None = None
    ) -> PaginatedResponse[CheckoutWithDetails]:
        with self.db.session_scope() as session:
            return CirculationRepository(session, clock=self.clock).search(filters, pagination)

    def list_overdue(self) -> list[CheckoutWithDetails]:
        with self.db.session_scope() as session:
            return CirculationRepository(session, clock=self.clock).list_overdue()

    def list_for_user(self, user_id: str) -> list[CheckoutWithDetails]:
        with self.db.session_scope() as session:
            return CirculationRepository(session, clock=self.clock).list_for_user(user_id)
