"""
Circulation repository for the Library Service.

Persistence for the checkout lifecycle:

1. **Checkouts**: inserting a loan row (the ledger reservation happens alongside
   it in the same unit of work)
2. **Returns**: a conditional UPDATE that only matches ACTIVE loans, so a
   second return of the same checkout finds nothing
3. **Renewals**: a conditional UPDATE guarded on the renewal count that was
   read, so two racing renewals cannot both consume the same slot
4. **Overdue**: derived from ``due_date`` at query time; the overdue sweep reads
   its candidates and records notification outcomes here

Nothing in this module commits.
"""

import logging
from collections.abc import Callable
from datetime import datetime, timedelta

from sqlalchemy import and_, func, not_, select, update
from sqlalchemy.orm import Session, joinedload

from ..models.checkout import (
    CheckoutBook,
    CheckoutFilter,
    CheckoutStatus,
    CheckoutUser,
    CheckoutWithDetails,
    present_status,
    utc_now,
)
from .repository import (
    BaseRepository,
    CheckoutNotActiveError,
    ConflictError,
    NotFoundError,
    PaginatedResponse,
    PaginationParams,
    RenewalLimitReachedError,
    guarded_flush,
    guarded_query,
)
from .schema import Checkout as CheckoutDB
from .schema import CheckoutStatusEnum, OverdueEmailFailure

logger = logging.getLogger(__name__)


class CirculationRepository(BaseRepository[CheckoutDB, CheckoutWithDetails]):
    """
    Repository for checkouts.

    ``clock`` supplies "now" for due-date arithmetic and for the derived
    OVERDUE status; tests pass a fixed clock.
    """

    def __init__(self, session: Session, clock: Callable[[], datetime] = utc_now):
        super().__init__(session)
        self.clock = clock

    @property
    def model_class(self):
        return CheckoutDB

    @property
    def response_schema(self):
        return CheckoutWithDetails

    def _to_response_model(self, checkout: CheckoutDB) -> CheckoutWithDetails:
        """Convert checkout DB object to Pydantic model, deriving OVERDUE."""
        return CheckoutWithDetails(
            id=checkout.id,
            user_id=checkout.user_id,
            book_id=checkout.book_id,
            status=present_status(checkout.status, checkout.due_date, self.clock()),
            checked_out_at=checkout.checked_out_at,
            due_date=checkout.due_date,
            returned_at=checkout.returned_at,
            renewal_count=checkout.renewal_count,
            max_renewals=checkout.max_renewals,
            overdue_email_sent=checkout.overdue_email_sent,
            created_at=checkout.created_at,
            updated_at=checkout.updated_at,
            user=CheckoutUser.model_validate(checkout.user),
            book=CheckoutBook.model_validate(checkout.book),
        )

    def _overdue_clause(self, now: datetime):
        return and_(CheckoutDB.status == CheckoutStatusEnum.ACTIVE, CheckoutDB.due_date < now)

    def _load(self, checkout_id: str) -> CheckoutDB | None:
        query = (
            select(CheckoutDB)
            .where(CheckoutDB.id == checkout_id)
            .options(joinedload(CheckoutDB.user), joinedload(CheckoutDB.book))
            # Conditional UPDATEs bypass the identity map; reload the row as stored
            .execution_options(populate_existing=True)
        )
        return guarded_query(
            self.session,
            lambda s: s.execute(query).unique().scalar_one_or_none(),
            "Failed to load checkout",
        )

    def get_details(self, checkout_id: str) -> CheckoutWithDetails:
        """
        Get one checkout joined with its user and book.

        Raises:
            NotFoundError: If the checkout does not exist
        """
        checkout = self._load(checkout_id)
        if checkout is None:
            raise NotFoundError(f"Checkout {checkout_id} not found")
        return self._to_response_model(checkout)

    def count_active_for_user(self, user_id: str) -> int:
        """Active loans held by the user, overdue ones included."""
        query = (
            select(func.count())
            .select_from(CheckoutDB)
            .where(
                CheckoutDB.user_id == user_id,
                CheckoutDB.status == CheckoutStatusEnum.ACTIVE,
            )
        )
        return (
            guarded_query(
                self.session, lambda s: s.execute(query).scalar(), "Failed to count active loans"
            )
            or 0
        )

    def create(
        self, user_id: str, book_id: str, due_date: datetime, max_renewals: int
    ) -> CheckoutDB:
        """Insert an ACTIVE checkout row. The caller has already reserved the copy."""
        checkout = CheckoutDB(
            user_id=user_id,
            book_id=book_id,
            status=CheckoutStatusEnum.ACTIVE,
            checked_out_at=self.clock(),
            due_date=due_date,
            renewal_count=0,
            max_renewals=max_renewals,
            overdue_email_sent=False,
        )
        self.session.add(checkout)
        guarded_flush(self.session, "create checkout")
        return self._load(checkout.id)

    def mark_returned(self, checkout_id: str) -> CheckoutDB:
        """
        Close an ACTIVE checkout.

        Raises:
            NotFoundError: If no ACTIVE checkout has this id (missing or already returned)
        """
        stmt = (
            update(CheckoutDB)
            .where(
                CheckoutDB.id == checkout_id,
                CheckoutDB.status == CheckoutStatusEnum.ACTIVE,
            )
            .values(
                status=CheckoutStatusEnum.RETURNED,
                returned_at=self.clock(),
                updated_at=func.now(),
            )
            .execution_options(synchronize_session=False)
        )
        result = guarded_query(self.session, lambda s: s.execute(stmt), "Failed to return checkout")

        if result.rowcount == 0:
            raise NotFoundError(f"No active checkout {checkout_id}")

        return self._load(checkout_id)

    def renew(self, checkout_id: str, renewal_period_days: int) -> CheckoutDB:
        """
        Extend an ACTIVE checkout from its current due date.

        Overdue loans are still ACTIVE and may be renewed.

        Raises:
            NotFoundError: If the checkout does not exist
            CheckoutNotActiveError: If the checkout has been returned
            RenewalLimitReachedError: If ``renewal_count`` has reached ``max_renewals``
            ConflictError: If another renewal changed the row first
        """
        checkout = self._load(checkout_id)
        if checkout is None:
            raise NotFoundError(f"Checkout {checkout_id} not found")

        if checkout.status != CheckoutStatusEnum.ACTIVE:
            raise CheckoutNotActiveError(f"Checkout {checkout_id} is not active")

        if checkout.renewal_count >= checkout.max_renewals:
            raise RenewalLimitReachedError(
                f"Checkout {checkout_id} reached its renewal limit of {checkout.max_renewals}"
            )

        observed_count = checkout.renewal_count
        stmt = (
            update(CheckoutDB)
            .where(
                CheckoutDB.id == checkout_id,
                CheckoutDB.status == CheckoutStatusEnum.ACTIVE,
                CheckoutDB.renewal_count == observed_count,
            )
            .values(
                due_date=checkout.due_date + timedelta(days=renewal_period_days),
                renewal_count=observed_count + 1,
                updated_at=func.now(),
            )
            .execution_options(synchronize_session=False)
        )
        result = guarded_query(self.session, lambda s: s.execute(stmt), "Failed to renew checkout")

        if result.rowcount == 0:
            raise ConflictError(f"Checkout {checkout_id} was modified concurrently")

        return self._load(checkout_id)

    def search(
        self, filters: CheckoutFilter, pagination: PaginationParams | None = None
    ) -> PaginatedResponse[CheckoutWithDetails]:
        """
        Filtered checkout listing, newest first.

        All filter values are bound parameters.
        """
        now = self.clock()
        query = select(CheckoutDB).options(
            joinedload(CheckoutDB.user), joinedload(CheckoutDB.book)
        )
        conditions = []

        if filters.user_id:
            conditions.append(CheckoutDB.user_id == filters.user_id)

        if filters.book_id:
            conditions.append(CheckoutDB.book_id == filters.book_id)

        if filters.status is CheckoutStatus.OVERDUE:
            conditions.append(self._overdue_clause(now))
        elif filters.status is not None:
            conditions.append(CheckoutDB.status == CheckoutStatusEnum(filters.status.value))

        if filters.overdue is True:
            conditions.append(self._overdue_clause(now))
        elif filters.overdue is False:
            conditions.append(not_(self._overdue_clause(now)))

        if conditions:
            query = query.where(and_(*conditions))

        query = query.order_by(CheckoutDB.checked_out_at.desc(), CheckoutDB.id)
        return self._paginate(query, pagination)

    def list_overdue(self) -> list[CheckoutWithDetails]:
        """Every overdue loan, most overdue first."""
        query = (
            select(CheckoutDB)
            .where(self._overdue_clause(self.clock()))
            .options(joinedload(CheckoutDB.user), joinedload(CheckoutDB.book))
            .order_by(CheckoutDB.due_date.asc(), CheckoutDB.id)
        )
        results = guarded_query(
            self.session,
            lambda s: s.execute(query).unique().scalars().all(),
            "Failed to list overdue checkouts",
        )
        return [self._to_response_model(c) for c in results]

    def list_for_user(self, user_id: str) -> list[CheckoutWithDetails]:
        """All of a user's checkouts, newest first."""
        query = (
            select(CheckoutDB)
            .where(CheckoutDB.user_id == user_id)
            .options(joinedload(CheckoutDB.user), joinedload(CheckoutDB.book))
            .order_by(CheckoutDB.checked_out_at.desc(), CheckoutDB.id)
        )
        results = guarded_query(
            self.session,
            lambda s: s.execute(query).unique().scalars().all(),
            "Failed to list user checkouts",
        )
        return [self._to_response_model(c) for c in results]

    # Overdue sweep support

    def overdue_notification_candidates(self) -> list[CheckoutWithDetails]:
        """Overdue loans whose notification has not been delivered yet."""
        query = (
            select(CheckoutDB)
            .where(
                self._overdue_clause(self.clock()),
                CheckoutDB.overdue_email_sent.is_(False),
            )
            .options(joinedload(CheckoutDB.user), joinedload(CheckoutDB.book))
            .order_by(CheckoutDB.due_date.asc(), CheckoutDB.id)
        )
        results = guarded_query(
            self.session,
            lambda s: s.execute(query).unique().scalars().all(),
            "Failed to list overdue notification candidates",
        )
        return [self._to_response_model(c) for c in results]

    def mark_overdue_email_sent(self, checkout_id: str) -> bool:
        """
        Set the notification flag.

        Returns False when the flag was already set, which means another sweep
        delivered the same notice first.
        """
        stmt = (
            update(CheckoutDB)
            .where(CheckoutDB.id == checkout_id, CheckoutDB.overdue_email_sent.is_(False))
            .values(overdue_email_sent=True, updated_at=func.now())
            .execution_options(synchronize_session=False)
        )
        result = guarded_query(
            self.session, lambda s: s.execute(stmt), "Failed to flag overdue e-mail"
        )
        return result.rowcount > 0

    def record_email_failure(self, checkout_id: str, error_message: str) -> None:
        """Append to the durable overdue e-mail failure log."""
        self.session.add(OverdueEmailFailure(checkout_id=checkout_id, error_message=error_message))
        guarded_flush(self.session, "record overdue e-mail failure")

    def email_failures(self, checkout_id: str | None = None) -> list[OverdueEmailFailure]:
        query = select(OverdueEmailFailure).order_by(OverdueEmailFailure.id)
        if checkout_id:
            query = query.where(OverdueEmailFailure.checkout_id == checkout_id)
        return list(
            guarded_query(
                self.session,
                lambda s: s.execute(query).scalars().all(),
                "Failed to list overdue e-mail failures",
            )
        )
