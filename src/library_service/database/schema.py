"""
SQLAlchemy database schema for the Library Service.

Tables:
- users: library members and staff
- books: catalog entries carrying the copy counters
- checkouts: loans; never deleted, they form the circulation audit trail
- overdue_email_failures: durable log of overdue notifications that failed

Copy-count invariants live in CHECK constraints so that no code path, including
ad-hoc SQL, can push ``available_copies`` outside ``[0, total_copies]``.
"""

import enum
from uuid import uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

Base = declarative_base()


def new_id() -> str:
    """Generate a UUID primary key in its canonical string form."""
    return str(uuid4())


class UserRoleEnum(str, enum.Enum):
    """Database enum for user roles."""

    USER = "USER"
    ADMIN = "ADMIN"
    DEVELOPER = "DEVELOPER"


class CheckoutStatusEnum(str, enum.Enum):
    """Persisted checkout status.

    Overdue is not stored: it is derived from ``due_date`` at read time.
    """

    ACTIVE = "ACTIVE"
    RETURNED = "RETURNED"


class User(Base):
    """Users table - members and administrators."""

    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=new_id)
    email = Column(String(255), nullable=False, unique=True)
    name = Column(String(200), nullable=False)
    role = Column(Enum(UserRoleEnum), nullable=False, default=UserRoleEnum.USER)
    is_active = Column(Boolean, nullable=False, default=True)
    max_checkouts = Column(Integer, nullable=False, default=5)

    created_at = Column(DateTime, nullable=False, default=func.now())
    updated_at = Column(DateTime, nullable=False, default=func.now(), onupdate=func.now())

    checkouts = relationship("Checkout", back_populates="user")

    __table_args__ = (
        Index("idx_user_role", "role"),
        CheckConstraint("max_checkouts >= 0", name="check_max_checkouts_non_negative"),
    )

    @property
    def is_staff(self) -> bool:
        """Admins and developers act on every user's checkouts."""
        return self.role in (UserRoleEnum.ADMIN, UserRoleEnum.DEVELOPER)


class Book(Base):
    """
    Books table - the catalog and its copy counters.

    ``available_copies`` is written only through the inventory ledger.
    """

    __tablename__ = "books"

    id = Column(String(36), primary_key=True, default=new_id)
    isbn = Column(String(20), nullable=False, unique=True)
    title = Column(String(500), nullable=False)
    author = Column(String(300), nullable=False)
    publisher = Column(String(300), nullable=True)
    published_year = Column(Integer, nullable=True)
    genre = Column(String(100), nullable=True)
    description = Column(Text, nullable=True)
    cover_url = Column(String(500), nullable=True)
    total_copies = Column(Integer, nullable=False, default=1)
    available_copies = Column(Integer, nullable=False, default=1)

    created_at = Column(DateTime, nullable=False, default=func.now())
    updated_at = Column(DateTime, nullable=False, default=func.now(), onupdate=func.now())

    checkouts = relationship("Checkout", back_populates="book")

    __table_args__ = (
        Index("idx_book_title", "title"),
        Index("idx_book_author", "author"),
        Index("idx_book_genre", "genre"),
        CheckConstraint("available_copies >= 0", name="check_available_copies_non_negative"),
        CheckConstraint(
            "available_copies <= total_copies", name="check_available_not_exceed_total"
        ),
        CheckConstraint("total_copies >= 0", name="check_total_copies_non_negative"),
    )

    @property
    def loaned_copies(self) -> int:
        return self.total_copies - self.available_copies


class Checkout(Base):
    """
    Checkouts table - one row per loan.

    ``returned_at`` is set exactly when ``status`` is RETURNED; rows are never
    deleted and the RESTRICT foreign keys keep users and books with loan
    history from being removed.
    """

    __tablename__ = "checkouts"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="RESTRICT"), nullable=False)
    book_id = Column(String(36), ForeignKey("books.id", ondelete="RESTRICT"), nullable=False)
    status = Column(
        Enum(CheckoutStatusEnum), nullable=False, default=CheckoutStatusEnum.ACTIVE
    )
    checked_out_at = Column(DateTime, nullable=False, default=func.now())
    due_date = Column(DateTime, nullable=False)
    returned_at = Column(DateTime, nullable=True)
    renewal_count = Column(Integer, nullable=False, default=0)
    max_renewals = Column(Integer, nullable=False, default=2)
    overdue_email_sent = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime, nullable=False, default=func.now())
    updated_at = Column(DateTime, nullable=False, default=func.now(), onupdate=func.now())

    user = relationship("User", back_populates="checkouts")
    book = relationship("Book", back_populates="checkouts")
    email_failures = relationship("OverdueEmailFailure", back_populates="checkout")

    __table_args__ = (
        Index("idx_checkout_user_status", "user_id", "status"),
        Index("idx_checkout_book", "book_id"),
        Index("idx_checkout_due_date", "due_date"),
        Index("idx_checkout_overdue_scan", "status", "overdue_email_sent", "due_date"),
        CheckConstraint("renewal_count >= 0", name="check_renewal_count_non_negative"),
        CheckConstraint("renewal_count <= max_renewals", name="check_renewal_limit"),
        CheckConstraint(
            "(status = 'RETURNED' AND returned_at IS NOT NULL)"
            " OR (status <> 'RETURNED' AND returned_at IS NULL)",
            name="check_returned_at_matches_status",
        ),
    )


class OverdueEmailFailure(Base):
    """Overdue e-mail failures - kept for later inspection, never retried automatically."""

    __tablename__ = "overdue_email_failures"

    id = Column(Integer, primary_key=True, autoincrement=True)
    checkout_id = Column(String(36), ForeignKey("checkouts.id"), nullable=False)
    error_message = Column(Text, nullable=False)
    created_at = Column(DateTime, nullable=False, default=func.now())

    checkout = relationship("Checkout", back_populates="email_failures")

    __table_args__ = (Index("idx_email_failure_checkout", "checkout_id"),)
