"""Test configuration and fixtures for the Library Service.

Every test gets:
1. An isolated SQLite file database under ``tmp_path``
2. An explicit ``ServiceConfig`` pointing at it (no environment leakage)
3. A fixed clock, so due dates and the derived OVERDUE status are predictable
4. Fakes for the outbound collaborators: dispatcher, e-mail sender, auth verifier
"""

import os
from collections.abc import Generator
from datetime import datetime, timedelta
from pathlib import Path

import logfire
import pytest

from library_service.config import ServiceConfig, reset_config
from library_service.database.schema import Book as BookDB
from library_service.database.schema import Checkout as CheckoutDB
from library_service.database.schema import CheckoutStatusEnum, UserRoleEnum
from library_service.database.schema import User as UserDB
from library_service.database.session import DatabaseManager
from library_service.runtime import ServiceContainer, reset_container
from library_service.services.auth import AuthResult, AuthUser
from library_service.services.email import EmailDeliveryError, OverdueNotice

# Spans are created but never exported during tests
logfire.configure(send_to_logfire=False, console=False)

START = datetime(2024, 1, 1, 12, 0, 0)


# === Fakes ===


class FixedClock:
    """A settable clock returning naive UTC datetimes."""

    def __init__(self, now: datetime = START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta) -> None:
        self.now = self.now + timedelta(**delta)


class RecordingDispatcher:
    """Collects tasks instead of running them."""

    def __init__(self):
        self.tasks = []
        self.shut_down = False

    def dispatch(self, task) -> None:
        self.tasks.append(task)

    def shutdown(self, wait: bool = True) -> None:
        self.shut_down = True

    def actions(self) -> list[str]:
        return [task.action for task in self.tasks]


class FakeEmailSender:
    """Records notices; addresses listed in ``failing`` raise ``EmailDeliveryError``."""

    def __init__(self):
        self.sent: list[OverdueNotice] = []
        self.failing: set[str] = set()

    def send_overdue_notice(self, notice: OverdueNotice) -> None:
        if notice.user_email in self.failing:
            raise EmailDeliveryError("HTTP 503")
        self.sent.append(notice)


class FakeVerifier:
    """Maps known tokens to identities; anything else is invalid."""

    def __init__(self):
        self.identities: dict[str, AuthUser] = {}

    def add(self, token: str, user_id: str, email: str, name: str = "Test User") -> None:
        self.identities[token] = AuthUser(id=user_id, email=email, name=name)

    def verify(self, token: str) -> AuthResult:
        user = self.identities.get(token)
        if user is None:
            return AuthResult(valid=False)
        return AuthResult(valid=True, user=user)


# === Environment / Configuration ===


@pytest.fixture(autouse=True)
def clean_env() -> Generator[None, None, None]:
    """Remove LIBRARY_* variables and reset the process-wide singletons."""
    original_env = os.environ.copy()
    for key in list(os.environ):
        if key.startswith("LIBRARY_"):
            del os.environ[key]
    reset_config()
    reset_container()

    yield

    os.environ.clear()
    os.environ.update(original_env)
    reset_config()
    reset_container()


@pytest.fixture
def test_db_path(tmp_path: Path) -> Path:
    return tmp_path / "test_library.db"


@pytest.fixture
def test_config(test_db_path: Path) -> ServiceConfig:
    return ServiceConfig(
        _env_file=None,
        database_url=f"sqlite:///{test_db_path}",
        log_level="DEBUG",
    )


@pytest.fixture
def db(test_config: ServiceConfig) -> Generator[DatabaseManager, None, None]:
    manager = DatabaseManager(test_config.database_url)
    manager.init_database()
    yield manager
    manager.close()


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


@pytest.fixture
def email_sender() -> FakeEmailSender:
    return FakeEmailSender()


@pytest.fixture
def verifier() -> FakeVerifier:
    return FakeVerifier()


@pytest.fixture
def container(
    test_config, db, dispatcher, verifier, email_sender, clock
) -> Generator[ServiceContainer, None, None]:
    svc = ServiceContainer(
        config=test_config,
        db=db,
        dispatcher=dispatcher,
        verifier=verifier,
        email_sender=email_sender,
        clock=clock,
    )
    yield svc
    svc.close()


# === Seed Helpers ===


def add_user(db: DatabaseManager, **overrides) -> str:
    """Insert a user directly and return its id."""
    values = {
        "email": f"user-{os.urandom(4).hex()}@example.com",
        "name": "Test User",
        "role": UserRoleEnum.USER,
        "is_active": True,
        "max_checkouts": 5,
    }
    values.update(overrides)
    with db.session_scope() as session:
        user = UserDB(**values)
        session.add(user)
        session.flush()
        return user.id


def add_book(db: DatabaseManager, **overrides) -> str:
    """Insert a book directly and return its id."""
    values = {
        "isbn": f"978{int.from_bytes(os.urandom(4)) % 10**10:010d}",
        "title": "Test Book",
        "author": "Test Author",
        "genre": "Fiction",
        "total_copies": 3,
        "available_copies": 3,
    }
    values.update(overrides)
    with db.session_scope() as session:
        book = BookDB(**values)
        session.add(book)
        session.flush()
        return book.id


def add_checkout(
    db: DatabaseManager, user_id: str, book_id: str, due_date: datetime, **overrides
) -> str:
    """Insert an ACTIVE checkout row without touching the copy counters."""
    values = {
        "user_id": user_id,
        "book_id": book_id,
        "status": CheckoutStatusEnum.ACTIVE,
        "checked_out_at": due_date - timedelta(days=14),
        "due_date": due_date,
        "renewal_count": 0,
        "max_renewals": 2,
        "overdue_email_sent": False,
    }
    values.update(overrides)
    with db.session_scope() as session:
        checkout = CheckoutDB(**values)
        session.add(checkout)
        session.flush()
        return checkout.id


def available_copies(db: DatabaseManager, book_id: str) -> int:
    with db.session_scope() as session:
        return session.get(BookDB, book_id).available_copies


def checkout_rows(db: DatabaseManager) -> list[CheckoutDB]:
    with db.session_scope() as session:
        return session.query(CheckoutDB).order_by(CheckoutDB.checked_out_at).all()


@pytest.fixture
def member_id(db) -> str:
    return add_user(db, email="member@example.com", name="Mary Member")


@pytest.fixture
def admin_id(db) -> str:
    return add_user(db, email="admin@example.com", name="Ada Admin", role=UserRoleEnum.ADMIN)


@pytest.fixture
def book_id(db) -> str:
    return add_book(db, isbn="9780134685479", title="Effective Java", author="Joshua Bloch")
