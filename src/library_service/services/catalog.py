"""Book and user administration, with realtime sync of the changed rows."""

import logging

from ..config import ServiceConfig
from ..database.book_repository import BookRepository
from ..database.repository import NotFoundError, PaginatedResponse, PaginationParams
from ..database.session import DatabaseManager
from ..database.user_repository import UserRepository
from ..models.book import Book, BookCreate, BookSearchParams, BookUpdate
from ..models.user import User, UserCreate, UserSearchParams, UserUpdate
from .dispatcher import NullDispatcher, SideEffectDispatcher
from .realtime_sync import book_counts_task, book_upsert_task, user_upsert_task

logger = logging.getLogger(__name__)


class CatalogService:
    def __init__(
        self,
        db: DatabaseManager,
        config: ServiceConfig,
        dispatcher: SideEffectDispatcher | None = None,
    ):
        self.db = db
        self.config = config
        self.dispatcher = dispatcher or NullDispatcher()

    def _users(self, session) -> UserRepository:
        return UserRepository(session, default_max_checkouts=self.config.default_max_checkouts)

    # Books

    def search_books(
        self, params: BookSearchParams, pagination: PaginationParams | None = None
    ) -> PaginatedResponse[Book]:
        with self.db.session_scope() as session:
            return BookRepository(session).search(params, pagination)

    def get_book(self, book_id: str) -> Book:
        with self.db.session_scope() as session:
            book = BookRepository(session).get_by_id(book_id)
        if book is None:
            raise NotFoundError(f"Book {book_id} not found")
        return book

    def get_book_by_isbn(self, isbn: str) -> Book:
        with self.db.session_scope() as session:
            book = BookRepository(session).get_by_isbn(isbn)
        if book is None:
            raise NotFoundError(f"Book with ISBN {isbn} not found")
        return book

    def create_book(self, data: BookCreate) -> Book:
        with self.db.session_scope() as session:
            book = BookRepository(session).create(data)
        self.dispatcher.dispatch(book_upsert_task(book))
        return book

    def update_book(self, book_id: str, data: BookUpdate) -> Book:
        with self.db.session_scope() as session:
            book = BookRepository(session).update(book_id, data)
        self.dispatcher.dispatch(book_upsert_task(book))
        if "total_copies" in data.model_fields_set:
            self.dispatcher.dispatch(book_counts_task(book))
        return book

    def delete_book(self, book_id: str) -> None:
        with self.db.session_scope() as session:
            BookRepository(session).delete(book_id)

    # Users

    def search_users(
        self, params: UserSearchParams, pagination: PaginationParams | None = None
    ) -> PaginatedResponse[User]:
        with self.db.session_scope() as session:
            return self._users(session).search(params, pagination)

    def get_user(self, user_id: str) -> User:
        with self.db.session_scope() as session:
            user = self._users(session).get_by_id(user_id)
        if user is None:
            raise NotFoundError(f"User {user_id} not found")
        return user

    def get_user_by_email(self, email: str) -> User:
        with self.db.session_scope() as session:
            user = self._users(session).get_by_email(email)
        if user is None:
            raise NotFoundError(f"User with email {email} not found")
        return user

    def create_user(self, data: UserCreate) -> User:
        with self.db.session_scope() as session:
            user = self._users(session).create(data)
        self.dispatcher.dispatch(user_upsert_task(user))
        return user

    def update_user(self, user_id: str, data: UserUpdate) -> User:
        with self.db.session_scope() as session:
            user = self._users(session).update(user_id, data)
        self.dispatcher.dispatch(user_upsert_task(user))
        return user

    def delete_user(self, user_id: str) -> None:
        with self.db.session_scope() as session:
            self._users(session).delete(user_id)
