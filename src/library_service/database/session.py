"""
Database session management for the Library Service.

Provides the engine, the session factory and the unit-of-work context manager
used by every request handler:

1. Connection pooling: one engine per process, pooled connections
2. Transaction management: one ``session_scope`` per operation, committed or
   rolled back as a whole
3. Write serialisation on SQLite: every transaction starts with
   ``BEGIN IMMEDIATE`` so that concurrent checkouts queue on the database lock
   instead of interleaving their read-then-write steps
"""

import logging
from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from .schema import Base

logger = logging.getLogger(__name__)


class DatabaseManager:
    """
    Manages database connections and sessions.

    This class provides:
    - Lazy engine creation with backend-specific settings
    - Session factory with explicit transactions
    - Schema creation for development and tests
    """

    def __init__(self, database_url: str):
        """
        Initialize the database manager.

        Args:
            database_url: SQLAlchemy database URL
        """
        self.database_url = database_url
        self._engine: Engine | None = None
        self._session_factory: sessionmaker | None = None

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")

    @property
    def engine(self) -> Engine:
        """
        Get or create the database engine.

        SQLite engines get foreign keys, a busy timeout and immediate
        transactions; other backends get a sized connection pool.
        """
        if self._engine is None:
            if self.is_sqlite:
                url = make_url(self.database_url)
                in_memory = url.database in (None, "", ":memory:")
                if in_memory:
                    # A single shared connection keeps the in-memory database alive
                    self._engine = create_engine(
                        self.database_url,
                        poolclass=StaticPool,
                        connect_args={"check_same_thread": False},
                        echo=False,
                    )
                else:
                    if url.database:
                        Path(url.database).parent.mkdir(parents=True, exist_ok=True)
                    self._engine = create_engine(
                        self.database_url,
                        connect_args={"check_same_thread": False, "timeout": 30},
                        echo=False,
                    )

                @event.listens_for(self._engine, "connect")
                def set_sqlite_pragma(dbapi_connection, connection_record):  # noqa: ARG001
                    # Let SQLAlchemy's "begin" hook below emit BEGIN itself
                    dbapi_connection.isolation_level = None
                    cursor = dbapi_connection.cursor()
                    cursor.execute("PRAGMA foreign_keys=ON")
                    cursor.close()

                @event.listens_for(self._engine, "begin")
                def begin_immediate(conn):
                    conn.exec_driver_sql("BEGIN IMMEDIATE")
            else:
                self._engine = create_engine(
                    self.database_url,
                    pool_size=10,
                    max_overflow=20,
                    pool_pre_ping=True,
                    echo=False,
                )

            logger.info("Database engine created: %s", self._engine.url)

        return self._engine

    @property
    def session_factory(self) -> sessionmaker:
        """Get or create the session factory."""
        if self._session_factory is None:
            self._session_factory = sessionmaker(
                bind=self.engine,
                autoflush=False,
                # Keep objects usable after commit for post-commit dispatch
                expire_on_commit=False,
            )
        return self._session_factory

    def create_session(self) -> Session:
        """Create a new database session. Callers own closing it."""
        return self.session_factory()

    @contextmanager
    def session_scope(self) -> Generator[Session, None, None]:
        """
        Provide a transactional scope for one unit of work.

        ```python
        with db_manager.session_scope() as session:
            ...
        # committed on success, rolled back on any exception
        ```
        """
        session = self.create_session()
        try:
            yield session
            session.commit()
            logger.debug("Database transaction committed successfully")
        except Exception:
            logger.debug("Rolling back database transaction", exc_info=True)
            session.rollback()
            raise
        finally:
            session.close()

    def init_database(self, drop_existing: bool = False) -> None:
        """
        Initialize the database schema.

        Args:
            drop_existing: If True, drop all tables before creating

        Note:
            Production deployments run migrations; this covers development and tests.
        """
        engine = self.engine

        if drop_existing:
            logger.warning("Dropping all existing tables...")
            Base.metadata.drop_all(bind=engine)

        logger.info("Creating database tables...")
        Base.metadata.create_all(bind=engine)
        logger.info("Database initialization complete")

    def verify_connection(self) -> bool:
        """Return True when a trivial query succeeds (health checks)."""
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except Exception:
            logger.exception("Database connection failed")
            return False

    def close(self) -> None:
        """Dispose of the engine and its pooled connections."""
        if self._engine:
            self._engine.dispose()
            logger.info("Database engine disposed")
        self._engine = None
        self._session_factory = None
