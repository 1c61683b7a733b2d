"""Tests for container wiring, the database manager and the CLI."""

from datetime import datetime

import pytest
from conftest import add_book, add_checkout, add_user
from sqlalchemy.exc import IntegrityError

from library_service.cli import build_parser, main
from library_service.config import ServiceConfig
from library_service.database.schema import User as UserDB
from library_service.database.session import DatabaseManager
from library_service.runtime import ServiceContainer, build_dispatcher, get_container
from library_service.services.dispatcher import BackgroundDispatcher, NullDispatcher
from library_service.services.email import ResendEmailSender


class TestBuildDispatcher:
    def test_null_without_sync(self):
        assert isinstance(build_dispatcher(ServiceConfig(_env_file=None)), NullDispatcher)

    def test_background_with_sync(self):
        config = ServiceConfig(
            _env_file=None,
            sync_base_url="https://sync.example.com",
            sync_service_key="key",
        )
        dispatcher = build_dispatcher(config)
        try:
            assert isinstance(dispatcher, BackgroundDispatcher)
            assert set(dispatcher.handlers) == {"realtime_sync"}
        finally:
            dispatcher.shutdown()


class TestServiceContainer:
    def test_from_config(self, test_config):
        container = ServiceContainer.from_config(test_config)
        try:
            assert container.email_sender is None
            with pytest.raises(RuntimeError):
                container.overdue_sweep
        finally:
            container.close()

    def test_email_sender_when_key_configured(self, test_config):
        config = test_config.model_copy(update={"email_api_key": "re_key"})
        container = ServiceContainer.from_config(config)
        try:
            assert isinstance(container.email_sender, ResendEmailSender)
            assert container.overdue_sweep is container.overdue_sweep
        finally:
            container.close()

    def test_close_shuts_down_dispatcher(self, container, dispatcher):
        container.close()
        assert dispatcher.shut_down is True

    def test_get_container_builds_from_environment(self, monkeypatch, tmp_path):
        monkeypatch.setenv("LIBRARY_DATABASE_URL", f"sqlite:///{tmp_path / 'env.db'}")
        container = get_container()
        try:
            assert container.config.database_url.endswith("env.db")
            assert get_container() is container
        finally:
            container.close()


class TestDatabaseManager:
    def test_in_memory_database(self):
        manager = DatabaseManager("sqlite:///:memory:")
        manager.init_database()
        try:
            assert manager.verify_connection() is True
        finally:
            manager.close()

    def test_rolls_back_on_error(self, db):
        with pytest.raises(RuntimeError):
            with db.session_scope() as session:
                session.add(UserDB(email="lost@example.com", name="Lost", max_checkouts=5))
                session.flush()
                raise RuntimeError("boom")

        with db.session_scope() as session:
            assert session.query(UserDB).count() == 0

    def test_foreign_keys_enforced(self, db):
        user_id = add_user(db)
        with pytest.raises(IntegrityError):
            add_checkout(db, user_id, "no-such-book", due_date=datetime(2024, 1, 1))


class TestCli:
    def test_parser_commands(self):
        parser = build_parser()
        assert parser.parse_args(["init-db", "--drop-existing"]).drop_existing is True
        assert parser.parse_args(["serve", "--port", "9000"]).port == 9000
        assert parser.parse_args(["sweep"]).command == "sweep"

    def test_init_db(self, monkeypatch, tmp_path):
        db_file = tmp_path / "cli.db"
        monkeypatch.setenv("LIBRARY_DATABASE_URL", f"sqlite:///{db_file}")

        assert main(["init-db"]) == 0
        assert db_file.exists()

    def test_sweep_without_email_key_fails(self, monkeypatch, tmp_path):
        monkeypatch.setenv("LIBRARY_DATABASE_URL", f"sqlite:///{tmp_path / 'cli.db'}")
        assert main(["sweep"]) == 1

    def test_sweep_prints_report(self, monkeypatch, tmp_path, capsys):
        db_url = f"sqlite:///{tmp_path / 'cli.db'}"
        manager = DatabaseManager(db_url)
        manager.init_database()
        add_book(manager)
        manager.close()
        monkeypatch.setenv("LIBRARY_DATABASE_URL", db_url)
        monkeypatch.setenv("LIBRARY_EMAIL_API_KEY", "re_key")

        assert main(["sweep"]) == 0
        assert "examined=0 sent=0 failed=0" in capsys.readouterr().out
