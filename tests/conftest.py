"""Shared pytest fixtures for all tests."""

import sqlite3
from contextlib import contextmanager
from pathlib import Path

import pytest

from cli.migrate import apply_pending_migrations
from config import Config, get_migrations_dir
from services.base import Services


@pytest.fixture
def test_db():
    """Create an in-memory SQLite database for testing.

    Yields:
        sqlite3.Connection: Connection to in-memory database.
    """
    # Transport tests run the dispatcher on a worker thread
    conn = sqlite3.connect(":memory:", check_same_thread=False)
    conn.execute("PRAGMA foreign_keys = ON")
    yield conn
    conn.close()


@pytest.fixture
def test_config(tmp_path):
    """Create a test configuration pointing to a temporary directory.

    Args:
        tmp_path: pytest tmp_path fixture for temporary directory.

    Returns:
        Config: Test configuration object.
    """
    return Config(
        base_dir=tmp_path / "arbor",
        db_data_dir=tmp_path / "arbor" / "db",
        db_filename="test.db",
        log_level="DEBUG",
        log_dir=tmp_path / "arbor" / "logs",
        telegram_token="123456:TEST-TOKEN",
        telegram_username="arbor_test_bot",
    )


@pytest.fixture
def db_manager_with_schema(test_db):
    """Create a DatabaseManager with schema already set up.

    This fixture provides a DatabaseManager that uses an in-memory database
    with all migrations already applied.

    Args:
        test_db: In-memory database connection fixture.

    Returns:
        DatabaseManager: Database manager with schema ready.
    """
    apply_pending_migrations(test_db, get_migrations_dir())

    class TestDatabaseManager:
        """Test database manager that shares one in-memory connection."""

        def __init__(self, conn):
            self.conn = conn

        @contextmanager
        def connect(self):
            # Don't close the connection - let the fixture handle it
            yield self.conn

        @contextmanager
        def transaction(self):
            try:
                yield self.conn
                self.conn.commit()
            except Exception:
                self.conn.rollback()
                raise

        def get_db_path(self):
            """Return a fake path for the test database."""
            return Path(":memory:")

        def get_migrations_dir(self):
            return get_migrations_dir()

    return TestDatabaseManager(test_db)


@pytest.fixture
def services(test_config, db_manager_with_schema):
    """Create a Services container with test database.

    Args:
        test_config: Test configuration fixture.
        db_manager_with_schema: Database manager with schema set up.

    Returns:
        Services: Services container for testing.
    """
    return Services(test_config, db_manager=db_manager_with_schema)
