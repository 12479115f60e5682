"""
Test fixtures for the engine.

Every test gets its own in-memory SQLite database with all six tables, a
session bound to it, and freshly loaded configuration.
"""

import pytest
from sqlalchemy.orm import Session

from hera_core.config import reset_config
from hera_core.db import DatabaseConfig, DatabaseManager, import_all_models, set_db_manager
from hera_core.exceptions import clear_correlation_id
from hera_core.utils.logger import reset_logging
from tests.fixtures.factories import configure_factories


@pytest.fixture(scope="session")
def db_config() -> DatabaseConfig:
    """Create SQLite in-memory database configuration for testing."""
    return DatabaseConfig(
        db_type="sqlite",
        database=":memory:",
        echo=False,
        development_mode=True,
    )


@pytest.fixture(autouse=True)
def clean_environment():
    """Fresh configuration and logging for every test."""
    reset_config()
    yield
    reset_config()
    reset_logging()
    clear_correlation_id()


@pytest.fixture(scope="function")
def db_manager(db_config: DatabaseConfig) -> DatabaseManager:
    """Database manager with all tables created, registered globally."""
    import_all_models()
    manager = DatabaseManager(db_config)
    manager.create_tables()
    set_db_manager(manager)

    yield manager

    set_db_manager(None)
    manager.close()


@pytest.fixture(scope="function")
def db_session(db_manager: DatabaseManager) -> Session:
    """
    Create a database session for each test.

    Services under test borrow this session, so nothing is committed unless a
    test commits explicitly.
    """
    session = db_manager.new_session()
    configure_factories(session)

    yield session

    session.rollback()
    session.close()
