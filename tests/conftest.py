"""
Pytest fixtures and test configuration for agentstore tests.
"""

import logging

import pytest

from agentstore.config import get_settings
from agentstore.storage.connection import ConnectionManager
from agentstore.storage.memory_repository import MemoryRepository
from agentstore.storage.migration_engine import MigrationEngine
from agentstore.storage.notification_repository import NotificationRepository
from agentstore.storage.task_repository import TaskRepository
from agentstore.storage.time_entry_repository import TimeEntryRepository


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path, monkeypatch):
    """Point settings at a per-test data directory."""
    monkeypatch.setenv("AGENTSTORE_DATA_DIR", str(tmp_path / "data"))
    for name in (
        "AGENTSTORE_DATABASE_PATH",
        "AGENTSTORE_MIGRATIONS_PATH",
        "AGENTSTORE_LOG_LEVEL",
        "AGENTSTORE_LOG_DIR",
        "AGENTSTORE_SIMILARITY_THRESHOLD",
        "AGENTSTORE_SIMILARITY_LIMIT",
    ):
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def clean_agentstore_logger():
    """Remove all handlers from the agentstore logger before/after a test."""
    logger = logging.getLogger("agentstore")
    logger.handlers.clear()
    logger.setLevel(logging.NOTSET)
    yield logger
    for handler in logger.handlers:
        handler.close()
    logger.handlers.clear()
    logger.setLevel(logging.NOTSET)


@pytest.fixture
async def db(tmp_path):
    """A connection manager on a fresh database file."""
    manager = ConnectionManager(tmp_path / "store" / "agentstore.db")
    yield manager
    await manager.close()


@pytest.fixture
async def migrated_db(db):
    """A connection manager with the packaged schema applied."""
    await MigrationEngine(db).migrate_up()
    return db


@pytest.fixture
def task_repo(migrated_db):
    return TaskRepository(migrated_db)


@pytest.fixture
def time_repo(migrated_db):
    return TimeEntryRepository(migrated_db)


@pytest.fixture
def notification_repo(migrated_db):
    return NotificationRepository(migrated_db)


@pytest.fixture
def memory_repo(migrated_db):
    return MemoryRepository(migrated_db)
