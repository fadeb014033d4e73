"""
agentstore - async SQLite persistence for an assistant's tasks, time
entries, notifications and memories.
"""

from .config import Settings, get_settings
from .errors import (
    AgentStoreError,
    InvalidTransitionError,
    MigrationError,
    NestedTransactionError,
    NotFoundError,
    QueryError,
    StorageConnectionError,
    TransactionError,
    UpdateFetchError,
)

try:
    from importlib.metadata import version

    __version__ = version("agentstore")
except Exception:
    __version__ = "0.0.0"

__all__ = [
    "AgentStoreError",
    "InvalidTransitionError",
    "MigrationError",
    "NestedTransactionError",
    "NotFoundError",
    "QueryError",
    "Settings",
    "StorageConnectionError",
    "TransactionError",
    "UpdateFetchError",
    "get_settings",
]
