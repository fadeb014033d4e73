"""agentstore storage layer.

Async SQLite persistence: one connection manager, versioned migrations, a
typed filter compiler, a generic repository and one repository per record
kind.
"""

from .base_repository import BaseRepository
from .connection import ConnectionManager, RunResult
from .filters import Contains, Equals, In, IsNull, Like, Range
from .memory_repository import MemoryRepository
from .migration_engine import MigrationEngine, MigrationStatus, MigrationUnit
from .notification_repository import NotificationRepository
from .task_repository import TaskRepository, validate_status_transition
from .time_entry_repository import TimeEntryRepository

__all__ = [
    "BaseRepository",
    "ConnectionManager",
    "Contains",
    "Equals",
    "In",
    "IsNull",
    "Like",
    "MemoryRepository",
    "MigrationEngine",
    "MigrationStatus",
    "MigrationUnit",
    "NotificationRepository",
    "Range",
    "RunResult",
    "TaskRepository",
    "TimeEntryRepository",
    "validate_status_transition",
]
