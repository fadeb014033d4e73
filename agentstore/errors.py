"""
Error taxonomy for agentstore.

Lookup misses are not errors: repositories return None (or False for
deletes). Everything below is raised for conditions the caller has to
handle or that indicate a broken storage layer.
"""

from typing import Any, Optional, Sequence


class AgentStoreError(Exception):
    """Base for all agentstore errors."""

    pass


class StorageConnectionError(AgentStoreError):
    """Raised when the database file cannot be opened or closed."""

    def __init__(self, message: str, path: Optional[str] = None):
        self.path = path
        super().__init__(message)


class QueryError(AgentStoreError):
    """Raised when a statement fails to execute.

    Carries the statement text and its parameters so the failure can be
    reproduced from the log.
    """

    def __init__(self, message: str, sql: str, params: Sequence[Any] = ()):
        self.sql = sql
        self.params = tuple(params)
        super().__init__(message)


class MigrationError(AgentStoreError):
    """Raised when a migration unit fails or a rollback target is unknown."""

    def __init__(
        self,
        message: str,
        migration_id: Optional[str] = None,
        filename: Optional[str] = None,
    ):
        self.migration_id = migration_id
        self.filename = filename
        super().__init__(message)


class NotFoundError(AgentStoreError):
    """Raised by callers that treat a missing record as an error."""

    def __init__(self, entity: str, entity_id: str):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} not found: {entity_id}")


class TransactionError(AgentStoreError):
    """Raised when BEGIN, COMMIT or ROLLBACK fails."""

    pass


class NestedTransactionError(TransactionError):
    """Raised when a transaction is started inside another one."""

    def __init__(self, message: str = "A transaction is already active on this connection"):
        super().__init__(message)


class UpdateFetchError(AgentStoreError):
    """Raised when an updated row cannot be read back."""

    def __init__(self, table: str, record_id: str):
        self.table = table
        self.record_id = record_id
        super().__init__(f"Failed to fetch {table}/{record_id} after update")


class InvalidTransitionError(AgentStoreError, ValueError):
    """Raised when a task status change is not allowed."""

    def __init__(self, current: Any, requested: Any):
        self.current = current
        self.requested = requested
        current_value = getattr(current, "value", current)
        requested_value = getattr(requested, "value", requested)
        super().__init__(f"Invalid status transition: {current_value} -> {requested_value}")
