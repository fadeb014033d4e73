"""Tests for the agentstore error hierarchy."""

import pytest

from agentstore import errors
from agentstore.types import TaskStatus


class TestErrorHierarchy:
    @pytest.mark.parametrize(
        "error",
        [
            errors.StorageConnectionError("boom", path="/tmp/x.db"),
            errors.QueryError("bad", sql="SELECT 1", params=[1]),
            errors.MigrationError("failed", migration_id="001"),
            errors.NotFoundError("task", "abc"),
            errors.NestedTransactionError(),
            errors.UpdateFetchError("tasks", "abc"),
            errors.InvalidTransitionError(TaskStatus.CREATED, TaskStatus.COMPLETED),
        ],
    )
    def test_all_derive_from_base(self, error):
        assert isinstance(error, errors.AgentStoreError)

    def test_query_error_keeps_statement(self):
        error = errors.QueryError("bad", sql="SELECT ?", params=[1, "a"])
        assert error.sql == "SELECT ?"
        assert error.params == (1, "a")

    def test_not_found_message(self):
        error = errors.NotFoundError("memory", "m-1")
        assert error.entity == "memory"
        assert error.entity_id == "m-1"
        assert str(error) == "memory not found: m-1"

    def test_nested_transaction_is_transaction_error(self):
        assert isinstance(errors.NestedTransactionError(), errors.TransactionError)

    def test_invalid_transition_message(self):
        error = errors.InvalidTransitionError(TaskStatus.CREATED, TaskStatus.REVIEW)
        assert isinstance(error, ValueError)
        assert str(error) == "Invalid status transition: CREATED -> REVIEW"
