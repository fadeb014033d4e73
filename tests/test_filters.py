"""Tests for the typed filter compiler."""

from datetime import datetime, timezone

import pytest

from agentstore.storage.connection import ConnectionManager
from agentstore.storage.filters import (
    Contains,
    Equals,
    In,
    IsNull,
    Like,
    Range,
    compile_order_and_limit,
    compile_predicate,
    compile_where,
    escape_like_pattern,
)
from agentstore.storage.task_repository import TaskRepository
from agentstore.types import TaskStatus


@pytest.fixture
def repo(tmp_path):
    # Predicate building never touches the database
    return TaskRepository(ConnectionManager(tmp_path / "unused.db"))


class TestCompilePredicate:
    def test_equals(self):
        assert compile_predicate(Equals("status", "DONE")) == ("status = ?", ["DONE"])

    def test_equals_converts_enums_and_datetimes(self):
        dt = datetime(2026, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
        assert compile_predicate(Equals("status", TaskStatus.PLANNED))[1] == ["PLANNED"]
        assert compile_predicate(Equals("due_date", dt))[1] == ["2026-01-02T03:04:05.000000+00:00"]

    def test_in(self):
        sql, params = compile_predicate(In("status", ("A", "B")))
        assert sql == "status IN (?, ?)"
        assert params == ["A", "B"]

    def test_empty_in_matches_nothing(self):
        assert compile_predicate(In("status", ())) == ("0", [])

    def test_range_both_bounds_inclusive(self):
        sql, params = compile_predicate(Range("duration", 10, 20))
        assert sql == "duration >= ? AND duration <= ?"
        assert params == [10, 20]

    def test_range_single_bound(self):
        assert compile_predicate(Range("duration", None, 20)) == ("duration <= ?", [20])
        assert compile_predicate(Range("duration", 10)) == ("duration >= ?", [10])

    def test_contains_any_value(self):
        sql, params = compile_predicate(Contains("tags", ("urgent", "backend")))
        assert sql == "(tags LIKE ? ESCAPE '\\' OR tags LIKE ? ESCAPE '\\')"
        assert params == ["%urgent%", "%backend%"]

    def test_like_over_several_columns_escapes_term(self):
        sql, params = compile_predicate(Like(("title", "description"), "50%_off"))
        assert sql == "(title LIKE ? ESCAPE '\\' OR description LIKE ? ESCAPE '\\')"
        assert params == ["%50\\%\\_off%", "%50\\%\\_off%"]

    def test_is_null(self):
        assert compile_predicate(IsNull("end_time")) == ("end_time IS NULL", [])

    def test_unknown_predicate_raises(self):
        with pytest.raises(TypeError):
            compile_predicate(object())


class TestCompileWhere:
    def test_empty(self):
        assert compile_where([]) == ("", [])

    def test_joins_with_and(self):
        sql, params = compile_where([Equals("status", "DONE"), Range("duration", 5)])
        assert sql == "WHERE status = ? AND duration >= ?"
        assert params == ["DONE", 5]


class TestOrderAndLimit:
    def test_order_defaults_to_ascending(self):
        assert compile_order_and_limit("due_date") == " ORDER BY due_date ASC"

    def test_limit_and_offset(self):
        assert compile_order_and_limit(limit=5, offset=10) == " LIMIT 5 OFFSET 10"

    def test_offset_requires_limit(self):
        assert compile_order_and_limit(offset=10) == ""

    def test_invalid_direction(self):
        with pytest.raises(ValueError):
            compile_order_and_limit("due_date", "SIDEWAYS")

    def test_escape_like_pattern(self):
        assert escape_like_pattern("a\\b%c_d") == "a\\\\b\\%c\\_d"


class TestRepositoryFilters:
    """Filter objects resolved through a repository."""

    def test_reserved_keys_do_not_become_predicates(self, repo):
        filter = {"status": "DONE", "limit": 5, "orderBy": "dueDate", "orderDirection": "DESC"}

        predicates = repo.build_predicates(filter)

        assert predicates == [Equals("status", "DONE")]
        assert compile_where(predicates) == ("WHERE status = ?", ["DONE"])
        assert repo.build_order_and_limit(filter) == " ORDER BY due_date DESC LIMIT 5"

    def test_order_tail_independent_of_predicates(self, repo):
        options = {"order_by": "due_date", "order_direction": "DESC", "limit": 5}
        with_predicates = {**options, "status": "DONE", "priority": "HIGH"}
        assert repo.build_order_and_limit(options) == repo.build_order_and_limit(with_predicates)

    def test_field_names_map_to_columns(self, repo):
        assert repo.build_predicates({"assignee": "alice"}) == [Equals("assignee_id", "alice")]

    def test_none_and_lists(self, repo):
        assert repo.build_predicates({"project": None}) == [IsNull("project_id")]
        assert repo.build_predicates({"status": ["CREATED", "PLANNED"]}) == [
            In("status", ("CREATED", "PLANNED"))
        ]

    def test_unknown_key_is_rejected(self, repo):
        with pytest.raises(ValueError):
            repo.build_predicates({"status; DROP TABLE tasks": "x"})

    def test_unknown_order_column_is_rejected(self, repo):
        with pytest.raises(ValueError):
            repo.build_order_and_limit({"order_by": "id; DROP TABLE tasks"})

    def test_domain_keys(self, repo):
        predicates = repo.build_predicates(
            {"search": "deploy", "due_date_start": "2026-01-01", "tags": ["ops"]}
        )
        assert Like(("title", "description"), "deploy") in predicates
        assert Range("due_date", "2026-01-01", None) in predicates
        assert Contains("tags", ("ops",)) in predicates
