"""Tests for TaskRepository queries and the status state machine."""

from datetime import datetime, timedelta, timezone

import pytest

from agentstore.errors import InvalidTransitionError
from agentstore.storage.task_repository import validate_status_transition
from agentstore.types import TASK_TRANSITIONS, Task, TaskPriority, TaskStatus, utc_now

ALLOWED = [(current, new) for current, targets in TASK_TRANSITIONS.items() for new in targets]
FORBIDDEN = [
    (current, new)
    for current in TaskStatus
    for new in TaskStatus
    if current != new and new not in TASK_TRANSITIONS[current]
]


class TestStatusTransitions:
    def test_created_to_review_is_rejected(self):
        with pytest.raises(InvalidTransitionError) as exc_info:
            validate_status_transition(TaskStatus.CREATED, TaskStatus.REVIEW)
        assert exc_info.value.current == TaskStatus.CREATED
        assert exc_info.value.requested == TaskStatus.REVIEW

    def test_created_to_planned_is_accepted(self):
        validate_status_transition(TaskStatus.CREATED, TaskStatus.PLANNED)

    @pytest.mark.parametrize("status", list(TaskStatus))
    def test_self_transition_is_accepted(self, status):
        validate_status_transition(status, status)

    @pytest.mark.parametrize("current,new", ALLOWED)
    def test_allowed_transitions(self, current, new):
        validate_status_transition(current, new)

    @pytest.mark.parametrize("current,new", FORBIDDEN)
    def test_forbidden_transitions(self, current, new):
        with pytest.raises(InvalidTransitionError):
            validate_status_transition(current, new)

    def test_cancelled_can_be_reopened(self):
        assert TASK_TRANSITIONS[TaskStatus.CANCELLED] == {TaskStatus.CREATED, TaskStatus.PLANNED}

    def test_invalid_transition_is_a_value_error(self):
        with pytest.raises(ValueError):
            validate_status_transition(TaskStatus.COMPLETED, TaskStatus.BLOCKED)


class TestUpdateStatus:
    async def test_valid_transition_is_persisted(self, task_repo):
        task = await task_repo.create(Task(title="x"))
        updated = await task_repo.update_status(task.id, TaskStatus.IN_PROGRESS)
        assert updated.status == TaskStatus.IN_PROGRESS
        assert (await task_repo.find_by_id(task.id)).status == TaskStatus.IN_PROGRESS

    async def test_invalid_transition_writes_nothing(self, task_repo):
        task = await task_repo.create(Task(title="x"))
        with pytest.raises(InvalidTransitionError):
            await task_repo.update_status(task.id, TaskStatus.COMPLETED)
        stored = await task_repo.find_by_id(task.id)
        assert stored.status == TaskStatus.CREATED
        assert stored.updated_at == task.updated_at

    async def test_missing_task_returns_none(self, task_repo):
        assert await task_repo.update_status("missing", TaskStatus.PLANNED) is None


class TestDefaults:
    async def test_new_task_defaults(self, task_repo):
        task = await task_repo.create(Task())
        assert task.title == "Untitled task"
        assert task.status == TaskStatus.CREATED
        assert task.priority == TaskPriority.MEDIUM
        assert task.metadata == {}

    async def test_missing_optional_columns_are_filled(self, task_repo, migrated_db):
        await migrated_db.run(
            "INSERT INTO tasks (id, title, type, status, priority) VALUES (?, ?, ?, ?, ?)",
            ("raw", "raw task", "REVIEW", "PLANNED", "LOW"),
        )
        task = await task_repo.find_by_id("raw")
        assert task.description == ""
        assert task.tags == []
        assert task.metadata == {}
        assert task.due_date is None


class TestQueries:
    async def test_find_by_status_assignee_project(self, task_repo):
        await task_repo.create(Task(title="a", assignee="alice", project="core"))
        await task_repo.create(
            Task(title="b", assignee="bob", project="web", status=TaskStatus.PLANNED)
        )

        assert [t.title for t in await task_repo.find_by_status(TaskStatus.PLANNED)] == ["b"]
        assert [t.title for t in await task_repo.find_by_assignee("alice")] == ["a"]
        assert [t.title for t in await task_repo.find_by_project("web")] == ["b"]

    async def test_find_by_due_date_is_inclusive(self, task_repo):
        base = datetime(2026, 5, 1, tzinfo=timezone.utc)
        for days in (0, 5, 10):
            await task_repo.create(Task(title=f"d{days}", due_date=base + timedelta(days=days)))

        found = await task_repo.find_by_due_date(base, base + timedelta(days=5))

        assert sorted(t.title for t in found) == ["d0", "d5"]

    async def test_search_by_keyword(self, task_repo):
        await task_repo.create(Task(title="Fix login bug"))
        await task_repo.create(Task(title="Docs", description="explain the LOGIN flow"))
        await task_repo.create(Task(title="Unrelated"))
        found = await task_repo.search_by_keyword("login")
        assert sorted(t.title for t in found) == ["Docs", "Fix login bug"]

    async def test_find_by_project_with_filter(self, task_repo):
        await task_repo.create(Task(title="a", project="p", priority=TaskPriority.HIGH))
        await task_repo.create(
            Task(title="b", project="p", priority=TaskPriority.LOW, status=TaskStatus.PLANNED)
        )
        await task_repo.create(Task(title="c", project="other", priority=TaskPriority.HIGH))

        found = await task_repo.find_by_project_with_filter(
            "p", statuses=[TaskStatus.CREATED, TaskStatus.PLANNED], priorities=[TaskPriority.HIGH]
        )

        assert [t.title for t in found] == ["a"]

    async def test_find_upcoming_deadlines(self, task_repo):
        now = utc_now()
        soon = await task_repo.create(
            Task(title="soon", status=TaskStatus.IN_PROGRESS, due_date=now + timedelta(days=2))
        )
        sooner = await task_repo.create(
            Task(title="sooner", status=TaskStatus.IN_PROGRESS, due_date=now + timedelta(hours=1))
        )
        await task_repo.create(
            Task(title="later", status=TaskStatus.IN_PROGRESS, due_date=now + timedelta(days=10))
        )
        await task_repo.create(Task(title="not started", due_date=now + timedelta(days=1)))
        await task_repo.create(Task(title="no date", status=TaskStatus.IN_PROGRESS))

        found = await task_repo.find_upcoming_deadlines()

        assert [t.id for t in found] == [sooner.id, soon.id]

    async def test_subtasks_and_parent_delete(self, task_repo):
        parent = await task_repo.create(Task(title="parent"))
        child = await task_repo.create(Task(title="child", parent_task_id=parent.id))

        assert [t.id for t in await task_repo.find_subtasks(parent.id)] == [child.id]

        await task_repo.delete(parent.id)
        assert (await task_repo.find_by_id(child.id)).parent_task_id is None

    async def test_filter_by_tags(self, task_repo):
        await task_repo.create(Task(title="a", tags=["backend"]))
        await task_repo.create(Task(title="b", tags=["frontend"]))
        found = await task_repo.find_all({"tags": ["backend", "ops"]})
        assert [t.title for t in found] == ["a"]
