"""Task persistence and the task status state machine."""

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Sequence

from agentstore.errors import InvalidTransitionError
from agentstore.storage.base_repository import BaseRepository, Filter
from agentstore.storage.codecs import (
    datetime_to_text,
    from_json,
    safe_get,
    text_to_datetime,
    to_json,
)
from agentstore.storage.filters import Contains, Equals, In, Like, Predicate, Range
from agentstore.types import (
    TASK_TRANSITIONS,
    Task,
    TaskPriority,
    TaskStatus,
    TaskType,
    utc_now,
)

logger = logging.getLogger(__name__)


def validate_status_transition(current: TaskStatus, new: TaskStatus) -> None:
    """Raise InvalidTransitionError unless ``current -> new`` is allowed.

    Staying in the same status is always allowed.
    """
    current = TaskStatus(current)
    new = TaskStatus(new)
    if current == new:
        return
    if new not in TASK_TRANSITIONS.get(current, frozenset()):
        raise InvalidTransitionError(current, new)


class TaskRepository(BaseRepository[Task]):
    table_name = "tasks"
    columns = frozenset(
        {
            "id",
            "title",
            "description",
            "type",
            "status",
            "priority",
            "due_date",
            "created_at",
            "updated_at",
            "assignee_id",
            "project_id",
            "parent_task_id",
            "tags",
            "metadata",
        }
    )
    field_columns = {"assignee": "assignee_id", "project": "project_id"}
    tag_table = ("task_tags", "task_id")

    def entity_to_row(self, task: Task) -> Dict[str, Any]:
        return {
            "title": task.title or "Untitled task",
            "description": task.description,
            "type": TaskType(task.type).value,
            "status": TaskStatus(task.status).value,
            "priority": TaskPriority(task.priority).value,
            "due_date": datetime_to_text(task.due_date),
            "assignee_id": task.assignee,
            "project_id": task.project,
            "parent_task_id": task.parent_task_id,
            "tags": to_json(task.tags or []),
            "metadata": to_json(task.metadata or {}),
        }

    def row_to_entity(self, row: Dict[str, Any]) -> Task:
        return Task(
            id=row["id"],
            title=safe_get(row, "title", "Untitled task"),
            description=safe_get(row, "description", ""),
            type=TaskType(safe_get(row, "type", TaskType.DEVELOPMENT.value)),
            status=TaskStatus(safe_get(row, "status", TaskStatus.CREATED.value)),
            priority=TaskPriority(safe_get(row, "priority", TaskPriority.MEDIUM.value)),
            assignee=row.get("assignee_id"),
            project=row.get("project_id"),
            due_date=text_to_datetime(row.get("due_date")),
            parent_task_id=row.get("parent_task_id"),
            tags=from_json(row.get("tags")) or [],
            metadata=from_json(row.get("metadata")) or {},
            created_at=text_to_datetime(row.get("created_at")),
            updated_at=text_to_datetime(row.get("updated_at")),
        )

    def build_predicates(self, filter: Filter) -> List[Predicate]:
        filter = dict(filter)
        predicates: List[Predicate] = []

        due_start = filter.pop("due_date_start", None)
        due_end = filter.pop("due_date_end", None)
        if due_start is not None or due_end is not None:
            predicates.append(Range("due_date", due_start, due_end))

        search = filter.pop("search", None)
        if search:
            predicates.append(Like(("title", "description"), search))

        tags = filter.pop("tags", None)
        if tags:
            predicates.append(Contains("tags", tuple(tags)))

        statuses = filter.pop("statuses", None)
        if statuses:
            predicates.append(In("status", tuple(statuses)))

        priorities = filter.pop("priorities", None)
        if priorities:
            predicates.append(In("priority", tuple(priorities)))

        return predicates + super().build_predicates(filter)

    # === Queries ===

    async def find_by_status(self, status: TaskStatus) -> List[Task]:
        return await self.find_all({"status": status})

    async def find_by_assignee(self, assignee: str) -> List[Task]:
        return await self.find_all({"assignee": assignee})

    async def find_by_project(self, project: str) -> List[Task]:
        return await self.find_all({"project": project})

    async def find_by_due_date(self, start: datetime, end: datetime) -> List[Task]:
        return await self.find_all({"due_date_start": start, "due_date_end": end})

    async def find_subtasks(self, parent_task_id: str) -> List[Task]:
        return await self.find_all({"parent_task_id": parent_task_id})

    async def search_by_keyword(self, keyword: str) -> List[Task]:
        return await self.find_all({"search": keyword})

    async def find_by_project_with_filter(
        self,
        project: str,
        statuses: Optional[Sequence[TaskStatus]] = None,
        priorities: Optional[Sequence[TaskPriority]] = None,
        assignee: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> List[Task]:
        filter: Dict[str, Any] = {"project": project}
        if statuses:
            filter["statuses"] = statuses
        if priorities:
            filter["priorities"] = priorities
        if assignee:
            filter["assignee"] = assignee
        if start_date:
            filter["due_date_start"] = start_date
        if end_date:
            filter["due_date_end"] = end_date
        return await self.find_all(filter)

    async def find_upcoming_deadlines(self, days_threshold: int = 3) -> List[Task]:
        """In-progress tasks due within the next ``days_threshold`` days, soonest first.

        Overdue in-progress tasks are included.
        """
        threshold = utc_now() + timedelta(days=days_threshold)
        rows = await self._select(
            [
                Equals("status", TaskStatus.IN_PROGRESS),
                Range("due_date", None, threshold),
            ],
            " ORDER BY due_date ASC",
        )
        return [self.row_to_entity(row) for row in rows]

    # === Mutators ===

    async def update_status(self, task_id: str, status: TaskStatus) -> Optional[Task]:
        """Move a task to ``status`` if the transition is allowed.

        Returns None if the task does not exist.

        Raises:
            InvalidTransitionError: The transition is not allowed. Nothing is written.
        """
        task = await self.find_by_id(task_id)
        if task is None:
            return None
        validate_status_transition(task.status, status)
        if task.status == TaskStatus(status):
            return task
        logger.info(f"Task {task_id}: {task.status.value} -> {TaskStatus(status).value}")
        return await self.update(task_id, {"status": TaskStatus(status)})
