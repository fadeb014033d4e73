"""Time entry persistence and duration aggregates."""

import logging
from datetime import datetime
from typing import Any, Dict, List

from agentstore.storage.base_repository import BaseRepository, Filter
from agentstore.storage.codecs import (
    datetime_to_text,
    from_json,
    safe_get,
    text_to_datetime,
    to_json,
)
from agentstore.storage.filters import Contains, IsNull, Like, Predicate, Range
from agentstore.types import TimeCategory, TimeEntry, utc_now

logger = logging.getLogger(__name__)

# group_by option -> SQL grouping expression
_GROUP_EXPRESSIONS = {
    "category": "type",
    "task_id": "COALESCE(task_id, 'none')",
    "date": "date(start_time)",
}


class TimeEntryRepository(BaseRepository[TimeEntry]):
    table_name = "time_entries"
    columns = frozenset(
        {
            "id",
            "user_id",
            "task_id",
            "project_id",
            "start_time",
            "end_time",
            "duration",
            "description",
            "type",
            "source",
            "tags",
            "metadata",
            "created_at",
            "updated_at",
        }
    )
    field_columns = {"category": "type"}
    tag_table = ("time_entry_tags", "time_entry_id")

    def entity_to_row(self, entry: TimeEntry) -> Dict[str, Any]:
        return {
            "user_id": entry.user_id or "local",
            "task_id": entry.task_id,
            "project_id": entry.project_id,
            "start_time": datetime_to_text(entry.start_time or utc_now()),
            "end_time": datetime_to_text(entry.end_time),
            "duration": int(entry.duration or 0),
            "description": entry.description or "",
            "type": TimeCategory(entry.category).value,
            "source": entry.source or "manual",
            "tags": to_json(entry.tags or []),
            "metadata": to_json(entry.metadata or {}),
        }

    def row_to_entity(self, row: Dict[str, Any]) -> TimeEntry:
        return TimeEntry(
            id=row["id"],
            start_time=text_to_datetime(row.get("start_time")),
            end_time=text_to_datetime(row.get("end_time")),
            duration=safe_get(row, "duration", 0),
            category=TimeCategory(safe_get(row, "type", TimeCategory.DEVELOPMENT.value)),
            description=safe_get(row, "description", ""),
            task_id=row.get("task_id"),
            user_id=safe_get(row, "user_id", "local"),
            project_id=row.get("project_id"),
            source=safe_get(row, "source", "manual"),
            tags=from_json(row.get("tags")) or [],
            metadata=from_json(row.get("metadata")) or {},
            created_at=text_to_datetime(row.get("created_at")),
            updated_at=text_to_datetime(row.get("updated_at")),
        )

    def build_predicates(self, filter: Filter) -> List[Predicate]:
        filter = dict(filter)
        predicates: List[Predicate] = []

        start_from = filter.pop("start_time_from", None)
        start_to = filter.pop("start_time_to", None)
        if start_from is not None or start_to is not None:
            predicates.append(Range("start_time", start_from, start_to))

        end_from = filter.pop("end_time_from", None)
        end_to = filter.pop("end_time_to", None)
        if end_from is not None or end_to is not None:
            predicates.append(Range("end_time", end_from, end_to))

        min_duration = filter.pop("min_duration", None)
        max_duration = filter.pop("max_duration", None)
        if min_duration is not None or max_duration is not None:
            predicates.append(Range("duration", min_duration, max_duration))

        tags = filter.pop("tags", None)
        if tags:
            predicates.append(Contains("tags", tuple(tags)))

        search = filter.pop("search", None)
        if search:
            predicates.append(Like(("description",), search))

        return predicates + super().build_predicates(filter)

    async def find_by_task_id(self, task_id: str) -> List[TimeEntry]:
        return await self.find_all({"task_id": task_id})

    async def find_by_time_range(self, start: datetime, end: datetime) -> List[TimeEntry]:
        """Entries that started within [start, end]."""
        return await self.find_all({"start_time_from": start, "start_time_to": end})

    async def find_by_category(self, category: TimeCategory) -> List[TimeEntry]:
        return await self.find_all({"category": category})

    async def find_by_tag(self, tag: str) -> List[TimeEntry]:
        return await self.find_all({"tags": [tag]})

    async def find_active_entries(self) -> List[TimeEntry]:
        """Entries that are still running (no end time)."""
        rows = await self._select([IsNull("end_time")], " ORDER BY start_time ASC")
        return [self.row_to_entity(row) for row in rows]

    async def sum_duration_by_period(
        self, start: datetime, end: datetime, group_by: str = "category"
    ) -> Dict[str, int]:
        """Total minutes of entries starting within [start, end], grouped.

        Args:
            group_by: ``"category"``, ``"task_id"`` (entries without a task
                are keyed ``"none"``) or ``"date"`` (``YYYY-MM-DD``).
        """
        expression = _GROUP_EXPRESSIONS.get(group_by)
        if expression is None:
            raise ValueError(f"Invalid group_by: {group_by}")

        rows = await self.db.all(
            f"""
            SELECT {expression} AS group_key, SUM(duration) AS total_duration
            FROM time_entries
            WHERE start_time >= ? AND start_time <= ?
            GROUP BY {expression}
            """,
            (datetime_to_text(start), datetime_to_text(end)),
        )
        return {row["group_key"]: row["total_duration"] or 0 for row in rows}
