"""Notification persistence, status tracking and statistics."""

import logging
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Sequence

from agentstore.storage.base_repository import BaseRepository, Filter
from agentstore.storage.codecs import (
    datetime_to_text,
    from_json,
    safe_get,
    text_to_datetime,
    to_json,
)
from agentstore.storage.filters import (
    In,
    Like,
    Predicate,
    Range,
    compile_where,
)
from agentstore.types import (
    READ_STATUSES,
    Notification,
    NotificationAction,
    NotificationPriority,
    NotificationStatistics,
    NotificationStatus,
    NotificationType,
    utc_now,
)

logger = logging.getLogger(__name__)


class NotificationRepository(BaseRepository[Notification]):
    table_name = "notifications"
    columns = frozenset(
        {
            "id",
            "user_id",
            "type",
            "title",
            "message",
            "priority",
            "status",
            "source",
            "timestamp",
            "read",
            "expires_at",
            "actions",
            "metadata",
            "created_at",
            "updated_at",
        }
    )

    def entity_to_row(self, notification: Notification) -> Dict[str, Any]:
        status = NotificationStatus(notification.status)
        return {
            "user_id": notification.user_id or "local",
            "type": NotificationType(notification.type).value,
            "title": notification.title,
            "message": notification.message,
            "priority": NotificationPriority(notification.priority).value,
            "status": status.value,
            "source": notification.source or "system",
            "timestamp": datetime_to_text(notification.timestamp or utc_now()),
            "read": int(status in READ_STATUSES),
            "expires_at": datetime_to_text(notification.expires_at),
            "actions": to_json([action.to_dict() for action in notification.actions or []]),
            "metadata": to_json(notification.metadata or {}),
        }

    def row_to_entity(self, row: Dict[str, Any]) -> Notification:
        actions = from_json(row.get("actions")) or []
        return Notification(
            id=row["id"],
            type=NotificationType(safe_get(row, "type", NotificationType.SYSTEM.value)),
            priority=NotificationPriority(
                safe_get(row, "priority", NotificationPriority.MEDIUM.value)
            ),
            title=safe_get(row, "title", ""),
            message=safe_get(row, "message", ""),
            source=safe_get(row, "source", "system"),
            timestamp=text_to_datetime(row.get("timestamp")),
            status=NotificationStatus(safe_get(row, "status", NotificationStatus.PENDING.value)),
            expires_at=text_to_datetime(row.get("expires_at")),
            actions=[NotificationAction.from_dict(a) for a in actions],
            user_id=safe_get(row, "user_id", "local"),
            metadata=from_json(row.get("metadata")) or {},
            created_at=text_to_datetime(row.get("created_at")),
            updated_at=text_to_datetime(row.get("updated_at")),
        )

    def changes_to_columns(self, changes: Mapping[str, Any]) -> Dict[str, Any]:
        changes = dict(changes)
        # read is derived from status and never set directly
        changes.pop("read", None)
        actions = changes.pop("actions", None)
        columns = super().changes_to_columns(changes)
        if actions is not None:
            columns["actions"] = to_json(
                [a.to_dict() if isinstance(a, NotificationAction) else a for a in actions]
            )
        if "status" in changes:
            columns["read"] = int(NotificationStatus(changes["status"]) in READ_STATUSES)
        return columns

    def build_predicates(self, filter: Filter) -> List[Predicate]:
        filter = dict(filter)
        predicates: List[Predicate] = []

        from_date = filter.pop("from_date", None)
        to_date = filter.pop("to_date", None)
        if from_date is not None or to_date is not None:
            predicates.append(Range("timestamp", from_date, to_date))

        expires_after = filter.pop("expires_after", None)
        expires_before = filter.pop("expires_before", None)
        if expires_after is not None or expires_before is not None:
            predicates.append(Range("expires_at", expires_after, expires_before))

        search = filter.pop("search", None)
        if search:
            predicates.append(Like(("title", "message"), search))

        return predicates + super().build_predicates(filter)

    # === Status ===

    async def mark_as(
        self,
        notification_id: str,
        status: NotificationStatus,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Optional[Notification]:
        """Change the status, merging ``metadata`` and recording the change.

        Each call appends ``{from, to, timestamp}`` to
        ``metadata["status_history"]``. Returns None if the notification
        does not exist.
        """
        status = NotificationStatus(status)
        async with self._atomic():
            notification = await self.find_by_id(notification_id)
            if notification is None:
                return None

            merged = {**notification.metadata, **(metadata or {})}
            history = list(notification.metadata.get("status_history", []))
            history.append(
                {
                    "from": notification.status.value,
                    "to": status.value,
                    "timestamp": datetime_to_text(utc_now()),
                }
            )
            merged["status_history"] = history
            return await self.update(notification_id, {"status": status, "metadata": merged})

    # === Queries ===

    async def find_by_status(
        self,
        status: NotificationStatus,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> List[Notification]:
        """Notifications with ``status``, newest first."""
        filter: Dict[str, Any] = {
            "status": status,
            "order_by": "timestamp",
            "order_direction": "DESC",
        }
        if limit is not None:
            filter["limit"] = limit
        if offset is not None:
            filter["offset"] = offset
        return await self.find_all(filter)

    async def find_by_source(self, source: str) -> List[Notification]:
        return await self.find_all({"source": source})

    async def get_unread_count(
        self,
        types: Optional[Sequence[NotificationType]] = None,
        priorities: Optional[Sequence[NotificationPriority]] = None,
    ) -> int:
        """Count delivered notifications that have not been read yet."""
        filter: Dict[str, Any] = {"status": NotificationStatus.DELIVERED}
        if types:
            filter["type"] = list(types)
        if priorities:
            filter["priority"] = list(priorities)
        return await self.count(filter)

    async def find_expired_notifications(self) -> List[Notification]:
        """Notifications past their expiry that are not yet EXPIRED or DISMISSED."""
        rows = await self.db.all(
            """
            SELECT * FROM notifications
            WHERE expires_at IS NOT NULL AND expires_at <= ?
              AND status NOT IN (?, ?)
            ORDER BY expires_at ASC
            """,
            (
                datetime_to_text(utc_now()),
                NotificationStatus.EXPIRED.value,
                NotificationStatus.DISMISSED.value,
            ),
        )
        return [self.row_to_entity(row) for row in rows]

    async def get_statistics(
        self,
        start: datetime,
        end: datetime,
        types: Optional[Sequence[NotificationType]] = None,
        priorities: Optional[Sequence[NotificationPriority]] = None,
        sources: Optional[Sequence[str]] = None,
    ) -> NotificationStatistics:
        """Counts for notifications whose timestamp falls in [start, end]."""
        predicates: List[Predicate] = [Range("timestamp", start, end)]
        if types:
            predicates.append(In("type", tuple(types)))
        if priorities:
            predicates.append(In("priority", tuple(priorities)))
        if sources:
            predicates.append(In("source", tuple(sources)))
        where, params = compile_where(predicates)

        total_row = await self.db.get(f"SELECT COUNT(*) AS count FROM notifications {where}", params)
        stats = NotificationStatistics(
            period_start=start,
            period_end=end,
            total=total_row["count"] if total_row else 0,
        )
        for column, target in (
            ("type", stats.by_type),
            ("priority", stats.by_priority),
            ("status", stats.by_status),
        ):
            rows = await self.db.all(
                f"SELECT {column} AS group_key, COUNT(*) AS count FROM notifications {where} "
                f"GROUP BY {column}",
                params,
            )
            for row in rows:
                target[row["group_key"]] = row["count"]
        return stats
