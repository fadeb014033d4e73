"""
Shared record types for agentstore.

The four persisted record kinds (tasks, time entries, notifications and
memories) live here together with their enums and the small result
records returned by aggregate queries. Repositories convert between these
dataclasses and table rows; nothing in this module touches the database.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

# === Shared Utility Functions ===


def utc_now() -> datetime:
    """Get the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def parse_datetime(s: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-8601 string; naive values are taken as UTC."""
    if not s:
        return None
    dt = datetime.fromisoformat(s.replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


# === Task Types ===


class TaskType(str, Enum):
    DEVELOPMENT = "DEVELOPMENT"
    REVIEW = "REVIEW"
    TESTING = "TESTING"
    DOCUMENTATION = "DOCUMENTATION"
    PLANNING = "PLANNING"
    MAINTENANCE = "MAINTENANCE"
    SUPPORT = "SUPPORT"


class TaskStatus(str, Enum):
    """Lifecycle states of a task. Legal moves are in ``TASK_TRANSITIONS``."""

    CREATED = "CREATED"
    PLANNED = "PLANNED"
    IN_PROGRESS = "IN_PROGRESS"
    BLOCKED = "BLOCKED"
    REVIEW = "REVIEW"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class TaskPriority(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


TASK_TRANSITIONS: Dict[TaskStatus, frozenset] = {
    TaskStatus.CREATED: frozenset(
        {TaskStatus.PLANNED, TaskStatus.IN_PROGRESS, TaskStatus.CANCELLED}
    ),
    TaskStatus.PLANNED: frozenset(
        {TaskStatus.IN_PROGRESS, TaskStatus.BLOCKED, TaskStatus.CANCELLED}
    ),
    TaskStatus.IN_PROGRESS: frozenset(
        {TaskStatus.BLOCKED, TaskStatus.REVIEW, TaskStatus.COMPLETED, TaskStatus.CANCELLED}
    ),
    TaskStatus.BLOCKED: frozenset({TaskStatus.IN_PROGRESS, TaskStatus.CANCELLED}),
    TaskStatus.REVIEW: frozenset(
        {TaskStatus.IN_PROGRESS, TaskStatus.COMPLETED, TaskStatus.CANCELLED}
    ),
    TaskStatus.COMPLETED: frozenset({TaskStatus.IN_PROGRESS, TaskStatus.CANCELLED}),
    TaskStatus.CANCELLED: frozenset({TaskStatus.CREATED, TaskStatus.PLANNED}),
}


@dataclass
class Task:
    """A unit of work, optionally nested under a parent task."""

    id: Optional[str] = None
    title: str = "Untitled task"
    description: str = ""
    type: TaskType = TaskType.DEVELOPMENT
    status: TaskStatus = TaskStatus.CREATED
    priority: TaskPriority = TaskPriority.MEDIUM
    assignee: Optional[str] = None
    project: Optional[str] = None
    due_date: Optional[datetime] = None
    parent_task_id: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


# === Time Tracking Types ===


class TimeCategory(str, Enum):
    DEVELOPMENT = "DEVELOPMENT"
    MEETING = "MEETING"
    REVIEW = "REVIEW"
    PLANNING = "PLANNING"
    LEARNING = "LEARNING"
    MAINTENANCE = "MAINTENANCE"
    BREAK = "BREAK"


@dataclass
class TimeEntry:
    """A tracked block of time. ``duration`` is in minutes.

    An entry without ``end_time`` is still running.
    """

    id: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    duration: int = 0
    category: TimeCategory = TimeCategory.DEVELOPMENT
    description: str = ""
    task_id: Optional[str] = None
    user_id: str = "local"
    project_id: Optional[str] = None
    source: str = "manual"
    tags: List[str] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


# === Notification Types ===


class NotificationType(str, Enum):
    TASK = "TASK"
    SYSTEM = "SYSTEM"
    ALERT = "ALERT"
    REMINDER = "REMINDER"
    UPDATE = "UPDATE"
    WARNING = "WARNING"


class NotificationPriority(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    URGENT = "URGENT"


class NotificationStatus(str, Enum):
    PENDING = "PENDING"
    DELIVERED = "DELIVERED"
    READ = "READ"
    ACTED_UPON = "ACTED_UPON"
    DISMISSED = "DISMISSED"
    EXPIRED = "EXPIRED"


# Statuses that count as "seen" for the denormalized read flag.
READ_STATUSES = frozenset(
    {NotificationStatus.READ, NotificationStatus.ACTED_UPON, NotificationStatus.DISMISSED}
)


@dataclass
class NotificationAction:
    """An action a user can take on a notification (button, link or form)."""

    id: str
    label: str
    type: str = "button"
    data: Optional[Dict[str, Any]] = None
    callback: Optional[str] = None
    style: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"id": self.id, "label": self.label, "type": self.type}
        if self.data is not None:
            result["data"] = self.data
        if self.callback is not None:
            result["callback"] = self.callback
        if self.style is not None:
            result["style"] = self.style
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "NotificationAction":
        return cls(
            id=data["id"],
            label=data.get("label", ""),
            type=data.get("type", "button"),
            data=data.get("data"),
            callback=data.get("callback"),
            style=data.get("style"),
        )


@dataclass
class Notification:
    id: Optional[str] = None
    type: NotificationType = NotificationType.SYSTEM
    priority: NotificationPriority = NotificationPriority.MEDIUM
    title: str = ""
    message: str = ""
    source: str = "system"
    timestamp: Optional[datetime] = None
    status: NotificationStatus = NotificationStatus.PENDING
    expires_at: Optional[datetime] = None
    actions: List[NotificationAction] = field(default_factory=list)
    user_id: str = "local"
    metadata: Dict[str, Any] = field(default_factory=dict)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def read(self) -> bool:
        return self.status in READ_STATUSES


@dataclass
class NotificationStatistics:
    period_start: Optional[datetime]
    period_end: Optional[datetime]
    total: int = 0
    by_type: Dict[str, int] = field(default_factory=dict)
    by_priority: Dict[str, int] = field(default_factory=dict)
    by_status: Dict[str, int] = field(default_factory=dict)


# === Memory Types ===


class MemoryType(str, Enum):
    CHAT = "CHAT"
    TASK = "TASK"
    CODE = "CODE"
    DECISION = "DECISION"
    INSIGHT = "INSIGHT"
    CONCEPT = "CONCEPT"
    EVENT = "EVENT"


class RelationType(str, Enum):
    SIMILAR_TO = "SIMILAR_TO"
    PART_OF = "PART_OF"
    DEPENDS_ON = "DEPENDS_ON"
    LEADS_TO = "LEADS_TO"
    CONTRADICTS = "CONTRADICTS"
    SUPPORTS = "SUPPORTS"


@dataclass
class MemoryRelationship:
    """A directed, weighted link from one memory to another."""

    target_id: str
    type: RelationType
    strength: float = 1.0
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "target_id": self.target_id,
            "type": self.type.value,
            "strength": self.strength,
            "metadata": self.metadata,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MemoryRelationship":
        return cls(
            target_id=data["target_id"],
            type=RelationType(data["type"]),
            strength=float(data.get("strength", 1.0)),
            metadata=data.get("metadata") or {},
        )


@dataclass
class Memory:
    """A piece of remembered content with importance and confidence in [0, 1]."""

    id: Optional[str] = None
    type: MemoryType = MemoryType.CONCEPT
    content: str = ""
    context: str = ""
    importance: float = 0.5
    confidence: float = 0.5
    source: str = "system"
    timestamp: Optional[datetime] = None
    access_count: int = 0
    last_accessed: Optional[datetime] = None
    expires: Optional[datetime] = None
    tags: List[str] = field(default_factory=list)
    relationships: List[MemoryRelationship] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class MemoryQuery:
    """Structured memory search.

    ``relationship_types`` and ``relationship_target_id`` are matched against
    the fetched candidates after the SQL query has run.
    """

    types: Optional[List[MemoryType]] = None
    contexts: Optional[List[str]] = None
    tags: Optional[List[str]] = None
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    importance_min: Optional[float] = None
    importance_max: Optional[float] = None
    confidence_min: Optional[float] = None
    confidence_max: Optional[float] = None
    text: Optional[str] = None
    relationship_types: Optional[List[RelationType]] = None
    relationship_target_id: Optional[str] = None


@dataclass
class SimilarMemory:
    memory: Memory
    similarity: float


@dataclass
class RelationshipStats:
    type: RelationType
    count: int
    average_strength: float


@dataclass
class MemoryStatistics:
    total: int = 0
    by_type: Dict[str, int] = field(default_factory=dict)
    by_context: Dict[str, int] = field(default_factory=dict)
    average_importance: float = 0.0
    average_confidence: float = 0.0
    top_tags: List[Dict[str, Any]] = field(default_factory=list)
    relationship_stats: List[RelationshipStats] = field(default_factory=list)


# === Migration Types ===


@dataclass
class MigrationRecord:
    """A ledger row: a migration unit that has been applied."""

    id: str
    filename: str
    applied_at: Optional[str] = None
