"""Column codecs shared by the repositories.

Datetimes are stored as ISO-8601 text in UTC with fixed microsecond
precision so that text comparison matches chronological order. Structured
fields (tags, metadata, relationships, actions) are stored as JSON text.
"""

import json
from dataclasses import asdict, is_dataclass
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Optional

from agentstore.types import parse_datetime


def datetime_to_text(dt: Optional[datetime]) -> Optional[str]:
    """Encode a datetime; naive values are taken as UTC."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat(timespec="microseconds")


def text_to_datetime(s: Optional[str]) -> Optional[datetime]:
    """Decode a stored datetime.

    Also accepts SQLite's ``CURRENT_TIMESTAMP`` format (``YYYY-MM-DD HH:MM:SS``).
    """
    return parse_datetime(s)


def _json_default(value: Any) -> Any:
    if isinstance(value, datetime):
        return datetime_to_text(value)
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if hasattr(value, "to_dict"):
        return value.to_dict()
    if is_dataclass(value):
        return asdict(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def to_json(data: Any) -> Optional[str]:
    """Convert to JSON string."""
    if data is None:
        return None
    return json.dumps(data, default=_json_default)


def from_json(s: Optional[str]) -> Any:
    """Parse JSON string."""
    if not s:
        return None
    try:
        return json.loads(s)
    except json.JSONDecodeError:
        return None


def to_db_value(value: Any) -> Any:
    """Convert a Python value into something sqlite3 can bind."""
    if value is None:
        return None
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, datetime):
        return datetime_to_text(value)
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, (dict, list, tuple)) or is_dataclass(value):
        return to_json(value)
    return value


def safe_get(row: dict, key: str, default: Any = None) -> Any:
    """Safely get value from row, returning default if missing or NULL."""
    value = row.get(key)
    return value if value is not None else default
