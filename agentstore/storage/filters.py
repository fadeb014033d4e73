"""
Typed predicate builder for repository queries.

A filter is an AND-list of predicates. Each predicate names an already
validated column; callers never pass raw column text. ``compile_where``
turns the list into a ``WHERE`` fragment plus positional parameters, and
``compile_order_and_limit`` builds the ORDER BY / LIMIT / OFFSET tail.
"""

from dataclasses import dataclass
from typing import Any, List, Optional, Sequence, Tuple, Union

from agentstore.storage.codecs import to_db_value

# Filter keys that control pagination and ordering rather than selection.
RESERVED_KEYS = frozenset({"limit", "offset", "order_by", "order_direction"})

# camelCase spellings accepted for the reserved keys.
RESERVED_ALIASES = {"orderBy": "order_by", "orderDirection": "order_direction"}

SORT_DIRECTIONS = frozenset({"ASC", "DESC"})


def escape_like_pattern(pattern: str) -> str:
    """Escape LIKE pattern special characters to prevent pattern injection."""
    return pattern.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


@dataclass(frozen=True)
class Equals:
    column: str
    value: Any


@dataclass(frozen=True)
class In:
    column: str
    values: Tuple[Any, ...]


@dataclass(frozen=True)
class Range:
    """Inclusive range; either bound may be omitted."""

    column: str
    min: Any = None
    max: Any = None


@dataclass(frozen=True)
class Contains:
    """Serialized column contains any of the values as a substring."""

    column: str
    values: Tuple[str, ...]


@dataclass(frozen=True)
class Like:
    """Free-text term matched as a substring of any of the columns."""

    columns: Tuple[str, ...]
    term: str


@dataclass(frozen=True)
class IsNull:
    column: str


Predicate = Union[Equals, In, Range, Contains, Like, IsNull]


def compile_predicate(predicate: Predicate) -> Tuple[str, List[Any]]:
    """Compile one predicate into an SQL condition and its parameters."""
    if isinstance(predicate, Equals):
        return f"{predicate.column} = ?", [to_db_value(predicate.value)]

    if isinstance(predicate, In):
        if not predicate.values:
            # IN () matches nothing
            return "0", []
        placeholders = ", ".join("?" for _ in predicate.values)
        return (
            f"{predicate.column} IN ({placeholders})",
            [to_db_value(v) for v in predicate.values],
        )

    if isinstance(predicate, Range):
        parts = []
        params: List[Any] = []
        if predicate.min is not None:
            parts.append(f"{predicate.column} >= ?")
            params.append(to_db_value(predicate.min))
        if predicate.max is not None:
            parts.append(f"{predicate.column} <= ?")
            params.append(to_db_value(predicate.max))
        if not parts:
            return "1", []
        return " AND ".join(parts), params

    if isinstance(predicate, Contains):
        if not predicate.values:
            return "1", []
        conditions = [f"{predicate.column} LIKE ? ESCAPE '\\'" for _ in predicate.values]
        params = [f"%{escape_like_pattern(str(v))}%" for v in predicate.values]
        if len(conditions) == 1:
            return conditions[0], params
        return f"({' OR '.join(conditions)})", params

    if isinstance(predicate, Like):
        pattern = f"%{escape_like_pattern(predicate.term)}%"
        conditions = [f"{column} LIKE ? ESCAPE '\\'" for column in predicate.columns]
        params = [pattern] * len(conditions)
        if len(conditions) == 1:
            return conditions[0], params
        return f"({' OR '.join(conditions)})", params

    if isinstance(predicate, IsNull):
        return f"{predicate.column} IS NULL", []

    raise TypeError(f"Unknown predicate type: {type(predicate).__name__}")


def compile_where(predicates: Sequence[Predicate]) -> Tuple[str, List[Any]]:
    """AND together the predicates. Returns ("", []) for an empty list."""
    if not predicates:
        return "", []
    conditions = []
    params: List[Any] = []
    for predicate in predicates:
        sql, predicate_params = compile_predicate(predicate)
        conditions.append(sql)
        params.extend(predicate_params)
    return "WHERE " + " AND ".join(conditions), params


def normalize_direction(direction: Optional[str]) -> str:
    if direction is None:
        return "ASC"
    normalized = str(direction).upper()
    if normalized not in SORT_DIRECTIONS:
        raise ValueError(f"Invalid sort direction: {direction}")
    return normalized


def compile_order_and_limit(
    order_by: Optional[str] = None,
    direction: Optional[str] = None,
    limit: Optional[int] = None,
    offset: Optional[int] = None,
) -> str:
    """Build the ORDER BY / LIMIT / OFFSET tail.

    ``order_by`` must already be a validated column name. OFFSET is only
    emitted together with LIMIT.
    """
    sql = ""
    if order_by:
        sql += f" ORDER BY {order_by} {normalize_direction(direction)}"
    if limit is not None:
        sql += f" LIMIT {int(limit)}"
        if offset is not None:
            sql += f" OFFSET {int(offset)}"
    return sql
