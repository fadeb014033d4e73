"""
Generic repository over one table.

Subclasses declare the table, its columns, the field→column mapping for
fields whose column name differs, and an ``entity_to_row`` /
``row_to_entity`` codec pair. Everything else (CRUD, bulk operations,
filter compilation, tag mirroring) lives here.

Lookups that find nothing return None, ``delete`` returns False, and
``delete_many`` counts only the rows it actually removed.
"""

import logging
import re
import uuid
from contextlib import asynccontextmanager
from dataclasses import fields, is_dataclass
from typing import (
    Any,
    AsyncIterator,
    Awaitable,
    Callable,
    Dict,
    FrozenSet,
    Generic,
    List,
    Mapping,
    Optional,
    Sequence,
    Tuple,
    TypeVar,
    Union,
)

from agentstore.errors import UpdateFetchError
from agentstore.storage.codecs import datetime_to_text, to_db_value
from agentstore.storage.connection import ConnectionManager
from agentstore.storage.filters import (
    RESERVED_ALIASES,
    RESERVED_KEYS,
    Equals,
    In,
    IsNull,
    Predicate,
    compile_order_and_limit,
    compile_where,
)
from agentstore.storage.schema import validate_table_name
from agentstore.types import utc_now

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")

Filter = Mapping[str, Any]

# Fields the repository owns; callers cannot change them through update().
IMMUTABLE_FIELDS = frozenset({"id", "created_at", "updated_at"})

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


def _snake_case(name: str) -> str:
    return _CAMEL_BOUNDARY.sub("_", name).lower()


class BaseRepository(Generic[T]):
    table_name: str = ""
    primary_key: str = "id"
    # Every column of the table; filter keys and sort fields resolve into this set.
    columns: FrozenSet[str] = frozenset()
    # Entity field -> column, only where the names differ.
    field_columns: Dict[str, str] = {}
    # (table, foreign key column) mirroring the entity's tags, if any.
    tag_table: Optional[Tuple[str, str]] = None

    def __init__(self, db: ConnectionManager):
        validate_table_name(self.table_name)
        if self.tag_table is not None:
            validate_table_name(self.tag_table[0])
        self.db = db

    # === Codec ===

    def entity_to_row(self, entity: T) -> Dict[str, Any]:
        """Convert an entity into a column -> value mapping."""
        raise NotImplementedError

    def row_to_entity(self, row: Dict[str, Any]) -> T:
        """Convert a stored row into an entity, filling defaults."""
        raise NotImplementedError

    def column_for(self, name: str) -> str:
        """Resolve a field or column name to a column of this table.

        Raises:
            ValueError: If the name does not map to a known column.
        """
        for candidate in (name, _snake_case(name)):
            column = self.field_columns.get(candidate, candidate)
            if column in self.columns:
                return column
        raise ValueError(f"Unknown field for {self.table_name}: {name}")

    def changes_to_columns(self, changes: Mapping[str, Any]) -> Dict[str, Any]:
        """Convert a partial field -> value mapping into bindable column values."""
        return {self.column_for(name): to_db_value(value) for name, value in changes.items()}

    # === Filters ===

    def build_predicates(self, filter: Filter) -> List[Predicate]:
        """Turn the selection part of a filter into predicates.

        Every key is an equality test on the matching column: None becomes
        IS NULL and a list, tuple or set becomes IN. Subclasses remove their
        domain-specific keys first and pass the rest here.
        """
        predicates: List[Predicate] = []
        for key, value in filter.items():
            if key in RESERVED_KEYS or key in RESERVED_ALIASES:
                continue
            column = self.column_for(key)
            if value is None:
                predicates.append(IsNull(column))
            elif isinstance(value, (list, tuple, set, frozenset)):
                predicates.append(In(column, tuple(value)))
            else:
                predicates.append(Equals(column, value))
        return predicates

    def build_order_and_limit(self, filter: Filter) -> str:
        options = {RESERVED_ALIASES.get(k, k): v for k, v in filter.items()}
        order_by = options.get("order_by")
        return compile_order_and_limit(
            order_by=self.column_for(order_by) if order_by else None,
            direction=options.get("order_direction"),
            limit=options.get("limit"),
            offset=options.get("offset"),
        )

    async def _select(
        self, predicates: Sequence[Predicate], tail: str = ""
    ) -> List[Dict[str, Any]]:
        where, params = compile_where(predicates)
        sql = f"SELECT * FROM {self.table_name}"
        if where:
            sql += f" {where}"
        return await self.db.all(sql + tail, params)

    # === Transactions ===

    @asynccontextmanager
    async def _atomic(self) -> AsyncIterator[None]:
        """Join the caller's transaction, or run in a new one."""
        if self.db.in_transaction:
            yield
        else:
            async with self.db.transaction():
                yield

    async def transaction(self, fn: Callable[[], Awaitable[R]]) -> R:
        """Run ``fn`` inside one transaction and return its result.

        The transaction is rolled back and the error re-raised if ``fn``
        fails. Calling this from inside another transaction raises
        ``NestedTransactionError``.
        """
        async with self.db.transaction():
            return await fn()

    async def _sync_tags(self, record_id: str, tags: Optional[Sequence[str]]) -> None:
        if self.tag_table is None:
            return
        table, fk_column = self.tag_table
        await self.db.run(f"DELETE FROM {table} WHERE {fk_column} = ?", (record_id,))
        for tag in dict.fromkeys(tags or []):
            await self.db.run(
                f"INSERT OR IGNORE INTO {table} ({fk_column}, tag) VALUES (?, ?)",
                (record_id, tag),
            )

    # === Reads ===

    async def find_by_id(self, record_id: str) -> Optional[T]:
        row = await self.db.get(
            f"SELECT * FROM {self.table_name} WHERE {self.primary_key} = ?", (record_id,)
        )
        return self.row_to_entity(row) if row else None

    async def find_all(self, filter: Optional[Filter] = None) -> List[T]:
        filter = filter or {}
        rows = await self._select(self.build_predicates(filter), self.build_order_and_limit(filter))
        return [self.row_to_entity(row) for row in rows]

    async def find_one(self, filter: Filter) -> Optional[T]:
        options = {k: v for k, v in filter.items() if k not in ("limit", "offset")}
        options["limit"] = 1
        rows = await self._select(self.build_predicates(options), self.build_order_and_limit(options))
        return self.row_to_entity(rows[0]) if rows else None

    async def count(self, filter: Optional[Filter] = None) -> int:
        where, params = compile_where(self.build_predicates(filter or {}))
        sql = f"SELECT COUNT(*) AS count FROM {self.table_name}"
        if where:
            sql += f" {where}"
        row = await self.db.get(sql, params)
        return row["count"] if row else 0

    # === Writes ===

    async def _insert(self, entity: T) -> str:
        row = self.entity_to_row(entity)
        now = datetime_to_text(utc_now())
        record_id = str(uuid.uuid4())
        row[self.primary_key] = record_id
        row["created_at"] = now
        row["updated_at"] = now

        column_names = list(row)
        placeholders = ", ".join("?" for _ in column_names)
        await self.db.run(
            f"INSERT INTO {self.table_name} ({', '.join(column_names)}) VALUES ({placeholders})",
            [row[c] for c in column_names],
        )
        await self._sync_tags(record_id, getattr(entity, "tags", None))
        return record_id

    async def create(self, entity: T) -> T:
        """Insert a new record and return it as stored.

        The id and both timestamps are always assigned here; values set on
        the entity are ignored.
        """
        async with self._atomic():
            record_id = await self._insert(entity)
        created = await self.find_by_id(record_id)
        logger.debug(f"Created {self.table_name}/{record_id}")
        return created

    async def update(self, record_id: str, changes: Mapping[str, Any]) -> Optional[T]:
        """Apply a partial update and return the stored record.

        An update with nothing to change returns the current record (or
        None if it does not exist).

        Raises:
            ValueError: A field does not exist.
            UpdateFetchError: The record could not be read back.
        """
        changes = {k: v for k, v in changes.items() if k not in IMMUTABLE_FIELDS}
        columns = self.changes_to_columns(changes)
        if not columns:
            return await self.find_by_id(record_id)

        assignments = ", ".join(f"{column} = ?" for column in columns)
        sql = (
            f"UPDATE {self.table_name} SET {assignments}, updated_at = MAX(?, created_at) "
            f"WHERE {self.primary_key} = ?"
        )
        params = list(columns.values()) + [datetime_to_text(utc_now()), record_id]

        async with self._atomic():
            result = await self.db.run(sql, params)
            if result.rows_affected and "tags" in changes:
                await self._sync_tags(record_id, changes["tags"])

        updated = await self.find_by_id(record_id)
        if updated is None:
            logger.error(f"Failed to fetch {self.table_name}/{record_id} after update")
            raise UpdateFetchError(self.table_name, record_id)
        return updated

    async def delete(self, record_id: str) -> bool:
        result = await self.db.run(
            f"DELETE FROM {self.table_name} WHERE {self.primary_key} = ?", (record_id,)
        )
        return result.rows_affected > 0

    # === Bulk operations ===

    async def create_many(self, entities: Sequence[T]) -> List[T]:
        """Insert all entities in one transaction."""
        async with self._atomic():
            ids = [await self._insert(entity) for entity in entities]
        created = []
        for record_id in ids:
            entity = await self.find_by_id(record_id)
            if entity is not None:
                created.append(entity)
        return created

    async def update_many(self, items: Sequence[Union[T, Mapping[str, Any]]]) -> List[T]:
        """Update several records in one transaction.

        Each item is either an entity or a mapping; both must carry an id.

        Raises:
            ValueError: An item has no id.
            UpdateFetchError: An id does not exist.

        Both are checked before anything is written.
        """
        updates = []
        for item in items:
            if is_dataclass(item):
                changes = {f.name: getattr(item, f.name) for f in fields(item)}
            else:
                changes = dict(item)
            record_id = changes.get(self.primary_key)
            if not record_id:
                raise ValueError(f"update_many requires an id on every {self.table_name} item")
            updates.append((record_id, changes))

        results = []
        async with self._atomic():
            await self._require_ids([record_id for record_id, _ in updates])
            for record_id, changes in updates:
                results.append(await self.update(record_id, changes))
        return results

    async def _require_ids(self, ids: Sequence[str]) -> None:
        if not ids:
            return
        placeholders = ", ".join("?" for _ in ids)
        rows = await self.db.all(
            f"SELECT {self.primary_key} FROM {self.table_name} "
            f"WHERE {self.primary_key} IN ({placeholders})",
            list(ids),
        )
        found = {row[self.primary_key] for row in rows}
        missing = [record_id for record_id in ids if record_id not in found]
        if missing:
            logger.error(f"update_many on {self.table_name}: unknown ids {missing}")
            raise UpdateFetchError(self.table_name, missing[0])

    async def delete_many(self, ids: Sequence[str]) -> int:
        """Delete the given ids and return how many rows were removed."""
        if not ids:
            return 0
        placeholders = ", ".join("?" for _ in ids)
        async with self._atomic():
            result = await self.db.run(
                f"DELETE FROM {self.table_name} WHERE {self.primary_key} IN ({placeholders})",
                list(ids),
            )
        return result.rows_affected
