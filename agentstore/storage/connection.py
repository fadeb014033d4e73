"""
Async connection manager for the agentstore SQLite database.

One ``ConnectionManager`` owns one physical aiosqlite connection. It is
constructed by the process bootstrap and passed to every repository and to
the migration engine; there is no module-level connection.

Transactions are explicit (the connection runs with ``isolation_level=None``)
and may not nest. ``transaction()`` serializes independent transactions
behind a lock and rejects re-entrant use from the same logical context.
"""

import asyncio
import logging
import sqlite3
from contextlib import asynccontextmanager
from contextvars import ContextVar
from dataclasses import dataclass
from pathlib import Path
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence, Union

import aiosqlite

from agentstore.errors import (
    NestedTransactionError,
    QueryError,
    StorageConnectionError,
    TransactionError,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RunResult:
    """Outcome of a mutating statement."""

    last_insert_id: Optional[int]
    rows_affected: int


class ConnectionManager:
    """Single async connection with lazy open and explicit transactions."""

    def __init__(self, db_path: Union[str, Path]):
        self.db_path = Path(db_path)
        self._conn: Optional[aiosqlite.Connection] = None
        self._tx_lock = asyncio.Lock()
        # Tracks which logical context (task) currently owns a transaction.
        self._tx_owner: ContextVar[bool] = ContextVar(
            f"agentstore_tx_{id(self)}", default=False
        )

    # === Lifecycle ===

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    async def open(self) -> aiosqlite.Connection:
        """Open the connection if needed and return the live handle."""
        if self._conn is not None:
            return self._conn

        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            conn = await aiosqlite.connect(str(self.db_path), isolation_level=None)
        except (OSError, sqlite3.Error) as e:
            logger.error(f"Failed to open database at {self.db_path}: {e}")
            raise StorageConnectionError(
                f"Failed to open database at {self.db_path}: {e}", path=str(self.db_path)
            ) from e

        conn.row_factory = aiosqlite.Row
        try:
            await conn.execute("PRAGMA journal_mode = WAL")
            await conn.execute("PRAGMA foreign_keys = ON")
        except sqlite3.Error as e:
            await conn.close()
            logger.error(f"Failed to configure database at {self.db_path}: {e}")
            raise StorageConnectionError(
                f"Failed to configure database at {self.db_path}: {e}", path=str(self.db_path)
            ) from e

        self._conn = conn
        logger.debug(f"Opened database {self.db_path}")
        return conn

    async def close(self) -> None:
        """Close the connection. Closing a closed manager is a no-op."""
        if self._conn is None:
            return
        conn, self._conn = self._conn, None
        self._tx_owner.set(False)
        try:
            await conn.close()
        except sqlite3.Error as e:
            logger.error(f"Failed to close database {self.db_path}: {e}")
            raise StorageConnectionError(
                f"Failed to close database {self.db_path}: {e}", path=str(self.db_path)
            ) from e
        logger.debug(f"Closed database {self.db_path}")

    async def __aenter__(self) -> "ConnectionManager":
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    # === Statements ===

    async def _execute(self, sql: str, params: Sequence[Any]) -> aiosqlite.Cursor:
        conn = await self.open()
        try:
            return await conn.execute(sql, tuple(params))
        except sqlite3.Error as e:
            logger.error(f"Query failed: {e} | sql={sql!r} params={tuple(params)!r}")
            raise QueryError(f"Query failed: {e}", sql=sql, params=params) from e

    async def run(self, sql: str, params: Sequence[Any] = ()) -> RunResult:
        """Execute a mutating statement."""
        cursor = await self._execute(sql, params)
        try:
            return RunResult(last_insert_id=cursor.lastrowid, rows_affected=cursor.rowcount)
        finally:
            await cursor.close()

    async def get(self, sql: str, params: Sequence[Any] = ()) -> Optional[Dict[str, Any]]:
        """Return the first row of a query, or None."""
        cursor = await self._execute(sql, params)
        try:
            row = await cursor.fetchone()
        finally:
            await cursor.close()
        return dict(row) if row is not None else None

    async def all(self, sql: str, params: Sequence[Any] = ()) -> List[Dict[str, Any]]:
        """Return every row of a query in result order."""
        cursor = await self._execute(sql, params)
        try:
            rows = await cursor.fetchall()
        finally:
            await cursor.close()
        return [dict(row) for row in rows]

    # === Transactions ===

    @property
    def in_transaction(self) -> bool:
        """Whether the calling context currently owns a transaction."""
        return self._tx_owner.get()

    async def _control(self, statement: str) -> None:
        conn = await self.open()
        try:
            await conn.execute(statement)
        except sqlite3.Error as e:
            logger.error(f"{statement} failed on {self.db_path}: {e}")
            raise TransactionError(f"{statement} failed: {e}") from e

    async def begin_transaction(self) -> None:
        conn = await self.open()
        if self._tx_owner.get() or conn.in_transaction:
            raise NestedTransactionError()
        await self._control("BEGIN")
        self._tx_owner.set(True)

    async def commit(self) -> None:
        try:
            await self._control("COMMIT")
        finally:
            if self._conn is None or not self._conn.in_transaction:
                self._tx_owner.set(False)

    async def rollback(self) -> None:
        try:
            await self._control("ROLLBACK")
        finally:
            self._tx_owner.set(False)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator["ConnectionManager"]:
        """Run the enclosed block in one transaction.

        Commits when the block exits normally. On error the transaction is
        rolled back and the original error is re-raised; a failing rollback
        is attached as its cause.
        """
        if self._tx_owner.get():
            raise NestedTransactionError()

        async with self._tx_lock:
            await self.begin_transaction()
            try:
                yield self
            except Exception as exc:
                try:
                    await self.rollback()
                except TransactionError as rollback_error:
                    logger.error(f"Rollback failed after {type(exc).__name__}: {rollback_error}")
                    raise exc from rollback_error
                raise
            try:
                await self.commit()
            except TransactionError:
                if self._conn is not None and self._conn.in_transaction:
                    await self.rollback()
                raise
