"""
Versioned schema migrations for agentstore.

A migration unit is a Python module in the migrations directory whose file
name starts with a numeric id (``001_initial_schema.py``) and which defines
two coroutines, ``up(db)`` and ``down(db)``, each taking the
``ConnectionManager``. Units own their transactional scope.

Applied units are recorded in the ``migrations`` ledger table, which is
created on first use.
"""

import importlib.util
import inspect
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Awaitable, Callable, List, Optional, Union

from agentstore.errors import MigrationError
from agentstore.logging_config import log_storage_event
from agentstore.storage.connection import ConnectionManager
from agentstore.storage.schema import MIGRATIONS_TABLE
from agentstore.types import MigrationRecord

logger = logging.getLogger(__name__)

DEFAULT_MIGRATIONS_PATH = Path(__file__).parent / "migrations"

_ID_PATTERN = re.compile(r"^(\d+)(?:[-_]|$)")


@dataclass
class MigrationUnit:
    id: str
    filename: str
    up: Callable[[ConnectionManager], Awaitable[None]] = field(repr=False)
    down: Callable[[ConnectionManager], Awaitable[None]] = field(repr=False)


@dataclass
class MigrationStatus:
    applied: List[MigrationRecord]
    pending: List[MigrationUnit]


def parse_migration_id(filename: str) -> Optional[str]:
    """Return the leading numeric id of a unit file name, or None."""
    match = _ID_PATTERN.match(Path(filename).stem)
    return match.group(1) if match else None


class MigrationEngine:
    """Discovers, applies and rolls back migration units."""

    def __init__(
        self,
        db: ConnectionManager,
        migrations_path: Optional[Union[str, Path]] = None,
        events_log_dir: Optional[Union[str, Path]] = None,
    ):
        self.db = db
        self.migrations_path = Path(migrations_path) if migrations_path else DEFAULT_MIGRATIONS_PATH
        self.events_log_dir = events_log_dir

    async def _ensure_ledger(self) -> None:
        await self.db.run(MIGRATIONS_TABLE)

    async def _applied(self) -> List[MigrationRecord]:
        rows = await self.db.all("SELECT id, filename, applied_at FROM migrations ORDER BY rowid")
        return [
            MigrationRecord(id=row["id"], filename=row["filename"], applied_at=row["applied_at"])
            for row in rows
        ]

    def _load_unit(self, path: Path) -> Optional[MigrationUnit]:
        migration_id = parse_migration_id(path.name)
        if migration_id is None:
            logger.warning(f"Skipping migration {path.name}: file name has no numeric id prefix")
            return None

        try:
            spec = importlib.util.spec_from_file_location(
                f"agentstore_migration_{path.stem}", path
            )
            module = importlib.util.module_from_spec(spec)
            spec.loader.exec_module(module)
        except Exception as e:
            logger.error(f"Failed to load migration {path.name}: {e}")
            return None

        up = getattr(module, "up", None)
        down = getattr(module, "down", None)
        if not (inspect.iscoroutinefunction(up) and inspect.iscoroutinefunction(down)):
            logger.warning(f"Skipping migration {path.name}: missing async up() or down()")
            return None

        return MigrationUnit(id=migration_id, filename=path.name, up=up, down=down)

    def discover(self) -> List[MigrationUnit]:
        """Load every valid unit from the migrations directory, ascending by id."""
        if not self.migrations_path.is_dir():
            logger.warning(f"Migrations directory not found: {self.migrations_path}")
            return []

        units = []
        seen = {}
        for path in sorted(self.migrations_path.glob("*.py")):
            if path.name == "__init__.py":
                continue
            unit = self._load_unit(path)
            if unit is None:
                continue
            if unit.id in seen:
                logger.warning(
                    f"Skipping migration {unit.filename}: id {unit.id} already used by {seen[unit.id]}"
                )
                continue
            seen[unit.id] = unit.filename
            units.append(unit)
        units.sort(key=lambda u: u.id)
        return units

    def _record_event(self, event_type: str, details: str) -> None:
        if self.events_log_dir is not None:
            log_storage_event(event_type, details, log_dir=self.events_log_dir)

    async def migrate_up(self) -> List[str]:
        """Apply all pending units in ascending id order.

        Returns:
            Ids of the units applied by this call.

        Raises:
            MigrationError: A unit failed. Later units are not attempted.
        """
        await self._ensure_ledger()
        applied_ids = {record.id for record in await self._applied()}
        pending = [unit for unit in self.discover() if unit.id not in applied_ids]

        if not pending:
            logger.info("No pending migrations")
            return []

        done = []
        for unit in pending:
            logger.info(f"Applying migration {unit.filename}")
            try:
                await unit.up(self.db)
                await self.db.run(
                    "INSERT INTO migrations (id, filename) VALUES (?, ?)", (unit.id, unit.filename)
                )
            except Exception as e:
                logger.error(f"Migration {unit.filename} failed: {e}")
                raise MigrationError(
                    f"Migration {unit.filename} failed: {e}",
                    migration_id=unit.id,
                    filename=unit.filename,
                ) from e
            self._record_event("migrate_up", f"id={unit.id}, file={unit.filename}")
            done.append(unit.id)

        logger.info(f"Applied {len(done)} migration(s)")
        return done

    async def migrate_down(self, target_id: Optional[str] = None) -> List[str]:
        """Roll back applied units.

        With ``target_id``, every unit applied after it is rolled back, newest
        first. Without it, only the most recently applied unit is rolled back.
        Rollback is not atomic across units: if one ``down`` fails, the
        rollbacks already done stay done.

        Returns:
            Ids of the units rolled back by this call.

        Raises:
            MigrationError: ``target_id`` is not applied, or a unit failed.
        """
        await self._ensure_ledger()
        applied = await self._applied()
        if not applied:
            logger.info("No migrations to roll back")
            return []

        if target_id is not None:
            index = next((i for i, r in enumerate(applied) if r.id == target_id), None)
            if index is None:
                logger.error(f"Target migration {target_id} is not applied")
                raise MigrationError(
                    f"Target migration {target_id} is not applied", migration_id=target_id
                )
            to_rollback = list(reversed(applied[index + 1 :]))
        else:
            to_rollback = [applied[-1]]

        units = {unit.id: unit for unit in self.discover()}
        done = []
        for record in to_rollback:
            unit = units.get(record.id)
            if unit is None:
                logger.warning(f"Migration file for {record.id} ({record.filename}) not found, skipping")
                continue

            logger.info(f"Rolling back migration {unit.filename}")
            try:
                await unit.down(self.db)
                await self.db.run("DELETE FROM migrations WHERE id = ?", (record.id,))
            except Exception as e:
                logger.error(f"Rollback of {unit.filename} failed: {e}")
                raise MigrationError(
                    f"Rollback of {unit.filename} failed: {e}",
                    migration_id=unit.id,
                    filename=unit.filename,
                ) from e
            self._record_event("migrate_down", f"id={unit.id}, file={unit.filename}")
            done.append(record.id)

        logger.info(f"Rolled back {len(done)} migration(s)")
        return done

    async def status(self) -> MigrationStatus:
        """Report applied and pending units without applying anything."""
        await self._ensure_ledger()
        applied = await self._applied()
        applied_ids = {record.id for record in applied}
        pending = [unit for unit in self.discover() if unit.id not in applied_ids]

        logger.info(f"Applied migrations: {[r.id for r in applied]}")
        logger.info(f"Pending migrations: {[u.id for u in pending]}")
        return MigrationStatus(applied=applied, pending=pending)
