"""Command line interface for agentstore schema migrations."""

import argparse
import asyncio
import json
import logging
import sys
from typing import List, Optional

from agentstore.config import get_settings
from agentstore.errors import AgentStoreError, MigrationError
from agentstore.logging_config import setup_agentstore_logging
from agentstore.storage.connection import ConnectionManager
from agentstore.storage.migration_engine import MigrationEngine

logger = logging.getLogger(__name__)


async def cmd_migrate(args: argparse.Namespace, engine: MigrationEngine) -> None:
    """Apply, roll back or report migration units."""
    action = args.migrate_action

    if action == "up":
        applied = await engine.migrate_up()
        if applied:
            print(f"Applied {len(applied)} migration(s): {', '.join(applied)}")
        else:
            print("Database is up to date")
    elif action == "down":
        rolled_back = await engine.migrate_down(args.target)
        if rolled_back:
            print(f"Rolled back {len(rolled_back)} migration(s): {', '.join(rolled_back)}")
        else:
            print("Nothing to roll back")
    elif action == "status":
        status = await engine.status()
        if getattr(args, "json", False):
            print(
                json.dumps(
                    {
                        "applied": [
                            {"id": r.id, "filename": r.filename, "applied_at": r.applied_at}
                            for r in status.applied
                        ],
                        "pending": [{"id": u.id, "filename": u.filename} for u in status.pending],
                    },
                    indent=2,
                )
            )
            return
        print(f"Applied ({len(status.applied)}):")
        for record in status.applied:
            print(f"  {record.id}  {record.filename}  {record.applied_at}")
        print(f"Pending ({len(status.pending)}):")
        for unit in status.pending:
            print(f"  {unit.id}  {unit.filename}")
    else:
        print(f"Unknown migrate action: {action}")
        print("Available actions: up, down, status")


async def _run(args: argparse.Namespace) -> None:
    settings = get_settings()
    db_path = args.db or settings.resolved_database_path()
    migrations_path = args.migrations or settings.resolved_migrations_path()

    db = ConnectionManager(db_path)
    try:
        engine = MigrationEngine(
            db, migrations_path=migrations_path, events_log_dir=settings.resolved_log_dir()
        )
        await cmd_migrate(args, engine)
    finally:
        await db.close()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="agentstore",
        description="Persistence core for tasks, time entries, notifications and memories",
    )
    parser.add_argument("--db", help="Database file (default: AGENTSTORE_DATABASE_PATH)")
    parser.add_argument("--migrations", help="Migrations directory")
    parser.add_argument("--log-level", dest="log_level", default=None)

    subparsers = parser.add_subparsers(dest="command", required=True)

    p_migrate = subparsers.add_parser("migrate", help="Schema migrations")
    migrate_sub = p_migrate.add_subparsers(dest="migrate_action", required=True)
    migrate_sub.add_parser("up", help="Apply pending migrations")
    p_down = migrate_sub.add_parser("down", help="Roll back migrations")
    p_down.add_argument(
        "--target", "-t", default=None, help="Roll back everything applied after this id"
    )
    p_status = migrate_sub.add_parser("status", help="Show applied and pending migrations")
    p_status.add_argument("--json", "-j", action="store_true")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()
    setup_agentstore_logging(
        level=args.log_level or settings.log_level, log_dir=settings.resolved_log_dir()
    )

    try:
        asyncio.run(_run(args))
    except MigrationError as e:
        print(f"Migration failed: {e}", file=sys.stderr)
        return 1
    except AgentStoreError as e:
        logger.error(f"Command failed: {e}")
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
