"""Initial schema: tasks, time entries, notifications and memories."""

import logging

from agentstore.storage.schema import (
    DROP_STATEMENTS,
    MEMORY_TABLES,
    NOTIFICATION_TABLES,
    TASK_TABLES,
    TIME_ENTRY_TABLES,
    ensure_memory_fts,
)

logger = logging.getLogger(__name__)


async def up(db) -> None:
    async with db.transaction():
        for statement in TASK_TABLES + TIME_ENTRY_TABLES + NOTIFICATION_TABLES + MEMORY_TABLES:
            await db.run(statement)
        await ensure_memory_fts(db)
    logger.info("Created initial schema")


async def down(db) -> None:
    async with db.transaction():
        for statement in DROP_STATEMENTS:
            await db.run(statement)
    logger.info("Dropped initial schema")
