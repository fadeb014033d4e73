"""Database schema for agentstore SQLite storage.

Contains:
- Table allowlist (ALLOWED_TABLES, validate_table_name)
- Migration ledger DDL (MIGRATIONS_TABLE)
- Per-table DDL statement lists used by migration units
- FTS5 virtual table and sync triggers for memories

DDL is kept as lists of single statements rather than scripts: scripts run
through ``executescript`` would commit any open transaction, and every
migration unit runs its statements inside one transaction.
"""

import logging

from agentstore.errors import QueryError

logger = logging.getLogger(__name__)

# Allowed table names for SQL queries (security: prevents SQL injection via table names)
ALLOWED_TABLES = frozenset(
    {
        "tasks",
        "task_tags",
        "time_entries",
        "time_entry_tags",
        "notifications",
        "memories",
        "memory_tags",
        "memory_embeddings",
        "memory_fts",
        "migrations",
    }
)


def validate_table_name(table: str) -> str:
    """Validate table name against allowlist to prevent SQL injection.

    Raises:
        ValueError: If table name is not in allowlist
    """
    if table not in ALLOWED_TABLES:
        raise ValueError(f"Invalid table name: {table}")
    return table


MIGRATIONS_TABLE = """
CREATE TABLE IF NOT EXISTS migrations (
    id TEXT PRIMARY KEY,
    filename TEXT NOT NULL,
    applied_at DATETIME DEFAULT CURRENT_TIMESTAMP
)
"""

TASK_TABLES = [
    """
    CREATE TABLE IF NOT EXISTS tasks (
        id TEXT PRIMARY KEY,
        title TEXT NOT NULL,
        description TEXT,
        type TEXT NOT NULL,
        status TEXT NOT NULL,
        priority TEXT NOT NULL,
        due_date DATETIME,
        created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
        updated_at DATETIME DEFAULT CURRENT_TIMESTAMP,
        assignee_id TEXT,
        project_id TEXT,
        parent_task_id TEXT,
        tags TEXT,
        metadata TEXT,
        FOREIGN KEY (parent_task_id) REFERENCES tasks(id) ON DELETE SET NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS task_tags (
        task_id TEXT NOT NULL,
        tag TEXT NOT NULL,
        PRIMARY KEY (task_id, tag),
        FOREIGN KEY (task_id) REFERENCES tasks(id) ON DELETE CASCADE
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_tasks_status ON tasks(status)",
    "CREATE INDEX IF NOT EXISTS idx_tasks_priority ON tasks(priority)",
    "CREATE INDEX IF NOT EXISTS idx_tasks_due_date ON tasks(due_date)",
    "CREATE INDEX IF NOT EXISTS idx_tasks_assignee ON tasks(assignee_id)",
]

TIME_ENTRY_TABLES = [
    """
    CREATE TABLE IF NOT EXISTS time_entries (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL,
        task_id TEXT,
        project_id TEXT,
        start_time DATETIME NOT NULL,
        end_time DATETIME,
        duration INTEGER NOT NULL DEFAULT 0,
        description TEXT,
        type TEXT NOT NULL,
        source TEXT NOT NULL,
        tags TEXT,
        metadata TEXT,
        created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
        updated_at DATETIME DEFAULT CURRENT_TIMESTAMP,
        FOREIGN KEY (task_id) REFERENCES tasks(id) ON DELETE SET NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS time_entry_tags (
        time_entry_id TEXT NOT NULL,
        tag TEXT NOT NULL,
        PRIMARY KEY (time_entry_id, tag),
        FOREIGN KEY (time_entry_id) REFERENCES time_entries(id) ON DELETE CASCADE
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_time_entries_user ON time_entries(user_id)",
    "CREATE INDEX IF NOT EXISTS idx_time_entries_task ON time_entries(task_id)",
    "CREATE INDEX IF NOT EXISTS idx_time_entries_start ON time_entries(start_time)",
    "CREATE INDEX IF NOT EXISTS idx_time_entries_type ON time_entries(type)",
]

NOTIFICATION_TABLES = [
    """
    CREATE TABLE IF NOT EXISTS notifications (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL,
        type TEXT NOT NULL,
        title TEXT NOT NULL,
        message TEXT NOT NULL,
        priority TEXT NOT NULL,
        status TEXT NOT NULL,
        source TEXT NOT NULL,
        timestamp DATETIME NOT NULL,
        read BOOLEAN NOT NULL DEFAULT 0,
        expires_at DATETIME,
        actions TEXT,
        metadata TEXT,
        created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
        updated_at DATETIME DEFAULT CURRENT_TIMESTAMP
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_notifications_user_read ON notifications(user_id, read)",
    "CREATE INDEX IF NOT EXISTS idx_notifications_timestamp ON notifications(timestamp DESC)",
    "CREATE INDEX IF NOT EXISTS idx_notifications_status ON notifications(status)",
]

MEMORY_TABLES = [
    """
    CREATE TABLE IF NOT EXISTS memories (
        id TEXT PRIMARY KEY,
        type TEXT NOT NULL,
        content TEXT NOT NULL,
        context TEXT,
        source TEXT NOT NULL,
        timestamp DATETIME NOT NULL,
        expires DATETIME,
        importance REAL NOT NULL DEFAULT 0.5,
        confidence REAL NOT NULL DEFAULT 0.5,
        access_count INTEGER NOT NULL DEFAULT 0,
        last_accessed DATETIME,
        tags TEXT,
        relationships TEXT,
        metadata TEXT,
        created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
        updated_at DATETIME DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS memory_tags (
        memory_id TEXT NOT NULL,
        tag TEXT NOT NULL,
        PRIMARY KEY (memory_id, tag),
        FOREIGN KEY (memory_id) REFERENCES memories(id) ON DELETE CASCADE
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS memory_embeddings (
        memory_id TEXT PRIMARY KEY,
        embedding BLOB NOT NULL,
        FOREIGN KEY (memory_id) REFERENCES memories(id) ON DELETE CASCADE
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_memories_type ON memories(type)",
    "CREATE INDEX IF NOT EXISTS idx_memories_context ON memories(context)",
    "CREATE INDEX IF NOT EXISTS idx_memories_timestamp ON memories(timestamp)",
]

# External-content FTS5 index keyed by the implicit integer rowid of memories
# (the TEXT id cannot serve as content_rowid).
MEMORY_FTS = [
    """
    CREATE VIRTUAL TABLE IF NOT EXISTS memory_fts USING fts5(
        content,
        context,
        content='memories',
        content_rowid='rowid'
    )
    """,
    """
    CREATE TRIGGER IF NOT EXISTS memories_after_insert AFTER INSERT ON memories BEGIN
        INSERT INTO memory_fts(rowid, content, context)
        VALUES (new.rowid, new.content, new.context);
    END
    """,
    """
    CREATE TRIGGER IF NOT EXISTS memories_after_delete AFTER DELETE ON memories BEGIN
        INSERT INTO memory_fts(memory_fts, rowid, content, context)
        VALUES ('delete', old.rowid, old.content, old.context);
    END
    """,
    """
    CREATE TRIGGER IF NOT EXISTS memories_after_update AFTER UPDATE ON memories BEGIN
        INSERT INTO memory_fts(memory_fts, rowid, content, context)
        VALUES ('delete', old.rowid, old.content, old.context);
        INSERT INTO memory_fts(rowid, content, context)
        VALUES (new.rowid, new.content, new.context);
    END
    """,
]

# Drop order respects foreign keys: dependents first.
DROP_STATEMENTS = [
    "DROP TRIGGER IF EXISTS memories_after_insert",
    "DROP TRIGGER IF EXISTS memories_after_update",
    "DROP TRIGGER IF EXISTS memories_after_delete",
    "DROP TABLE IF EXISTS memory_fts",
    "DROP TABLE IF EXISTS memory_embeddings",
    "DROP TABLE IF EXISTS memory_tags",
    "DROP TABLE IF EXISTS memories",
    "DROP TABLE IF EXISTS notifications",
    "DROP TABLE IF EXISTS time_entry_tags",
    "DROP TABLE IF EXISTS time_entries",
    "DROP TABLE IF EXISTS task_tags",
    "DROP TABLE IF EXISTS tasks",
]


async def ensure_memory_fts(db) -> bool:
    """Create the memory FTS5 index and its sync triggers.

    Returns False when this SQLite build has no FTS5 module; full-text
    search then falls back to LIKE matching.
    """
    try:
        await db.run(MEMORY_FTS[0])
    except QueryError as e:
        if "no such module: fts5" in str(e).lower():
            logger.warning("FTS5 not available in this SQLite build - memory keyword search uses LIKE")
            return False
        raise

    for statement in MEMORY_FTS[1:]:
        await db.run(statement)
    await db.run("INSERT INTO memory_fts(memory_fts) VALUES('rebuild')")
    logger.info("Created memory_fts FTS5 index")
    return True
