"""SQLite database connection management and schema migrations."""

from __future__ import annotations

import logging
from pathlib import Path

import aiosqlite

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER NOT NULL
);

CREATE TABLE IF NOT EXISTS sessions (
    id TEXT PRIMARY KEY,
    task_id TEXT NOT NULL DEFAULT '',
    host TEXT NOT NULL DEFAULT '',
    scheme TEXT NOT NULL DEFAULT 'http',
    method TEXT NOT NULL DEFAULT 'GET',
    uri TEXT NOT NULL DEFAULT '',
    version TEXT NOT NULL DEFAULT '',
    client_identifier TEXT NOT NULL DEFAULT '',
    suffix TEXT NOT NULL DEFAULT '',
    req_content_type TEXT NOT NULL DEFAULT '',
    req_encoding TEXT NOT NULL DEFAULT '',
    rsp_status TEXT NOT NULL DEFAULT '',
    rsp_message TEXT NOT NULL DEFAULT '',
    rsp_content_type TEXT NOT NULL DEFAULT '',
    rsp_encoding TEXT NOT NULL DEFAULT '',
    server_ip TEXT NOT NULL DEFAULT '',
    server_port INTEGER NOT NULL DEFAULT 0,
    req_path TEXT NOT NULL DEFAULT '',
    rsp_path TEXT NOT NULL DEFAULT '',
    dns_start REAL NOT NULL DEFAULT 0,
    connect_start REAL NOT NULL DEFAULT 0,
    send_start REAL NOT NULL DEFAULT 0,
    send_end REAL NOT NULL DEFAULT 0,
    receive_start REAL NOT NULL DEFAULT 0,
    receive_end REAL NOT NULL DEFAULT 0,
    in_bytes INTEGER NOT NULL DEFAULT 0,
    out_bytes INTEGER NOT NULL DEFAULT 0
);

CREATE TABLE IF NOT EXISTS policies (
    name TEXT PRIMARY KEY,
    content TEXT NOT NULL,
    created_at REAL NOT NULL,
    updated_at REAL NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_sessions_task
    ON sessions(task_id);
CREATE INDEX IF NOT EXISTS idx_sessions_host
    ON sessions(host);
"""


async def get_db(db_path: str | Path) -> aiosqlite.Connection:
    """Open (or create) the database and run migrations."""
    db_path = Path(db_path)
    db_path.parent.mkdir(parents=True, exist_ok=True)

    db = await aiosqlite.connect(str(db_path))
    db.row_factory = aiosqlite.Row
    await db.execute("PRAGMA journal_mode=WAL")

    await _migrate(db)
    return db


async def _migrate(db: aiosqlite.Connection) -> None:
    """Create the schema on a fresh database, check the version otherwise."""
    cursor = await db.execute(
        "SELECT name FROM sqlite_master WHERE type='table' AND name='schema_version'"
    )
    row = await cursor.fetchone()

    if row is None:
        await db.executescript(SCHEMA_SQL)
        await db.execute(
            "INSERT INTO schema_version (version) VALUES (?)",
            (SCHEMA_VERSION,),
        )
        await db.commit()
        logger.info("Database initialized at schema version %d", SCHEMA_VERSION)
        return

    cursor = await db.execute("SELECT version FROM schema_version")
    row = await cursor.fetchone()
    current = row[0] if row else 0

    if current != SCHEMA_VERSION:
        logger.warning(
            "Database schema version %d, expected %d",
            current,
            SCHEMA_VERSION,
        )
