"""Repository classes for async CRUD operations on SQLite."""

from __future__ import annotations

import time
from collections.abc import Mapping, Sequence

import aiosqlite

from knotcap.session.models import SessionRecord

_SESSION_COLUMNS = SessionRecord.column_names()

# Filters compared for equality (case-insensitive)
EXACT_FILTERS = frozenset(
    {
        "task_id",
        "host",
        "scheme",
        "method",
        "suffix",
        "version",
        "client_identifier",
        "rsp_status",
        "rsp_content_type",
    }
)

# Columns scanned by a free-text keyword search
KEYWORD_COLUMNS = (
    "server_ip",
    "host",
    "scheme",
    "uri",
    "client_identifier",
    "rsp_status",
    "rsp_message",
)


class SessionRepo:
    """CRUD and search for captured session records."""

    def __init__(self, db: aiosqlite.Connection) -> None:
        self._db = db

    async def create(self, record: SessionRecord) -> None:
        placeholders = ", ".join("?" for _ in _SESSION_COLUMNS)
        await self._db.execute(
            f"INSERT INTO sessions ({', '.join(_SESSION_COLUMNS)}) "
            f"VALUES ({placeholders})",
            tuple(getattr(record, name) for name in _SESSION_COLUMNS),
        )
        await self._db.commit()

    async def get(self, session_id: str) -> SessionRecord | None:
        cursor = await self._db.execute(
            "SELECT * FROM sessions WHERE id = ?", (session_id,)
        )
        row = await cursor.fetchone()
        return SessionRecord.from_row(dict(row)) if row else None

    async def find_all(self, ids: Sequence[str]) -> list[SessionRecord]:
        """Records for the given ids, in the order the ids were given."""
        if not ids:
            return []
        placeholders = ", ".join("?" for _ in ids)
        cursor = await self._db.execute(
            f"SELECT * FROM sessions WHERE id IN ({placeholders})",
            tuple(ids),
        )
        found = {row["id"]: SessionRecord.from_row(dict(row)) async for row in cursor}
        return [found[i] for i in dict.fromkeys(ids) if i in found]

    async def list_all(self, limit: int = 50, offset: int = 0) -> list[SessionRecord]:
        return await self.search(limit=limit, offset=offset)

    async def search(
        self,
        keyword: str | None = None,
        filters: Mapping[str, Sequence[str]] | None = None,
        limit: int = 50,
        offset: int = 0,
        before: float | None = None,
    ) -> list[SessionRecord]:
        """Filter records, newest first.

        ``filters`` maps a column to accepted values (OR within a column, AND
        across columns); columns outside ``EXACT_FILTERS`` match as substrings.
        ``keyword`` is searched in every ``KEYWORD_COLUMNS`` column.
        """
        clauses: list[str] = []
        params: list[object] = []

        for column, values in (filters or {}).items():
            if column not in _SESSION_COLUMNS:
                raise ValueError(f"Unknown session column: {column}")
            if not values:
                continue
            ors = []
            for value in values:
                if column in EXACT_FILTERS:
                    ors.append(f"lower({column}) = ?")
                    params.append(value.lower())
                else:
                    ors.append(f"lower({column}) LIKE ?")
                    params.append(f"%{value.lower()}%")
            clauses.append("(" + " OR ".join(ors) + ")")

        if keyword:
            ors = [f"lower({column}) LIKE ?" for column in KEYWORD_COLUMNS]
            params.extend(f"%{keyword.lower()}%" for _ in KEYWORD_COLUMNS)
            clauses.append("(" + " OR ".join(ors) + ")")

        if before is not None:
            clauses.append("dns_start < ?")
            params.append(before)

        where = " AND ".join(clauses) if clauses else "1 = 1"
        params.extend([limit, offset])
        cursor = await self._db.execute(
            f"SELECT * FROM sessions WHERE {where} "
            "ORDER BY dns_start DESC LIMIT ? OFFSET ?",
            tuple(params),
        )
        return [SessionRecord.from_row(dict(row)) async for row in cursor]

    async def hosts(self, keyword: str = "") -> list[str]:
        cursor = await self._db.execute(
            "SELECT host FROM sessions WHERE host LIKE ? GROUP BY host ORDER BY host",
            (f"%{keyword}%",),
        )
        return [row["host"] async for row in cursor]

    async def delete(self, session_id: str) -> bool:
        cursor = await self._db.execute(
            "DELETE FROM sessions WHERE id = ?", (session_id,)
        )
        await self._db.commit()
        return cursor.rowcount > 0


class PolicyRepo:
    """CRUD for stored policy documents."""

    def __init__(self, db: aiosqlite.Connection) -> None:
        self._db = db

    async def save(self, name: str, content: str) -> None:
        now = time.time()
        await self._db.execute(
            "INSERT OR REPLACE INTO policies "
            "(name, content, created_at, updated_at) "
            "VALUES (?, ?, COALESCE("
            "  (SELECT created_at FROM policies WHERE name = ?), ?"
            "), ?)",
            (name, content, name, now, now),
        )
        await self._db.commit()

    async def get(self, name: str) -> dict | None:
        cursor = await self._db.execute(
            "SELECT * FROM policies WHERE name = ?", (name,)
        )
        row = await cursor.fetchone()
        return dict(row) if row else None

    async def list_all(self) -> list[dict]:
        cursor = await self._db.execute("SELECT * FROM policies ORDER BY name")
        return [dict(row) async for row in cursor]

    async def delete(self, name: str) -> bool:
        cursor = await self._db.execute(
            "DELETE FROM policies WHERE name = ?", (name,)
        )
        await self._db.commit()
        return cursor.rowcount > 0
