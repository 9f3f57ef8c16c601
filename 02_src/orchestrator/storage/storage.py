"""SQLite storage implementation."""

import json
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Protocol

import aiosqlite

from ..config import resolve_db_path
from ..models import TaskEvent


class IStorage(Protocol):
    """Persistent storage for task state (SQLite).

    Task and subtask state is stored as an opaque JSON document; decoding
    is left to the caller so a corrupt row can be handled per record.
    """

    async def init(self) -> None:
        """Initialize database and create tables."""
        ...

    async def close(self) -> None:
        """Close database connection."""
        ...

    # Tasks
    async def save_task(
        self, task_id: str, status: str, project: str, started_at: str, document: str
    ) -> None:
        """Insert or replace a task document."""
        ...

    async def update_task_if_version(
        self, task_id: str, expected_version: int, status: str, document: str
    ) -> bool:
        """Replace a task document only if its stored version is `expected_version`.

        A successful write bumps the version.
        """
        ...

    async def get_task(self, task_id: str) -> str | None:
        """Raw task document."""
        ...

    async def get_task_versioned(self, task_id: str) -> tuple[str, int] | None:
        """Raw task document with its current version."""
        ...

    async def list_tasks(
        self, status: str | None = None, project: str | None = None
    ) -> list[tuple[str, str]]:
        """(task_id, document) pairs, newest first."""
        ...

    async def delete_task(self, task_id: str) -> bool:
        """Delete a task and its subtasks."""
        ...

    # Subtasks
    async def save_subtask(
        self,
        parent_task_id: str,
        subtask_id: str,
        status: str,
        started_at: str,
        document: str,
    ) -> None:
        """Insert or replace a subtask document."""
        ...

    async def get_subtask(self, parent_task_id: str, subtask_id: str) -> str | None:
        """Raw subtask document."""
        ...

    async def list_subtasks(self, parent_task_id: str) -> list[tuple[str, str]]:
        """(subtask_id, document) pairs ordered by start time."""
        ...

    # TaskEvents
    async def save_task_event(self, event: TaskEvent) -> None:
        """Save a task lifecycle event."""
        ...

    async def get_task_events(
        self,
        task_id: str | None = None,
        event_types: list[str] | None = None,
        limit: int = 100,
    ) -> list[TaskEvent]:
        """Get task events with optional filters (newest first)."""
        ...

    # Lifecycle
    async def clear(self) -> None:
        """Clear all data."""
        ...


class Storage:
    """SQLite storage implementation."""

    def __init__(self, db_path: str | Path | None = None):
        if db_path is None:
            self._db_path = resolve_db_path()
        else:
            self._db_path = resolve_db_path(db_path)
        self._conn: aiosqlite.Connection | None = None

    @property
    def db_path(self) -> str | Path:
        return self._db_path

    async def init(self) -> None:
        """Initialize database and create tables."""
        self._conn = await aiosqlite.connect(self._db_path)

        # Read and execute schema
        schema_path = Path(__file__).parent / "schema.sql"
        with open(schema_path, "r", encoding="utf-8") as f:
            schema_sql = f.read()
        await self._conn.executescript(schema_sql)
        await self._conn.commit()

    async def close(self) -> None:
        """Close database connection."""
        if self._conn:
            await self._conn.close()
            self._conn = None

    def _require_conn(self) -> aiosqlite.Connection:
        if not self._conn:
            raise RuntimeError("Storage not initialized")
        return self._conn

    # Tasks
    async def save_task(
        self, task_id: str, status: str, project: str, started_at: str, document: str
    ) -> None:
        """Insert or replace a task document."""
        conn = self._require_conn()
        await conn.execute(
            """
            INSERT INTO tasks
            (task_id, status, project, started_at, updated_at, version, document)
            VALUES (?, ?, ?, ?, ?, 0, ?)
            ON CONFLICT(task_id) DO UPDATE SET
                status = excluded.status,
                project = excluded.project,
                started_at = excluded.started_at,
                updated_at = excluded.updated_at,
                version = tasks.version + 1,
                document = excluded.document
            """,
            (task_id, status, project, started_at, _now_iso(), document),
        )
        await conn.commit()

    async def update_task_if_version(
        self, task_id: str, expected_version: int, status: str, document: str
    ) -> bool:
        """Compare-and-set on the version column. Returns True if a row changed."""
        conn = self._require_conn()
        cursor = await conn.execute(
            """
            UPDATE tasks
            SET status = ?, document = ?, updated_at = ?, version = version + 1
            WHERE task_id = ? AND version = ?
            """,
            (status, document, _now_iso(), task_id, expected_version),
        )
        await conn.commit()
        return cursor.rowcount > 0

    async def get_task(self, task_id: str) -> str | None:
        """Raw task document."""
        found = await self.get_task_versioned(task_id)
        return found[0] if found else None

    async def get_task_versioned(self, task_id: str) -> tuple[str, int] | None:
        """Raw task document with its current version."""
        conn = self._require_conn()
        cursor = await conn.execute(
            "SELECT document, version FROM tasks WHERE task_id = ?", (task_id,)
        )
        row = await cursor.fetchone()
        return (row[0], row[1]) if row else None

    async def list_tasks(
        self, status: str | None = None, project: str | None = None
    ) -> list[tuple[str, str]]:
        """(task_id, document) pairs, newest first."""
        conn = self._require_conn()

        # Build query dynamically
        conditions = []
        params = []

        if status:
            conditions.append("status = ?")
            params.append(status)
        if project:
            conditions.append("project = ?")
            params.append(project)

        where_clause = f"WHERE {' AND '.join(conditions)}" if conditions else ""

        cursor = await conn.execute(
            f"""
            SELECT task_id, document
            FROM tasks
            {where_clause}
            ORDER BY started_at DESC
            """,
            params,
        )
        rows = await cursor.fetchall()
        return [(row[0], row[1]) for row in rows]

    async def delete_task(self, task_id: str) -> bool:
        """Delete a task and its subtasks."""
        conn = self._require_conn()
        cursor = await conn.execute("DELETE FROM tasks WHERE task_id = ?", (task_id,))
        await conn.execute("DELETE FROM subtasks WHERE parent_task_id = ?", (task_id,))
        await conn.commit()
        return cursor.rowcount > 0

    # Subtasks
    async def save_subtask(
        self,
        parent_task_id: str,
        subtask_id: str,
        status: str,
        started_at: str,
        document: str,
    ) -> None:
        """Insert or replace a subtask document."""
        conn = self._require_conn()
        await conn.execute(
            """
            INSERT OR REPLACE INTO subtasks
            (parent_task_id, subtask_id, status, started_at, document)
            VALUES (?, ?, ?, ?, ?)
            """,
            (parent_task_id, subtask_id, status, started_at, document),
        )
        await conn.commit()

    async def get_subtask(self, parent_task_id: str, subtask_id: str) -> str | None:
        """Raw subtask document."""
        conn = self._require_conn()
        cursor = await conn.execute(
            """
            SELECT document FROM subtasks
            WHERE parent_task_id = ? AND subtask_id = ?
            """,
            (parent_task_id, subtask_id),
        )
        row = await cursor.fetchone()
        return row[0] if row else None

    async def list_subtasks(self, parent_task_id: str) -> list[tuple[str, str]]:
        """(subtask_id, document) pairs ordered by start time."""
        conn = self._require_conn()
        cursor = await conn.execute(
            """
            SELECT subtask_id, document
            FROM subtasks
            WHERE parent_task_id = ?
            ORDER BY started_at ASC
            """,
            (parent_task_id,),
        )
        rows = await cursor.fetchall()
        return [(row[0], row[1]) for row in rows]

    # TaskEvents
    async def save_task_event(self, event: TaskEvent) -> None:
        """Save a task lifecycle event."""
        conn = self._require_conn()
        await conn.execute(
            """
            INSERT INTO task_events
            (id, task_id, event_type, status_from, status_to, details, timestamp)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                event.id or str(uuid.uuid4()),
                event.task_id,
                event.event_type,
                event.status_from,
                event.status_to,
                json.dumps(event.details, default=str),
                event.timestamp.isoformat(),
            ),
        )
        await conn.commit()

    async def get_task_events(
        self,
        task_id: str | None = None,
        event_types: list[str] | None = None,
        limit: int = 100,
    ) -> list[TaskEvent]:
        """Get task events with optional filters (newest first)."""
        conn = self._require_conn()

        conditions = []
        params: list = []

        if task_id:
            conditions.append("task_id = ?")
            params.append(task_id)
        if event_types:
            placeholders = ",".join("?" * len(event_types))
            conditions.append(f"event_type IN ({placeholders})")
            params.extend(event_types)

        where_clause = f"WHERE {' AND '.join(conditions)}" if conditions else ""

        query = f"""
            SELECT id, task_id, event_type, status_from, status_to, details, timestamp
            FROM task_events
            {where_clause}
            ORDER BY timestamp DESC
            LIMIT ?
        """
        params.append(limit)

        cursor = await conn.execute(query, params)
        rows = await cursor.fetchall()

        return [
            TaskEvent(
                id=row[0],
                task_id=row[1],
                event_type=row[2],
                status_from=row[3],
                status_to=row[4],
                details=json.loads(row[5]),
                timestamp=_parse_ts(row[6]),
            )
            for row in rows
        ]

    # Lifecycle
    async def clear(self) -> None:
        """Clear all data."""
        conn = self._require_conn()
        for table in ["task_events", "subtasks", "tasks"]:
            await conn.execute(f"DELETE FROM {table}")
        await conn.commit()


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _parse_ts(value: str) -> datetime:
    ts = datetime.fromisoformat(value)
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts
