"""CRUD helpers for the ``queue_items`` table fed to the autopilot tick."""

from __future__ import annotations

import sqlite3
import time
import uuid
from typing import Any, Optional

from linkchain.db.models import QueueItem

QUEUE_KINDS = ("movies", "webseries")

_UPDATABLE = {
    "status",
    "title",
    "task_id",
    "error",
    "extracted_by",
    "retry_count",
    "locked_at",
    "processed_at",
    "failed_at",
    "last_recovered_at",
}


def _row_to_item(row: sqlite3.Row) -> QueueItem:
    return QueueItem(
        id=row["id"],
        kind=row["kind"],
        url=row["url"],
        title=row["title"],
        status=row["status"],
        task_id=row["task_id"],
        error=row["error"],
        extracted_by=row["extracted_by"],
        retry_count=row["retry_count"],
        locked_at=row["locked_at"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
        processed_at=row["processed_at"],
        failed_at=row["failed_at"],
        last_recovered_at=row["last_recovered_at"],
    )


def enqueue(
    conn: sqlite3.Connection,
    url: str,
    kind: str = "movies",
    title: Optional[str] = None,
) -> QueueItem:
    """Add a pending queue item and return it.

    Raises:
        ValueError: If *kind* is not one of :data:`QUEUE_KINDS`.
    """
    if kind not in QUEUE_KINDS:
        raise ValueError(f"Unknown queue kind {kind!r}")
    item_id = str(uuid.uuid4())
    now = int(time.time())
    with conn:
        conn.execute(
            """
            INSERT INTO queue_items (id, kind, url, title, status, created_at, updated_at)
            VALUES (?, ?, ?, ?, 'pending', ?, ?)
            """,
            (item_id, kind, url, title, now, now),
        )
    return get_queue_item(conn, item_id)  # type: ignore[return-value]


def get_queue_item(conn: sqlite3.Connection, item_id: str) -> Optional[QueueItem]:
    row = conn.execute("SELECT * FROM queue_items WHERE id = ?", (item_id,)).fetchone()
    return _row_to_item(row) if row else None


def next_pending(conn: sqlite3.Connection) -> Optional[QueueItem]:
    """Return the oldest pending item, movies before webseries."""
    row = conn.execute(
        """
        SELECT * FROM queue_items
        WHERE status = 'pending'
        ORDER BY CASE kind WHEN 'movies' THEN 0 ELSE 1 END, created_at ASC, rowid ASC
        LIMIT 1
        """
    ).fetchone()
    return _row_to_item(row) if row else None


def list_queue(
    conn: sqlite3.Connection,
    status: Optional[str] = None,
    kind: Optional[str] = None,
) -> list[QueueItem]:
    """Return queue items filtered by equality on ``status`` and/or ``kind``."""
    clauses: list[str] = []
    params: list[Any] = []
    if status:
        clauses.append("status = ?")
        params.append(status)
    if kind:
        clauses.append("kind = ?")
        params.append(kind)
    where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
    rows = conn.execute(
        f"SELECT * FROM queue_items {where} ORDER BY created_at ASC, rowid ASC",  # noqa: S608
        params,
    ).fetchall()
    return [_row_to_item(r) for r in rows]


def update_queue_item(conn: sqlite3.Connection, item_id: str, **kwargs: Any) -> Optional[QueueItem]:
    """Update one or more fields on a queue item; ``updated_at`` is refreshed.

    Raises:
        ValueError: If an unknown field or no field is given.
    """
    for key in kwargs:
        if key not in _UPDATABLE:
            raise ValueError(f"Cannot update field {key!r}")
    if not kwargs:
        raise ValueError("No valid fields provided to update_queue_item()")

    updates = dict(kwargs)
    updates["updated_at"] = int(time.time())
    set_clause = ", ".join(f"{col} = ?" for col in updates)
    with conn:
        conn.execute(
            f"UPDATE queue_items SET {set_clause} WHERE id = ?",  # noqa: S608
            list(updates.values()) + [item_id],
        )
    return get_queue_item(conn, item_id)
