"""CRUD operations for the ``tasks`` table.

A task's ``links`` column is a JSON document.  It is never patched field by
field: every change to the link sequence goes through
:func:`update_task_in_transaction`, which re-reads the current sequence under
``BEGIN IMMEDIATE`` before writing it back, so concurrent writers cannot drop
each other's results.
"""

from __future__ import annotations

import json
import sqlite3
import time
import uuid
from dataclasses import replace
from typing import Any, Callable, Iterable, Optional, Union

from linkchain.db.models import LinkRecord, Task

# Bounded retry when another connection holds the write lock past the
# connection's busy timeout.
_LOCK_RETRIES = 3
_LOCK_BACKOFF = 0.1

TaskMutation = Callable[[Task], Task]


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _row_to_task(row: sqlite3.Row) -> Task:
    return Task(
        id=row["id"],
        title=row["title"],
        source_url=row["source_url"],
        status=row["status"],
        extracted_by=row["extracted_by"],
        links=[LinkRecord.from_dict(item) for item in json.loads(row["links"] or "[]")],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
        processing_started_at=row["processing_started_at"],
        completed_at=row["completed_at"],
        recovered_at=row["recovered_at"],
    )


def _links_json(links: Iterable[LinkRecord]) -> str:
    return json.dumps([link.to_dict() for link in links])


def _coerce_link(item: Union[LinkRecord, dict[str, Any]], index: int) -> LinkRecord:
    record = item if isinstance(item, LinkRecord) else LinkRecord.from_dict(item)
    if record.lid is None:
        record = replace(record, lid=index)
    return record


def _write_task(conn: sqlite3.Connection, task: Task) -> None:
    conn.execute(
        """
        UPDATE tasks
        SET title = ?, source_url = ?, status = ?, extracted_by = ?, links = ?,
            updated_at = ?, processing_started_at = ?, completed_at = ?,
            recovered_at = ?
        WHERE id = ?
        """,
        (
            task.title,
            task.source_url,
            task.status,
            task.extracted_by,
            _links_json(task.links),
            task.updated_at,
            task.processing_started_at,
            task.completed_at,
            task.recovered_at,
            task.id,
        ),
    )


def _is_lock_error(exc: sqlite3.OperationalError) -> bool:
    message = str(exc).lower()
    return "locked" in message or "busy" in message


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def create_task(
    conn: sqlite3.Connection,
    links: Iterable[Union[LinkRecord, dict[str, Any]]],
    title: Optional[str] = None,
    source_url: Optional[str] = None,
    extracted_by: Optional[str] = None,
    task_id: Optional[str] = None,
) -> Task:
    """Insert a new task and return it.

    Links without an explicit identifier are numbered by their position, so
    every stored link carries an ``id`` the result sink can match on.

    Args:
        conn: Open DB connection.
        links: :class:`LinkRecord` objects or ``{"id", "name", "link"}`` dicts.
        title: Human-readable display name.
        source_url: The page the links were extracted from.
        extracted_by: Extraction-source tag.
        task_id: Explicit UUID override (auto-generated when omitted).
    """
    tid = task_id or str(uuid.uuid4())
    now = int(time.time())
    records = [_coerce_link(item, index) for index, item in enumerate(links)]

    with conn:
        conn.execute(
            """
            INSERT INTO tasks (id, title, source_url, status, extracted_by, links,
                               created_at, updated_at)
            VALUES (?, ?, ?, 'pending', ?, ?, ?, ?)
            """,
            (tid, title, source_url, extracted_by, _links_json(records), now, now),
        )

    return get_task(conn, tid)  # type: ignore[return-value]


def get_task(conn: sqlite3.Connection, task_id: str) -> Optional[Task]:
    """Fetch a single task by its id.  Returns ``None`` if not found."""
    row = conn.execute("SELECT * FROM tasks WHERE id = ?", (task_id,)).fetchone()
    return _row_to_task(row) if row else None


def list_tasks(
    conn: sqlite3.Connection,
    status: Optional[str] = None,
) -> list[Task]:
    """Return all tasks, optionally filtered by ``status`` (newest first)."""
    if status:
        rows = conn.execute(
            "SELECT * FROM tasks WHERE status = ? ORDER BY created_at DESC",
            (status,),
        ).fetchall()
    else:
        rows = conn.execute("SELECT * FROM tasks ORDER BY created_at DESC").fetchall()
    return [_row_to_task(r) for r in rows]


def update_task(conn: sqlite3.Connection, task_id: str, **kwargs: Any) -> Optional[Task]:
    """Update scalar task fields.

    Allowed keyword arguments: ``title``, ``status``, ``extracted_by``.  The
    link sequence is deliberately not updatable here; use
    :func:`update_task_in_transaction`.

    Returns:
        The updated task, or ``None`` if it does not exist.

    Raises:
        ValueError: If an unknown field or no field is given.
    """
    allowed = {"title", "status", "extracted_by"}
    for key in kwargs:
        if key not in allowed:
            raise ValueError(f"Cannot update field {key!r}")
    if not kwargs:
        raise ValueError("No valid fields provided to update_task()")

    updates = dict(kwargs)
    updates["updated_at"] = int(time.time())
    set_clause = ", ".join(f"{col} = ?" for col in updates)
    values = list(updates.values()) + [task_id]

    with conn:
        conn.execute(f"UPDATE tasks SET {set_clause} WHERE id = ?", values)  # noqa: S608

    return get_task(conn, task_id)


def update_task_in_transaction(
    conn: sqlite3.Connection,
    task_id: str,
    mutate: TaskMutation,
) -> Optional[Task]:
    """Read-modify-write one task atomically.

    *mutate* receives the task as currently stored and returns the version to
    write.  It runs inside ``BEGIN IMMEDIATE`` so no other writer can slip in
    between the read and the write.  Lock conflicts are retried a bounded
    number of times.

    Returns:
        The written task, or ``None`` when the task does not exist (the write
        is then a no-op).
    """
    for attempt in range(_LOCK_RETRIES):
        try:
            return _read_modify_write(conn, task_id, mutate)
        except sqlite3.OperationalError as exc:
            if not _is_lock_error(exc) or attempt == _LOCK_RETRIES - 1:
                raise
            time.sleep(_LOCK_BACKOFF * (2 ** attempt))
    return None  # pragma: no cover


def _read_modify_write(
    conn: sqlite3.Connection,
    task_id: str,
    mutate: TaskMutation,
) -> Optional[Task]:
    conn.execute("BEGIN IMMEDIATE")
    try:
        row = conn.execute("SELECT * FROM tasks WHERE id = ?", (task_id,)).fetchone()
        if row is None:
            conn.rollback()
            return None
        updated = mutate(_row_to_task(row))
        _write_task(conn, updated)
    except BaseException:
        conn.rollback()
        raise
    conn.commit()
    return updated


def delete_task(conn: sqlite3.Connection, task_id: str) -> None:
    """Delete a task.  This is a no-op if the task does not exist."""
    with conn:
        conn.execute("DELETE FROM tasks WHERE id = ?", (task_id,))
