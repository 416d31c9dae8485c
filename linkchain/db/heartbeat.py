"""Engine heartbeat row, shown to operators as the autopilot's liveness."""

from __future__ import annotations

import sqlite3
import time
from typing import Optional

from linkchain.db.models import EngineStatus

ENGINE_NAME = "engine_status"


def set_engine_status(
    conn: sqlite3.Connection,
    status: str,
    details: str = "",
    source: str = "cron",
    name: str = ENGINE_NAME,
) -> EngineStatus:
    """Upsert the heartbeat row and return it."""
    now = int(time.time())
    with conn:
        conn.execute(
            """
            INSERT INTO engine_status (name, status, details, source, last_run_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT(name) DO UPDATE SET
                status = excluded.status,
                details = excluded.details,
                source = excluded.source,
                last_run_at = excluded.last_run_at,
                updated_at = excluded.updated_at
            """,
            (name, status, details, source, now, now),
        )
    return get_engine_status(conn, name)  # type: ignore[return-value]


def get_engine_status(
    conn: sqlite3.Connection,
    name: str = ENGINE_NAME,
) -> Optional[EngineStatus]:
    row = conn.execute("SELECT * FROM engine_status WHERE name = ?", (name,)).fetchone()
    if row is None:
        return None
    return EngineStatus(
        name=row["name"],
        status=row["status"],
        details=row["details"],
        source=row["source"],
        last_run_at=row["last_run_at"],
        updated_at=row["updated_at"],
    )
