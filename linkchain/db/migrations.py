"""Schema bootstrap and upgrades for existing workspaces.

``init_db(conn)`` applies ``schema.sql`` (all ``IF NOT EXISTS``) and then runs
:func:`migrate`, which adds the columns later releases introduced to tables
created by an earlier one.  Each step is recorded in ``schema_version`` and
runs at most once per database.
"""

from __future__ import annotations

import logging
import sqlite3
import time
from dataclasses import dataclass

from linkchain.config import settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AddColumn:
    table: str
    column: str
    decl: str

    def apply(self, conn: sqlite3.Connection) -> bool:
        """Add the column unless the table already has it."""
        if self.column in table_columns(conn, self.table):
            return False
        conn.execute(f"ALTER TABLE {self.table} ADD COLUMN {self.column} {self.decl}")
        return True


# Fresh databases get these columns from schema.sql, so there the steps are
# only recorded.
MIGRATIONS: tuple[tuple[int, AddColumn], ...] = (
    (1, AddColumn("tasks", "recovered_at", "INTEGER")),
    (2, AddColumn("queue_items", "failed_at", "INTEGER")),
    (3, AddColumn("queue_items", "last_recovered_at", "INTEGER")),
)

LATEST_VERSION = MIGRATIONS[-1][0]


def table_columns(conn: sqlite3.Connection, table: str) -> set[str]:
    return {row[1] for row in conn.execute(f"PRAGMA table_info({table})")}


def init_db(conn: sqlite3.Connection) -> None:
    """Create missing tables and indexes, then upgrade older layouts."""
    conn.executescript(settings.schema_path.read_text(encoding="utf-8"))
    migrate(conn)


def current_version(conn: sqlite3.Connection) -> int:
    """Highest recorded step, 0 for a database that has none."""
    row = conn.execute("SELECT COALESCE(MAX(version), 0) FROM schema_version").fetchone()
    return row[0]


def migrate(conn: sqlite3.Connection) -> list[int]:
    """Apply every step above :func:`current_version`.

    Returns:
        The versions that changed a table.  Steps whose column already
        existed are recorded but not listed.
    """
    changed: list[int] = []
    applied = current_version(conn)
    for version, step in MIGRATIONS:
        if version <= applied:
            continue
        with conn:
            if step.apply(conn):
                changed.append(version)
                logger.info("Schema v%d: added %s.%s", version, step.table, step.column)
            conn.execute(
                "INSERT INTO schema_version (version, applied_at) VALUES (?, ?)",
                (version, int(time.time())),
            )
    return changed
