"""SQLite connections for the task store.

The dispatcher's two lanes and the API all write result rows through one
process, so every connection waits on a competing writer for
``settings.db_busy_timeout`` seconds before ``database is locked`` surfaces.
"""

from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import Optional, Union

from linkchain.config import settings

MEMORY = ":memory:"


def get_connection(
    db_path: Optional[Union[Path, str]] = None,
    busy_timeout: Optional[float] = None,
) -> sqlite3.Connection:
    """Open a connection to *db_path* (default ``settings.db_path``).

    File databases run in WAL mode with ``synchronous = NORMAL``; ``":memory:"``
    is left in its default journal mode.  Rows come back as
    :class:`sqlite3.Row`.
    """
    target = str(db_path or settings.db_path)
    if target != MEMORY:
        Path(target).parent.mkdir(parents=True, exist_ok=True)

    timeout = settings.db_busy_timeout if busy_timeout is None else busy_timeout
    conn = sqlite3.connect(target, check_same_thread=False, timeout=timeout)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    if target != MEMORY:
        conn.execute("PRAGMA journal_mode = WAL")
        conn.execute("PRAGMA synchronous = NORMAL")
    return conn
