"""Process-wide document-store client.

:class:`TaskStore` owns one SQLite connection.  Synchronous DB helpers (the
functions in :mod:`linkchain.db.tasks`, :mod:`linkchain.db.queue`, ...) are
executed through it so that:

* only one helper touches the connection at a time, and
* async callers can ``await store.run(fn, ...)`` without blocking the event
  loop (the helper runs in a worker thread).

Lifecycle
---------
:func:`get_store` creates the client on first use and returns the same
instance for the rest of the process.  :func:`close_store` closes it; the next
:func:`get_store` call opens a fresh one.  Components receive the store as an
explicit constructor argument rather than looking it up themselves.
"""

from __future__ import annotations

import asyncio
import sqlite3
import threading
from pathlib import Path
from typing import Any, Callable, Optional, TypeVar

from linkchain.db.connection import get_connection
from linkchain.db.migrations import init_db

T = TypeVar("T")


class TaskStore:
    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn
        self._lock = threading.Lock()

    @property
    def conn(self) -> sqlite3.Connection:
        return self._conn

    def call(self, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """Run ``fn(conn, *args, **kwargs)`` while holding the connection."""
        with self._lock:
            return fn(self._conn, *args, **kwargs)

    async def run(self, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """Async variant of :meth:`call`; the helper runs in a worker thread."""
        return await asyncio.to_thread(self.call, fn, *args, **kwargs)

    def close(self) -> None:
        with self._lock:
            self._conn.close()


_store: Optional[TaskStore] = None
_store_lock = threading.Lock()


def open_store(db_path: Optional[Path] = None) -> TaskStore:
    """Open a new, initialised store (not the shared singleton)."""
    conn = get_connection(db_path)
    init_db(conn)
    return TaskStore(conn)


def get_store() -> TaskStore:
    """Return the process-wide store, creating it on first use."""
    global _store
    with _store_lock:
        if _store is None:
            _store = open_store()
        return _store


def close_store() -> None:
    """Close the process-wide store if it was ever opened."""
    global _store
    with _store_lock:
        if _store is not None:
            _store.close()
            _store = None
