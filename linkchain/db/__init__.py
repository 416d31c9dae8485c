"""Database layer package.

Public re-exports so callers can write::

    from linkchain.db import get_connection, init_db, get_store
    from linkchain.db import tasks
"""

from linkchain.db.connection import get_connection
from linkchain.db.migrations import init_db
from linkchain.db.store import TaskStore, close_store, get_store, open_store
from linkchain.db import heartbeat, queue, tasks

__all__ = [
    "get_connection",
    "init_db",
    "TaskStore",
    "get_store",
    "open_store",
    "close_store",
    "tasks",
    "queue",
    "heartbeat",
]
