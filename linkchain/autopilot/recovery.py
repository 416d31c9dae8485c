"""Stale-work recovery sweep.

Work left ``processing`` past the grace window (a crashed or killed run) is
handed back so a later tick picks it up again:

* queue items go back to ``pending`` with ``retry_count + 1``, or to
  ``failed`` once the retry cap is exceeded;
* tasks get every unfinished link reset to ``pending`` (its trace replaced by
  a single "Auto-recovered" entry) through the transactional task update.
"""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import replace
from typing import Optional

from linkchain.db import queue as queue_db
from linkchain.db import tasks as tasks_db
from linkchain.db.models import Task, TraceEntry, UNFINISHED_STATUSES, normalise_status

logger = logging.getLogger(__name__)

RECOVERED_ENTRY = TraceEntry(message="Auto-recovered", severity="info")


def _is_stale(marker: Optional[int], cutoff: int) -> bool:
    return marker is not None and marker < cutoff


def recover_stale_queue_items(
    conn: sqlite3.Connection,
    now: int,
    grace_seconds: int,
    max_retries: int,
) -> int:
    """Requeue or fail queue items stuck in ``processing``; returns the count."""
    cutoff = now - grace_seconds
    recovered = 0
    for item in queue_db.list_queue(conn, status="processing"):
        if not _is_stale(item.locked_at or item.updated_at or item.created_at, cutoff):
            continue
        retry_count = item.retry_count + 1
        if retry_count > max_retries:
            queue_db.update_queue_item(
                conn,
                item.id,
                status="failed",
                error=f"Max retries exceeded ({max_retries}/{max_retries})",
                failed_at=now,
                retry_count=retry_count,
            )
            logger.warning("Queue item %s failed after %d retries", item.id, max_retries)
        else:
            queue_db.update_queue_item(
                conn,
                item.id,
                status="pending",
                locked_at=None,
                retry_count=retry_count,
                last_recovered_at=now,
            )
        recovered += 1
    return recovered


def recover_stale_tasks(conn: sqlite3.Connection, now: int, grace_seconds: int) -> int:
    """Reset unfinished links of tasks stuck in ``processing``; returns the count.

    Staleness is measured from the last recovery, else from when processing
    started, else from creation, so a task is recovered at most once per
    grace window.
    """
    cutoff = now - grace_seconds
    recovered = 0
    for task in tasks_db.list_tasks(conn, status="processing"):
        touched: list[bool] = []

        def mutate(current: Task) -> Task:
            marker = current.recovered_at or current.processing_started_at or current.created_at
            if current.status != "processing" or not _is_stale(marker, cutoff):
                return current
            unfinished = [
                link for link in current.links
                if normalise_status(link.status) in UNFINISHED_STATUSES
            ]
            if not unfinished:
                return current
            touched.append(True)
            links = [
                replace(link, status="pending", logs=[RECOVERED_ENTRY])
                if normalise_status(link.status) in UNFINISHED_STATUSES
                else link
                for link in current.links
            ]
            return replace(current, links=links, recovered_at=now, updated_at=now)

        tasks_db.update_task_in_transaction(conn, task.id, mutate)
        if touched:
            logger.info("Recovered stale task %s", task.id)
            recovered += 1
    return recovered


def recover_stale_work(
    conn: sqlite3.Connection,
    now: int,
    grace_seconds: int = 600,
    max_retries: int = 3,
) -> int:
    """Run both sweeps and return the total number of recovered records."""
    return recover_stale_queue_items(conn, now, grace_seconds, max_retries) + recover_stale_tasks(
        conn, now, grace_seconds
    )
