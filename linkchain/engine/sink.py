"""Result sink: persist one link's terminal outcome into its task document.

The whole link sequence is rewritten under a transaction
(:func:`linkchain.db.tasks.update_task_in_transaction`): the sink re-reads the
task, replaces the matching entry, recomputes the aggregate status and writes
everything back.  Results from sibling links that landed in between are read
fresh, so nothing is lost whatever order the writes arrive in.

Matching is by link identifier first and by source URL when no entry carries
that identifier.  Position in the sequence is never used.
"""

from __future__ import annotations

import time
from dataclasses import replace
from typing import Any, Callable, Optional

from linkchain.db import tasks as tasks_db
from linkchain.db.models import LinkId, LinkRecord, Task, aggregate_status
from linkchain.db.store import TaskStore
from linkchain.engine.attempt import LinkOutcome


def _same_url(record: LinkRecord, source_url: Any) -> bool:
    return source_url is not None and source_url != "" and record.link == source_url


def merge_link_outcome(
    task: Task,
    lid: Optional[LinkId],
    source_url: Any,
    outcome: LinkOutcome,
    extracted_by: Optional[str],
    now: int,
) -> Task:
    """Return a copy of *task* with *outcome* applied to the matching link."""
    by_id = lid is not None and any(record.lid == lid for record in task.links)

    links: list[LinkRecord] = []
    for record in task.links:
        hit = record.lid == lid if by_id else _same_url(record, source_url)
        if hit:
            record = replace(
                record,
                status=outcome.status,
                final_link=outcome.final_link or record.final_link,
                error=outcome.error,
                logs=list(outcome.logs),
                best_button_name=outcome.best_button_name,
                all_available_buttons=list(outcome.all_available_buttons),
                solved_at=now,
                attempts=outcome.attempts,
            )
        links.append(record)

    status = aggregate_status(links)
    completed_at = task.completed_at
    if status != "processing":
        completed_at = completed_at or now
    return replace(
        task,
        links=links,
        status=status,
        extracted_by=extracted_by or task.extracted_by,
        updated_at=now,
        completed_at=completed_at,
    )


class ResultSink:
    """Writes terminal outcomes through a :class:`TaskStore`."""

    def __init__(self, store: TaskStore, clock: Callable[[], float] = time.time) -> None:
        self._store = store
        self._clock = clock

    async def save(
        self,
        task_id: str,
        lid: Optional[LinkId],
        source_url: Any,
        outcome: LinkOutcome,
        extracted_by: Optional[str] = None,
    ) -> Optional[Task]:
        """Persist *outcome*; returns ``None`` when the task no longer exists."""
        now = int(self._clock())

        def mutate(task: Task) -> Task:
            return merge_link_outcome(task, lid, source_url, outcome, extracted_by, now)

        return await self._store.run(tasks_db.update_task_in_transaction, task_id, mutate)

    async def mark_processing(self, task_id: str, extracted_by: Optional[str] = None) -> Optional[Task]:
        """Flag the task as being worked on, unless all its links are finished."""
        now = int(self._clock())

        def mutate(task: Task) -> Task:
            if all(record.is_terminal for record in task.links):
                return task
            return replace(
                task,
                status="processing",
                extracted_by=extracted_by or task.extracted_by,
                processing_started_at=now,
                updated_at=now,
            )

        return await self._store.run(tasks_db.update_task_in_transaction, task_id, mutate)
