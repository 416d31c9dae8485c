"""Batch dispatcher.

Splits a batch into two classes and runs them side by side:

* **protected** links (hosts in ``protected_domains``) go through one lane,
  strictly one at a time and in input order, so the shared timer helper never
  sees more than one request from a batch;
* **direct** links are all started at once and complete independently; one
  link failing or hanging never holds up another.

Each link is resolved by :func:`~linkchain.engine.guard.resolve_with_retry`
and its terminal outcome is handed to the :class:`ResultSink`.

Before starting each protected link the lane checks the overall deadline.
Once it has passed, every protected link not yet started is written as a
timeout failure without calling any solver, and the lane stops.  The direct
fan-out needs no such check: each member is already capped at
``link_timeout × max_attempts`` and they all run concurrently.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Optional, Union

from linkchain.config import Settings, settings as default_settings
from linkchain.db.models import (
    SUCCESS_STATUSES,
    LinkId,
    LinkRecord,
    TraceEntry,
    normalise_status,
)
from linkchain.db.store import TaskStore
from linkchain.engine.attempt import MAX_ATTEMPTS, LinkOutcome, TraceListener, TraceLog
from linkchain.engine.guard import resolve_with_retry
from linkchain.engine.machine import LinkStateMachine
from linkchain.engine.sink import ResultSink
from linkchain.solvers.registry import SolverRegistry, host_matches

logger = logging.getLogger(__name__)

OVERALL_TIMEOUT_ERROR = "Overall timeout - will retry next run"
FAILURE_STATUSES = frozenset({"error", "failed"})

Emit = Callable[[dict[str, Any]], None]
IndexedLink = tuple[int, LinkRecord]


@dataclass
class LinkResult:
    lid: LinkId
    status: str
    final_link: Optional[str] = None


@dataclass
class BatchSummary:
    task_id: Optional[str]
    processed: int
    done: int
    errors: int
    direct_count: int
    timer_count: int
    results: list[LinkResult] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Response body of the batch invocation surface."""
        return {
            "ok": True,
            "taskId": self.task_id,
            "processed": self.processed,
            "done": self.done,
            "errors": self.errors,
            "directCount": self.direct_count,
            "timerCount": self.timer_count,
        }


def is_protected(link: LinkRecord, protected_domains: Iterable[str]) -> bool:
    return host_matches(link.link, protected_domains)


def partition_links(
    links: Iterable[LinkRecord],
    protected_domains: Iterable[str],
) -> tuple[list[IndexedLink], list[IndexedLink]]:
    """Return ``(protected, direct)``, each keeping batch position and order."""
    domains = list(protected_domains)
    protected: list[IndexedLink] = []
    direct: list[IndexedLink] = []
    for index, link in enumerate(links):
        (protected if is_protected(link, domains) else direct).append((index, link))
    return protected, direct


@dataclass
class _Batch:
    """Per-call context shared by every link of one dispatch."""

    task_id: Optional[str]
    extracted_by: Optional[str]
    emit: Optional[Emit] = None

    def send(self, event: dict[str, Any]) -> None:
        if self.emit is None:
            return
        try:
            self.emit(event)
        except Exception:  # noqa: BLE001
            logger.warning("Progress consumer rejected event %r", event, exc_info=True)

    def listener(self, event_id: LinkId) -> Optional[TraceListener]:
        if self.emit is None:
            return None

        def _on_entry(entry: TraceEntry) -> None:
            self.send({"id": event_id, **entry.to_dict()})

        return _on_entry


class BatchDispatcher:
    """Resolve a batch of links for one task.

    Args:
        store: Store the result sink writes through.  ``None`` disables
            persistence (live previews without a task).
        registry: Provider shapes the state machine resolves against.
        protected_domains: Host fragments that put a link in the protected lane.
        link_timeout: Per-attempt deadline in seconds.
        overall_timeout: Batch deadline after which unstarted protected links
            are skipped.
        clock: Monotonic clock, injectable for tests.
    """

    def __init__(
        self,
        store: Optional[TaskStore],
        registry: SolverRegistry,
        *,
        protected_domains: Iterable[str],
        link_timeout: float = 25.0,
        overall_timeout: float = 50.0,
        max_attempts: int = MAX_ATTEMPTS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._sink = ResultSink(store) if store is not None else None
        self._machine = LinkStateMachine(registry)
        self._protected_domains = list(protected_domains)
        self._link_timeout = link_timeout
        self._overall_timeout = overall_timeout
        self._max_attempts = max_attempts
        self._clock = clock

    @classmethod
    def from_settings(
        cls,
        store: Optional[TaskStore],
        registry: SolverRegistry,
        config: Optional[Settings] = None,
    ) -> BatchDispatcher:
        cfg = config or default_settings
        return cls(
            store,
            registry,
            protected_domains=cfg.protected_domains,
            link_timeout=cfg.link_timeout,
            overall_timeout=cfg.overall_timeout,
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def dispatch(
        self,
        task_id: Optional[str],
        links: Iterable[Union[LinkRecord, dict[str, Any]]],
        extracted_by: Optional[str] = None,
        *,
        emit: Optional[Emit] = None,
        started_at: Optional[float] = None,
    ) -> BatchSummary:
        """Resolve *links* and persist each outcome into task *task_id*.

        Args:
            emit: Optional callback receiving live progress events.
            started_at: Batch start on the dispatcher's clock; defaults to
                now.  The overall deadline is measured from it.

        Returns:
            Counts for the batch.  Persistence failures are logged and do not
            affect the summary.
        """
        started = self._clock() if started_at is None else started_at
        records = [
            link if isinstance(link, LinkRecord) else LinkRecord.from_dict(link)
            for link in links
        ]
        protected, direct = partition_links(records, self._protected_domains)
        batch = _Batch(task_id=task_id, extracted_by=extracted_by, emit=emit)

        logger.info(
            "[%s] %d direct (parallel) + %d protected (sequential)",
            task_id, len(direct), len(protected),
        )
        if task_id and self._sink is not None:
            try:
                await self._sink.mark_processing(task_id, extracted_by)
            except Exception:  # noqa: BLE001
                logger.error("[%s] could not mark task as processing", task_id, exc_info=True)

        direct_results, protected_results = await asyncio.gather(
            self._run_direct(direct, batch),
            self._run_protected(protected, batch, started),
        )
        results = direct_results + protected_results

        summary = BatchSummary(
            task_id=task_id,
            processed=len(records),
            done=sum(1 for r in results if r.status in SUCCESS_STATUSES),
            errors=sum(1 for r in results if r.status in FAILURE_STATUSES),
            direct_count=len(direct),
            timer_count=len(protected),
            results=results,
        )
        logger.info("[%s] Done: %d, Errors: %d", task_id, summary.done, summary.errors)
        return summary

    # ------------------------------------------------------------------
    # Lanes
    # ------------------------------------------------------------------

    async def _run_direct(self, direct: list[IndexedLink], batch: _Batch) -> list[LinkResult]:
        settled = await asyncio.gather(
            *(self._process(index, link, batch) for index, link in direct),
            return_exceptions=True,
        )
        results: list[LinkResult] = []
        for (index, link), item in zip(direct, settled):
            if isinstance(item, LinkResult):
                results.append(item)
            elif isinstance(item, Exception):
                logger.error("[%s] link %r crashed: %r", batch.task_id, link.link, item)
                results.append(LinkResult(_event_id(link, index), "error"))
            else:
                raise item
        return results

    async def _run_protected(
        self,
        protected: list[IndexedLink],
        batch: _Batch,
        started: float,
    ) -> list[LinkResult]:
        results: list[LinkResult] = []
        for position, (index, link) in enumerate(protected):
            if self._clock() - started > self._overall_timeout:
                remaining = protected[position:]
                logger.warning(
                    "[%s] Overall timeout reached, marking %d protected link(s) as error",
                    batch.task_id, len(remaining),
                )
                for skipped_index, skipped in remaining:
                    results.append(await self._skip(skipped_index, skipped, batch))
                break
            results.append(await self._process(index, link, batch))
        return results

    # ------------------------------------------------------------------
    # Per link
    # ------------------------------------------------------------------

    async def _process(self, index: int, link: LinkRecord, batch: _Batch) -> LinkResult:
        event_id = _event_id(link, index)
        if link.is_terminal:
            return self._pass_through(event_id, link, batch)

        trace = TraceLog(listener=batch.listener(event_id))
        outcome = await resolve_with_retry(
            self._machine, link.link, trace, self._link_timeout, self._max_attempts
        )
        return await self._finish(event_id, link, outcome, batch)

    async def _skip(self, index: int, link: LinkRecord, batch: _Batch) -> LinkResult:
        event_id = _event_id(link, index)
        if link.is_terminal:
            return self._pass_through(event_id, link, batch)

        trace = TraceLog(listener=batch.listener(event_id))
        trace.error("Skipped due to overall timeout")
        outcome = LinkOutcome.failure(OVERALL_TIMEOUT_ERROR, trace, attempt=0, timed_out=True)
        return await self._finish(event_id, link, outcome, batch)

    def _pass_through(self, event_id: LinkId, link: LinkRecord, batch: _Batch) -> LinkResult:
        status = normalise_status(link.status)
        batch.send({"id": event_id, "status": status})
        batch.send({"id": event_id, "status": "finished"})
        return LinkResult(event_id, status, link.final_link)

    async def _finish(
        self,
        event_id: LinkId,
        link: LinkRecord,
        outcome: LinkOutcome,
        batch: _Batch,
    ) -> LinkResult:
        await self._persist(event_id, link, outcome, batch)

        event: dict[str, Any] = {"id": event_id, "status": outcome.status}
        if outcome.ok:
            event["final_link"] = outcome.final_link
            event["best_button_name"] = outcome.best_button_name
        batch.send(event)
        batch.send({"id": event_id, "status": "finished"})
        return LinkResult(event_id, outcome.status, outcome.final_link)

    async def _persist(
        self, event_id: LinkId, link: LinkRecord, outcome: LinkOutcome, batch: _Batch
    ) -> None:
        # Stored rows are matched by the same id the events carry, then by URL.
        if self._sink is None or not batch.task_id:
            return
        try:
            await self._sink.save(batch.task_id, event_id, link.link, outcome, batch.extracted_by)
        except Exception:  # noqa: BLE001
            logger.error(
                "[%s] DB write failed lid=%r", batch.task_id, event_id, exc_info=True
            )


def _event_id(link: LinkRecord, index: int) -> LinkId:
    return link.lid if link.lid is not None else index
