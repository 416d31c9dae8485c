"""Per-link timeout guard and retry wrapper.

``run_attempt`` races one state-machine run against a deadline: whichever
finishes first wins.  When the deadline wins, the pending run is cancelled at
its next suspension point and its result, if it ever produces one, is
discarded.  A solver that cannot be interrupted (e.g. one blocking inside a
worker thread) keeps running in the background; that is accepted, since the
guard only needs to stop *waiting* for it.

``resolve_with_retry`` gives a failed first attempt exactly one more try.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from linkchain.engine.attempt import MAX_ATTEMPTS, LinkOutcome, TraceLog
from linkchain.engine.machine import LinkStateMachine

logger = logging.getLogger(__name__)


def timeout_message(timeout: float) -> str:
    return f"Timed out after {timeout:g}s"


async def run_attempt(
    machine: LinkStateMachine,
    url: Any,
    trace: TraceLog,
    attempt: int,
    timeout: float,
) -> LinkOutcome:
    """Run one attempt under *timeout* seconds.  Never raises."""
    task = asyncio.ensure_future(machine.resolve(url, trace, attempt))
    try:
        done, _ = await asyncio.wait({task}, timeout=timeout)
    except asyncio.CancelledError:
        task.cancel()
        raise

    if task in done:
        try:
            return task.result()
        except Exception as exc:  # noqa: BLE001
            message = str(exc) or type(exc).__name__
            trace.error(f"Unexpected error: {message}")
            return LinkOutcome.failure(message, trace, attempt)

    task.cancel()
    reason = timeout_message(timeout)
    logger.info("Attempt %d for %s abandoned: %s", attempt, str(url)[:60], reason)
    trace.error(reason)
    return LinkOutcome.failure(reason, trace, attempt, timed_out=True)


async def resolve_with_retry(
    machine: LinkStateMachine,
    url: Any,
    trace: TraceLog,
    timeout: float,
    max_attempts: int = MAX_ATTEMPTS,
) -> LinkOutcome:
    """Resolve *url*, retrying a failure until *max_attempts* runs were made."""
    outcome = await run_attempt(machine, url, trace, 1, timeout)
    attempt = 1
    while not outcome.ok and attempt < max_attempts:
        attempt += 1
        trace.warn(f"Auto-retrying (attempt {attempt}/{max_attempts})...")
        outcome = await run_attempt(machine, url, trace, attempt, timeout)
    return outcome
