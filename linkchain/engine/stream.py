"""Live-progress variant of a dispatch.

:func:`stream_batch` runs :meth:`BatchDispatcher.dispatch` in the background
and yields every progress event as it is produced.  When the consumer stops
iterating (client disconnected) the background run is cancelled.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, AsyncIterator, Iterable, Optional, Union

from linkchain.db.models import LinkRecord
from linkchain.engine.dispatcher import BatchDispatcher

logger = logging.getLogger(__name__)

_DONE = object()


async def stream_batch(
    dispatcher: BatchDispatcher,
    task_id: Optional[str],
    links: Iterable[Union[LinkRecord, dict[str, Any]]],
    extracted_by: Optional[str] = None,
) -> AsyncIterator[dict[str, Any]]:
    """Yield ``{id, message, severity}`` and ``{id, status, ...}`` events."""
    events: asyncio.Queue[Any] = asyncio.Queue()

    async def _run() -> None:
        try:
            await dispatcher.dispatch(task_id, links, extracted_by, emit=events.put_nowait)
        except Exception as exc:  # noqa: BLE001
            logger.error("[%s] live dispatch failed: %r", task_id, exc)
            events.put_nowait({"id": None, "message": str(exc), "severity": "error"})
        finally:
            events.put_nowait(_DONE)

    runner = asyncio.ensure_future(_run())
    try:
        while True:
            event = await events.get()
            if event is _DONE:
                break
            yield event
    finally:
        if not runner.done():
            runner.cancel()
