"""One autopilot tick: recover stale work, then process one queue item.

An external scheduler calls :meth:`AutoPilot.tick` periodically (see
``GET /cron/process-queue`` and ``linkchain queue tick``).  Each tick:

1. sets the heartbeat to ``running``;
2. runs the recovery sweep and sends a notice when anything was recovered;
3. picks the oldest pending queue item (movies first) and locks it;
4. extracts the item's links and creates a task from them;
5. dispatches the task's unfinished links;
6. marks the queue item ``completed`` (at least one link resolved) or
   ``failed``;
7. sets the heartbeat back to ``idle`` and sends a notice.

Any exception aborts the tick: the heartbeat goes to ``error`` and the queue
item stays ``processing`` until the recovery sweep hands it back.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Optional

from linkchain.autopilot.extractor import LinkExtractor
from linkchain.autopilot.notifier import TelegramNotifier
from linkchain.autopilot.recovery import recover_stale_work
from linkchain.config import Settings, settings as default_settings
from linkchain.db import heartbeat
from linkchain.db import queue as queue_db
from linkchain.db import tasks as tasks_db
from linkchain.db.store import TaskStore
from linkchain.engine.dispatcher import BatchDispatcher

logger = logging.getLogger(__name__)

AUTOPILOT_TAG = "Server/Auto-Pilot"


class AutoPilot:
    def __init__(
        self,
        store: TaskStore,
        dispatcher: BatchDispatcher,
        extractor: Optional[LinkExtractor] = None,
        notifier: Optional[TelegramNotifier] = None,
        config: Optional[Settings] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._dispatcher = dispatcher
        self._extractor = extractor or LinkExtractor()
        self._notifier = notifier or TelegramNotifier()
        self._config = config or default_settings
        self._clock = clock

    async def recover(self) -> int:
        """Run the stale-work sweep once and return the recovered count."""
        return await self._store.run(
            recover_stale_work,
            int(self._clock()),
            self._config.recovery_grace_seconds,
            self._config.queue_max_retries,
        )

    async def tick(self) -> dict[str, Any]:
        """Run one tick.  Never raises; failures are reported in the result."""
        try:
            return await self._tick()
        except Exception as exc:  # noqa: BLE001
            logger.exception("Autopilot tick failed")
            await self._beat("error", str(exc))
            await self._notifier.send(f"🚨 <b>Autopilot error</b>\n{exc}")
            return {"status": "failed_internally", "error": str(exc)}

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _tick(self) -> dict[str, Any]:
        started = time.monotonic()
        await self._beat("running", "Tick started")

        recovered = await self.recover()
        if recovered:
            await self._notifier.send(
                f"🔧 <b>Auto-Recovery</b>\n♻️ {recovered} stuck item(s) recovered"
            )

        item = await self._store.run(queue_db.next_pending)
        if item is None:
            await self._beat("idle", "Queue empty")
            return {"status": "idle", "message": "Queue empty", "recovered": recovered}

        await self._store.run(
            queue_db.update_queue_item,
            item.id,
            status="processing",
            locked_at=int(self._clock()),
        )
        logger.info("Autopilot picked %s (%s)", item.url, item.kind)

        page = await self._extractor.extract(item.url)
        title = page.title or item.title or item.url
        task = await self._store.run(
            tasks_db.create_task,
            page.links,
            title=title,
            source_url=item.url,
            extracted_by=AUTOPILOT_TAG,
        )

        unfinished = [link for link in task.links if not link.is_terminal]
        if unfinished:
            summary = await self._dispatcher.dispatch(task.id, unfinished, AUTOPILOT_TAG)
            success = summary.done > 0
        else:
            success = any(link.is_success for link in task.links)

        final_status = "completed" if success else "failed"
        now = int(self._clock())
        await self._store.run(
            queue_db.update_queue_item,
            item.id,
            status=final_status,
            task_id=task.id,
            extracted_by=AUTOPILOT_TAG,
            processed_at=now,
        )

        elapsed = round(time.monotonic() - started, 1)
        await self._beat("idle", f"Last: {title} ({final_status})")
        retries = f"{item.retry_count}/{self._config.queue_max_retries}"
        if success:
            await self._notifier.send(
                f"✅ <b>Auto-Pilot</b>\n🎬 {title}\n⏱ {elapsed}s\n🔄 Retry: {retries}"
            )
        else:
            await self._notifier.send(f"❌ <b>Auto-Pilot Failed</b>\n🎬 {title}\n🔄 Retry: {retries}")

        return {
            "status": final_status,
            "title": title,
            "taskId": task.id,
            "elapsed": elapsed,
            "recovered": recovered,
            "retryCount": item.retry_count,
            "extractedBy": AUTOPILOT_TAG,
        }

    async def _beat(self, status: str, details: str) -> None:
        try:
            await self._store.run(heartbeat.set_engine_status, status, details)
        except Exception:  # noqa: BLE001
            logger.error("Heartbeat update failed", exc_info=True)
