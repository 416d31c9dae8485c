"""Autopilot endpoints.

Routes
------
GET  /cron/process-queue   Run one autopilot tick (Bearer token only)
POST /cron/queue           Add a listing page to the queue
GET  /cron/queue           List queue items (optional ?status= and ?kind=)
GET  /cron/status          Current heartbeat
"""

from __future__ import annotations

from dataclasses import asdict
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel

from linkchain.api.auth import require_cron_secret, require_solver_caller
from linkchain.autopilot import AutoPilot
from linkchain.db import heartbeat
from linkchain.db.queue import enqueue, list_queue
from linkchain.engine import BatchDispatcher

router = APIRouter()


class QueueCreate(BaseModel):
    url: str
    kind: str = "movies"
    title: Optional[str] = None


@router.get("/process-queue", dependencies=[Depends(require_cron_secret)])
async def process_queue(request: Request) -> dict[str, Any]:
    """Run one tick.  Internal failures are reported with status 200."""
    state = request.app.state
    autopilot = AutoPilot(
        state.store,
        BatchDispatcher.from_settings(state.store, state.registry),
        extractor=state.extractor,
        notifier=state.notifier,
    )
    return await autopilot.tick()


@router.post(
    "/queue",
    status_code=201,
    response_model=dict[str, Any],
    dependencies=[Depends(require_solver_caller)],
)
def add_to_queue(body: QueueCreate, request: Request) -> dict[str, Any]:
    store = request.app.state.store
    try:
        item = store.call(enqueue, body.url, kind=body.kind, title=body.title)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return asdict(item)


@router.get("/queue", response_model=list[dict[str, Any]])
def list_queue_endpoint(
    request: Request,
    status: Optional[str] = None,
    kind: Optional[str] = None,
) -> list[dict[str, Any]]:
    store = request.app.state.store
    return [asdict(item) for item in store.call(list_queue, status=status, kind=kind)]


@router.get("/status", response_model=dict[str, Any])
def engine_status(request: Request) -> dict[str, Any]:
    """Return the heartbeat row, or ``offline`` when no tick ever ran."""
    row = request.app.state.store.call(heartbeat.get_engine_status)
    if row is None:
        return {"status": "offline"}
    return asdict(row)
