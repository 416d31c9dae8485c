"""Batch resolution endpoints.

Routes
------
POST /solve_task     Resolve a batch and return a JSON summary
POST /stream_solve   Resolve a batch and stream progress as NDJSON

Both take the same body::

    {"taskId": "...", "links": [{"id": 0, "name": "...", "link": "..."}],
     "extractedBy": "..."}

NDJSON event format
-------------------
One JSON object per line, in the order they happen::

    {"id": 0, "message": "HubCloud done", "severity": "success"}
    {"id": 0, "status": "done", "final_link": "...", "best_button_name": "..."}
    {"id": 0, "status": "finished"}
"""

from __future__ import annotations

import json
from typing import Any, AsyncIterator, Optional, Union

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, ConfigDict, Field

from linkchain.api.auth import require_solver_caller
from linkchain.engine import BatchDispatcher, stream_batch

router = APIRouter(dependencies=[Depends(require_solver_caller)])

DEFAULT_BATCH_SOURCE = "Server/Auto-Pilot"
DEFAULT_LIVE_SOURCE = "Browser/Live"


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------

class SolveLink(BaseModel):
    id: Optional[Union[int, str]] = None
    name: Optional[str] = ""
    # Non-string values fail at resolution time with "No link URL".
    link: Any = None


class SolveRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    task_id: Optional[str] = Field(default=None, alias="taskId")
    links: list[SolveLink] = Field(default_factory=list)
    extracted_by: Optional[str] = Field(default=None, alias="extractedBy")

    def link_dicts(self) -> list[dict[str, Any]]:
        return [link.model_dump() for link in self.links]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _dispatcher(request: Request) -> BatchDispatcher:
    return BatchDispatcher.from_settings(request.app.state.store, request.app.state.registry)


async def _ndjson(events: AsyncIterator[dict[str, Any]]) -> AsyncIterator[str]:
    async for event in events:
        yield json.dumps(event) + "\n"


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.post("/solve_task", response_model=dict[str, Any])
async def solve_task(body: SolveRequest, request: Request) -> dict[str, Any]:
    """Resolve every link of the batch and persist each outcome.

    Always answers 200 once the batch ran; individual link failures are
    counted in ``errors``.
    """
    if not body.task_id or not body.links:
        raise HTTPException(status_code=400, detail="taskId and non-empty links required")

    summary = await _dispatcher(request).dispatch(
        body.task_id,
        body.link_dicts(),
        body.extracted_by or DEFAULT_BATCH_SOURCE,
    )
    return summary.to_dict()


@router.post("/stream_solve")
async def stream_solve(body: SolveRequest, request: Request) -> StreamingResponse:
    """Resolve the batch and stream per-link progress.

    Outcomes are persisted only when ``taskId`` is given.
    """
    if not body.links:
        raise HTTPException(status_code=400, detail="No links provided")

    events = stream_batch(
        _dispatcher(request),
        body.task_id,
        body.link_dicts(),
        body.extracted_by or DEFAULT_LIVE_SOURCE,
    )
    return StreamingResponse(
        _ndjson(events),
        media_type="application/x-ndjson",
        headers={"Cache-Control": "no-cache"},
    )
