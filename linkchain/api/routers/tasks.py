"""Task endpoints.

Routes
------
POST /tasks              Create a task from a list of links
GET  /tasks              List tasks (optional ?status= filter)
GET  /tasks/{task_id}    Fetch one task with its link records
"""

from __future__ import annotations

from typing import Any, Optional, Union

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel, Field

from linkchain.db.tasks import create_task, get_task, list_tasks

router = APIRouter()


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------

class LinkIn(BaseModel):
    id: Optional[Union[int, str]] = None
    name: str = ""
    link: str


class TaskCreate(BaseModel):
    title: Optional[str] = None
    source_url: Optional[str] = None
    extracted_by: Optional[str] = None
    links: list[LinkIn] = Field(min_length=1)


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.post("", status_code=201, response_model=dict[str, Any])
def create_task_endpoint(body: TaskCreate, request: Request) -> dict[str, Any]:
    store = request.app.state.store
    task = store.call(
        create_task,
        [link.model_dump() for link in body.links],
        title=body.title,
        source_url=body.source_url,
        extracted_by=body.extracted_by,
    )
    return task.to_dict()


@router.get("", response_model=list[dict[str, Any]])
def list_tasks_endpoint(request: Request, status: Optional[str] = None) -> list[dict[str, Any]]:
    """Return all tasks, newest first."""
    store = request.app.state.store
    return [task.to_dict() for task in store.call(list_tasks, status=status)]


@router.get("/{task_id}", response_model=dict[str, Any])
def get_task_endpoint(task_id: str, request: Request) -> dict[str, Any]:
    store = request.app.state.store
    task = store.call(get_task, task_id)
    if task is None:
        raise HTTPException(status_code=404, detail=f"Task '{task_id}' not found.")
    return task.to_dict()
