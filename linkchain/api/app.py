"""FastAPI application factory.

Lifespan
--------
On startup the app configures logging, takes the process-wide store (created
lazily by :func:`linkchain.db.get_store`) and builds the solver registry,
the extraction client and the notifier.  All of them live on ``app.state``
and are handed explicitly to the components each request builds.  On
shutdown the store is closed.

Routers
-------
    /tasks         task CRUD
    /solve_task    batch resolution, JSON summary
    /stream_solve  batch resolution, NDJSON progress stream
    /cron          autopilot tick, queue intake, heartbeat
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from linkchain.autopilot import LinkExtractor, TelegramNotifier
from linkchain.config import configure_logging, settings
from linkchain.db import close_store, get_store
from linkchain.solvers import build_registry

from linkchain.api.routers import cron as cron_router
from linkchain.api.routers import solve as solve_router
from linkchain.api.routers import tasks as tasks_router


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Open the store on startup and close it on shutdown."""
    configure_logging()
    settings.ensure_workspace()
    app.state.store = get_store()
    app.state.registry = build_registry(settings)
    app.state.extractor = LinkExtractor()
    app.state.notifier = TelegramNotifier()
    try:
        yield
    finally:
        close_store()


def create_app() -> FastAPI:
    """Return a fully-configured FastAPI application instance."""
    app = FastAPI(
        title="linkchain API",
        description=(
            "Resolves chains of unlock links (timer gates, file-host landing "
            "pages) to direct download URLs for a task's batch of links."
        ),
        version="1.0.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(tasks_router.router, prefix="/tasks", tags=["tasks"])
    app.include_router(solve_router.router, tags=["solve"])
    app.include_router(cron_router.router, prefix="/cron", tags=["cron"])

    return app


# Module-level instance used by uvicorn:
#   uvicorn linkchain.api.app:app
app = create_app()
