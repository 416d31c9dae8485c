"""Autopilot queue commands."""

import asyncio
import json
import time
from typing import Optional

import typer

from linkchain.autopilot import AutoPilot, recover_stale_work
from linkchain.config import settings
from linkchain.db import open_store
from linkchain.db.queue import QUEUE_KINDS, enqueue, list_queue
from linkchain.engine import BatchDispatcher
from linkchain.solvers import build_registry

queue_app = typer.Typer(help="Autopilot queue intake and ticks.", no_args_is_help=True)


@queue_app.command("add")
def queue_add(
    url: str = typer.Option(..., "--url", help="Listing page to extract links from."),
    kind: str = typer.Option("movies", "--kind", help=f"One of: {', '.join(QUEUE_KINDS)}."),
    title: Optional[str] = typer.Option(None, "--title", help="Optional display title."),
) -> None:
    """Queue a page for the next autopilot tick."""
    settings.ensure_workspace()
    store = open_store()
    try:
        item = store.call(enqueue, url, kind=kind, title=title)
    except ValueError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=1)
    finally:
        store.close()
    typer.echo(f"✅ Queued: {item.id} ({item.kind})")


@queue_app.command("list")
def queue_list(
    status: Optional[str] = typer.Option(None, "--status", help="Filter by status."),
) -> None:
    """List queue items, oldest first."""
    store = open_store()
    try:
        items = store.call(list_queue, status=status)
    finally:
        store.close()
    if not items:
        typer.echo("Queue is empty.")
        return
    for item in items:
        typer.echo(f"{item.id}  {item.kind:<9} {item.status:<10} r{item.retry_count}  {item.url}")


@queue_app.command("tick")
def queue_tick() -> None:
    """Run one autopilot tick and print its result."""
    store = open_store()
    try:
        dispatcher = BatchDispatcher.from_settings(store, build_registry(settings))
        result = asyncio.run(AutoPilot(store, dispatcher).tick())
    finally:
        store.close()
    typer.echo(json.dumps(result, indent=2))


@queue_app.command("recover")
def queue_recover() -> None:
    """Run the stale-work recovery sweep once."""
    store = open_store()
    try:
        recovered = store.call(
            recover_stale_work,
            int(time.time()),
            settings.recovery_grace_seconds,
            settings.queue_max_retries,
        )
    finally:
        store.close()
    typer.echo(f"[queue recover] {recovered} item(s) recovered")
