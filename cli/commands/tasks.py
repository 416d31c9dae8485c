"""Task commands: create, inspect and resolve."""

import asyncio
import json
from typing import Any, List, Optional

import typer

from linkchain.config import settings
from linkchain.db import open_store
from linkchain.db.tasks import create_task, get_task, list_tasks
from linkchain.engine import BatchDispatcher
from linkchain.solvers import build_registry

task_app = typer.Typer(help="Create, inspect and resolve tasks.", no_args_is_help=True)

CLI_SOURCE = "CLI"


def _print_live(event: dict[str, Any]) -> None:
    if "message" in event:
        typer.echo(f"  [{event['id']}] {event.get('severity', 'info'):<7} {event['message']}")
    elif event.get("status") != "finished":
        suffix = f" -> {event['final_link']}" if event.get("final_link") else ""
        typer.echo(f"  [{event['id']}] {event['status']}{suffix}")


@task_app.command("create")
def task_create(
    link: List[str] = typer.Option(..., "--link", help="Source URL (repeatable)."),
    name: Optional[List[str]] = typer.Option(None, "--name", help="Display name per --link."),
    title: Optional[str] = typer.Option(None, "--title", help="Task title."),
) -> None:
    """Create a pending task from one or more links."""
    names = list(name or [])
    links = [
        {"name": names[i] if i < len(names) else "", "link": url}
        for i, url in enumerate(link)
    ]
    settings.ensure_workspace()
    store = open_store()
    try:
        task = store.call(create_task, links, title=title, extracted_by=CLI_SOURCE)
    finally:
        store.close()
    typer.echo(f"✅ Task created: {task.id} ({len(task.links)} link(s))")


@task_app.command("show")
def task_show(task_id: str = typer.Argument(..., help="Task UUID.")) -> None:
    """Print a task as JSON."""
    store = open_store()
    try:
        task = store.call(get_task, task_id)
    finally:
        store.close()
    if task is None:
        typer.echo(f"Task not found: {task_id}", err=True)
        raise typer.Exit(code=1)
    typer.echo(json.dumps(task.to_dict(), indent=2))


@task_app.command("list")
def task_list(
    status: Optional[str] = typer.Option(None, "--status", help="Filter by status."),
) -> None:
    """List tasks, newest first."""
    store = open_store()
    try:
        tasks = store.call(list_tasks, status=status)
    finally:
        store.close()
    if not tasks:
        typer.echo("No tasks found.")
        return
    for task in tasks:
        done = sum(1 for link in task.links if link.is_success)
        typer.echo(f"{task.id}  {task.status:<10} {done}/{len(task.links)}  {task.title or ''}")


@task_app.command("solve")
def task_solve(
    task_id: str = typer.Argument(..., help="Task UUID."),
    live: bool = typer.Option(False, "--live", help="Print progress as it happens."),
) -> None:
    """Resolve the task's unfinished links and print the summary."""
    store = open_store()
    try:
        task = store.call(get_task, task_id)
        if task is None:
            typer.echo(f"Task not found: {task_id}", err=True)
            raise typer.Exit(code=1)

        dispatcher = BatchDispatcher.from_settings(store, build_registry(settings))
        unfinished = [link for link in task.links if not link.is_terminal]
        if not unfinished:
            typer.echo(f"Nothing to solve: task is {task.status}.")
            return

        typer.echo(f"[task solve] {len(unfinished)} link(s) for {task_id}")
        summary = asyncio.run(
            dispatcher.dispatch(
                task_id, unfinished, CLI_SOURCE, emit=_print_live if live else None
            )
        )
    finally:
        store.close()
    typer.echo(json.dumps(summary.to_dict(), indent=2))
