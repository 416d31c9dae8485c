"""linkchain CLI entry-point for operator commands.

Usage:
    python cli/main.py --help

Command groups:
    db      database setup
    task    create, inspect and resolve tasks
    queue   autopilot queue intake and ticks
"""

from __future__ import annotations

import sys
from pathlib import Path

# Ensure the project root is on sys.path so that `from linkchain.xxx import ...`
# works when the CLI is invoked as `python cli/main.py` from any directory.
_ROOT = Path(__file__).resolve().parent.parent
if str(_ROOT) not in sys.path:
    sys.path.insert(0, str(_ROOT))

import typer

from linkchain.config import configure_logging, settings
from linkchain.db import get_connection, init_db

from cli.commands.queue import queue_app
from cli.commands.tasks import task_app

app = typer.Typer(
    name="linkchain",
    help="linkchain link-resolution CLI.",
    no_args_is_help=True,
)

app.add_typer(task_app, name="task")
app.add_typer(queue_app, name="queue")


@app.callback()
def main(
    log_level: str = typer.Option(settings.log_level, "--log-level", help="Logging level."),
) -> None:
    configure_logging(log_level)


# ---------------------------------------------------------------------------
# DB commands
# ---------------------------------------------------------------------------
db_app = typer.Typer(help="Database operations.", no_args_is_help=True)
app.add_typer(db_app, name="db")


@db_app.command("init")
def db_init() -> None:
    """Initialise the SQLite database (create tables if they do not exist)."""
    settings.ensure_workspace()
    conn = get_connection()
    init_db(conn)
    conn.close()
    typer.echo(f"[db init] Database ready at {settings.db_path}")


# ---------------------------------------------------------------------------
# Entry-point
# ---------------------------------------------------------------------------
if __name__ == "__main__":
    app()
