"""Tests for the typer CLI command groups."""

from __future__ import annotations

import json

import pytest
from typer.testing import CliRunner

from cli.commands.queue import queue_app
from cli.commands.tasks import task_app
from cli.main import app
from linkchain.db import get_connection
from linkchain.db import queue as queue_db
from linkchain.db.migrations import init_db
from linkchain.db.tasks import list_tasks

runner = CliRunner()


@pytest.fixture
def workspace(tmp_path, monkeypatch):
    """Point the settings singleton at a throwaway workspace."""
    monkeypatch.setattr("linkchain.config.settings.workspace_dir", tmp_path)
    return tmp_path


def _only_task_id() -> str:
    conn = get_connection()
    init_db(conn)
    try:
        return list_tasks(conn)[0].id
    finally:
        conn.close()


class TestDbCommands:
    def test_db_init(self, workspace, monkeypatch) -> None:
        monkeypatch.setattr("cli.main.configure_logging", lambda level=None: None)
        result = runner.invoke(app, ["db", "init"])
        assert result.exit_code == 0
        assert (workspace / "linkchain.db").exists()


class TestTaskCommands:
    def test_create_list_show(self, workspace) -> None:
        result = runner.invoke(
            task_app,
            ["create", "--link", "https://hubcdn.fans/file/a", "--link", "https://x.example/b",
             "--name", "720p", "--title", "Movie"],
        )
        assert result.exit_code == 0
        assert "✅ Task created" in result.stdout

        listed = runner.invoke(task_app, ["list"])
        assert "pending" in listed.stdout
        assert "0/2" in listed.stdout

        shown = runner.invoke(task_app, ["show", _only_task_id()])
        data = json.loads(shown.stdout)
        assert data["title"] == "Movie"
        assert [l["name"] for l in data["links"]] == ["720p", ""]

    def test_show_missing(self, workspace) -> None:
        result = runner.invoke(task_app, ["show", "nope"])
        assert result.exit_code == 1

    def test_list_empty(self, workspace) -> None:
        result = runner.invoke(task_app, ["list"])
        assert "No tasks found." in result.stdout

    def test_solve_uses_dispatcher(self, workspace, monkeypatch, chain) -> None:
        monkeypatch.setattr("cli.commands.tasks.build_registry", lambda cfg: chain.registry)
        runner.invoke(
            task_app,
            ["create", "--link", "https://hubcdn.fans/file/a", "--link", "https://unknown.example/c"],
        )

        result = runner.invoke(task_app, ["solve", _only_task_id(), "--live"])

        assert result.exit_code == 0
        summary = json.loads(result.stdout[result.stdout.index("{"):])
        assert (summary["processed"], summary["done"], summary["errors"]) == (2, 1, 1)
        assert "-> https://cdn.example/a.mkv" in result.stdout

    def test_solve_finished_task_is_noop(self, workspace, monkeypatch, chain) -> None:
        monkeypatch.setattr("cli.commands.tasks.build_registry", lambda cfg: chain.registry)
        runner.invoke(task_app, ["create", "--link", "https://hubcdn.fans/file/a"])
        task_id = _only_task_id()
        runner.invoke(task_app, ["solve", task_id])

        result = runner.invoke(task_app, ["solve", task_id])

        assert "Nothing to solve" in result.stdout
        assert len(chain.direct.calls) == 1


class TestQueueCommands:
    def test_add_and_list(self, workspace) -> None:
        result = runner.invoke(queue_app, ["add", "--url", "https://site.example/show", "--kind", "webseries"])
        assert result.exit_code == 0

        listed = runner.invoke(queue_app, ["list"])
        assert "webseries" in listed.stdout
        assert "https://site.example/show" in listed.stdout

    def test_add_rejects_unknown_kind(self, workspace) -> None:
        result = runner.invoke(queue_app, ["add", "--url", "https://x", "--kind", "music"])
        assert result.exit_code == 1

    def test_tick_on_empty_queue(self, workspace, monkeypatch, chain) -> None:
        monkeypatch.setattr("cli.commands.queue.build_registry", lambda cfg: chain.registry)
        result = runner.invoke(queue_app, ["tick"])
        assert result.exit_code == 0
        assert json.loads(result.stdout)["status"] == "idle"

    def test_recover(self, workspace) -> None:
        conn = get_connection()
        init_db(conn)
        item = queue_db.enqueue(conn, "https://site.example/movie")
        queue_db.update_queue_item(conn, item.id, status="processing", locked_at=1)
        conn.close()

        result = runner.invoke(queue_app, ["recover"])

        assert "1 item(s) recovered" in result.stdout
