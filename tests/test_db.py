"""Database layer tests.

All tests use an in-memory SQLite database so they are:
- Fast (no disk I/O)
- Isolated (each fixture gets a fresh DB)
- Side-effect free (nothing written to ~/.linkchain_data)
"""

from __future__ import annotations

import sqlite3
from dataclasses import replace

import pytest

from linkchain.config import settings
from linkchain.db import heartbeat
from linkchain.db import queue as queue_db
from linkchain.db.connection import get_connection
from linkchain.db.migrations import LATEST_VERSION, current_version, init_db, migrate, table_columns
from linkchain.db.models import LinkRecord, TraceEntry, aggregate_status
from linkchain.db.store import TaskStore
from linkchain.db.tasks import (
    create_task,
    delete_task,
    get_task,
    list_tasks,
    update_task,
    update_task_in_transaction,
)


def _links(*urls: str) -> list[dict]:
    return [{"name": f"Link {i}", "link": url} for i, url in enumerate(urls)]


# ---------------------------------------------------------------------------
# connection / init
# ---------------------------------------------------------------------------

class TestConnection:
    def test_foreign_keys_enabled(self, conn: sqlite3.Connection) -> None:
        row = conn.execute("PRAGMA foreign_keys").fetchone()
        assert row[0] == 1

    def test_memory_db_keeps_default_journal(self, conn: sqlite3.Connection) -> None:
        assert conn.execute("PRAGMA journal_mode").fetchone()[0] == "memory"

    def test_file_db_uses_wal(self, tmp_path) -> None:
        conn = get_connection(tmp_path / "nested" / "linkchain.db")
        try:
            assert conn.execute("PRAGMA journal_mode").fetchone()[0] == "wal"
            # synchronous: 1 == NORMAL
            assert conn.execute("PRAGMA synchronous").fetchone()[0] == 1
        finally:
            conn.close()

    def test_busy_timeout_is_configurable(self, monkeypatch) -> None:
        monkeypatch.setattr("linkchain.config.settings.db_busy_timeout", 1.5)
        conn = get_connection(":memory:")
        try:
            assert conn.execute("PRAGMA busy_timeout").fetchone()[0] == 1500
        finally:
            conn.close()


# Layout written by the first release, before recovery bookkeeping existed.
LEGACY_SCHEMA = """
CREATE TABLE tasks (
    id TEXT PRIMARY KEY, title TEXT, source_url TEXT,
    status TEXT NOT NULL DEFAULT 'pending', extracted_by TEXT,
    links TEXT NOT NULL DEFAULT '[]', created_at INTEGER NOT NULL,
    updated_at INTEGER NOT NULL, processing_started_at INTEGER, completed_at INTEGER
);
CREATE TABLE queue_items (
    id TEXT PRIMARY KEY, kind TEXT NOT NULL DEFAULT 'movies', url TEXT NOT NULL,
    title TEXT, status TEXT NOT NULL DEFAULT 'pending', task_id TEXT, error TEXT,
    extracted_by TEXT, retry_count INTEGER NOT NULL DEFAULT 0, locked_at INTEGER,
    created_at INTEGER NOT NULL, updated_at INTEGER NOT NULL, processed_at INTEGER
);
INSERT INTO tasks (id, title, links, created_at, updated_at)
VALUES ('old-task', 'Old', '[{"id": 0, "link": "https://a.example/0"}]', 1, 1);
"""


class TestInitDb:
    def test_tables_exist(self, conn: sqlite3.Connection) -> None:
        tables = {
            r[0]
            for r in conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'").fetchall()
        }
        assert {"tasks", "queue_items", "engine_status", "schema_version"} <= tables

    def test_fresh_db_is_at_latest_version(self, conn: sqlite3.Connection) -> None:
        assert current_version(conn) == LATEST_VERSION

    def test_init_db_is_idempotent(self, conn: sqlite3.Connection) -> None:
        init_db(conn)
        init_db(conn)
        assert current_version(conn) == LATEST_VERSION
        assert migrate(conn) == []

    def test_fresh_db_steps_change_nothing(self) -> None:
        conn = get_connection(":memory:")
        try:
            conn.executescript(settings.schema_path.read_text(encoding="utf-8"))
            assert migrate(conn) == []
            assert current_version(conn) == LATEST_VERSION
        finally:
            conn.close()


class TestMigrate:
    @pytest.fixture()
    def legacy(self):
        connection = get_connection(":memory:")
        connection.executescript(LEGACY_SCHEMA)
        yield connection
        connection.close()

    def test_upgrades_legacy_tables(self, legacy: sqlite3.Connection) -> None:
        init_db(legacy)

        assert "recovered_at" in table_columns(legacy, "tasks")
        assert {"failed_at", "last_recovered_at"} <= table_columns(legacy, "queue_items")
        assert current_version(legacy) == LATEST_VERSION

    def test_existing_rows_survive(self, legacy: sqlite3.Connection) -> None:
        init_db(legacy)

        task = get_task(legacy, "old-task")
        assert task.title == "Old"
        assert task.recovered_at is None
        assert task.links[0].link == "https://a.example/0"

    def test_reports_only_steps_that_altered_a_table(self, legacy: sqlite3.Connection) -> None:
        legacy.executescript(settings.schema_path.read_text(encoding="utf-8"))
        assert migrate(legacy) == [1, 2, 3]

    def test_upgraded_queue_supports_recovery_fields(self, legacy: sqlite3.Connection) -> None:
        init_db(legacy)
        item = queue_db.enqueue(legacy, "https://site.example/movie")

        updated = queue_db.update_queue_item(legacy, item.id, status="failed", failed_at=5)

        assert updated.failed_at == 5


# ---------------------------------------------------------------------------
# models
# ---------------------------------------------------------------------------

class TestLinkRecord:
    def test_round_trips_through_dict(self) -> None:
        record = LinkRecord(
            lid=3,
            link="https://hubcloud.one/x",
            name="1080p",
            status="done",
            final_link="https://fsl.example/x.mkv",
            logs=[TraceEntry("HubCloud done", "success")],
            attempts=2,
        )
        assert LinkRecord.from_dict(record.to_dict()) == record

    def test_status_helpers_ignore_case(self) -> None:
        assert LinkRecord(lid=0, link="u", status="SUCCESS").is_success
        assert LinkRecord(lid=0, link="u", status="Failed").is_terminal
        assert not LinkRecord(lid=0, link="u", status="processing").is_terminal


class TestAggregateStatus:
    def test_all_terminal_with_one_success_is_completed(self) -> None:
        links = [LinkRecord(0, "a", status="done"), LinkRecord(1, "b", status="error")]
        assert aggregate_status(links) == "completed"

    def test_all_terminal_without_success_is_failed(self) -> None:
        links = [LinkRecord(0, "a", status="error"), LinkRecord(1, "b", status="failed")]
        assert aggregate_status(links) == "failed"

    def test_unfinished_link_keeps_processing(self) -> None:
        links = [LinkRecord(0, "a", status="done"), LinkRecord(1, "b", status="pending")]
        assert aggregate_status(links) == "processing"

    def test_empty_sequence_is_failed(self) -> None:
        assert aggregate_status([]) == "failed"


# ---------------------------------------------------------------------------
# tasks
# ---------------------------------------------------------------------------

class TestCreateTask:
    def test_returns_pending_task(self, conn: sqlite3.Connection) -> None:
        task = create_task(conn, _links("https://a.example/1"), title="Movie")
        assert task.status == "pending"
        assert task.title == "Movie"
        assert len(task.links) == 1
        assert task.links[0].status == "pending"

    def test_links_get_positional_ids(self, conn: sqlite3.Connection) -> None:
        task = create_task(conn, _links("https://a.example/1", "https://a.example/2"))
        assert [link.lid for link in task.links] == [0, 1]

    def test_explicit_ids_are_kept(self, conn: sqlite3.Connection) -> None:
        task = create_task(conn, [{"id": "x7", "link": "https://a.example/1"}])
        assert task.links[0].lid == "x7"

    def test_explicit_task_id(self, conn: sqlite3.Connection) -> None:
        task = create_task(conn, _links("https://a.example/1"), task_id="task-1")
        assert task.id == "task-1"


class TestGetAndListTasks:
    def test_get_missing_returns_none(self, conn: sqlite3.Connection) -> None:
        assert get_task(conn, "nope") is None

    def test_list_filters_by_status(self, conn: sqlite3.Connection) -> None:
        first = create_task(conn, _links("https://a.example/1"))
        create_task(conn, _links("https://a.example/2"))
        update_task(conn, first.id, status="completed")

        completed = list_tasks(conn, status="completed")
        assert [t.id for t in completed] == [first.id]
        assert len(list_tasks(conn)) == 2


class TestUpdateTask:
    def test_updates_scalar_fields(self, conn: sqlite3.Connection) -> None:
        task = create_task(conn, _links("https://a.example/1"))
        updated = update_task(conn, task.id, title="Renamed", extracted_by="CLI")
        assert updated is not None
        assert updated.title == "Renamed"
        assert updated.extracted_by == "CLI"

    def test_links_are_not_updatable(self, conn: sqlite3.Connection) -> None:
        task = create_task(conn, _links("https://a.example/1"))
        with pytest.raises(ValueError):
            update_task(conn, task.id, links="[]")

    def test_no_fields_raises(self, conn: sqlite3.Connection) -> None:
        task = create_task(conn, _links("https://a.example/1"))
        with pytest.raises(ValueError):
            update_task(conn, task.id)


class TestUpdateTaskInTransaction:
    def test_applies_mutation(self, conn: sqlite3.Connection) -> None:
        task = create_task(conn, _links("https://a.example/1"))

        def mutate(current):
            links = [replace(current.links[0], status="done", final_link="https://f")]
            return replace(current, links=links, status="completed")

        written = update_task_in_transaction(conn, task.id, mutate)
        stored = get_task(conn, task.id)
        assert written is not None and stored is not None
        assert stored.status == "completed"
        assert stored.links[0].final_link == "https://f"

    def test_missing_task_is_noop(self, conn: sqlite3.Connection) -> None:
        calls = []
        assert update_task_in_transaction(conn, "nope", lambda t: calls.append(t) or t) is None
        assert calls == []

    def test_mutation_error_rolls_back(self, conn: sqlite3.Connection) -> None:
        task = create_task(conn, _links("https://a.example/1"))

        def boom(current):
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            update_task_in_transaction(conn, task.id, boom)
        assert not conn.in_transaction
        assert get_task(conn, task.id).status == "pending"  # type: ignore[union-attr]

    def test_lock_error_is_retried(self, conn: sqlite3.Connection, monkeypatch) -> None:
        task = create_task(conn, _links("https://a.example/1"))
        monkeypatch.setattr("linkchain.db.tasks._LOCK_BACKOFF", 0)
        attempts = []

        def flaky(current):
            attempts.append(1)
            if len(attempts) == 1:
                raise sqlite3.OperationalError("database is locked")
            return replace(current, title="ok")

        written = update_task_in_transaction(conn, task.id, flaky)
        assert written is not None and written.title == "ok"
        assert len(attempts) == 2


class TestDeleteTask:
    def test_delete(self, conn: sqlite3.Connection) -> None:
        task = create_task(conn, _links("https://a.example/1"))
        delete_task(conn, task.id)
        assert get_task(conn, task.id) is None

    def test_delete_missing_is_noop(self, conn: sqlite3.Connection) -> None:
        delete_task(conn, "nope")


# ---------------------------------------------------------------------------
# queue / heartbeat
# ---------------------------------------------------------------------------

class TestQueue:
    def test_enqueue_defaults(self, conn: sqlite3.Connection) -> None:
        item = queue_db.enqueue(conn, "https://site.example/movie")
        assert item.kind == "movies"
        assert item.status == "pending"
        assert item.retry_count == 0

    def test_unknown_kind_rejected(self, conn: sqlite3.Connection) -> None:
        with pytest.raises(ValueError):
            queue_db.enqueue(conn, "https://site.example/x", kind="music")

    def test_next_pending_prefers_movies(self, conn: sqlite3.Connection) -> None:
        queue_db.enqueue(conn, "https://site.example/show", kind="webseries")
        movie = queue_db.enqueue(conn, "https://site.example/movie", kind="movies")
        assert queue_db.next_pending(conn).id == movie.id  # type: ignore[union-attr]

    def test_next_pending_oldest_first(self, conn: sqlite3.Connection) -> None:
        first = queue_db.enqueue(conn, "https://site.example/1")
        queue_db.enqueue(conn, "https://site.example/2")
        assert queue_db.next_pending(conn).id == first.id  # type: ignore[union-attr]

    def test_next_pending_empty(self, conn: sqlite3.Connection) -> None:
        assert queue_db.next_pending(conn) is None

    def test_update_and_filter(self, conn: sqlite3.Connection) -> None:
        item = queue_db.enqueue(conn, "https://site.example/1")
        queue_db.update_queue_item(conn, item.id, status="processing", locked_at=100)
        assert [i.id for i in queue_db.list_queue(conn, status="processing")] == [item.id]
        assert queue_db.list_queue(conn, status="pending") == []

    def test_update_rejects_unknown_field(self, conn: sqlite3.Connection) -> None:
        item = queue_db.enqueue(conn, "https://site.example/1")
        with pytest.raises(ValueError):
            queue_db.update_queue_item(conn, item.id, url="https://other")


class TestHeartbeat:
    def test_missing_row(self, conn: sqlite3.Connection) -> None:
        assert heartbeat.get_engine_status(conn) is None

    def test_upsert(self, conn: sqlite3.Connection) -> None:
        heartbeat.set_engine_status(conn, "running", "Tick started")
        row = heartbeat.set_engine_status(conn, "idle", "Queue empty")
        assert row.status == "idle"
        assert row.details == "Queue empty"
        count = conn.execute("SELECT COUNT(*) FROM engine_status").fetchone()[0]
        assert count == 1


# ---------------------------------------------------------------------------
# store
# ---------------------------------------------------------------------------

class TestTaskStore:
    def test_call_passes_connection(self, store: TaskStore) -> None:
        task = store.call(create_task, _links("https://a.example/1"))
        assert store.call(get_task, task.id) == task

    async def test_run_in_worker_thread(self, store: TaskStore) -> None:
        task = await store.run(create_task, _links("https://a.example/1"), title="Async")
        fetched = await store.run(get_task, task.id)
        assert fetched is not None and fetched.title == "Async"
