"""Shared fixtures: in-memory stores and scriptable fake step solvers.

No test in this suite talks to a real helper service.  Solvers are replaced
by :class:`FakeSolver`, which records every URL it was asked to solve and
returns scripted :class:`StepResult` objects.
"""

from __future__ import annotations

import asyncio
import sqlite3
from dataclasses import dataclass
from typing import Generator, Optional

import pytest

from linkchain.db.connection import get_connection
from linkchain.db.migrations import init_db
from linkchain.db.store import TaskStore
from linkchain.solvers.base import StepResult, StepSolver
from linkchain.solvers.registry import SolverRegistry, Stage


class FakeSolver(StepSolver):
    """Step solver driven by a script.

    Args:
        name: Provider name used in traces.
        default: Result returned when nothing more specific applies.
        script: Results returned for successive calls, before ``default``.
        delay: Seconds to sleep before answering.
        hang: Never answer (until cancelled).
        error: Exception raised instead of answering.
    """

    def __init__(
        self,
        name: str,
        default: Optional[StepResult] = None,
        *,
        script: Optional[list[StepResult]] = None,
        delay: float = 0.0,
        hang: bool = False,
        error: Optional[Exception] = None,
    ) -> None:
        self._name = name
        self._default = default or StepResult.failure(f"{name} failed")
        self._script = list(script or [])
        self._delay = delay
        self._hang = hang
        self._error = error
        self.calls: list[str] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self.cancelled = 0

    @property
    def name(self) -> str:
        return self._name

    async def solve(self, url: str) -> StepResult:
        self.calls.append(url)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self._hang:
                await asyncio.Event().wait()
            if self._delay:
                await asyncio.sleep(self._delay)
            if self._error is not None:
                raise self._error
            if self._script:
                return self._script.pop(0)
            return self._default
        except asyncio.CancelledError:
            self.cancelled += 1
            raise
        finally:
            self.in_flight -= 1


@dataclass
class Chain:
    """A registry wired to fake solvers for every provider stage."""

    direct: FakeSolver
    gate: FakeSolver
    tier1: FakeSolver
    tier2: FakeSolver
    cloud: FakeSolver
    registry: SolverRegistry

    @property
    def total_calls(self) -> int:
        return sum(
            len(s.calls) for s in (self.direct, self.gate, self.tier1, self.tier2, self.cloud)
        )


CLOUD_FINAL = "https://fsl.example/b.mkv"
DIRECT_FINAL = "https://cdn.example/a.mkv"


def build_chain(**overrides: FakeSolver) -> Chain:
    solvers = {
        "direct": FakeSolver("HubCDN", StepResult.success(terminal_url=DIRECT_FINAL)),
        "gate": FakeSolver("GadgetsWeb", StepResult.success(next_url="https://hblinks.pro/file/1")),
        "tier1": FakeSolver("HBLinks", StepResult.success(next_url="https://hubdrive.wales/file/1")),
        "tier2": FakeSolver("HubDrive", StepResult.success(next_url="https://hubcloud.one/drive/1")),
        "cloud": FakeSolver(
            "HubCloud",
            StepResult.success(
                terminal_url=CLOUD_FINAL,
                button_label="FSL Server",
                alternatives=[{"name": "FSL Server", "link": CLOUD_FINAL}],
            ),
        ),
    }
    solvers.update(overrides)

    registry = SolverRegistry()
    registry.register(Stage.DIRECT_TERMINAL, ["hubcdn.fans"], solvers["direct"])
    registry.register(Stage.GATE, ["gadgetsweb"], solvers["gate"])
    registry.register(Stage.UNLOCK_TIER_1, ["hblinks"], solvers["tier1"])
    registry.register(Stage.UNLOCK_TIER_2, ["hubdrive"], solvers["tier2"])
    registry.register(Stage.CLOUD_TERMINAL, ["hubcloud"], solvers["cloud"])
    return Chain(registry=registry, **solvers)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture()
def conn() -> Generator[sqlite3.Connection, None, None]:
    """In-memory connection with the schema initialised."""
    connection = get_connection(db_path=":memory:")
    init_db(connection)
    yield connection
    connection.close()


@pytest.fixture()
def store(conn: sqlite3.Connection) -> TaskStore:
    return TaskStore(conn)


@pytest.fixture()
def chain() -> Chain:
    return build_chain()


@pytest.fixture()
def chain_factory():
    """Build a :class:`Chain` with some solvers replaced."""
    return build_chain


@pytest.fixture()
def fake_solver():
    """The :class:`FakeSolver` class, for tests that wire their own registry."""
    return FakeSolver
