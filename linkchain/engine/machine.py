"""Link resolution state machine.

Drives one URL through the provider pipeline to a terminal outcome::

    start
      ├─ direct-terminal host ─────────────────────────► resolved | failed
      └─ gate bypass (≤ MAX_GATE_HOPS)
           └─ unlock tier 1 ─► unlock tier 2 ─► cloud terminal ─► resolved | failed
                                                 (nothing matched) ─► failed

Every transition appends a trace entry.  A gate failure does not end the run:
the machine continues with the last URL the gates produced.  Any other solver
failure is terminal.
"""

from __future__ import annotations

import logging
from typing import Any

from linkchain.engine.attempt import MAX_ATTEMPTS, LinkOutcome, TraceLog
from linkchain.solvers.base import StepResult
from linkchain.solvers.registry import ProviderShape, SolverRegistry, Stage

logger = logging.getLogger(__name__)

MAX_GATE_HOPS = 3
UNLOCK_PIPELINE = (Stage.UNLOCK_TIER_1, Stage.UNLOCK_TIER_2)

NO_SOLVER_MATCHED = "No solver matched"
MISSING_URL = "No link URL"


class LinkStateMachine:
    def __init__(self, registry: SolverRegistry) -> None:
        self._registry = registry

    async def resolve(self, source_url: Any, trace: TraceLog, attempt: int = 1) -> LinkOutcome:
        """Run one attempt for *source_url*, appending to *trace*.

        Never raises for solver misbehaviour: unexpected exceptions become a
        failed outcome carrying the exception text.
        """
        if not isinstance(source_url, str) or not source_url.strip():
            trace.error(MISSING_URL)
            return LinkOutcome.failure(MISSING_URL, trace, attempt)

        trace.info(f"[attempt {attempt}/{MAX_ATTEMPTS}] {source_url[:60]}")
        try:
            return await self._walk(source_url.strip(), trace, attempt)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Unexpected solver error for %s: %r", source_url[:60], exc)
            message = str(exc) or type(exc).__name__
            trace.error(f"Unexpected error: {message}")
            return LinkOutcome.failure(message, trace, attempt)

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    async def _walk(self, url: str, trace: TraceLog, attempt: int) -> LinkOutcome:
        shape = self._registry.match(Stage.DIRECT_TERMINAL, url)
        if shape is not None:
            trace.info(f"{shape.name} processing...")
            result = await shape.solver.solve(url)
            if result.ok and result.link:
                trace.success(f"{shape.name} done")
                return LinkOutcome.success(result.link, trace, attempt)
            return self._fail(shape, result, trace, attempt)

        url = await self._bypass_gates(url, trace)

        for stage in UNLOCK_PIPELINE:
            shape = self._registry.match(stage, url)
            if shape is None:
                continue
            trace.info(f"Solving {shape.name}...")
            result = await shape.solver.solve(url)
            if not (result.ok and result.link):
                return self._fail(shape, result, trace, attempt)
            url = result.link
            trace.success(f"{shape.name} solved")

        shape = self._registry.match(Stage.CLOUD_TERMINAL, url)
        if shape is not None:
            trace.info(f"Solving {shape.name}...")
            result = await shape.solver.solve(url)
            if result.ok and result.link:
                trace.success(f"Done via {result.button_label or 'Download'}")
                return LinkOutcome.success(
                    result.link,
                    trace,
                    attempt,
                    best_button_name=result.button_label,
                    all_available_buttons=result.alternatives,
                )
            return self._fail(shape, result, trace, attempt)

        trace.error("Unrecognised link - no solver matched")
        return LinkOutcome.failure(NO_SOLVER_MATCHED, trace, attempt)

    async def _bypass_gates(self, url: str, trace: TraceLog) -> str:
        """Follow gate hops and return the last URL reached.

        A failed hop is only traced; resolution carries on from that URL.
        """
        hops = 0
        while hops < MAX_GATE_HOPS:
            shape = self._registry.match(Stage.GATE, url)
            if shape is None:
                break
            trace.warn(f"Timer bypass (loop {hops + 1}) via {shape.name}...")
            try:
                result = await shape.solver.solve(url)
            except Exception as exc:  # noqa: BLE001
                result = StepResult.failure(str(exc) or type(exc).__name__)
            if not (result.ok and result.link):
                message = result.message or f"{shape.name} returned no link"
                trace.error(f"{shape.name}: {message}")
                break
            url = result.link
            trace.success(f"Timer bypassed ({shape.name})")
            hops += 1
        return url

    @staticmethod
    def _fail(
        shape: ProviderShape,
        result: StepResult,
        trace: TraceLog,
        attempt: int,
    ) -> LinkOutcome:
        message = result.message or f"{shape.name} returned no link"
        trace.error(f"{shape.name}: {message}")
        return LinkOutcome.failure(message, trace, attempt)
