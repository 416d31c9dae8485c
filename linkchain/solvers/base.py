"""Step-solver abstraction.

A step solver knows how to advance one provider page: given a URL of the
provider's shape it returns either the next hop (gates, intermediate hosts)
or the final download URL (terminal hosts), or a failure reason.

All solvers share one interface: ``await solve(url) -> StepResult``.
Implementations must report failures through :meth:`StepResult.failure`
rather than raising.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional


@dataclass(frozen=True)
class StepResult:
    """Outcome of one solver invocation."""

    ok: bool
    next_url: Optional[str] = None
    terminal_url: Optional[str] = None
    button_label: Optional[str] = None
    alternatives: list[Any] = field(default_factory=list)
    message: Optional[str] = None

    @property
    def link(self) -> Optional[str]:
        """The URL this step produced, whichever kind it is."""
        return self.terminal_url or self.next_url

    @classmethod
    def success(
        cls,
        next_url: Optional[str] = None,
        terminal_url: Optional[str] = None,
        button_label: Optional[str] = None,
        alternatives: Optional[list[Any]] = None,
    ) -> StepResult:
        return cls(
            ok=True,
            next_url=next_url,
            terminal_url=terminal_url,
            button_label=button_label,
            alternatives=list(alternatives or []),
        )

    @classmethod
    def failure(cls, message: str) -> StepResult:
        return cls(ok=False, message=message)


class StepSolver(ABC):
    """Abstract base class for a single provider's solver."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable provider name, used in trace messages."""

    @abstractmethod
    async def solve(self, url: str) -> StepResult:
        """Advance *url* by one hop.  Must return a failure, not raise."""
