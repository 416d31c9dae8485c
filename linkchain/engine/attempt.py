"""Working state of one link's resolution: the trace log and the outcome."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Iterator, Optional

from linkchain.db.models import TraceEntry

MAX_ATTEMPTS = 2

TraceListener = Callable[[TraceEntry], None]


class TraceLog:
    """Ordered, append-only list of :class:`TraceEntry` objects.

    An optional *listener* is called with every entry as it is appended; the
    live-progress variant uses it to push entries to the client.
    """

    def __init__(self, listener: Optional[TraceListener] = None) -> None:
        self._entries: list[TraceEntry] = []
        self._listener = listener

    def add(self, message: str, severity: str = "info") -> None:
        entry = TraceEntry(message=message, severity=severity)
        self._entries.append(entry)
        if self._listener is not None:
            self._listener(entry)

    def info(self, message: str) -> None:
        self.add(message, "info")

    def success(self, message: str) -> None:
        self.add(message, "success")

    def warn(self, message: str) -> None:
        self.add(message, "warn")

    def error(self, message: str) -> None:
        self.add(message, "error")

    def snapshot(self) -> list[TraceEntry]:
        return list(self._entries)

    def __iter__(self) -> Iterator[TraceEntry]:
        return iter(list(self._entries))

    def __len__(self) -> int:
        return len(self._entries)


@dataclass
class LinkOutcome:
    """Terminal result of resolving one link (``done`` or ``error``)."""

    status: str
    final_link: Optional[str] = None
    error: Optional[str] = None
    logs: list[TraceEntry] = field(default_factory=list)
    best_button_name: Optional[str] = None
    all_available_buttons: list[Any] = field(default_factory=list)
    attempts: int = 1
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        return self.status == "done"

    @classmethod
    def success(
        cls,
        final_link: str,
        trace: TraceLog,
        attempt: int,
        best_button_name: Optional[str] = None,
        all_available_buttons: Optional[list[Any]] = None,
    ) -> LinkOutcome:
        return cls(
            status="done",
            final_link=final_link,
            logs=trace.snapshot(),
            best_button_name=best_button_name,
            all_available_buttons=list(all_available_buttons or []),
            attempts=attempt,
        )

    @classmethod
    def failure(
        cls,
        error: str,
        trace: TraceLog,
        attempt: int,
        timed_out: bool = False,
    ) -> LinkOutcome:
        return cls(
            status="error",
            error=error,
            logs=trace.snapshot(),
            attempts=attempt,
            timed_out=timed_out,
        )
