"""Dataclass models representing DB rows and the documents stored in them.

These are plain Python objects – not ORM models.  The DB layer serialises /
deserialises to and from these types.  A task's link sequence is stored as a
JSON array of :meth:`LinkRecord.to_dict` payloads.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Optional, Union

LinkId = Union[int, str]

TERMINAL_STATUSES = frozenset({"done", "success", "error", "failed"})
SUCCESS_STATUSES = frozenset({"done", "success"})
UNFINISHED_STATUSES = frozenset({"", "pending", "processing"})


def normalise_status(status: Optional[str]) -> str:
    return (status or "").strip().lower()


@dataclass(frozen=True)
class TraceEntry:
    """One human-readable line of a link's resolution trace."""

    message: str
    severity: str = "info"

    def to_dict(self) -> dict[str, str]:
        return {"message": self.message, "severity": self.severity}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TraceEntry:
        return cls(
            message=str(data.get("message", "")),
            severity=str(data.get("severity", "info")),
        )


@dataclass
class LinkRecord:
    lid: Optional[LinkId]
    link: Any
    name: str = ""
    status: str = "pending"
    final_link: Optional[str] = None
    error: Optional[str] = None
    logs: list[TraceEntry] = field(default_factory=list)
    best_button_name: Optional[str] = None
    all_available_buttons: list[Any] = field(default_factory=list)
    solved_at: Optional[int] = None
    attempts: int = 0

    # ------------------------------------------------------------------
    # Convenience helpers
    # ------------------------------------------------------------------
    @property
    def is_terminal(self) -> bool:
        return normalise_status(self.status) in TERMINAL_STATUSES

    @property
    def is_success(self) -> bool:
        return normalise_status(self.status) in SUCCESS_STATUSES

    def to_dict(self) -> dict[str, Any]:
        """Serialise to the JSON shape stored inside ``tasks.links``."""
        return {
            "id": self.lid,
            "name": self.name,
            "link": self.link,
            "status": self.status,
            "final_link": self.final_link,
            "error": self.error,
            "logs": [entry.to_dict() for entry in self.logs],
            "best_button_name": self.best_button_name,
            "all_available_buttons": list(self.all_available_buttons),
            "solved_at": self.solved_at,
            "attempts": self.attempts,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LinkRecord:
        return cls(
            lid=data.get("id"),
            link=data.get("link"),
            name=data.get("name") or "",
            status=data.get("status") or "pending",
            final_link=data.get("final_link"),
            error=data.get("error"),
            logs=[TraceEntry.from_dict(e) for e in data.get("logs") or []],
            best_button_name=data.get("best_button_name"),
            all_available_buttons=list(data.get("all_available_buttons") or []),
            solved_at=data.get("solved_at"),
            attempts=int(data.get("attempts") or 0),
        )


@dataclass
class Task:
    id: str
    links: list[LinkRecord]
    status: str
    created_at: int
    updated_at: int
    title: Optional[str] = None
    source_url: Optional[str] = None
    extracted_by: Optional[str] = None
    processing_started_at: Optional[int] = None
    completed_at: Optional[int] = None
    recovered_at: Optional[int] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "source_url": self.source_url,
            "status": self.status,
            "extracted_by": self.extracted_by,
            "links": [link.to_dict() for link in self.links],
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "processing_started_at": self.processing_started_at,
            "completed_at": self.completed_at,
            "recovered_at": self.recovered_at,
        }


@dataclass
class QueueItem:
    id: str
    kind: str
    url: str
    status: str
    retry_count: int
    created_at: int
    updated_at: int
    title: Optional[str] = None
    task_id: Optional[str] = None
    error: Optional[str] = None
    extracted_by: Optional[str] = None
    locked_at: Optional[int] = None
    processed_at: Optional[int] = None
    failed_at: Optional[int] = None
    last_recovered_at: Optional[int] = None


@dataclass
class EngineStatus:
    name: str
    status: str
    details: str
    source: str
    last_run_at: Optional[int]
    updated_at: int


def aggregate_status(links: Iterable[LinkRecord]) -> str:
    """Derive a task's status from its links.

    ``completed`` when every link is terminal and at least one succeeded,
    ``failed`` when every link is terminal and none succeeded, otherwise
    ``processing``.
    """
    records = list(links)
    if all(record.is_terminal for record in records):
        if any(record.is_success for record in records):
            return "completed"
        return "failed"
    return "processing"
