"""Persistence backend boundary for exploration sessions."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Literal

SaveAction = Literal["create", "merge", "overwrite"]


@dataclass(frozen=True)
class SaveResult:
    session_id: str
    run_id: int
    total_files: int
    new_files: int


@dataclass(frozen=True)
class ResumeData:
    """Last snapshot of a session plus the id the next run should use."""

    session_id: str
    data: dict[str, Any]
    next_run_id: int


@dataclass(frozen=True)
class SessionMetadata:
    session_id: str
    name: str
    status: str
    total_files: int
    success_count: int
    failed_count: int
    text_count: int
    binary_count: int
    total_runs: int
    last_modified: str
    discovery: dict[str, int] = field(default_factory=dict)

    @property
    def can_resume(self) -> bool:
        return self.status in ("paused", "running")


class SessionStore(ABC):
    """Save/merge/load/resume/list/delete over stored sessions.

    ``save`` payloads carry the session state plus the FileRecords produced
    since the previous save; ``merge`` folds those records into what is
    already stored, ``create`` and ``overwrite`` replace it.
    """

    @abstractmethod
    def save(self, session_id: str, action: SaveAction, run_id: int, data: dict[str, Any]) -> SaveResult:
        ...

    @abstractmethod
    def load(self, session_id: str) -> dict[str, Any]:
        ...

    @abstractmethod
    def resume(self, session_id: str) -> ResumeData:
        ...

    @abstractmethod
    def list(self) -> list[SessionMetadata]:
        ...

    @abstractmethod
    def delete(self, session_id: str) -> None:
        ...
