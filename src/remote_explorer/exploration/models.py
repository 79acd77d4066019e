"""Data models for an exploration session.

A Session owns everything that changes while a device is being explored:
the FIFO queue of pending paths, the set of paths already attempted, one
FileRecord per path, the variable table and the deferred templates.
"""

from __future__ import annotations

import time
import uuid
from collections import deque
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal, Optional

SessionStatus = Literal["running", "paused", "completed", "error"]
RecordStatus = Literal["success", "not-found", "error", "access-denied"]
DiscoveryMethod = Literal["known-list", "extracted", "generated"]
VariableConfidence = Literal["explicit", "conditional"]

DISCOVERY_METHODS: tuple[str, ...] = ("known-list", "extracted", "generated")


def utc_now() -> str:
    """ISO-8601 timestamp in UTC."""
    return datetime.now(timezone.utc).isoformat()


def new_session_id() -> str:
    return f"scan-{int(time.time())}-{uuid.uuid4().hex[:8]}"


@dataclass(frozen=True)
class Classification:
    """Binary/text decision for a piece of content."""

    is_binary: bool
    file_type: str
    confidence: float  # 0.0-1.0
    magic_bytes: Optional[str] = None


@dataclass(frozen=True)
class ScanOutcome:
    """Normalized result of one remote read."""

    path: str
    status: Literal["success", "not-found", "error"]
    content: Optional[str] = None
    error: Optional[str] = None

    @property
    def is_transient(self) -> bool:
        return self.status == "error"


@dataclass
class VariableValue:
    """One observed value of a shell variable."""

    name: str
    value: str
    discovered_in: str
    confidence: VariableConfidence = "explicit"


@dataclass
class DeferredTemplate:
    """A path template held until every variable it references is known."""

    template: str
    variables: set[str]  # names still unresolved
    discovered_in: str
    priority: int = 0  # insertion order

    def to_dict(self) -> dict[str, Any]:
        return {
            "template": self.template,
            "variables": sorted(self.variables),
            "discovered_in": self.discovered_in,
            "priority": self.priority,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DeferredTemplate:
        return cls(
            template=data["template"],
            variables=set(data.get("variables", [])),
            discovered_in=data.get("discovered_in", ""),
            priority=int(data.get("priority", 0)),
        )


@dataclass(frozen=True)
class GeneratedPath:
    """A literal path produced by resolving a template."""

    path: str
    template: str
    discovered_in: str


@dataclass
class PathResolution:
    """What ``VariableResolver.process_path`` made of one candidate.

    ``kind`` is ``literal`` (no variables), ``generated`` (fully substituted),
    ``deferred`` (held for later) or ``invalid`` (expanded but rejected).
    """

    kind: Literal["literal", "generated", "deferred", "invalid"]
    paths: list[str] = field(default_factory=list)


@dataclass
class FileRecord:
    """Result of scanning one path.

    A placeholder record may be created when a path is queued so that its
    provenance survives until the real scan overwrites it.
    """

    path: str
    status: RecordStatus = "not-found"
    content: Optional[str] = None
    size: int = 0
    is_binary: bool = False
    file_type: str = "unknown"
    confidence: float = 0.0
    magic_bytes: Optional[str] = None
    extracted_paths: list[str] = field(default_factory=list)
    generated_paths: list[str] = field(default_factory=list)
    ignored_paths: list[str] = field(default_factory=list)
    discovered_from: Optional[str] = None
    discovery_method: DiscoveryMethod = "known-list"
    timestamp: str = field(default_factory=utc_now)
    error: Optional[str] = None
    placeholder: bool = False
    content_stripped: bool = False
    scan_history: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FileRecord:
        known = cls.__dataclass_fields__
        return cls(**{k: v for k, v in data.items() if k in known})


@dataclass
class ExplorationStats:
    """Progress counters published after every batch."""

    total: int = 0
    scanned: int = 0
    success: int = 0
    failed: int = 0
    binary: int = 0
    text: int = 0
    queued: int = 0
    parked: int = 0
    deferred_templates: int = 0
    variables: int = 0
    discovery: dict[str, int] = field(default_factory=dict)

    @property
    def progress(self) -> float:
        """Percentage of known paths already attempted."""
        if self.total == 0:
            return 0.0
        return round(100.0 * self.scanned / self.total, 1)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["progress"] = self.progress
        return data


@dataclass
class Session:
    """One exploration of one device.

    Invariant: a path lives in at most one of ``queue``, ``scanned`` and
    ``retry_pending``. Once scanned it is never queued again.
    """

    id: str = field(default_factory=new_session_id)
    name: str = ""
    status: SessionStatus = "running"
    started_at: str = field(default_factory=utc_now)
    ended_at: Optional[str] = None
    run_id: int = 1

    # Counters
    total: int = 0
    succeeded: int = 0
    failed: int = 0
    binary: int = 0
    text: int = 0

    results: dict[str, FileRecord] = field(default_factory=dict)
    queue: deque = field(default_factory=deque)
    scanned: set[str] = field(default_factory=set)
    variables: dict[str, list[VariableValue]] = field(default_factory=dict)
    deferred_templates: list[DeferredTemplate] = field(default_factory=list)

    # Transient failures: attempts this run, and paths parked until resume
    retry_counts: dict[str, int] = field(default_factory=dict)
    retry_pending: list[str] = field(default_factory=list)

    # Finalized paths in completion order; the persistence cursor indexes it
    result_log: list[str] = field(default_factory=list)

    # Set once the store has accepted a "create" for this id
    persisted: bool = False
    error_info: Optional[dict[str, Any]] = None

    @property
    def scanned_count(self) -> int:
        return len(self.scanned)

    def discovery_counts(self) -> dict[str, int]:
        counts = {method: 0 for method in DISCOVERY_METHODS}
        for record in self.results.values():
            counts[record.discovery_method] = counts.get(record.discovery_method, 0) + 1
        return counts

    def variable_count(self) -> int:
        return sum(len(values) for values in self.variables.values())

    def stats(self) -> ExplorationStats:
        return ExplorationStats(
            total=self.total,
            scanned=len(self.scanned),
            success=self.succeeded,
            failed=self.failed,
            binary=self.binary,
            text=self.text,
            queued=len(self.queue),
            parked=len(self.retry_pending),
            deferred_templates=len(self.deferred_templates),
            variables=self.variable_count(),
            discovery=self.discovery_counts(),
        )
