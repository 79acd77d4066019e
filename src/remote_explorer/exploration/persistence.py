"""Incremental session snapshots and rehydration for resume.

Each snapshot carries the full session state (counters, queue, scanned
set, variables, deferred templates) but only the FileRecords finalized
since the previous successful snapshot. The store merges those into what
it already holds.
"""

from __future__ import annotations

import asyncio
from typing import Any, Optional

from ..config import ExplorerConfig
from ..exceptions import InvalidSessionDataError
from ..logging_config import get_logger
from ..storage.base import SessionStore
from .error_detector import ErrorInfo
from .models import DeferredTemplate, FileRecord, Session, VariableValue, utc_now

logger = get_logger(__name__)

PAYLOAD_VERSION = 1


def serialize_record(record: FileRecord, max_content_bytes: Optional[int]) -> dict[str, Any]:
    """FileRecord as a dict, with binary or oversized content removed."""
    data = record.to_dict()
    data.pop("placeholder", None)
    content = data.get("content")
    if content is not None:
        oversized = max_content_bytes is not None and len(content) > max_content_bytes
        if record.is_binary or oversized:
            data["content"] = None
            data["content_stripped"] = True
    return data


def session_to_payload(
    session: Session,
    records: list[FileRecord],
    error_info: Optional[ErrorInfo] = None,
    max_content_bytes: Optional[int] = None,
) -> dict[str, Any]:
    """Build the dict handed to ``SessionStore.save``."""
    info = error_info.to_dict() if error_info is not None else session.error_info
    return {
        "version": PAYLOAD_VERSION,
        "session": {
            "id": session.id,
            "name": session.name,
            "status": session.status,
            "started_at": session.started_at,
            "ended_at": session.ended_at,
            "last_saved_at": utc_now(),
            "run_id": session.run_id,
            "total": session.total,
            "scanned": len(session.scanned),
            "succeeded": session.succeeded,
            "failed": session.failed,
            "binary": session.binary,
            "text": session.text,
        },
        "queue": [_queue_entry(session, path) for path in session.queue],
        "scanned": sorted(session.scanned),
        "retry_pending": [_queue_entry(session, path) for path in session.retry_pending],
        "variables": {
            name: [
                {
                    "name": v.name,
                    "value": v.value,
                    "discovered_in": v.discovered_in,
                    "confidence": v.confidence,
                }
                for v in values
            ]
            for name, values in session.variables.items()
        },
        "deferred_templates": [d.to_dict() for d in session.deferred_templates],
        "discovery_stats": session.discovery_counts(),
        "error_info": info,
        "results": [serialize_record(r, max_content_bytes) for r in records],
    }


def _queue_entry(session: Session, path: str) -> dict[str, Any]:
    record = session.results.get(path)
    return {
        "path": path,
        "discovered_from": record.discovered_from if record else None,
        "discovery_method": record.discovery_method if record else "extracted",
    }


def export_session(session: Session) -> dict[str, Any]:
    """Full-session snapshot with every finalized FileRecord.

    Binary content is dropped; the result loads back with
    ``session_from_payload``.
    """
    records = [r for r in session.results.values() if not r.placeholder]
    payload = session_to_payload(session, records, max_content_bytes=None)
    payload["exported_at"] = utc_now()
    return payload


def session_from_payload(data: dict[str, Any]) -> Session:
    """Rebuild a Session from a stored snapshot.

    Queued paths get their provenance placeholders back so that a resumed
    scan records the same ``discovered_from`` it would have originally.
    """
    meta = data.get("session")
    if not isinstance(meta, dict) or "id" not in meta:
        raise InvalidSessionDataError(str(data.get("session_id", "?")), "missing session header")

    session_id = meta["id"]
    try:
        session = Session(
            id=session_id,
            name=meta.get("name", ""),
            status=meta.get("status", "paused"),
            started_at=meta.get("started_at") or utc_now(),
            ended_at=meta.get("ended_at"),
            run_id=int(meta.get("run_id", 1)),
            total=int(meta.get("total", 0)),
            succeeded=int(meta.get("succeeded", 0)),
            failed=int(meta.get("failed", 0)),
            binary=int(meta.get("binary", 0)),
            text=int(meta.get("text", 0)),
        )

        for entry in data.get("results", []):
            record = FileRecord.from_dict(entry)
            record.placeholder = False
            session.results[record.path] = record

        session.scanned = set(data.get("scanned", []))
        for entry in data.get("queue", []):
            session.queue.append(_restore_pending(session, entry))
        for entry in data.get("retry_pending", []):
            session.retry_pending.append(_restore_pending(session, entry))

        for name, values in data.get("variables", {}).items():
            session.variables[name] = [
                VariableValue(
                    name=v.get("name", name),
                    value=v["value"],
                    discovered_in=v.get("discovered_in", ""),
                    confidence=v.get("confidence", "explicit"),
                )
                for v in values
            ]

        session.deferred_templates = [
            DeferredTemplate.from_dict(d) for d in data.get("deferred_templates", [])
        ]
    except (KeyError, TypeError, ValueError) as e:
        raise InvalidSessionDataError(session_id, str(e))

    session.error_info = data.get("error_info")
    session.persisted = True
    return session


def _restore_pending(session: Session, entry: Any) -> str:
    """Re-create the provenance placeholder of a queued or parked path."""
    if not isinstance(entry, dict):
        entry = {"path": entry}
    path = entry["path"]
    if path not in session.results:
        session.results[path] = FileRecord(
            path=path,
            discovered_from=entry.get("discovered_from"),
            discovery_method=entry.get("discovery_method", "extracted"),
            placeholder=True,
        )
    return path


class SessionPersistence:
    """Snapshots a Session to a SessionStore without blocking the scan loop.

    ``snapshot`` is skipped, not queued, while another save is in flight.
    ``flush`` waits for the in-flight save and then always writes, so
    pause/stop/completion never lose their final state.
    """

    def __init__(self, store: SessionStore, config: Optional[ExplorerConfig] = None):
        self.store = store
        self.config = config or ExplorerConfig()
        self._in_flight = False
        self._cursor = 0
        self._cursor_session: Optional[str] = None
        self.saves = 0
        self.skipped = 0

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    def reset(self, session: Session) -> None:
        """Start the incremental cursor over for ``session``."""
        self._cursor_session = session.id
        self._cursor = 0

    def pending_records(self, session: Session) -> list[FileRecord]:
        if self._cursor_session != session.id:
            self.reset(session)
        return [session.results[p] for p in session.result_log[self._cursor :] if p in session.results]

    def build_payload(
        self, session: Session, error_info: Optional[ErrorInfo] = None
    ) -> tuple[dict[str, Any], int]:
        """Payload plus the cursor position it covers."""
        records = self.pending_records(session)
        payload = session_to_payload(
            session, records, error_info, self.config.max_persisted_content_bytes
        )
        return payload, len(session.result_log)

    async def snapshot(self, session: Session, error_info: Optional[ErrorInfo] = None) -> bool:
        if self._in_flight:
            self.skipped += 1
            logger.debug("Snapshot already in flight; skipped")
            return False
        return await self._write(session, error_info)

    async def flush(self, session: Session, error_info: Optional[ErrorInfo] = None) -> bool:
        while self._in_flight:
            await asyncio.sleep(0.005)
        return await self._write(session, error_info)

    async def _write(self, session: Session, error_info: Optional[ErrorInfo]) -> bool:
        self._in_flight = True
        try:
            # Built before the first await: a consistent view of the session
            payload, cursor = self.build_payload(session, error_info)
            action = "merge" if session.persisted else "create"
            result = await asyncio.to_thread(
                self.store.save, session.id, action, session.run_id, payload
            )
        except Exception as e:
            logger.error("Failed to save session %s: %s", session.id, e)
            return False
        finally:
            self._in_flight = False

        session.persisted = True
        self._cursor = cursor
        self.saves += 1
        logger.debug(
            "Session %s saved (%s, %d new records, %d total)",
            session.id,
            action,
            len(payload["results"]),
            result.total_files,
        )
        return True

    async def resume(self, session_id: str) -> Session:
        """Rehydrate a stored session, paused and ready for ``resume()``."""
        resume_data = await asyncio.to_thread(self.store.resume, session_id)
        session = session_from_payload(resume_data.data)
        session.status = "paused"
        session.ended_at = None
        # The orchestrator's resume() advances to next_run_id
        session.run_id = resume_data.next_run_id - 1
        self.reset(session)
        logger.info(
            "Session %s loaded (%d results, %d queued, next run %d)",
            session.id,
            len(session.scanned),
            len(session.queue),
            resume_data.next_run_id,
        )
        return session

    def export(self, session: Session) -> dict[str, Any]:
        return export_session(session)
