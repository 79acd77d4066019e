"""Scan orchestration: the state machine and the batch loop.

States::

    idle -> running -> {paused, completed}
    paused -> running
    any non-terminal -> completed      (stop)

The loop pulls a batch from the queue, reads every path in it
concurrently, then processes the outcomes one by one: classify, mine text
for variables and paths, enqueue what is new. Queue mutation only happens
after the whole batch has settled, and pause/stop are observed at batch
boundaries.
"""

from __future__ import annotations

import asyncio
import json
import time
from typing import Any, Callable, Optional

from ..bridge.base import FunctionBridge
from ..config import ExplorerConfig
from ..exceptions import ExplorationError, ScanStateError
from ..logging_config import get_logger
from ..storage.base import SessionStore
from .classifier import ContentClassifier
from .error_detector import ErrorAnalysis, ErrorClassifier
from .events import ExplorationEvents
from .extractor import PathExtractor
from .models import DiscoveryMethod, ExplorationStats, FileRecord, ScanOutcome, Session, utc_now
from .persistence import SessionPersistence, export_session
from .queue import DiscoveryQueue
from .scanner import RemoteScanner
from .variables import VariableResolver

logger = get_logger(__name__)

_SEARCH_PATH_VARIABLES = ("PATH", "LD_LIBRARY_PATH")


class ExplorationOrchestrator:
    """Owns one Session at a time and drives it through the scan loop.

    Usage::

        orchestrator = ExplorationOrchestrator(bridge, store, config)
        orchestrator.events.on_auto_pause(lambda a: print(a.recommendation))
        await orchestrator.start()
        await orchestrator.wait()
    """

    def __init__(
        self,
        bridge: FunctionBridge,
        store: Optional[SessionStore] = None,
        config: Optional[ExplorerConfig] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config or ExplorerConfig()
        self.scanner = RemoteScanner(bridge, self.config)
        self.classifier = ContentClassifier()
        self.errors = ErrorClassifier(
            threshold=self.config.error_threshold,
            window_seconds=self.config.error_window_seconds,
            clock=clock,
        )
        self.persistence = SessionPersistence(store, self.config) if store is not None else None
        self.events = ExplorationEvents()
        self.last_auto_pause: Optional[ErrorAnalysis] = None

        self._session: Optional[Session] = None
        self._queue: Optional[DiscoveryQueue] = None
        self._extractor = PathExtractor()
        self._resolver: Optional[VariableResolver] = None
        self._task: Optional[asyncio.Task] = None
        self._snapshot_tasks: set[asyncio.Task] = set()
        self._since_snapshot = 0

    # ── introspection ─────────────────────────────────────────────

    @property
    def session(self) -> Optional[Session]:
        return self._session

    @property
    def state(self) -> str:
        return self._session.status if self._session is not None else "idle"

    @property
    def stats(self) -> ExplorationStats:
        return self._session.stats() if self._session is not None else ExplorationStats()

    @property
    def resolver(self) -> Optional[VariableResolver]:
        return self._resolver

    # ── state machine ─────────────────────────────────────────────

    async def start(self, name: str = "") -> Session:
        """Begin a fresh exploration from the bootstrap list."""
        if self.state == "running":
            raise ScanStateError("start", "running")
        await self._join_loop()

        session = Session(name=name)
        self._attach(session)
        self.errors.clear()
        self.last_auto_pause = None
        for path in self.config.bootstrap_paths:
            self._queue.enqueue(path, None, "known-list")

        logger.info("Starting session %s with %d bootstrap paths", session.id, len(self._queue))
        self._set_status("running")
        self._task = asyncio.create_task(self._run())
        return session

    async def pause(self) -> None:
        """Stop after the current batch and persist."""
        if self.state != "running":
            raise ScanStateError("pause", self.state)
        self._set_status("paused")
        await self._join_loop()
        await self._flush()
        logger.info("Session %s paused", self._session.id)

    async def resume(self) -> None:
        """Continue a paused session as a new run."""
        if self.state != "paused":
            raise ScanStateError("resume", self.state)
        await self._join_loop()

        session = self._session
        self.errors.record_success()
        session.run_id += 1
        session.ended_at = None
        requeued = self._queue.requeue_parked()
        logger.info(
            "Resuming session %s as run %d (%d queued, %d retried)",
            session.id,
            session.run_id,
            len(self._queue),
            requeued,
        )
        self._set_status("running")
        self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        """Complete the session now: persist final state, then clear the queue."""
        if self._session is None:
            raise ScanStateError("stop", "idle")
        if self.state == "completed":
            raise ScanStateError("stop", "completed")

        self._session.ended_at = utc_now()
        self._set_status("completed")
        await self._join_loop()
        await self._flush()
        self._queue.clear()
        logger.info("Session %s stopped", self._session.id)

    async def wait(self) -> None:
        """Wait for the loop to reach a pause or completion."""
        await self._join_loop()
        if self._snapshot_tasks:
            await asyncio.gather(*self._snapshot_tasks, return_exceptions=True)

    async def load(self, session_id: str) -> Session:
        """Rehydrate a stored session; it comes back paused."""
        if self.state == "running":
            raise ScanStateError("load", "running")
        if self.persistence is None:
            raise ExplorationError("Cannot load a session without a session store")
        await self._join_loop()

        session = await self.persistence.resume(session_id)
        self._attach(session)
        self.errors.clear()
        self.last_auto_pause = None
        for name in _SEARCH_PATH_VARIABLES:
            for value in session.variables.get(name, []):
                self._extractor.learn_directories(f"{name}={value.value}")

        self.events.emit("status", session.status)
        return session

    # ── export ────────────────────────────────────────────────────

    def export(self) -> dict[str, Any]:
        if self._session is None:
            raise ScanStateError("export", "idle")
        return export_session(self._session)

    def export_json(self, indent: int = 2) -> str:
        return json.dumps(self.export(), indent=indent)

    # ── loop ──────────────────────────────────────────────────────

    def _attach(self, session: Session) -> None:
        self._session = session
        self._queue = DiscoveryQueue(session)
        self._extractor = PathExtractor()
        self._resolver = VariableResolver(
            session.variables,
            session.deferred_templates,
            max_depth=self.config.max_expansion_depth,
            source_excludes=self.config.variable_source_excludes,
        )
        self._since_snapshot = 0
        if self.persistence is not None:
            self.persistence.reset(session)

    def _set_status(self, status: str) -> None:
        self._session.status = status  # type: ignore[assignment]
        self.events.emit("status", status)

    async def _join_loop(self) -> None:
        task = self._task
        if task is not None and not task.done() and task is not asyncio.current_task():
            await task

    async def _run(self) -> None:
        session = self._session
        queue = self._queue
        transitioned = False
        try:
            while session.status == "running":
                if not queue:
                    session.ended_at = utc_now()
                    self._set_status("completed")
                    transitioned = True
                    logger.info(
                        "Session %s completed: %d scanned, %d found, %d missing",
                        session.id,
                        len(session.scanned),
                        session.succeeded,
                        session.failed,
                    )
                    break

                batch = queue.pop_batch(self.config.batch_size)
                outcomes = await asyncio.gather(*(self.scanner.scan(path) for path in batch))

                if self._process_batch(session, outcomes):
                    transitioned = True
                    break

                self._maybe_snapshot(session)
                if session.status != "running":
                    break
                if self.config.batch_delay_ms:
                    await asyncio.sleep(self.config.batch_delay_seconds)
        except asyncio.CancelledError:
            queue.release_in_flight()
            raise
        except Exception:
            logger.exception("Scan loop for session %s failed", session.id)
            queue.release_in_flight()
            self._set_status("error")
            transitioned = True

        if transitioned:
            await self._flush()

    def _process_batch(self, session: Session, outcomes: list[ScanOutcome]) -> bool:
        """Apply a settled batch. Returns True if it triggered an auto-pause."""
        auto_paused = False
        found = missing = failed = 0

        for outcome in outcomes:
            if outcome.is_transient:
                failed += 1
                self._record_failure(session, outcome)
                analysis = self.errors.analyze(outcome.error or "unknown error")
                if analysis.should_pause and not auto_paused and session.status == "running":
                    auto_paused = True
                    self._auto_pause(session, analysis)
                continue

            self.errors.record_success()
            if outcome.status == "success":
                found += 1
            else:
                missing += 1
            record = self._record_scan(session, outcome)
            self.events.emit("result", record)

        logger.info(
            "Batch done: %d found, %d missing, %d errors; %d queued, %d scanned",
            found,
            missing,
            failed,
            len(session.queue),
            len(session.scanned),
        )
        self.events.emit("stats", session.stats())
        return auto_paused

    def _auto_pause(self, session: Session, analysis: ErrorAnalysis) -> None:
        self.last_auto_pause = analysis
        info = self.errors.error_info()
        session.error_info = info.to_dict() if info is not None else None
        logger.warning(
            "Auto-pausing session %s after %d consecutive errors: %s",
            session.id,
            analysis.consecutive_count,
            analysis.recommendation,
        )
        self._set_status("paused")
        self.events.emit("auto_pause", analysis)

    def _record_failure(self, session: Session, outcome: ScanOutcome) -> None:
        record = session.results.get(outcome.path)
        if record is not None:
            record.error = outcome.error
            record.timestamp = utc_now()
        if not self._queue.retry(outcome.path, self.config.max_retries):
            logger.info("Giving up on %s for this run: %s", outcome.path, outcome.error)

    def _record_scan(self, session: Session, outcome: ScanOutcome) -> FileRecord:
        path = outcome.path
        placeholder = session.results.get(path)
        discovered_from = placeholder.discovered_from if placeholder else None
        method: DiscoveryMethod = placeholder.discovery_method if placeholder else "known-list"

        # Scanned before anything it references is queued
        self._queue.mark_scanned(path)

        if outcome.status == "not-found":
            record = FileRecord(
                path=path,
                status="not-found",
                discovered_from=discovered_from,
                discovery_method=method,
            )
            session.failed += 1
        else:
            content = outcome.content or ""
            classification = self.classifier.classify(content)
            record = FileRecord(
                path=path,
                status="success",
                content=content,
                size=len(content),
                is_binary=classification.is_binary,
                file_type=classification.file_type,
                confidence=classification.confidence,
                magic_bytes=classification.magic_bytes,
                discovered_from=discovered_from,
                discovery_method=method,
            )
            session.succeeded += 1
            if classification.is_binary:
                session.binary += 1
            else:
                session.text += 1
                self._discover(record, content)

        session.results[path] = record
        session.result_log.append(path)
        self._since_snapshot += 1
        return record

    def _discover(self, record: FileRecord, content: str) -> None:
        """Mine text content for variables and paths and enqueue the new ones."""
        unlocked = self._resolver.extract_variables(content, record.path)
        candidates = self._extractor.extract(content, record.path)

        for candidate in sorted(candidates):
            resolution = self._resolver.process_path(candidate, record.path)
            if resolution.kind == "literal":
                self._offer(record, resolution.paths[0], record.path, "extracted")
            elif resolution.kind == "generated":
                for path in resolution.paths:
                    self._offer(record, path, record.path, "generated")

        for generated in unlocked:
            self._offer(record, generated.path, generated.discovered_in, "generated")

    def _offer(self, record: FileRecord, path: str, discovered_from: str, method: DiscoveryMethod) -> None:
        bucket = record.generated_paths if method == "generated" else record.extracted_paths
        if path == record.path or self._queue.is_known(path):
            if path not in record.ignored_paths:
                record.ignored_paths.append(path)
            return
        if self._queue.enqueue(path, discovered_from, method):
            bucket.append(path)
            logger.debug("Queued %s (%s from %s)", path, method, discovered_from)

    # ── persistence ───────────────────────────────────────────────

    def _maybe_snapshot(self, session: Session) -> None:
        if self.persistence is None or self._since_snapshot < self.config.snapshot_every:
            return
        self._since_snapshot = 0
        task = asyncio.create_task(self.persistence.snapshot(session, self.errors.error_info()))
        self._snapshot_tasks.add(task)
        task.add_done_callback(self._snapshot_tasks.discard)

    async def _flush(self) -> None:
        if self.persistence is None or self._session is None:
            return
        self._since_snapshot = 0
        await self.persistence.flush(self._session, self.errors.error_info())
