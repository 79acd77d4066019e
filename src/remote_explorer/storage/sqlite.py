"""SQLite-backed session store."""

from __future__ import annotations

import json
import sqlite3
import threading
from dataclasses import asdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional, Union

from ..exceptions import InvalidSessionDataError, SessionNotFoundError, StorageError
from ..logging_config import get_logger
from .base import ResumeData, SaveAction, SaveResult, SessionMetadata, SessionStore
from .merge import merge_record

logger = get_logger(__name__)

# Current schema version (bump when tables change).
_SCHEMA_VERSION = 1

SAVE_ACTIONS = ("create", "merge", "overwrite")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _seconds_between(start: str, end: str) -> float:
    try:
        return (datetime.fromisoformat(end) - datetime.fromisoformat(start)).total_seconds()
    except ValueError:
        return 0.0


class SQLiteSessionStore(SessionStore):
    """Stores sessions, their runs and their FileRecords in one SQLite file.

    The connection may be used from worker threads (snapshots are written
    off the event loop), so every operation holds an internal lock.

    Usage::

        with SQLiteSessionStore(".remote-explorer/sessions.db") as store:
            store.save(session_id, "create", 1, payload)
    """

    def __init__(self, path: Union[str, Path]) -> None:
        self.path = str(path)
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.Lock()

    @property
    def conn(self) -> sqlite3.Connection:
        """Return the active connection. Raises if not connected."""
        if self._conn is None:
            raise StorageError("Session store is not connected. Use as context manager or call connect().")
        return self._conn

    # ── lifecycle ─────────────────────────────────────────────────

    def connect(self) -> sqlite3.Connection:
        """Open (or create) the database and run migrations."""
        if self.path != ":memory:":
            Path(self.path).parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(self.path, check_same_thread=False)
        if self.path != ":memory:":
            conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA foreign_keys=ON")
        conn.row_factory = sqlite3.Row
        self._conn = conn
        self._migrate()
        logger.debug("Session store connected at %s", self.path)
        return conn

    def close(self) -> None:
        """Close the connection if open."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def __enter__(self) -> "SQLiteSessionStore":
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    # ── migration ─────────────────────────────────────────────────

    def _migrate(self) -> None:
        """Idempotently create all tables."""
        c = self.conn

        c.execute("CREATE TABLE IF NOT EXISTS schema_version (version INTEGER NOT NULL)")
        if c.execute("SELECT version FROM schema_version").fetchone() is None:
            c.execute("INSERT INTO schema_version (version) VALUES (?)", (_SCHEMA_VERSION,))

        # ── sessions ─────────────────────────────────────────────
        c.execute(
            """
            CREATE TABLE IF NOT EXISTS sessions (
                id          TEXT PRIMARY KEY,
                name        TEXT NOT NULL DEFAULT '',
                status      TEXT NOT NULL,
                created_at  TEXT NOT NULL,
                updated_at  TEXT NOT NULL,
                state       TEXT NOT NULL
            )
            """
        )

        # ── runs ─────────────────────────────────────────────────
        c.execute(
            """
            CREATE TABLE IF NOT EXISTS runs (
                session_id    TEXT    NOT NULL REFERENCES sessions(id) ON DELETE CASCADE,
                run_id        INTEGER NOT NULL,
                started_at    TEXT    NOT NULL,
                updated_at    TEXT    NOT NULL,
                files_scanned INTEGER NOT NULL DEFAULT 0,
                status        TEXT    NOT NULL,
                PRIMARY KEY (session_id, run_id)
            )
            """
        )

        # ── results ──────────────────────────────────────────────
        c.execute(
            """
            CREATE TABLE IF NOT EXISTS results (
                session_id       TEXT    NOT NULL REFERENCES sessions(id) ON DELETE CASCADE,
                path             TEXT    NOT NULL,
                status           TEXT    NOT NULL,
                is_binary        INTEGER NOT NULL DEFAULT 0,
                discovery_method TEXT    NOT NULL DEFAULT 'known-list',
                data             TEXT    NOT NULL,
                PRIMARY KEY (session_id, path)
            )
            """
        )
        c.commit()

    # ── operations ────────────────────────────────────────────────

    def save(self, session_id: str, action: SaveAction, run_id: int, data: dict[str, Any]) -> SaveResult:
        if action not in SAVE_ACTIONS:
            raise StorageError(f"Unknown save action: {action}", details={"session_id": session_id})

        with self._lock, self.conn as c:
            row = c.execute("SELECT created_at FROM sessions WHERE id = ?", (session_id,)).fetchone()
            if action == "merge" and row is None:
                logger.info("No stored session %s, creating it", session_id)
                action = "create"

            if action == "create":
                c.execute("DELETE FROM sessions WHERE id = ?", (session_id,))
                row = None
            elif action == "overwrite":
                c.execute("DELETE FROM results WHERE session_id = ?", (session_id,))

            now = _now()
            state = {k: v for k, v in data.items() if k != "results"}
            meta = state.get("session", {})
            c.execute(
                """
                INSERT INTO sessions (id, name, status, created_at, updated_at, state)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    name = excluded.name,
                    status = excluded.status,
                    updated_at = excluded.updated_at,
                    state = excluded.state
                """,
                (
                    session_id,
                    meta.get("name") or session_id,
                    meta.get("status", "unknown"),
                    row["created_at"] if row else now,
                    now,
                    json.dumps(state),
                ),
            )

            before = self._count(c, session_id)
            records = data.get("results", [])
            for record in records:
                existing = None
                if action == "merge":
                    existing = self._load_record(c, session_id, record["path"])
                merged = merge_record(existing, record, run_id)
                c.execute(
                    """
                    INSERT OR REPLACE INTO results
                        (session_id, path, status, is_binary, discovery_method, data)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (
                        session_id,
                        merged["path"],
                        merged.get("status", "unknown"),
                        int(bool(merged.get("is_binary"))),
                        merged.get("discovery_method", "known-list"),
                        json.dumps(merged),
                    ),
                )

            c.execute(
                """
                INSERT INTO runs (session_id, run_id, started_at, updated_at, files_scanned, status)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(session_id, run_id) DO UPDATE SET
                    updated_at = excluded.updated_at,
                    files_scanned = runs.files_scanned + excluded.files_scanned,
                    status = excluded.status
                """,
                (session_id, run_id, now, now, len(records), meta.get("status", "unknown")),
            )

            total = self._count(c, session_id)

        logger.debug("Saved session %s (%s, run %d): %d records", session_id, action, run_id, len(records))
        return SaveResult(session_id=session_id, run_id=run_id, total_files=total, new_files=total - before)

    def load(self, session_id: str) -> dict[str, Any]:
        with self._lock:
            c = self.conn
            row = c.execute("SELECT * FROM sessions WHERE id = ?", (session_id,)).fetchone()
            if row is None:
                raise SessionNotFoundError(session_id)
            try:
                state = json.loads(row["state"])
                results = [
                    json.loads(r["data"])
                    for r in c.execute(
                        "SELECT data FROM results WHERE session_id = ? ORDER BY rowid", (session_id,)
                    )
                ]
            except json.JSONDecodeError as e:
                raise InvalidSessionDataError(session_id, str(e))
            runs = self._runs(c, session_id)
            metadata = self._metadata(c, row)

        state["results"] = results
        state["runs"] = runs
        state["metadata"] = {**asdict(metadata), "can_resume": metadata.can_resume}
        return state

    def resume(self, session_id: str) -> ResumeData:
        data = self.load(session_id)
        last_run = max((r["run_id"] for r in data["runs"]), default=0)
        return ResumeData(session_id=session_id, data=data, next_run_id=last_run + 1)

    def list(self) -> list[SessionMetadata]:
        with self._lock:
            c = self.conn
            rows = c.execute("SELECT * FROM sessions ORDER BY updated_at DESC, rowid DESC").fetchall()
            return [self._metadata(c, row) for row in rows]

    def delete(self, session_id: str) -> None:
        with self._lock, self.conn as c:
            cursor = c.execute("DELETE FROM sessions WHERE id = ?", (session_id,))
            if cursor.rowcount == 0:
                raise SessionNotFoundError(session_id)
        logger.info("Deleted session %s", session_id)

    # ── helpers ───────────────────────────────────────────────────

    @staticmethod
    def _count(c: sqlite3.Connection, session_id: str) -> int:
        return c.execute("SELECT COUNT(*) FROM results WHERE session_id = ?", (session_id,)).fetchone()[0]

    @staticmethod
    def _load_record(c: sqlite3.Connection, session_id: str, path: str) -> Optional[dict[str, Any]]:
        row = c.execute(
            "SELECT data FROM results WHERE session_id = ? AND path = ?", (session_id, path)
        ).fetchone()
        if row is None:
            return None
        try:
            return json.loads(row["data"])
        except json.JSONDecodeError as e:
            raise InvalidSessionDataError(session_id, f"{path}: {e}")

    @staticmethod
    def _runs(c: sqlite3.Connection, session_id: str) -> list[dict[str, Any]]:
        rows = c.execute(
            "SELECT * FROM runs WHERE session_id = ? ORDER BY run_id", (session_id,)
        ).fetchall()
        return [
            {
                "run_id": r["run_id"],
                "timestamp": r["started_at"],
                "files_scanned": r["files_scanned"],
                "duration_seconds": _seconds_between(r["started_at"], r["updated_at"]),
                "status": r["status"],
            }
            for r in rows
        ]

    @staticmethod
    def _metadata(c: sqlite3.Connection, row: sqlite3.Row) -> SessionMetadata:
        counts = c.execute(
            """
            SELECT COUNT(*)                                        AS total,
                   COALESCE(SUM(status = 'success'), 0)            AS success,
                   COALESCE(SUM(status != 'success'), 0)           AS failed,
                   COALESCE(SUM(status = 'success' AND is_binary = 0), 0) AS text,
                   COALESCE(SUM(is_binary = 1), 0)                 AS binary
            FROM results WHERE session_id = ?
            """,
            (row["id"],),
        ).fetchone()
        discovery = {
            r["discovery_method"]: r["n"]
            for r in c.execute(
                "SELECT discovery_method, COUNT(*) AS n FROM results WHERE session_id = ? "
                "GROUP BY discovery_method",
                (row["id"],),
            )
        }
        total_runs = c.execute("SELECT COUNT(*) FROM runs WHERE session_id = ?", (row["id"],)).fetchone()[0]
        return SessionMetadata(
            session_id=row["id"],
            name=row["name"],
            status=row["status"],
            total_files=counts["total"],
            success_count=counts["success"],
            failed_count=counts["failed"],
            text_count=counts["text"],
            binary_count=counts["binary"],
            total_runs=total_runs,
            last_modified=row["updated_at"],
            discovery=discovery,
        )
