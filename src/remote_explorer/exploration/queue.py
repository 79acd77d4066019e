"""Discovery queue: pending paths, deduplication and provenance."""

from __future__ import annotations

from typing import Optional

from ..logging_config import get_logger
from .models import DiscoveryMethod, FileRecord, Session

logger = get_logger(__name__)


class DiscoveryQueue:
    """FIFO view over a Session's pending paths.

    A path is *known* once it is queued, in flight, scanned or parked for
    retry; known paths are never enqueued again. Paths popped into a batch
    stay in flight until they are marked scanned, retried or parked.
    """

    def __init__(self, session: Session):
        self.session = session
        self._queued: set[str] = set(session.queue)
        self._in_flight: set[str] = set()

    def __len__(self) -> int:
        return len(self.session.queue)

    def __bool__(self) -> bool:
        return bool(self.session.queue)

    def is_known(self, path: str) -> bool:
        return (
            path in self._queued
            or path in self._in_flight
            or path in self.session.scanned
            or path in self.session.retry_pending
        )

    def enqueue(
        self,
        path: str,
        discovered_from: Optional[str] = None,
        method: DiscoveryMethod = "extracted",
    ) -> bool:
        """Queue ``path`` with a provenance placeholder. False if already known."""
        if self.is_known(path):
            return False

        self.session.queue.append(path)
        self._queued.add(path)
        self.session.total += 1

        if path not in self.session.results:
            self.session.results[path] = FileRecord(
                path=path,
                discovered_from=discovered_from,
                discovery_method=method,
                placeholder=True,
            )
        return True

    def pop_batch(self, size: int) -> list[str]:
        batch = []
        while self.session.queue and len(batch) < size:
            path = self.session.queue.popleft()
            self._queued.discard(path)
            self._in_flight.add(path)
            batch.append(path)
        return batch

    def mark_scanned(self, path: str) -> None:
        self._in_flight.discard(path)
        self.session.scanned.add(path)
        self.session.retry_counts.pop(path, None)

    def retry(self, path: str, max_retries: int) -> bool:
        """Re-append a transiently failed path, or park it when out of retries.

        Returns True if the path went back into the queue.
        """
        self._in_flight.discard(path)
        attempts = self.session.retry_counts.get(path, 0)
        if attempts < max_retries:
            self.session.retry_counts[path] = attempts + 1
            self.session.queue.append(path)
            self._queued.add(path)
            return True
        self.park(path)
        return False

    def park(self, path: str) -> None:
        self._in_flight.discard(path)
        if path not in self.session.retry_pending:
            self.session.retry_pending.append(path)
            logger.debug("Parked %s until resume", path)

    def requeue_parked(self) -> int:
        """Move parked paths to the front of the queue, keeping their order."""
        parked = [p for p in self.session.retry_pending if p not in self.session.scanned]
        self.session.retry_pending.clear()
        self.session.retry_counts.clear()
        self.session.queue.extendleft(reversed(parked))
        self._queued.update(parked)
        return len(parked)

    def release_in_flight(self) -> None:
        """Return unsettled in-flight paths to the front of the queue."""
        if self._in_flight:
            pending = [p for p in self._in_flight if p not in self._queued]
            self.session.queue.extendleft(sorted(pending, reverse=True))
            self._queued.update(pending)
            self._in_flight.clear()

    def clear(self) -> None:
        self.session.queue.clear()
        self._queued.clear()
