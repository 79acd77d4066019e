"""Classification of remote read failures and the auto-pause decision."""

from __future__ import annotations

import time
from collections import deque
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Optional, Union

from ..logging_config import get_logger

logger = get_logger(__name__)


class ErrorType(Enum):
    """Failure class. Remote reads in practice only ever time out."""

    TIMEOUT = "timeout"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class ErrorEvent:
    type: ErrorType
    timestamp: float
    message: str


@dataclass(frozen=True)
class ErrorAnalysis:
    """Verdict for one failure."""

    type: ErrorType
    should_pause: bool
    consecutive_count: int
    error_rate: float  # errors per second over the window
    recommendation: str


@dataclass(frozen=True)
class ErrorInfo:
    """Summary of the latest failure, persisted with snapshots."""

    last_error: str
    error_count: int
    consecutive_errors: int
    last_error_time: str  # ISO-8601
    error_type: str
    recommendation: str

    def to_dict(self) -> dict:
        return asdict(self)


def recommendation_for(error_type: ErrorType, count: int) -> str:
    """Human-readable advice, escalating with the consecutive count."""
    if error_type is ErrorType.TIMEOUT:
        if count >= 3:
            return (
                "Multiple timeouts detected. The device service may have crashed "
                "or leaked memory; restart the device or clear its cache."
            )
        return "Device response timeout. Check the device is powered on and not busy, then retry."
    if count >= 5:
        return "Too many errors detected. Try restarting the device or clearing its cache."
    return "Check the device connection and retry. If the issue persists, restart the scan."


class ErrorClassifier:
    """Tracks consecutive and windowed failures.

    ``analyze`` is called for every transient failure, ``record_success``
    for every read that reached the device (found or not found).
    """

    def __init__(
        self,
        threshold: int = 3,
        window_seconds: float = 60.0,
        clock: Callable[[], float] = time.time,
    ):
        self.threshold = threshold
        self.window_seconds = window_seconds
        self._clock = clock
        self._history: deque[ErrorEvent] = deque()
        self.total_errors = 0
        self.consecutive_errors = 0

    @staticmethod
    def classify(error: Union[BaseException, str]) -> ErrorType:
        message = str(error).lower()
        if "timeout" in message:
            return ErrorType.TIMEOUT
        return ErrorType.UNKNOWN

    def analyze(self, error: Union[BaseException, str]) -> ErrorAnalysis:
        error_type = self.classify(error)
        message = str(error) or "Unknown error occurred"

        self._history.append(ErrorEvent(error_type, self._clock(), message))
        self.total_errors += 1
        self.consecutive_errors += 1
        self._prune()

        should_pause = self.consecutive_errors >= self.threshold
        recommendation = recommendation_for(error_type, self.consecutive_errors)

        if should_pause:
            logger.warning(
                "Auto-pause triggered: %d consecutive %s errors. %s",
                self.consecutive_errors,
                error_type.value,
                recommendation,
            )
        else:
            logger.warning(
                "Error detected (%d consecutive): %s", self.consecutive_errors, recommendation
            )

        return ErrorAnalysis(
            type=error_type,
            should_pause=should_pause,
            consecutive_count=self.consecutive_errors,
            error_rate=self._rate(),
            recommendation=recommendation,
        )

    def record_success(self) -> None:
        """Reset the consecutive counter."""
        if self.consecutive_errors:
            logger.debug("Consecutive errors reset (was %d)", self.consecutive_errors)
            self.consecutive_errors = 0

    def error_info(self) -> Optional[ErrorInfo]:
        if not self._history:
            return None
        last = self._history[-1]
        return ErrorInfo(
            last_error=last.message,
            error_count=self.total_errors,
            consecutive_errors=self.consecutive_errors,
            last_error_time=datetime.fromtimestamp(last.timestamp, timezone.utc).isoformat(),
            error_type=last.type.value,
            recommendation=recommendation_for(last.type, self.consecutive_errors),
        )

    def statistics(self) -> dict:
        self._prune()
        return {
            "total_errors": self.total_errors,
            "consecutive_errors": self.consecutive_errors,
            "recent_errors": len(self._history),
            "error_rate": self._rate(),
        }

    def clear(self) -> None:
        self._history.clear()
        self.total_errors = 0
        self.consecutive_errors = 0
        logger.debug("Error history cleared")

    def _prune(self) -> None:
        cutoff = self._clock() - self.window_seconds
        while self._history and self._history[0].timestamp < cutoff:
            self._history.popleft()

    def _rate(self) -> float:
        return len(self._history) / self.window_seconds
