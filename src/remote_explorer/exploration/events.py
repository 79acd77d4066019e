"""Synchronous listener registry for orchestrator notifications.

Result and stats notifications for a path are emitted only after its
FileRecord is stored in the session. A listener that raises is logged and
skipped; it never interrupts the scan loop.
"""

from __future__ import annotations

import threading
from typing import Any, Callable

from ..logging_config import get_logger

logger = get_logger(__name__)

Listener = Callable[..., Any]

EVENT_NAMES = ("result", "stats", "status", "auto_pause")


class ExplorationEvents:
    """Holds listeners per event name.

    Usage::

        orchestrator.events.on_result(lambda record: print(record.path))
        orchestrator.events.on_auto_pause(lambda analysis: alert(analysis.recommendation))
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._listeners: dict[str, list[Listener]] = {name: [] for name in EVENT_NAMES}

    def subscribe(self, event: str, listener: Listener) -> Callable[[], None]:
        """Register ``listener``; returns a function that unregisters it."""
        if event not in self._listeners:
            raise ValueError(f"Unknown event: {event}")
        with self._lock:
            self._listeners[event].append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners[event]:
                    self._listeners[event].remove(listener)

        return unsubscribe

    def on_result(self, listener: Listener) -> Callable[[], None]:
        return self.subscribe("result", listener)

    def on_stats(self, listener: Listener) -> Callable[[], None]:
        return self.subscribe("stats", listener)

    def on_status(self, listener: Listener) -> Callable[[], None]:
        return self.subscribe("status", listener)

    def on_auto_pause(self, listener: Listener) -> Callable[[], None]:
        return self.subscribe("auto_pause", listener)

    def emit(self, event: str, payload: Any) -> None:
        with self._lock:
            # Copy to allow (un)subscribing from inside a listener
            listeners = list(self._listeners.get(event, ()))
        for listener in listeners:
            try:
                listener(payload)
            except Exception:
                logger.exception("Listener for %s event failed", event)
