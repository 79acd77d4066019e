"""One logical remote read, normalized to success / not-found / error."""

from __future__ import annotations

import asyncio
from typing import Optional

from ..bridge.base import FunctionBridge
from ..config import ExplorerConfig
from ..logging_config import get_logger
from .models import ScanOutcome

logger = get_logger(__name__)

NOT_FOUND_SENTINELS = frozenset({"", "null", "undefined"})


class RemoteScanner:
    """Reads single files through a FunctionBridge.

    Not-found is permanent; any raised error (timeouts included) is
    reported as a transient ``error`` outcome and never propagates.
    """

    def __init__(self, bridge: FunctionBridge, config: Optional[ExplorerConfig] = None):
        self.bridge = bridge
        self.config = config or ExplorerConfig()

    def to_device_path(self, path: str) -> str:
        """``/etc/profile`` -> ``../../../etc/profile``."""
        return self.config.path_prefix + path.lstrip("/")

    async def scan(self, path: str) -> ScanOutcome:
        function = self.config.read_function
        try:
            content = await asyncio.wait_for(
                self.bridge.call(function, [self.to_device_path(path), 0]),
                timeout=self.config.read_timeout_seconds,
            )
        except asyncio.TimeoutError:
            message = f"{function} timeout after {self.config.read_timeout_seconds:g}s"
            logger.warning("Timeout scanning %s (device may be busy or file inaccessible)", path)
            return ScanOutcome(path, "error", error=message)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            message = str(e) or type(e).__name__
            if "timeout" in message.lower():
                logger.warning("Timeout scanning %s: %s", path, message)
            else:
                logger.error("Error scanning %s: %s", path, message)
            return ScanOutcome(path, "error", error=message)

        if isinstance(content, bytes):
            content = content.decode("latin-1")
        if content is None or content in NOT_FOUND_SENTINELS:
            return ScanOutcome(path, "not-found")
        return ScanOutcome(path, "success", content=content)
