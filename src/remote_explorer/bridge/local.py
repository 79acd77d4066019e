"""Bridge that serves reads from a local mirror of a device filesystem."""

import asyncio
from pathlib import Path
from typing import Any, Optional, Sequence, Union

from ..exceptions import BridgeError
from ..logging_config import get_logger
from .base import FunctionBridge

logger = get_logger(__name__)


class LocalImageBridge(FunctionBridge):
    """Answers read calls from a directory holding a device filesystem image.

    The device expects paths relative to its working directory
    (``../../../etc/profile``); leading ``../`` segments are dropped and the
    rest is resolved under ``root``. Reads never leave ``root``.

    Usage::

        bridge = LocalImageBridge("/mnt/tv-image")
        content = await bridge.call("FileRead", ["../../../etc/profile", 0])
    """

    def __init__(self, root: Union[str, Path], read_function: str = "FileRead", latency: float = 0.0):
        self.root = Path(root).resolve()
        self.read_function = read_function
        self.latency = latency
        if not self.root.is_dir():
            raise BridgeError(read_function, f"mirror root is not a directory: {self.root}")

    async def call(self, function_name: str, parameters: Sequence[Any]) -> Optional[str]:
        if function_name != self.read_function:
            raise BridgeError(function_name, "unsupported function")
        if not parameters:
            raise BridgeError(function_name, "missing path parameter")

        target = self.resolve(str(parameters[0]))
        if self.latency:
            await asyncio.sleep(self.latency)
        return await asyncio.to_thread(self._read, target)

    def resolve(self, relative_path: str) -> Path:
        """Map a device-relative path onto the mirror."""
        path = relative_path
        while path.startswith("../"):
            path = path[3:]
        target = (self.root / path.lstrip("/")).resolve()
        try:
            target.relative_to(self.root)
        except ValueError:
            raise BridgeError(self.read_function, f"path escapes mirror root: {relative_path}")
        return target

    def _read(self, target: Path) -> Optional[str]:
        if not target.is_file():
            logger.debug("Not in mirror: %s", target)
            return None
        try:
            # One character per byte, as the device returns it
            return target.read_bytes().decode("latin-1")
        except PermissionError:
            return None
        except OSError as e:
            raise BridgeError(self.read_function, str(e))
