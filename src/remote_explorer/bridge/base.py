"""Transport boundary: remote function calls on the device."""

from abc import ABC, abstractmethod
from typing import Any, Optional, Sequence


class FunctionBridge(ABC):
    """Invokes a named function on the remote device.

    Implementations return the function's result (file content for reads),
    ``None`` when the device reports nothing, and raise on transport
    failures. Timeouts are imposed by the caller.
    """

    @abstractmethod
    async def call(self, function_name: str, parameters: Sequence[Any]) -> Optional[str]:
        ...
