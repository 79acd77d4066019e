"""Exploration exceptions: state-machine misuse and transport failures."""

from .base import ExplorerError


class ExplorationError(ExplorerError):
    """Base class for errors raised by the exploration engine."""

    pass


class ScanStateError(ExplorationError):
    """Raised when an operation is not valid in the current scan state."""

    def __init__(self, operation: str, state: str):
        super().__init__(
            f"Cannot {operation} while {state}",
            details={"operation": operation, "state": state},
        )
        self.operation = operation
        self.state = state


class BridgeError(ExplorationError):
    """Raised by a bridge when a remote function call fails."""

    def __init__(self, function_name: str, reason: str):
        super().__init__(
            f"Remote call {function_name} failed: {reason}",
            details={"function": function_name, "reason": reason},
        )
        self.function_name = function_name
        self.reason = reason
