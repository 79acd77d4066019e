"""Exception hierarchy for remote-explorer."""

from .base import ExplorerError
from .config import ConfigurationError, InvalidConfigError
from .exploration import BridgeError, ExplorationError, ScanStateError
from .storage import InvalidSessionDataError, SessionNotFoundError, StorageError

__all__ = [
    "ExplorerError",
    "ConfigurationError",
    "InvalidConfigError",
    "ExplorationError",
    "ScanStateError",
    "BridgeError",
    "StorageError",
    "SessionNotFoundError",
    "InvalidSessionDataError",
]
