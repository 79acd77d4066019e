"""
Remote Explorer - Filesystem discovery for sandboxed devices

Maps the filesystem of a device that exposes nothing but a single
"read this file" call. Starting from a handful of well-known files, every
text file read is mined for paths and shell variables; those are resolved
and queued until nothing new turns up. Sessions are persisted so a scan
can be paused and resumed across runs.
"""

__version__ = "0.1.0"
__author__ = "Naman Agarwal"

from .bridge import FunctionBridge, LocalImageBridge
from .config import ExplorerConfig, load_config
from .exploration import ExplorationOrchestrator
from .storage import SQLiteSessionStore

__all__ = [
    "ExplorationOrchestrator",  # Main entry point
    "ExplorerConfig",
    "load_config",
    "FunctionBridge",
    "LocalImageBridge",
    "SQLiteSessionStore",
]
