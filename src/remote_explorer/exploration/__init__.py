"""Content-driven exploration engine."""

from .classifier import ContentClassifier
from .error_detector import ErrorAnalysis, ErrorClassifier, ErrorInfo, ErrorType
from .events import ExplorationEvents
from .extractor import PathExtractor, is_shell_script, is_valid_path
from .models import (
    Classification,
    DeferredTemplate,
    ExplorationStats,
    FileRecord,
    GeneratedPath,
    PathResolution,
    ScanOutcome,
    Session,
    VariableValue,
)
from .orchestrator import ExplorationOrchestrator
from .persistence import SessionPersistence, export_session, session_from_payload
from .queue import DiscoveryQueue
from .scanner import RemoteScanner
from .variables import VariableResolver

__all__ = [
    "Classification",
    "ContentClassifier",
    "DeferredTemplate",
    "DiscoveryQueue",
    "ErrorAnalysis",
    "ErrorClassifier",
    "ErrorInfo",
    "ErrorType",
    "ExplorationEvents",
    "ExplorationOrchestrator",
    "ExplorationStats",
    "FileRecord",
    "GeneratedPath",
    "PathExtractor",
    "PathResolution",
    "RemoteScanner",
    "ScanOutcome",
    "Session",
    "SessionPersistence",
    "VariableResolver",
    "VariableValue",
    "export_session",
    "is_shell_script",
    "is_valid_path",
    "session_from_payload",
]
