"""Session storage backends."""

from .base import ResumeData, SaveResult, SessionMetadata, SessionStore
from .sqlite import SQLiteSessionStore

__all__ = [
    "ResumeData",
    "SaveResult",
    "SessionMetadata",
    "SessionStore",
    "SQLiteSessionStore",
]
