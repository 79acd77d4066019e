"""Storage exceptions: session save/load/resume failures."""

from .base import ExplorerError


class StorageError(ExplorerError):
    """Base class for session storage errors."""

    pass


class SessionNotFoundError(StorageError):
    """Raised when a session id is not present in the store."""

    def __init__(self, session_id: str):
        super().__init__(f"Session not found: {session_id}", details={"session_id": session_id})
        self.session_id = session_id


class InvalidSessionDataError(StorageError):
    """Raised when stored session data cannot be decoded."""

    def __init__(self, session_id: str, reason: str):
        super().__init__(
            f"Invalid data for session {session_id}",
            details={"session_id": session_id, "reason": reason},
        )
        self.session_id = session_id
        self.reason = reason
