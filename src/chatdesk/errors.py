"""Error taxonomy for the conversation routing core."""


class ChatDeskError(Exception):
    """Base class for chat service errors."""

    pass


class ValidationError(ChatDeskError):
    """Raised when an inbound event is rejected before any state change."""

    pass


class EmptyMessageError(ValidationError):
    """Raised when a message body is empty after trimming."""

    def __init__(self) -> None:
        super().__init__("Message cannot be empty")


class SessionNotFoundError(ValidationError):
    """Raised when a session identifier does not resolve to a session."""

    def __init__(self, session_id: str):
        super().__init__(f"Session not found: {session_id}")
        self.session_id = session_id


class SessionExistsError(ValidationError):
    """Raised when creating a session whose identifier is already taken."""

    def __init__(self, session_id: str):
        super().__init__(f"Session already exists: {session_id}")
        self.session_id = session_id


class StoreError(ChatDeskError):
    """Raised when the session store is unavailable or fails a write."""

    pass


class AuthorizationError(ChatDeskError):
    """Raised when an operator credential is missing or invalid."""

    pass
