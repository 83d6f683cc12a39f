class ChatVaultError(Exception):
    """Base class for domain errors surfaced to API callers."""

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message


class NotAuthorized(ChatVaultError):
    """Caller is not an active participant of the conversation."""


class NotFound(ChatVaultError):
    pass


class Conflict(ChatVaultError):
    pass


class ValidationFailed(ChatVaultError):
    def __init__(self, message: str = "", required: list[str] | None = None):
        super().__init__(message)
        self.required = required


class Transient(ChatVaultError):
    """The store is unavailable; callers may retry with backoff."""
