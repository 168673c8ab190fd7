"""Error taxonomy shared by the session core and its HTTP surfaces."""


class SessionError(Exception):
    """Base exception for the diagnosis session core."""


class ValidationError(SessionError):
    """Raised when user input is rejected before any I/O (e.g. empty question)."""


class PreconditionFailed(SessionError):
    """Raised when a turn is attempted without a bound image."""


class StorageError(SessionError):
    """Raised by the durable storage layer when a slot cannot be read or written."""


class StorageQuotaExceeded(StorageError):
    """Raised when a value does not fit in the configured storage quota."""
