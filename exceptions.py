class ChatCoreError(Exception):
    """Base class for errors raised by the messaging core."""


class ValidationError(ChatCoreError):
    """An event or request was rejected before touching persistence."""


class PersistenceError(ChatCoreError):
    """The backing store could not complete a read or write."""

    def __init__(self, operation: str, cause: Exception = None):
        self.operation = operation
        self.cause = cause
        message = f"{operation} failed"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)
