import threading

from queuewatch.models.results import ErrorKind


class DriverError(Exception):
    """Base class for failures reported by a queue driver"""
    kind: ErrorKind = ErrorKind.UNKNOWN

    def __init__(self, message: str, path: str | None = None):
        super().__init__(message)
        self.message = message
        self.path = path


class TransientDriverError(DriverError):
    """Timeouts and network failures that may succeed on retry"""
    kind = ErrorKind.TRANSIENT


class ConnectionTimeout(TransientDriverError):
    pass


class AccessDeniedError(DriverError):
    kind = ErrorKind.ACCESS_DENIED


class QueueNotFoundError(DriverError):
    kind = ErrorKind.NOT_FOUND


class MessageNotFoundError(DriverError):
    kind = ErrorKind.NOT_FOUND


class OperationCancelled(DriverError):
    kind = ErrorKind.CANCELLED


def check_cancelled(cancel_event: threading.Event | None) -> None:
    """Raise ``OperationCancelled`` once ``cancel_event`` is set."""
    if cancel_event is not None and cancel_event.is_set():
        raise OperationCancelled("Operation cancelled")


def error_kind(exc: BaseException) -> ErrorKind:
    """Classify an arbitrary exception raised while talking to a driver."""
    if isinstance(exc, DriverError):
        return exc.kind
    if isinstance(exc, (TimeoutError, ConnectionError)):
        return ErrorKind.TRANSIENT
    if isinstance(exc, PermissionError):
        return ErrorKind.ACCESS_DENIED
    return ErrorKind.UNKNOWN
