"""Error taxonomy shared by the transport, protocol and batch layers."""

from __future__ import annotations

from enum import Enum


class ErrorKind(Enum):
    """Classification attached to every transport failure."""

    DISPOSED = "disposed"
    CANCELLED = "cancelled"
    TIMEOUT = "timeout"
    VALIDATION = "validation"
    CONNECTION = "connection"


class TransportError(Exception):
    """Base class for failures of a single exchange."""

    kind: ErrorKind = ErrorKind.CONNECTION


class SessionDisposedError(TransportError, RuntimeError):
    """Operation attempted on a session that was already closed."""

    kind = ErrorKind.DISPOSED


class OperationCancelledError(TransportError):
    """The caller's cancellation event fired while an exchange was pending."""

    kind = ErrorKind.CANCELLED


class ResponseTimeoutError(TransportError, TimeoutError):
    """The device stayed silent through every resend attempt."""

    kind = ErrorKind.TIMEOUT

    def __init__(self, resends: int) -> None:
        super().__init__(f"No response from device after {resends} resend attempts")
        self.resends = resends


class ResponseValidationError(TransportError):
    """The response did not start with the expected acknowledgement bytes."""

    kind = ErrorKind.VALIDATION

    def __init__(self, message: str, response: bytes = b"") -> None:
        super().__init__(message)
        self.response = response


class ConnectionLostError(TransportError):
    """The port failed while an exchange was using it."""

    kind = ErrorKind.CONNECTION


class DumpFileError(OSError):
    """The dump file could not be read or written."""


class SourceTooShortError(DumpFileError):
    """The source file holds fewer bytes than the requested range."""

    def __init__(self, path: str, expected: int, actual: int) -> None:
        super().__init__(
            f"{path} holds {actual} bytes, {expected} are required for this range"
        )
        self.path = path
        self.expected = expected
        self.actual = actual
