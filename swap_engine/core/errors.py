"""Error kinds for order processing.

Two kinds only. FATAL resolves the order to FAILED and is never redelivered; RETRIABLE propagates
so the job scheduler redelivers with backoff. The kind is an explicit tag on the error, not a subclass.
"""

import enum


class ErrorKind(str, enum.Enum):
    FATAL = "fatal"
    RETRIABLE = "retriable"


class ExecutionError(Exception):
    """Error raised by venues and handlers, tagged with its ErrorKind."""

    def __init__(self, message: str, kind: ErrorKind = ErrorKind.RETRIABLE):
        super().__init__(message)
        self.message = message
        self.kind = kind

    @property
    def is_fatal(self) -> bool:
        return self.kind == ErrorKind.FATAL

    def __repr__(self) -> str:
        return f"ExecutionError({self.message!r}, kind={self.kind.value})"


def fatal_error(message: str) -> ExecutionError:
    return ExecutionError(message, ErrorKind.FATAL)


def retriable_error(message: str) -> ExecutionError:
    return ExecutionError(message, ErrorKind.RETRIABLE)


def classify_error(error: BaseException) -> ErrorKind:
    """Read the error's kind tag. Untagged errors (network, driver, bugs) are RETRIABLE."""
    kind = getattr(error, "kind", None)
    if isinstance(kind, ErrorKind):
        return kind
    return ErrorKind.RETRIABLE


class OrderValidationError(ValueError):
    """Rejected order request (missing or out-of-range fields). Raised before anything is persisted."""
