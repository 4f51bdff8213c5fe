from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    UNAUTHORIZED = "UNAUTHORIZED"
    INVALID_ARGUMENT = "INVALID_ARGUMENT"
    NOT_FOUND = "NOT_FOUND"
    CANCELLED = "CANCELLED"
    INTERNAL = "INTERNAL"


class ErrorCategory(str, Enum):
    """What the UI should do about a failure."""
    FIX_INPUT = "FIX_INPUT"
    TRY_AGAIN = "TRY_AGAIN"
    CANCELLED = "CANCELLED"


_HTTP_STATUS = {
    ErrorKind.UNAUTHORIZED: 401,
    ErrorKind.INVALID_ARGUMENT: 400,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.INTERNAL: 500,
}


class UploadError(Exception):
    kind: ErrorKind = ErrorKind.INTERNAL

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code or _HTTP_STATUS.get(self.kind, 500)

    @property
    def category(self) -> ErrorCategory:
        if self.kind == ErrorKind.CANCELLED:
            return ErrorCategory.CANCELLED
        if self.kind in (ErrorKind.UNAUTHORIZED, ErrorKind.INVALID_ARGUMENT):
            return ErrorCategory.FIX_INPUT
        return ErrorCategory.TRY_AGAIN

    def __str__(self) -> str:
        return self.message


class UnauthorizedError(UploadError):
    kind = ErrorKind.UNAUTHORIZED


class InvalidArgumentError(UploadError):
    kind = ErrorKind.INVALID_ARGUMENT


class NotFoundError(UploadError):
    kind = ErrorKind.NOT_FOUND


class UploadCancelledError(UploadError):
    kind = ErrorKind.CANCELLED

    def __init__(self, message: str = "Upload cancelled"):
        super().__init__(message)


class InternalError(UploadError):
    kind = ErrorKind.INTERNAL


def error_for_status(status_code: int, message: str) -> UploadError:
    """Rebuild the taxonomy from an HTTP status returned by the service."""
    if status_code == 401 or status_code == 403:
        return UnauthorizedError(message, status_code)
    if status_code == 404:
        return NotFoundError(message, status_code)
    if 400 <= status_code < 500:
        return InvalidArgumentError(message, status_code)
    return InternalError(message, status_code)
