"""
Typed errors for filevault.

Every failure that leaves the client is a FileVaultError carrying an
ErrorKind, so callers can branch on the kind instead of parsing messages.
"""
from enum import Enum
from typing import Optional


class ErrorKind(Enum):
    """Error taxonomy shared by all services."""
    VALIDATION = "validation"
    NETWORK = "network"
    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"
    RATE_LIMITED = "rate_limited"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    CLIENT = "client"
    SERVER = "server"
    CANCELLED = "cancelled"
    MALFORMED_RESPONSE = "malformed_response"


def kind_for_status(status: int) -> ErrorKind:
    """Map an HTTP status code to an ErrorKind."""
    if status == 401:
        return ErrorKind.UNAUTHORIZED
    if status == 403:
        return ErrorKind.FORBIDDEN
    if status == 404:
        return ErrorKind.NOT_FOUND
    if status == 409:
        return ErrorKind.CONFLICT
    if status == 429:
        return ErrorKind.RATE_LIMITED
    if status >= 500:
        return ErrorKind.SERVER
    return ErrorKind.CLIENT


class FileVaultError(Exception):
    """Base class for every error raised by this package."""

    kind: ErrorKind = ErrorKind.CLIENT

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(FileVaultError):
    """Client-local validation failure. No request was sent."""

    kind = ErrorKind.VALIDATION


class NetworkError(FileVaultError):
    """Transport failure (connection refused, timeout, reset)."""

    kind = ErrorKind.NETWORK


class ApiError(FileVaultError):
    """Non-2xx response from the API."""

    def __init__(
        self,
        status: int,
        message: str,
        path: Optional[str] = None,
        timestamp: Optional[str] = None,
        request_id: Optional[str] = None,
        retry_after: Optional[int] = None,
    ):
        super().__init__(message)
        self.status = status
        self.path = path
        self.timestamp = timestamp
        self.request_id = request_id
        self.retry_after = retry_after
        self.kind = kind_for_status(status)

    def __repr__(self) -> str:
        return (
            f"ApiError(status={self.status}, message={self.message!r}, "
            f"request_id={self.request_id!r})"
        )


class MalformedResponseError(ApiError):
    """A 2xx response that should have been JSON but was not."""

    def __init__(self, status: int, message: str = "Invalid JSON response", path: Optional[str] = None):
        super().__init__(status, message, path=path)
        self.kind = ErrorKind.MALFORMED_RESPONSE


class TransferCancelledError(FileVaultError):
    """Upload aborted by the user."""

    kind = ErrorKind.CANCELLED

    def __init__(self, message: str = "Upload cancelled"):
        super().__init__(message)


class UploadNetworkError(NetworkError):
    """Upload transport failure."""

    def __init__(self, message: str = "Network error"):
        super().__init__(message)


class UploadFailedError(ApiError):
    """Upload completed with a non-2xx status."""


class DuplicateFileError(FileVaultError):
    """
    A file with the same name already exists and no duplicate action was given.

    Carries the pending decision so the caller can resubmit with an action.
    """

    kind = ErrorKind.CONFLICT

    def __init__(self, decision):
        super().__init__(f"File already exists: {decision.conflicting_file_name}")
        self.decision = decision
