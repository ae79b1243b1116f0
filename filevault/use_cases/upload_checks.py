"""Pre-upload validation and post-failure classification."""
from ..errors import ValidationError
from ..models import MiB, UploadErrorKind, UploadSource

DEFAULT_MAX_UPLOAD_BYTES = 10 * MiB

# Checked in order; the first bucket with a matching fragment wins
_ERROR_PATTERNS = (
    (UploadErrorKind.TOO_LARGE, ("too large", "size", "413")),
    (UploadErrorKind.NETWORK, ("network",)),
    (UploadErrorKind.FORBIDDEN, ("forbidden", "403", "unauthorized", "401")),
    (UploadErrorKind.DUPLICATE, ("duplicate", "already exists", "409")),
    (UploadErrorKind.INVALID_TYPE, ("type", "unsupported", "415")),
)


class ValidateUploadUseCase:
    """Reject empty and oversized payloads before any request is made."""

    def __init__(self, max_bytes: int = DEFAULT_MAX_UPLOAD_BYTES):
        self._max_bytes = max_bytes

    def execute(self, source: UploadSource) -> None:
        if source.size <= 0:
            raise ValidationError(f"{source.name} is empty")
        if source.size > self._max_bytes:
            raise ValidationError(
                f"{source.name} is too large ({source.size} bytes, limit {self._max_bytes} bytes)"
            )


def classify_upload_error(message: str) -> UploadErrorKind:
    """Bucket an upload failure message for per-task display."""
    text = (message or "").lower()
    for kind, fragments in _ERROR_PATTERNS:
        if any(fragment in text for fragment in fragments):
            return kind
    return UploadErrorKind.UNKNOWN
