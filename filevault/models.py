"""
Models for filevault.

Immutable dataclasses for everything that crosses a service boundary.
The only mutable record (UploadTask) lives in orchestrator.models.
"""
import io
import mimetypes
import os
import time
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import Optional, Dict, Any, List


MiB = 1024 * 1024


class UploadState(Enum):
    """Upload task state. Everything except UPLOADING is terminal."""
    UPLOADING = "uploading"
    SUCCESS = "success"
    ERROR = "error"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self is not UploadState.UPLOADING


class UploadErrorKind(Enum):
    """Upload failure buckets used for per-task messaging."""
    TOO_LARGE = "too_large"
    NETWORK = "network"
    FORBIDDEN = "forbidden"
    DUPLICATE = "duplicate"
    INVALID_TYPE = "invalid_type"
    UNKNOWN = "unknown"


class DuplicateAction(Enum):
    """What to do when the upload name is already taken."""
    REPLACE = "replace"
    KEEP_BOTH = "keep_both"
    CANCEL = "cancel"


@dataclass(frozen=True)
class DuplicateDecision:
    """Pending choice between detection and resolution of one submission."""
    conflicting_file_name: str
    existing_file_id: int
    chosen_action: Optional[DuplicateAction] = None

    def choose(self, action: DuplicateAction) -> "DuplicateDecision":
        return replace(self, chosen_action=action)


@dataclass(frozen=True)
class UploadSource:
    """
    File payload to upload.

    Either ``path`` or ``data`` is set. ``size`` is taken from the payload
    when the source is built through the classmethods.
    """
    name: str
    size: int
    media_type: str = "application/octet-stream"
    path: Optional[Path] = None
    data: Optional[bytes] = None

    @classmethod
    def from_path(cls, path: Path, name: Optional[str] = None) -> "UploadSource":
        path = Path(path)
        guessed, _ = mimetypes.guess_type(path.name)
        return cls(
            name=name or path.name,
            size=path.stat().st_size,
            media_type=guessed or "application/octet-stream",
            path=path,
        )

    @classmethod
    def from_bytes(cls, name: str, data: bytes, media_type: Optional[str] = None) -> "UploadSource":
        if media_type is None:
            guessed, _ = mimetypes.guess_type(name)
            media_type = guessed or "application/octet-stream"
        return cls(name=name, size=len(data), media_type=media_type, data=data)

    def renamed(self, name: str) -> "UploadSource":
        """Same payload under another file name."""
        return replace(self, name=name)

    def open(self):
        """Open the payload for binary reading."""
        if self.data is not None:
            return io.BytesIO(self.data)
        if self.path is None:
            raise ValueError(f"Upload source {self.name!r} has no payload")
        return open(self.path, "rb")


@dataclass(frozen=True)
class UploadProgress:
    """One transfer-progress tick."""
    bytes_sent: int
    total_bytes: Optional[int] = None

    @property
    def percent(self) -> Optional[float]:
        if not self.total_bytes:
            return None
        return min(100.0, self.bytes_sent / self.total_bytes * 100)


@dataclass(frozen=True)
class FileReference:
    """File metadata as returned by the API. Read-only to this client."""
    id: int
    display_name: str
    size_bytes: int
    media_type: str
    created_at: Optional[str] = None

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "FileReference":
        return cls(
            id=data["id"],
            display_name=data.get("originalFilename") or data.get("filename") or "",
            size_bytes=int(data.get("size") or 0),
            media_type=data.get("contentType") or "application/octet-stream",
            created_at=data.get("uploadTimestamp"),
        )


@dataclass(frozen=True)
class FilePage:
    """One offset/limit page of the file listing."""
    files: List[FileReference]
    current_page: int = 0
    total_pages: int = 0
    total_elements: int = 0
    has_next: bool = False
    has_previous: bool = False

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "FilePage":
        return cls(
            files=[FileReference.from_api(item) for item in data.get("files") or []],
            current_page=int(data.get("currentPage") or 0),
            total_pages=int(data.get("totalPages") or 0),
            total_elements=int(data.get("totalElements") or 0),
            has_next=bool(data.get("hasNext")),
            has_previous=bool(data.get("hasPrevious")),
        )


@dataclass(frozen=True)
class SearchCursor:
    """Keyset position: relevance rank plus tie-breaking id of the last result."""
    rank: float
    id: int

    def __post_init__(self):
        if self.rank is None or self.id is None:
            raise ValueError("SearchCursor needs both rank and id")


@dataclass(frozen=True)
class SearchResult:
    """Single ranked hit. ``snippet`` is already sanitized."""
    file_id: int
    filename: str
    media_type: str
    size_bytes: int
    snippet: str
    rank: float
    uploaded_at: Optional[str] = None
    ocr_confidence: Optional[float] = None


@dataclass(frozen=True)
class SearchPage:
    """One page of search results."""
    results: List[SearchResult]
    next_cursor: Optional[SearchCursor] = None
    has_more: bool = False
    count: int = 0

    @classmethod
    def empty(cls) -> "SearchPage":
        return cls(results=[], next_cursor=None, has_more=False, count=0)


@dataclass(frozen=True)
class TextAvailability:
    """Result of the extracted-text existence probe."""
    has_text: bool
    text_length: int = 0
    etag: Optional[str] = None


@dataclass(frozen=True)
class FileText:
    """Extracted text of a file."""
    file_id: int
    filename: str
    text: str
    ocr_confidence: Optional[float] = None
    model_version: Optional[str] = None


@dataclass(frozen=True)
class RateLimitAdvisory:
    """Advisory published on HTTP 429. Nothing is retried automatically."""
    retry_after: int
    issued_at: float = field(default_factory=time.monotonic)
    request_id: Optional[str] = None

    def remaining(self, now: Optional[float] = None) -> int:
        """Seconds left before the caller should retry."""
        now = time.monotonic() if now is None else now
        return max(0, int(round(self.retry_after - (now - self.issued_at))))


@dataclass(frozen=True)
class ClientConfig:
    """Immutable client configuration."""
    api_url: str = "http://localhost:8080"
    timeout: float = 60.0
    max_upload_bytes: int = 10 * MiB
    sweep_interval: float = 5.0
    task_ttl: float = 30.0
    duplicate_scan_size: int = 1000
    max_rename_attempts: int = 100
    default_retry_after: int = 30
    search_page_size: int = 20
    credentials_path: Optional[Path] = None

    @classmethod
    def from_env(cls, **overrides) -> "ClientConfig":
        """Build config from FILEVAULT_* environment variables."""
        values: Dict[str, Any] = {}
        api_url = os.getenv("FILEVAULT_API_URL")
        if api_url:
            values["api_url"] = api_url.rstrip("/")
        timeout = os.getenv("FILEVAULT_TIMEOUT")
        if timeout:
            values["timeout"] = float(timeout)
        credentials = os.getenv("FILEVAULT_CREDENTIALS")
        if credentials:
            values["credentials_path"] = Path(credentials).expanduser()
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)
