"""
Protocols (Interfaces) for Dependency Inversion.

Small, focused interfaces so every service can be built from fakes in tests.
"""
from typing import Any, Awaitable, Callable, Dict, Optional, Protocol, Union, runtime_checkable

from .models import (
    DuplicateAction,
    DuplicateDecision,
    FilePage,
    FileReference,
    RateLimitAdvisory,
    UploadProgress,
    UploadSource,
)


ProgressCallback = Callable[[UploadProgress], Union[None, Awaitable[None]]]
DuplicateResolver = Callable[[DuplicateDecision], Union[DuplicateAction, Awaitable[DuplicateAction]]]


@runtime_checkable
class ICredentialStore(Protocol):
    """Holds the bearer credential the client attaches."""

    @property
    def token(self) -> Optional[str]:
        ...

    def expire(self) -> bool:
        """Clear the credential after a 401. Returns False if already cleared."""
        ...


@runtime_checkable
class IRateLimitNotifier(Protocol):
    """Receives advisories for 429 responses."""

    async def notify(self, advisory: RateLimitAdvisory) -> None:
        ...


@runtime_checkable
class IRequestClient(Protocol):
    """Interface for API operations."""

    async def execute(
        self,
        endpoint: str,
        method: str = "GET",
        body: Any = None,
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Any:
        ...


@runtime_checkable
class IFileRepository(Protocol):
    """Metadata collaborator: listing and deletion."""

    async def list_files(self, page: int = 0, size: int = 20) -> FilePage:
        ...

    async def snapshot(self, limit: int) -> list:
        ...

    async def delete_file(self, file_id: int) -> None:
        ...


@runtime_checkable
class IUploadHandle(Protocol):
    """In-flight transfer returned by the transfer engine."""

    async def result(self) -> FileReference:
        ...

    def cancel(self) -> None:
        ...


@runtime_checkable
class ITransferEngine(Protocol):
    """Starts single uploads."""

    def begin_upload(
        self,
        source: UploadSource,
        on_progress: Optional[ProgressCallback] = None,
    ) -> IUploadHandle:
        ...
