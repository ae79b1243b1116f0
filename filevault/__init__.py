"""
Filevault - client-side transfer and retrieval for the filevault API.

Follows SOLID principles:
- Single Responsibility: Each service handles one concern
- Interface Segregation: Small focused interfaces (see protocols)
- Dependency Injection: Services are built once and passed explicitly

Usage:
    from filevault import (
        ClientConfig, CredentialStore, HTTPAPIClient, FileRepository,
        TransferEngine, UploadOrchestrator, UploadSource,
    )

    config = ClientConfig.from_env()
    credentials = CredentialStore(config.credentials_path)
    credentials.load()

    async with HTTPAPIClient(config.api_url, credentials) as api:
        async with UploadOrchestrator(TransferEngine(api), FileRepository(api), config) as uploads:
            task = await uploads.submit(UploadSource.from_path(path), on_duplicate=lambda d: DuplicateAction.KEEP_BOTH)
            await uploads.wait(task.id)

    # Search with keyset pagination
    page = await SearchService(api).search("invoice")
    next_page = await SearchService(api).search("invoice", cursor=page.next_cursor)
"""
from .errors import (
    ApiError,
    DuplicateFileError,
    ErrorKind,
    FileVaultError,
    MalformedResponseError,
    NetworkError,
    TransferCancelledError,
    UploadFailedError,
    UploadNetworkError,
    ValidationError,
)
from .models import (
    ClientConfig,
    DuplicateAction,
    DuplicateDecision,
    FilePage,
    FileReference,
    FileText,
    RateLimitAdvisory,
    SearchCursor,
    SearchPage,
    SearchResult,
    TextAvailability,
    UploadErrorKind,
    UploadProgress,
    UploadSource,
    UploadState,
)
from .orchestrator import UploadOrchestrator, UploadTask
from .services import (
    CredentialStore,
    FileRepository,
    HTTPAPIClient,
    LinkResolver,
    SearchPager,
    SearchService,
    TransferEngine,
)
from .utils.events import EventEmitter, RateLimitNotifier

__version__ = "0.1.0"
__all__ = [
    # Main
    "UploadOrchestrator",
    "UploadTask",
    # Services
    "HTTPAPIClient",
    "CredentialStore",
    "FileRepository",
    "LinkResolver",
    "SearchPager",
    "SearchService",
    "TransferEngine",
    "EventEmitter",
    "RateLimitNotifier",
    # Models
    "ClientConfig",
    "DuplicateAction",
    "DuplicateDecision",
    "FilePage",
    "FileReference",
    "FileText",
    "RateLimitAdvisory",
    "SearchCursor",
    "SearchPage",
    "SearchResult",
    "TextAvailability",
    "UploadErrorKind",
    "UploadProgress",
    "UploadSource",
    "UploadState",
    # Errors
    "ApiError",
    "DuplicateFileError",
    "ErrorKind",
    "FileVaultError",
    "MalformedResponseError",
    "NetworkError",
    "TransferCancelledError",
    "UploadFailedError",
    "UploadNetworkError",
    "ValidationError",
]
