"""Services for filevault module."""
from .api_client import HTTPAPIClient, parse_retry_after
from .credentials import CredentialStore
from .files import FileRepository
from .links import LinkResolver
from .search import SearchPager, SearchService
from .transfer import CancelToken, TransferEngine, UploadHandle

__all__ = [
    "HTTPAPIClient",
    "parse_retry_after",
    "CredentialStore",
    "FileRepository",
    "LinkResolver",
    "SearchPager",
    "SearchService",
    "CancelToken",
    "TransferEngine",
    "UploadHandle",
]
