"""
File Repository - Single Responsibility: read and delete file metadata via the API.

Implements Repository Pattern over the metadata service. Sorting and
filtering of a listing are not done here.
"""
import logging
from typing import List

from ..errors import ValidationError
from ..models import FilePage, FileReference
from ..protocols import IRequestClient

logger = logging.getLogger(__name__)

FILES_ENDPOINT = "/api/v1/files"
MAX_PAGE_SIZE = 1000


class FileRepository:
    """
    Repository for file metadata.

    Implements IFileRepository.
    """

    def __init__(self, api_client: IRequestClient):
        """
        Initialize repository.

        Args:
            api_client: Request client for API calls
        """
        self._api = api_client

    async def list_files(self, page: int = 0, size: int = 20) -> FilePage:
        """
        Fetch one offset/limit page of the user's files.

        Args:
            page: Zero-based page number
            size: Page size
        """
        if page < 0:
            raise ValidationError("page must be >= 0")
        if not 0 < size <= MAX_PAGE_SIZE:
            raise ValidationError(f"size must be in 1..{MAX_PAGE_SIZE}")
        data = await self._api.execute(FILES_ENDPOINT, "GET", params={"page": page, "size": size})
        return FilePage.from_api(data or {})

    async def snapshot(self, limit: int) -> List[FileReference]:
        """
        First ``limit`` files, read once for duplicate-name detection.

        Files past the snapshot are not seen, so a collision with them
        goes undetected.
        """
        page = await self.list_files(0, min(limit, MAX_PAGE_SIZE))
        return page.files

    async def delete_file(self, file_id: int) -> None:
        await self._api.execute(f"{FILES_ENDPOINT}/{file_id}", "DELETE")
        logger.info("Deleted file %s", file_id)
