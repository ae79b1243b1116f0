"""
Search Service - keyset-paginated full-text search over extracted file text.

Cursors are opaque (rank, id) pairs from the previous page. They are only
valid for the exact query and page size that produced them.
"""
import logging
from typing import Any, Dict, List, Optional

from ..errors import ValidationError
from ..models import FileText, SearchCursor, SearchPage, SearchResult, TextAvailability
from ..utils.sanitize import sanitize_snippet
from .api_client import HTTPAPIClient

logger = logging.getLogger(__name__)

SEARCH_ENDPOINT = "/api/v1/search/text/paginated"
FILE_TEXT_ENDPOINT = "/api/v1/search/files/{file_id}/text"
DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


def _parse_result(item: Dict[str, Any]) -> SearchResult:
    confidence = item.get("ocrConfidence")
    return SearchResult(
        file_id=item["fileId"],
        filename=item.get("filename") or "",
        media_type=item.get("contentType") or "application/octet-stream",
        size_bytes=int(item.get("size") or 0),
        snippet=sanitize_snippet(item.get("snippet") or ""),
        rank=float(item.get("rank") or 0.0),
        uploaded_at=item.get("uploadedAt"),
        ocr_confidence=float(confidence) if confidence is not None else None,
    )


def _parse_page(data: Dict[str, Any]) -> SearchPage:
    results = [_parse_result(item) for item in data.get("results") or []]
    has_more = bool(data.get("hasMore"))
    next_rank = data.get("nextRank")
    next_id = data.get("nextId")

    next_cursor = None
    if has_more:
        if next_rank is None or next_id is None:
            logger.warning(
                "Search response has hasMore without a full cursor (nextRank=%r, nextId=%r); "
                "treating as last page",
                next_rank,
                next_id,
            )
            has_more = False
        else:
            next_cursor = SearchCursor(rank=float(next_rank), id=int(next_id))

    return SearchPage(
        results=results,
        next_cursor=next_cursor,
        has_more=has_more,
        count=int(data.get("count") if data.get("count") is not None else len(results)),
    )


class SearchService:
    """
    Full-text search plus extracted-text access.

    Usage:
        search = SearchService(api_client)
        page = await search.search("invoice")
        if page.has_more:
            page2 = await search.search("invoice", cursor=page.next_cursor)
    """

    def __init__(self, api_client: HTTPAPIClient, default_page_size: int = DEFAULT_PAGE_SIZE):
        self._api = api_client
        self._default_page_size = default_page_size

    async def search(
        self,
        query: str,
        cursor: Optional[SearchCursor] = None,
        page_size: Optional[int] = None,
    ) -> SearchPage:
        """
        Fetch one page of ranked results.

        A blank query returns an empty page without a request.
        """
        if page_size is None:
            page_size = self._default_page_size
        if not 1 <= page_size <= MAX_PAGE_SIZE:
            raise ValidationError(f"page_size must be between 1 and {MAX_PAGE_SIZE}")

        query = (query or "").strip()
        if not query:
            return SearchPage.empty()

        params: Dict[str, Any] = {"q": query, "limit": page_size}
        if cursor is not None:
            params["lastRank"] = cursor.rank
            params["lastId"] = cursor.id

        data = await self._api.execute(SEARCH_ENDPOINT, "GET", params=params)
        page = _parse_page(data or {})
        logger.debug("Search %r returned %d results (has_more=%s)", query, len(page.results), page.has_more)
        return page

    async def has_text(self, file_id: int) -> TextAvailability:
        """Probe whether text was extracted for a file, without downloading it."""
        response = await self._api.head(FILE_TEXT_ENDPOINT.format(file_id=file_id))
        has_text = response.headers.get("X-Has-Text", "false").strip().lower() == "true"
        try:
            length = int(response.headers.get("X-Text-Length", "0"))
        except ValueError:
            length = 0
        return TextAvailability(
            has_text=has_text,
            text_length=length,
            etag=response.headers.get("ETag"),
        )

    async def get_file_text(self, file_id: int) -> FileText:
        data = await self._api.execute(FILE_TEXT_ENDPOINT.format(file_id=file_id), "GET")
        if not isinstance(data, dict):
            data = {}
        confidence = data.get("ocrConfidence")
        return FileText(
            file_id=data.get("fileId", file_id),
            filename=data.get("filename") or "",
            text=data.get("text") or "",
            ocr_confidence=float(confidence) if confidence is not None else None,
            model_version=data.get("modelVersion"),
        )


class SearchPager:
    """
    Forward/back navigation over keyset pages.

    Keeps the cursor that produced each visited page. Changing the query or
    the page size drops the stack and starts again from the first page.
    """

    def __init__(self, service: SearchService, page_size: int = DEFAULT_PAGE_SIZE):
        self._service = service
        self._page_size = page_size
        self._query = ""
        self._cursors: List[Optional[SearchCursor]] = []
        self._current: Optional[SearchPage] = None

    @property
    def query(self) -> str:
        return self._query

    @property
    def page_size(self) -> int:
        return self._page_size

    @property
    def page_number(self) -> int:
        """1-based number of the current page, 0 before the first search."""
        return len(self._cursors)

    @property
    def current(self) -> Optional[SearchPage]:
        return self._current

    @property
    def has_next(self) -> bool:
        return bool(self._current and self._current.has_more and self._current.next_cursor)

    @property
    def has_previous(self) -> bool:
        return len(self._cursors) > 1

    def reset(self) -> None:
        self._cursors = []
        self._current = None

    async def search(self, query: str, page_size: Optional[int] = None) -> SearchPage:
        """Start a new search at page 1."""
        query = (query or "").strip()
        if page_size is not None and page_size != self._page_size:
            self._page_size = page_size
            self.reset()
        if query != self._query:
            self._query = query
            self.reset()
        return await self._load(None, restart=True)

    async def next_page(self) -> SearchPage:
        if not self.has_next:
            raise ValidationError("No next page")
        return await self._load(self._current.next_cursor)

    async def previous_page(self) -> SearchPage:
        if not self.has_previous:
            raise ValidationError("No previous page")
        cursor = self._cursors[-2]
        page = await self._service.search(self._query, cursor=cursor, page_size=self._page_size)
        self._cursors.pop()
        self._current = page
        return page

    async def _load(self, cursor: Optional[SearchCursor], restart: bool = False) -> SearchPage:
        page = await self._service.search(self._query, cursor=cursor, page_size=self._page_size)
        if restart:
            self._cursors = []
        self._cursors.append(cursor)
        self._current = page
        return page
