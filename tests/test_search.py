"""Tests for search retrieval and cursor paging."""
from unittest.mock import AsyncMock, Mock

import httpx
import pytest

from conftest import make_api

from filevault.errors import ValidationError
from filevault.models import SearchCursor, SearchPage
from filevault.services.search import SEARCH_ENDPOINT, SearchPager, SearchService


def _result(file_id, snippet="a <mark>hit</mark>", rank=0.5):
    return {
        "fileId": file_id,
        "filename": f"doc{file_id}.pdf",
        "contentType": "application/pdf",
        "size": 1024,
        "uploadedAt": "2026-10-01T12:00:00Z",
        "snippet": snippet,
        "ocrConfidence": 0.93,
        "rank": rank,
    }


def _page(results, has_more=False, next_rank=None, next_id=None):
    return {
        "results": results,
        "nextRank": next_rank,
        "nextId": next_id,
        "hasMore": has_more,
        "count": len(results),
    }


def _api(*pages):
    api = Mock()
    api.execute = AsyncMock(side_effect=list(pages))
    return api


class TestSearch:
    @pytest.mark.asyncio
    async def test_blank_query_makes_no_request(self):
        api = _api()

        page = await SearchService(api).search("   ")

        assert page == SearchPage.empty()
        api.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_first_page_has_no_cursor_params(self):
        api = _api(_page([_result(1)]))

        await SearchService(api).search("  invoice ")

        api.execute.assert_awaited_once_with(SEARCH_ENDPOINT, "GET", params={"q": "invoice", "limit": 20})

    @pytest.mark.asyncio
    async def test_next_page_sends_both_cursor_params(self):
        api = _api(_page([_result(1)], has_more=True, next_rank=0.5, next_id=42), _page([_result(2)]))
        service = SearchService(api)

        first = await service.search("invoice")
        await service.search("invoice", cursor=first.next_cursor)

        assert first.next_cursor == SearchCursor(rank=0.5, id=42)
        api.execute.assert_awaited_with(
            SEARCH_ENDPOINT,
            "GET",
            params={"q": "invoice", "limit": 20, "lastRank": 0.5, "lastId": 42},
        )

    @pytest.mark.asyncio
    async def test_last_page_has_no_cursor(self):
        api = _api(_page([_result(1)], has_more=False, next_rank=0.1, next_id=3))

        page = await SearchService(api).search("invoice")

        assert page.has_more is False
        assert page.next_cursor is None

    @pytest.mark.asyncio
    async def test_has_more_without_cursor_is_downgraded(self):
        api = _api(_page([_result(1)], has_more=True, next_rank=0.4, next_id=None))

        page = await SearchService(api).search("invoice")

        assert page.has_more is False
        assert page.next_cursor is None

    @pytest.mark.asyncio
    async def test_results_are_parsed_and_sanitized(self):
        snippet = '<b>total</b> <mark class="x">due</mark><script>alert(1)</script>'
        api = _api(_page([_result(7, snippet=snippet, rank=0.25)]))

        page = await SearchService(api).search("due")

        result = page.results[0]
        assert result.file_id == 7
        assert result.filename == "doc7.pdf"
        assert result.size_bytes == 1024
        assert result.rank == 0.25
        assert result.ocr_confidence == pytest.approx(0.93)
        assert result.snippet == "total <mark>due</mark>"
        assert page.count == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("size", [0, 101])
    async def test_page_size_bounds(self, size):
        api = _api()

        with pytest.raises(ValidationError):
            await SearchService(api).search("invoice", page_size=size)

        api.execute.assert_not_awaited()

    def test_half_cursor_is_rejected(self):
        with pytest.raises(ValueError):
            SearchCursor(rank=None, id=1)
        with pytest.raises(ValueError):
            SearchCursor(rank=0.5, id=None)


class TestFileText:
    @pytest.mark.asyncio
    async def test_has_text_reads_headers(self):
        def handler(request):
            assert request.method == "HEAD"
            assert request.url.path == "/api/v1/search/files/9/text"
            return httpx.Response(
                204,
                headers={"X-Has-Text": "true", "X-Text-Length": "512", "ETag": '"abc"'},
            )

        async with make_api(handler) as api:
            availability = await SearchService(api).has_text(9)

        assert availability.has_text is True
        assert availability.text_length == 512
        assert availability.etag == '"abc"'

    @pytest.mark.asyncio
    async def test_has_text_false(self):
        async with make_api(lambda request: httpx.Response(204, headers={"X-Has-Text": "false"})) as api:
            availability = await SearchService(api).has_text(9)

        assert availability.has_text is False
        assert availability.text_length == 0

    @pytest.mark.asyncio
    async def test_get_file_text(self):
        api = _api(
            {
                "fileId": 9,
                "filename": "scan.png",
                "text": "Invoice 2026",
                "ocrConfidence": 0.8,
                "modelVersion": "tess-5",
            }
        )

        file_text = await SearchService(api).get_file_text(9)

        assert file_text.text == "Invoice 2026"
        assert file_text.model_version == "tess-5"
        api.execute.assert_awaited_once_with("/api/v1/search/files/9/text", "GET")


class TestSearchPager:
    @pytest.mark.asyncio
    async def test_forward_and_back(self):
        api = _api(
            _page([_result(1)], has_more=True, next_rank=0.9, next_id=1),
            _page([_result(2)], has_more=True, next_rank=0.8, next_id=2),
            _page([_result(3)]),
            _page([_result(2)], has_more=True, next_rank=0.8, next_id=2),
        )
        pager = SearchPager(SearchService(api), page_size=1)

        await pager.search("invoice")
        assert pager.page_number == 1
        assert not pager.has_previous

        await pager.next_page()
        await pager.next_page()
        assert pager.page_number == 3
        assert not pager.has_next

        page = await pager.previous_page()
        assert pager.page_number == 2
        assert page.results[0].file_id == 2
        params = api.execute.await_args.kwargs["params"]
        assert params["lastRank"] == 0.9
        assert params["lastId"] == 1

    @pytest.mark.asyncio
    async def test_query_change_resets_stack(self):
        api = _api(
            _page([_result(1)], has_more=True, next_rank=0.9, next_id=1),
            _page([_result(2)]),
            _page([_result(3)]),
        )
        pager = SearchPager(SearchService(api), page_size=1)

        await pager.search("invoice")
        await pager.next_page()
        await pager.search("receipt")

        assert pager.page_number == 1
        assert pager.query == "receipt"
        params = api.execute.await_args.kwargs["params"]
        assert "lastRank" not in params

    @pytest.mark.asyncio
    async def test_page_size_change_resets_stack(self):
        api = _api(
            _page([_result(1)], has_more=True, next_rank=0.9, next_id=1),
            _page([_result(1), _result(2)]),
        )
        pager = SearchPager(SearchService(api), page_size=1)

        await pager.search("invoice")
        await pager.search("invoice", page_size=2)

        assert pager.page_number == 1
        assert pager.page_size == 2
        assert api.execute.await_args.kwargs["params"]["limit"] == 2

    @pytest.mark.asyncio
    async def test_no_next_page(self):
        pager = SearchPager(SearchService(_api(_page([_result(1)]))))
        await pager.search("invoice")

        with pytest.raises(ValidationError):
            await pager.next_page()
        with pytest.raises(ValidationError):
            await pager.previous_page()
