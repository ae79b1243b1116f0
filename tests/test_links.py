"""Tests for link resolution and unauthenticated blob fetches."""
import asyncio

import httpx
import pytest

from conftest import make_api

from filevault.errors import MalformedResponseError, NetworkError
from filevault.services.api_client import CLIENT_REQUEST_ID_HEADER
from filevault.services.links import CHUNK_SIZE, LinkResolver

BLOB_URL = "https://blobs.example.com/bucket/report.pdf?X-Sig=abc"


@pytest.mark.asyncio
async def test_download_and_preview_use_their_endpoints(credentials):
    paths = []

    def handler(request):
        paths.append(request.url.path)
        return httpx.Response(200, json={"downloadUrl": BLOB_URL})

    async with make_api(handler, credentials=credentials) as api:
        links = LinkResolver(api)
        assert await links.resolve_download_link(5) == BLOB_URL
        assert await links.resolve_preview_link(5) == BLOB_URL

    assert paths == ["/api/v1/files/download/5/redirect", "/api/v1/files/view/5/redirect"]


@pytest.mark.asyncio
async def test_links_are_never_cached():
    calls = []

    def handler(request):
        calls.append(request.url.path)
        return httpx.Response(200, json={"downloadUrl": f"{BLOB_URL}&n={len(calls)}"})

    async with make_api(handler) as api:
        links = LinkResolver(api)
        first = await links.resolve_download_link(5)
        second = await links.resolve_download_link(5)

    assert len(calls) == 2
    assert first != second


@pytest.mark.asyncio
async def test_missing_url_is_malformed():
    async with make_api(lambda request: httpx.Response(200, json={})) as api:
        with pytest.raises(MalformedResponseError):
            await LinkResolver(api).resolve_download_link(5)


@pytest.mark.asyncio
async def test_fetch_sends_no_credentials(tmp_path):
    seen = {}

    def blob_handler(request):
        seen["auth"] = request.headers.get("Authorization")
        seen["request_id"] = request.headers.get(CLIENT_REQUEST_ID_HEADER)
        seen["url"] = str(request.url)
        return httpx.Response(200, content=b"%PDF-1.7 data", headers={"Content-Length": "13"})

    resolver = LinkResolver(api_client=None, transport=httpx.MockTransport(blob_handler))
    ticks = []
    dest = await resolver.fetch(BLOB_URL, tmp_path / "report.pdf", ticks.append)

    assert dest.read_bytes() == b"%PDF-1.7 data"
    assert seen["auth"] is None
    assert seen["request_id"] is None
    assert seen["url"] == BLOB_URL
    assert ticks[-1].bytes_sent == 13
    assert ticks[-1].percent == 100.0


@pytest.mark.asyncio
async def test_fetch_expired_link_cleans_up(tmp_path):
    resolver = LinkResolver(
        api_client=None,
        transport=httpx.MockTransport(lambda request: httpx.Response(403, text="Request has expired")),
    )
    dest = tmp_path / "report.pdf"

    with pytest.raises(NetworkError, match="403"):
        await resolver.fetch(BLOB_URL, dest)

    assert not dest.exists()


@pytest.mark.asyncio
@pytest.mark.parametrize("error", [OSError("disk full"), asyncio.CancelledError()])
async def test_fetch_interrupted_write_cleans_up(tmp_path, error):
    resolver = LinkResolver(
        api_client=None,
        transport=httpx.MockTransport(lambda request: httpx.Response(200, content=b"x" * (CHUNK_SIZE * 2))),
    )
    dest = tmp_path / "report.pdf"

    def interrupt(progress):
        raise error

    with pytest.raises(type(error)):
        await resolver.fetch(BLOB_URL, dest, interrupt)

    assert not dest.exists()


@pytest.mark.asyncio
async def test_download_resolves_then_fetches(credentials, tmp_path):
    def api_handler(request):
        return httpx.Response(200, json={"downloadUrl": BLOB_URL})

    def blob_handler(request):
        return httpx.Response(200, content=b"bytes")

    async with make_api(api_handler, credentials=credentials) as api:
        resolver = LinkResolver(api, transport=httpx.MockTransport(blob_handler))
        dest = await resolver.download(5, tmp_path / "out.pdf")

    assert dest.read_bytes() == b"bytes"
