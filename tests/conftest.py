"""Shared fakes for filevault tests."""
import asyncio
import json

import httpx
import pytest

from filevault.services.api_client import HTTPAPIClient
from filevault.services.credentials import CredentialStore

BASE_URL = "http://filevault.test"


def make_api(handler, credentials=None, notifier=None, **kwargs) -> HTTPAPIClient:
    """HTTPAPIClient wired to an in-process handler. Use with ``async with``."""
    return HTTPAPIClient(
        BASE_URL,
        credentials=credentials,
        notifier=notifier,
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


def file_json(file_id, name, size=3, content_type="application/pdf"):
    return {
        "id": file_id,
        "originalFilename": name,
        "size": size,
        "contentType": content_type,
        "uploadTimestamp": "2026-10-01T12:00:00Z",
    }


def multipart_filename(request: httpx.Request) -> str:
    """Filename of the ``file`` part of a multipart request body."""
    body = request.content.decode("latin-1")
    marker = 'name="file"; filename="'
    start = body.index(marker) + len(marker)
    return body[start:body.index('"', start)]


class FakeHandle:
    """Upload handle the test resolves by hand."""

    def __init__(self):
        self.future = asyncio.get_running_loop().create_future()
        self.cancelled = False

    async def result(self):
        return await self.future

    def cancel(self):
        self.cancelled = True


class FakeTransfer:
    """Transfer engine that records every begin_upload call."""

    def __init__(self):
        self.calls = []

    def begin_upload(self, source, on_progress=None):
        handle = FakeHandle()
        self.calls.append((source, on_progress, handle))
        return handle


@pytest.fixture
def credentials(tmp_path):
    store = CredentialStore(tmp_path / "credentials.json")
    store.login("secret-token", {"name": "alice"})
    return store


def json_response(status, data, headers=None):
    return httpx.Response(
        status,
        content=json.dumps(data).encode(),
        headers={"Content-Type": "application/json", **(headers or {})},
    )
