"""
Link Resolver - turn a file id into a short-lived direct blob-store URL.

Two steps: an authenticated GET to the API returns a presigned URL, then the
bytes are fetched from that URL with no credential attached. Resolved links
are never cached; each use resolves again.
"""
import logging
from pathlib import Path
from typing import Callable, Optional

import httpx

from ..errors import MalformedResponseError, NetworkError
from ..models import UploadProgress
from ..protocols import IRequestClient

logger = logging.getLogger(__name__)

DOWNLOAD_REDIRECT = "/api/v1/files/download/{file_id}/redirect"
VIEW_REDIRECT = "/api/v1/files/view/{file_id}/redirect"
CHUNK_SIZE = 64 * 1024


class LinkResolver:
    """Resolves download and inline-preview links."""

    def __init__(
        self,
        api_client: IRequestClient,
        timeout: float = 60,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._api = api_client
        self._timeout = timeout
        self._transport = transport

    async def resolve_download_link(self, file_id: int) -> str:
        """Presigned URL served as an attachment."""
        return await self._resolve(DOWNLOAD_REDIRECT.format(file_id=file_id))

    async def resolve_preview_link(self, file_id: int) -> str:
        """Presigned URL served inline, for previews."""
        return await self._resolve(VIEW_REDIRECT.format(file_id=file_id))

    async def _resolve(self, endpoint: str) -> str:
        data = await self._api.execute(endpoint, "GET")
        url = data.get("downloadUrl") if isinstance(data, dict) else None
        if not url:
            raise MalformedResponseError(200, "No presigned URL received", path=endpoint)
        return url

    async def fetch(
        self,
        url: str,
        dest: Path,
        progress_callback: Optional[Callable[[UploadProgress], None]] = None,
    ) -> Path:
        """
        Stream a presigned URL to ``dest``.

        Uses a bare client: no bearer token and no API headers reach the
        blob store. The URL signature is the only authorization.
        """
        dest = Path(dest)
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout, follow_redirects=True, transport=self._transport
            ) as client:
                async with client.stream("GET", url) as response:
                    response.raise_for_status()
                    length = response.headers.get("Content-Length")
                    total = int(length) if length else None
                    received = 0
                    with open(dest, "wb") as f:
                        async for chunk in response.aiter_bytes(CHUNK_SIZE):
                            f.write(chunk)
                            received += len(chunk)
                            if progress_callback:
                                progress_callback(UploadProgress(bytes_sent=received, total_bytes=total))
        except httpx.HTTPStatusError as exc:
            dest.unlink(missing_ok=True)
            raise NetworkError(
                f"Blob store returned {exc.response.status_code}; the link may have expired"
            ) from exc
        except httpx.TransportError as exc:
            dest.unlink(missing_ok=True)
            raise NetworkError(f"Network error: {exc}") from exc
        except BaseException:
            # Write errors and cancellation must not leave a truncated file.
            dest.unlink(missing_ok=True)
            raise

        logger.info("Fetched %d bytes to %s", received, dest)
        return dest

    async def download(
        self,
        file_id: int,
        dest: Path,
        progress_callback: Optional[Callable[[UploadProgress], None]] = None,
    ) -> Path:
        """Resolve a fresh download link and fetch it."""
        url = await self.resolve_download_link(file_id)
        return await self.fetch(url, dest, progress_callback)
