"""
Transfer Engine - Single Responsibility: stream one file to the upload endpoint.

Wraps the request client with chunk-level progress and cooperative
cancellation. Knows nothing about task lists or duplicate names.
"""
import asyncio
import inspect
import logging
from typing import AsyncIterator, Optional

import httpx

from ..errors import (
    MalformedResponseError,
    NetworkError,
    TransferCancelledError,
    UploadFailedError,
    UploadNetworkError,
    ValidationError,
)
from ..models import FileReference, UploadProgress, UploadSource
from ..protocols import ProgressCallback
from .api_client import HTTPAPIClient

logger = logging.getLogger(__name__)

UPLOAD_ENDPOINT = "/api/v1/files/upload"


class CancelToken:
    """Cancellation flag checked between chunks."""

    def __init__(self):
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise TransferCancelledError()


async def _report(callback: Optional[ProgressCallback], progress: UploadProgress) -> None:
    if callback is None:
        return
    try:
        result = callback(progress)
        if inspect.isawaitable(result):
            await result
    except Exception as e:
        logger.error(f"Error in upload progress callback: {e}")


class ProgressStream(httpx.AsyncByteStream):
    """Request body wrapper that reports bytes sent after every chunk."""

    def __init__(
        self,
        stream,
        total: Optional[int],
        on_progress: Optional[ProgressCallback],
        token: CancelToken,
    ):
        self._stream = stream
        self._total = total
        self._on_progress = on_progress
        self._token = token

    async def __aiter__(self) -> AsyncIterator[bytes]:
        sent = 0
        async for chunk in self._stream:
            self._token.raise_if_cancelled()
            yield chunk
            sent += len(chunk)
            await _report(self._on_progress, UploadProgress(bytes_sent=sent, total_bytes=self._total))

    async def aclose(self) -> None:
        close = getattr(self._stream, "aclose", None)
        if close is not None:
            await close()


class UploadHandle:
    """In-flight upload: await result() or call cancel()."""

    def __init__(self, task: "asyncio.Task[FileReference]", token: CancelToken):
        self._task = task
        self._token = token

    @property
    def done(self) -> bool:
        return self._task.done()

    @property
    def cancelled(self) -> bool:
        return self._token.cancelled

    def cancel(self) -> None:
        """Abort the transfer. result() then raises TransferCancelledError."""
        if self._token.cancelled:
            return
        self._token.cancel()
        self._task.cancel()

    async def result(self) -> FileReference:
        try:
            return await self._task
        except asyncio.CancelledError:
            if self._token.cancelled:
                raise TransferCancelledError() from None
            raise


def _failure_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        return body.get("message") or "Upload failed"
    return f"Upload failed: {response.status_code} {response.reason_phrase}"


class TransferEngine:
    """
    Starts single streamed multipart uploads.

    Usage:
        engine = TransferEngine(api_client)
        handle = engine.begin_upload(UploadSource.from_path(path), on_progress=print)
        file_ref = await handle.result()
    """

    def __init__(self, api_client: HTTPAPIClient, endpoint: str = UPLOAD_ENDPOINT):
        self._api = api_client
        self._endpoint = endpoint

    def begin_upload(
        self,
        source: UploadSource,
        on_progress: Optional[ProgressCallback] = None,
    ) -> UploadHandle:
        """Schedule the upload on the running loop and return its handle."""
        token = CancelToken()
        task = asyncio.create_task(self._upload(source, on_progress, token))
        return UploadHandle(task, token)

    async def _upload(
        self,
        source: UploadSource,
        on_progress: Optional[ProgressCallback],
        token: CancelToken,
    ) -> FileReference:
        logger.info("Uploading %s (%d bytes)", source.name, source.size)

        try:
            payload = source.open()
        except OSError as exc:
            raise ValidationError(f"Cannot read {source.name}: {exc.strerror or exc}") from exc

        with payload:
            request = self._api.build(
                "POST",
                self._endpoint,
                files={"file": (source.name, payload, source.media_type)},
            )
            # Headers go on after the request is built and before the body streams.
            self._api.authorize(request)

            length = request.headers.get("Content-Length")
            total = int(length) if length else None
            request.stream = ProgressStream(request.stream, total, on_progress, token)

            token.raise_if_cancelled()
            try:
                response = await self._api.send(request, check=False)
            except NetworkError as exc:
                raise UploadNetworkError() from exc

        # The server may have stored the file already; a cancel still wins.
        token.raise_if_cancelled()

        if not response.is_success:
            error = await self._api.handle_failure(response)
            raise UploadFailedError(
                response.status_code,
                _failure_message(response),
                path=self._endpoint,
                request_id=error.request_id,
                retry_after=error.retry_after,
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise MalformedResponseError(response.status_code, path=self._endpoint) from exc
        if not isinstance(data, dict) or "id" not in data:
            raise MalformedResponseError(
                response.status_code, "Upload response has no file id", path=self._endpoint
            )

        file_ref = FileReference.from_api(data)
        logger.info("Uploaded %s -> file %s", source.name, file_ref.id)
        return file_ref
