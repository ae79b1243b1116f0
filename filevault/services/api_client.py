"""HTTP adapter for filevault API operations."""
from __future__ import annotations

import logging
import math
import uuid
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Dict, Optional

import httpx

from ..errors import ApiError, MalformedResponseError, NetworkError
from ..models import RateLimitAdvisory
from ..protocols import ICredentialStore, IRateLimitNotifier

logger = logging.getLogger(__name__)

CLIENT_REQUEST_ID_HEADER = "X-Client-Request-Id"
SERVER_REQUEST_ID_HEADER = "X-Request-ID"
DEFAULT_RETRY_AFTER = 30


def parse_retry_after(
    value: Optional[str],
    default: int = DEFAULT_RETRY_AFTER,
    now: Optional[datetime] = None,
) -> int:
    """
    Resolve a Retry-After header to whole seconds.

    Servers send either delta-seconds ("30") or an HTTP date
    ("Wed, 21 Oct 2026 07:28:00 GMT"). Anything else yields ``default``.
    """
    if not value or not value.strip():
        return default
    value = value.strip()

    try:
        seconds = float(value)
    except ValueError:
        seconds = None
    if seconds is not None and math.isfinite(seconds):
        return max(0, math.ceil(seconds))

    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError, IndexError):
        return default
    if when is None:
        return default
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)

    now = now or datetime.now(timezone.utc)
    return max(0, math.ceil((when - now).total_seconds()))


class HTTPAPIClient:
    """
    HTTP client adapter for API calls.

    Implements IRequestClient. Every request gets its own correlation id
    and the held bearer credential; every non-2xx response becomes an
    ApiError. Nothing is retried here: 429 publishes an advisory and 401
    expires the credential, then the error is raised to the caller.

    Usage:
        async with HTTPAPIClient(api_url, credentials, notifier) as api:
            files = await api.execute("/api/v1/files", params={"page": 0})
    """

    def __init__(
        self,
        base_url: str,
        credentials: Optional[ICredentialStore] = None,
        notifier: Optional[IRateLimitNotifier] = None,
        timeout: float = 60,
        default_retry_after: int = DEFAULT_RETRY_AFTER,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._base_url = base_url
        self._timeout = timeout
        self._credentials = credentials
        self._notifier = notifier
        self._default_retry_after = default_retry_after
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self):
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            timeout=self._timeout,
            transport=self._transport,
        )
        return self

    async def __aexit__(self, *args):
        if self._client:
            await self._client.aclose()
            self._client = None

    @property
    def credentials(self) -> Optional[ICredentialStore]:
        return self._credentials

    def _require_client(self) -> httpx.AsyncClient:
        if not self._client:
            raise RuntimeError("HTTPAPIClient not initialized. Use 'async with' context.")
        return self._client

    # ------------------------------------------------------------------
    # Request stages
    # ------------------------------------------------------------------

    def build(
        self,
        method: str,
        endpoint: str,
        body: Any = None,
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, Any]] = None,
        files: Any = None,
    ) -> httpx.Request:
        """Build a request carrying a fresh client correlation id."""
        client = self._require_client()
        merged: Dict[str, str] = {}
        if body is not None:
            merged["Content-Type"] = "application/json"
        merged.update(headers or {})
        merged[CLIENT_REQUEST_ID_HEADER] = str(uuid.uuid4())

        return client.build_request(
            method,
            endpoint,
            json=body,
            params=params,
            headers=merged,
            files=files,
        )

    def authorize(self, request: httpx.Request) -> httpx.Request:
        """Attach the bearer credential, if one is held."""
        token = self._credentials.token if self._credentials else None
        if token:
            request.headers["Authorization"] = f"Bearer {token}"
        return request

    async def send(self, request: httpx.Request, check: bool = True) -> httpx.Response:
        """
        Send a built request.

        With ``check`` the response must be 2xx or the classified ApiError
        is raised; without it the caller inspects the status itself and
        should pass failures to handle_failure().
        """
        client = self._require_client()
        request_id = request.headers.get(CLIENT_REQUEST_ID_HEADER)
        logger.debug("%s %s [%s]", request.method, request.url.path, request_id)

        try:
            response = await client.send(request)
        except httpx.TransportError as exc:
            logger.warning("%s %s [%s] failed: %s", request.method, request.url.path, request_id, exc)
            raise NetworkError(f"Network error: {exc}") from exc

        if check and not response.is_success:
            raise await self.handle_failure(response)
        return response

    async def handle_failure(self, response: httpx.Response) -> ApiError:
        """
        Run the 401/429 side effects for a failed response and return its error.

        The credential is cleared before the error reaches the caller, so
        whatever reacts to the error already sees a logged-out client.
        """
        if response.status_code == 401 and self._credentials is not None:
            self._credentials.expire()

        error = self._parse_error(response)
        logger.warning(
            "%s %s -> %s [client=%s server=%s]: %s",
            response.request.method,
            response.request.url.path,
            error.status,
            response.request.headers.get(CLIENT_REQUEST_ID_HEADER),
            error.request_id,
            error.message,
        )

        if response.status_code == 429 and self._notifier is not None:
            await self._notifier.notify(
                RateLimitAdvisory(retry_after=error.retry_after, request_id=error.request_id)
            )
        return error

    def _parse_error(self, response: httpx.Response) -> ApiError:
        content_type = response.headers.get("content-type", "")
        server_request_id = response.headers.get(SERVER_REQUEST_ID_HEADER)
        retry_after = None
        if response.status_code == 429:
            retry_after = parse_retry_after(
                response.headers.get("Retry-After"), self._default_retry_after
            )

        if "application/json" in content_type:
            try:
                body = response.json()
            except ValueError:
                body = None  # malformed JSON, use raw text below
            if isinstance(body, dict):
                return ApiError(
                    response.status_code,
                    body.get("message") or "An error occurred",
                    path=body.get("path"),
                    timestamp=body.get("timestamp"),
                    request_id=server_request_id,
                    retry_after=retry_after,
                )

        return ApiError(
            response.status_code,
            response.text or response.reason_phrase,
            path=response.request.url.path,
            request_id=server_request_id,
            retry_after=retry_after,
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def request(
        self,
        endpoint: str,
        method: str = "GET",
        body: Any = None,
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> httpx.Response:
        """Build, authorize and send; returns the raw 2xx response."""
        request = self.build(method, endpoint, body=body, headers=headers, params=params)
        self.authorize(request)
        return await self.send(request)

    async def execute(
        self,
        endpoint: str,
        method: str = "GET",
        body: Any = None,
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """
        Perform a request and decode its body.

        Returns None for 204 or an empty body, ``{"message": text}`` for a
        non-JSON body and the decoded JSON otherwise.
        """
        response = await self.request(endpoint, method, body=body, headers=headers, params=params)
        return self._decode(response, endpoint)

    @staticmethod
    def _decode(response: httpx.Response, endpoint: str) -> Any:
        if response.status_code == 204:
            return None

        content_type = response.headers.get("content-type", "")
        if "application/json" not in content_type:
            return {"message": response.text or "Success"}

        text = response.text
        if not text or not text.strip():
            return None

        try:
            return response.json()
        except ValueError as exc:
            raise MalformedResponseError(response.status_code, path=endpoint) from exc

    async def get(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> Any:
        return await self.execute(endpoint, "GET", params=params)

    async def post(self, endpoint: str, json: Any = None) -> Any:
        return await self.execute(endpoint, "POST", body=json)

    async def put(self, endpoint: str, json: Any = None) -> Any:
        return await self.execute(endpoint, "PUT", body=json)

    async def delete(self, endpoint: str) -> Any:
        return await self.execute(endpoint, "DELETE")

    async def head(self, endpoint: str) -> httpx.Response:
        return await self.request(endpoint, "HEAD")
