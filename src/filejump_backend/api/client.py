"""FileJump REST API client with bearer-token authentication."""

from __future__ import annotations

import io
import logging
from collections.abc import Iterable, Iterator, Mapping
from typing import TYPE_CHECKING, Any

import httpx

if TYPE_CHECKING:
    from filejump_backend.config import BackendConfig

logger = logging.getLogger(__name__)

DEFAULT_API_BASE_URL = "https://drive.filejump.com/api/v1"
DEFAULT_TIMEOUT = 60.0


class FileJumpApiError(Exception):
    """Raised when the FileJump API returns a non-2xx response."""

    def __init__(
        self,
        status_code: int,
        message: str,
        headers: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(f"FileJump API error {status_code}: {message}")
        self.status_code = status_code
        self.message = message
        self.headers = httpx.Headers(headers or {})


class FileJumpDecodeError(Exception):
    """Raised when a response body is not the JSON object the API promises.

    The API occasionally answers with an HTML error page instead of JSON,
    so this is treated as a transient failure by the pacer.
    """


def _error_detail(response: httpx.Response) -> str:
    """Best-effort extraction of a human readable error from a response body."""
    try:
        body = response.json()
    except ValueError:
        return response.reason_phrase or "unknown error"
    if isinstance(body, dict):
        for key in ("message", "error"):
            value = body.get(key)
            if isinstance(value, str) and value:
                return value
            if isinstance(value, dict) and isinstance(value.get("message"), str):
                return str(value["message"])
    return response.reason_phrase or "unknown error"


def _raise_for_status(response: httpx.Response) -> None:
    """Raise FileJumpApiError for a non-2xx response, closing it first."""
    if response.is_success:
        return
    response.read()
    response.close()
    raise FileJumpApiError(response.status_code, _error_detail(response), response.headers)


class DownloadStream(io.RawIOBase):
    """Readable binary stream over the body of a streaming HTTP response."""

    def __init__(self, response: httpx.Response) -> None:
        super().__init__()
        self._response = response
        self._chunks: Iterator[bytes] = response.iter_bytes()
        self._pending = b""

    @property
    def response(self) -> httpx.Response:
        return self._response

    def readable(self) -> bool:
        return True

    def readinto(self, buffer: Any) -> int:
        while not self._pending:
            try:
                self._pending = next(self._chunks)
            except StopIteration:
                return 0
        view = memoryview(buffer).cast("B")
        count = min(len(view), len(self._pending))
        view[:count] = self._pending[:count]
        self._pending = self._pending[count:]
        return count

    def close(self) -> None:
        if not self.closed:
            self._response.close()
        super().close()


class FileJumpClient:
    """Authenticated client for the FileJump REST API."""

    def __init__(
        self,
        access_token: str,
        base_url: str = DEFAULT_API_BASE_URL,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.BaseTransport | None = None,
        log: logging.Logger | None = None,
    ) -> None:
        """Initialise the HTTP sessions.

        Args:
            access_token: FileJump API access token, sent as a Bearer token.
            base_url: API root every request path is relative to.
            timeout: Per-request timeout in seconds.
            transport: Optional httpx transport (used to fake the API in tests).
            log: Logger for request tracing; defaults to the module logger.
        """
        self._base_url = base_url.rstrip("/")
        self._log = log or logger
        self._http = httpx.Client(
            base_url=self._base_url,
            headers={
                "Authorization": f"Bearer {access_token}",
                "Accept": "application/json",
            },
            timeout=httpx.Timeout(timeout),
            follow_redirects=False,
            transport=transport,
        )
        # Pre-signed URLs carry their own credentials and must not see the token.
        self._anonymous = httpx.Client(
            timeout=httpx.Timeout(timeout),
            follow_redirects=False,
            transport=transport,
        )

    @property
    def base_url(self) -> str:
        return self._base_url

    def call_json(
        self,
        method: str,
        path: str,
        *,
        params: Mapping[str, str] | None = None,
        json_body: Any = None,
        data: Mapping[str, str] | None = None,
        files: Mapping[str, tuple[str, bytes, str]] | None = None,
    ) -> dict[str, Any]:
        """Perform an authenticated request and decode the JSON response.

        Args:
            method: HTTP method.
            path: URL path relative to the base URL (must start with '/').
            params: Query string parameters.
            json_body: JSON request body.
            data: Multipart form fields (used together with files).
            files: Multipart file fields as (filename, content, content type).

        Returns:
            Parsed JSON response body as a dict ({} for an empty body).

        Raises:
            FileJumpApiError: If the API returns a non-2xx status code.
            FileJumpDecodeError: If the body is not a JSON object.
            httpx.TransportError: On network failures.
        """
        self._log.debug("[call_json] request; method:%s;path:%s;params:%s", method, path, params)
        response = self._http.request(
            method,
            path,
            params=dict(params) if params else None,
            json=json_body,
            data=dict(data) if data else None,
            files=dict(files) if files else None,
        )
        if not response.is_success:
            self._log.info(
                "[call_json] non-success response; method:%s;path:%s;status:%d",
                method,
                path,
                response.status_code,
            )
        _raise_for_status(response)
        if not response.content:
            return {}
        try:
            body = response.json()
        except ValueError as exc:
            raise FileJumpDecodeError(
                f"invalid JSON from {method} {path}: {response.text[:200]!r}"
            ) from exc
        if not isinstance(body, dict):
            raise FileJumpDecodeError(f"expected a JSON object from {method} {path}")
        return body

    def download(self, path: str, headers: Mapping[str, str] | None = None) -> DownloadStream:
        """Open a streaming download, following at most one redirect.

        The vendor answers downloads with a redirect to a pre-signed URL. That
        URL is fetched without the Authorization header.

        Args:
            path: URL path relative to the base URL.
            headers: Extra request headers (e.g. Range); repeated on the redirect.

        Returns:
            DownloadStream over the final response body.

        Raises:
            FileJumpApiError: If either response is non-2xx.
        """
        extra = dict(headers or {})
        request = self._http.build_request("GET", path, headers=extra)
        response = self._http.send(request, stream=True)
        if response.is_redirect:
            location = response.headers["Location"]
            target = response.url.join(location)
            response.close()
            self._log.debug("[download] following redirect; path:%s;host:%s", path, target.host)
            redirected = self._anonymous.build_request("GET", target, headers=extra)
            response = self._anonymous.send(redirected, stream=True)
        _raise_for_status(response)
        return DownloadStream(response)

    def put_presigned(
        self,
        url: str,
        content: bytes | Iterable[bytes],
        headers: Mapping[str, str],
    ) -> None:
        """Upload content to a pre-signed storage URL without authentication.

        Raises:
            FileJumpApiError: If the storage service returns a non-2xx status.
        """
        self._log.debug(
            "[put_presigned] uploading to pre-signed url; host:%s", httpx.URL(url).host
        )
        response = self._anonymous.put(url, content=content, headers=dict(headers))
        _raise_for_status(response)

    def close(self) -> None:
        """Release pooled connections."""
        self._http.close()
        self._anonymous.close()


def filejump_client_from_config(
    config: BackendConfig,
    log: logging.Logger | None = None,
) -> FileJumpClient:
    """Construct a FileJumpClient from backend configuration.

    Args:
        config: Backend configuration instance.
        log: Optional injected logger.

    Returns:
        Configured FileJumpClient instance.
    """
    return FileJumpClient(
        access_token=config.access_token,
        base_url=config.api_base_url,
        timeout=config.timeout,
        log=log,
    )
