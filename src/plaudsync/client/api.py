"""HTTP client for the Plaud web API.

This module provides:
- APIError, AuthenticationError, NotFoundError: Error taxonomy
- HTTPClient: JSON requests and streamed downloads with service headers
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

import httpx

if TYPE_CHECKING:
    from plaudsync.client.credentials import StoredCredentials

logger = logging.getLogger(__name__)

# Default request timeout in seconds
DEFAULT_TIMEOUT = 30.0

# Streaming downloads may be large; only the connect phase is bounded
STREAM_TIMEOUT = httpx.Timeout(DEFAULT_TIMEOUT, read=None)

# Browser-like headers the service validates (app-platform/edit-from are required)
STATIC_HEADERS = {
    "Accept": "application/json, */*",
    "Accept-Language": "en-GB,en-US;q=0.9,en;q=0.8",
    "Origin": "https://web.plaud.ai",
    "Referer": "https://web.plaud.ai/",
    "app-platform": "web",
    "edit-from": "web",
    "User-Agent": (
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/130.0.0.0 Safari/537.36"
    ),
}


class APIError(Exception):
    """Base exception for API errors.

    Attributes:
        status_code: HTTP status, or None for transport-level failures.
        recording_id: Recording the request was about, when known.
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        recording_id: str | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.recording_id = recording_id

    @property
    def is_retryable(self) -> bool:
        """Whether retrying may succeed (server fault, rate limit or network)."""
        if self.status_code is None:
            return True
        return self.status_code >= 500 or self.status_code == 429


class AuthenticationError(APIError):
    """Credentials are missing, expired or rejected."""

    @property
    def is_retryable(self) -> bool:
        return False


class NotFoundError(APIError):
    """Resource not found."""


class HTTPClient:
    """HTTP client carrying the service's cookies and bearer token."""

    def __init__(
        self,
        credentials: StoredCredentials,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """Initialize the HTTP client.

        Args:
            credentials: Stored session (cookies, token).
            timeout: Request timeout in seconds.
            transport: Optional transport override (tests).
        """
        self._credentials = credentials
        self._timeout = timeout
        self._client = httpx.Client(
            timeout=timeout,
            headers=self._build_headers(),
            transport=transport,
            follow_redirects=True,
        )
        # Pre-signed storage links sign only the host header, so they get a
        # client without any service headers.
        self._external = httpx.Client(
            timeout=timeout,
            transport=transport,
            follow_redirects=True,
        )

    def close(self) -> None:
        """Close the underlying HTTP clients."""
        self._client.close()
        self._external.close()

    def __enter__(self) -> HTTPClient:
        """Context manager entry."""
        return self

    def __exit__(self, *args: object) -> None:
        """Context manager exit."""
        self.close()

    def _build_headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json", **STATIC_HEADERS}
        cookie = self._credentials.cookie_header()
        if cookie:
            headers["Cookie"] = cookie
        if self._credentials.auth_token:
            # The API expects a lowercase scheme
            headers["Authorization"] = f"bearer {self._credentials.auth_token}"
        return headers

    def _handle_response(self, response: httpx.Response) -> httpx.Response:
        """Raise the appropriate exception for an error response."""
        url = str(response.request.url).split("?")[0]
        if response.status_code in (401, 403):
            raise AuthenticationError(
                f"Auth failed for {url} ({response.status_code}); credentials need refreshing",
                response.status_code,
            )
        if response.status_code == 404:
            raise NotFoundError(f"Not found: {url}", 404)
        if response.status_code >= 400:
            raise APIError(f"HTTP {response.status_code} for {url}", response.status_code)
        return response

    def _send(self, client: httpx.Client, request: httpx.Request, stream: bool) -> httpx.Response:
        try:
            return client.send(request, stream=stream)
        except httpx.TransportError as e:
            raise APIError(f"Network error for {request.url.host}: {e}") from e

    # === JSON requests ===

    def get_json(self, url: str, params: dict[str, Any] | None = None) -> Any:
        """GET a JSON document.

        Raises:
            AuthenticationError: On 401/403.
            NotFoundError: On 404.
            APIError: On other failures.
        """
        logger.debug(f"GET {url}")
        request = self._client.build_request("GET", url, params=params)
        response = self._handle_response(self._send(self._client, request, stream=False))
        return response.json()

    def post_json(self, url: str, body: Any) -> Any:
        """POST a JSON body and return the JSON response."""
        logger.debug(f"POST {url}")
        request = self._client.build_request("POST", url, json=body)
        response = self._handle_response(self._send(self._client, request, stream=False))
        return response.json()

    # === Streaming downloads ===

    @contextmanager
    def get_stream(self, url: str) -> Iterator[Iterator[bytes]]:
        """Stream a response body from a service URL (with auth headers).

        Usage:
            with client.get_stream(url) as chunks:
                write_stream_atomic(path, chunks)
        """
        logger.debug(f"GET (stream) {url}")
        with self._open_stream(self._client, url) as chunks:
            yield chunks

    @contextmanager
    def download_external_url(self, url: str) -> Iterator[Iterator[bytes]]:
        """Stream a response body from a pre-signed third-party URL.

        No service headers are sent: pre-signed links reject extra headers.
        """
        logger.debug(f"GET (external) {url.split('?')[0]}")
        with self._open_stream(self._external, url) as chunks:
            yield chunks

    @contextmanager
    def _open_stream(self, client: httpx.Client, url: str) -> Iterator[Iterator[bytes]]:
        request = client.build_request("GET", url, timeout=STREAM_TIMEOUT)
        response = self._send(client, request, stream=True)
        try:
            self._handle_response(response)
            yield self._iter_body(response)
        finally:
            response.close()

    @staticmethod
    def _iter_body(response: httpx.Response) -> Iterator[bytes]:
        try:
            yield from response.iter_bytes()
        except httpx.TransportError as e:
            raise APIError(f"Network error while streaming: {e}") from e
