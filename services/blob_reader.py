"""Read-after-write verification: fetch an uploaded blob through its public URL."""

from __future__ import annotations

import logging
from typing import Protocol

import httpx

LOGGER = logging.getLogger(__name__)


class ReadbackError(Exception):
    """Raised when a freshly written blob cannot be fetched back."""

    def __init__(self, url: str, message: str) -> None:
        super().__init__(message)
        self.url = url


class BlobReader(Protocol):
    async def fetch(self, url: str) -> bytes: ...


class HttpBlobReader:
    """Fetch blobs over HTTP with a shared `httpx.AsyncClient`.

    Timeouts are owned by the client passed in; a single GET is issued per
    call and never retried.
    """

    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    async def fetch(self, url: str) -> bytes:
        try:
            resp = await self._client.get(url)
        except httpx.HTTPError as exc:
            raise ReadbackError(url, f"Failed to fetch uploaded image: {exc}") from exc

        if resp.status_code >= 400:
            raise ReadbackError(url, f"Failed to fetch uploaded image: {resp.status_code} {resp.reason_phrase}")

        body = resp.content
        if not body:
            raise ReadbackError(url, "Failed to fetch uploaded image: empty response body")
        LOGGER.debug("Fetched %d bytes back from %s", len(body), url)
        return body


def build_http_client(timeout_seconds: float) -> httpx.AsyncClient:
    """Create the AsyncClient used for readback, with the same timeout on every phase."""
    timeout = httpx.Timeout(connect=min(3.0, timeout_seconds), read=timeout_seconds, write=timeout_seconds, pool=timeout_seconds)
    return httpx.AsyncClient(timeout=timeout, follow_redirects=True)
