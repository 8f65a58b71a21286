"""
Resource Client - fetches named resources from the backend API.

The client returns a body or raises TransportError. It performs no
caching and no retry.
"""

import asyncio
import json
from abc import ABC, abstractmethod
from collections.abc import Mapping
from typing import Any, Optional
from urllib.parse import urljoin

import aiohttp

from shared.logging import get_logger

from .errors import TransportError

log = get_logger("pagequery", "client")


def unwrap_body(body: Any) -> Any:
    """
    Strip an optional result-set wrapper.

    {"data": T, "count": ..., ...} -> T, including T = None when the backend
    sends "data": null. Anything without a "data" key is returned unchanged.
    """
    if isinstance(body, Mapping) and "data" in body:
        return body["data"]
    return body


class ResourceClient(ABC):
    """Fetches a resource body given its request id."""

    @abstractmethod
    async def fetch_resource(self, request_id: str) -> Any:
        """Return the response body or raise TransportError."""

    async def close(self) -> None:
        """Release any held connections."""

    async def __aenter__(self) -> "ResourceClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()


class HttpResourceClient(ResourceClient):
    """
    GETs resources over HTTP with aiohttp.

    Relative request ids are resolved against base_url; absolute URLs are
    used as-is.

    Usage:
        async with HttpResourceClient("http://localhost:8010/api") as client:
            body = await client.fetch_resource("/genes/ENSG00000012048")
    """

    def __init__(
        self,
        base_url: str = "",
        headers: Optional[dict[str, str]] = None,
        timeout_seconds: Optional[float] = None,
    ):
        """
        Args:
            base_url: Prefix for relative request ids
            headers: Extra request headers
            timeout_seconds: Total request timeout; None waits indefinitely
        """
        self._base_url = base_url.rstrip("/")
        self._headers = {"Accept": "application/json", **(headers or {})}
        self._timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self._http_session: Optional[aiohttp.ClientSession] = None

    async def _get_http_session(self) -> aiohttp.ClientSession:
        """Get or create HTTP session."""
        if self._http_session is None or self._http_session.closed:
            self._http_session = aiohttp.ClientSession(headers=self._headers, timeout=self._timeout)
        return self._http_session

    async def close(self) -> None:
        """Close HTTP session."""
        if self._http_session and not self._http_session.closed:
            await self._http_session.close()
        self._http_session = None

    def resolve_url(self, request_id: str) -> str:
        if request_id.startswith(("http://", "https://")) or not self._base_url:
            return request_id
        return urljoin(self._base_url + "/", request_id.lstrip("/"))

    async def fetch_resource(self, request_id: str) -> Any:
        url = self.resolve_url(request_id)
        start_time = log.fetch_start(request_id, "network", url=url)

        try:
            session = await self._get_http_session()
            async with session.get(url) as resp:
                body = await self._read_body(resp)

                if resp.status >= 400:
                    message = f"Request failed with status code {resp.status}"
                    log.fetch_error(request_id, "network", message, "http_status",
                                    start_time=start_time, status=resp.status)
                    raise TransportError(message, status=resp.status, response_body=body)

        except asyncio.TimeoutError:
            message = f"Request to {url} timed out"
            log.fetch_error(request_id, "network", message, "timeout", start_time=start_time)
            raise TransportError(message) from None

        except aiohttp.ClientError as e:
            message = str(e) or type(e).__name__
            log.fetch_error(request_id, "network", message, "connection_error", start_time=start_time)
            raise TransportError(message) from e

        log.fetch_complete(request_id, "network", start_time, status=resp.status)
        return body

    async def _read_body(self, resp: aiohttp.ClientResponse) -> Any:
        """Parse a JSON body, falling back to text for non-JSON responses."""
        text = await resp.text()
        if not text:
            return None
        try:
            return json.loads(text)
        except ValueError:
            return text
