"""
Outbound HTTP for the remote service.

All requests go through a fixed-size permit pool so bulk operations cannot
open an unbounded number of connections. Waiting for a permit is part of the
request.
"""
import asyncio
import logging
from typing import Dict, Optional

import httpx

from launcher.core.errors import FetchError

logger = logging.getLogger(__name__)


class FetchClient:
    """
    Concurrency-limited async HTTP client.

    Usage:
        async with FetchClient(max_concurrent=10, timeout=30.0) as fetcher:
            body = await fetcher.fetch("GET", url, headers={"Authorization": token})
    """

    def __init__(
        self,
        max_concurrent: int = 10,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            max_concurrent: Number of requests allowed in flight at once
            timeout: Per-request timeout in seconds
            transport: Custom httpx transport (e.g. httpx.MockTransport)
        """
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")
        self.max_concurrent = max_concurrent
        self.semaphore = asyncio.Semaphore(max_concurrent)
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)

    @classmethod
    def from_settings(cls, settings, transport: Optional[httpx.AsyncBaseTransport] = None) -> "FetchClient":
        return cls(
            max_concurrent=settings.fetch_max_concurrent,
            timeout=settings.fetch_timeout,
            transport=transport,
        )

    async def fetch(
        self,
        method: str,
        url: str,
        headers: Optional[Dict[str, str]] = None,
    ) -> bytes:
        """
        Perform a request and return the raw response body.

        Raises:
            FetchError: On timeout, transport failure or a non-2xx status
        """
        async with self.semaphore:
            try:
                response = await self._client.request(method, url, headers=headers)
                response.raise_for_status()
            except httpx.HTTPStatusError as e:
                status = e.response.status_code
                logger.warning(f"{method} {url} returned HTTP {status}")
                raise FetchError(f"{method} {url} returned HTTP {status}", status_code=status) from e
            except httpx.HTTPError as e:
                logger.warning(f"{method} {url} failed: {type(e).__name__}: {e}")
                raise FetchError(f"{method} {url} failed: {e}") from e
            return response.content

    async def aclose(self):
        await self._client.aclose()

    async def __aenter__(self) -> "FetchClient":
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.aclose()
