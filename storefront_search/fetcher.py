"""
Outbound image download for candidate products.
"""

import os
import asyncio
import logging
from typing import Optional

import aiohttp

from .errors import FetchTimeoutError, NetworkError

logger = logging.getLogger(__name__)

FETCH_TIMEOUT = float(os.environ.get("IMAGE_FETCH_TIMEOUT", "10"))
MAX_IMAGE_BYTES = int(os.environ.get("IMAGE_MAX_BYTES", str(15 * 1024 * 1024)))


class ImageFetcher:
    """
    Downloads candidate product images over HTTP.

    A single aiohttp session is opened lazily and reused across fetches;
    call close() (or use ``async with``) when done.
    """

    def __init__(self, timeout: float = FETCH_TIMEOUT, max_bytes: int = MAX_IMAGE_BYTES):
        self.timeout = timeout
        self.max_bytes = max_bytes
        self._session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self) -> "ImageFetcher":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
        return self._session

    async def fetch(self, url: str, timeout: Optional[float] = None) -> bytes:
        """
        Download an image.

        Args:
            url: Absolute image URL.
            timeout: Total timeout in seconds; defaults to the fetcher's.

        Returns:
            Raw response body.

        Raises:
            FetchTimeoutError: If the request exceeds the timeout.
            NetworkError: On connection errors, non-200 status, or an
                oversized body.
        """
        timeout = timeout or self.timeout
        session = self._get_session()
        try:
            async with session.get(url, timeout=aiohttp.ClientTimeout(total=timeout)) as resp:
                if resp.status != 200:
                    raise NetworkError(f"Image fetch {url} returned {resp.status}")
                if resp.content_length and resp.content_length > self.max_bytes:
                    raise NetworkError(f"Image {url} too large ({resp.content_length} bytes)")
                data = await resp.read()
        except asyncio.TimeoutError as e:
            raise FetchTimeoutError(f"Image fetch {url} timed out after {timeout}s") from e
        except aiohttp.ClientError as e:
            raise NetworkError(f"Image fetch {url} failed: {e!r}") from e

        if len(data) > self.max_bytes:
            raise NetworkError(f"Image {url} too large ({len(data)} bytes)")

        logger.debug(f"Fetched {len(data)} bytes from {url}")
        return data
