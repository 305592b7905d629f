"""
HTTP fetcher for page markup, sitemaps and binary assets.

Uses aiohttp with a per-request timeout and explicit redirect following.
"""

import asyncio
from typing import Optional

import aiohttp
from aiohttp import ClientTimeout, ClientError

from ..exceptions import FetchError
from ..utils.constants import DEFAULT_TIMEOUT, DEFAULT_USER_AGENT
from ..utils.log import get_logger


class HttpFetcher:
    """
    Thin async HTTP client shared by the crawl and asset stages.

    Must be used as an async context manager so the underlying session is
    opened and closed once per stage.
    """

    def __init__(
        self,
        timeout: int = DEFAULT_TIMEOUT,
        user_agent: str = DEFAULT_USER_AGENT
    ):
        """
        Initialize the fetcher.

        Args:
            timeout: Per-request timeout in milliseconds
            user_agent: User agent string for requests
        """
        self.timeout = ClientTimeout(total=timeout / 1000)
        self.user_agent = user_agent
        self.logger = get_logger("fetcher")
        self._session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self):
        self._session = aiohttp.ClientSession(
            timeout=self.timeout,
            headers={"User-Agent": self.user_agent}
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self._session:
            await self._session.close()
            self._session = None

    async def _get(self, url: str, text: bool = False):
        if not self._session:
            raise RuntimeError("HttpFetcher used outside of 'async with'")

        try:
            async with self._session.get(url, allow_redirects=True) as response:
                if not 200 <= response.status < 300:
                    raise FetchError(url, f"HTTP {response.status}")
                if text:
                    # Honors the declared charset
                    return await response.text(errors="replace")
                return await response.read()
        except ClientError as e:
            raise FetchError(url, f"Client error: {e}") from e
        except asyncio.TimeoutError as e:
            raise FetchError(url, "Timeout") from e

    async def fetch_text(self, url: str) -> str:
        """
        Fetch a document as text.

        Args:
            url: URL to fetch

        Returns:
            Decoded body

        Raises:
            FetchError: On non-2xx status, timeout or transport error
        """
        body = await self._get(url, text=True)
        self.logger.debug(f"Fetched {len(body)} characters from {url}")
        return body

    async def fetch_bytes(self, url: str) -> bytes:
        """
        Fetch a binary resource.

        Args:
            url: URL to fetch

        Returns:
            Raw body

        Raises:
            FetchError: On non-2xx status, timeout or transport error
        """
        return await self._get(url)
