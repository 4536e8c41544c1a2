"""
Rendered-document fetcher.

The pipeline only needs `await fetch_page(url) -> html`. PageFetcher does a
plain httpx GET with a shared client; a headless-browser fetcher can be
swapped in with the same call signature.
"""

import logging
import time

import httpx

import config

logger = logging.getLogger(__name__)


class PageFetcher:
    def __init__(
        self,
        user_agent: str = config.USER_AGENT,
        timeout: float = config.FETCH_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.user_agent = user_agent
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._last_used = 0.0

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                headers={"User-Agent": self.user_agent, "Accept-Language": "tr-TR,tr;q=0.9,en;q=0.8"},
                timeout=self.timeout,
                follow_redirects=True,
                transport=self._transport,
            )
        return self._client

    async def fetch(self, url: str) -> str:
        """GET a page and return its HTML. Raises httpx.HTTPError on failure."""
        self._last_used = time.monotonic()
        logger.info(f"Fetching {url}")
        response = await self._get_client().get(url)
        response.raise_for_status()
        return response.text

    __call__ = fetch

    async def close_if_idle(self, max_idle: float) -> bool:
        """Close the HTTP session if unused for max_idle seconds."""
        if self._client is None or time.monotonic() - self._last_used < max_idle:
            return False
        await self.aclose()
        logger.info("Closed idle HTTP session")
        return True

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
