"""Blocket Notifier — Async HTTP Client.

Thin async HTTP client for blocket.se built on httpx.AsyncClient with:
  - User-agent chosen at random from config
  - Browser-like headers
  - FetchError on transport failures and non-2xx responses
  - Request counting for run telemetry

There is no retry loop: a failed page fails its item and the next
scheduled run picks it up again.
"""

from __future__ import annotations

import random
from typing import Optional

import httpx

from blocket_notifier.config import CrawlerConfig
from blocket_notifier.utils.logger import get_logger

logger = get_logger(__name__)

# ── Browser-like headers common to all requests ──────────
_COMMON_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "sv-SE,sv;q=0.9,en;q=0.8",
    "Connection": "keep-alive",
    "Sec-Fetch-Dest": "document",
    "Sec-Fetch-Mode": "navigate",
    "Sec-Fetch-Site": "same-origin",
}


class FetchError(Exception):
    """A page could not be retrieved.

    Attributes:
        url: The URL that was requested.
        status_code: HTTP status, or None for transport-level failures.
    """

    def __init__(self, url: str, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(f"{message} ({url})")
        self.url = url
        self.status_code = status_code


class BlocketClient:
    """Async HTTP client for Blocket index and detail pages.

    Attributes:
        config: Crawler configuration from the YAML config.
        total_requests: Running count of successful requests this session.
    """

    def __init__(
        self,
        config: CrawlerConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """Initialize the client from a CrawlerConfig.

        Args:
            config: CrawlerConfig instance loaded from settings.yaml.
            transport: Optional httpx transport, used by tests to serve
                canned pages.
        """
        self.config = config
        self.total_requests: int = 0
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    def _get_client(self) -> httpx.AsyncClient:
        """Lazily create the httpx.AsyncClient."""
        if self._client is None:
            ua = random.choice(self.config.user_agents) if self.config.user_agents else "Mozilla/5.0"
            self._client = httpx.AsyncClient(
                headers={**_COMMON_HEADERS, "User-Agent": ua},
                follow_redirects=True,
                timeout=httpx.Timeout(self.config.timeout_seconds),
                transport=self._transport,
            )
        return self._client

    def index_params(self, page: int) -> dict[str, str]:
        """Query parameters for one index page: site filter plus page number."""
        params = dict(self.config.index_params)
        params[self.config.page_param] = str(page)
        return params

    async def get_index_page(self, page: int = 1) -> str:
        """Fetch one index page and return raw HTML.

        Args:
            page: Page number, 1-indexed.

        Raises:
            FetchError: If the request fails or returns a non-2xx status.
        """
        logger.debug("Fetching index page %d", page)
        return await self._get(self.config.index_url, params=self.index_params(page))

    async def get_detail_page(self, url: str) -> str:
        """Fetch a detail page and return raw HTML.

        Raises:
            FetchError: If the request fails or returns a non-2xx status.
        """
        logger.debug("Fetching detail: %s", url)
        return await self._get(url)

    async def _get(self, url: str, params: Optional[dict[str, str]] = None) -> str:
        client = self._get_client()
        try:
            resp = await client.get(url, params=params)
        except httpx.TimeoutException as e:
            raise FetchError(url, f"Timeout: {e}") from e
        except httpx.HTTPError as e:
            raise FetchError(url, f"Transport error: {e}") from e

        if not resp.is_success:
            raise FetchError(url, f"HTTP {resp.status_code}", status_code=resp.status_code)

        self.total_requests += 1
        return resp.text

    async def close(self) -> None:
        """Close the underlying httpx client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            logger.debug("HTTP client closed (total requests: %d)", self.total_requests)

    async def __aenter__(self) -> "BlocketClient":
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()
