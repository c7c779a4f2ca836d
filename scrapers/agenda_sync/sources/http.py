"""
Shared HTTP fetcher for source extractors.

Wraps one httpx.AsyncClient with browser-like pt-BR headers, a request
timeout, bounded retries and a minimum interval between requests.
"""

import asyncio
from typing import Optional

import httpx
import structlog

from ..config import Settings
from ..errors import FetchError, RateLimitedError
from ..resilience import retry_call

logger = structlog.get_logger()

DEFAULT_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    ),
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "pt-BR,pt;q=0.9,en;q=0.8",
}


class RateLimiter:
    """Enforces a minimum interval between successive requests."""

    def __init__(self, min_interval: float = 0.8):
        self.min_interval = min_interval
        self.last_call: Optional[float] = None

    async def wait(self):
        """Wait if needed; the first request goes out immediately."""
        loop = asyncio.get_running_loop()
        if self.last_call is not None and self.min_interval > 0:
            elapsed = loop.time() - self.last_call
            if elapsed < self.min_interval:
                await asyncio.sleep(self.min_interval - elapsed)
        self.last_call = loop.time()


class PageFetcher:
    """Fetches page bodies for extractors; raises FetchError once retries are spent."""

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        *,
        timeout_s: float = 15.0,
        retry_max: int = 3,
        request_delay_s: float = 0.8,
        rate_limit_pause_s: float = 30.0,
        headers: Optional[dict[str, str]] = None,
    ):
        self._client = client
        self._owns_client = client is None
        self.timeout_s = timeout_s
        self.retry_max = max(1, retry_max)
        self.request_delay_s = request_delay_s
        self.rate_limit_pause_s = rate_limit_pause_s
        self.headers = {**DEFAULT_HEADERS, **(headers or {})}
        self.rate_limiter = RateLimiter(min_interval=request_delay_s)

    @classmethod
    def from_settings(
        cls, settings: Settings, client: Optional[httpx.AsyncClient] = None
    ) -> "PageFetcher":
        return cls(
            client,
            timeout_s=settings.request_timeout_s,
            retry_max=settings.retry_max,
            request_delay_s=settings.request_delay_s,
            rate_limit_pause_s=settings.rate_limit_pause_s,
        )

    async def __aenter__(self) -> "PageFetcher":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    async def get_text(self, url: str) -> str:
        """
        GET a page and return its body.

        Transport errors, 5xx responses and 429s are retried up to retry_max
        attempts. Other 4xx responses fail immediately.

        Raises:
            FetchError: When the page could not be fetched
        """
        try:
            return await retry_call(
                self._get_once,
                url,
                max_attempts=self.retry_max,
                delay=self.request_delay_s,
                rate_limit_delay=self.rate_limit_pause_s,
                retryable_exceptions=(httpx.HTTPError,),
            )
        except (httpx.HTTPError, RateLimitedError) as e:
            raise FetchError(url, self.retry_max, str(e) or type(e).__name__) from e

    async def _get_once(self, url: str) -> str:
        await self.rate_limiter.wait()
        response = await self._ensure_client().get(
            url, headers=self.headers, timeout=self.timeout_s, follow_redirects=True
        )
        if response.status_code == 429:
            logger.warning("rate_limited", url=url)
            raise RateLimitedError(url)
        if 400 <= response.status_code < 500:
            raise FetchError(url, 1, f"HTTP {response.status_code}")
        response.raise_for_status()
        return response.text

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient()
        return self._client
