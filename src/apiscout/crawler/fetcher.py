"""
Fetch Abstraction - One entry point for static, rendered and probe requests.

Every request goes through the shared rate limiter first. Rendered fetches
launch the browser lazily and fall back to a static fetch when the browser
cannot be launched (for the rest of the session) or cannot navigate (for
that URL).
"""

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional

import structlog

from ..core.config import ScannerConfig
from ..core.exceptions import NetworkError, RenderError
from ..core.models import CrawlError, ResponseMeta
from ..core.rate_limiter import RateLimitConfig, TokenBucketRateLimiter
from .browser import BrowserRenderer, ObservedRequest, PlaywrightRenderer
from .http_client import AiohttpClient, HttpClient, HttpResponse, StatusValidator, accept_below_500


SAFE_PROBE_METHODS = ("GET", "HEAD", "OPTIONS")


def accept_any(status: int) -> bool:
    return True


class FetchMode(Enum):
    STATIC = "static"
    RENDERED = "rendered"


@dataclass
class FetchResult:
    """Content of a fetched page"""
    url: str
    content: str
    status: Optional[int] = None
    content_type: Optional[str] = None
    headers: Dict[str, str] = field(default_factory=dict)
    elapsed: float = 0.0  # milliseconds
    mode: FetchMode = FetchMode.STATIC
    final_url: Optional[str] = None
    requests: List[ObservedRequest] = field(default_factory=list)
    json_bodies: List[str] = field(default_factory=list)

    def response_meta(self) -> ResponseMeta:
        return ResponseMeta(
            status=self.status,
            size=len(self.content.encode("utf-8", errors="ignore")),
            time=round(self.elapsed, 2),
            content_type=self.content_type,
        )


ErrorReporter = Callable[[CrawlError], None]


class PageFetcher:
    """
    Fetches pages and probes for one session.

    Example:
        >>> async with PageFetcher(config, rate_limiter) as fetcher:
        ...     page = await fetcher.fetch("https://example.com/", FetchMode.RENDERED)
        ...     response = await fetcher.probe("https://example.com/.well-known/openid-configuration")
    """

    def __init__(
        self,
        config: ScannerConfig,
        rate_limiter: Optional[TokenBucketRateLimiter] = None,
        http_client: Optional[HttpClient] = None,
        renderer: Optional[BrowserRenderer] = None,
        on_error: Optional[ErrorReporter] = None,
    ):
        """
        Initialize the fetcher.

        Args:
            config: Scanner configuration
            rate_limiter: Shared session rate limiter (derived from config if None)
            http_client: HTTP client (aiohttp if None)
            renderer: Browser renderer (Playwright if None, launched lazily)
            on_error: Receives render fallbacks as CrawlError entries
        """
        self.config = config
        self.rate_limiter = rate_limiter or TokenBucketRateLimiter(
            RateLimitConfig(requests_per_second=config.requests_per_second)
        )
        self.http_client = http_client or AiohttpClient(user_agent=config.user_agent)
        self._renderer = renderer
        self.on_error = on_error

        self._browser_lock = asyncio.Lock()
        self._browser_started = False
        self.browser_available = True

        self.requests_made = 0
        self.logger = structlog.get_logger(__name__)

    async def fetch(self, url: str, mode: FetchMode = FetchMode.STATIC) -> FetchResult:
        """
        Fetch a page.

        Args:
            url: Absolute URL
            mode: STATIC (raw HTTP) or RENDERED (headless browser)

        Returns:
            FetchResult

        Raises:
            NetworkError: If the (static) fetch fails
        """
        if mode is FetchMode.RENDERED:
            renderer = await self._ensure_browser()
            if renderer is not None:
                try:
                    return await self._fetch_rendered(renderer, url)
                except RenderError as e:
                    self._report(url, f"Render failed, fell back to static fetch: {e.message}", "render")
                    self.logger.warning("render_fallback", url=url, error=e.message)

        return await self._fetch_static(url)

    async def _fetch_rendered(self, renderer: BrowserRenderer, url: str) -> FetchResult:
        await self.rate_limiter.acquire()
        self.requests_made += 1

        loop = asyncio.get_running_loop()
        started = loop.time()
        rendered = await renderer.render(url, self.config.timeout)
        elapsed = (loop.time() - started) * 1000

        if rendered.status is not None and rendered.status >= 500:
            self.rate_limiter.on_error(rendered.status)
            raise NetworkError(f"HTTP {rendered.status}", url=url, status=rendered.status)
        self.rate_limiter.on_success()

        return FetchResult(
            url=url,
            content=rendered.content,
            status=rendered.status,
            content_type="text/html",
            elapsed=elapsed,
            mode=FetchMode.RENDERED,
            final_url=rendered.url,
            requests=list(rendered.requests),
            json_bodies=list(rendered.json_bodies),
        )

    async def _fetch_static(self, url: str) -> FetchResult:
        response = await self._request(
            "GET",
            url,
            timeout=self.config.timeout_seconds,
            validate_status=accept_below_500,
        )
        return FetchResult(
            url=url,
            content=response.text,
            status=response.status,
            content_type=response.content_type,
            headers=response.headers,
            elapsed=response.elapsed,
            mode=FetchMode.STATIC,
            final_url=response.url,
        )

    async def probe(
        self,
        url: str,
        method: str = "HEAD",
        headers: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
        max_redirects: int = 5,
        validate_status: StatusValidator = accept_any,
    ) -> HttpResponse:
        """
        Issue a discovery probe.

        Only safe methods are allowed; probes never send destructive requests.

        Args:
            url: Absolute URL
            method: GET, HEAD or OPTIONS
            headers: Extra headers (override the default User-Agent)
            timeout: Seconds (config.probe_timeout if None)
            max_redirects: Redirects to follow
            validate_status: Status predicate (any status by default)

        Returns:
            HttpResponse

        Raises:
            NetworkError: On timeout, connection failure or rejected status
            ValueError: If method is not a safe method
        """
        method = method.upper()
        if method not in SAFE_PROBE_METHODS:
            raise ValueError(f"Probe method not allowed: {method}")

        return await self._request(
            method,
            url,
            timeout=timeout if timeout is not None else self.config.probe_timeout_seconds,
            headers=headers,
            max_redirects=max_redirects,
            validate_status=validate_status,
        )

    async def _request(
        self,
        method: str,
        url: str,
        timeout: float,
        headers: Optional[Dict[str, str]] = None,
        max_redirects: int = 5,
        validate_status: StatusValidator = accept_below_500,
    ) -> HttpResponse:
        await self.rate_limiter.acquire()
        self.requests_made += 1

        request_headers = {"User-Agent": self.config.user_agent}
        if headers:
            request_headers.update(headers)

        try:
            response = await self.http_client.request(
                method,
                url,
                timeout=timeout,
                headers=request_headers,
                max_redirects=max_redirects,
                validate_status=validate_status,
            )
        except NetworkError as e:
            if e.status is not None:
                self.rate_limiter.on_error(e.status)
            raise

        if response.status == 429 or response.status >= 500:
            self.rate_limiter.on_error(response.status)
        else:
            self.rate_limiter.on_success()

        return response

    async def _ensure_browser(self) -> Optional[BrowserRenderer]:
        async with self._browser_lock:
            if self._browser_started:
                return self._renderer
            if not self.browser_available:
                return None

            renderer = self._renderer or PlaywrightRenderer(
                user_agent=self.config.user_agent,
                headless=self.config.headless,
            )
            try:
                await renderer.start()
            except RenderError as e:
                self.browser_available = False
                self._report(None, f"Browser unavailable, using static fetches: {e.message}", "render")
                self.logger.warning("browser_unavailable", error=e.message)
                return None

            self._renderer = renderer
            self._browser_started = True
            return renderer

    async def release_browser(self):
        """Close the browser; later rendered fetches run statically"""
        async with self._browser_lock:
            self.browser_available = False
            if self._browser_started and self._renderer is not None:
                self._browser_started = False
                await self._renderer.close()
                self.logger.info("browser_released")

    async def close(self):
        """Release the browser and the HTTP client"""
        try:
            await self.release_browser()
        finally:
            await self.http_client.close()

    def _report(self, url: Optional[str], message: str, kind: str):
        if self.on_error is not None:
            self.on_error(CrawlError(url=url or "", error=message, kind=kind))

    async def __aenter__(self) -> "PageFetcher":
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()
