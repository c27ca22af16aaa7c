"""
Headless Browser Renderer - Rendered fetches with Playwright.

Loads a page in Chromium, observes the network traffic it produces,
dispatches synthetic interaction events to trigger lazy API calls, and
returns the rendered DOM together with the API-like requests observed and
any JSON response bodies.
"""

import asyncio
from dataclasses import dataclass, field
from typing import List, Optional, Protocol

import structlog
from playwright.async_api import Browser, BrowserContext, Page, Playwright, async_playwright
from playwright.async_api import Error as PlaywrightError

from ..core.exceptions import RenderError
from .patterns import looks_like_api


INTERACTION_SCRIPT = """
() => {
    const events = ['scroll', 'click', 'mouseover', 'focus'];
    const elements = document.querySelectorAll('button, a, input[type="button"], [onclick]');
    elements.forEach(element => {
        events.forEach(eventType => {
            try {
                element.dispatchEvent(new Event(eventType, { bubbles: true }));
            } catch (e) {}
        });
    });
    const expandables = document.querySelectorAll('[data-toggle], [aria-expanded="false"], .dropdown-toggle');
    expandables.forEach(element => {
        try { element.click(); } catch (e) {}
    });
}
"""

NETWORK_RESOURCE_TYPES = ("xhr", "fetch", "websocket", "eventsource")
MAX_JSON_BODIES = 50


@dataclass
class ObservedRequest:
    """A network request issued by a rendered page"""
    url: str
    method: str = "GET"
    resource_type: str = "other"
    status: Optional[int] = None
    content_type: Optional[str] = None


@dataclass
class RenderResult:
    """Rendered DOM plus the network activity it produced"""
    url: str
    content: str
    status: Optional[int] = None
    requests: List[ObservedRequest] = field(default_factory=list)
    json_bodies: List[str] = field(default_factory=list)


class BrowserRenderer(Protocol):
    """Headless browser boundary used by the fetcher"""

    async def start(self) -> None:
        ...

    async def render(self, url: str, timeout_ms: int) -> RenderResult:
        ...

    async def close(self) -> None:
        ...


class PlaywrightRenderer:
    """
    BrowserRenderer on Playwright Chromium.

    Example:
        >>> renderer = PlaywrightRenderer(user_agent="APIScout/1.0")
        >>> await renderer.start()
        >>> result = await renderer.render("https://example.com", timeout_ms=10000)
        >>> await renderer.close()
    """

    def __init__(
        self,
        user_agent: Optional[str] = None,
        headless: bool = True,
        settle_delay: float = 1.0,
    ):
        """
        Initialize the renderer.

        Args:
            user_agent: User agent of the browser context
            headless: Run browser in headless mode
            settle_delay: Seconds to wait after the interaction script
        """
        self.user_agent = user_agent
        self.headless = headless
        self.settle_delay = settle_delay

        self.playwright: Optional[Playwright] = None
        self.browser: Optional[Browser] = None
        self.context: Optional[BrowserContext] = None

        self.logger = structlog.get_logger(__name__)

    async def start(self) -> None:
        """
        Launch Chromium and open a browser context.

        Raises:
            RenderError: If the browser cannot be launched
        """
        self.logger.info("browser_starting", headless=self.headless)

        try:
            self.playwright = await async_playwright().start()
            self.browser = await self.playwright.chromium.launch(headless=self.headless)
            self.context = await self.browser.new_context(
                viewport={"width": 1920, "height": 1080},
                user_agent=self.user_agent,
            )
        except PlaywrightError as e:
            await self.close()
            raise RenderError(f"Browser launch failed: {e}")

        self.logger.info("browser_started")

    async def render(self, url: str, timeout_ms: int) -> RenderResult:
        """
        Render a page.

        Args:
            url: Page URL
            timeout_ms: Navigation timeout

        Returns:
            RenderResult

        Raises:
            RenderError: If the browser is not started or navigation fails
        """
        if not self.context:
            raise RenderError("Browser not started", url=url)

        requests: List[ObservedRequest] = []
        json_responses = []

        def on_request(request):
            if request.resource_type in NETWORK_RESOURCE_TYPES or looks_like_api(request.url):
                requests.append(
                    ObservedRequest(
                        url=request.url,
                        method=request.method,
                        resource_type=request.resource_type,
                    )
                )

        def on_response(response):
            content_type = response.headers.get("content-type", "")
            for observed in requests:
                if observed.url == response.url and observed.status is None:
                    observed.status = response.status
                    observed.content_type = content_type
                    break
            if "application/json" in content_type and len(json_responses) < MAX_JSON_BODIES:
                json_responses.append(response)

        page: Optional[Page] = None
        try:
            page = await self.context.new_page()
            page.on("request", on_request)
            page.on("response", on_response)

            self.logger.debug("navigating", url=url)
            response = await page.goto(url, wait_until="networkidle", timeout=timeout_ms)
            await page.evaluate(INTERACTION_SCRIPT)
            await asyncio.sleep(self.settle_delay)

            content = await page.content()
            json_bodies = await self._read_bodies(json_responses)

        except PlaywrightError as e:
            raise RenderError(f"Navigation failed: {e}", url=url)
        finally:
            if page is not None:
                await self._close_page(page)

        self.logger.debug(
            "page_rendered",
            url=url,
            requests=len(requests),
            json_bodies=len(json_bodies),
        )

        return RenderResult(
            url=url,
            content=content,
            status=response.status if response else None,
            requests=requests,
            json_bodies=json_bodies,
        )

    async def _read_bodies(self, responses) -> List[str]:
        bodies = []
        for response in responses:
            try:
                bodies.append(await response.text())
            except PlaywrightError:
                # body evicted or response redirected
                continue
        return bodies

    async def _close_page(self, page: Page):
        try:
            await page.close()
        except PlaywrightError as e:
            self.logger.debug("page_close_failed", error=str(e))

    async def close(self) -> None:
        """Close Playwright browser and cleanup"""
        if self.context:
            await self.context.close()
        if self.browser:
            await self.browser.close()
        if self.playwright:
            await self.playwright.stop()

        self.context = None
        self.browser = None
        self.playwright = None

        self.logger.info("browser_closed")
