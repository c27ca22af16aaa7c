"""
Shared fixtures: in-memory HTTP client and browser fakes.

Both fakes are injected through constructors, so no test touches the network.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

import pytest

from apiscout.core.config import ScannerConfig
from apiscout.core.exceptions import NetworkError, RenderError
from apiscout.crawler.browser import ObservedRequest, RenderResult
from apiscout.crawler.http_client import HttpResponse, accept_below_500
from apiscout.discovery import load_catalogs


@dataclass
class Route:
    status: int = 200
    text: str = ""
    headers: Dict[str, str] = field(default_factory=dict)


class FakeHttpClient:
    """
    HttpClient serving canned routes.

    Routes are keyed by (METHOD, url); a route added without a method
    answers every method. Unknown URLs fail like a refused connection.
    """

    def __init__(self):
        self.routes: Dict[Tuple[Optional[str], str], Route] = {}
        self.calls: List[Tuple[str, str, Dict[str, str]]] = []
        self.closed = False

    def add(self, url, text="", status=200, headers=None, method=None):
        self.routes[(method, url)] = Route(status=status, text=text, headers=dict(headers or {}))
        return self

    async def request(
        self,
        method,
        url,
        timeout,
        headers=None,
        max_redirects=5,
        validate_status=accept_below_500,
    ):
        self.calls.append((method, url, dict(headers or {})))

        route = self.routes.get((method, url)) or self.routes.get((None, url))
        if route is None:
            raise NetworkError("Connection refused", url=url)

        response = HttpResponse(
            url=url,
            status=route.status,
            headers={k.lower(): v for k, v in route.headers.items()},
            text="" if method == "HEAD" else route.text,
            elapsed=5.0,
        )
        if not validate_status(response.status):
            raise NetworkError(f"HTTP {response.status}", url=url, status=response.status)
        return response

    async def close(self):
        self.closed = True

    def requested(self, method=None) -> List[str]:
        return [url for m, url, _ in self.calls if method is None or m == method]


class FakeRenderer:
    """BrowserRenderer returning canned DOMs and network activity"""

    def __init__(self, pages=None, fail_start=False, fail_urls=()):
        self.pages: Dict[str, RenderResult] = dict(pages or {})
        self.fail_start = fail_start
        self.fail_urls = set(fail_urls)
        self.started = 0
        self.closed = 0
        self.rendered: List[str] = []

    def add(self, url, content, status=200, requests=(), json_bodies=()):
        self.pages[url] = RenderResult(
            url=url,
            content=content,
            status=status,
            requests=[ObservedRequest(**r) if isinstance(r, dict) else r for r in requests],
            json_bodies=list(json_bodies),
        )
        return self

    async def start(self):
        if self.fail_start:
            raise RenderError("Executable doesn't exist")
        self.started += 1

    async def render(self, url, timeout_ms):
        self.rendered.append(url)
        if url in self.fail_urls:
            raise RenderError("Navigation timeout", url=url)
        if url not in self.pages:
            raise RenderError("net::ERR_CONNECTION_REFUSED", url=url)
        return self.pages[url]

    async def close(self):
        self.closed += 1


def pytest_configure(config):
    config.addinivalue_line("markers", "integration: end-to-end crawl through the orchestrator")


@pytest.fixture
def http_client():
    return FakeHttpClient()


@pytest.fixture
def renderer():
    return FakeRenderer()


@pytest.fixture
def fast_config():
    """Static, unthrottled configuration"""
    return ScannerConfig(crawl_delay=0, enable_javascript=False, max_concurrency=4)


@pytest.fixture(scope="session")
def catalogs():
    return load_catalogs()
