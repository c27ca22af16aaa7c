"""
Discovery Strategy - Abstract base class for all discovery strategies.

A strategy probes the target for likely API locations and reports what it
found as a DiscoveryResult. Strategies never touch the frontier or the
endpoint registry; the orchestrator applies their results.

Design Pattern: Strategy Pattern
"""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple
from urllib.parse import urlparse

import structlog

from ..core.config import ScannerConfig
from ..core.exceptions import NetworkError
from ..core.models import Endpoint, EndpointSource
from ..crawler.extractor import EndpointCandidate
from ..crawler.fetcher import PageFetcher
from ..crawler.http_client import HttpResponse
from ..crawler.patterns import PatternMatcher
from ..crawler.robots import RobotsRules
from .catalogs import ProbeCatalogs


@dataclass
class DiscoveredDocument:
    """Body fetched by a GET probe, to be run through the extractor"""
    url: str
    content: str
    content_type: Optional[str] = None
    status: Optional[int] = None
    elapsed: float = 0.0  # milliseconds


@dataclass
class DiscoveryResult:
    """
    Output of one strategy.

    urls: candidate URLs for the frontier
    endpoints: endpoints synthesised directly by the strategy
    documents: GET-probe bodies for the extractor (their URLs count as fetched)
    fetched: other URLs already GET-fetched by the strategy
    robots: parsed robots.txt, when the strategy read it
    """
    urls: List[str] = field(default_factory=list)
    endpoints: List[EndpointCandidate] = field(default_factory=list)
    documents: List[DiscoveredDocument] = field(default_factory=list)
    fetched: List[str] = field(default_factory=list)
    robots: Optional[RobotsRules] = None

    def offer(self, url: str):
        if url not in self.urls:
            self.urls.append(url)

    def add_endpoint(
        self,
        url: str,
        method: str = "GET",
        source: EndpointSource = EndpointSource.CRAWL,
        confidence: Optional[float] = None,
    ):
        self.endpoints.append(
            EndpointCandidate(url=url, method=method, source=source, confidence=confidence)
        )

    def add_document(self, response: HttpResponse, url: Optional[str] = None):
        self.documents.append(
            DiscoveredDocument(
                url=url or response.url,
                content=response.text,
                content_type=response.content_type,
                status=response.status,
                elapsed=response.elapsed,
            )
        )

    def __len__(self) -> int:
        return len(self.urls) + len(self.endpoints) + len(self.documents)

    def __bool__(self) -> bool:
        # a result carrying only robots rules is still a result
        return True


@dataclass
class DiscoveryContext:
    """Everything a strategy may use"""
    base_url: str
    config: ScannerConfig
    fetcher: PageFetcher
    catalogs: ProbeCatalogs
    matcher: PatternMatcher = field(default_factory=PatternMatcher)
    known_endpoints: List[Endpoint] = field(default_factory=list)

    @property
    def host(self) -> str:
        return urlparse(self.base_url).hostname or ""

    def url(self, path: str) -> str:
        """Absolute URL of a catalog path on the target origin"""
        if not path.startswith("/"):
            path = f"/{path}"
        return f"{self.base_url}{path}"


class DiscoveryStrategy(ABC):
    """
    Abstract base class for all discovery strategies.

    Example:
        >>> class HealthStrategy(DiscoveryStrategy):
        ...     name = "health"
        ...     async def discover(self, context):
        ...         result = DiscoveryResult()
        ...         if await self._probe(context, context.url("/health")):
        ...             result.offer(context.url("/health"))
        ...         return result
    """

    name: str = "strategy"
    run_after_crawl: bool = False  # True = runs in PROCESSING, after the crawl

    def __init__(self):
        self.logger = structlog.get_logger(__name__, strategy=self.name)

    @abstractmethod
    async def discover(self, context: DiscoveryContext) -> DiscoveryResult:
        """
        Probe the target.

        Args:
            context: Session context

        Returns:
            DiscoveryResult (possibly empty)
        """
        pass

    async def _probe(
        self,
        context: DiscoveryContext,
        url: str,
        method: str = "HEAD",
        headers: Optional[Dict[str, str]] = None,
        max_redirects: int = 5,
    ) -> Optional[HttpResponse]:
        """Probe a URL; a miss (network failure) returns None and is logged at debug"""
        try:
            return await context.fetcher.probe(
                url,
                method=method,
                headers=headers,
                max_redirects=max_redirects,
            )
        except NetworkError as e:
            self.logger.debug("probe_miss", url=url, method=method, error=e.message)
            return None

    async def _probe_many(
        self,
        context: DiscoveryContext,
        urls: Iterable[str],
        method: str = "HEAD",
        headers: Optional[Dict[str, str]] = None,
    ) -> List[Tuple[str, Optional[HttpResponse]]]:
        urls = list(urls)
        responses = await asyncio.gather(
            *(self._probe(context, url, method=method, headers=headers) for url in urls)
        )
        return list(zip(urls, responses))

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, after_crawl={self.run_after_crawl})"
