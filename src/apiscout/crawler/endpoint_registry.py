"""
Endpoint Registry - Deduplicated inventory of discovered endpoints.

Every component that finds an endpoint hands it to the registry, which:
1. Filters out URLs that cannot be endpoints (bad scheme, static assets)
2. Extracts parameters from the URL structure
3. Classifies the endpoint with the security classifier
4. Deduplicates on "{METHOD}:{url}" (last write wins)
"""

from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union
from urllib.parse import urlparse

import structlog

from ..core.models import (
    Endpoint,
    EndpointSource,
    HttpMethod,
    ResponseMeta,
    endpoint_id,
)
from .patterns import PatternMatcher
from .security import SecurityClassifier


ACCEPTED_SCHEMES = ("http", "https", "ws", "wss")

STATIC_ASSET_EXTENSIONS = (
    ".jpg", ".jpeg", ".png", ".gif", ".svg", ".ico", ".webp", ".bmp",
    ".css", ".js", ".mjs", ".map",
    ".woff", ".woff2", ".ttf", ".eot", ".otf",
    ".mp3", ".mp4", ".avi", ".mov", ".webm", ".wav",
    ".zip", ".tar", ".gz", ".rar", ".7z",
)


@dataclass
class RegistryStats:
    """Statistics for the endpoint registry"""
    total_recorded: int = 0
    unique_endpoints: int = 0
    overwritten: int = 0
    rejected: int = 0
    by_source: Dict[str, int] = field(default_factory=lambda: defaultdict(int))
    by_method: Dict[str, int] = field(default_factory=lambda: defaultdict(int))


class EndpointRegistry:
    """
    Owns the deduplicated endpoint map of one session.

    Example:
        >>> registry = EndpointRegistry()
        >>> registry.record("https://example.com/api/users", "GET", EndpointSource.HTML, depth=1)
        >>> registry.record("https://example.com/api/users", "GET", EndpointSource.SCRIPT, depth=2)
        >>> len(registry)
        1
        >>> registry.get_endpoints()[0].source
        <EndpointSource.SCRIPT: 'js'>
    """

    def __init__(
        self,
        matcher: Optional[PatternMatcher] = None,
        classifier: Optional[SecurityClassifier] = None,
    ):
        """
        Initialize the registry.

        Args:
            matcher: Pattern matcher used for parameter extraction
            classifier: Security classifier applied to every recorded endpoint
        """
        self.matcher = matcher or PatternMatcher()
        self.classifier = classifier or SecurityClassifier()

        self._endpoints: Dict[str, Endpoint] = {}
        self.stats = RegistryStats()

        self.logger = structlog.get_logger(__name__)

    def record(
        self,
        url: str,
        method: Union[str, HttpMethod] = HttpMethod.GET,
        source: EndpointSource = EndpointSource.CRAWL,
        depth: int = 0,
        response: Optional[ResponseMeta] = None,
        confidence: Optional[float] = None,
    ) -> Optional[Endpoint]:
        """
        Record an endpoint, replacing any earlier one with the same identity.

        Args:
            url: Absolute endpoint URL
            method: HTTP method (name or HttpMethod)
            source: How the endpoint was discovered
            depth: Crawl depth of the page it was found on
            response: Observed response metadata, if any
            confidence: Confidence score (predicted and script-derived endpoints)

        Returns:
            The stored Endpoint, or None if the URL was rejected
        """
        http_method = self._coerce_method(method)
        if http_method is None or not self.accepts(url):
            self.stats.rejected += 1
            self.logger.debug("endpoint_rejected", url=url, method=str(method))
            return None

        endpoint = Endpoint(
            url=url,
            method=http_method,
            parameters=self.matcher.extract_parameters(url),
            depth=depth,
            source=source,
            response=response,
            security=self.classifier.classify(url, http_method),
            confidence=confidence,
        )

        self.stats.total_recorded += 1
        self.stats.by_source[source.value] += 1
        self.stats.by_method[http_method.value] += 1

        previous = self._endpoints.get(endpoint.id)
        if previous is not None:
            self.stats.overwritten += 1
            # Keep observed metadata unless the new record carries its own
            if endpoint.response is None:
                endpoint.response = previous.response
            self.logger.debug(
                "endpoint_overwritten",
                id=endpoint.id,
                old_source=previous.source.value,
                new_source=source.value,
            )
        else:
            self.stats.unique_endpoints += 1
            self.logger.debug(
                "endpoint_added",
                id=endpoint.id,
                params=len(endpoint.parameters),
                source=source.value,
            )

        self._endpoints[endpoint.id] = endpoint
        return endpoint

    def accepts(self, url: str) -> bool:
        """
        Acceptance filter.

        Rejects URLs without an http(s)/ws(s) scheme and host, and static
        assets that do not look like an API.
        """
        try:
            parsed = urlparse(url)
        except ValueError:
            return False

        if parsed.scheme not in ACCEPTED_SCHEMES or not parsed.netloc:
            return False

        path = parsed.path.lower()
        if path.endswith(STATIC_ASSET_EXTENSIONS) and not self.matcher.looks_like_api(url):
            return False

        return True

    def attach_response(self, url: str, meta: ResponseMeta, depth: int = 0) -> Optional[Endpoint]:
        """
        Attach response metadata observed by the crawl.

        Updates the existing GET endpoint for the URL; an unknown URL that
        looks like an API is recorded with source crawl.

        Args:
            url: Fetched URL
            meta: Observed response metadata
            depth: Depth the URL was fetched at

        Returns:
            The updated or newly recorded endpoint, or None
        """
        existing = self._endpoints.get(endpoint_id(HttpMethod.GET.value, url))
        if existing is not None:
            existing.response = meta
            return existing

        if self.matcher.looks_like_api(url):
            return self.record(url, HttpMethod.GET, EndpointSource.CRAWL, depth=depth, response=meta)

        return None

    def get(self, method: Union[str, HttpMethod], url: str) -> Optional[Endpoint]:
        http_method = self._coerce_method(method)
        if http_method is None:
            return None
        return self._endpoints.get(endpoint_id(http_method.value, url))

    def get_endpoints(self) -> List[Endpoint]:
        """All endpoints in first-discovery order"""
        return list(self._endpoints.values())

    def get_statistics(self) -> Dict[str, Any]:
        """
        Get registry statistics.

        Returns:
            Dictionary with statistics
        """
        by_source: Dict[str, int] = defaultdict(int)
        by_method: Dict[str, int] = defaultdict(int)
        for endpoint in self._endpoints.values():
            by_source[endpoint.source.value] += 1
            by_method[endpoint.method.value] += 1

        return {
            "total_recorded": self.stats.total_recorded,
            "unique_endpoints": len(self._endpoints),
            "overwritten": self.stats.overwritten,
            "rejected": self.stats.rejected,
            "recorded_by_source": dict(self.stats.by_source),
            "recorded_by_method": dict(self.stats.by_method),
            "by_source": dict(by_source),
            "by_method": dict(by_method),
        }

    @staticmethod
    def _coerce_method(method: Union[str, HttpMethod]) -> Optional[HttpMethod]:
        if isinstance(method, HttpMethod):
            return method
        try:
            return HttpMethod(str(method).upper())
        except ValueError:
            return None

    def clear(self):
        """Clear all endpoints and reset statistics"""
        self._endpoints.clear()
        self.stats = RegistryStats()
        self.logger.info("registry_cleared")

    def __len__(self) -> int:
        """Return number of unique endpoints"""
        return len(self._endpoints)

    def __repr__(self) -> str:
        return (
            f"EndpointRegistry("
            f"unique={len(self._endpoints)}, "
            f"overwritten={self.stats.overwritten}, "
            f"rejected={self.stats.rejected})"
        )
