"""
Crawler module - Fetching, extraction and endpoint bookkeeping.

This package contains the per-page machinery of a crawl:
- PageFetcher: Static (aiohttp) and rendered (Playwright) fetching
- ContentExtractor: Endpoint and link extraction from HTML, JS, JSON, YAML, XML
- Frontier: Pending URLs, visited set and link-following policy
- EndpointRegistry: Deduplication and security classification
"""

from .browser import PlaywrightRenderer, RenderResult
from .endpoint_registry import EndpointRegistry, RegistryStats
from .extractor import ContentExtractor, EndpointCandidate, ExtractionResult
from .fetcher import FetchMode, FetchResult, PageFetcher
from .frontier import Frontier, FrontierEntry
from .http_client import AiohttpClient, HttpResponse
from .patterns import PatternMatcher, calculate_confidence, looks_like_api
from .robots import RobotsRules, parse_robots
from .security import SecurityClassifier


__all__ = [
    # Fetching
    "PageFetcher",
    "FetchMode",
    "FetchResult",
    "AiohttpClient",
    "HttpResponse",
    "PlaywrightRenderer",
    "RenderResult",
    # Extraction
    "ContentExtractor",
    "EndpointCandidate",
    "ExtractionResult",
    "PatternMatcher",
    "looks_like_api",
    "calculate_confidence",
    # Crawl state
    "Frontier",
    "FrontierEntry",
    "RobotsRules",
    "parse_robots",
    # Data structures
    "EndpointRegistry",
    "RegistryStats",
    "SecurityClassifier",
]
