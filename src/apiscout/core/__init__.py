"""
Core module - Shared models, configuration and session plumbing.

The orchestrator lives in core.orchestrator and is imported from there
(or from the top-level package); it depends on the crawler and discovery
packages, which themselves depend on this one.
"""

from .config import CrawlMode, ScannerConfig
from .exceptions import (
    ApiScoutError,
    NetworkError,
    ParseError,
    RenderError,
    SessionError,
    StrategyError,
    ValidationError,
)
from .models import (
    CrawlError,
    CrawlResult,
    CrawlStats,
    Endpoint,
    EndpointSource,
    HttpMethod,
    ResponseMeta,
    RiskLevel,
    ScanProgress,
    ScanStage,
)
from .rate_limiter import RateLimitConfig, TokenBucketRateLimiter
from .reporting import MemoryResultStore, ResultStore, store_observer
from .validation import clean_domain, is_valid_domain, normalize_base_url


__all__ = [
    # Configuration
    "ScannerConfig",
    "CrawlMode",
    # Errors
    "ApiScoutError",
    "ValidationError",
    "NetworkError",
    "RenderError",
    "ParseError",
    "StrategyError",
    "SessionError",
    # Data structures
    "Endpoint",
    "EndpointSource",
    "HttpMethod",
    "ResponseMeta",
    "RiskLevel",
    "ScanProgress",
    "ScanStage",
    "CrawlError",
    "CrawlStats",
    "CrawlResult",
    # Rate limiting
    "TokenBucketRateLimiter",
    "RateLimitConfig",
    # Reporting
    "ResultStore",
    "MemoryResultStore",
    "store_observer",
    # Validation
    "clean_domain",
    "is_valid_domain",
    "normalize_base_url",
]
