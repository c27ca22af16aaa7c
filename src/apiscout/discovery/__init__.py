"""
Discovery module - Strategies that seed the crawl with likely API locations.

Each strategy inherits from DiscoveryStrategy and implements discover().
The orchestrator runs the pre-crawl strategies concurrently, each inside
its own error boundary, and the post-crawl ones (prediction) in PROCESSING.
"""

from typing import List

from .base import (
    DiscoveredDocument,
    DiscoveryContext,
    DiscoveryResult,
    DiscoveryStrategy,
)
from .catalogs import ProbeCatalogs, load_catalogs
from .fingerprint import FingerprintStrategy, detect_framework
from .prediction import PredictionStrategy
from .probes import CommonPathsStrategy, SecurityHeadersStrategy, WellKnownStrategy
from .seeds import DocIndexStrategy, MobileApiStrategy, ThirdPartyStrategy, WebSocketStrategy
from .sitemap import RobotsStrategy, SitemapStrategy
from .subdomains import SubdomainStrategy


def default_strategies() -> List[DiscoveryStrategy]:
    """One instance of every built-in strategy"""
    return [
        SitemapStrategy(),
        RobotsStrategy(),
        WellKnownStrategy(),
        CommonPathsStrategy(),
        FingerprintStrategy(),
        SecurityHeadersStrategy(),
        SubdomainStrategy(),
        WebSocketStrategy(),
        MobileApiStrategy(),
        DocIndexStrategy(),
        ThirdPartyStrategy(),
        PredictionStrategy(),
    ]


__all__ = [
    # Base classes
    "DiscoveryStrategy",
    "DiscoveryContext",
    "DiscoveryResult",
    "DiscoveredDocument",
    # Catalogs
    "ProbeCatalogs",
    "load_catalogs",
    # Strategies
    "SitemapStrategy",
    "RobotsStrategy",
    "WellKnownStrategy",
    "CommonPathsStrategy",
    "FingerprintStrategy",
    "SecurityHeadersStrategy",
    "SubdomainStrategy",
    "WebSocketStrategy",
    "MobileApiStrategy",
    "DocIndexStrategy",
    "ThirdPartyStrategy",
    "PredictionStrategy",
    "default_strategies",
    "detect_framework",
]
