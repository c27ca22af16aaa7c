"""
APIScout - API Endpoint Discovery

Finds the HTTP and WebSocket API endpoints a website exposes by crawling
its pages, reading its scripts and documents, and probing well-known
locations, then reports them with a light security classification.
"""

__version__ = "1.0.0"
__author__ = "APIScout Team"
__status__ = "Development"

from .core.config import CrawlMode, ScannerConfig
from .core.models import CrawlResult, Endpoint, ScanProgress
from .core.orchestrator import CrawlOrchestrator, crawl


__all__ = [
    "crawl",
    "CrawlOrchestrator",
    "ScannerConfig",
    "CrawlMode",
    "CrawlResult",
    "Endpoint",
    "ScanProgress",
]
