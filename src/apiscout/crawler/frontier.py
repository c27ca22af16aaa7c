"""
URL Frontier - Pending queue, visited set and link-following policy.

The frontier owns the only visited set of a session. claim() is a
synchronous check-and-insert, so under the cooperative scheduler two
in-flight fetches of the same URL are impossible and the page budget
(max_pages) is never exceeded.
"""

from collections import deque
from dataclasses import dataclass
from typing import Deque, Optional, Set
from urllib.parse import urlparse, urlunparse

import structlog

from ..core.config import CrawlMode, ScannerConfig
from .patterns import PatternMatcher, resolve_url
from .robots import RobotsRules


EXCLUDED_SCHEMES = ("mailto:", "tel:", "javascript:", "ftp:", "data:")

SKIP_EXTENSIONS = (
    ".pdf",
    ".jpg", ".jpeg", ".png", ".gif", ".svg", ".ico", ".webp", ".bmp",
    ".woff", ".woff2", ".ttf", ".eot", ".otf",
    ".mp3", ".mp4", ".avi", ".mov", ".webm", ".wav",
    ".zip", ".tar", ".gz", ".rar", ".7z",
    ".exe", ".dmg", ".msi",
)

API_HOST_MARKERS = ("api", "rest", "service")


@dataclass
class FrontierEntry:
    """A URL waiting to be crawled"""
    url: str
    depth: int = 0
    from_url: Optional[str] = None


class Frontier:
    """
    Pending URLs plus the visited set.

    Example:
        >>> frontier = Frontier("https://example.com", config)
        >>> frontier.offer("/api/users", depth=1, from_url="https://example.com/")
        True
        >>> entry = frontier.pop()
        >>> frontier.claim(entry.url)
        True
    """

    def __init__(
        self,
        base_url: str,
        config: ScannerConfig,
        matcher: Optional[PatternMatcher] = None,
    ):
        self.base_url = base_url
        self.config = config
        self.matcher = matcher or PatternMatcher()
        self.host = urlparse(base_url).netloc.lower()

        self._queue: Deque[FrontierEntry] = deque()
        self._queued: Set[str] = set()
        self.visited: Set[str] = set()
        self._fetched: Set[str] = set()
        self.robots: Optional[RobotsRules] = None

        self.logger = structlog.get_logger(__name__)

    def normalize(self, url: str) -> Optional[str]:
        """
        Frontier key of a URL: absolute, fragment-free, "/" for an empty path.

        Returns None for anything that is not http(s).
        """
        resolved = resolve_url(url, self.base_url)
        if not resolved:
            return None

        parsed = urlparse(resolved)
        if parsed.scheme not in ("http", "https"):
            return None

        if not parsed.path:
            parsed = parsed._replace(path="/")
        return urlunparse(parsed)

    def should_follow(self, url: str, from_url: Optional[str] = None) -> bool:
        """
        Link-following policy.

        Args:
            url: Candidate link (absolute)
            from_url: Page the link was found on

        Returns:
            True if the link may be crawled
        """
        lower_url = url.strip().lower()
        if lower_url.startswith(EXCLUDED_SCHEMES):
            return False

        try:
            parsed = urlparse(url)
        except ValueError:
            return False

        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            return False

        is_api = self.matcher.looks_like_api(url)

        host = parsed.netloc.lower()
        if host != self.host and not self.config.include_external_links:
            api_host = any(marker in host for marker in API_HOST_MARKERS)
            if not (is_api and api_host):
                self.logger.debug("link_external_skipped", url=url, from_url=from_url)
                return False

        if parsed.path.lower().endswith(SKIP_EXTENSIONS) and not is_api:
            return False

        if self.config.respect_robots and self.robots is not None and host == self.host:
            if not self.robots.is_allowed(parsed.path or "/"):
                self.logger.debug("link_disallowed_by_robots", url=url)
                return False

        return True

    def offer(self, url: str, depth: int = 0, from_url: Optional[str] = None) -> bool:
        """
        Queue a URL if it is new and passes the policy.

        Returns:
            True if the URL was queued
        """
        key = self.normalize(url)
        if key is None:
            return False

        if key in self.visited or key in self._fetched or key in self._queued:
            return False

        if self.config.crawl_mode is CrawlMode.DEPTH_LIMITED and depth > self.config.max_depth:
            return False

        if not self.should_follow(key, from_url):
            return False

        self._queue.append(FrontierEntry(url=key, depth=depth, from_url=from_url))
        self._queued.add(key)
        return True

    def pop(self) -> Optional[FrontierEntry]:
        """
        Next URL to crawl, or None when the queue is empty.

        Breadth-first mode drains in FIFO order; depth-limited mode in LIFO
        order so a branch is followed to max_depth before its siblings.
        """
        while self._queue:
            if self.config.crawl_mode is CrawlMode.DEPTH_LIMITED:
                entry = self._queue.pop()
            else:
                entry = self._queue.popleft()
            self._queued.discard(entry.url)

            if entry.url in self.visited or entry.url in self._fetched:
                continue
            # Rules may arrive after the URL was queued
            if self.config.respect_robots and self.robots is not None:
                if not self.should_follow(entry.url, entry.from_url):
                    continue
            return entry

        return None

    def claim(self, url: str) -> bool:
        """
        Atomically reserve a URL for fetching.

        Fails when the page budget is spent or the URL was already fetched.
        """
        if self.budget_exhausted:
            return False
        if url in self.visited or url in self._fetched:
            return False
        self.visited.add(url)
        return True

    def mark_fetched(self, url: str):
        """Record a URL fetched outside the crawl (GET probe); uses no page budget"""
        key = self.normalize(url)
        if key is not None and key not in self.visited:
            self._fetched.add(key)

    def set_robots_rules(self, rules: RobotsRules):
        self.robots = rules
        self.logger.debug(
            "robots_rules_set",
            disallow=len(rules.disallow),
            allow=len(rules.allow),
        )

    @property
    def budget_exhausted(self) -> bool:
        return len(self.visited) >= self.config.max_pages

    def __len__(self) -> int:
        """Number of queued URLs"""
        return len(self._queue)
