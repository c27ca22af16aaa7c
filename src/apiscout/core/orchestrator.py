"""
Crawl Orchestrator - Central coordinator of a discovery session.

A session moves through INIT -> DISCOVERING -> CRAWLING -> PROCESSING ->
COMPLETED, with ERROR reachable from any non-terminal state:

- INIT validates the domain (no network I/O before this passes)
- DISCOVERING runs the discovery strategies concurrently, each isolated
- CRAWLING drains the frontier with at most max_concurrency fetches in flight
- PROCESSING analyzes gathered script files and runs post-crawl strategies

Design Pattern: Bounded task set + Observer
"""

import asyncio
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Set
from urllib.parse import urlparse

import structlog

from ..crawler.endpoint_registry import EndpointRegistry
from ..crawler.extractor import ContentExtractor
from ..crawler.fetcher import FetchMode, PageFetcher
from ..crawler.frontier import Frontier, FrontierEntry
from ..crawler.http_client import HttpClient
from ..crawler.browser import BrowserRenderer
from ..crawler.patterns import PatternMatcher
from ..discovery import (
    DiscoveryContext,
    DiscoveryResult,
    DiscoveryStrategy,
    ProbeCatalogs,
    default_strategies,
    load_catalogs,
)
from .config import ScannerConfig
from .exceptions import ApiScoutError, NetworkError, SessionError, StrategyError, ValidationError
from .models import (
    CrawlError,
    CrawlResult,
    CrawlStats,
    EndpointSource,
    ResponseMeta,
    ScanProgress,
    ScanStage,
)
from .rate_limiter import RateLimitConfig, TokenBucketRateLimiter
from .reporting import ProgressObserver, ResultStore
from .validation import clean_domain, is_valid_domain, normalize_base_url


class SessionState(Enum):
    """Session lifecycle"""
    INIT = "init"
    DISCOVERING = "discovering"
    CRAWLING = "crawling"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"


@dataclass
class CrawlSession:
    """Mutable state of one run(); owned exclusively by the orchestrator"""
    session_id: str
    domain: str
    base_url: str
    config: ScannerConfig
    frontier: Frontier
    registry: EndpointRegistry
    errors: List[CrawlError] = field(default_factory=list)
    progress: Optional[ScanProgress] = None
    state: SessionState = SessionState.INIT
    script_urls: List[str] = field(default_factory=list)
    seen_scripts: Set[str] = field(default_factory=set)
    js_files_analyzed: int = 0
    api_calls_detected: int = 0
    started_at: float = field(default_factory=time.perf_counter)

    @property
    def pages_scanned(self) -> int:
        return len(self.frontier.visited)

    def elapsed_ms(self) -> float:
        return (time.perf_counter() - self.started_at) * 1000


class CrawlOrchestrator:
    """
    Runs API discovery sessions.

    Responsibilities:
    1. Validate the target and set up the session
    2. Run discovery strategies inside per-strategy error boundaries
    3. Drain the frontier with bounded concurrency
    4. Stream progress to observers and publish the final result

    Example:
        >>> orchestrator = CrawlOrchestrator(ScannerConfig(max_pages=50))
        >>> orchestrator.subscribe(print_progress)
        >>> result = await orchestrator.run("example.com")
    """

    def __init__(
        self,
        config: Optional[ScannerConfig] = None,
        http_client: Optional[HttpClient] = None,
        renderer: Optional[BrowserRenderer] = None,
        strategies: Optional[List[DiscoveryStrategy]] = None,
        matcher: Optional[PatternMatcher] = None,
        rate_limiter: Optional[TokenBucketRateLimiter] = None,
        result_store: Optional[ResultStore] = None,
        session_id: Optional[str] = None,
        catalogs: Optional[ProbeCatalogs] = None,
    ):
        """
        Initialize the orchestrator.

        Args:
            config: Scanner configuration (defaults if None)
            http_client: HTTP client (aiohttp if None)
            renderer: Browser renderer (Playwright if None)
            strategies: Discovery strategies (all built-ins if None, none if [])
            matcher: Pattern matcher shared by every component
            rate_limiter: Shared rate limiter (derived from config.crawl_delay if None)
            result_store: Receives progress and the final result
            session_id: Session identifier (generated if None)
            catalogs: Probe catalogs (packaged catalogs.yaml if None)
        """
        self.config = config or ScannerConfig()
        self.http_client = http_client
        self.renderer = renderer
        self.strategies = default_strategies() if strategies is None else list(strategies)
        self.matcher = matcher or PatternMatcher()
        self.rate_limiter = rate_limiter
        self.result_store = result_store
        self.session_id = session_id
        self._catalogs = catalogs

        self.extractor = ContentExtractor(self.matcher)

        self.session: Optional[CrawlSession] = None
        self._fetcher: Optional[PageFetcher] = None
        self._stopping = False
        self.is_running = False

        self.logger = structlog.get_logger(__name__)

        # Observer pattern - callbacks
        self.observers: List[ProgressObserver] = []

    @property
    def catalogs(self) -> ProbeCatalogs:
        if self._catalogs is None:
            self._catalogs = load_catalogs()
        return self._catalogs

    def subscribe(self, observer: ProgressObserver):
        """
        Subscribe to progress events (Observer pattern).

        Args:
            observer: Callable receiving each ScanProgress
        """
        self.observers.append(observer)
        self.logger.info("observer_subscribed", observer=getattr(observer, "__name__", repr(observer)))

    def _notify_observers(self, session_id: str, progress: ScanProgress):
        """Notify all observers of a progress event"""
        for observer in self.observers:
            try:
                observer(progress)
            except Exception as e:
                self.logger.error(
                    "observer_error",
                    observer=getattr(observer, "__name__", repr(observer)),
                    error=str(e),
                )

        if self.result_store is not None:
            try:
                self.result_store.publish_progress(session_id, progress)
            except Exception as e:
                self.logger.error("result_store_error", session_id=session_id, error=str(e))

    async def run(self, domain: str) -> CrawlResult:
        """
        Run one discovery session.

        Args:
            domain: Target domain (scheme and path are tolerated)

        Returns:
            CrawlResult of the completed session

        Raises:
            ValidationError: If the domain is malformed (no request is made)
            SessionError: If an unexpected error escapes every boundary
        """
        session_id = self.session_id or f"scan_{datetime.now().strftime('%Y%m%d_%H%M%S')}_{uuid.uuid4().hex[:6]}"
        self._stopping = False

        base_url = normalize_base_url(domain) if is_valid_domain(domain or "") else None
        if base_url is None:
            error = ValidationError(f"Invalid domain: {domain!r}", url=domain)
            self._fail_invalid(session_id, domain, error)
            raise error

        config = self.config
        frontier = Frontier(base_url, config, self.matcher)
        registry = EndpointRegistry(self.matcher)
        session = CrawlSession(
            session_id=session_id,
            domain=clean_domain(domain),
            base_url=base_url,
            config=config,
            frontier=frontier,
            registry=registry,
        )
        self.session = session
        self.is_running = True

        rate_limiter = self.rate_limiter or TokenBucketRateLimiter(
            RateLimitConfig(requests_per_second=config.requests_per_second)
        )
        fetcher = PageFetcher(
            config,
            rate_limiter=rate_limiter,
            http_client=self.http_client,
            renderer=self.renderer,
            on_error=session.errors.append,
        )
        self._fetcher = fetcher

        self.logger.info(
            "crawl_started",
            session_id=session_id,
            base_url=base_url,
            max_pages=config.max_pages,
            max_concurrency=config.max_concurrency,
            javascript=config.enable_javascript,
            strategies=[s.name for s in self.strategies],
        )
        self._emit(session, ScanStage.INITIALIZING, 0, f"Starting scan of {session.domain}")

        try:
            await self._discover(session, fetcher)
            await self._crawl(session, fetcher)
            await self._process(session, fetcher)

            result = self._build_result(session, fetcher)
            session.state = SessionState.COMPLETED
            self._emit(
                session,
                ScanStage.COMPLETED,
                100,
                f"Found {len(result.endpoints)} endpoints on {result.total_pages} pages",
            )

            self.logger.info(
                "crawl_completed",
                session_id=session_id,
                pages=result.total_pages,
                endpoints=len(result.endpoints),
                errors=len(result.errors),
                requests=result.stats.requests_made,
                total_time=f"{result.total_time:.0f}ms",
            )

            if self.result_store is not None:
                self.result_store.publish_result(session_id, result)
            return result

        except ApiScoutError as e:
            self._fail(session, e)
            raise
        except Exception as e:
            error = SessionError(f"Unexpected error: {e}", url=base_url)
            self._fail(session, error)
            raise error from e
        finally:
            self.is_running = False
            await fetcher.close()
            self._fetcher = None

    async def _discover(self, session: CrawlSession, fetcher: PageFetcher):
        session.state = SessionState.DISCOVERING
        session.frontier.offer(f"{session.base_url}/", depth=0)

        pre_crawl = [s for s in self.strategies if not s.run_after_crawl]
        if not pre_crawl:
            return

        self._emit(session, ScanStage.CRAWLING, 2, f"Running {len(pre_crawl)} discovery strategies")

        context = self._context(session, fetcher)
        results = await asyncio.gather(
            *(self._run_strategy(session, strategy, context) for strategy in pre_crawl)
        )

        # robots rules first, so the policy applies to everything offered below
        for result in results:
            if result is not None and result.robots is not None:
                session.frontier.set_robots_rules(result.robots)

        for result in results:
            if result is not None:
                self._apply_discovery(session, result)

        self.logger.info(
            "discovery_completed",
            session_id=session.session_id,
            queued=len(session.frontier),
            endpoints=len(session.registry),
        )
        self._emit(session, ScanStage.CRAWLING, 10, "Discovery finished, crawling")

    async def _run_strategy(
        self,
        session: CrawlSession,
        strategy: DiscoveryStrategy,
        context: DiscoveryContext,
    ) -> Optional[DiscoveryResult]:
        """Error boundary around one strategy"""
        try:
            result = await strategy.discover(context)
        except Exception as e:
            error = StrategyError(f"{strategy.name} strategy failed: {e}", url=session.base_url)
            self._record_error(session, error)
            self.logger.warning(
                "strategy_failed",
                strategy=strategy.name,
                error=str(e),
                exc_info=True,
            )
            return None

        self.logger.debug(
            "strategy_completed",
            strategy=strategy.name,
            urls=len(result.urls),
            endpoints=len(result.endpoints),
            documents=len(result.documents),
        )
        return result

    def _apply_discovery(self, session: CrawlSession, result: DiscoveryResult):
        frontier = session.frontier

        for url in result.fetched:
            frontier.mark_fetched(url)

        for candidate in result.endpoints:
            session.registry.record(
                candidate.url,
                candidate.method,
                candidate.source,
                depth=1,
                confidence=candidate.confidence,
            )

        for document in result.documents:
            frontier.mark_fetched(document.url)
            meta = ResponseMeta(
                status=document.status,
                size=len(document.content.encode("utf-8", errors="ignore")),
                time=round(document.elapsed, 2),
                content_type=document.content_type,
            )
            self._process_content(session, document.url, document.content, document.content_type, 1, meta)

        for url in result.urls:
            frontier.offer(url, depth=1, from_url=session.base_url)

    async def _crawl(self, session: CrawlSession, fetcher: PageFetcher):
        """
        Bounded-concurrency crawl loop.

        Admits work while capacity and page budget allow, then waits for the
        first task to finish. Runs while the frontier or the active set is
        non-empty, so links found by slow pages are never dropped.
        """
        session.state = SessionState.CRAWLING
        frontier = session.frontier
        mode = FetchMode.RENDERED if self.config.enable_javascript else FetchMode.STATIC
        active: Set[asyncio.Task] = set()

        try:
            while True:
                while (
                    not self._stopping
                    and len(active) < self.config.max_concurrency
                    and not frontier.budget_exhausted
                ):
                    entry = frontier.pop()
                    if entry is None:
                        break
                    if not frontier.claim(entry.url):
                        continue
                    active.add(asyncio.create_task(self._crawl_page(session, fetcher, entry, mode)))

                if not active:
                    break

                done, active = await asyncio.wait(active, return_when=asyncio.FIRST_COMPLETED)
                for task in done:
                    task.result()
        finally:
            for task in active:
                task.cancel()
            if active:
                await asyncio.gather(*active, return_exceptions=True)

        self.logger.info(
            "crawl_loop_finished",
            session_id=session.session_id,
            pages=session.pages_scanned,
            queued=len(frontier),
            stopped=self._stopping,
        )

    async def _crawl_page(
        self,
        session: CrawlSession,
        fetcher: PageFetcher,
        entry: FrontierEntry,
        mode: FetchMode,
    ):
        try:
            page = await fetcher.fetch(entry.url, mode)
        except NetworkError as e:
            self._record_error(session, e, url=entry.url)
            self.logger.info("page_fetch_failed", url=entry.url, error=e.message)
            page = None

        if page is not None:
            self._process_content(
                session,
                entry.url,
                page.content,
                page.content_type,
                entry.depth,
                page.response_meta(),
            )

            for request in page.requests:
                if session.registry.record(request.url, request.method, EndpointSource.CRAWL, depth=entry.depth):
                    session.api_calls_detected += 1

            for body in page.json_bodies:
                extraction = self.extractor.extract(body, entry.url, "application/json")
                for candidate in extraction.candidates:
                    session.registry.record(candidate.url, candidate.method, candidate.source, depth=entry.depth)

        budget_share = session.pages_scanned / self.config.max_pages
        self._emit(
            session,
            ScanStage.CRAWLING,
            min(80, 10 + budget_share * 70),
            f"Crawled {session.pages_scanned} pages",
            current_url=entry.url,
        )

    def _process_content(
        self,
        session: CrawlSession,
        url: str,
        content: str,
        content_type: Optional[str],
        depth: int,
        meta: Optional[ResponseMeta] = None,
    ):
        """Run fetched content through the extractor and apply what it found"""
        extraction = self.extractor.extract(content, url, content_type)

        for candidate in extraction.candidates:
            recorded = session.registry.record(
                candidate.url,
                candidate.method,
                candidate.source,
                depth=depth,
                confidence=candidate.confidence,
            )
            if recorded is not None and candidate.source is EndpointSource.SCRIPT:
                session.api_calls_detected += 1

        for link in extraction.links:
            session.frontier.offer(link, depth=depth + 1, from_url=url)

        for script in extraction.scripts:
            if urlparse(script).netloc.lower() == session.frontier.host and script not in session.seen_scripts:
                session.seen_scripts.add(script)
                session.script_urls.append(script)

        if meta is not None:
            session.registry.attach_response(url, meta, depth=depth)

    async def _process(self, session: CrawlSession, fetcher: PageFetcher):
        session.state = SessionState.PROCESSING

        if self._stopping:
            self._emit(session, ScanStage.PROCESSING, 95, "Scan stopped, assembling results")
            return

        scripts = session.script_urls[:self.config.max_script_files]
        if scripts:
            self._emit(session, ScanStage.ANALYZING, 85, f"Analyzing {len(scripts)} script files")
            semaphore = asyncio.Semaphore(self.config.max_concurrency)

            async def analyze(url: str):
                async with semaphore:
                    await self._analyze_script(session, fetcher, url)

            await asyncio.gather(*(analyze(url) for url in scripts))

        post_crawl = [s for s in self.strategies if s.run_after_crawl]
        if post_crawl and not self._stopping:
            self._emit(session, ScanStage.PROCESSING, 90, "Predicting endpoints")
            context = self._context(session, fetcher)
            results = await asyncio.gather(
                *(self._run_strategy(session, strategy, context) for strategy in post_crawl)
            )
            for result in results:
                if result is not None:
                    self._apply_discovery(session, result)

        self._emit(session, ScanStage.PROCESSING, 95, "Assembling results")

    async def _analyze_script(self, session: CrawlSession, fetcher: PageFetcher, url: str):
        try:
            page = await fetcher.fetch(url, FetchMode.STATIC)
        except NetworkError as e:
            self._record_error(session, e, url=url)
            return

        session.js_files_analyzed += 1
        for candidate in self.extractor.analyze_script(page.content, url):
            if session.registry.record(
                candidate.url,
                candidate.method,
                candidate.source,
                depth=1,
                confidence=candidate.confidence,
            ):
                session.api_calls_detected += 1

    def _context(self, session: CrawlSession, fetcher: PageFetcher) -> DiscoveryContext:
        return DiscoveryContext(
            base_url=session.base_url,
            config=self.config,
            fetcher=fetcher,
            catalogs=self.catalogs,
            matcher=self.matcher,
            known_endpoints=session.registry.get_endpoints(),
        )

    def _build_result(self, session: CrawlSession, fetcher: PageFetcher) -> CrawlResult:
        endpoints = session.registry.get_endpoints()
        registry_stats = session.registry.get_statistics()

        timings = [e.response.time for e in endpoints if e.response is not None and e.response.time is not None]

        stats = CrawlStats(
            pages_scanned=session.pages_scanned,
            endpoints_found=len(endpoints),
            js_files_analyzed=session.js_files_analyzed,
            api_calls_detected=session.api_calls_detected,
            unique_domains=len({urlparse(e.url).netloc for e in endpoints}),
            avg_response_time=sum(timings) / len(timings) if timings else 0.0,
            requests_made=fetcher.requests_made,
            by_source=registry_stats["by_source"],
            by_method=registry_stats["by_method"],
        )

        return CrawlResult(
            session_id=session.session_id,
            domain=session.domain,
            endpoints=endpoints,
            total_pages=session.pages_scanned,
            total_time=session.elapsed_ms(),
            errors=list(session.errors),
            stats=stats,
        )

    def _emit(
        self,
        session: CrawlSession,
        stage: ScanStage,
        progress: float,
        message: str,
        current_url: Optional[str] = None,
    ):
        if session.progress is not None and stage is not ScanStage.ERROR:
            progress = max(progress, session.progress.progress)

        event = ScanProgress(
            stage=stage,
            progress=progress,
            pages_scanned=session.pages_scanned,
            endpoints_found=len(session.registry),
            message=message,
            current_url=current_url,
        )
        session.progress = event
        self._notify_observers(session.session_id, event)

    def _record_error(self, session: CrawlSession, error: ApiScoutError, url: Optional[str] = None):
        session.errors.append(
            CrawlError(url=url or error.url or session.base_url, error=error.message, kind=error.kind)
        )

    def _fail(self, session: CrawlSession, error: ApiScoutError):
        session.state = SessionState.ERROR
        self._record_error(session, error)
        self.logger.error(
            "session_failed",
            session_id=session.session_id,
            error=error.message,
            kind=error.kind,
            exc_info=True,
        )
        self._emit(session, ScanStage.ERROR, session.progress.progress if session.progress else 0, error.message)

        if self.result_store is not None:
            self.result_store.publish_result(
                session.session_id,
                CrawlResult(
                    session_id=session.session_id,
                    domain=session.domain,
                    total_pages=session.pages_scanned,
                    total_time=session.elapsed_ms(),
                    errors=list(session.errors),
                ),
            )

    def _fail_invalid(self, session_id: str, domain: str, error: ValidationError):
        """Terminal error before a session exists (no I/O was performed)"""
        self.logger.error("invalid_domain", session_id=session_id, domain=domain)

        self._notify_observers(
            session_id,
            ScanProgress(stage=ScanStage.ERROR, progress=0, message=error.message),
        )

        if self.result_store is not None:
            self.result_store.publish_result(
                session_id,
                CrawlResult(
                    session_id=session_id,
                    domain=domain or "",
                    errors=[CrawlError(url=domain or "", error=error.message, kind=error.kind)],
                ),
            )

    async def stop(self):
        """
        Stop the session gracefully.

        No new work is admitted and the browser is released; in-flight
        fetches run to their own timeout and the session completes with
        what it has found so far.
        """
        if not self.is_running:
            return

        self.logger.info(
            "stopping_orchestrator",
            session_id=self.session.session_id if self.session else None,
        )
        self._stopping = True

        if self._fetcher is not None:
            await self._fetcher.release_browser()

    def get_status(self) -> Dict[str, Any]:
        """
        Get current orchestrator status.

        Returns:
            Status dictionary
        """
        session = self.session
        if session is None:
            return {"session_id": None, "state": None, "is_running": self.is_running}

        return {
            "session_id": session.session_id,
            "state": session.state.value,
            "is_running": self.is_running,
            "stopping": self._stopping,
            "pages_scanned": session.pages_scanned,
            "endpoints_found": len(session.registry),
            "queued": len(session.frontier),
            "pending_scripts": len(session.script_urls),
            "errors": len(session.errors),
            "progress": session.progress.to_dict() if session.progress else None,
        }


async def crawl(
    domain: str,
    config: Optional[ScannerConfig] = None,
    on_progress: Optional[ProgressObserver] = None,
    **kwargs,
) -> CrawlResult:
    """
    Run a single discovery session.

    Args:
        domain: Target domain
        config: Scanner configuration (defaults if None)
        on_progress: Optional progress observer
        **kwargs: Forwarded to CrawlOrchestrator

    Returns:
        CrawlResult
    """
    orchestrator = CrawlOrchestrator(config, **kwargs)
    if on_progress is not None:
        orchestrator.subscribe(on_progress)
    return await orchestrator.run(domain)
