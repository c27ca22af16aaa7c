"""
Progress and result publishing.

The crawl engine never stores sessions itself. Callers hand it observers
(for progress) and optionally a ResultStore (for the terminal CrawlResult);
retention and expiry belong to whoever owns the store.
"""

from typing import Callable, Dict, List, Optional, Protocol

import structlog

from .models import CrawlResult, ScanProgress


ProgressObserver = Callable[[ScanProgress], None]


class ResultStore(Protocol):
    """External progress/result store"""

    def publish_progress(self, session_id: str, progress: ScanProgress) -> None:
        ...

    def publish_result(self, session_id: str, result: CrawlResult) -> None:
        ...


class MemoryResultStore:
    """
    In-process store keeping the latest progress and the final result per session.

    Example:
        >>> store = MemoryResultStore()
        >>> orchestrator.subscribe(store_observer(store, session_id))
        >>> store.latest_progress(session_id).stage
    """

    def __init__(self):
        self._progress: Dict[str, List[ScanProgress]] = {}
        self._results: Dict[str, CrawlResult] = {}
        self.logger = structlog.get_logger(__name__)

    def publish_progress(self, session_id: str, progress: ScanProgress) -> None:
        self._progress.setdefault(session_id, []).append(progress)

    def publish_result(self, session_id: str, result: CrawlResult) -> None:
        self._results[session_id] = result
        self.logger.info(
            "result_published",
            session_id=session_id,
            endpoints=len(result.endpoints),
            errors=len(result.errors),
        )

    def latest_progress(self, session_id: str) -> Optional[ScanProgress]:
        history = self._progress.get(session_id)
        return history[-1] if history else None

    def progress_history(self, session_id: str) -> List[ScanProgress]:
        return list(self._progress.get(session_id, []))

    def get_result(self, session_id: str) -> Optional[CrawlResult]:
        return self._results.get(session_id)

    def discard(self, session_id: str):
        """Drop everything held for a session"""
        self._progress.pop(session_id, None)
        self._results.pop(session_id, None)


def store_observer(store: ResultStore, session_id: str) -> ProgressObserver:
    """Adapt a ResultStore to the orchestrator's observer interface"""

    def publish(progress: ScanProgress) -> None:
        store.publish_progress(session_id, progress)

    publish.__name__ = f"store_observer[{session_id}]"
    return publish
