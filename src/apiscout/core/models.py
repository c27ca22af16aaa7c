"""
Data model for discovered endpoints, scan progress and crawl results.

These records are shared by every component of the crawl engine. They are
plain dataclasses; each one knows how to serialize itself to a JSON-ready
dictionary for the CLI and for external result stores.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class HttpMethod(Enum):
    """HTTP methods an endpoint can be discovered with (WS = WebSocket)"""
    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    PATCH = "PATCH"
    DELETE = "DELETE"
    HEAD = "HEAD"
    OPTIONS = "OPTIONS"
    WS = "WS"


class EndpointSource(Enum):
    """How an endpoint was discovered"""
    CRAWL = "crawl"      # crawled link, network observation or probe
    SCRIPT = "js"        # script analysis
    HTML = "html"        # form action or anchor
    SITEMAP = "sitemap"
    ROBOTS = "robots"


class ParameterKind(Enum):
    """Where a parameter is carried"""
    QUERY = "query"
    PATH = "path"
    BODY = "body"
    HEADER = "header"


class RiskLevel(Enum):
    """Aggregate severity, ordered from low to critical"""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _RISK_ORDER.index(self)


_RISK_ORDER = [RiskLevel.LOW, RiskLevel.MEDIUM, RiskLevel.HIGH, RiskLevel.CRITICAL]


class ScanStage(Enum):
    """Stage reported in progress events"""
    INITIALIZING = "initializing"
    CRAWLING = "crawling"
    ANALYZING = "analyzing"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"


@dataclass
class Parameter:
    """A named input of an endpoint"""
    name: str
    kind: ParameterKind = ParameterKind.QUERY
    required: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "type": self.kind.value, "required": self.required}


@dataclass
class Header:
    name: str
    value: str

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "value": self.value}


@dataclass
class ResponseMeta:
    """Response metadata observed for an endpoint"""
    status: Optional[int] = None
    size: Optional[int] = None
    time: Optional[float] = None  # milliseconds
    content_type: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "size": self.size,
            "time": self.time,
            "content_type": self.content_type,
        }


@dataclass
class Vulnerability:
    """A single finding raised by the security classifier"""
    type: str
    severity: RiskLevel
    description: str
    recommendation: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "severity": self.severity.value,
            "description": self.description,
            "recommendation": self.recommendation,
        }


@dataclass
class SecurityAnalysis:
    """
    Security classification of an endpoint.

    risk_level is always the maximum severity among the findings, or LOW
    when there are none.
    """
    has_auth: bool = False
    vulnerabilities: List[Vulnerability] = field(default_factory=list)
    auth_type: Optional[str] = None

    @property
    def risk_level(self) -> RiskLevel:
        if not self.vulnerabilities:
            return RiskLevel.LOW
        return max((v.severity for v in self.vulnerabilities), key=lambda level: level.rank)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "has_auth": self.has_auth,
            "auth_type": self.auth_type,
            "vulnerabilities": [v.to_dict() for v in self.vulnerabilities],
            "risk_level": self.risk_level.value,
        }


def endpoint_id(method: str, url: str) -> str:
    """Identity of an endpoint in the registry"""
    return f"{method}:{url}"


@dataclass
class Endpoint:
    """Represents a discovered (method, URL) pair"""
    url: str
    method: HttpMethod = HttpMethod.GET
    parameters: List[Parameter] = field(default_factory=list)
    headers: List[Header] = field(default_factory=list)
    depth: int = 0
    source: EndpointSource = EndpointSource.CRAWL
    response: Optional[ResponseMeta] = None
    security: SecurityAnalysis = field(default_factory=SecurityAnalysis)
    confidence: Optional[float] = None

    @property
    def id(self) -> str:
        return endpoint_id(self.method.value, self.url)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization"""
        return {
            "id": self.id,
            "url": self.url,
            "method": self.method.value,
            "parameters": [p.to_dict() for p in self.parameters],
            "headers": [h.to_dict() for h in self.headers],
            "depth": self.depth,
            "source": self.source.value,
            "response": self.response.to_dict() if self.response else None,
            "security": self.security.to_dict(),
            "confidence": self.confidence,
        }


@dataclass
class ScanProgress:
    """A progress event streamed to observers while a session runs"""
    stage: ScanStage
    progress: float = 0.0
    pages_scanned: int = 0
    endpoints_found: int = 0
    message: str = ""
    current_url: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "stage": self.stage.value,
            "progress": round(self.progress, 2),
            "pages_scanned": self.pages_scanned,
            "endpoints_found": self.endpoints_found,
            "current_url": self.current_url,
            "message": self.message,
        }


@dataclass
class CrawlError:
    """An entry of the session error log"""
    url: str
    error: str
    kind: str = "network"
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "url": self.url,
            "error": self.error,
            "kind": self.kind,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class CrawlStats:
    """Aggregate statistics of a finished session"""
    pages_scanned: int = 0
    endpoints_found: int = 0
    js_files_analyzed: int = 0
    api_calls_detected: int = 0
    unique_domains: int = 0
    avg_response_time: float = 0.0
    requests_made: int = 0
    by_source: Dict[str, int] = field(default_factory=dict)
    by_method: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "pages_scanned": self.pages_scanned,
            "endpoints_found": self.endpoints_found,
            "js_files_analyzed": self.js_files_analyzed,
            "api_calls_detected": self.api_calls_detected,
            "unique_domains": self.unique_domains,
            "avg_response_time": round(self.avg_response_time, 2),
            "requests_made": self.requests_made,
            "by_source": dict(self.by_source),
            "by_method": dict(self.by_method),
        }


@dataclass
class CrawlResult:
    """Terminal snapshot of a crawl session"""
    domain: str
    endpoints: List[Endpoint] = field(default_factory=list)
    total_pages: int = 0
    total_time: float = 0.0  # milliseconds
    errors: List[CrawlError] = field(default_factory=list)
    stats: CrawlStats = field(default_factory=CrawlStats)
    session_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization"""
        return {
            "session_id": self.session_id,
            "domain": self.domain,
            "endpoints": [e.to_dict() for e in self.endpoints],
            "total_pages": self.total_pages,
            "total_time": round(self.total_time, 2),
            "errors": [e.to_dict() for e in self.errors],
            "stats": self.stats.to_dict(),
        }
