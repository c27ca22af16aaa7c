"""
Exception hierarchy for the crawl engine.

Only ValidationError and SessionError are fatal to a session. Every other
error kind is recovered where it happens and recorded in the session error log.
"""

from typing import Optional


class ApiScoutError(Exception):
    """Base exception for all APISCOUT errors"""

    kind = "unknown"

    def __init__(self, message: str, url: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.url = url


class ValidationError(ApiScoutError):
    """Raised when the target domain is malformed (before any network I/O)"""

    kind = "validation"


class NetworkError(ApiScoutError):
    """Raised when a fetch fails: timeout, DNS, connection reset, status >= 500"""

    kind = "network"

    def __init__(self, message: str, url: Optional[str] = None, status: Optional[int] = None):
        super().__init__(message, url=url)
        self.status = status


class RenderError(ApiScoutError):
    """Raised when the headless browser fails to launch or navigate"""

    kind = "render"


class ParseError(ApiScoutError):
    """Raised when JSON/XML/YAML content cannot be parsed"""

    kind = "parse"


class StrategyError(ApiScoutError):
    """Raised (and isolated) when a discovery strategy fails"""

    kind = "strategy"


class SessionError(ApiScoutError):
    """Raised when an unexpected exception escapes every other boundary"""

    kind = "session"
