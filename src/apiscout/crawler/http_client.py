"""
HTTP client boundary.

The fetcher talks to the network only through the HttpClient protocol, so
tests can inject an in-memory fake. AiohttpClient is the production
implementation on aiohttp.
"""

import asyncio
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional, Protocol

import aiohttp
import structlog

from ..core.exceptions import NetworkError


StatusValidator = Callable[[int], bool]


def accept_below_500(status: int) -> bool:
    return status < 500


@dataclass
class HttpResponse:
    """A fully read HTTP response"""
    url: str                       # final URL after redirects
    status: int
    headers: Dict[str, str] = field(default_factory=dict)  # lowercased names
    text: str = ""
    elapsed: float = 0.0           # milliseconds

    @property
    def content_type(self) -> Optional[str]:
        return self.headers.get("content-type")

    @property
    def size(self) -> int:
        return len(self.text.encode("utf-8", errors="ignore"))


class HttpClient(Protocol):
    """Raw HTTP client used by the fetcher"""

    async def request(
        self,
        method: str,
        url: str,
        timeout: float,
        headers: Optional[Dict[str, str]] = None,
        max_redirects: int = 5,
        validate_status: StatusValidator = accept_below_500,
    ) -> HttpResponse:
        ...

    async def close(self) -> None:
        ...


class AiohttpClient:
    """
    HttpClient on aiohttp.ClientSession.

    The session is created lazily on first use and owned by this client.

    Example:
        >>> client = AiohttpClient(user_agent="APIScout/1.0")
        >>> response = await client.request("GET", "https://example.com/", timeout=10)
        >>> await client.close()
    """

    def __init__(self, user_agent: Optional[str] = None, verify_ssl: bool = False):
        self.user_agent = user_agent
        self.verify_ssl = verify_ssl
        self._session: Optional[aiohttp.ClientSession] = None
        self.logger = structlog.get_logger(__name__)

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            headers = {"User-Agent": self.user_agent} if self.user_agent else None
            self._session = aiohttp.ClientSession(headers=headers)
        return self._session

    async def request(
        self,
        method: str,
        url: str,
        timeout: float,
        headers: Optional[Dict[str, str]] = None,
        max_redirects: int = 5,
        validate_status: StatusValidator = accept_below_500,
    ) -> HttpResponse:
        """
        Issue a request and read the body.

        Args:
            method: HTTP method
            url: Absolute URL
            timeout: Total timeout in seconds
            headers: Extra request headers
            max_redirects: Redirects to follow (0 disables following)
            validate_status: Predicate a status must satisfy

        Returns:
            HttpResponse

        Raises:
            NetworkError: On timeout, connection failure or rejected status
        """
        session = self._get_session()
        started = time.perf_counter()

        try:
            async with session.request(
                method,
                url,
                headers=headers,
                allow_redirects=max_redirects > 0,
                max_redirects=max(1, max_redirects),
                timeout=aiohttp.ClientTimeout(total=timeout),
                ssl=None if self.verify_ssl else False,
            ) as resp:
                text = ""
                if method.upper() != "HEAD":
                    text = await resp.text(errors="replace")
                response = HttpResponse(
                    url=str(resp.url),
                    status=resp.status,
                    headers={k.lower(): v for k, v in resp.headers.items()},
                    text=text,
                    elapsed=(time.perf_counter() - started) * 1000,
                )
        except asyncio.TimeoutError:
            raise NetworkError(f"Timed out after {timeout:.1f}s", url=url)
        except aiohttp.ClientError as e:
            raise NetworkError(f"{type(e).__name__}: {e}", url=url)

        if not validate_status(response.status):
            raise NetworkError(f"HTTP {response.status}", url=url, status=response.status)

        return response

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None
