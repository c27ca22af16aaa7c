"""
Seeding strategies: WebSocket endpoints, mobile APIs, documentation
indexes and third-party integration paths.
"""

import base64
import os
import re
from urllib.parse import urlparse, urlunparse

from ..core.models import HttpMethod
from ..crawler.patterns import resolve_url
from .base import DiscoveryContext, DiscoveryResult, DiscoveryStrategy


WEBSOCKET_STATUSES = (101, 400, 426)
_MOBILE_API_PATH = re.compile(r"['\"](/(?:mobile|app|m)/api[^'\"]*)['\"]")


def to_websocket_url(url: str) -> str:
    """http(s)://... -> ws(s)://..."""
    parsed = urlparse(url)
    scheme = "wss" if parsed.scheme == "https" else "ws"
    return urlunparse(parsed._replace(scheme=scheme))


def websocket_headers() -> dict:
    return {
        "Upgrade": "websocket",
        "Connection": "Upgrade",
        "Sec-WebSocket-Version": "13",
        "Sec-WebSocket-Key": base64.b64encode(os.urandom(16)).decode("ascii"),
    }


class WebSocketStrategy(DiscoveryStrategy):
    """
    Sends upgrade requests to catalog WebSocket paths.

    101 (switched), 400 (bad handshake) and 426 (upgrade required) all mean
    something at that path speaks WebSocket.
    """

    name = "websocket"

    async def discover(self, context: DiscoveryContext) -> DiscoveryResult:
        result = DiscoveryResult()

        for path in context.catalogs.websocket_paths:
            url = context.url(path)
            response = await self._probe(
                context,
                url,
                method="GET",
                headers=websocket_headers(),
                max_redirects=0,
            )
            if response is not None and response.status in WEBSOCKET_STATUSES:
                result.add_endpoint(to_websocket_url(url), method=HttpMethod.WS.value)

        return result


class MobileApiStrategy(DiscoveryStrategy):
    """Fetches the base URL as a mobile client and seeds mobile API paths"""

    name = "mobile_api"

    async def discover(self, context: DiscoveryContext) -> DiscoveryResult:
        result = DiscoveryResult()
        catalogs = context.catalogs

        for path in catalogs.mobile_paths:
            result.offer(context.url(path))
            for version in catalogs.mobile_versions:
                result.offer(context.url(f"{path}/{version}"))

        for user_agent in catalogs.mobile_user_agents:
            response = await self._probe(
                context,
                context.url("/"),
                method="GET",
                headers={"User-Agent": user_agent},
            )
            if response is None or response.status >= 500:
                continue
            for match in _MOBILE_API_PATH.finditer(response.text):
                url = resolve_url(match.group(1), context.base_url)
                if url:
                    result.offer(url)

        return result


class DocIndexStrategy(DiscoveryStrategy):
    """
    Reads documentation and repository index pages.

    API description files they reference (swagger/openapi, Postman and
    Insomnia collections) are offered to the frontier.
    """

    name = "doc_index"

    async def discover(self, context: DiscoveryContext) -> DiscoveryResult:
        result = DiscoveryResult()
        patterns = [re.compile(p, re.IGNORECASE) for p in context.catalogs.doc_file_patterns]

        urls = [context.url(path) for path in context.catalogs.doc_index_paths]
        for url, response in await self._probe_many(context, urls, method="GET"):
            if response is None or response.status != 200 or not response.text:
                continue

            result.add_document(response, url=url)
            for pattern in patterns:
                for match in pattern.finditer(response.text):
                    result.offer(context.url(match.group(0)))

        return result


class ThirdPartyStrategy(DiscoveryStrategy):
    """Offers catalog third-party integration paths for the crawl to verify"""

    name = "third_party"

    async def discover(self, context: DiscoveryContext) -> DiscoveryResult:
        result = DiscoveryResult()
        for paths in context.catalogs.third_party_paths.values():
            for path in paths:
                result.offer(context.url(path))
        return result
