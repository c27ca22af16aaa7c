"""
Path probing strategies: well-known locations, common REST paths and
API-revealing response headers.
"""

from .base import DiscoveryContext, DiscoveryResult, DiscoveryStrategy


API_SIGNAL_HEADERS = ("x-api-version", "x-ratelimit-limit", "x-api-key")
CORS_HEADERS = (
    "access-control-allow-origin",
    "access-control-allow-methods",
    "access-control-allow-headers",
)


class WellKnownStrategy(DiscoveryStrategy):
    """HEAD each well-known path; a 200 is an endpoint"""

    name = "well_known"

    async def discover(self, context: DiscoveryContext) -> DiscoveryResult:
        result = DiscoveryResult()
        urls = [context.url(path) for path in context.catalogs.well_known_paths]

        for url, response in await self._probe_many(context, urls, method="HEAD"):
            if response is not None and response.status == 200:
                result.add_endpoint(url)
                result.offer(url)

        return result


class CommonPathsStrategy(DiscoveryStrategy):
    """
    GET each common REST path.

    Any status below 500 counts (a 401/403 still proves the route exists).
    Bodies are handed back as documents so the crawl never fetches these
    URLs again.
    """

    name = "common_paths"

    async def discover(self, context: DiscoveryContext) -> DiscoveryResult:
        result = DiscoveryResult()
        urls = [context.url(path) for path in context.catalogs.common_api_paths]

        for url, response in await self._probe_many(context, urls, method="GET"):
            if response is None:
                continue
            if response.status >= 500:
                self.logger.debug("probe_miss", url=url, status=response.status)
                continue
            result.add_endpoint(url)
            result.add_document(response, url=url)

        return result


class SecurityHeadersStrategy(DiscoveryStrategy):
    """Reads CORS and API headers of the base URL"""

    name = "security_headers"

    async def discover(self, context: DiscoveryContext) -> DiscoveryResult:
        result = DiscoveryResult()
        base = context.url("/")

        response = await self._probe(context, base, method="HEAD")
        if response is None or response.status >= 500:
            return result

        headers = response.headers

        if any(name in headers for name in CORS_HEADERS):
            for path in context.catalogs.cors_probe_paths:
                result.offer(context.url(path))

        if any(name in headers for name in API_SIGNAL_HEADERS):
            result.add_endpoint(base)

        return result
