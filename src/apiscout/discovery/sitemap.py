"""
Sitemap and robots.txt discovery.
"""

from typing import Set

from ..core.models import EndpointSource
from ..crawler.extractor import parse_sitemap_locs
from ..crawler.patterns import looks_like_api, resolve_url
from ..crawler.robots import parse_robots
from .base import DiscoveryContext, DiscoveryResult, DiscoveryStrategy


async def collect_sitemap(
    strategy: DiscoveryStrategy,
    context: DiscoveryContext,
    sitemap_url: str,
    result: DiscoveryResult,
    seen: Set[str],
    nested: bool = True,
):
    """
    Fetch one sitemap and record the API-looking locations it lists.

    Sitemap indexes are followed one level deep.
    """
    if sitemap_url in seen:
        return
    seen.add(sitemap_url)

    response = await strategy._probe(context, sitemap_url, method="GET")
    if response is None or response.status != 200:
        return
    result.fetched.append(sitemap_url)

    for loc in parse_sitemap_locs(response.text):
        url = resolve_url(loc, sitemap_url)
        if not url:
            continue

        path = url.split("?", 1)[0].lower()
        if nested and path.endswith(".xml") and "sitemap" in path:
            await collect_sitemap(strategy, context, url, result, seen, nested=False)
            continue

        if looks_like_api(url):
            result.add_endpoint(url, source=EndpointSource.SITEMAP)
            result.offer(url)


class SitemapStrategy(DiscoveryStrategy):
    """Reads the catalog sitemap locations"""

    name = "sitemap"

    async def discover(self, context: DiscoveryContext) -> DiscoveryResult:
        result = DiscoveryResult()
        seen: Set[str] = set()

        for path in context.catalogs.sitemap_locations:
            await collect_sitemap(self, context, context.url(path), result, seen)

        return result


class RobotsStrategy(DiscoveryStrategy):
    """
    Mines /robots.txt.

    Allow/Disallow paths that look like APIs become endpoints, Sitemap
    directives are read like catalog sitemaps, and the parsed rules are
    handed to the orchestrator for the respect_robots policy.
    """

    name = "robots"

    async def discover(self, context: DiscoveryContext) -> DiscoveryResult:
        result = DiscoveryResult()
        robots_url = context.url("/robots.txt")

        response = await self._probe(context, robots_url, method="GET")
        if response is None or response.status != 200:
            return result
        result.fetched.append(robots_url)

        rules = parse_robots(response.text)
        result.robots = rules

        for path in rules.paths:
            # Wildcard rules are patterns, not paths
            concrete = path.split("*", 1)[0].rstrip("$")
            if not concrete or concrete == "/" or not looks_like_api(concrete):
                continue
            url = resolve_url(concrete, context.base_url)
            if url:
                result.add_endpoint(url, source=EndpointSource.ROBOTS)
                result.offer(url)

        seen: Set[str] = set()
        for sitemap_url in rules.sitemaps:
            url = resolve_url(sitemap_url, context.base_url)
            if url:
                await collect_sitemap(self, context, url, result, seen)

        self.logger.debug(
            "robots_parsed",
            paths=len(rules.paths),
            sitemaps=len(rules.sitemaps),
            endpoints=len(result.endpoints),
        )
        return result
