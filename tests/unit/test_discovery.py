"""
Unit tests for discovery strategies.

Run with: pytest tests/unit/test_discovery.py -v
"""

import dataclasses

import pytest

from apiscout.core.config import ScannerConfig
from apiscout.core.models import EndpointSource, HttpMethod
from apiscout.crawler.fetcher import PageFetcher
from apiscout.discovery import (
    CommonPathsStrategy,
    DiscoveryContext,
    DocIndexStrategy,
    FingerprintStrategy,
    MobileApiStrategy,
    RobotsStrategy,
    SecurityHeadersStrategy,
    SitemapStrategy,
    SubdomainStrategy,
    ThirdPartyStrategy,
    WebSocketStrategy,
    WellKnownStrategy,
    default_strategies,
    detect_framework,
)


BASE = "https://example.com"


def make_context(http_client, catalogs, base_url=BASE, **catalog_overrides):
    config = ScannerConfig(crawl_delay=0)
    return DiscoveryContext(
        base_url=base_url,
        config=config,
        fetcher=PageFetcher(config, http_client=http_client),
        catalogs=dataclasses.replace(catalogs, **catalog_overrides),
    )


def endpoint_keys(result):
    return {(c.method, c.url) for c in result.endpoints}


class TestDefaultStrategies:
    """Test suite for the strategy set"""

    def test_all_strategies_present(self):
        strategies = default_strategies()
        names = [s.name for s in strategies]

        assert len(names) == len(set(names)) == 12
        assert [s.name for s in strategies if s.run_after_crawl] == ["prediction"]


class TestProbeStrategies:
    """Test suite for path probing strategies"""

    @pytest.mark.asyncio
    async def test_well_known(self, http_client, catalogs):
        """Test only a 200 HEAD counts"""
        http_client.add(f"{BASE}/openapi.json", status=200)
        http_client.add(f"{BASE}/swagger.json", status=404)
        context = make_context(
            http_client, catalogs,
            well_known_paths=("/openapi.json", "/swagger.json", "/graphql"),
        )

        result = await WellKnownStrategy().discover(context)

        assert endpoint_keys(result) == {("GET", f"{BASE}/openapi.json")}
        assert result.urls == [f"{BASE}/openapi.json"]
        assert set(http_client.requested("HEAD")) == {
            f"{BASE}/openapi.json", f"{BASE}/swagger.json", f"{BASE}/graphql",
        }

    @pytest.mark.asyncio
    async def test_common_paths(self, http_client, catalogs):
        """Test any status below 500 counts and the body becomes a document"""
        http_client.add(f"{BASE}/api", '{"users": "/api/users"}', headers={"Content-Type": "application/json"})
        http_client.add(f"{BASE}/api/admin", status=401)
        http_client.add(f"{BASE}/rest", status=503)
        context = make_context(
            http_client, catalogs,
            common_api_paths=("/api", "/api/admin", "/rest", "/missing"),
        )

        result = await CommonPathsStrategy().discover(context)

        assert endpoint_keys(result) == {("GET", f"{BASE}/api"), ("GET", f"{BASE}/api/admin")}
        documents = {d.url: d for d in result.documents}
        assert documents[f"{BASE}/api"].content_type == "application/json"
        assert documents[f"{BASE}/api/admin"].status == 401
        assert set(http_client.requested("GET")) == {
            f"{BASE}/api", f"{BASE}/api/admin", f"{BASE}/rest", f"{BASE}/missing",
        }

    @pytest.mark.asyncio
    async def test_security_headers(self, http_client, catalogs):
        http_client.add(
            f"{BASE}/",
            headers={"Access-Control-Allow-Origin": "*", "X-RateLimit-Limit": "100"},
        )
        context = make_context(http_client, catalogs, cors_probe_paths=("/api", "/v1"))

        result = await SecurityHeadersStrategy().discover(context)

        assert result.urls == [f"{BASE}/api", f"{BASE}/v1"]
        assert endpoint_keys(result) == {("GET", f"{BASE}/")}

    @pytest.mark.asyncio
    async def test_unreachable_target(self, http_client, catalogs):
        """Test probe misses yield an empty result rather than an error"""
        context = make_context(http_client, catalogs)

        result = await SecurityHeadersStrategy().discover(context)

        assert len(result) == 0


class TestSitemapStrategies:
    """Test suite for sitemap and robots.txt discovery"""

    SITEMAP_INDEX = """<?xml version="1.0"?>
        <sitemapindex><sitemap><loc>https://example.com/sitemap-api.xml</loc></sitemap></sitemapindex>"""

    SITEMAP = """<?xml version="1.0"?>
        <urlset>
          <url><loc>https://example.com/api/v1/products</loc></url>
          <url><loc>https://example.com/contact</loc></url>
        </urlset>"""

    @pytest.mark.asyncio
    async def test_sitemap_index_followed(self, http_client, catalogs):
        http_client.add(f"{BASE}/sitemap.xml", self.SITEMAP_INDEX)
        http_client.add(f"{BASE}/sitemap-api.xml", self.SITEMAP)
        context = make_context(http_client, catalogs, sitemap_locations=("/sitemap.xml",))

        result = await SitemapStrategy().discover(context)

        assert endpoint_keys(result) == {("GET", f"{BASE}/api/v1/products")}
        assert result.endpoints[0].source is EndpointSource.SITEMAP
        assert result.urls == [f"{BASE}/api/v1/products"]
        assert result.fetched == [f"{BASE}/sitemap.xml", f"{BASE}/sitemap-api.xml"]

    @pytest.mark.asyncio
    async def test_robots(self, http_client, catalogs):
        http_client.add(
            f"{BASE}/robots.txt",
            "User-agent: *\nDisallow: /api/private/\nDisallow: /tmp\nAllow: /v2/*\n"
            f"Sitemap: {BASE}/sitemap-api.xml\n",
        )
        http_client.add(f"{BASE}/sitemap-api.xml", self.SITEMAP)
        context = make_context(http_client, catalogs)

        result = await RobotsStrategy().discover(context)

        assert result.robots is not None
        assert result.robots.disallow == ["/api/private/", "/tmp"]
        assert ("GET", f"{BASE}/api/private/") in endpoint_keys(result)
        assert ("GET", f"{BASE}/v2/") in endpoint_keys(result)
        assert ("GET", f"{BASE}/tmp") not in endpoint_keys(result)
        assert ("GET", f"{BASE}/api/v1/products") in endpoint_keys(result)
        sources = {c.url: c.source for c in result.endpoints}
        assert sources[f"{BASE}/api/private/"] is EndpointSource.ROBOTS

    @pytest.mark.asyncio
    async def test_missing_robots(self, http_client, catalogs):
        http_client.add(f"{BASE}/robots.txt", "not found", status=404)

        result = await RobotsStrategy().discover(make_context(http_client, catalogs))

        assert result.robots is None
        assert len(result) == 0


class TestFingerprint:
    """Test suite for framework fingerprinting"""

    def test_detect_framework_header_first(self, catalogs):
        framework = detect_framework(catalogs, {"x-powered-by": "Express"}, "built with django")

        assert framework == "express"

    def test_detect_framework_body(self, catalogs):
        assert detect_framework(catalogs, {}, "<meta name='generator' content='WordPress 6.4'>") == "wordpress"
        assert detect_framework(catalogs, {}, "<html>plain</html>") is None

    @pytest.mark.asyncio
    async def test_framework_paths_probed(self, http_client, catalogs):
        http_client.add(f"{BASE}/", "<html>wordpress</html>")
        http_client.add(f"{BASE}/wp-json", status=200, method="HEAD")
        http_client.add(f"{BASE}/wp-json/wp/v2", status=500, method="HEAD")
        context = make_context(
            http_client, catalogs,
            framework_paths={"wordpress": ("/wp-json", "/wp-json/wp/v2")},
        )

        result = await FingerprintStrategy().discover(context)

        assert endpoint_keys(result) == {("GET", f"{BASE}/wp-json")}
        assert result.urls == [f"{BASE}/wp-json"]


class TestSubdomains:
    """Test suite for API subdomain discovery"""

    @pytest.mark.asyncio
    async def test_responding_subdomains(self, http_client, catalogs):
        http_client.add("https://api.example.com", status=200)
        http_client.add("https://gateway.example.com", status=502)
        context = make_context(
            http_client, catalogs,
            api_subdomains=("api", "gateway", "rest"),
            subdomain_probe_paths=("/", "/v1"),
        )

        result = await SubdomainStrategy().discover(context)

        assert result.urls == ["https://api.example.com/", "https://api.example.com/v1"]

    @pytest.mark.asyncio
    async def test_skips_ip_targets(self, http_client, catalogs):
        context = make_context(http_client, catalogs, base_url="http://192.168.1.1")

        result = await SubdomainStrategy().discover(context)

        assert len(result) == 0
        assert http_client.calls == []


class TestSeedStrategies:
    """Test suite for WebSocket, mobile, documentation and third-party seeds"""

    @pytest.mark.asyncio
    async def test_websocket(self, http_client, catalogs):
        http_client.add(f"{BASE}/ws", status=426)
        http_client.add(f"{BASE}/live", status=404)
        context = make_context(http_client, catalogs, websocket_paths=("/ws", "/live", "/chat"))

        result = await WebSocketStrategy().discover(context)

        assert endpoint_keys(result) == {(HttpMethod.WS.value, "wss://example.com/ws")}
        headers = http_client.calls[0][2]
        assert headers["Upgrade"] == "websocket"
        assert headers["Sec-WebSocket-Version"] == "13"

    @pytest.mark.asyncio
    async def test_mobile(self, http_client, catalogs):
        http_client.add(f"{BASE}/", "<script>var base = '/mobile/api/v2/feed';</script>")
        context = make_context(
            http_client, catalogs,
            mobile_paths=("/m/api",),
            mobile_versions=("v1",),
            mobile_user_agents=("TestPhone/1.0",),
        )

        result = await MobileApiStrategy().discover(context)

        assert result.urls == [f"{BASE}/m/api", f"{BASE}/m/api/v1", f"{BASE}/mobile/api/v2/feed"]
        assert http_client.calls[0][2]["User-Agent"] == "TestPhone/1.0"

    @pytest.mark.asyncio
    async def test_doc_index(self, http_client, catalogs):
        http_client.add(f"{BASE}/docs", "See /openapi.yaml and /postman_collection.json")
        context = make_context(http_client, catalogs, doc_index_paths=("/docs", "/readme"))

        result = await DocIndexStrategy().discover(context)

        assert [d.url for d in result.documents] == [f"{BASE}/docs"]
        assert f"{BASE}/openapi.yaml" in result.urls

    @pytest.mark.asyncio
    async def test_third_party(self, http_client, catalogs):
        context = make_context(
            http_client, catalogs,
            third_party_paths={"payments": ("/stripe/webhook",), "analytics": ("/collect",)},
        )

        result = await ThirdPartyStrategy().discover(context)

        assert result.urls == [f"{BASE}/stripe/webhook", f"{BASE}/collect"]
        assert http_client.calls == []


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
