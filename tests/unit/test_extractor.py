"""
Unit tests for ContentExtractor.

Run with: pytest tests/unit/test_extractor.py -v
"""

import json
import time

import pytest

from apiscout.core.exceptions import ParseError
from apiscout.core.models import EndpointSource
from apiscout.crawler.extractor import (
    ContentExtractor,
    EndpointCandidate,
    ExtractionResult,
    parse_document,
    parse_sitemap_locs,
)


BASE = "https://example.com/"

PAGE = """
<html>
  <head><script src="/static/app.js"></script></head>
  <body>
    <a href="/api/users">Users</a>
    <a href="/about">About</a>
    <a href="mailto:team@example.com">Mail</a>
    <form action="/api/login" method="post"><input name="user"></form>
    <form action="/search"><input name="q"></form>
    <script>fetch('/api/v1/orders').then(r => r.json())</script>
  </body>
</html>
"""


def keys(result):
    return {(c.method, c.url) for c in result.candidates}


class TestExtractionResult:
    """Test suite for ExtractionResult"""

    def test_candidates_deduplicated_by_method_and_url(self):
        result = ExtractionResult()

        assert result.add_candidate(EndpointCandidate(url="https://a.com/api", source=EndpointSource.HTML))
        assert not result.add_candidate(EndpointCandidate(url="https://a.com/api", source=EndpointSource.SCRIPT))
        assert result.add_candidate(EndpointCandidate(url="https://a.com/api", method="POST"))

        assert len(result.candidates) == 2
        assert result.candidates[0].source is EndpointSource.HTML


class TestHtmlExtraction:
    """Test suite for HTML pages"""

    def setup_method(self):
        self.extractor = ContentExtractor()

    def test_page_candidates(self):
        """Test anchors, forms and inline scripts each contribute"""
        result = self.extractor.extract(PAGE, BASE, "text/html")

        assert ("GET", "https://example.com/api/users") in keys(result)
        assert ("POST", "https://example.com/api/login") in keys(result)
        assert ("GET", "https://example.com/api/v1/orders") in keys(result)

    def test_sources(self):
        """Test each candidate is tagged with how it was found"""
        result = self.extractor.extract(PAGE, BASE, "text/html")
        sources = {c.url: c.source for c in result.candidates}

        assert sources["https://example.com/api/users"] is EndpointSource.HTML
        assert sources["https://example.com/api/login"] is EndpointSource.HTML
        assert sources["https://example.com/api/v1/orders"] is EndpointSource.SCRIPT

    def test_form_method_defaults_to_get(self):
        result = self.extractor.extract(PAGE, BASE, "text/html")

        assert ("GET", "https://example.com/search") in keys(result)

    def test_links_and_scripts(self):
        """Test every resolvable anchor is a link and script src is collected"""
        result = self.extractor.extract(PAGE, BASE, "text/html")

        assert "https://example.com/about" in result.links
        assert "https://example.com/api/users" in result.links
        assert all(not link.startswith("mailto:") for link in result.links)
        assert result.scripts == ["https://example.com/static/app.js"]

    def test_plain_links_are_not_candidates(self):
        result = self.extractor.extract(PAGE, BASE, "text/html")

        assert ("GET", "https://example.com/about") not in keys(result)

    def test_json_script_block(self):
        """Test application/json script blocks are parsed as documents"""
        html = """
            <html><body>
            <script type="application/json">{"config": {"api": "https://example.com/api/v2/config"}}</script>
            </body></html>
        """
        result = self.extractor.extract(html, BASE)

        assert ("GET", "https://example.com/api/v2/config") in keys(result)

    def test_absolute_urls_in_markup(self):
        html = '<html><div data-endpoint="https://api.example.com/v1/users"></div></html>'

        result = self.extractor.extract(html, BASE)

        assert ("GET", "https://api.example.com/v1/users") in keys(result)

    def test_empty_content(self):
        result = self.extractor.extract("", BASE, "text/html")

        assert result.candidates == []
        assert result.links == []

    def test_large_page(self):
        """Test a page with tens of thousands of links is extracted in linear time"""
        anchors = "".join(f'<a href="/api/items/{i}">{i}</a>' for i in range(30000))
        urls = " ".join(f"https://example.com/api/v1/records/{i}" for i in range(30000))
        html = f"<html><body>{anchors}<p>{urls} {urls}</p></body></html>"

        started = time.perf_counter()
        result = self.extractor.extract(html, BASE, "text/html")
        elapsed = time.perf_counter() - started

        assert len(result.links) == 30000
        assert len(result.candidates) == 60000
        assert elapsed < 10.0


class TestDocumentExtraction:
    """Test suite for JSON, YAML and XML documents"""

    def setup_method(self):
        self.extractor = ContentExtractor()

    def test_json_string_values(self):
        body = json.dumps({
            "links": {"self": "/api/v1/items?page=2", "next": "/api/v1/items?page=3"},
            "title": "not an api value",
        })
        result = self.extractor.extract(body, BASE, "application/json")

        assert ("GET", "https://example.com/api/v1/items?page=2") in keys(result)
        assert ("GET", "https://example.com/api/v1/items?page=3") in keys(result)
        assert len(result.candidates) == 2

    def test_openapi_paths(self):
        """Test OpenAPI documents yield one candidate per path and operation"""
        spec = {
            "openapi": "3.0.0",
            "servers": [{"url": "https://example.com/api"}],
            "paths": {
                "/users": {"get": {}, "post": {}},
                "/users/{id}": {"delete": {}, "parameters": []},
            },
        }
        result = self.extractor.extract(json.dumps(spec), "https://example.com/openapi.json")

        assert ("GET", "https://example.com/api/users") in keys(result)
        assert ("POST", "https://example.com/api/users") in keys(result)
        assert ("DELETE", "https://example.com/api/users/{id}") in keys(result)

    def test_swagger_base_path(self):
        spec = "swagger: '2.0'\nbasePath: /v1\npaths:\n  /pets:\n    get: {}\n"

        result = self.extractor.extract(spec, "https://example.com/swagger.yaml")

        assert ("GET", "https://example.com/v1/pets") in keys(result)

    def test_malformed_json_dropped(self):
        """Test malformed documents yield nothing instead of raising"""
        result = self.extractor.extract('{"broken": ', BASE, "application/json")

        assert result.candidates == []

    def test_sitemap(self):
        xml = """<?xml version="1.0" encoding="UTF-8"?>
            <urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">
              <url><loc>https://example.com/api/v1/catalog</loc></url>
              <url><loc>https://example.com/about</loc></url>
            </urlset>"""
        result = self.extractor.extract(xml, "https://example.com/sitemap.xml", "application/xml")

        assert "https://example.com/about" in result.links
        assert keys(result) == {("GET", "https://example.com/api/v1/catalog")}
        assert result.candidates[0].source is EndpointSource.SITEMAP

    def test_parse_document_raises_parse_error(self):
        with pytest.raises(ParseError):
            parse_document("{", json.loads)

    @pytest.mark.parametrize("content_type", ["application/json", "application/yaml"])
    def test_deeply_nested_document_dropped(self, content_type):
        """Test nesting deeper than the parser stack yields nothing instead of raising"""
        content = "[" * 100000 + "]" * 100000

        result = self.extractor.extract(content, "https://example.com/api/deep", content_type)

        assert result.candidates == []

    def test_parse_document_nesting_too_deep(self):
        with pytest.raises(ParseError):
            parse_document("[" * 100000 + "]" * 100000, json.loads)

    def test_parse_sitemap_locs_order(self):
        xml = "<sitemapindex><sitemap><loc>/a.xml</loc></sitemap><sitemap><loc>/b.xml</loc></sitemap></sitemapindex>"

        assert parse_sitemap_locs(xml) == ["/a.xml", "/b.xml"]


class TestScriptAnalysis:
    """Test suite for analyze_script()"""

    def setup_method(self):
        self.extractor = ContentExtractor()

    def test_methods_detected(self):
        js = """
            axios.post('/api/orders', order);
            fetch('/api/orders/1', { method: 'DELETE' });
            fetch('/api/profile');
        """
        candidates = self.extractor.analyze_script(js, "https://example.com/static/app.js")
        found = {(c.method, c.url) for c in candidates}

        assert ("POST", "https://example.com/api/orders") in found
        assert ("DELETE", "https://example.com/api/orders/1") in found
        assert ("GET", "https://example.com/api/profile") in found
        assert all(c.source is EndpointSource.SCRIPT for c in candidates)
        assert all(c.confidence is not None for c in candidates if c.url.endswith("/api/profile"))

    def test_weak_hints_need_api_shape(self):
        """Test config keys are only kept when they look like an API"""
        js = "const a = { url: '/about-us' }; const b = { url: '/api/settings' };"

        found = {c.url for c in self.extractor.analyze_script(js, BASE)}

        assert "https://example.com/api/settings" in found
        assert "https://example.com/about-us" not in found

    def test_network_calls_always_kept(self):
        found = {c.url for c in self.extractor.analyze_script("fetch('/healthz')", BASE)}

        assert found == {"https://example.com/healthz"}

    def test_javascript_content_type(self):
        result = self.extractor.extract("fetch('/api/ping')", "https://example.com/x", "application/javascript")

        assert keys(result) == {("GET", "https://example.com/api/ping")}


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
