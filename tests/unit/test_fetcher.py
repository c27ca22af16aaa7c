"""
Unit tests for PageFetcher.

Run with: pytest tests/unit/test_fetcher.py -v
"""

import pytest

from apiscout.core.config import ScannerConfig
from apiscout.core.exceptions import NetworkError
from apiscout.core.rate_limiter import RateLimitConfig, TokenBucketRateLimiter
from apiscout.crawler.fetcher import FetchMode, PageFetcher


URL = "https://example.com/"


def make_fetcher(http_client, renderer=None, errors=None, **config):
    config.setdefault("crawl_delay", 0)
    return PageFetcher(
        ScannerConfig(**config),
        http_client=http_client,
        renderer=renderer,
        on_error=errors.append if errors is not None else None,
    )


class TestStaticFetch:
    """Test suite for static fetches and probes"""

    @pytest.mark.asyncio
    async def test_fetch(self, http_client):
        http_client.add(URL, "<html></html>", headers={"Content-Type": "text/html"})
        fetcher = make_fetcher(http_client)

        page = await fetcher.fetch(URL)

        assert page.status == 200
        assert page.content_type == "text/html"
        assert page.mode is FetchMode.STATIC
        assert fetcher.requests_made == 1

        meta = page.response_meta()
        assert meta.status == 200
        assert meta.size == len("<html></html>")

    @pytest.mark.asyncio
    async def test_user_agent_sent(self, http_client):
        http_client.add(URL, "ok")
        fetcher = make_fetcher(http_client, user_agent="scout-test/1.0")

        await fetcher.fetch(URL)

        assert http_client.calls[0][2]["User-Agent"] == "scout-test/1.0"

    @pytest.mark.asyncio
    async def test_server_error_raises(self, http_client):
        """Test a 5xx page is a network error"""
        http_client.add(URL, "boom", status=502)
        fetcher = make_fetcher(http_client)

        with pytest.raises(NetworkError) as exc_info:
            await fetcher.fetch(URL)

        assert exc_info.value.status == 502

    @pytest.mark.asyncio
    async def test_client_error_is_content(self, http_client):
        http_client.add(URL, "missing", status=404)

        page = await make_fetcher(http_client).fetch(URL)

        assert page.status == 404

    @pytest.mark.asyncio
    async def test_probe_accepts_any_status(self, http_client):
        http_client.add(URL + "health", status=503)

        response = await make_fetcher(http_client).probe(URL + "health")

        assert response.status == 503
        assert http_client.calls[0][0] == "HEAD"

    @pytest.mark.asyncio
    async def test_probe_refuses_unsafe_methods(self, http_client):
        fetcher = make_fetcher(http_client)

        for method in ("POST", "PUT", "PATCH", "DELETE"):
            with pytest.raises(ValueError):
                await fetcher.probe(URL, method=method)

        assert http_client.calls == []

    @pytest.mark.asyncio
    async def test_rate_limiter_feedback(self, http_client):
        """Test 429 responses slow the shared limiter down"""
        http_client.add(URL, status=429)
        limiter = TokenBucketRateLimiter(RateLimitConfig(requests_per_second=1000))
        fetcher = PageFetcher(ScannerConfig(), rate_limiter=limiter, http_client=http_client)

        await fetcher.probe(URL)

        assert limiter.current_interval > limiter.base_interval
        assert limiter.request_count == 1

    @pytest.mark.asyncio
    async def test_close_closes_client(self, http_client):
        async with make_fetcher(http_client):
            pass

        assert http_client.closed


class TestRenderedFetch:
    """Test suite for rendered fetches and the static fallback"""

    @pytest.mark.asyncio
    async def test_rendered(self, http_client, renderer):
        renderer.add(
            URL,
            "<html>rendered</html>",
            requests=[{"url": "https://example.com/api/me", "method": "GET", "resource_type": "xhr"}],
            json_bodies=['{"next": "/api/v1/feed"}'],
        )
        fetcher = make_fetcher(http_client, renderer)

        page = await fetcher.fetch(URL, FetchMode.RENDERED)

        assert page.mode is FetchMode.RENDERED
        assert page.content == "<html>rendered</html>"
        assert page.requests[0].url == "https://example.com/api/me"
        assert page.json_bodies == ['{"next": "/api/v1/feed"}']
        assert renderer.started == 1
        assert http_client.calls == []

    @pytest.mark.asyncio
    async def test_browser_launched_once(self, http_client, renderer):
        renderer.add(URL, "a").add(URL + "b", "b")
        fetcher = make_fetcher(http_client, renderer)

        await fetcher.fetch(URL, FetchMode.RENDERED)
        await fetcher.fetch(URL + "b", FetchMode.RENDERED)

        assert renderer.started == 1

    @pytest.mark.asyncio
    async def test_navigation_failure_falls_back(self, http_client, renderer):
        """Test a render error degrades that URL to a static fetch"""
        renderer.fail_urls.add(URL)
        http_client.add(URL, "<html>static</html>")
        errors = []
        fetcher = make_fetcher(http_client, renderer, errors)

        page = await fetcher.fetch(URL, FetchMode.RENDERED)

        assert page.mode is FetchMode.STATIC
        assert page.content == "<html>static</html>"
        assert [e.kind for e in errors] == ["render"]
        assert fetcher.browser_available

    @pytest.mark.asyncio
    async def test_launch_failure_disables_browser(self, http_client, renderer):
        """Test a browser that cannot start is never retried"""
        renderer.fail_start = True
        http_client.add(URL, "static")
        errors = []
        fetcher = make_fetcher(http_client, renderer, errors)

        await fetcher.fetch(URL, FetchMode.RENDERED)
        await fetcher.fetch(URL, FetchMode.RENDERED)

        assert fetcher.browser_available is False
        assert len(errors) == 1
        assert renderer.rendered == []
        assert len(http_client.calls) == 2

    @pytest.mark.asyncio
    async def test_rendered_server_error(self, http_client, renderer):
        renderer.add(URL, "<html>oops</html>", status=500)

        with pytest.raises(NetworkError):
            await make_fetcher(http_client, renderer).fetch(URL, FetchMode.RENDERED)

    @pytest.mark.asyncio
    async def test_release_browser(self, http_client, renderer):
        renderer.add(URL, "a")
        http_client.add(URL, "static")
        fetcher = make_fetcher(http_client, renderer)
        await fetcher.fetch(URL, FetchMode.RENDERED)

        await fetcher.release_browser()
        page = await fetcher.fetch(URL, FetchMode.RENDERED)

        assert renderer.closed == 1
        assert page.mode is FetchMode.STATIC


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
