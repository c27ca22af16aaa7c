"""
Unit tests for endpoint prediction and the probe catalogs.

Run with: pytest tests/unit/test_prediction.py -v
"""

import dataclasses

import pytest

from apiscout.core.config import ScannerConfig
from apiscout.core.models import Endpoint, HttpMethod
from apiscout.crawler.fetcher import PageFetcher
from apiscout.discovery import DiscoveryContext, PredictionStrategy, load_catalogs
from apiscout.discovery.prediction import Prediction, analyze_endpoints, generate_predictions


BASE = "https://example.com"


def endpoints(*urls):
    return [Endpoint(url=url) for url in urls]


class TestAnalyzeEndpoints:
    """Test suite for pattern extraction"""

    def test_base_paths_versions_resources(self):
        patterns = analyze_endpoints(
            endpoints(
                f"{BASE}/api/v1/orders/42",
                f"{BASE}/api/v1/orders",
                f"{BASE}/rest/users",
            ),
            BASE,
        )

        assert patterns.base_paths == {"/api/v1", "/rest"}
        assert patterns.versions == {"v1"}
        assert patterns.resources == {"orders": 2, "users": 1}
        assert patterns.triggers["api"] == 2
        assert patterns.triggers["users"] == 1

    def test_foreign_origins_ignored(self):
        patterns = analyze_endpoints(endpoints("https://cdn.other.org/api/v1/assets"), BASE)

        assert patterns.resources == {}
        assert patterns.base_paths == set()


class TestGeneratePredictions:
    """Test suite for prediction generation and ranking"""

    def setup_method(self):
        self.catalogs = load_catalogs()

    def test_crud_permutations(self):
        patterns = analyze_endpoints(endpoints(f"{BASE}/api/v1/orders"), BASE)

        predictions = generate_predictions(BASE, patterns, self.catalogs, known=set())
        keys = {(p.method, p.url) for p in predictions}

        assert ("POST", f"{BASE}/api/v1/orders") in keys
        assert ("DELETE", f"{BASE}/api/v1/orders/{{id}}") in keys
        assert ("GET", f"{BASE}/api/v1/health") in keys

    def test_known_endpoints_excluded(self):
        patterns = analyze_endpoints(endpoints(f"{BASE}/api/v1/orders"), BASE)

        predictions = generate_predictions(
            BASE, patterns, self.catalogs, known={("GET", f"{BASE}/api/v1/orders")}
        )

        assert ("GET", f"{BASE}/api/v1/orders") not in {(p.method, p.url) for p in predictions}

    def test_sorted_by_confidence(self):
        patterns = analyze_endpoints(
            endpoints(f"{BASE}/api/v1/orders", f"{BASE}/api/v1/orders/7", f"{BASE}/api/v1/users"),
            BASE,
        )

        predictions = generate_predictions(BASE, patterns, self.catalogs, known=set())
        scores = [p.confidence for p in predictions]

        assert scores == sorted(scores, reverse=True)
        assert all(0.0 < s <= 1.0 for s in scores)

    def test_probe_url(self):
        assert Prediction(url=f"{BASE}/api/orders/{{id}}", method="DELETE").probe_url == f"{BASE}/api/orders/1"


class TestPredictionStrategy:
    """Test suite for PredictionStrategy class"""

    def make_context(self, http_client, known, max_predictions=100):
        config = ScannerConfig(crawl_delay=0, max_predictions=max_predictions)
        return DiscoveryContext(
            base_url=BASE,
            config=config,
            fetcher=PageFetcher(config, http_client=http_client),
            catalogs=load_catalogs(),
            known_endpoints=known,
        )

    @pytest.mark.asyncio
    async def test_verified_with_head_only(self, http_client):
        """Test predictions are verified with HEAD, never their own method"""
        http_client.add(f"{BASE}/api/v1/orders/1", status=405)
        context = self.make_context(http_client, endpoints(f"{BASE}/api/v1/orders"))

        result = await PredictionStrategy().discover(context)

        assert {m for m, _, _ in http_client.calls} == {"HEAD"}
        keys = {(c.method, c.url) for c in result.endpoints}
        assert ("DELETE", f"{BASE}/api/v1/orders/{{id}}") in keys
        assert ("PUT", f"{BASE}/api/v1/orders/{{id}}") in keys
        assert all(c.confidence is not None for c in result.endpoints)

    @pytest.mark.asyncio
    async def test_limit(self, http_client):
        context = self.make_context(http_client, endpoints(f"{BASE}/api/v1/orders"), max_predictions=3)

        await PredictionStrategy().discover(context)

        assert len(http_client.calls) <= 3

    @pytest.mark.asyncio
    async def test_nothing_known(self, http_client):
        result = await PredictionStrategy().discover(self.make_context(http_client, []))

        assert len(result) == 0
        assert http_client.calls == []


class TestCatalogs:
    """Test suite for the packaged probe catalogs"""

    def test_packaged_catalogs_load(self):
        catalogs = load_catalogs()
        sizes = catalogs.sizes()

        assert all(size > 0 for size in sizes.values())
        assert "/.well-known/openid-configuration" in catalogs.well_known_paths
        assert {op.method for op in catalogs.crud_operations} == {"GET", "POST", "PUT", "PATCH", "DELETE"}

    def test_catalogs_are_immutable(self):
        catalogs = load_catalogs()

        with pytest.raises(dataclasses.FrozenInstanceError):
            catalogs.well_known_paths = ()

    def test_missing_section(self, tmp_path):
        path = tmp_path / "catalogs.yaml"
        path.write_text("sitemap_locations: [/sitemap.xml]\n")

        with pytest.raises(ValueError, match="well_known_paths"):
            load_catalogs(path)

    def test_wrong_shape(self, tmp_path):
        path = tmp_path / "catalogs.yaml"
        path.write_text("- just\n- a list\n")

        with pytest.raises(ValueError):
            load_catalogs(path)

    def test_websocket_method_available(self):
        assert HttpMethod.WS.value == "WS"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
