"""
Endpoint prediction.

Runs after the crawl. Resource nouns, base paths and version tokens are
derived from the endpoints found so far; CRUD permutations and related
paths are generated from them, ranked by confidence, and the best
max_predictions are verified with HEAD requests only. Predicted
DELETE/PUT/PATCH endpoints are never exercised with their own method.
"""

import re
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, List, Set, Tuple
from urllib.parse import urlparse

from ..core.models import Endpoint
from ..crawler.patterns import calculate_confidence
from .base import DiscoveryContext, DiscoveryResult, DiscoveryStrategy
from .catalogs import ProbeCatalogs


_VERSION = re.compile(r"^v\d+$", re.IGNORECASE)
_PREFIX = re.compile(r"^(v\d+|api|rest)$", re.IGNORECASE)
_NOT_RESOURCE = re.compile(r"^(v\d+|\d+|api|rest)$", re.IGNORECASE)
_PLACEHOLDER = re.compile(r"\{\w+\}")
_RESOURCE = re.compile(r"^[a-zA-Z][\w-]*$")


@dataclass
class EndpointPatterns:
    """Shapes extracted from known endpoints"""
    base_paths: Set[str] = field(default_factory=set)
    versions: Set[str] = field(default_factory=set)
    resources: Dict[str, int] = field(default_factory=lambda: defaultdict(int))  # noun -> occurrences
    triggers: Dict[str, int] = field(default_factory=lambda: defaultdict(int))   # related-path key -> occurrences


@dataclass
class Prediction:
    url: str            # may contain {id}
    method: str
    confidence: float = 0.0

    @property
    def probe_url(self) -> str:
        return _PLACEHOLDER.sub("1", self.url)


def analyze_endpoints(endpoints: List[Endpoint], base_url: str) -> EndpointPatterns:
    """
    Extract base paths, versions and resource nouns from same-origin endpoints.

    The base path of an endpoint is its leading run of api/rest/vN segments
    (e.g. /api/v1 for /api/v1/orders/42).
    """
    patterns = EndpointPatterns()
    origin = urlparse(base_url).netloc

    for endpoint in endpoints:
        parsed = urlparse(endpoint.url)
        if parsed.netloc != origin:
            continue

        parts = [part for part in parsed.path.split("/") if part]

        prefix: List[str] = []
        for part in parts:
            if not _PREFIX.match(part):
                break
            prefix.append(part)
        if prefix:
            patterns.base_paths.add("/" + "/".join(prefix))

        for part in parts:
            lower = part.lower()
            if _VERSION.match(part):
                patterns.versions.add(lower)
                patterns.triggers["version"] += 1
            elif lower == "api":
                patterns.triggers["api"] += 1
            elif lower in ("users", "user"):
                patterns.triggers["users"] += 1

            if _NOT_RESOURCE.match(part) or not _RESOURCE.match(part):
                continue
            patterns.resources[lower] += 1

    return patterns


def generate_predictions(
    base_url: str,
    patterns: EndpointPatterns,
    catalogs: ProbeCatalogs,
    known: Set[Tuple[str, str]],
) -> List[Prediction]:
    """
    Generate and score predictions, best first.

    The confidence of a prediction is calculate_confidence(rules, evidence):
    rules is how many generation rules produced it and evidence how many
    known endpoints support it.

    Args:
        base_url: Origin URL
        patterns: Extracted shapes
        catalogs: Probe catalogs (CRUD operations, related paths)
        known: (METHOD, url) pairs already in the registry

    Returns:
        Predictions sorted by descending confidence
    """
    rules: Dict[Tuple[str, str], int] = defaultdict(int)
    evidence: Dict[Tuple[str, str], int] = {}

    def add(path: str, method: str, support: int):
        key = (method, f"{base_url}{path}")
        if key in known:
            return
        rules[key] += 1
        evidence[key] = max(evidence.get(key, 0), support)

    for resource, occurrences in sorted(patterns.resources.items()):
        for base_path in sorted(patterns.base_paths):
            for operation in catalogs.crud_operations:
                add(f"{base_path}/{resource}{operation.suffix}", operation.method, occurrences)

        for version in sorted(patterns.versions):
            for operation in catalogs.crud_operations:
                add(f"/api/{version}/{resource}{operation.suffix}", operation.method, occurrences)

    for trigger, occurrences in patterns.triggers.items():
        for path in catalogs.related_paths.get(trigger, ()):
            add(path, "GET", occurrences)

    predictions = [
        Prediction(url=url, method=method, confidence=calculate_confidence(rules[(method, url)], support))
        for (method, url), support in evidence.items()
    ]
    predictions.sort(key=lambda p: p.confidence, reverse=True)
    return predictions


class PredictionStrategy(DiscoveryStrategy):
    """Predicts endpoints from the ones already found and verifies them with HEAD"""

    name = "prediction"
    run_after_crawl = True

    async def discover(self, context: DiscoveryContext) -> DiscoveryResult:
        result = DiscoveryResult()
        if not context.known_endpoints or context.config.max_predictions == 0:
            return result

        patterns = analyze_endpoints(context.known_endpoints, context.base_url)
        known = {(e.method.value, e.url) for e in context.known_endpoints}
        predictions = generate_predictions(context.base_url, patterns, context.catalogs, known)
        selected = predictions[:context.config.max_predictions]

        probe_urls = list(dict.fromkeys(p.probe_url for p in selected))
        responses = dict(await self._probe_many(context, probe_urls, method="HEAD"))

        for prediction in selected:
            response = responses.get(prediction.probe_url)
            if response is not None and response.status < 500:
                result.add_endpoint(
                    prediction.url,
                    method=prediction.method,
                    confidence=prediction.confidence,
                )

        self.logger.info(
            "predictions_verified",
            generated=len(predictions),
            probed=len(probe_urls),
            verified=len(result.endpoints),
        )
        return result
