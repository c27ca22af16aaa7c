"""
Content Extractor - Turns fetched content into endpoint candidates and links.

Markup is parsed with BeautifulSoup; JSON and YAML documents are parsed and
walked with the bounded JSON walker; script text goes through the pattern
matcher. Malformed documents are dropped silently (ParseError never leaves
this module).
"""

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set, Tuple
from urllib.parse import urlparse

import structlog
import yaml
from bs4 import BeautifulSoup

from ..core.exceptions import ParseError
from ..core.models import EndpointSource, HttpMethod
from .json_walker import JsonValue, iter_strings
from .patterns import (
    JS_CALL_PATTERN_SOURCES,
    PatternMatcher,
    looks_like_api,
    resolve_url,
)


_HTTP_METHODS = {m.value for m in HttpMethod if m is not HttpMethod.WS}
_JSON_SCRIPT_TYPES = ("application/json", "application/ld+json")


@dataclass
class EndpointCandidate:
    """A (method, URL) pair extracted from content, not yet registered"""
    url: str
    method: str = "GET"
    source: EndpointSource = EndpointSource.CRAWL
    confidence: Optional[float] = None

    @property
    def key(self) -> Tuple[str, str]:
        return (self.method, self.url)


@dataclass
class ExtractionResult:
    """Endpoint candidates, outbound links and external script references"""
    candidates: List[EndpointCandidate] = field(default_factory=list)
    links: List[str] = field(default_factory=list)
    scripts: List[str] = field(default_factory=list)
    _keys: Set[Tuple[str, str]] = field(default_factory=set, repr=False)
    _seen_links: Set[str] = field(default_factory=set, repr=False)
    _seen_scripts: Set[str] = field(default_factory=set, repr=False)

    def add_candidate(self, candidate: EndpointCandidate) -> bool:
        """Add a candidate unless the same (method, url) is already present"""
        if candidate.key in self._keys:
            return False
        self._keys.add(candidate.key)
        self.candidates.append(candidate)
        return True

    def add_link(self, url: str):
        if url not in self._seen_links:
            self._seen_links.add(url)
            self.links.append(url)

    def add_script(self, url: str):
        if url not in self._seen_scripts:
            self._seen_scripts.add(url)
            self.scripts.append(url)


class ContentExtractor:
    """
    Extracts API endpoint candidates from HTML, XML, JSON, YAML and script text.

    Example:
        >>> extractor = ContentExtractor()
        >>> result = extractor.extract(html, "https://example.com/")
        >>> [(c.method, c.url) for c in result.candidates]
        [('GET', 'https://example.com/api/users')]
    """

    def __init__(self, matcher: Optional[PatternMatcher] = None):
        self.matcher = matcher or PatternMatcher()
        self.logger = structlog.get_logger(__name__)

    def extract(
        self,
        content: str,
        base_url: str,
        content_type: Optional[str] = None,
    ) -> ExtractionResult:
        """
        Extract endpoint candidates and outbound links from content.

        Args:
            content: Raw response body or rendered DOM
            base_url: URL the content was fetched from (used for resolution)
            content_type: Content-Type header, if known

        Returns:
            ExtractionResult
        """
        result = ExtractionResult()
        if not content:
            return result

        kind = self._sniff(content, base_url, content_type)

        if kind == "html":
            self._extract_html(content, base_url, result)
        elif kind == "xml":
            self._extract_xml(content, base_url, result)
        elif kind == "json":
            self._extract_document(content, base_url, result, loader=json.loads)
        elif kind == "yaml":
            self._extract_document(content, base_url, result, loader=yaml.safe_load)
        elif kind == "script":
            for candidate in self.analyze_script(content, base_url):
                result.add_candidate(candidate)
        else:
            self._extract_text(content, base_url, result)

        self.logger.debug(
            "content_extracted",
            url=base_url,
            kind=kind,
            candidates=len(result.candidates),
            links=len(result.links),
            scripts=len(result.scripts),
        )
        return result

    def _sniff(self, content: str, base_url: str, content_type: Optional[str]) -> str:
        ctype = (content_type or "").lower()
        path = urlparse(base_url).path.lower()
        head = content.lstrip()[:256].lower()

        if "json" in ctype:
            return "json"
        if "yaml" in ctype or path.endswith((".yaml", ".yml")):
            return "yaml"
        if "html" in ctype:
            return "html"
        if "xml" in ctype:
            return "html" if "<html" in head else "xml"
        if "javascript" in ctype or "ecmascript" in ctype or path.endswith((".js", ".mjs")):
            return "script"

        if head.startswith(("{", "[")):
            return "json"
        if head.startswith("<?xml") or head.startswith(("<urlset", "<sitemapindex")):
            return "html" if "<html" in head else "xml"
        if head.startswith("<"):
            return "html"
        return "text"

    def _extract_html(self, content: str, base_url: str, result: ExtractionResult):
        soup = BeautifulSoup(content, "html.parser")

        for script in soup.find_all("script"):
            src = script.get("src")
            if src:
                resolved = resolve_url(src, base_url)
                if resolved:
                    result.add_script(resolved)
                continue

            text = script.string or script.get_text()
            if not text or not text.strip():
                continue

            script_type = (script.get("type") or "").lower()
            if script_type in _JSON_SCRIPT_TYPES:
                self._extract_document(text, base_url, result, loader=json.loads)
            else:
                for candidate in self.analyze_script(text, base_url):
                    result.add_candidate(candidate)

        for form in soup.find_all("form"):
            action = form.get("action")
            if not action:
                continue
            resolved = resolve_url(action, base_url)
            if not resolved:
                continue
            method = (form.get("method") or "GET").strip().upper()
            if method not in _HTTP_METHODS:
                method = "GET"
            result.add_candidate(
                EndpointCandidate(url=resolved, method=method, source=EndpointSource.HTML)
            )

        for anchor in soup.find_all("a", href=True):
            href = anchor["href"]
            resolved = resolve_url(href, base_url)
            if not resolved:
                continue
            result.add_link(resolved)
            if looks_like_api(href):
                result.add_candidate(
                    EndpointCandidate(url=resolved, method="GET", source=EndpointSource.HTML)
                )

        for url in self.matcher.extract_urls(content):
            if looks_like_api(url):
                result.add_candidate(
                    EndpointCandidate(url=url, method="GET", source=EndpointSource.CRAWL)
                )

    def _extract_xml(self, content: str, base_url: str, result: ExtractionResult):
        for loc in parse_sitemap_locs(content):
            resolved = resolve_url(loc, base_url)
            if not resolved:
                continue
            result.add_link(resolved)
            if looks_like_api(resolved):
                result.add_candidate(
                    EndpointCandidate(url=resolved, method="GET", source=EndpointSource.SITEMAP)
                )

        for url in self.matcher.extract_urls(content):
            if looks_like_api(url):
                result.add_candidate(EndpointCandidate(url=url, source=EndpointSource.CRAWL))

    def _extract_document(self, content: str, base_url: str, result: ExtractionResult, loader):
        try:
            document = parse_document(content, loader)
        except ParseError:
            self.logger.debug("document_parse_dropped", url=base_url)
            return

        for candidate in self.extract_from_document(document, base_url):
            result.add_candidate(candidate)

    def _extract_text(self, content: str, base_url: str, result: ExtractionResult):
        if content.lstrip().startswith(("{", "[")):
            self._extract_document(content, base_url, result, loader=json.loads)

        for url in self.matcher.extract_urls(content):
            if looks_like_api(url):
                result.add_candidate(EndpointCandidate(url=url, source=EndpointSource.CRAWL))

        for match in self.matcher.extract_endpoints(content, base_url):
            for url in match.matches:
                if looks_like_api(url):
                    result.add_candidate(
                        EndpointCandidate(
                            url=url,
                            source=EndpointSource.CRAWL,
                            confidence=match.confidence,
                        )
                    )

    def extract_from_document(self, document: JsonValue, base_url: str) -> List[EndpointCandidate]:
        """
        Candidates from a parsed JSON/YAML document.

        OpenAPI/Swagger documents contribute one candidate per path and
        operation; every other string value that looks like an API URL is a
        GET candidate.

        Args:
            document: Parsed document
            base_url: URL used to resolve relative values

        Returns:
            List of candidates
        """
        candidates: List[EndpointCandidate] = []

        if isinstance(document, dict):
            candidates.extend(self._extract_openapi(document, base_url))

        for value in iter_strings(document):
            value = value.strip()
            if not value or any(ch.isspace() for ch in value):
                continue
            if not looks_like_api(value):
                continue
            resolved = resolve_url(value, base_url)
            if resolved:
                candidates.append(EndpointCandidate(url=resolved, source=EndpointSource.CRAWL))

        return candidates

    def _extract_openapi(self, document: Dict[str, Any], base_url: str) -> List[EndpointCandidate]:
        paths = document.get("paths")
        if not isinstance(paths, dict):
            return []
        if "openapi" not in document and "swagger" not in document:
            return []

        prefix = ""
        if isinstance(document.get("basePath"), str):
            prefix = document["basePath"].rstrip("/")
        else:
            servers = document.get("servers")
            if isinstance(servers, list) and servers and isinstance(servers[0], dict):
                server_url = servers[0].get("url")
                if isinstance(server_url, str):
                    prefix = server_url.rstrip("/")

        candidates = []
        for path, operations in paths.items():
            if not isinstance(path, str):
                continue
            resolved = resolve_url(f"{prefix}{path}", base_url)
            if not resolved:
                continue

            methods = []
            if isinstance(operations, dict):
                methods = [m.upper() for m in operations if isinstance(m, str) and m.upper() in _HTTP_METHODS]

            for method in methods or ["GET"]:
                candidates.append(
                    EndpointCandidate(url=resolved, method=method, source=EndpointSource.CRAWL)
                )

        return candidates

    def analyze_script(self, js_content: str, base_url: str) -> List[EndpointCandidate]:
        """
        Extract API calls from script source.

        Network-call invocations are always kept; weaker hints (config keys,
        template literals, quoted paths) must also look like an API.

        Args:
            js_content: Script text
            base_url: URL used to resolve relative paths

        Returns:
            Candidates tagged with the script-analysis source
        """
        methods: Dict[str, List[str]] = {}
        for raw_url, detected in self.matcher.detect_methods(js_content).items():
            resolved = resolve_url(raw_url, base_url)
            if resolved:
                methods.setdefault(resolved, []).extend(
                    m for m in detected if m not in methods.get(resolved, [])
                )

        candidates: List[EndpointCandidate] = []
        seen: Set[Tuple[str, str]] = set()

        def add(url: str, method: str, confidence: Optional[float]):
            if (method, url) in seen:
                return
            seen.add((method, url))
            candidates.append(
                EndpointCandidate(
                    url=url,
                    method=method,
                    source=EndpointSource.SCRIPT,
                    confidence=confidence,
                )
            )

        for match in self.matcher.extract_javascript_apis(js_content, base_url):
            strong = match.pattern in JS_CALL_PATTERN_SOURCES
            for url in match.matches:
                if not strong and not looks_like_api(url):
                    continue
                for method in methods.get(url, ["GET"]):
                    add(url, method, match.confidence)

        for url in self.matcher.extract_urls(js_content):
            if looks_like_api(url):
                for method in methods.get(url, ["GET"]):
                    add(url, method, None)

        return candidates


def parse_document(content: str, loader) -> JsonValue:
    """
    Parse JSON or YAML text.

    Raises:
        ParseError: If the text is malformed
    """
    try:
        return loader(content)
    except (ValueError, yaml.YAMLError) as e:
        raise ParseError(f"Malformed document: {e}")
    except RecursionError:
        raise ParseError("Malformed document: nesting too deep")


def parse_sitemap_locs(xml_text: str) -> List[str]:
    """
    Return the <loc> values of a sitemap or sitemap index, in document order.

    Malformed XML yields whatever the parser could recover.
    """
    soup = BeautifulSoup(xml_text, "xml")
    locs = []
    for loc in soup.find_all("loc"):
        text = loc.get_text(strip=True)
        if text:
            locs.append(text)
    return locs
