"""
Pattern Matcher - Heuristic recognition of API-shaped URLs and calls.

looks_like_api() is the one classifier used by the frontier's link policy,
the discovery strategies' result filters and the registry's acceptance
filter. PatternMatcher bundles it with the extraction helpers as a stateless
object that is injected wherever it is needed.
"""

import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Pattern
from urllib.parse import parse_qsl, urljoin, urlparse, urldefrag

from ..core.models import Parameter, ParameterKind


STRONG_INDICATORS = (
    "/api/", "/rest/", "/graphql", "/oauth", "/auth/", "/token",
    "/login", "/register", "/users", "/user/", "/admin/", "/data/",
    "/search", "/upload", "/download", "/export", "/import",
    ".json", ".xml", ".yaml", ".yml",
)

API_EXTENSIONS = (".json", ".xml", ".yaml", ".yml", ".rss", ".atom")

_VERSION_PATTERNS = [
    re.compile(r"/v\d+/", re.IGNORECASE),
    re.compile(r"/version\d+/", re.IGNORECASE),
    re.compile(r"/api/v\d+", re.IGNORECASE),
]

_METHOD_SEGMENT = re.compile(r"/(get|post|put|patch|delete|head|options)/", re.IGNORECASE)

# Resource shapes only count when an API keyword is present as well
_RESOURCE_PATTERNS = [
    re.compile(r"/\w+/\d+"),         # /resource/123
    re.compile(r"/\w+/\{\w+\}"),     # /resource/{id}
    re.compile(r"/\w+/:\w+"),        # /resource/:id
    re.compile(r"\?[\w=&]+"),        # query string
]
_API_KEYWORD = re.compile(r"\b(api|rest|service|backend|endpoint)\b", re.IGNORECASE)

_STATUS_SEGMENT = re.compile(r"/(200|201|400|401|403|404|500)")


def looks_like_api(url: str) -> bool:
    """
    Heuristically decide whether a URL (absolute or relative) is an API call.

    Args:
        url: URL or path to classify

    Returns:
        True if the URL carries API indicators
    """
    if not url:
        return False

    lower_url = url.lower()

    if any(indicator in lower_url for indicator in STRONG_INDICATORS):
        return True

    if any(pattern.search(url) for pattern in _VERSION_PATTERNS):
        return True

    if _METHOD_SEGMENT.search(url):
        return True

    if any(pattern.search(url) for pattern in _RESOURCE_PATTERNS):
        if _API_KEYWORD.search(url):
            return True

    path = lower_url.split("?", 1)[0].split("#", 1)[0]
    if path.endswith(API_EXTENSIONS):
        return True

    if _STATUS_SEGMENT.search(url):
        return True

    return False


# Generic API patterns (content scan)
API_PATTERNS: List[Pattern] = [
    re.compile(r"/api/v?\d*/[a-zA-Z]+"),
    re.compile(r"/rest/[a-zA-Z]+"),
    re.compile(r"/graphql"),
    re.compile(r"/users?/?\d*"),
    re.compile(r"/auth/[a-zA-Z]+"),
    re.compile(r"/login|/register|/logout"),
    re.compile(r"/search\?"),
    re.compile(r"/upload|/download"),
    re.compile(r"/\{[a-zA-Z_]+\}"),
    re.compile(r"/:\w+"),
    re.compile(r"\.json(?:\?|$)"),
    re.compile(r"\.xml(?:\?|$)"),
]

# JavaScript network-call invocations; group 1 is the URL
JS_CALL_PATTERNS: List[Pattern] = [
    re.compile(r"fetch\s*\(\s*['\"`]([^'\"`]+)['\"`]"),
    re.compile(r"axios\.\w+\s*\(\s*['\"`]([^'\"`]+)['\"`]"),
    re.compile(r"axios\s*\(\s*\{[^}]*?url\s*:\s*['\"`]([^'\"`]+)['\"`]"),
    re.compile(r"\$\.ajax\s*\(\s*\{[^}]*?url\s*:\s*['\"`]([^'\"`]+)['\"`]"),
    re.compile(r"\$\.(?:get|post|getJSON)\s*\(\s*['\"`]([^'\"`]+)['\"`]"),
    re.compile(r"\.open\s*\(\s*['\"`]\w+['\"`]\s*,\s*['\"`]([^'\"`]+)['\"`]"),
    re.compile(r"use(?:Query|Mutation)\s*\(\s*['\"`]([^'\"`]+)['\"`]"),
]

# Weaker hints; matches must also pass looks_like_api()
JS_HINT_PATTERNS: List[Pattern] = [
    re.compile(r"(?:baseURL|apiUrl|endpoint|url)\s*:\s*['\"`]([^'\"`]+)['\"`]"),
    re.compile(r"process\.env\.\w*API\w*\s*\+\s*['\"`]([^'\"`]+)['\"`]"),
    re.compile(r"`([^`]*/(?:api|rest)/[^`]*)`"),
    re.compile(r"['\"]((?:/api|/rest)/[^'\"\s]+)['\"]"),
]

JS_API_PATTERNS: List[Pattern] = JS_CALL_PATTERNS + JS_HINT_PATTERNS
JS_CALL_PATTERN_SOURCES = frozenset(p.pattern for p in JS_CALL_PATTERNS)

_HTTP_VERBS = ("GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS")

# Explicit-verb call shapes; group 1 is the verb, group 2 the URL
_VERB_CALL_PATTERNS: List[Pattern] = [
    re.compile(r"axios\.(get|post|put|patch|delete|head|options)\s*\(\s*['\"`]([^'\"`]+)['\"`]", re.IGNORECASE),
    re.compile(r"\$\.(get|post)\s*\(\s*['\"`]([^'\"`]+)['\"`]", re.IGNORECASE),
    re.compile(r"\.open\s*\(\s*['\"`](\w+)['\"`]\s*,\s*['\"`]([^'\"`]+)['\"`]"),
]

# fetch/axios/$.ajax with an options object carrying method
_CALL_WITH_OPTIONS = re.compile(
    r"(?:fetch|axios|\$\.ajax)\s*\(\s*['\"`]([^'\"`]+)['\"`]\s*,\s*\{([^}]*)\}",
)
_CONFIG_OBJECT = re.compile(
    r"(?:axios|\$\.ajax)\s*\(\s*\{([^}]*)\}",
)
_METHOD_KEY = re.compile(r"(?:method|type)\s*:\s*['\"`](\w+)['\"`]", re.IGNORECASE)
_URL_KEY = re.compile(r"url\s*:\s*['\"`]([^'\"`]+)['\"`]")

_ABSOLUTE_URL = re.compile(r"https?://[^\s<>\"'{}|\\^`\[\])]+")
_PATH_PARAM = re.compile(r"\{(\w+)\}|:(\w+)")
_TEMPLATE_VAR = re.compile(r"\$\{[^}]+\}")

_RESOLVABLE_SCHEMES = ("http", "https", "ws", "wss")


@dataclass
class PatternMatch:
    """URLs matched by one source pattern"""
    pattern: str
    matches: List[str] = field(default_factory=list)
    confidence: float = 0.0


def calculate_confidence(pattern_count: int, match_count: int) -> float:
    """
    Heuristic confidence that a set of matches is a genuine API call.

    Args:
        pattern_count: Number of distinct patterns that triggered
        match_count: Number of matches

    Returns:
        Score in [0.0, 1.0]; 0.0 when nothing matched
    """
    if match_count <= 0:
        return 0.0

    confidence = 0.3

    if match_count > 1:
        confidence += 0.2
    if match_count > 5:
        confidence += 0.2
    if match_count > 10:
        confidence += 0.1

    if pattern_count > 2:
        confidence += 0.2

    return max(0.0, min(confidence, 1.0))


def resolve_url(url: str, base_url: str) -> Optional[str]:
    """
    Resolve a (possibly relative) URL against base_url.

    Fragments are dropped. Returns None for unparseable input and for
    schemes other than http(s)/ws(s).
    """
    if not url:
        return None

    url = url.strip()
    try:
        resolved, _ = urldefrag(urljoin(base_url, url))
        parsed = urlparse(resolved)
    except ValueError:
        return None

    if parsed.scheme not in _RESOLVABLE_SCHEMES or not parsed.netloc:
        return None
    return resolved


def clean_template(url: str) -> str:
    """Replace ${...} template placeholders with {param}"""
    return _TEMPLATE_VAR.sub("{param}", url)


class PatternMatcher:
    """
    Stateless pattern matching strategy.

    Holds no per-session state, so one instance may be shared freely or
    replaced by a fake in tests.

    Example:
        >>> matcher = PatternMatcher()
        >>> matcher.looks_like_api("https://example.com/api/users")
        True
        >>> matcher.detect_methods("axios.post('/api/orders', body)")
        {'/api/orders': ['POST']}
    """

    def looks_like_api(self, url: str) -> bool:
        return looks_like_api(url)

    def calculate_confidence(self, pattern_count: int, match_count: int) -> float:
        return calculate_confidence(pattern_count, match_count)

    def extract_endpoints(self, content: str, base_url: str) -> List[PatternMatch]:
        """
        Scan generic text for API-shaped substrings.

        Args:
            content: Text to scan
            base_url: URL used to resolve relative matches

        Returns:
            One PatternMatch per pattern that matched
        """
        return self._match_all(API_PATTERNS, content, base_url, group=0)

    def extract_javascript_apis(self, js_content: str, base_url: str) -> List[PatternMatch]:
        """
        Scan script text for network-call invocations.

        Template placeholders are normalized to {param}.
        """
        return self._match_all(JS_API_PATTERNS, js_content, base_url, group=1)

    def _match_all(
        self,
        patterns: List[Pattern],
        content: str,
        base_url: str,
        group: int,
    ) -> List[PatternMatch]:
        results: List[PatternMatch] = []
        triggered = 0

        for pattern in patterns:
            found: Dict[str, None] = {}
            for match in pattern.finditer(content):
                raw = match.group(group)
                if not raw:
                    continue
                resolved = resolve_url(clean_template(raw), base_url)
                if resolved:
                    found.setdefault(resolved)
            matches = list(found)

            if matches:
                triggered += 1
                results.append(PatternMatch(pattern=pattern.pattern, matches=matches))

        for result in results:
            result.confidence = calculate_confidence(triggered, len(result.matches))

        return results

    def extract_parameters(self, url: str) -> List[Parameter]:
        """
        Derive parameters from URL structure.

        Query keys become optional query parameters; {name} and :name path
        tokens become required path parameters.

        Args:
            url: Absolute URL

        Returns:
            Ordered list of parameters (empty if the URL does not parse)
        """
        try:
            parsed = urlparse(url)
        except ValueError:
            return []

        params: List[Parameter] = []
        seen = set()

        for key, _ in parse_qsl(parsed.query, keep_blank_values=True):
            if key and ("query", key) not in seen:
                seen.add(("query", key))
                params.append(Parameter(name=key, kind=ParameterKind.QUERY, required=False))

        for match in _PATH_PARAM.finditer(parsed.path):
            name = match.group(1) or match.group(2)
            if ("path", name) not in seen:
                seen.add(("path", name))
                params.append(Parameter(name=name, kind=ParameterKind.PATH, required=True))

        return params

    def detect_methods(self, js_content: str) -> Dict[str, List[str]]:
        """
        Detect HTTP methods used with URLs in script text.

        Only explicit evidence counts: a verb in the call name
        (axios.post, $.get, xhr.open('PUT', ...)) or a method/type key in the
        call's options object. URLs without evidence are not listed; callers
        default them to GET.

        Args:
            js_content: Script source

        Returns:
            Mapping of raw URL (as written) to detected methods
        """
        methods: Dict[str, List[str]] = {}

        def add(url: str, method: str):
            method = method.upper()
            if method not in _HTTP_VERBS:
                return
            url = clean_template(url)
            bucket = methods.setdefault(url, [])
            if method not in bucket:
                bucket.append(method)

        for pattern in _VERB_CALL_PATTERNS:
            for match in pattern.finditer(js_content):
                add(match.group(2), match.group(1))

        for match in _CALL_WITH_OPTIONS.finditer(js_content):
            method_match = _METHOD_KEY.search(match.group(2))
            if method_match:
                add(match.group(1), method_match.group(1))

        for match in _CONFIG_OBJECT.finditer(js_content):
            body = match.group(1)
            url_match = _URL_KEY.search(body)
            method_match = _METHOD_KEY.search(body)
            if url_match and method_match:
                add(url_match.group(1), method_match.group(1))

        return methods

    def extract_urls(self, content: str) -> List[str]:
        """Absolute http(s) URLs found anywhere in the text, deduplicated"""
        urls = (match.group(0).rstrip(".,;:") for match in _ABSOLUTE_URL.finditer(content))
        return list(dict.fromkeys(urls))
