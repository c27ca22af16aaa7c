"""
Security Classifier - Lightweight risk classification of endpoints.

Each rule inspects (url, method) and contributes zero or more findings.
Rules are independent, so adding one never changes what the others report,
and the aggregate risk level is derived from the findings, not from rule
order.
"""

from typing import Callable, List, Optional
from urllib.parse import parse_qsl, urlparse

import structlog

from ..core.models import HttpMethod, RiskLevel, SecurityAnalysis, Vulnerability


SENSITIVE_QUERY_KEYS = (
    "token", "access_token", "refresh_token", "id_token",
    "api_key", "apikey", "api-key", "key", "secret", "client_secret",
    "password", "passwd", "pwd", "session", "sessionid", "sid", "auth",
)

_AUTH_MARKERS = ("auth", "login", "signin", "sign-in", "session", "token")

SecurityRule = Callable[[str, HttpMethod], List[Vulnerability]]


def insecure_protocol_rule(url: str, method: HttpMethod) -> List[Vulnerability]:
    scheme = url.split(":", 1)[0].lower()
    if scheme in ("http", "ws"):
        return [
            Vulnerability(
                type="Insecure Protocol",
                severity=RiskLevel.MEDIUM,
                description=f"Endpoint is served over unencrypted {scheme.upper()}",
                recommendation="Serve the endpoint over HTTPS/WSS only",
            )
        ]
    return []


def destructive_method_rule(url: str, method: HttpMethod) -> List[Vulnerability]:
    if method is HttpMethod.DELETE:
        return [
            Vulnerability(
                type="Destructive Operation",
                severity=RiskLevel.HIGH,
                description="Endpoint accepts DELETE requests",
                recommendation="Require authentication and authorization for destructive operations",
            )
        ]
    return []


def sensitive_query_rule(url: str, method: HttpMethod) -> List[Vulnerability]:
    try:
        query = urlparse(url).query
    except ValueError:
        return []

    exposed = sorted({
        key for key, _ in parse_qsl(query, keep_blank_values=True)
        if key.lower() in SENSITIVE_QUERY_KEYS
    })
    if not exposed:
        return []

    return [
        Vulnerability(
            type="Sensitive Data in URL",
            severity=RiskLevel.MEDIUM,
            description=f"Credentials passed in the query string: {', '.join(exposed)}",
            recommendation="Send credentials in headers or the request body",
        )
    ]


DEFAULT_RULES: List[SecurityRule] = [
    insecure_protocol_rule,
    destructive_method_rule,
    sensitive_query_rule,
]


def guess_auth_type(url: str) -> Optional[str]:
    """Best-effort guess of the auth scheme an endpoint belongs to"""
    lower_url = url.lower()
    if "oauth" in lower_url:
        return "oauth"
    if "api_key" in lower_url or "apikey" in lower_url or "api-key" in lower_url:
        return "api-key"
    if "token" in lower_url or "jwt" in lower_url:
        return "bearer"
    if "basic" in lower_url:
        return "basic"
    return None


class SecurityClassifier:
    """
    Runs a rule chain over an endpoint.

    Example:
        >>> classifier = SecurityClassifier()
        >>> analysis = classifier.classify("http://example.com/api/users/1", HttpMethod.DELETE)
        >>> analysis.risk_level
        <RiskLevel.HIGH: 'high'>
    """

    def __init__(self, rules: Optional[List[SecurityRule]] = None):
        self.rules = list(rules) if rules is not None else list(DEFAULT_RULES)
        self.logger = structlog.get_logger(__name__)

    def classify(self, url: str, method: HttpMethod) -> SecurityAnalysis:
        """
        Classify an endpoint.

        Args:
            url: Absolute endpoint URL
            method: Endpoint method

        Returns:
            SecurityAnalysis with findings in rule order
        """
        vulnerabilities: List[Vulnerability] = []
        for rule in self.rules:
            vulnerabilities.extend(rule(url, method))

        lower_url = url.lower()
        has_auth = any(marker in lower_url for marker in _AUTH_MARKERS)

        analysis = SecurityAnalysis(
            has_auth=has_auth,
            vulnerabilities=vulnerabilities,
            auth_type=guess_auth_type(url) if has_auth else None,
        )

        if vulnerabilities:
            self.logger.debug(
                "endpoint_classified",
                url=url,
                method=method.value,
                risk_level=analysis.risk_level.value,
                findings=len(vulnerabilities),
            )

        return analysis
