"""
Technology fingerprinting.

Infers the server-side framework from the base URL's response and probes
the API locations that framework conventionally uses.
"""

from typing import Dict, Optional

from .base import DiscoveryContext, DiscoveryResult, DiscoveryStrategy
from .catalogs import ProbeCatalogs


def detect_framework(catalogs: ProbeCatalogs, headers: Dict[str, str], body: str) -> Optional[str]:
    """
    First framework whose signature matches, in catalog order.

    Args:
        catalogs: Probe catalogs (ordered signature table)
        headers: Response headers (lowercased names)
        body: Response body

    Returns:
        Framework name, or None
    """
    for signature in catalogs.framework_signatures:
        if signature.matches(headers, body):
            return signature.framework
    return None


class FingerprintStrategy(DiscoveryStrategy):
    """GET the base URL, detect the framework, HEAD its conventional paths"""

    name = "fingerprint"

    async def discover(self, context: DiscoveryContext) -> DiscoveryResult:
        result = DiscoveryResult()

        response = await self._probe(context, context.url("/"), method="GET")
        if response is None or response.status >= 500:
            return result

        framework = detect_framework(context.catalogs, response.headers, response.text)
        if framework is None:
            self.logger.debug("framework_not_detected", url=context.base_url)
            return result

        paths = context.catalogs.framework_paths.get(framework, ())
        self.logger.info("framework_detected", framework=framework, paths=len(paths))

        urls = [context.url(path) for path in paths]
        for url, probe in await self._probe_many(context, urls, method="HEAD"):
            if probe is not None and probe.status < 500:
                result.add_endpoint(url)
                result.offer(url)

        return result
