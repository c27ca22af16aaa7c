"""
API subdomain discovery.
"""

import ipaddress

from .base import DiscoveryContext, DiscoveryResult, DiscoveryStrategy


BATCH_SIZE = 10


def _is_ip_or_local(host: str) -> bool:
    if host == "localhost" or "." not in host:
        return True
    try:
        ipaddress.ip_address(host)
    except ValueError:
        return False
    return True


class SubdomainStrategy(DiscoveryStrategy):
    """
    HEAD https://{label}.{host} for each catalog label.

    Probes run in batches; a responding subdomain (any status below 500)
    is offered to the frontier together with its probe paths.
    """

    name = "subdomains"

    async def discover(self, context: DiscoveryContext) -> DiscoveryResult:
        result = DiscoveryResult()
        host = context.host
        if _is_ip_or_local(host):
            return result

        labels = list(context.catalogs.api_subdomains)
        for start in range(0, len(labels), BATCH_SIZE):
            batch = labels[start:start + BATCH_SIZE]
            origins = [f"https://{label}.{host}" for label in batch]

            for origin, response in await self._probe_many(context, origins, method="HEAD"):
                if response is None or response.status >= 500:
                    continue
                self.logger.info("subdomain_found", origin=origin, status=response.status)
                for path in context.catalogs.subdomain_probe_paths:
                    result.offer(f"{origin}{path}")

        return result
