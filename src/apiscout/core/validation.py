"""
Target domain validation and normalization.

Validation never touches the network: a malformed domain must fail before
the session performs any I/O.
"""

import ipaddress
import re
from typing import Optional
from urllib.parse import urlparse


_IPV4_RE = re.compile(r"^(?:[0-9]{1,3}\.){3}[0-9]{1,3}$")
_DOMAIN_RE = re.compile(
    r"^[a-zA-Z0-9]([a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?"
    r"(\.[a-zA-Z0-9]([a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?)*$"
)
_SINGLE_LABEL_RE = re.compile(r"^[a-zA-Z0-9]([a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?$")


def clean_domain(domain: str) -> str:
    """Strip scheme, path and port from a user-supplied domain"""
    cleaned = re.sub(r"^https?://", "", domain.strip(), flags=re.IGNORECASE)
    cleaned = re.sub(r"/.*$", "", cleaned)
    return cleaned.split(":")[0]


def is_valid_domain(domain: str) -> bool:
    """
    Check whether a string is a crawlable host.

    Accepts localhost, dotted IPv4 addresses, multi-label domain names and
    single-label hostnames of two characters or more.

    Args:
        domain: Domain as typed by the user (scheme/path tolerated)

    Returns:
        True if the host is acceptable
    """
    if not domain:
        return False

    host = clean_domain(domain)

    if host == "localhost":
        return True

    if _IPV4_RE.match(host):
        try:
            ipaddress.IPv4Address(host)
        except ValueError:
            return False
        return True

    if "." in host and _DOMAIN_RE.match(host):
        return True

    if len(host) >= 2 and _SINGLE_LABEL_RE.match(host):
        return True

    return False


def normalize_base_url(domain: str) -> Optional[str]:
    """
    Build the origin URL (scheme://host[:port]) a session crawls from.

    Args:
        domain: Domain, optionally with scheme

    Returns:
        Origin without trailing slash, or None if it cannot be parsed
    """
    candidate = domain.strip()
    if not candidate.lower().startswith(("http://", "https://")):
        candidate = f"https://{candidate}"

    try:
        parsed = urlparse(candidate)
    except ValueError:
        return None

    if not parsed.netloc:
        return None

    return f"{parsed.scheme.lower()}://{parsed.netloc.lower()}"
