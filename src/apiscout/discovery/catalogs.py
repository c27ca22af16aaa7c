"""
Probe catalogs.

The path lists the discovery strategies probe are data, not code: they are
shipped as apiscout/data/catalogs.yaml and loaded once into an immutable
ProbeCatalogs instance.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

import yaml


DEFAULT_CATALOG_PATH = Path(__file__).resolve().parent.parent / "data" / "catalogs.yaml"


@dataclass(frozen=True)
class FrameworkSignature:
    """Header or body marker identifying a server-side framework"""
    framework: str
    contains: str
    header: Optional[str] = None  # None = match against the body

    def matches(self, headers: Dict[str, str], body: str) -> bool:
        needle = self.contains.lower()
        if self.header is not None:
            return needle in headers.get(self.header.lower(), "").lower()
        return needle in body.lower()


@dataclass(frozen=True)
class CrudOperation:
    method: str
    suffix: str = ""


@dataclass(frozen=True)
class ProbeCatalogs:
    """Every probe list used by discovery"""
    sitemap_locations: Tuple[str, ...]
    well_known_paths: Tuple[str, ...]
    common_api_paths: Tuple[str, ...]
    framework_signatures: Tuple[FrameworkSignature, ...]
    framework_paths: Dict[str, Tuple[str, ...]]
    cors_probe_paths: Tuple[str, ...]
    api_subdomains: Tuple[str, ...]
    subdomain_probe_paths: Tuple[str, ...]
    websocket_paths: Tuple[str, ...]
    mobile_paths: Tuple[str, ...]
    mobile_versions: Tuple[str, ...]
    mobile_user_agents: Tuple[str, ...]
    doc_index_paths: Tuple[str, ...]
    doc_file_patterns: Tuple[str, ...]
    third_party_paths: Dict[str, Tuple[str, ...]]
    crud_operations: Tuple[CrudOperation, ...]
    related_paths: Dict[str, Tuple[str, ...]]

    def sizes(self) -> Dict[str, int]:
        """Entry count per catalog (nested catalogs count their leaves)"""
        sizes = {}
        for name, value in self.__dict__.items():
            if isinstance(value, dict):
                sizes[name] = sum(len(v) for v in value.values())
            else:
                sizes[name] = len(value)
        return sizes


_LIST_FIELDS = (
    "sitemap_locations",
    "well_known_paths",
    "common_api_paths",
    "cors_probe_paths",
    "api_subdomains",
    "subdomain_probe_paths",
    "websocket_paths",
    "mobile_paths",
    "mobile_versions",
    "mobile_user_agents",
    "doc_index_paths",
    "doc_file_patterns",
)
_MAPPING_FIELDS = ("framework_paths", "third_party_paths", "related_paths")


def _require(data: Dict[str, Any], key: str, kind: type) -> Any:
    if key not in data:
        raise ValueError(f"Catalog section missing: {key}")
    value = data[key]
    if not isinstance(value, kind):
        raise ValueError(f"Catalog section {key} must be a {kind.__name__}")
    return value


def load_catalogs(path: Optional[Union[str, Path]] = None) -> ProbeCatalogs:
    """
    Load probe catalogs from YAML.

    Args:
        path: Catalog file (the packaged catalogs.yaml if None)

    Returns:
        ProbeCatalogs

    Raises:
        ValueError: If a section is missing or malformed
    """
    with open(path or DEFAULT_CATALOG_PATH, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f)

    if not isinstance(data, dict):
        raise ValueError("Catalog file must contain a mapping")

    fields: Dict[str, Any] = {}

    for key in _LIST_FIELDS:
        fields[key] = tuple(str(item) for item in _require(data, key, list))

    for key in _MAPPING_FIELDS:
        fields[key] = {
            str(name): tuple(str(item) for item in items)
            for name, items in _require(data, key, dict).items()
        }

    fields["framework_signatures"] = tuple(
        FrameworkSignature(
            framework=entry["framework"],
            contains=entry.get("contains") or entry["body"],
            header=entry.get("header"),
        )
        for entry in _require(data, "framework_signatures", list)
    )

    fields["crud_operations"] = tuple(
        CrudOperation(method=str(entry["method"]).upper(), suffix=entry.get("suffix", ""))
        for entry in _require(data, "crud_operations", list)
    )

    return ProbeCatalogs(**fields)
