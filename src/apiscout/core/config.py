"""
Scanner configuration.

ScannerConfig is immutable for the lifetime of a session. Field bounds are
basic sanity checks only; the caller (CLI or UI) is expected to offer sane
ranges. camelCase aliases let UI-style payloads validate directly:

    >>> ScannerConfig.model_validate({"maxPages": 50, "enableJavaScript": False})
"""

from enum import Enum
from pathlib import Path
from typing import Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


DEFAULT_USER_AGENT = "Mozilla/5.0 (compatible; APIScout/1.0; +endpoint-discovery)"


class CrawlMode(Enum):
    """How the frontier is drained"""
    BREADTH_FIRST = "breadth_first"    # flat queue, depth recorded but not enforced
    DEPTH_LIMITED = "depth_limited"    # recursive, stops past max_depth


class ScannerConfig(BaseModel):
    """Per-session scanner configuration"""

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=False,
    )

    max_depth: int = Field(default=8, ge=0, le=64)
    max_pages: int = Field(default=2000, ge=1, le=100_000)
    respect_robots: bool = False
    include_external_links: bool = True
    crawl_delay: int = Field(default=100, ge=0, le=60_000)  # milliseconds
    user_agent: str = Field(default=DEFAULT_USER_AGENT, min_length=1)
    enable_javascript: bool = Field(default=True, alias="enableJavaScript")
    timeout: int = Field(default=10_000, ge=100, le=120_000)  # milliseconds

    max_concurrency: int = Field(default=16, ge=1, le=128)
    crawl_mode: CrawlMode = CrawlMode.BREADTH_FIRST
    max_script_files: int = Field(default=50, ge=0, le=1000)
    max_predictions: int = Field(default=100, ge=0, le=1000)
    probe_timeout: int = Field(default=3000, ge=100, le=60_000)  # milliseconds
    headless: bool = True

    @property
    def requests_per_second(self) -> Optional[float]:
        """Global request-rate ceiling derived from crawl_delay (None = unlimited)"""
        if self.crawl_delay <= 0:
            return None
        return 1000.0 / self.crawl_delay

    @property
    def timeout_seconds(self) -> float:
        return self.timeout / 1000.0

    @property
    def probe_timeout_seconds(self) -> float:
        return self.probe_timeout / 1000.0

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "ScannerConfig":
        """
        Load configuration from a YAML file.

        Args:
            path: YAML file with snake_case or camelCase keys

        Returns:
            Validated ScannerConfig
        """
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        return cls.model_validate(data)
