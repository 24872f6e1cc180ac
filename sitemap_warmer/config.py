"""Run configuration and defaults."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Optional

USER_AGENT = "sitemap-warmer - Cache Warmer (https://pypi.org/project/sitemap-warmer/)"

# Defaults (can be overridden by command-line args)
DEFAULT_RANGE = 300  # Seconds
DEFAULT_DELAY = 500  # Milliseconds between warm up calls
DEFAULT_PURGE_DELAY = 100  # Milliseconds after each purge call
DEFAULT_CACHE_STATUS_HEADER = "x-cache-status"
CDN_CACHE_STATUS_HEADER = "cf-cache-status"

PURGE_NONE = 0
PURGE_PAGES = 1
PURGE_IMAGES = 2
PURGE_CHOICES = (PURGE_NONE, PURGE_PAGES, PURGE_IMAGES)


@dataclass(frozen=True)
class CloudflareCredentials:
    """Account email, zone id and API key used for edge purging."""

    email: str = ""
    zone_id: str = ""
    api_key: str = ""

    @property
    def complete(self) -> bool:
        return bool(self.email and self.zone_id and self.api_key)


@dataclass(frozen=True)
class RunConfig:
    """Settings for a single warm up run. Never mutated once built."""

    domain: str
    sitemap_url: str = ""
    all: bool = False
    newer_than: int = DEFAULT_RANGE
    delay: int = DEFAULT_DELAY
    images: bool = True
    css: bool = True
    js: bool = True
    webp: bool = True
    avif: bool = True
    brotli: bool = True
    gzip: bool = True
    deflate: bool = True
    purge: int = PURGE_NONE
    purge_delay: int = DEFAULT_PURGE_DELAY
    purge_path: str = ""
    purge_all_encodings: bool = False
    custom_headers: Dict[str, str] = field(default_factory=dict)
    cache_status_header: str = DEFAULT_CACHE_STATUS_HEADER
    ip: str = ""
    cloudflare: CloudflareCredentials = field(default_factory=CloudflareCredentials)

    @property
    def purge_url(self) -> Optional[str]:
        """Base URL replacing the domain when purging with GET."""
        path = (self.purge_path or "").strip().strip("/")
        if not path:
            return None
        return f"{self.domain}/{path}"

    @property
    def purge_pages(self) -> bool:
        return self.purge >= PURGE_PAGES

    @property
    def purge_images(self) -> bool:
        return self.purge >= PURGE_IMAGES

    @property
    def cloudflare_enabled(self) -> bool:
        return self.purge != PURGE_NONE and self.cloudflare.complete

    @property
    def discover_assets(self) -> bool:
        return self.css or self.js
