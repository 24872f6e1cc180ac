"""Warm (and optionally purge) HTTP caches from a site's sitemap."""

from .config import CloudflareCredentials, RunConfig
from .sitemap import Sitemap, SiteMapEntry
from .warmer import Warmer, WarmupSummary

__version__ = "1.0.0"

__all__ = [
    "CloudflareCredentials",
    "RunConfig",
    "Sitemap",
    "SiteMapEntry",
    "Warmer",
    "WarmupSummary",
]
