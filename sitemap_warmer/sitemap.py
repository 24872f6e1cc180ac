"""Sitemap fetching, parsing and in-scope filtering."""

from __future__ import annotations

import logging
import re
import time
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Iterator, List, Optional, Tuple

import requests

from .config import RunConfig
from .utils import has_same_domain, try_valid_url

logger = logging.getLogger("sitemap_warmer")

NAMESPACE = {
    "ns": "http://www.sitemaps.org/schemas/sitemap/0.9",
    "image": "http://www.google.com/schemas/sitemap-image/1.1",
}
SITEMAP_TIMEOUT = 30
FRACTION = re.compile(r"\.(\d+)")


@dataclass(frozen=True)
class SiteMapEntry:
    """A single <url> record from a sitemap."""

    url: str
    last_modified: Optional[datetime] = None
    images: Tuple[str, ...] = ()


def parse_lastmod(value: Optional[str]) -> Optional[datetime]:
    """Parse a W3C datetime, returning an aware UTC datetime or None"""
    if not value:
        return None
    value = value.strip()
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    # fromisoformat before 3.11 only takes 3 or 6 fraction digits
    value = FRACTION.sub(lambda match: "." + match.group(1).ljust(6, "0")[:6], value, count=1)
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def fetch_sitemap(session: requests.Session, url: str) -> ET.Element:
    """Fetch and parse sitemap XML"""
    response = session.get(url, timeout=SITEMAP_TIMEOUT)
    response.raise_for_status()
    return ET.fromstring(response.content)


def _text(element: Optional[ET.Element]) -> Optional[str]:
    if element is None or element.text is None:
        return None
    return element.text.strip() or None


def parse_urlset(root: ET.Element) -> Iterator[SiteMapEntry]:
    """Yield entries from a <urlset> document"""
    for url_element in root.findall("ns:url", NAMESPACE):
        loc = _text(url_element.find("ns:loc", NAMESPACE))
        if not loc:
            continue
        images = tuple(
            image
            for image in (
                _text(image_element.find("image:loc", NAMESPACE))
                for image_element in url_element.findall("image:image", NAMESPACE)
            )
            if image
        )
        yield SiteMapEntry(
            url=loc,
            last_modified=parse_lastmod(_text(url_element.find("ns:lastmod", NAMESPACE))),
            images=images,
        )


def process_sitemap(
    session: requests.Session,
    sitemap_url: str,
    log: logging.Logger = logger,
    _seen: Optional[set] = None,
) -> List[SiteMapEntry]:
    """Recursively process sitemap or sitemap index"""
    seen = _seen if _seen is not None else set()
    if sitemap_url in seen:
        return []
    seen.add(sitemap_url)

    log.debug("Processing sitemap %s", sitemap_url)
    sitemap = fetch_sitemap(session, sitemap_url)
    entries: List[SiteMapEntry] = []

    if sitemap.tag == f'{{{NAMESPACE["ns"]}}}sitemapindex':
        for sitemap_element in sitemap.findall("ns:sitemap", NAMESPACE):
            sub_sitemap_url = _text(sitemap_element.find("ns:loc", NAMESPACE))
            if not sub_sitemap_url:
                continue
            try:
                entries.extend(process_sitemap(session, sub_sitemap_url, log, seen))
            except (requests.RequestException, ET.ParseError) as exc:
                log.warning("Skipping sitemap %s: %s", sub_sitemap_url, exc)

    elif sitemap.tag == f'{{{NAMESPACE["ns"]}}}urlset':
        entries.extend(parse_urlset(sitemap))

    else:
        log.warning("Unrecognised sitemap root <%s> in %s", sitemap.tag, sitemap_url)

    log.debug("Found %d URLs in %s", len(entries), sitemap_url)
    return entries


def is_in_scope(
    entry: SiteMapEntry,
    all_urls: bool,
    newer_than: int,
    now: Optional[float] = None,
) -> bool:
    """Decide whether a sitemap entry should be warmed during this run."""
    if all_urls:
        return True
    if entry.last_modified is None:
        return False
    now = time.time() if now is None else now
    return now - entry.last_modified.timestamp() <= newer_than


class Sitemap:
    """In-scope pages and their images, filtered once at ingestion."""

    def __init__(self, config: RunConfig, now: Optional[float] = None):
        self.config = config
        self.now = now
        self._urls: Dict[str, SiteMapEntry] = {}
        self._images: Dict[str, str] = {}

    def add_entry(self, entry: SiteMapEntry) -> bool:
        url = try_valid_url(entry.url)
        if not url or not has_same_domain(url, self.config.domain):
            return False
        if not is_in_scope(entry, self.config.all, self.config.newer_than, self.now):
            return False

        self._urls.setdefault(url, entry)
        if self.config.images:
            for image in entry.images:
                image_url = try_valid_url(image)
                if image_url:
                    self._images.setdefault(image_url, image_url)
        return True

    def add_entries(self, entries) -> int:
        return sum(1 for entry in entries if self.add_entry(entry))

    def get_urls(self) -> List[str]:
        return list(self._urls)

    def get_images(self) -> List[str]:
        return list(self._images)

    def __len__(self) -> int:
        return len(self._urls)
