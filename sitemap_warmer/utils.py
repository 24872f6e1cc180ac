"""URL helpers and small utilities shared across the warmer."""

from __future__ import annotations

import time
from typing import Optional
from urllib.parse import urlparse, urlunparse


def try_valid_url(url) -> Optional[str]:
    """Return a usable absolute URL, adding https:// when the scheme is missing"""
    if url is None:
        return None
    url = str(url).strip()
    if not url:
        return None
    if url.startswith("//"):
        url = f"https:{url}"
    elif "://" not in url:
        url = f"https://{url}"
    return url if is_valid_url(url) else None


def is_valid_url(url) -> bool:
    """Check that a URL has an http(s) scheme and a host"""
    try:
        parsed = urlparse(str(url))
        has_port = parsed.port is not None
    except ValueError:
        return False
    if has_port and not parsed.port:
        return False
    if parsed.scheme not in ("http", "https") or not parsed.hostname:
        return False
    return " " not in parsed.netloc


def has_same_domain(url: str, domain: str) -> bool:
    """True when url is served from the same scheme and host as domain"""
    if not url or not domain:
        return False
    try:
        target = urlparse(url)
        origin = urlparse(domain)
        return (
            target.scheme == origin.scheme
            and (target.hostname or "").lower() == (origin.hostname or "").lower()
            and target.port == origin.port
        )
    except ValueError:
        # Out of range port or broken IPv6 literal
        return False


def replace_host(url: str, host: str) -> str:
    """Swap the hostname of a URL, keeping scheme, port, path and query"""
    parsed = urlparse(url)
    netloc = host
    if ":" in host and not host.startswith("["):
        netloc = f"[{host}]"  # IPv6 literal
    if parsed.port:
        netloc = f"{netloc}:{parsed.port}"
    return urlunparse(parsed._replace(netloc=netloc))


def sleep(milliseconds: int) -> None:
    if milliseconds and milliseconds > 0:
        time.sleep(milliseconds / 1000)


def to_humans(seconds: int) -> str:
    """Format a number of seconds as e.g. '1 day, 2 hours'"""
    seconds = int(seconds)
    units = (("day", 86400), ("hour", 3600), ("minute", 60), ("second", 1))
    parts = []
    for name, size in units:
        value, seconds = divmod(seconds, size)
        if value:
            parts.append(f"{value} {name}{'s' if value != 1 else ''}")
    return ", ".join(parts) or "0 seconds"
