"""Purge strategies: none, reverse proxy (nginx/Varnish) and Cloudflare."""

from __future__ import annotations

import logging
import re
from typing import Dict, List, Optional

import requests

from .config import RunConfig
from .fetcher import RequestExecutor

logger = logging.getLogger("sitemap_warmer")

CLOUDFLARE_API = "https://api.cloudflare.com/client/v4"
CLOUDFLARE_TIMEOUT = 30

PURGE_BODY_PATTERNS = {
    "key": re.compile(r"Key\s*:\s*([^<\r\n]+)"),
    "path": re.compile(r"Path\s*:\s*([^<\r\n]+)"),
}

PURGE_RESPONSES = {
    200: ("❄", "purged from cache"),
    404: ("🐌", "was not in cache"),
}


def parse_nginx_purge_body(body: str) -> Optional[Dict[str, str]]:
    """Extract Key and Path from an ngx_cache_purge success page."""
    if not body or "Successful purge" not in body:
        return None
    result = {}
    for label, pattern in PURGE_BODY_PATTERNS.items():
        match = pattern.search(body)
        if match:
            result[label] = match.group(1).strip()
    return result


class PurgeStrategy:
    """Base purge strategy. Subclasses evict a single resource."""

    name = "none"
    # Whether one purge per Accept-Encoding variant makes sense
    encoding_aware = False

    def __init__(self, logger: logging.Logger = logger):
        self.logger = logger
        self.calls = 0

    @property
    def active(self) -> bool:
        return False

    def purge(self, url: str, accept_encoding: str = "") -> None:
        raise NotImplementedError


class NoPurge(PurgeStrategy):
    def purge(self, url: str, accept_encoding: str = "") -> None:
        return None


class ProxyPurge(PurgeStrategy):
    """PURGE the resource URL, or GET it under the configured purge path."""

    name = "proxy"
    encoding_aware = True

    def __init__(self, config: RunConfig, executor: RequestExecutor, logger: logging.Logger = logger):
        super().__init__(logger)
        self.config = config
        self.executor = executor

    @property
    def active(self) -> bool:
        return True

    @property
    def method(self) -> str:
        return "GET" if self.config.purge_url else "PURGE"

    def purge_target(self, url: str) -> str:
        purge_url = self.config.purge_url
        if not purge_url:
            return url
        return url.replace(self.config.domain, purge_url, 1)

    def purge(self, url: str, accept_encoding: str = "") -> None:
        method = self.method
        target = self.purge_target(url)
        headers = self.executor.build_headers({"accept-encoding": accept_encoding or None})

        self.logger.debug(
            "  🗑️ Purging %s %s (Accept-Encoding: %s)", method, target, accept_encoding or "-"
        )
        self.calls += 1
        outcome = self.executor.execute(target, headers, method=method)
        if outcome.failed:
            return

        try:
            status = outcome.status_code
            if status == 405:
                self.logger.debug("  🚧 %s %s method not allowed (%s)", url, method, status)
            elif status in PURGE_RESPONSES:
                icon, message = PURGE_RESPONSES[status]
                self.logger.debug("  %s %s %s (%s)", icon, url, message, status)
                if status == 200:
                    details = parse_nginx_purge_body(outcome.text())
                    if details:
                        self.logger.debug(
                            "  🤖 Nginx successfully purged key=%s path=%s",
                            details.get("key", ""),
                            details.get("path", ""),
                        )
            else:
                self.logger.debug("  Purge of %s returned %s", url, status)
        except requests.RequestException as exc:
            self.logger.debug("  Could not read purge response for %s: %s", url, exc)
        finally:
            outcome.close()


class CloudflarePurge(PurgeStrategy):
    """Purge files from the Cloudflare edge through the zone purge_cache API."""

    name = "cloudflare"
    encoding_aware = False

    def __init__(
        self,
        config: RunConfig,
        session: Optional[requests.Session] = None,
        logger: logging.Logger = logger,
    ):
        super().__init__(logger)
        self.credentials = config.cloudflare
        self.session = session or requests.Session()

    @property
    def active(self) -> bool:
        return True

    @property
    def endpoint(self) -> str:
        return f"{CLOUDFLARE_API}/zones/{self.credentials.zone_id}/purge_cache"

    @property
    def headers(self) -> Dict[str, str]:
        return {
            "X-Auth-Email": self.credentials.email,
            "X-Auth-Key": self.credentials.api_key,
            "Content-Type": "application/json",
        }

    def purge(self, url: str, accept_encoding: str = "") -> None:
        self.purge_files([url])

    def purge_files(self, files: List[str]) -> None:
        """One purge_cache call for the given files."""
        self.logger.debug("  🗑️ Purging %d file(s) from Cloudflare: %s", len(files), ", ".join(files))
        self.calls += 1
        try:
            response = self.session.post(
                self.endpoint,
                headers=self.headers,
                json={"files": files},
                timeout=CLOUDFLARE_TIMEOUT,
            )
        except requests.RequestException as exc:
            self.logger.warning("  Cloudflare purge failed: %s", exc)
            return

        try:
            payload = response.json()
        except ValueError:
            payload = {}
        if not response.ok or not payload.get("success", response.ok):
            errors = payload.get("errors") or response.text
            self.logger.warning("  Cloudflare purge failed (%s): %s", response.status_code, errors)
            return
        self.logger.debug("  ❄ %s purged from Cloudflare", ", ".join(files))


def select_purge_strategy(
    config: RunConfig,
    executor: RequestExecutor,
    logger: logging.Logger = logger,
) -> PurgeStrategy:
    """Resolve the run-wide purge strategy once."""
    if not config.purge:
        return NoPurge(logger)
    if config.cloudflare_enabled:
        return CloudflarePurge(config, logger=logger)
    return ProxyPurge(config, executor, logger)
