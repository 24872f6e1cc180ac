"""Three phase warm up of pages, images and discovered assets."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Dict, Optional

import requests

from .assets import AssetSet, discover_assets
from .config import RunConfig
from .fetcher import RequestExecutor, RequestOutcome, classify_cache_status
from .purge import PurgeStrategy, select_purge_strategy
from .sitemap import Sitemap
from .utils import sleep as sleep_ms, to_humans
from .variants import VariantSet, build_variants

CACHE_STATUS_ICONS = {
    "warmed": "⚡️",
    "was already warm": "🔥",
    "bypassed": "🚧",
}


@dataclass
class WarmupSummary:
    """Counters reported at the end of a run."""

    pages: int = 0
    images: int = 0
    assets: int = 0
    requests: int = 0
    failures: int = 0
    purges: int = 0


class Warmer:
    """Warms every in-scope page, image and same-origin asset, one request at a time."""

    def __init__(
        self,
        sitemap: Sitemap,
        config: RunConfig,
        logger: Optional[logging.Logger] = None,
        executor: Optional[RequestExecutor] = None,
        purger: Optional[PurgeStrategy] = None,
        sleep: Callable[[int], None] = sleep_ms,
    ):
        self.config = config
        self.sitemap = sitemap
        self.logger = logger or logging.getLogger("sitemap_warmer")
        self.executor = executor or RequestExecutor(config, logger=self.logger)
        self.purger = purger or select_purge_strategy(config, self.executor, self.logger)
        self.sleep = sleep

        self.variants: VariantSet = build_variants(config)
        self.urls = sitemap.get_urls()
        self.images = sitemap.get_images() if config.images else []
        self.assets = AssetSet()
        self.summary = WarmupSummary()

    def warmup(self) -> WarmupSummary:
        urls = self.urls
        if not urls:
            self.logger.info(
                "📫 No URLs need to warm up. You might want to use --range or --all. "
                "Run `sitemap-warmer -h` for more information."
            )
            return self.summary

        if self.config.all:
            self.logger.info("✅ Done. Prepare warming all URLs")
        else:
            self.logger.info(
                "✅ Done. Prepare warming URLs newer than %ss (%s)",
                self.config.newer_than,
                to_humans(self.config.newer_than),
            )

        self.logger.info("🕸 Starting warming of %d URLs...", len(urls))
        for count, url in enumerate(urls, start=1):
            self.warmup_site(url, count, len(urls))
        self.summary.pages = len(urls)

        images = self.images
        if images:
            self.logger.info("🕸 Starting warming of %d images...", len(images))
            for count, image in enumerate(images, start=1):
                self.warmup_image(image, count, len(images))
        self.summary.images = len(images)

        assets = self.assets.finalize()
        if assets:
            self.logger.info("🕸 Starting warming of %d assets...", len(assets))
            for count, url in enumerate(assets, start=1):
                self.warmup_site(url, count, len(assets), discover=False)
        self.summary.assets = len(assets)
        self.summary.purges = self.purger.calls

        self.logger.info(
            "📫 Done! Warmed %d URLs, %d images and %d assets "
            "(%d requests, %d failed, %d purge calls).",
            self.summary.pages,
            self.summary.images,
            self.summary.assets,
            self.summary.requests,
            self.summary.failures,
            self.summary.purges,
        )
        return self.summary

    def _progress(self, label: str, url: str, current: int, total: int) -> None:
        percent = current / total * 100 if total else 0.0
        self.logger.debug("🚀 Processing %s%s %d/%d (%.2f%%)", label, url, current, total, percent)

    def _purge(self, url: str, accept_encoding: str = "") -> None:
        self.purger.purge(url, accept_encoding)
        self.sleep(self.config.purge_delay)

    def warmup_site(self, url: str, current: int = 0, total: int = 0, discover: bool = True) -> None:
        """Purge per policy and request the page once per encoding variant."""
        self._progress("", url, current, total)

        purge = self.config.purge_pages and self.purger.active
        per_encoding = purge and self.config.purge_all_encodings and self.purger.encoding_aware

        if purge and not per_encoding:
            self._purge(url)

        canonical = self.variants.canonical_encoding
        for encoding_key, accept_encoding in self.variants.encodings.items():
            if per_encoding:
                self._purge(url, accept_encoding)
            parse = discover and self.config.discover_assets and encoding_key == canonical
            self.warmup_url(url, {"accept-encoding": accept_encoding}, parse_assets=parse)
            self.sleep(self.config.delay)

    def warmup_image(self, image_url: str, current: int = 0, total: int = 0) -> None:
        """Purge once if enabled, then request the image once per Accept variant."""
        self._progress("image ", image_url, current, total)

        if self.config.purge_images and self.purger.active:
            self._purge(image_url)

        for accept in self.variants.accepts.values():
            self.warmup_url(image_url, {"accept": accept})
            self.sleep(self.config.delay)

    def warmup_url(
        self,
        url: str,
        variant: Dict[str, str],
        parse_assets: bool = False,
    ) -> Optional[RequestOutcome]:
        variant_label = ", ".join(f"{name}: {value}" for name, value in variant.items())
        self.logger.debug("  🔥 Warming %s (%s)", url, variant_label)

        self.summary.requests += 1
        outcome = self.executor.execute(url, self.executor.build_headers(variant))
        if outcome.failed:
            self.summary.failures += 1
            return outcome

        try:
            self._log_cache_status(url, outcome, variant_label)
            if parse_assets:
                self.html(url, outcome)
        finally:
            outcome.close()
        return outcome

    def _log_cache_status(self, url: str, outcome: RequestOutcome, variant_label: str) -> None:
        for source, status in (("Cache", outcome.cache_status), ("CDN cache", outcome.cdn_cache_status)):
            result = classify_cache_status(status)
            if result:
                self.logger.debug(
                    "  %s %s %s for %s (%s => %s)",
                    CACHE_STATUS_ICONS[result],
                    source,
                    result,
                    url,
                    status,
                    variant_label,
                )

    def html(self, url: str, outcome: RequestOutcome) -> None:
        """Collect same-origin CSS/JS from a successful page response."""
        if not outcome.ok:
            return
        try:
            body = outcome.text()
        except requests.RequestException as exc:
            self.logger.debug("  Could not read body of %s: %s", url, exc)
            return
        found = discover_assets(
            body,
            url,
            self.config.domain,
            css=self.config.css,
            js=self.config.js,
        )
        self.assets.update(found)
