"""HTTP request execution: layered headers, IP/SNI routing, retry and cache status."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Mapping, Optional
from urllib.parse import urlparse

import requests
from requests.adapters import HTTPAdapter
from tenacity import RetryCallState, Retrying, retry_if_exception_type, stop_after_attempt

from .config import CDN_CACHE_STATUS_HEADER, USER_AGENT, RunConfig
from .utils import replace_host

logger = logging.getLogger("sitemap_warmer")

BASELINE_HEADERS = {
    "cache-control": "no-cache",
    "pragma": "no-cache",
    "user-agent": USER_AGENT,
}

# First try plus one replay on connection errors and timeouts
TRANSPORT_ATTEMPTS = 2

CACHE_STATUS_RESULTS = {
    "MISS": "warmed",
    "HIT": "was already warm",
    "BYPASS": "bypassed",
    "DYNAMIC": "bypassed",
}


def merge_headers(*layers: Optional[Mapping[str, str]]) -> Dict[str, str]:
    """Merge header layers left to right; later layers win, names are lowercased."""
    merged: Dict[str, str] = {}
    for layer in layers:
        if not layer:
            continue
        for name, value in layer.items():
            if value is None:
                continue
            merged[str(name).lower()] = str(value)
    return merged


def classify_cache_status(value: Optional[str]) -> Optional[str]:
    """Map a cache status header value to a human result, None when unrecognised."""
    if not value:
        return None
    return CACHE_STATUS_RESULTS.get(value.strip().upper())


class HostHeaderSSLAdapter(HTTPAdapter):
    """Connect to an IP while sending SNI and verifying the cert for the real host."""

    def __init__(self, server_hostname: str, **kwargs):
        self.server_hostname = server_hostname
        super().__init__(**kwargs)

    def init_poolmanager(self, connections, maxsize, block=False, **pool_kwargs):
        pool_kwargs["server_hostname"] = self.server_hostname
        pool_kwargs["assert_hostname"] = self.server_hostname
        super().init_poolmanager(connections, maxsize, block=block, **pool_kwargs)


@dataclass
class RequestOutcome:
    """Result of one request; status_code is None when the transport failed."""

    url: str
    method: str = "GET"
    status_code: Optional[int] = None
    cache_status: str = ""
    cdn_cache_status: str = ""
    response: Optional[requests.Response] = None
    error: Optional[str] = None

    @property
    def failed(self) -> bool:
        return self.status_code is None

    @property
    def ok(self) -> bool:
        return self.status_code is not None and 200 <= self.status_code < 300

    def text(self) -> str:
        if self.response is None:
            return ""
        return self.response.text

    def close(self) -> None:
        if self.response is not None:
            self.response.close()


class RequestExecutor:
    """Issues single requests with the run's headers, routing and retry policy."""

    def __init__(
        self,
        config: RunConfig,
        session: Optional[requests.Session] = None,
        logger: logging.Logger = logger,
        timeout: Optional[float] = None,
    ):
        self.config = config
        self.session = session or requests.Session()
        self.logger = logger
        self.timeout = timeout
        self._adapters: Dict[str, HostHeaderSSLAdapter] = {}

    def build_headers(self, variant: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
        return merge_headers(BASELINE_HEADERS, self.config.custom_headers, variant)

    def _route(self, url: str, headers: Dict[str, str], method: str) -> str:
        """Point the request at the override IP, keeping Host and SNI on the real host."""
        if not self.config.ip:
            return url

        parsed = urlparse(url)
        hostname = parsed.hostname or ""
        headers["host"] = parsed.netloc
        target = replace_host(url, self.config.ip)

        if parsed.scheme == "https":
            adapter = self._adapters.get(hostname)
            if adapter is None:
                adapter = self._adapters[hostname] = HostHeaderSSLAdapter(hostname)
            # Single-threaded: remount whenever the target host changes
            self.session.mount(f"https://{urlparse(target).netloc}", adapter)

        self.logger.debug("  %s %s with host %s", method.upper(), target, parsed.netloc)
        return target

    def _build_retrying(self, method: str, url: str) -> Retrying:
        def before_sleep(retry_state: RetryCallState) -> None:
            self.logger.debug(
                "  Failed %s %s (%s)! Retrying...", method, url, retry_state.outcome.exception()
            )

        return Retrying(
            retry=retry_if_exception_type(requests.RequestException),
            stop=stop_after_attempt(TRANSPORT_ATTEMPTS),
            reraise=True,
            before_sleep=before_sleep,
        )

    def execute(
        self,
        url: str,
        headers: Optional[Mapping[str, str]] = None,
        method: str = "GET",
    ) -> RequestOutcome:
        """Send one request, replaying it once on a transport failure."""
        request_headers = dict(headers) if headers is not None else self.build_headers()
        target = self._route(url, request_headers, method)

        def _send() -> requests.Response:
            return self.session.request(
                method,
                target,
                headers=request_headers,
                stream=True,
                timeout=self.timeout,
            )

        try:
            response = self._build_retrying(method, url)(_send)
        except requests.RequestException as exc:
            self.logger.info("  %s %s failed, skipping... (%s)", method, url, exc)
            return RequestOutcome(url=url, method=method, error=str(exc))

        cache_status = ""
        if self.config.cache_status_header:
            cache_status = response.headers.get(self.config.cache_status_header, "") or ""
        cdn_cache_status = response.headers.get(CDN_CACHE_STATUS_HEADER, "") or ""

        return RequestOutcome(
            url=url,
            method=method,
            status_code=response.status_code,
            cache_status=cache_status.strip().upper(),
            cdn_cache_status=cdn_cache_status.strip().upper(),
            response=response,
        )
