"""Discovery of same-origin CSS and JavaScript referenced by warmed pages."""

from __future__ import annotations

from typing import Dict, Iterable, Iterator, List
from urllib.parse import urljoin

from bs4 import BeautifulSoup

from .utils import has_same_domain, try_valid_url

SCRIPT_SELECTOR = "script[src]"
STYLESHEET_SELECTOR = 'link[href][rel="stylesheet"]'


def _references(soup: BeautifulSoup, selector: str, attribute: str) -> Iterator[str]:
    for element in soup.select(selector):
        value = element.get(attribute)
        if value and value.strip():
            yield value.strip()


def discover_assets(
    html: str,
    base_url: str,
    domain: str,
    css: bool = True,
    js: bool = True,
) -> List[str]:
    """Return absolute same-origin script and stylesheet URLs found in the page."""
    if not html or not (css or js):
        return []
    soup = BeautifulSoup(html, "html.parser")

    references: List[str] = []
    if js:
        references.extend(_references(soup, SCRIPT_SELECTOR, "src"))
    if css:
        references.extend(_references(soup, STYLESHEET_SELECTOR, "href"))

    found: List[str] = []
    for reference in references:
        try:
            url = urljoin(base_url, reference)
        except ValueError:
            continue
        if has_same_domain(url, domain) and url not in found:
            found.append(url)
    return found


class AssetSet:
    """Insertion ordered set of asset URLs collected while warming pages."""

    def __init__(self, urls: Iterable[str] = ()):
        self._urls: Dict[str, None] = {}
        self.update(urls)

    def add(self, url: str) -> None:
        self._urls[url] = None

    def update(self, urls: Iterable[str]) -> None:
        for url in urls:
            self.add(url)

    def finalize(self) -> List[str]:
        """Re-validate every entry, dropping the invalid ones."""
        finalized: Dict[str, None] = {}
        for url in self._urls:
            valid = try_valid_url(url)
            if valid:
                finalized[valid] = None
        self._urls = finalized
        return list(finalized)

    def __contains__(self, url: object) -> bool:
        return url in self._urls

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._urls))

    def __len__(self) -> int:
        return len(self._urls)
