"""
Shared fixtures for the sitemap warmer tests.

Network access is never used: sessions are mocks whose ``request`` / ``get`` /
``post`` return canned ``requests.Response`` stand-ins.
"""
from unittest.mock import Mock

import pytest
import requests
from requests.structures import CaseInsensitiveDict

from sitemap_warmer.config import RunConfig

DOMAIN = "https://x.test"


def make_response(status_code=200, headers=None, text="", content=None, json_data=None):
    """Build a Response stand-in with the attributes the warmer reads."""
    response = Mock(spec=requests.Response)
    response.status_code = status_code
    response.ok = 200 <= status_code < 400
    response.reason = "OK" if response.ok else "Error"
    response.headers = CaseInsensitiveDict(headers or {})
    response.text = text
    response.content = content if content is not None else text.encode("utf-8")
    if json_data is not None:
        response.json.return_value = json_data
    else:
        response.json.side_effect = ValueError("no json")
    return response


def make_config(**overrides):
    """RunConfig with quiet defaults: no pacing, one encoding, no images."""
    values = dict(
        domain=DOMAIN,
        sitemap_url=f"{DOMAIN}/sitemap.xml",
        all=True,
        delay=0,
        purge_delay=0,
        brotli=False,
        gzip=False,
        deflate=True,
        images=False,
        webp=False,
        avif=False,
        css=False,
        js=False,
    )
    values.update(overrides)
    return RunConfig(**values)


@pytest.fixture
def config():
    return make_config()


@pytest.fixture
def session():
    """Mock session answering every request with an empty 200."""
    mock_session = Mock(spec=requests.Session)
    mock_session.request.return_value = make_response()
    return mock_session
