"""
Tests for purge strategies
"""
import logging
from unittest.mock import Mock

import requests

from sitemap_warmer.config import CloudflareCredentials
from sitemap_warmer.fetcher import RequestExecutor
from sitemap_warmer.purge import (
    CloudflarePurge,
    NoPurge,
    ProxyPurge,
    parse_nginx_purge_body,
    select_purge_strategy,
)
from tests.conftest import make_config, make_response

CREDENTIALS = CloudflareCredentials(email="ops@x.test", zone_id="zone123", api_key="key456")

NGINX_BODY = (
    "<html><head><title>Successful purge</title></head>\r\n"
    "<body><center><h1>Successful purge</h1>\r\n"
    "<br>Key : httpsx.test/a\r\n"
    "<br>Path: /var/cache/nginx/3/5e/0a1b2c\r\n"
    "</center></body></html>"
)


class TestSelectPurgeStrategy:
    """The strategy is resolved once from the run config"""

    def test_no_purge(self):
        config = make_config(purge=0, cloudflare=CREDENTIALS)
        assert isinstance(select_purge_strategy(config, RequestExecutor(config)), NoPurge)

    def test_proxy_purge(self):
        config = make_config(purge=1)
        assert isinstance(select_purge_strategy(config, RequestExecutor(config)), ProxyPurge)

    def test_cloudflare_when_all_credentials_present(self):
        config = make_config(purge=1, cloudflare=CREDENTIALS)
        assert isinstance(select_purge_strategy(config, RequestExecutor(config)), CloudflarePurge)

    def test_partial_credentials_fall_back_to_proxy(self):
        config = make_config(purge=2, cloudflare=CloudflareCredentials(email="ops@x.test", zone_id="zone123"))
        assert isinstance(select_purge_strategy(config, RequestExecutor(config)), ProxyPurge)


class TestProxyPurge:
    """Tests for PURGE / GET purge-path requests"""

    def test_purge_method(self, session):
        config = make_config(purge=1)
        purger = ProxyPurge(config, RequestExecutor(config, session=session))

        purger.purge("https://x.test/a", "gzip, deflate")

        args, kwargs = session.request.call_args
        assert args == ("PURGE", "https://x.test/a")
        assert kwargs["headers"]["accept-encoding"] == "gzip, deflate"
        assert purger.calls == 1

    def test_purge_path_uses_get(self, session):
        config = make_config(purge=1, purge_path="/purge/")
        purger = ProxyPurge(config, RequestExecutor(config, session=session))

        purger.purge("https://x.test/blog/post?page=2")

        args, kwargs = session.request.call_args
        assert args == ("GET", "https://x.test/purge/blog/post?page=2")
        assert "accept-encoding" not in kwargs["headers"]

    def test_successful_nginx_purge_is_logged(self, session, caplog):
        caplog.set_level(logging.DEBUG)
        session.request.return_value = make_response(text=NGINX_BODY)
        config = make_config(purge=1)
        purger = ProxyPurge(config, RequestExecutor(config, session=session), logging.getLogger("test.purge"))

        purger.purge("https://x.test/a")

        messages = [record.getMessage() for record in caplog.records]
        assert any("purged from cache" in message for message in messages)
        assert any("key=httpsx.test/a" in message for message in messages)

    def test_status_messages(self, session, caplog):
        caplog.set_level(logging.DEBUG)
        config = make_config(purge=1)
        purger = ProxyPurge(config, RequestExecutor(config, session=session), logging.getLogger("test.purge"))

        for status in (404, 405, 500):
            session.request.return_value = make_response(status_code=status)
            purger.purge("https://x.test/a")

        messages = " | ".join(record.getMessage() for record in caplog.records)
        assert "was not in cache (404)" in messages
        assert "PURGE method not allowed (405)" in messages
        assert "returned 500" in messages

    def test_transport_failure_is_not_fatal(self, session):
        session.request.side_effect = requests.ConnectionError("refused")
        config = make_config(purge=1)
        purger = ProxyPurge(config, RequestExecutor(config, session=session))

        purger.purge("https://x.test/a")

        assert session.request.call_count == 2


class TestParseNginxBody:
    """Tests for ngx_cache_purge body parsing"""

    def test_key_and_path(self):
        assert parse_nginx_purge_body(NGINX_BODY) == {
            "key": "httpsx.test/a",
            "path": "/var/cache/nginx/3/5e/0a1b2c",
        }

    def test_without_marker(self):
        assert parse_nginx_purge_body("<html>OK</html>") is None
        assert parse_nginx_purge_body("") is None


class TestCloudflarePurge:
    """Tests for the Cloudflare purge_cache call"""

    def _purger(self, response=None):
        session = Mock(spec=requests.Session)
        session.post.return_value = response or make_response(json_data={"success": True, "errors": []})
        config = make_config(purge=1, cloudflare=CREDENTIALS)
        return CloudflarePurge(config, session=session, logger=logging.getLogger("test.cloudflare")), session

    def test_request_shape(self):
        purger, session = self._purger()

        purger.purge("https://x.test/a", "gzip, deflate")

        args, kwargs = session.post.call_args
        assert args == ("https://api.cloudflare.com/client/v4/zones/zone123/purge_cache",)
        assert kwargs["json"] == {"files": ["https://x.test/a"]}
        assert kwargs["headers"]["X-Auth-Email"] == "ops@x.test"
        assert kwargs["headers"]["X-Auth-Key"] == "key456"

    def test_one_call_per_resource(self):
        purger, session = self._purger()

        purger.purge("https://x.test/a")
        purger.purge("https://x.test/b")

        assert [call[1]["json"] for call in session.post.call_args_list] == [
            {"files": ["https://x.test/a"]},
            {"files": ["https://x.test/b"]},
        ]
        assert purger.calls == 2

    def test_api_error_is_logged_not_raised(self, caplog):
        caplog.set_level(logging.DEBUG)
        purger, session = self._purger(
            make_response(status_code=403, json_data={"success": False, "errors": [{"code": 10000}]})
        )

        purger.purge("https://x.test/a")

        assert session.post.call_count == 1
        assert any("Cloudflare purge failed (403)" in record.getMessage() for record in caplog.records)

    def test_transport_failure_is_not_retried(self):
        purger, session = self._purger()
        session.post.side_effect = requests.ConnectionError("down")

        purger.purge("https://x.test/a")

        assert session.post.call_count == 1
