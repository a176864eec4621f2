"""
Omnivore API - URL Utility Tests
================================

What we test:
    ✅ file: vs remote classification, parse failures
    ✅ normalize_url canonical forms
    ✅ Remote validation (scheme, private hosts)
    ✅ Tracking parameter cleanup
"""

import pytest

from omnivore_api.exceptions import InvalidUrlError, ValidationError
from omnivore_api.utils.urls import (
    UrlKind,
    classify_url,
    clean_url,
    is_local_file_url,
    is_url,
    normalize_url,
    validate_remote_url,
)


class TestClassifyUrl:
    @pytest.mark.parametrize(
        "url",
        ["file:///Users/me/a.pdf", "FILE:///a.pdf", "file://localhost/tmp/a.pdf"],
    )
    def test_local_files(self, url):
        assert classify_url(url) == UrlKind.LOCAL_FILE
        assert is_local_file_url(url)

    @pytest.mark.parametrize(
        "url",
        ["https://example.com/a.pdf", "http://example.com", "ftp://example.com/a.pdf"],
    )
    def test_remote(self, url):
        assert classify_url(url) == UrlKind.REMOTE

    @pytest.mark.parametrize(
        "url",
        ["", "   ", "example.com/a.pdf", "/tmp/a.pdf", "http://", "https:///a.pdf", "http://a.com:70000/"],
    )
    def test_unparseable(self, url):
        with pytest.raises(InvalidUrlError):
            classify_url(url)

    @pytest.mark.parametrize(
        "url",
        [
            "http://exa mple.com/a.pdf",
            "http://ex<ample>.com/a.pdf",
            "https://a|b^c.com/doc.pdf",
            "http://a%20b.com/",
            "http://" + "x" * 64 + ".com/",
            "http://a..b.com/",
            "file://bad host/a.pdf",
        ],
    )
    def test_malformed_hosts(self, url):
        with pytest.raises(InvalidUrlError):
            classify_url(url)

    def test_unicode_and_ipv6_hosts_parse(self):
        assert classify_url("https://b\u00fccher.de/a.pdf") == UrlKind.REMOTE
        assert classify_url("http://[2001:db8::1]/a.pdf") == UrlKind.REMOTE

    def test_invalid_url_error_is_a_validation_error(self):
        with pytest.raises(ValidationError):
            classify_url("nope")


class TestNormalizeUrl:
    def test_lowercases_scheme_and_host_and_drops_default_port(self):
        assert normalize_url("HTTPS://Example.COM:443/Path") == "https://example.com/Path"

    def test_keeps_non_default_port(self):
        assert normalize_url("http://example.com:8080/a") == "http://example.com:8080/a"

    def test_strips_hash_by_default(self):
        assert normalize_url("https://example.com/a#section") == "https://example.com/a"
        assert normalize_url("https://example.com/a#s", strip_hash=False) == "https://example.com/a#s"

    def test_www_kept_unless_requested(self):
        assert normalize_url("https://www.example.com/") == "https://www.example.com/"
        assert normalize_url("https://www.example.com/", strip_www=True) == "https://example.com/"

    def test_query_sorted_and_filtered(self):
        url = "https://example.com/a?b=2&a=1&utm_source=x"
        assert normalize_url(url) == "https://example.com/a?a=1&b=2&utm_source=x"
        assert clean_url(url) == "https://example.com/a?a=1&b=2"

    def test_tweet_share_params_removed(self):
        url = "https://twitter.com/omnivore/status/123?s=20&t=abc"
        assert clean_url(url) == "https://twitter.com/omnivore/status/123"

    def test_file_urls_pass_through(self):
        assert normalize_url("file:///Users/me/My%20Paper.pdf") == "file:///Users/me/My%20Paper.pdf"


class TestValidateRemoteUrl:
    def test_public_https_is_accepted(self):
        assert validate_remote_url("https://Example.com/a.pdf#x") == "https://example.com/a.pdf"

    @pytest.mark.parametrize(
        "url",
        [
            "http://localhost/a.pdf",
            "http://app.localhost/a.pdf",
            "http://127.0.0.1/a.pdf",
            "http://10.0.0.5/a.pdf",
            "http://192.168.1.1/a.pdf",
            "http://169.254.169.254/latest/meta-data",
            "http://[::1]/a.pdf",
            "http://0.0.0.0/",
            "ftp://example.com/a.pdf",
        ],
    )
    def test_rejected(self, url):
        with pytest.raises(ValidationError):
            validate_remote_url(url)

    def test_is_url(self):
        assert is_url("https://example.com")
        assert not is_url("http://127.0.0.1")
