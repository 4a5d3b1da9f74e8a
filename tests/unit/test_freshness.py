"""Unit tests for cache headers and conditional requests."""

from server.bootstrap.config import ServerConfig
from server.domain.freshness import (
    compute_fresh_headers,
    generate_etag,
    http_date,
    is_fresh,
)
from server.domain.intents import ResourceMeta

META = ResourceMeta(
    size=1234, mtime=1_700_000_000.5, mtime_ms=1_700_000_000_500, is_directory=False
)


def test_generate_etag_is_weak_hex_of_size_and_mtime():
    """ETag encodes size and millisecond mtime in hex."""
    assert generate_etag(META) == 'W/"4d2-18bcfe569f4"'


def test_http_date_uses_gmt():
    """Dates are RFC 1123 formatted in GMT."""
    assert http_date(0) == "Thu, 01 Jan 1970 00:00:00 GMT"


def test_compute_fresh_headers_all_enabled():
    """Every validator is present with the default configuration."""
    config = ServerConfig(directory="/srv", max_age=600)
    headers = compute_fresh_headers(META, config, now=0)

    assert headers["Expires"] == "Thu, 01 Jan 1970 00:10:00 GMT"
    assert headers["Cache-Control"] == "public, max-age=600"
    assert headers["Last-Modified"] == http_date(META.mtime)
    assert headers["ETag"] == generate_etag(META)


def test_compute_fresh_headers_respects_disabled_flags():
    """Disabled features leave their header out entirely."""
    config = ServerConfig(
        directory="/srv",
        cache_control=False,
        expires=False,
        etag=False,
        last_modified=False,
    )
    assert compute_fresh_headers(META, config) == {}


def test_compute_fresh_headers_zero_max_age():
    """A zero lifetime expires immediately."""
    config = ServerConfig(directory="/srv", max_age=0)
    headers = compute_fresh_headers(META, config, now=60)
    assert headers["Cache-Control"] == "public, max-age=0"
    assert headers["Expires"] == http_date(60)


class TestIsFresh:
    """Conditional request evaluation."""

    fresh = {"ETag": 'W/"1-2"', "Last-Modified": "Tue, 14 Nov 2023 22:13:20 GMT"}

    def test_no_validators_is_not_fresh(self):
        """Unconditional requests always get the full body."""
        assert not is_fresh({}, self.fresh)

    def test_matching_etag_is_fresh(self):
        """An exact ETag match yields 304."""
        assert is_fresh({"if-none-match": 'W/"1-2"'}, self.fresh)

    def test_mismatched_etag_is_not_fresh(self):
        """A different ETag means the client copy is stale."""
        assert not is_fresh({"if-none-match": 'W/"1-3"'}, self.fresh)

    def test_matching_last_modified_is_fresh(self):
        """An identical If-Modified-Since string yields 304."""
        assert is_fresh(
            {"if-modified-since": "Tue, 14 Nov 2023 22:13:20 GMT"}, self.fresh
        )

    def test_both_validators_must_match(self):
        """One stale validator is enough to resend the body."""
        headers = {
            "if-none-match": 'W/"1-2"',
            "if-modified-since": "Mon, 13 Nov 2023 22:13:20 GMT",
        }
        assert not is_fresh(headers, self.fresh)

    def test_validator_without_counterpart_is_not_fresh(self):
        """If-None-Match cannot match when ETags are disabled."""
        assert not is_fresh({"if-none-match": 'W/"1-2"'}, {"Cache-Control": "x"})
