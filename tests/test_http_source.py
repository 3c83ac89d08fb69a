"""Tests for the requests-based registry client."""

import json
from unittest.mock import MagicMock

import pytest
import requests

from common.errors import FetchError, PackageNotFoundError, TransientFetchError
from source.http import HttpPackageSource, classify_status
from versioning.models import parse_version


def response(status=200, payload=None, content=b""):
    mock_response = MagicMock()
    mock_response.status_code = status
    mock_response.content = content
    if payload is not None:
        mock_response.json.return_value = payload
    else:
        mock_response.json.side_effect = json.JSONDecodeError("bad", "", 0)
    return mock_response


def client(*responses, retry_max=3):
    session = MagicMock()
    session.headers = {}
    session.get.side_effect = list(responses)
    return HttpPackageSource("https://rocks.example/api/", retry_max=retry_max, retry_base_delay=0,
                             session=session), session


class TestClassifyStatus:
    """Tests for HTTP status mapping."""

    def test_not_found(self):
        """404 is permanent."""
        with pytest.raises(PackageNotFoundError):
            classify_status(404, "lpeg")

    @pytest.mark.parametrize("status", [429, 500, 503])
    def test_transient(self, status):
        """Rate limits and server errors are retryable."""
        with pytest.raises(TransientFetchError):
            classify_status(status, "lpeg")

    def test_other_client_errors(self):
        """Other non-success statuses are plain fetch errors."""
        with pytest.raises(FetchError) as exc_info:
            classify_status(403, "lpeg", "1.0.0")
        assert not isinstance(exc_info.value, TransientFetchError)
        assert "lpeg@1.0.0" in str(exc_info.value)

    def test_ok(self):
        """200 passes."""
        classify_status(200, "lpeg")


class TestHttpPackageSource:
    """Tests for index lookup and content fetch."""

    def test_urls(self):
        """Names are quoted as a single path segment."""
        source, session = client()
        assert source.index_url("lua-cjson") == "https://rocks.example/api/lua-cjson/index.json"
        assert source.archive_url("a/b", parse_version("1.0.0")) == "https://rocks.example/api/a%2Fb/1.0.0/archive"
        assert session.headers["User-Agent"].startswith("rockyard/")

    def test_list_versions(self):
        """The index is parsed and sorted; bad versions are skipped."""
        payload = {"versions": {
            "2.0.0": {"dependencies": {"lpeg": "^1.0"}},
            "1.0.0": {},
            "not-a-version": {},
        }}
        source, session = client(response(payload=payload))
        published = source.list_versions("penlight")
        assert [str(p.version) for p in published] == ["1.0.0", "2.0.0"]
        assert published[1].metadata["dependencies"] == {"lpeg": "^1.0"}
        session.get.assert_called_once_with("https://rocks.example/api/penlight/index.json", timeout=source.timeout)

    def test_list_versions_retries_transient(self):
        """Server errors are retried until success."""
        source, session = client(response(503), response(payload={"versions": {"1.0.0": {}}}))
        assert len(source.list_versions("lpeg")) == 1
        assert session.get.call_count == 2

    def test_list_versions_connection_errors_exhaust(self):
        """Connection failures become TransientFetchError after every attempt."""
        errors = [requests.ConnectionError("reset")] * 3
        source, session = client(*errors)
        with pytest.raises(TransientFetchError):
            source.list_versions("lpeg")
        assert session.get.call_count == 3

    def test_not_found_not_retried(self):
        """404 fails on the first attempt."""
        source, session = client(response(404), response(404))
        with pytest.raises(PackageNotFoundError):
            source.list_versions("ghost")
        assert session.get.call_count == 1

    def test_malformed_index(self):
        """Non-JSON and shapeless indexes are fetch errors."""
        source, _ = client(response(payload=None))
        with pytest.raises(FetchError):
            source.list_versions("lpeg")
        source, _ = client(response(payload={"releases": []}))
        with pytest.raises(FetchError):
            source.list_versions("lpeg")

    def test_fetch_single_attempt(self):
        """fetch returns content and leaves retries to the caller."""
        source, session = client(response(content=b"return {}"))
        assert source.fetch("lpeg", "1.1.0") == b"return {}"
        session.get.assert_called_once_with("https://rocks.example/api/lpeg/1.1.0/archive", timeout=source.timeout)

        source, session = client(requests.Timeout("slow"), response(content=b"x"))
        with pytest.raises(TransientFetchError) as exc_info:
            source.fetch("lpeg", "1.1.0")
        assert "timed out" in str(exc_info.value)
        assert session.get.call_count == 1
