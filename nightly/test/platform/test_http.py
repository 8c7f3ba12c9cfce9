"""Tests for platform/http.py (mock client behaviour)."""

from __future__ import annotations

from pathlib import Path

from nightly.core.result import Err, Ok
from nightly.platform.http import HttpClient, HttpError, MockHttpClient, RealHttpClient


class TestMockHttpClient:
    def test_unknown_url_is_404(self) -> None:
        client = MockHttpClient()
        result = client.get_json("https://example.invalid/x")
        assert isinstance(result, Err)
        assert result.error.status == 404

    def test_configured_json(self) -> None:
        client = MockHttpClient()
        client.set_json("https://example.invalid/x", [{"a": 1}])
        assert client.get_json("https://example.invalid/x") == Ok([{"a": 1}])
        assert client.calls == [("get_json", "https://example.invalid/x")]

    def test_configured_error(self) -> None:
        client = MockHttpClient()
        error = HttpError(url="u", status=500, message="boom")
        client.set_json("u", error)
        assert client.get_json("u") == Err(error)

    def test_post_records_request(self, tmp_path: Path) -> None:
        client = MockHttpClient()
        f = tmp_path / "a.zip"
        f.write_bytes(b"zip")
        result = client.post_file("u", f, "application/zip", {"Authorization": "Bearer t"})
        assert result == Ok({})
        assert client.posted[0].content_type == "application/zip"
        assert client.posted[0].headers["Authorization"] == "Bearer t"


def test_clients_satisfy_protocol() -> None:
    assert isinstance(MockHttpClient(), HttpClient)
    assert isinstance(RealHttpClient(), HttpClient)


def test_http_error_str() -> None:
    assert str(HttpError(url="u", status=422, message="Unprocessable")) == (
        "HTTP 422: Unprocessable (u)"
    )
    assert str(HttpError(url="u", status=0, message="offline")) == "offline (u)"


def test_real_client_post_missing_file(tmp_path: Path) -> None:
    result = RealHttpClient().post_file("https://example.invalid", tmp_path / "nope", "a/b")
    assert isinstance(result, Err)
    assert result.error.status == 0
