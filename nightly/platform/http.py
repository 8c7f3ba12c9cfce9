"""HTTP client abstraction for the GitHub REST endpoints the pipeline uses.

This module provides:
- HttpClient: Protocol for HTTP operations (injectable for tests)
- RealHttpClient: Real implementation using urllib
- MockHttpClient: Mock implementation for testing

Only two shapes of request exist: a JSON GET (upstream recency lookup) and
a binary POST of a local file (release asset upload).
"""

from __future__ import annotations

import json
import ssl
import urllib.error
import urllib.request
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol, runtime_checkable

from nightly import __version__
from nightly.core.result import Err, Ok, Result

__all__ = [
    "HttpClient",
    "RealHttpClient",
    "MockHttpClient",
    "HttpError",
]


@dataclass(frozen=True, slots=True)
class HttpError:
    """HTTP error details.

    Attributes:
        url: The URL that failed
        status: HTTP status code (0 for network errors)
        message: Human-readable error message
    """

    url: str
    status: int
    message: str

    def __str__(self) -> str:
        if self.status:
            return f"HTTP {self.status}: {self.message} ({self.url})"
        return f"{self.message} ({self.url})"


@runtime_checkable
class HttpClient(Protocol):
    """Protocol for HTTP operations."""

    def get_json(
        self, url: str, headers: Mapping[str, str] | None = None
    ) -> Result[object, HttpError]:
        """Fetch URL and parse the body as JSON (object or array)."""
        ...

    def post_file(
        self,
        url: str,
        path: Path,
        content_type: str,
        headers: Mapping[str, str] | None = None,
    ) -> Result[object, HttpError]:
        """POST the file's bytes to URL and parse the JSON response."""
        ...


class RealHttpClient:
    """Real HTTP client using urllib.

    Handles:
    - HTTPS with system certificates
    - JSON parsing of responses
    - Timeout handling
    """

    def __init__(self, timeout: float = 60.0, user_agent: str | None = None) -> None:
        self.timeout = timeout
        self.user_agent = user_agent or f"nightly/{__version__}"
        self._ssl_context = ssl.create_default_context()

    def _send(self, req: urllib.request.Request) -> Result[bytes, HttpError]:
        url = req.full_url
        try:
            with urllib.request.urlopen(
                req,
                timeout=self.timeout,
                context=self._ssl_context,
            ) as response:
                return Ok(response.read())
        except urllib.error.HTTPError as e:
            return Err(HttpError(url=url, status=e.code, message=str(e.reason)))
        except urllib.error.URLError as e:
            return Err(HttpError(url=url, status=0, message=str(e.reason)))
        except TimeoutError:
            return Err(HttpError(url=url, status=0, message="Request timed out"))
        except ValueError as e:
            return Err(HttpError(url=url, status=0, message=str(e)))
        except OSError as e:
            return Err(HttpError(url=url, status=0, message=str(e)))

    def _headers(self, extra: Mapping[str, str] | None) -> dict[str, str]:
        headers = {"User-Agent": self.user_agent, "Accept": "application/vnd.github+json"}
        if extra:
            headers.update(extra)
        return headers

    def _decode(self, url: str, body: bytes) -> Result[object, HttpError]:
        if not body:
            return Ok(None)
        try:
            return Ok(json.loads(body.decode("utf-8")))
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            return Err(HttpError(url=url, status=0, message=f"JSON parse error: {e}"))

    def get_json(
        self, url: str, headers: Mapping[str, str] | None = None
    ) -> Result[object, HttpError]:
        req = urllib.request.Request(url, headers=self._headers(headers))
        result = self._send(req)
        if isinstance(result, Err):
            return result
        return self._decode(url, result.value)

    def post_file(
        self,
        url: str,
        path: Path,
        content_type: str,
        headers: Mapping[str, str] | None = None,
    ) -> Result[object, HttpError]:
        try:
            data = path.read_bytes()
        except OSError as e:
            return Err(HttpError(url=url, status=0, message=f"cannot read {path}: {e}"))

        all_headers = self._headers(headers)
        all_headers["Content-Type"] = content_type
        all_headers["Content-Length"] = str(len(data))
        req = urllib.request.Request(url, data=data, headers=all_headers, method="POST")
        result = self._send(req)
        if isinstance(result, Err):
            return result
        return self._decode(url, result.value)


@dataclass(frozen=True, slots=True)
class PostedFile:
    """A request recorded by MockHttpClient.post_file."""

    url: str
    path: Path
    content_type: str
    headers: dict[str, str]


def _no_posts() -> list[PostedFile]:
    return []


@dataclass
class MockHttpClient:
    """Mock HTTP client for testing.

    Usage:
        client = MockHttpClient()
        client.set_json("https://api.github.com/repos/o/r/commits", [...])
        result = client.get_json("https://api.github.com/repos/o/r/commits")
    """

    json_responses: dict[str, object] = field(default_factory=dict)
    post_responses: dict[str, object] = field(default_factory=dict)
    posted: list[PostedFile] = field(default_factory=_no_posts)
    calls: list[tuple[str, str]] = field(default_factory=list)

    def set_json(self, url: str, response: object) -> None:
        """Set JSON response (or HttpError) for URL."""
        self.json_responses[url] = response

    def set_post(self, url: str, response: object) -> None:
        """Set POST response (or HttpError) for URL."""
        self.post_responses[url] = response

    def get_json(
        self, url: str, headers: Mapping[str, str] | None = None
    ) -> Result[object, HttpError]:
        self.calls.append(("get_json", url))
        if url not in self.json_responses:
            return Err(HttpError(url=url, status=404, message="Not found (mock)"))
        response = self.json_responses[url]
        if isinstance(response, HttpError):
            return Err(response)
        return Ok(response)

    def post_file(
        self,
        url: str,
        path: Path,
        content_type: str,
        headers: Mapping[str, str] | None = None,
    ) -> Result[object, HttpError]:
        self.calls.append(("post_file", url))
        self.posted.append(
            PostedFile(url=url, path=path, content_type=content_type, headers=dict(headers or {}))
        )
        response = self.post_responses.get(url, {})
        if isinstance(response, HttpError):
            return Err(response)
        return Ok(response)
