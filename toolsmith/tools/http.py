"""HTTP client abstraction.

This module provides:
- HttpClient: Protocol for HTTP operations (injected into every fetcher and
  version source, never a module-level singleton)
- RealHttpClient: Real implementation using urllib
- MockHttpClient: Mock implementation for testing
"""

from __future__ import annotations

import ssl
import urllib.error
import urllib.request
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from toolsmith.core.config import DEFAULT_HTTP_TIMEOUT, DEFAULT_USER_AGENT
from toolsmith.core.result import Err, Ok, Result

if TYPE_CHECKING:
    from collections.abc import Callable
    from http.client import HTTPResponse

    from toolsmith.core.context import Context

__all__ = [
    "HttpClient",
    "RealHttpClient",
    "MockHttpClient",
    "HttpError",
    "CHUNK_SIZE",
]

CHUNK_SIZE = 64 * 1024


@dataclass(frozen=True, slots=True)
class HttpError:
    """HTTP error details.

    Attributes:
        url: The URL that failed
        status: HTTP status code (0 for network errors)
        message: Human-readable error message
        cancelled: True when the caller's context ended the request
    """

    url: str
    status: int
    message: str
    cancelled: bool = False

    def __str__(self) -> str:
        if self.status:
            return f"HTTP {self.status}: {self.message} ({self.url})"
        return f"{self.message} ({self.url})"


@runtime_checkable
class HttpClient(Protocol):
    """Protocol for HTTP GET operations bound to a cancellation context."""

    def get_text(
        self,
        ctx: Context,
        url: str,
        headers: Mapping[str, str] | None = None,
    ) -> Result[str, HttpError]:
        """Fetch URL and return the body decoded as UTF-8."""
        ...

    def download(
        self,
        ctx: Context,
        url: str,
        dest: Path,
        progress: Callable[[int, int], None] | None = None,
    ) -> Result[Path, HttpError]:
        """Stream URL into dest (which the caller owns and cleans up)."""
        ...


def _cancelled(ctx: Context, url: str) -> HttpError:
    return HttpError(url=url, status=0, message=ctx.reason(), cancelled=True)


class RealHttpClient:
    """HTTP client using urllib.

    One instance is shared by all fetchers of a process. The timeout is a
    ceiling per request; there is no retry at this layer.
    """

    def __init__(
        self,
        timeout: float = DEFAULT_HTTP_TIMEOUT,
        user_agent: str = DEFAULT_USER_AGENT,
    ) -> None:
        self.timeout = timeout
        self.user_agent = user_agent
        self._ssl_context = ssl.create_default_context()

    def _open(
        self, ctx: Context, url: str, headers: Mapping[str, str] | None
    ) -> Result[HTTPResponse, HttpError]:
        if ctx.done:
            return Err(_cancelled(ctx, url))

        timeout = ctx.bound_timeout(self.timeout)
        if timeout <= 0:
            return Err(_cancelled(ctx, url))

        req = urllib.request.Request(
            url, headers={"User-Agent": self.user_agent, **(headers or {})}
        )
        try:
            response: HTTPResponse = urllib.request.urlopen(
                req, timeout=timeout, context=self._ssl_context
            )
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

        if not 200 <= response.status < 300:
            response.close()
            return Err(
                HttpError(url=url, status=response.status, message="Unexpected response status")
            )
        return Ok(response)

    def _stream(
        self,
        ctx: Context,
        url: str,
        response: HTTPResponse,
        sink: Callable[[bytes], None],
        progress: Callable[[int, int], None] | None,
    ) -> Result[int, HttpError]:
        total = int(response.headers.get("Content-Length") or 0)
        received = 0
        try:
            with response:
                while True:
                    if ctx.done:
                        return Err(_cancelled(ctx, url))
                    chunk = response.read(CHUNK_SIZE)
                    if not chunk:
                        break
                    sink(chunk)
                    received += len(chunk)
                    if progress:
                        progress(received, total)
        except TimeoutError:
            return Err(HttpError(url=url, status=0, message="Download timed out"))
        except OSError as e:
            return Err(HttpError(url=url, status=0, message=str(e)))
        return Ok(received)

    def get_text(
        self,
        ctx: Context,
        url: str,
        headers: Mapping[str, str] | None = None,
    ) -> Result[str, HttpError]:
        """Fetch URL into memory and decode it."""
        opened = self._open(ctx, url, headers)
        if isinstance(opened, Err):
            return opened

        buffer = bytearray()
        streamed = self._stream(ctx, url, opened.value, buffer.extend, None)
        if isinstance(streamed, Err):
            return streamed

        try:
            return Ok(bytes(buffer).decode("utf-8"))
        except UnicodeDecodeError as e:
            return Err(HttpError(url=url, status=0, message=f"Decode error: {e}"))

    def download(
        self,
        ctx: Context,
        url: str,
        dest: Path,
        progress: Callable[[int, int], None] | None = None,
    ) -> Result[Path, HttpError]:
        """Download URL to dest, checking ctx between chunks."""
        opened = self._open(ctx, url, None)
        if isinstance(opened, Err):
            return opened

        try:
            with open(dest, "wb") as f:
                streamed = self._stream(ctx, url, opened.value, f.write, progress)
        except OSError as e:
            opened.value.close()
            return Err(HttpError(url=url, status=0, message=str(e)))
        if isinstance(streamed, Err):
            return streamed
        return Ok(dest)


class MockHttpClient:
    """Mock HTTP client for testing.

    Usage:
        client = MockHttpClient()
        client.set_text("https://example.com/SHASUMS256.txt", "abc  tool.tar.gz\\n")
        client.set_download("https://example.com/tool.tar.gz", b"...")
    """

    def __init__(self) -> None:
        self._text_responses: dict[str, str | HttpError] = {}
        self._download_responses: dict[str, bytes | HttpError] = {}
        self.calls: list[tuple[str, str]] = []
        self.headers: dict[str, Mapping[str, str]] = {}

    def set_text(self, url: str, response: str | HttpError) -> None:
        self._text_responses[url] = response

    def set_download(self, url: str, response: bytes | HttpError) -> None:
        self._download_responses[url] = response

    def get_text(
        self,
        ctx: Context,
        url: str,
        headers: Mapping[str, str] | None = None,
    ) -> Result[str, HttpError]:
        self.calls.append(("get_text", url))
        self.headers[url] = dict(headers or {})
        if ctx.done:
            return Err(_cancelled(ctx, url))

        response = self._text_responses.get(url)
        if response is None:
            return Err(HttpError(url=url, status=404, message="Not found (mock)"))
        if isinstance(response, HttpError):
            return Err(response)
        return Ok(response)

    def download(
        self,
        ctx: Context,
        url: str,
        dest: Path,
        progress: Callable[[int, int], None] | None = None,
    ) -> Result[Path, HttpError]:
        """Mock download - writes predefined content to dest."""
        self.calls.append(("download", url))
        if ctx.done:
            return Err(_cancelled(ctx, url))

        response = self._download_responses.get(url)
        if response is None:
            return Err(HttpError(url=url, status=404, message="Not found (mock)"))
        if isinstance(response, HttpError):
            return Err(response)

        dest.write_bytes(response)
        if progress:
            progress(len(response), len(response))
        return Ok(dest)

    def download_count(self, url: str) -> int:
        return self.calls.count(("download", url))
