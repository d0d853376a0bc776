"""Artifact fetching.

``ArtifactFetcher.download_file`` never leaves a partially written file at the
destination: the body is streamed into a hidden sibling temp file (same
filesystem) which is renamed into place only after the transfer completes.
"""

from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import TYPE_CHECKING

from toolsmith.core.errors import EngineError, ErrorKind
from toolsmith.core.result import Err, Ok, Result

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

    from toolsmith.core.context import Context
    from toolsmith.tools.http import HttpClient, HttpError

__all__ = ["ArtifactFetcher", "http_failure"]


def http_failure(error: HttpError, message: str = "download failed") -> EngineError:
    """Wrap an HttpError as a transient (or cancelled) engine error."""
    kind = ErrorKind.CANCELLED if error.cancelled else ErrorKind.TRANSIENT
    return EngineError(kind, message, error)


class ArtifactFetcher:
    """Downloads files and small text payloads through an injected client.

    Usage:
        fetcher = ArtifactFetcher(RealHttpClient())
        result = fetcher.download_file(ctx, url, download_dir / "tool.tar.gz")
    """

    def __init__(self, http: HttpClient) -> None:
        self._http = http

    @property
    def http(self) -> HttpClient:
        return self._http

    def download_file(
        self,
        ctx: Context,
        url: str,
        dest: Path,
        progress: Callable[[int, int], None] | None = None,
    ) -> Result[Path, EngineError]:
        """Download url to dest atomically.

        Args:
            ctx: Cancellation context for the request
            url: URL to fetch
            dest: Final path; its parent is created if needed
            progress: Optional callback(downloaded, total)

        Returns:
            Ok with dest, or Err (transient, cancelled or I/O)
        """
        try:
            dest.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=f".{dest.name}.tmp-", dir=str(dest.parent))
            os.close(fd)
        except OSError as e:
            return Err(EngineError(ErrorKind.IO, f"cannot create temp file for {dest}", e))

        tmp_path = Path(tmp_name)
        try:
            result = self._http.download(ctx, url, tmp_path, progress=progress)
            if isinstance(result, Err):
                return Err(http_failure(result.error))
            os.replace(tmp_path, dest)
        except OSError as e:
            return Err(EngineError(ErrorKind.IO, f"cannot write {dest}", e))
        finally:
            tmp_path.unlink(missing_ok=True)

        return Ok(dest)

    def download_string(
        self,
        ctx: Context,
        url: str,
        headers: Mapping[str, str] | None = None,
    ) -> Result[str, EngineError]:
        """Fetch a small text payload (version index, checksum manifest)."""
        result = self._http.get_text(ctx, url, headers)
        if isinstance(result, Err):
            return Err(http_failure(result.error, "fetch failed"))
        return result
