"""Filesystem helpers: atomic writes and advisory file locks."""

from __future__ import annotations

import os
import sys
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import IO

__all__ = ["atomic_write_text", "locked_file", "rewrite_locked"]


def atomic_write_text(path: Path, content: str, *, encoding: str = "utf-8") -> None:
    """Write text to path atomically using temp file + replace."""
    path.parent.mkdir(parents=True, exist_ok=True)

    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent))
    tmp_path = Path(tmp_name)

    try:
        with os.fdopen(fd, "w", encoding=encoding, newline="") as handle:
            handle.write(content)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_path, path)
    finally:
        tmp_path.unlink(missing_ok=True)


def _acquire(handle: IO[str], exclusive: bool) -> None:
    if sys.platform == "win32":
        import msvcrt

        # msvcrt has no shared mode; readers serialize with writers.
        handle.seek(0)
        msvcrt.locking(handle.fileno(), msvcrt.LK_LOCK, 1)
        return

    import fcntl

    fcntl.flock(handle.fileno(), fcntl.LOCK_EX if exclusive else fcntl.LOCK_SH)


def _release(handle: IO[str]) -> None:
    if sys.platform == "win32":
        import msvcrt

        handle.seek(0)
        msvcrt.locking(handle.fileno(), msvcrt.LK_UNLCK, 1)
        return

    import fcntl

    fcntl.flock(handle.fileno(), fcntl.LOCK_UN)


@contextmanager
def locked_file(path: Path, *, exclusive: bool = False) -> Iterator[IO[str] | None]:
    """Open ``path`` under an advisory lock for the duration of the block.

    Shared locks are for reads; a missing file yields None instead of
    failing. Exclusive locks create the file (and parents) when absent.
    The lock is released on the same path that acquired it, including when
    the block raises.
    """
    if exclusive:
        path.parent.mkdir(parents=True, exist_ok=True)
        handle = open(path, "a+", encoding="utf-8", newline="")
    else:
        try:
            handle = open(path, encoding="utf-8", newline="")
        except FileNotFoundError:
            yield None
            return

    with handle:
        _acquire(handle, exclusive)
        try:
            handle.seek(0)
            yield handle
        finally:
            _release(handle)


def rewrite_locked(handle: IO[str], content: str) -> None:
    """Replace the contents of a file held under an exclusive lock.

    The file is truncated in place rather than renamed so the lock, which is
    tied to the open inode, keeps guarding it.
    """
    handle.seek(0)
    handle.truncate()
    handle.write(content)
    handle.flush()
    os.fsync(handle.fileno())
