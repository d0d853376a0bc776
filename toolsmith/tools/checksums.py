"""SHA-256 helpers for artifacts and download directories."""

from __future__ import annotations

import hashlib
import os
from pathlib import Path

__all__ = [
    "HASH_PREFIX",
    "ARCHIVE_SUFFIXES",
    "sha256_file",
    "hash_download_dir",
    "verify_sha256",
    "find_manifest_digest",
]

HASH_PREFIX = "sha256:"
ARCHIVE_SUFFIXES = (".tar.gz", ".tar.xz", ".zip", ".gz")

_READ_CHUNK = 1024 * 1024


def sha256_file(path: Path) -> str:
    """Hex digest of a file's content."""
    digest = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(_READ_CHUNK), b""):
            digest.update(chunk)
    return digest.hexdigest()


def hash_download_dir(download_dir: Path) -> str:
    """Algorithm-tagged digest of a download directory.

    A directory holding a recognized archive is identified by that archive
    alone (the first one in name order). Otherwise every regular file and
    symlink is fed into one running digest in sorted walk order: the
    relative path followed by the content, or ``path->target`` for links.

    Raises:
        OSError: If the directory or a file cannot be read.
    """
    names = sorted(os.listdir(download_dir))
    for name in names:
        path = download_dir / name
        if name.endswith(ARCHIVE_SUFFIXES) and path.is_file() and not path.is_symlink():
            return HASH_PREFIX + sha256_file(path)

    digest = hashlib.sha256()
    for root, dirs, files in os.walk(download_dir):
        dirs.sort()
        for name in sorted(files + [d for d in dirs if os.path.islink(os.path.join(root, d))]):
            path = Path(root, name)
            rel = path.relative_to(download_dir).as_posix()
            if path.is_symlink():
                digest.update(f"{rel}->{os.readlink(path)}".encode())
            elif path.is_file():
                digest.update(rel.encode())
                with open(path, "rb") as f:
                    for chunk in iter(lambda: f.read(_READ_CHUNK), b""):
                        digest.update(chunk)
    return HASH_PREFIX + digest.hexdigest()


def verify_sha256(path: Path, expected: str) -> bool:
    """Compare a file's digest with the first field of ``expected``.

    ``expected`` may be a bare hex digest, ``sha256:<hex>``, or a whole
    manifest line (``<hex>  <filename>``).
    """
    fields = expected.split()
    if not fields:
        return False
    want = fields[0].lower().removeprefix(HASH_PREFIX)
    return sha256_file(path) == want


def find_manifest_digest(manifest: str, filename: str) -> str | None:
    """Find the digest for filename in a ``<hex>  <name>`` manifest.

    Names may carry a leading ``*`` (binary mode marker) or a directory
    prefix; the last path component is matched.
    """
    for line in manifest.splitlines():
        fields = line.split()
        if len(fields) < 2:
            continue
        name = fields[1].lstrip("*")
        if name == filename or name.endswith("/" + filename):
            return fields[0]
    return None
