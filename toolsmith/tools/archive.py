"""Archive extraction with path and size guards.

This module provides an ArchiveExtractor that:
- Extracts tar.gz, tar.xz and zip archives into a directory
- Decompresses a raw gzip stream into a single file
- Rejects entries whose path would land outside the destination
- Caps each entry's decompressed size and the archive's cumulative size

Symlink entries are recreated with their stored target verbatim; only the
link's own location is bounds-checked unless ``strict_symlinks`` is set.
In that permissive mode a later entry named through an earlier link (``link``
then ``link/file``) is written wherever the link points. Already-written
entries are not removed when a later entry fails, so callers that need
atomicity extract into a disposable directory.
"""

from __future__ import annotations

import gzip
import lzma
import os
import stat
import tarfile
import zipfile
import zlib
from dataclasses import dataclass
from pathlib import Path
from typing import IO

from toolsmith.core.errors import ErrorKind
from toolsmith.core.result import Err, Ok, Result

__all__ = [
    "ArchiveExtractor",
    "ArchiveError",
    "ExtractResult",
    "ByteBudget",
    "LimitedWriter",
    "WriteLimitExceeded",
    "MAX_ARCHIVE_BYTES",
    "MAX_ARCHIVE_FILE_BYTES",
    "ARCHIVE_TYPES",
    "is_within_dir",
]

MAX_ARCHIVE_BYTES = 1 << 30
MAX_ARCHIVE_FILE_BYTES = 512 << 20

ARCHIVE_TYPES = ("tar.gz", "tar.xz", "zip", "gz")

_COPY_CHUNK = 64 * 1024
_DIR_PERM = 0o755
_FILE_PERM = 0o644
# Raw gz payloads are written private; installers widen the mode afterwards.
_GZ_FILE_PERM = 0o600
_GZIP_MAGIC = b"\x1f\x8b"
_MAX_LINK_BYTES = 4096


@dataclass(frozen=True, slots=True)
class ArchiveError:
    """Extraction error details.

    Attributes:
        archive: Path to the archive that failed
        message: Human-readable error message
        kind: INTEGRITY for unsafe or corrupt content, IO for local failures
    """

    archive: Path
    message: str
    kind: ErrorKind = ErrorKind.IO

    def __str__(self) -> str:
        return f"{self.message} ({self.archive})"


@dataclass(frozen=True, slots=True)
class ExtractResult:
    """Result of an extraction.

    Attributes:
        dest: Directory (or file, for gz) written to
        entries: Number of directories, files and links created
        total_bytes: Decompressed bytes written
    """

    dest: Path
    entries: int
    total_bytes: int


@dataclass(frozen=True, slots=True)
class WriteLimitExceeded:
    """A bounded write hit a cap after accepting ``written`` bytes."""

    written: int

    def __str__(self) -> str:
        return "archive size limit exceeded"


class ByteBudget:
    """Cumulative decompressed-size allowance shared by one archive's entries."""

    def __init__(self, limit: int) -> None:
        self.limit = limit
        self.used = 0

    @property
    def remaining(self) -> int:
        return max(0, self.limit - self.used)


class LimitedWriter:
    """Writer enforcing a per-file cap and a shared per-archive budget.

    ``write`` accepts as many bytes as both bounds allow. When the input does
    not fit, the accepted prefix is still written and the error reports how
    many bytes that was.
    """

    def __init__(self, sink: IO[bytes], file_limit: int, budget: ByteBudget | None) -> None:
        if file_limit <= 0 or budget is None or budget.limit <= 0:
            raise ValueError("invalid archive size limits")
        self._sink = sink
        self._file_limit = file_limit
        self._budget = budget
        self.written = 0

    def write(self, data: bytes) -> Result[int, WriteLimitExceeded]:
        allowed = min(len(data), self._file_limit - self.written, self._budget.remaining)
        allowed = max(0, allowed)
        if allowed:
            self._sink.write(data[:allowed])
            self.written += allowed
            self._budget.used += allowed
        if allowed < len(data):
            return Err(WriteLimitExceeded(written=allowed))
        return Ok(allowed)


def is_within_dir(path: str, directory: str) -> bool:
    """True if the normalized path equals directory or sits beneath it."""
    path = os.path.normpath(path)
    directory = os.path.normpath(directory)
    if path == directory:
        return True
    prefix = directory if directory.endswith(os.sep) else directory + os.sep
    return path.startswith(prefix)


class ArchiveExtractor:
    """Extractor for tool distributions.

    Usage:
        extractor = ArchiveExtractor()
        result = extractor.extract_tar_gz(archive_path, scratch_dir)
        if isinstance(result, Err):
            ...
    """

    def __init__(
        self,
        *,
        max_file_bytes: int = MAX_ARCHIVE_FILE_BYTES,
        max_total_bytes: int = MAX_ARCHIVE_BYTES,
        strict_symlinks: bool = False,
    ) -> None:
        """Initialize extractor.

        Args:
            max_file_bytes: Cap on one entry's decompressed size
            max_total_bytes: Cap on the sum over one archive
            strict_symlinks: Also reject symlinks whose target resolves
                outside the destination
        """
        self.max_file_bytes = max_file_bytes
        self.max_total_bytes = max_total_bytes
        self.strict_symlinks = strict_symlinks

    def extract(
        self, archive: Path, dest: Path, archive_type: str
    ) -> Result[ExtractResult, ArchiveError]:
        """Dispatch on a declared type: tar.gz (tgz), tar.xz (txz), zip or gz."""
        match archive_type.lower().lstrip("."):
            case "tar.gz" | "tgz":
                return self.extract_tar_gz(archive, dest)
            case "tar.xz" | "txz":
                return self.extract_tar_xz(archive, dest)
            case "zip":
                return self.extract_zip(archive, dest)
            case "gz":
                return self.extract_gz(archive, dest)
            case _:
                return Err(
                    ArchiveError(
                        archive,
                        f"unsupported archive type: {archive_type}",
                        ErrorKind.CONFIGURATION,
                    )
                )

    def extract_tar_gz(self, archive: Path, dest: Path) -> Result[ExtractResult, ArchiveError]:
        return self._extract_tar(archive, dest, "r:gz")

    def extract_tar_xz(self, archive: Path, dest: Path) -> Result[ExtractResult, ArchiveError]:
        return self._extract_tar(archive, dest, "r:xz")

    def _new_budget(self) -> ByteBudget:
        return ByteBudget(self.max_total_bytes)

    def _target(self, dest: Path, name: str) -> str | None:
        """Destination path for an entry name, or None if it escapes dest."""
        target = os.path.normpath(os.path.join(dest, os.path.normpath(name)))
        if not is_within_dir(target, str(dest)):
            return None
        return target

    def _copy(
        self, archive: Path, name: str, src: IO[bytes], dst: IO[bytes], budget: ByteBudget
    ) -> Result[int, ArchiveError]:
        writer = LimitedWriter(dst, self.max_file_bytes, budget)
        while True:
            chunk = src.read(_COPY_CHUNK)
            if not chunk:
                return Ok(writer.written)
            written = writer.write(chunk)
            if isinstance(written, Err):
                return Err(
                    ArchiveError(
                        archive, f"archive size limit exceeded: {name}", ErrorKind.INTEGRITY
                    )
                )

    def _check_declared_size(self, archive: Path, name: str, size: int) -> ArchiveError | None:
        if size > self.max_file_bytes:
            return ArchiveError(archive, f"file too large in archive: {name}", ErrorKind.INTEGRITY)
        return None

    def _write_file(
        self,
        archive: Path,
        name: str,
        target: str,
        src: IO[bytes],
        mode: int,
        budget: ByteBudget,
    ) -> Result[int, ArchiveError]:
        os.makedirs(os.path.dirname(target), mode=_DIR_PERM, exist_ok=True)
        # Replaces a link at target itself; links in parent components are followed.
        if os.path.islink(target):
            os.unlink(target)
        fd = os.open(target, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, mode or _FILE_PERM)
        with os.fdopen(fd, "wb") as out:
            return self._copy(archive, name, src, out, budget)

    def _make_symlink(
        self, archive: Path, dest: Path, name: str, target: str, link: str
    ) -> Result[None, ArchiveError]:
        if self.strict_symlinks:
            resolved = link if os.path.isabs(link) else os.path.join(os.path.dirname(target), link)
            if not is_within_dir(resolved, str(dest)):
                return Err(
                    ArchiveError(archive, f"invalid symlink target: {name}", ErrorKind.INTEGRITY)
                )
        os.makedirs(os.path.dirname(target), mode=_DIR_PERM, exist_ok=True)
        if os.path.lexists(target) and not os.path.isdir(target):
            os.unlink(target)
        os.symlink(link, target)
        return Ok(None)

    def _extract_tar(
        self, archive: Path, dest: Path, mode: str
    ) -> Result[ExtractResult, ArchiveError]:
        budget = self._new_budget()
        entries = 0
        try:
            dest.mkdir(parents=True, exist_ok=True)
            with tarfile.open(archive, mode) as tar:
                for member in tar:
                    target = self._target(dest, member.name)
                    if target is None:
                        return Err(
                            ArchiveError(
                                archive,
                                f"invalid file path in tar archive: {member.name}",
                                ErrorKind.INTEGRITY,
                            )
                        )

                    perm = member.mode & 0o777
                    if member.isdir():
                        os.makedirs(target, mode=perm or _DIR_PERM, exist_ok=True)
                    elif member.isreg():
                        too_large = self._check_declared_size(archive, member.name, member.size)
                        if too_large is not None:
                            return Err(too_large)
                        src = tar.extractfile(member)
                        if src is None:
                            continue
                        with src:
                            copied = self._write_file(
                                archive, member.name, target, src, perm, budget
                            )
                        if isinstance(copied, Err):
                            return copied
                    elif member.issym():
                        linked = self._make_symlink(
                            archive, dest, member.name, target, member.linkname
                        )
                        if isinstance(linked, Err):
                            return linked
                    else:
                        # Hard links, devices and fifos are not part of tool layouts.
                        continue
                    entries += 1
        except (tarfile.TarError, EOFError, zlib.error, lzma.LZMAError, gzip.BadGzipFile) as e:
            return Err(ArchiveError(archive, f"invalid tar archive: {e}", ErrorKind.INTEGRITY))
        except OSError as e:
            return Err(ArchiveError(archive, f"IO error: {e}"))

        return Ok(ExtractResult(dest=dest, entries=entries, total_bytes=budget.used))

    def extract_zip(self, archive: Path, dest: Path) -> Result[ExtractResult, ArchiveError]:
        budget = self._new_budget()
        entries = 0
        try:
            dest.mkdir(parents=True, exist_ok=True)
            with zipfile.ZipFile(archive, "r") as zf:
                for info in zf.infolist():
                    target = self._target(dest, info.filename)
                    if target is None:
                        return Err(
                            ArchiveError(
                                archive,
                                f"invalid file path in zip archive: {info.filename}",
                                ErrorKind.INTEGRITY,
                            )
                        )

                    unix_mode = info.external_attr >> 16
                    if info.is_dir():
                        os.makedirs(target, mode=_DIR_PERM, exist_ok=True)
                    elif stat.S_ISLNK(unix_mode):
                        if info.file_size > _MAX_LINK_BYTES:
                            return Err(
                                ArchiveError(
                                    archive,
                                    f"invalid symlink in zip archive: {info.filename}",
                                    ErrorKind.INTEGRITY,
                                )
                            )
                        link = zf.read(info).decode("utf-8")
                        linked = self._make_symlink(archive, dest, info.filename, target, link)
                        if isinstance(linked, Err):
                            return linked
                    else:
                        too_large = self._check_declared_size(
                            archive, info.filename, info.file_size
                        )
                        if too_large is not None:
                            return Err(too_large)
                        with zf.open(info) as src:
                            copied = self._write_file(
                                archive, info.filename, target, src, unix_mode & 0o777, budget
                            )
                        if isinstance(copied, Err):
                            return copied
                    entries += 1
        except (zipfile.BadZipFile, zlib.error, EOFError, NotImplementedError, RuntimeError) as e:
            return Err(ArchiveError(archive, f"invalid zip archive: {e}", ErrorKind.INTEGRITY))
        except UnicodeDecodeError as e:
            return Err(
                ArchiveError(archive, f"invalid symlink in zip archive: {e}", ErrorKind.INTEGRITY)
            )
        except OSError as e:
            return Err(ArchiveError(archive, f"IO error: {e}"))

        return Ok(ExtractResult(dest=dest, entries=entries, total_bytes=budget.used))

    def extract_gz(self, archive: Path, dest_file: Path) -> Result[ExtractResult, ArchiveError]:
        """Decompress a single gzip stream into dest_file (no directory nesting).

        An empty file or one without the gzip magic bytes is rejected before
        dest_file is touched.
        """
        budget = self._new_budget()
        try:
            with archive.open("rb") as head:
                magic = head.read(len(_GZIP_MAGIC))
        except OSError as e:
            return Err(ArchiveError(archive, f"IO error: {e}"))
        if magic != _GZIP_MAGIC:
            return Err(
                ArchiveError(archive, "invalid gzip stream: missing header", ErrorKind.INTEGRITY)
            )

        try:
            dest_file.parent.mkdir(parents=True, exist_ok=True)
            with gzip.open(archive, "rb") as src:
                copied = self._write_file(
                    archive, dest_file.name, str(dest_file), src, _GZ_FILE_PERM, budget
                )
        except (gzip.BadGzipFile, EOFError, zlib.error) as e:
            return Err(ArchiveError(archive, f"invalid gzip stream: {e}", ErrorKind.INTEGRITY))
        except OSError as e:
            return Err(ArchiveError(archive, f"IO error: {e}"))

        if isinstance(copied, Err):
            return copied
        return Ok(ExtractResult(dest=dest_file, entries=1, total_bytes=budget.used))
