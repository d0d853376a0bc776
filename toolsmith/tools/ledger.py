"""Checksum ledger: recorded content hashes per tool version.

The ledger is a flat text file (``.tool-sums``):

    # Tool checksums - DO NOT EDIT
    # Format: name version sha256:hash
    node 20.11.0 sha256:3f1c...
    zig 0.13.0 sha256:9ab0...

Verification follows trust-on-first-use: a version with no record passes,
and only a recorded hash that differs is fatal. Reads take a shared lock on
the ledger file, read-modify-write sequences an exclusive one, so concurrent
installer processes never interleave.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from toolsmith.core.errors import EngineError, ErrorKind
from toolsmith.core.result import Err, Ok, Result
from toolsmith.platform.files import locked_file, rewrite_locked
from toolsmith.tools.checksums import hash_download_dir

__all__ = [
    "ChecksumLedger",
    "ChecksumMismatch",
    "LEDGER_HEADER",
    "parse_ledger",
    "format_ledger",
]

LEDGER_HEADER = (
    "# Tool checksums - DO NOT EDIT",
    "# Format: name version sha256:hash",
)

type LedgerKey = tuple[str, str]


@dataclass(frozen=True, slots=True)
class ChecksumMismatch:
    """Recorded and computed hashes for a failed verification."""

    expected: str
    actual: str

    def __str__(self) -> str:
        return f"expected {self.expected}, got {self.actual}"


def parse_ledger(text: str) -> dict[LedgerKey, str]:
    """Parse ledger text; blank, comment and malformed lines are skipped.

    A key that appears twice keeps its last value.
    """
    records: dict[LedgerKey, str] = {}
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        fields = line.split()
        if len(fields) < 3:
            continue
        records[(fields[0], fields[1])] = fields[2]
    return records


def format_ledger(records: Mapping[LedgerKey, str]) -> str:
    """Render records sorted by name then version, after the fixed header."""
    lines = list(LEDGER_HEADER)
    for name, version in sorted(records):
        lines.append(f"{name} {version} {records[(name, version)]}")
    return "\n".join(lines) + "\n"


def _io_error(message: str, cause: OSError) -> EngineError:
    return EngineError(ErrorKind.IO, message, cause)


class ChecksumLedger:
    """Lock-guarded store of ``(tool, version) -> sha256:<hex>``."""

    def __init__(self, path: Path) -> None:
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    def read(self) -> Result[dict[LedgerKey, str], EngineError]:
        """Read all records under a shared lock; a missing file is empty."""
        try:
            with locked_file(self._path) as handle:
                if handle is None:
                    return Ok({})
                return Ok(parse_ledger(handle.read()))
        except OSError as e:
            return Err(_io_error(f"cannot read checksum ledger {self._path}", e))

    def lookup(self, name: str, version: str) -> Result[str | None, EngineError]:
        records = self.read()
        if isinstance(records, Err):
            return records
        return Ok(records.value.get((name, version)))

    def _hash(self, download_dir: Path) -> Result[str, EngineError]:
        try:
            return Ok(hash_download_dir(download_dir))
        except OSError as e:
            return Err(_io_error(f"cannot hash {download_dir}", e))

    def verify(self, name: str, version: str, download_dir: Path) -> Result[None, EngineError]:
        """Check download_dir against the recorded hash, if one exists.

        Returns:
            Ok(None) when there is no record or the hashes match, Err with an
            INTEGRITY error carrying both hashes on mismatch
        """
        recorded = self.lookup(name, version)
        if isinstance(recorded, Err):
            return recorded
        if recorded.value is None:
            return Ok(None)

        actual = self._hash(download_dir)
        if isinstance(actual, Err):
            return actual
        if actual.value != recorded.value:
            return Err(
                EngineError(
                    ErrorKind.INTEGRITY,
                    f"checksum mismatch for {name} {version}",
                    ChecksumMismatch(expected=recorded.value, actual=actual.value),
                )
            )
        return Ok(None)

    def record(self, name: str, version: str, download_dir: Path) -> Result[str, EngineError]:
        """Hash download_dir and upsert the ledger entry.

        Returns:
            Ok with the recorded ``sha256:<hex>`` string
        """
        digest = self._hash(download_dir)
        if isinstance(digest, Err):
            return digest

        updated = self._update({(name, version): digest.value})
        if isinstance(updated, Err):
            return updated
        return digest

    def rebuild(self, download_dirs: Mapping[LedgerKey, Path]) -> Result[int, EngineError]:
        """Recompute records from existing download directories.

        Directories that no longer exist are skipped. Other records are kept.

        Returns:
            Ok with the number of records written
        """
        fresh: dict[LedgerKey, str] = {}
        for key, directory in sorted(download_dirs.items()):
            if not directory.is_dir():
                continue
            digest = self._hash(directory)
            if isinstance(digest, Err):
                return digest
            fresh[key] = digest.value

        updated = self._update(fresh)
        if isinstance(updated, Err):
            return updated
        return Ok(len(fresh))

    def _update(self, changes: Mapping[LedgerKey, str]) -> Result[None, EngineError]:
        try:
            with locked_file(self._path, exclusive=True) as handle:
                assert handle is not None
                records = parse_ledger(handle.read())
                records.update(changes)
                rewrite_locked(handle, format_ledger(records))
        except OSError as e:
            return Err(_io_error(f"cannot write checksum ledger {self._path}", e))
        return Ok(None)
