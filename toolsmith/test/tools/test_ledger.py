"""Tests for toolsmith.tools.ledger module."""

import hashlib
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

from toolsmith.core.errors import ErrorKind
from toolsmith.core.result import Err, Ok
from toolsmith.tools.ledger import (
    LEDGER_HEADER,
    ChecksumLedger,
    ChecksumMismatch,
    format_ledger,
    parse_ledger,
)


def make_download(root: Path, content: bytes) -> Path:
    root.mkdir(parents=True, exist_ok=True)
    (root / "tool.tar.gz").write_bytes(content)
    return root


# =============================================================================
# File format
# =============================================================================


class TestFormat:
    """Ledger text format."""

    def test_format_sorted_with_header(self) -> None:
        text = format_ledger({("zig", "0.13.0"): "sha256:b", ("node", "20.0.0"): "sha256:a"})
        assert text.splitlines() == [
            *LEDGER_HEADER,
            "node 20.0.0 sha256:a",
            "zig 0.13.0 sha256:b",
        ]
        assert text.endswith("\n")

    def test_parse_skips_noise(self) -> None:
        text = "# comment\n\nnode 20.0.0 sha256:a\nbroken line\nnode 20.0.0 sha256:c\n"
        assert parse_ledger(text) == {("node", "20.0.0"): "sha256:c"}


# =============================================================================
# Trust on first use
# =============================================================================


class TestVerify:
    """verify / record semantics."""

    def test_unknown_version_passes(self, tmp_path: Path) -> None:
        ledger = ChecksumLedger(tmp_path / ".tool-sums")
        download = make_download(tmp_path / "dl", b"v1")
        assert ledger.verify("zig", "0.13.0", download) == Ok(None)
        assert not ledger.path.exists()

    def test_record_then_verify(self, tmp_path: Path) -> None:
        ledger = ChecksumLedger(tmp_path / ".tool-sums")
        download = make_download(tmp_path / "dl", b"v1")
        recorded = ledger.record("zig", "0.13.0", download)
        assert recorded == Ok(f"sha256:{hashlib.sha256(b'v1').hexdigest()}")
        assert ledger.verify("zig", "0.13.0", download) == Ok(None)
        assert ledger.lookup("zig", "0.13.0") == recorded

    def test_mismatch_reports_both_hashes(self, tmp_path: Path) -> None:
        ledger = ChecksumLedger(tmp_path / ".tool-sums")
        download = make_download(tmp_path / "dl", b"v1")
        recorded = ledger.record("zig", "0.13.0", download)
        assert isinstance(recorded, Ok)

        (download / "tool.tar.gz").write_bytes(b"tampered")
        result = ledger.verify("zig", "0.13.0", download)
        assert isinstance(result, Err)
        assert result.error.kind == ErrorKind.INTEGRITY
        assert result.error.message == "checksum mismatch for zig 0.13.0"
        mismatch = result.error.cause
        assert isinstance(mismatch, ChecksumMismatch)
        assert mismatch.expected == recorded.value
        assert mismatch.actual == f"sha256:{hashlib.sha256(b'tampered').hexdigest()}"
        assert recorded.value in str(result.error)

    def test_record_keeps_other_entries(self, tmp_path: Path) -> None:
        ledger = ChecksumLedger(tmp_path / ".tool-sums")
        ledger.record("a", "1", make_download(tmp_path / "a", b"a"))
        ledger.record("b", "1", make_download(tmp_path / "b", b"b"))
        ledger.record("a", "1", make_download(tmp_path / "a2", b"a2"))
        records = ledger.read()
        assert isinstance(records, Ok)
        assert set(records.value) == {("a", "1"), ("b", "1")}
        assert records.value[("a", "1")] == f"sha256:{hashlib.sha256(b'a2').hexdigest()}"

    def test_record_missing_dir(self, tmp_path: Path) -> None:
        result = ChecksumLedger(tmp_path / ".tool-sums").record("a", "1", tmp_path / "missing")
        assert isinstance(result, Err)
        assert result.error.kind == ErrorKind.IO


class TestConcurrency:
    """Concurrent writers never lose updates."""

    def test_parallel_records(self, tmp_path: Path) -> None:
        ledger = ChecksumLedger(tmp_path / ".tool-sums")
        dirs = {f"tool{i}": make_download(tmp_path / f"d{i}", f"{i}".encode()) for i in range(16)}

        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(
                pool.map(lambda item: ledger.record(item[0], "1.0", item[1]), dirs.items())
            )

        assert all(isinstance(r, Ok) for r in results)
        records = ledger.read()
        assert isinstance(records, Ok)
        assert len(records.value) == 16
        text = ledger.path.read_text()
        assert text.startswith(LEDGER_HEADER[0])


class TestRebuild:
    """Rebuilding from download directories."""

    def test_rebuild(self, tmp_path: Path) -> None:
        ledger = ChecksumLedger(tmp_path / ".tool-sums")
        (tmp_path / ".tool-sums").write_text("old 1 sha256:keep\nzig 1 sha256:stale\n")
        result = ledger.rebuild(
            {
                ("zig", "1"): make_download(tmp_path / "zig", b"z"),
                ("gone", "1"): tmp_path / "missing",
            }
        )
        assert result == Ok(1)
        records = ledger.read()
        assert isinstance(records, Ok)
        assert records.value[("old", "1")] == "sha256:keep"
        assert records.value[("zig", "1")] == f"sha256:{hashlib.sha256(b'z').hexdigest()}"
        assert ("gone", "1") not in records.value
