"""Tests for toolsmith.services.toolchains module."""

import re
import shutil
import threading
from pathlib import Path

import pytest

from toolsmith.core.config import EngineConfig
from toolsmith.core.context import Context
from toolsmith.core.errors import EngineError, ErrorKind
from toolsmith.core.result import Err, Ok, Result
from toolsmith.output.console import MockConsole
from toolsmith.services.toolchains import RefreshOutcome, RefreshReport, ToolchainService
from toolsmith.tools.http import MockHttpClient
from toolsmith.tools.ledger import ChecksumLedger
from toolsmith.tools.plugin import PluginDeps, PluginHelp
from toolsmith.tools.registry import PluginEntry, PluginRegistry


class FakePlugin:
    """Plugin double writing a fixed artifact and reporting a fixed latest version."""

    def __init__(
        self,
        name: str,
        latest: Result[str, EngineError] | None = None,
        *,
        payload: bytes = b"artifact",
        barrier: threading.Barrier | None = None,
        dependencies: tuple[str, ...] = (),
        raises: Exception | None = None,
    ) -> None:
        self._name = name
        self._dependencies = dependencies
        self._raises = raises
        self._latest = latest if latest is not None else Ok("1.0.0")
        self.payload = payload
        self.barrier = barrier
        self.installed: list[tuple[str, Path, Path]] = []

    def name(self) -> str:
        return self._name

    def list_all(self, ctx: Context) -> Result[list[str], EngineError]:
        return Ok(["1.0.0"])

    def download(self, ctx: Context, version: str, download_dir: Path) -> Result[None, EngineError]:
        (download_dir / f"{self._name}.tar.gz").write_bytes(self.payload)
        return Ok(None)

    def install(
        self, ctx: Context, version: str, download_dir: Path, install_dir: Path
    ) -> Result[None, EngineError]:
        self.installed.append((version, download_dir, install_dir))
        (install_dir / "bin").mkdir(parents=True, exist_ok=True)
        (install_dir / "bin" / self._name).write_bytes(b"#!")
        return Ok(None)

    def uninstall(self, ctx: Context, install_dir: Path) -> Result[None, EngineError]:
        shutil.rmtree(install_dir)
        return Ok(None)

    def latest_stable(self, ctx: Context, query: str) -> Result[str, EngineError]:
        if self.barrier is not None:
            self.barrier.wait()
        if self._raises is not None:
            raise self._raises
        return self._latest

    def dependencies(self) -> tuple[str, ...]:
        return self._dependencies

    def list_bin_paths(self) -> str:
        return "bin"

    def exec_env(self, install_dir: Path) -> dict[str, str]:
        return {}

    def list_legacy_filenames(self) -> list[str]:
        return []

    def parse_legacy_file(self, path: Path) -> Result[str, EngineError]:
        return Err(EngineError(ErrorKind.CONFIGURATION, "unsupported"))

    def help(self) -> PluginHelp:
        return PluginHelp(overview=self._name)


class FailingRecordLedger(ChecksumLedger):
    def record(self, name: str, version: str, download_dir: Path) -> Result[str, EngineError]:
        return Err(EngineError(ErrorKind.IO, "ledger is read-only"))


def make_service(
    tmp_path: Path,
    plugins: list[FakePlugin],
    console: MockConsole | None = None,
    ledger: ChecksumLedger | None = None,
) -> ToolchainService:
    config = EngineConfig.from_env({"ASDF_DATA_DIR": str(tmp_path / "data")}, cwd=tmp_path)
    console = console or MockConsole()
    registry = PluginRegistry(
        [PluginEntry((p.name(),), lambda deps, p=p: p) for p in plugins]  # type: ignore[misc]
    )
    return ToolchainService(
        config=config,
        registry=registry,
        console=console,
        deps=PluginDeps.create(MockHttpClient(), console),
        ledger=ledger,
    )


# =============================================================================
# Download / install
# =============================================================================


class TestDownload:
    """Ledger-wrapped downloads."""

    def test_records_first_download(self, tmp_path: Path) -> None:
        plugin = FakePlugin("zig")
        service = make_service(tmp_path, [plugin])
        result = service.download(Context.background(), plugin, "0.13.0")
        assert result == Ok(tmp_path / "data" / "downloads" / "zig" / "0.13.0")
        recorded = service.ledger.lookup("zig", "0.13.0")
        assert isinstance(recorded, Ok)
        assert recorded.value is not None and recorded.value.startswith("sha256:")
        assert service.ledger.path == tmp_path / ".tool-sums"

    def test_changed_artifact_is_fatal(self, tmp_path: Path) -> None:
        plugin = FakePlugin("zig")
        service = make_service(tmp_path, [plugin])
        assert isinstance(service.download(Context.background(), plugin, "0.13.0"), Ok)

        plugin.payload = b"tampered"
        result = service.download(Context.background(), plugin, "0.13.0")
        assert isinstance(result, Err)
        assert result.error.kind == ErrorKind.INTEGRITY
        assert "checksum mismatch for zig 0.13.0" in str(result.error)
        # The suspicious download stays for inspection.
        assert (tmp_path / "data" / "downloads" / "zig" / "0.13.0" / "zig.tar.gz").exists()

    def test_record_failure_is_warning(self, tmp_path: Path) -> None:
        console = MockConsole()
        plugin = FakePlugin("zig")
        ledger = FailingRecordLedger(tmp_path / ".tool-sums")
        service = make_service(tmp_path, [plugin], console, ledger)
        assert isinstance(service.download(Context.background(), plugin, "0.13.0"), Ok)
        assert console.find("failed to record checksum for zig 0.13.0")


class TestInstall:
    """Install orchestration."""

    def test_install_defaults(self, tmp_path: Path) -> None:
        console = MockConsole()
        plugin = FakePlugin("zig")
        service = make_service(tmp_path, [plugin], console)
        scratch = tmp_path / "scratch"
        result = service.install(Context.background(), plugin, "0.13.0", download_dir=scratch)
        install_dir = tmp_path / "data" / "installs" / "zig" / "0.13.0"
        assert result == Ok(install_dir)
        assert plugin.installed == [("0.13.0", scratch, install_dir)]
        assert console.find("zig 0.13.0 installed")

    def test_install_latest(self, tmp_path: Path) -> None:
        plugin = FakePlugin("zig", Ok("0.14.0"))
        service = make_service(tmp_path, [plugin])
        result = service.install_latest(Context.background(), "zig")
        assert isinstance(result, Ok)
        version, path = result.value
        assert version == "0.14.0"
        assert (path / "bin" / "zig").exists()
        assert plugin.installed[0][1] == tmp_path / "data" / "downloads" / "zig" / "0.14.0"

    def test_install_latest_unknown(self, tmp_path: Path) -> None:
        result = make_service(tmp_path, []).install_latest(Context.background(), "zig")
        assert isinstance(result, Err)
        assert result.error.message == "unknown plugin: zig"

    def test_uninstall_keeps_ledger(self, tmp_path: Path) -> None:
        plugin = FakePlugin("zig")
        service = make_service(tmp_path, [plugin])
        installed = service.install(
            Context.background(), plugin, "0.13.0", download_dir=tmp_path / "scratch"
        )
        assert isinstance(installed, Ok)
        assert service.uninstall(Context.background(), plugin, "0.13.0") == Ok(None)
        assert not installed.value.exists()
        recorded = service.ledger.lookup("zig", "0.13.0")
        assert isinstance(recorded, Ok) and recorded.value is not None


# =============================================================================
# Bulk refresh
# =============================================================================


class TestRefreshReport:
    """Tally helpers."""

    def test_summary(self) -> None:
        error = EngineError(ErrorKind.TRANSIENT, "fetch failed")
        report = RefreshReport(
            (
                RefreshOutcome("a", "latest", "2.0"),
                RefreshOutcome("b", "1.0", "1.0"),
                RefreshOutcome("c", "latest", "latest", error),
            )
        )
        assert report.summary() == "Updated: 1, Unchanged: 1, Failed: 1"
        assert report.versions == {"a": "2.0", "b": "1.0", "c": "latest"}


class TestRefreshToolVersions:
    """Concurrent refresh of the pin file."""

    def test_refresh(self, tmp_path: Path) -> None:
        pins = tmp_path / ".tool-versions"
        pins.write_text(
            "alpha latest\nbeta 1.0.0\ngamma latest\nmissing latest\nbroken latest\n"
        )
        console = MockConsole()
        plugins = [
            FakePlugin("alpha", Ok("2.0.0")),
            FakePlugin("beta", Ok("9.9.9")),
            FakePlugin("gamma", Ok("0.5.0")),
            FakePlugin("broken", Err(EngineError(ErrorKind.TRANSIENT, "fetch failed"))),
        ]
        service = make_service(tmp_path, plugins, console)

        result = service.refresh_tool_versions(Context.background())
        assert isinstance(result, Ok)
        report = result.value
        assert (report.updated, report.unchanged, report.failed) == (2, 1, 2)
        assert pins.read_text() == (
            "alpha 2.0.0\nbeta 1.0.0\nbroken latest\ngamma 0.5.0\nmissing latest\n"
        )
        assert console.messages[-1] == "info: Updated: 2, Unchanged: 1, Failed: 2"
        assert console.find("missing: unknown plugin: missing")
        assert console.find("broken: fetch failed")

    def test_upgrade_bumps_all(self, tmp_path: Path) -> None:
        pins = tmp_path / ".tool-versions"
        pins.write_text("beta 1.0.0\n")
        service = make_service(tmp_path, [FakePlugin("beta", Ok("1.2.0"))])
        result = service.refresh_tool_versions(Context.background(), pins, upgrade=True)
        assert isinstance(result, Ok)
        assert result.value.updated == 1
        assert pins.read_text() == "beta 1.2.0\n"

    def test_lookups_run_concurrently(self, tmp_path: Path) -> None:
        """Every lookup must be in flight at once for the barrier to release."""
        names = ["a", "b", "c", "d"]
        barrier = threading.Barrier(len(names), timeout=10)
        plugins = [FakePlugin(n, Ok("3.0.0"), barrier=barrier) for n in names]
        pins = tmp_path / ".tool-versions"
        pins.write_text("".join(f"{n} latest\n" for n in names))
        result = make_service(tmp_path, plugins).refresh_tool_versions(Context.background())
        assert isinstance(result, Ok)
        assert result.value.updated == 4

    def test_empty_file(self, tmp_path: Path) -> None:
        pins = tmp_path / ".tool-versions"
        pins.write_text("# nothing pinned\n")
        console = MockConsole()
        result = make_service(tmp_path, [], console).refresh_tool_versions(Context.background())
        assert result == Ok(RefreshReport(outcomes=()))
        assert console.find("No tools found in")
        assert pins.read_text() == "# nothing pinned\n"

    def test_missing_file(self, tmp_path: Path) -> None:
        result = make_service(tmp_path, []).refresh_tool_versions(Context.background())
        assert isinstance(result, Err)
        assert result.error.kind == ErrorKind.IO

    @pytest.mark.parametrize("pinned", ["1.0.0", "latest"])
    def test_unchanged_when_latest_equal(self, tmp_path: Path, pinned: str) -> None:
        pins = tmp_path / ".tool-versions"
        pins.write_text(f"beta {pinned}\n")
        service = make_service(tmp_path, [FakePlugin("beta", Ok("1.0.0"))])
        result = service.refresh_tool_versions(Context.background(), pins, upgrade=True)
        assert isinstance(result, Ok)
        assert pins.read_text() == "beta 1.0.0\n"

    def test_raising_lookup_fails_only_that_tool(self, tmp_path: Path) -> None:
        pins = tmp_path / ".tool-versions"
        pins.write_text("good latest\nbad latest\n")
        console = MockConsole()
        plugins = [
            FakePlugin("good", Ok("2.0.0")),
            FakePlugin("bad", raises=re.error("missing ), unterminated subpattern")),
        ]
        service = make_service(tmp_path, plugins, console)

        result = service.refresh_tool_versions(Context.background())

        assert isinstance(result, Ok)
        assert (result.value.updated, result.value.failed) == (1, 1)
        failed = [o for o in result.value.outcomes if o.failed]
        assert failed[0].name == "bad"
        assert failed[0].error is not None
        assert failed[0].error.kind == ErrorKind.CONFIGURATION
        assert pins.read_text() == "bad latest\ngood 2.0.0\n"
        assert console.find("bad: latest version lookup failed: missing )")
        assert console.messages[-1] == "info: Updated: 1, Unchanged: 0, Failed: 1"


# =============================================================================
# Dependencies
# =============================================================================


class OrderedPlugin(FakePlugin):
    """FakePlugin that appends its name to a shared journal on install."""

    def __init__(self, name: str, journal: list[str], **kwargs: object) -> None:
        super().__init__(name, **kwargs)  # type: ignore[arg-type]
        self.journal = journal

    def install(
        self, ctx: Context, version: str, download_dir: Path, install_dir: Path
    ) -> Result[None, EngineError]:
        self.journal.append(f"{self.name()} {version}")
        return super().install(ctx, version, download_dir, install_dir)


class TestInstallDependencies:
    """install_latest installs declared dependencies first."""

    def test_dependency_installed_first_and_pinned(self, tmp_path: Path) -> None:
        journal: list[str] = []
        plugins = [
            OrderedPlugin("golang", journal, latest=Ok("1.22.0")),
            OrderedPlugin("lint", journal, latest=Ok("1.59.0"), dependencies=("golang",)),
        ]
        service = make_service(tmp_path, plugins)

        result = service.install_latest(Context.background(), "lint")

        assert isinstance(result, Ok)
        assert result.value[0] == "1.59.0"
        assert journal == ["golang 1.22.0", "lint 1.59.0"]
        assert (tmp_path / ".tool-versions").read_text() == "golang latest\n"
        assert (tmp_path / "data" / "installs" / "golang" / "1.22.0" / "bin" / "golang").exists()

    def test_existing_pin_selects_dependency_version(self, tmp_path: Path) -> None:
        (tmp_path / ".tool-versions").write_text("golang 1.21.0\n")
        journal: list[str] = []
        plugins = [
            OrderedPlugin("golang", journal, latest=Ok("1.22.0")),
            OrderedPlugin("lint", journal, dependencies=("golang",)),
        ]
        result = make_service(tmp_path, plugins).install_latest(Context.background(), "lint")
        assert isinstance(result, Ok)
        assert journal == ["golang 1.21.0", "lint 1.0.0"]
        assert (tmp_path / ".tool-versions").read_text() == "golang 1.21.0\n"

    def test_transitive_dependencies(self, tmp_path: Path) -> None:
        journal: list[str] = []
        plugins = [
            OrderedPlugin("a", journal, dependencies=("b",)),
            OrderedPlugin("b", journal, dependencies=("c",)),
            OrderedPlugin("c", journal),
        ]
        result = make_service(tmp_path, plugins).install_latest(Context.background(), "a")
        assert isinstance(result, Ok)
        assert journal == ["c 1.0.0", "b 1.0.0", "a 1.0.0"]

    def test_dependency_failure_stops_install(self, tmp_path: Path) -> None:
        lint = FakePlugin("lint", dependencies=("golang",))
        golang = FakePlugin("golang", Err(EngineError(ErrorKind.TRANSIENT, "fetch failed")))
        result = make_service(tmp_path, [golang, lint]).install_latest(
            Context.background(), "lint"
        )
        assert isinstance(result, Err)
        assert result.error.kind == ErrorKind.TRANSIENT
        assert str(result.error) == "installing dependencies for lint: fetch failed"
        assert lint.installed == []

    def test_unknown_dependency(self, tmp_path: Path) -> None:
        lint = FakePlugin("lint", dependencies=("nope",))
        result = make_service(tmp_path, [lint]).install_latest(Context.background(), "lint")
        assert isinstance(result, Err)
        assert str(result.error) == "installing dependencies for lint: unknown plugin: nope"

    def test_cycle(self, tmp_path: Path) -> None:
        plugins = [FakePlugin("a", dependencies=("b",)), FakePlugin("b", dependencies=("a",))]
        result = make_service(tmp_path, plugins).install_latest(Context.background(), "a")
        assert isinstance(result, Err)
        assert result.error.kind == ErrorKind.CONFIGURATION
        assert "dependency cycle: a -> b -> a" in str(result.error)
        assert plugins[0].installed == []
        assert plugins[1].installed == []
