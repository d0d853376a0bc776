"""Toolchain orchestration.

``ToolchainService`` is the layer between a host (CLI, CI script) and the
plugins. It wraps every plugin download with the checksum ledger, derives
default download/install paths from the data directory, and runs the bulk
``.tool-versions`` refresh.
"""

from __future__ import annotations

import tempfile
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from toolsmith.core.errors import EngineError, ErrorKind
from toolsmith.core.result import Err, Ok, Result
from toolsmith.output.console import Style
from toolsmith.tools.ledger import ChecksumLedger
from toolsmith.tools.plugin import PluginDeps, PluginWithDependencies
from toolsmith.tools.tool_versions import (
    ensure_tool_version,
    read_tool_versions,
    write_tool_versions,
)

if TYPE_CHECKING:
    from toolsmith.core.config import EngineConfig
    from toolsmith.core.context import Context
    from toolsmith.output.console import ConsoleProtocol
    from toolsmith.tools.plugin import Plugin
    from toolsmith.tools.registry import PluginRegistry

__all__ = [
    "ToolchainService",
    "RefreshOutcome",
    "RefreshReport",
    "LATEST",
]

LATEST = "latest"


@dataclass(frozen=True, slots=True)
class RefreshOutcome:
    """Per-tool result of a bulk refresh.

    Attributes:
        name: Tool name as written in the pin file
        previous: Version before the refresh
        current: Version written back (previous on failure)
        error: Why the lookup failed, if it did
    """

    name: str
    previous: str
    current: str
    error: EngineError | None = None

    @property
    def failed(self) -> bool:
        return self.error is not None

    @property
    def changed(self) -> bool:
        return not self.failed and self.current != self.previous


@dataclass(frozen=True, slots=True)
class RefreshReport:
    """Aggregated refresh results, sorted by tool name."""

    outcomes: tuple[RefreshOutcome, ...]

    @property
    def updated(self) -> int:
        return sum(1 for o in self.outcomes if o.changed)

    @property
    def failed(self) -> int:
        return sum(1 for o in self.outcomes if o.failed)

    @property
    def unchanged(self) -> int:
        return len(self.outcomes) - self.updated - self.failed

    @property
    def versions(self) -> dict[str, str]:
        return {o.name: o.current for o in self.outcomes}

    def summary(self) -> str:
        return f"Updated: {self.updated}, Unchanged: {self.unchanged}, Failed: {self.failed}"


def default_scratch_download_dir(name: str, version: str) -> Path:
    return Path(tempfile.gettempdir()) / f"asdf-{name}-{version}"


class ToolchainService:
    """Runs plugin operations with ledger verification and console reporting."""

    def __init__(
        self,
        *,
        config: EngineConfig,
        registry: PluginRegistry,
        console: ConsoleProtocol,
        deps: PluginDeps | None = None,
        ledger: ChecksumLedger | None = None,
    ) -> None:
        self._config = config
        self._registry = registry
        self._console = console
        self._deps = deps or PluginDeps.from_config(config, console)
        self._ledger = ledger or ChecksumLedger(config.ledger_path)

    @property
    def ledger(self) -> ChecksumLedger:
        return self._ledger

    def plugin(self, name: str) -> Result[Plugin, EngineError]:
        return self._registry.get(name, self._deps)

    def download(
        self,
        ctx: Context,
        plugin: Plugin,
        version: str,
        download_dir: Path | None = None,
    ) -> Result[Path, EngineError]:
        """Download, verify against the ledger, then record.

        A mismatch with an existing record is fatal and leaves the download
        in place for inspection. Failing to record is only a warning.

        Returns:
            Ok with the download directory
        """
        name = plugin.name()
        target = download_dir or self._config.download_dir(name, version)
        try:
            target.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            return Err(EngineError(ErrorKind.IO, f"cannot create {target}", e))

        downloaded = plugin.download(ctx, version, target)
        if isinstance(downloaded, Err):
            return downloaded

        verified = self._ledger.verify(name, version, target)
        if isinstance(verified, Err):
            return verified

        recorded = self._ledger.record(name, version, target)
        if isinstance(recorded, Err):
            self._console.warning(
                f"failed to record checksum for {name} {version}: {recorded.error}"
            )

        return Ok(target)

    def install(
        self,
        ctx: Context,
        plugin: Plugin,
        version: str,
        *,
        install_dir: Path | None = None,
        download_dir: Path | None = None,
    ) -> Result[Path, EngineError]:
        """Download (ledger-checked) then install one version.

        Args:
            ctx: Cancellation context
            plugin: Plugin to drive
            version: Concrete version
            install_dir: Defaults to ``<data>/installs/<name>/<version>``
            download_dir: Defaults to a scratch ``asdf-<name>-<version>``
                directory under the system temp dir

        Returns:
            Ok with the install directory
        """
        name = plugin.name()
        target = install_dir or self._config.install_dir(name, version)
        scratch = download_dir or default_scratch_download_dir(name, version)

        downloaded = self.download(ctx, plugin, version, scratch)
        if isinstance(downloaded, Err):
            return downloaded

        try:
            target.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            return Err(EngineError(ErrorKind.IO, f"cannot create {target}", e))

        installed = plugin.install(ctx, version, scratch, target)
        if isinstance(installed, Err):
            return installed

        self._console.success(f"{name} {version} installed")
        return Ok(target)

    def install_latest(
        self, ctx: Context, name: str, query: str = ""
    ) -> Result[tuple[str, Path], EngineError]:
        """Resolve the latest stable version and install it under the data dir.

        Declared dependencies are installed first. Each one is pinned in the
        configured ``.tool-versions`` (an existing pin wins, else ``latest``)
        and installed at that version.

        Returns:
            Ok with ``(version, install_dir)`` of the requested tool
        """
        plugin = self.plugin(name)
        if isinstance(plugin, Err):
            return plugin
        return self._install_with_dependencies(ctx, plugin.value, query, chain=())

    def _install_with_dependencies(
        self,
        ctx: Context,
        plugin: Plugin,
        query: str,
        *,
        chain: tuple[str, ...],
        pinned: str | None = None,
    ) -> Result[tuple[str, Path], EngineError]:
        name = plugin.name()
        if isinstance(plugin, PluginWithDependencies) and plugin.dependencies():
            ready = self._install_dependencies(ctx, plugin, (*chain, name))
            if isinstance(ready, Err):
                message = f"installing dependencies for {name}"
                return Err(EngineError(ready.error.kind, message, ready.error))

        if pinned is None:
            latest = plugin.latest_stable(ctx, query)
            if isinstance(latest, Err):
                return latest
            version = latest.value
        else:
            version = pinned

        installed = self.install(
            ctx, plugin, version, download_dir=self._config.download_dir(name, version)
        )
        if isinstance(installed, Err):
            return installed
        return Ok((version, installed.value))

    def _install_dependencies(
        self, ctx: Context, plugin: PluginWithDependencies, chain: tuple[str, ...]
    ) -> Result[None, EngineError]:
        pin_path = self._config.tool_versions_path
        for dep_name in plugin.dependencies():
            dep = self.plugin(dep_name)
            if isinstance(dep, Err):
                return dep
            if dep.value.name() in chain:
                cycle = " -> ".join((*chain, dep.value.name()))
                return Err(EngineError(ErrorKind.CONFIGURATION, f"dependency cycle: {cycle}"))

            pin = ensure_tool_version(pin_path, dep_name, LATEST)
            if isinstance(pin, Err):
                return Err(EngineError(ErrorKind.IO, f"cannot pin {dep_name}", pin.error))

            installed = self._install_with_dependencies(
                ctx,
                dep.value,
                "",
                chain=chain,
                pinned=None if pin.value == LATEST else pin.value,
            )
            if isinstance(installed, Err):
                return installed
        return Ok(None)

    def uninstall(
        self,
        ctx: Context,
        plugin: Plugin,
        version: str,
        install_dir: Path | None = None,
    ) -> Result[None, EngineError]:
        """Remove an installed version. Ledger records are kept."""
        target = install_dir or self._config.install_dir(plugin.name(), version)
        return plugin.uninstall(ctx, target)

    def _refresh_one(self, ctx: Context, name: str, previous: str, upgrade: bool) -> RefreshOutcome:
        plugin = self.plugin(name)
        if isinstance(plugin, Err):
            return RefreshOutcome(name, previous, previous, plugin.error)

        if previous != LATEST and not upgrade:
            return RefreshOutcome(name, previous, previous)

        latest = plugin.value.latest_stable(ctx, "")
        if isinstance(latest, Err):
            return RefreshOutcome(name, previous, previous, latest.error)
        return RefreshOutcome(name, previous, latest.value)

    def refresh_tool_versions(
        self,
        ctx: Context,
        path: Path | None = None,
        *,
        upgrade: bool = False,
    ) -> Result[RefreshReport, EngineError]:
        """Resolve pinned versions concurrently and rewrite the pin file once.

        Entries pinned to ``latest`` are replaced by the current latest stable
        version; with ``upgrade`` every entry is bumped. A failing tool keeps
        its previous value and does not affect the others.

        Args:
            ctx: Cancellation context shared by all lookups
            path: Pin file (defaults to the configured ``.tool-versions``)
            upgrade: Query every tool, not only ``latest`` entries

        Returns:
            Ok with the per-tool report, or Err if the file cannot be read
            or written
        """
        pin_path = path or self._config.tool_versions_path
        pins = read_tool_versions(pin_path)
        if isinstance(pins, Err):
            return Err(EngineError(ErrorKind.IO, "cannot refresh tool versions", pins.error))

        if not pins.value:
            self._console.info(f"No tools found in {pin_path}")
            return Ok(RefreshReport(outcomes=()))

        outcomes: list[RefreshOutcome] = []
        workers = max(1, min(self._config.max_workers, len(pins.value)))
        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = {
                executor.submit(self._refresh_one, ctx, name, version, upgrade): (name, version)
                for name, version in pins.value.items()
            }
            for future in as_completed(futures):
                name, previous = futures[future]
                try:
                    outcomes.append(future.result())
                except Exception as e:  # noqa: BLE001
                    error = EngineError(ErrorKind.CONFIGURATION, "latest version lookup failed", e)
                    outcomes.append(RefreshOutcome(name, previous, previous, error))

        report = RefreshReport(outcomes=tuple(sorted(outcomes, key=lambda o: o.name)))
        for outcome in report.outcomes:
            if outcome.error is not None:
                self._console.warning(f"{outcome.name}: {outcome.error}")
            elif outcome.changed:
                self._console.print(
                    f"{outcome.name}: {outcome.previous} -> {outcome.current}", Style.DIM
                )

        written = write_tool_versions(pin_path, report.versions)
        if isinstance(written, Err):
            return Err(EngineError(ErrorKind.IO, "cannot refresh tool versions", written.error))

        self._console.info(report.summary())
        return Ok(report)
