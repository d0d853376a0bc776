"""Plugin contract and shared plugin machinery.

This module defines:
- Plugin: the protocol every tool plugin satisfies
- PluginWithDependencies: plugins that need other tools installed first
- PluginHelp: help text sections
- PluginDeps: injected collaborators (HTTP, version source, console, ...)
- BasePlugin: defaults shared by the binary and source-build strategies
"""

from __future__ import annotations

import shutil
from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from toolsmith.core.errors import EngineError, ErrorKind
from toolsmith.core.result import Err, Ok, Result
from toolsmith.tools.archive import ArchiveExtractor
from toolsmith.tools.download import ArtifactFetcher
from toolsmith.tools.sources import (
    GitHubQuery,
    GitHubVersionSource,
    VersionIndex,
    VersionSource,
    list_github_versions,
    list_index_versions,
)
from toolsmith.tools.versions import NoVersionsFound, latest_stable_with_query, latest_version

if TYPE_CHECKING:
    from toolsmith.core.config import EngineConfig
    from toolsmith.core.context import Context
    from toolsmith.output.console import ConsoleProtocol
    from toolsmith.tools.http import HttpClient

__all__ = [
    "Plugin",
    "PluginWithDependencies",
    "PluginHelp",
    "PluginDeps",
    "BasePlugin",
    "render_template",
    "make_executable",
    "read_legacy_version",
]

EXECUTABLE_PERM = 0o755


@dataclass(frozen=True, slots=True)
class PluginHelp:
    """Help sections shown for a plugin."""

    overview: str
    deps: str = "No additional dependencies required"
    config: str = "No additional configuration required"
    links: str = ""


@runtime_checkable
class Plugin(Protocol):
    """Operations every tool plugin provides."""

    def name(self) -> str: ...

    def list_all(self, ctx: Context) -> Result[list[str], EngineError]: ...

    def download(
        self, ctx: Context, version: str, download_dir: Path
    ) -> Result[None, EngineError]: ...

    def install(
        self, ctx: Context, version: str, download_dir: Path, install_dir: Path
    ) -> Result[None, EngineError]: ...

    def uninstall(self, ctx: Context, install_dir: Path) -> Result[None, EngineError]: ...

    def latest_stable(self, ctx: Context, query: str) -> Result[str, EngineError]: ...

    def list_bin_paths(self) -> str: ...

    def exec_env(self, install_dir: Path) -> dict[str, str]: ...

    def list_legacy_filenames(self) -> list[str]: ...

    def parse_legacy_file(self, path: Path) -> Result[str, EngineError]: ...

    def help(self) -> PluginHelp: ...


@runtime_checkable
class PluginWithDependencies(Protocol):
    """A plugin whose install needs other registered tools first."""

    def dependencies(self) -> tuple[str, ...]: ...


@dataclass(frozen=True, slots=True)
class PluginDeps:
    """Collaborators handed to every plugin at construction.

    Attributes:
        fetcher: Downloads artifacts and text payloads
        source: Lists GitHub tags and releases
        console: Receives warnings (skipped verification, ...)
        extractor: Unpacks archives
        arch_override: Forced architecture name, if any
    """

    fetcher: ArtifactFetcher
    source: VersionSource
    console: ConsoleProtocol
    extractor: ArchiveExtractor
    arch_override: str | None = None

    @classmethod
    def create(
        cls,
        http: HttpClient,
        console: ConsoleProtocol,
        *,
        github_token: str | None = None,
        github_api_url: str | None = None,
        arch_override: str | None = None,
    ) -> PluginDeps:
        fetcher = ArtifactFetcher(http)
        if github_api_url:
            source = GitHubVersionSource(fetcher, api_url=github_api_url, token=github_token)
        else:
            source = GitHubVersionSource(fetcher, token=github_token)
        return cls(
            fetcher=fetcher,
            source=source,
            console=console,
            extractor=ArchiveExtractor(),
            arch_override=arch_override,
        )

    @classmethod
    def from_config(cls, config: EngineConfig, console: ConsoleProtocol) -> PluginDeps:
        """Production collaborators: urllib client with the configured timeout."""
        from toolsmith.tools.http import RealHttpClient

        http = RealHttpClient(timeout=config.http_timeout, user_agent=config.user_agent)
        return cls.create(
            http,
            console,
            github_token=config.github_token,
            github_api_url=config.github_api_url,
            arch_override=config.arch_override,
        )


def render_template(template: str, values: Mapping[str, str]) -> str:
    """Substitute ``{key}`` placeholders; unknown braces are left alone.

    Example:
        render_template("{binary_name}-{platform}-{arch}",
                        {"binary_name": "jq", "platform": "linux", "arch": "amd64"})
        -> "jq-linux-amd64"
    """
    out = template
    for key, value in values.items():
        out = out.replace("{" + key + "}", value)
    return out


def make_executable(path: Path) -> Result[None, EngineError]:
    try:
        path.chmod(EXECUTABLE_PERM)
    except OSError as e:
        return Err(EngineError(ErrorKind.IO, f"cannot make {path} executable", e))
    return Ok(None)


def read_legacy_version(path: Path) -> Result[str, EngineError]:
    """Read a legacy version file (``.nvmrc``, ``.go-version``, ...).

    The first non-empty line that is not a ``#`` comment is the version; a
    leading ``v`` is dropped.
    """
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        return Err(EngineError(ErrorKind.IO, f"cannot read {path}", e))
    for line in text.splitlines():
        line = line.strip()
        if line and not line.startswith("#"):
            return Ok(line.split()[0].removeprefix("v"))
    return Err(EngineError(ErrorKind.CONFIGURATION, f"no version found in {path}"))


class BasePlugin(ABC):
    """Shared behavior for configuration-driven plugins.

    Subclasses provide the version query and the download/install strategy;
    version listing, latest-version selection, uninstall and legacy files are
    handled here.
    """

    # Strict selection reports "no match" for a query prefix instead of
    # falling back to the newest version overall.
    strict_latest: bool = False

    def __init__(self, deps: PluginDeps) -> None:
        self._deps = deps

    @property
    def deps(self) -> PluginDeps:
        return self._deps

    @abstractmethod
    def name(self) -> str: ...

    @abstractmethod
    def help(self) -> PluginHelp: ...

    @abstractmethod
    def download(
        self, ctx: Context, version: str, download_dir: Path
    ) -> Result[None, EngineError]: ...

    @abstractmethod
    def install(
        self, ctx: Context, version: str, download_dir: Path, install_dir: Path
    ) -> Result[None, EngineError]: ...

    @abstractmethod
    def _github_query(self) -> GitHubQuery: ...

    def _version_index(self) -> VersionIndex | None:
        return None

    def _legacy_filenames(self) -> tuple[str, ...]:
        return ()

    def list_all(self, ctx: Context) -> Result[list[str], EngineError]:
        index = self._version_index()
        if index is not None:
            return list_index_versions(ctx, self._deps.fetcher, index)
        return list_github_versions(ctx, self._deps.source, self._github_query())

    def latest_stable(self, ctx: Context, query: str) -> Result[str, EngineError]:
        versions = self.list_all(ctx)
        if isinstance(versions, Err):
            return versions

        if self.strict_latest:
            return latest_stable_with_query(versions.value, query).map_err(
                lambda e: EngineError(ErrorKind.CONFIGURATION, f"{self.name()}: {e}")
            )

        selected = latest_version(versions.value, query)
        if not selected:
            return Err(EngineError(ErrorKind.CONFIGURATION, f"{self.name()}: {NoVersionsFound()}"))
        return Ok(selected)

    def uninstall(self, ctx: Context, install_dir: Path) -> Result[None, EngineError]:
        """Remove the install directory; the checksum ledger is untouched."""
        try:
            if install_dir.is_symlink():
                install_dir.unlink()
            elif install_dir.exists():
                shutil.rmtree(install_dir)
        except OSError as e:
            return Err(EngineError(ErrorKind.IO, f"cannot remove {install_dir}", e))
        return Ok(None)

    def dependencies(self) -> tuple[str, ...]:
        return ()

    def list_bin_paths(self) -> str:
        return "bin"

    def exec_env(self, install_dir: Path) -> dict[str, str]:
        return {}

    def list_legacy_filenames(self) -> list[str]:
        return list(self._legacy_filenames())

    def parse_legacy_file(self, path: Path) -> Result[str, EngineError]:
        return read_legacy_version(path)
