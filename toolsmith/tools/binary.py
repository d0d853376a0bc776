"""Prebuilt-binary install strategy.

A ``BinaryPluginConfig`` describes where a tool's release binaries live; a
``BinaryPlugin`` turns it into the plugin contract:

    resolve platform/arch -> render filename and URL -> download (unless a
    plausible cached copy exists) -> verify against an optional checksum
    manifest -> extract or copy the binary into ``<install>/bin/<name>``

Template placeholders: ``{version}``, ``{platform}``, ``{arch}``,
``{binary_name}``, ``{repo_owner}``, ``{repo_name}``, ``{name}`` and, in URL
templates, ``{filename}``.
"""

from __future__ import annotations

import os
import shutil
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from toolsmith.core.errors import EngineError, ErrorKind
from toolsmith.core.result import Err, Ok, Result
from toolsmith.platform.detection import arch_name, platform_name
from toolsmith.tools.checksums import find_manifest_digest, sha256_file, verify_sha256
from toolsmith.tools.ledger import ChecksumMismatch
from toolsmith.tools.plugin import (
    BasePlugin,
    PluginDeps,
    PluginHelp,
    make_executable,
    render_template,
)
from toolsmith.tools.sources import (
    GitHubQuery,
    VersionIndex,
    check_patterns,
    github_repo_url,
)

if TYPE_CHECKING:
    from toolsmith.core.context import Context

__all__ = [
    "BinaryPluginConfig",
    "BinaryPlugin",
    "ResolvedArtifact",
    "DEFAULT_FILENAME_TEMPLATE",
    "DEFAULT_DOWNLOAD_URL_TEMPLATE",
    "MIN_CACHED_ARTIFACT_BYTES",
]

DEFAULT_FILENAME_TEMPLATE = "{binary_name}-{platform}-{arch}"
DEFAULT_DOWNLOAD_URL_TEMPLATE = (
    "https://github.com/{repo_owner}/{repo_name}/releases/download/v{version}/{filename}"
)

# Smaller cached files are leftovers of interrupted downloads.
MIN_CACHED_ARTIFACT_BYTES = 512

_EXTRACTED_TYPES = ("tar.gz", "tgz", "tar.xz", "txz", "zip")


def _default_os_map() -> dict[str, str]:
    return {"darwin": "darwin", "linux": "linux"}


def _default_arch_map() -> dict[str, str]:
    return {"amd64": "amd64", "arm64": "arm64"}


@dataclass(frozen=True, slots=True)
class BinaryPluginConfig:
    """Declarative description of a tool shipped as a prebuilt binary.

    Attributes:
        name: Plugin name
        repo_owner: GitHub owner
        repo_name: GitHub repository
        binary_name: Executable name inside ``bin/`` (and inside archives)
        version_prefix: Tag prefix stripped from versions
        version_filter: Optional regex a version must match
        use_releases: List releases (True) or tags (False)
        filename_template: Release asset name
        download_url_template: Asset URL
        os_map: Running OS name -> name used in templates; unmapped is an error
        arch_map: Running CPU name -> name used in templates; unmapped is an error
        archive_type: ``gz``, ``tar.gz``, ``tar.xz``, ``zip``; None copies the
            download as-is
        checksum_url_template: Optional ``<hex>  <file>`` manifest URL; when it
            cannot be fetched verification is skipped with a warning
        versions_index: List versions from a text index instead of GitHub
        legacy_filenames: Legacy version files this tool understands
        dependencies: Plugin names installed before this tool
        help_description: One-line description for help output
        help_link: Documentation URL
    """

    name: str
    repo_owner: str
    repo_name: str
    binary_name: str
    version_prefix: str = "v"
    version_filter: str | None = None
    use_releases: bool = True
    filename_template: str = DEFAULT_FILENAME_TEMPLATE
    download_url_template: str = DEFAULT_DOWNLOAD_URL_TEMPLATE
    os_map: dict[str, str] = field(default_factory=_default_os_map)
    arch_map: dict[str, str] = field(default_factory=_default_arch_map)
    archive_type: str | None = None
    checksum_url_template: str | None = None
    versions_index: VersionIndex | None = None
    legacy_filenames: tuple[str, ...] = ()
    dependencies: tuple[str, ...] = ()
    help_description: str = ""
    help_link: str = ""

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("Plugin name cannot be empty")
        if not self.binary_name:
            raise ValueError(f"{self.name}: binary_name cannot be empty")
        if not self.versions_index and not (self.repo_owner and self.repo_name):
            raise ValueError(f"{self.name}: repo_owner and repo_name are required")
        check_patterns(self.name, self.version_filter, self.versions_index)


@dataclass(frozen=True, slots=True)
class ResolvedArtifact:
    """Rendered download for one version on the running host."""

    platform: str
    arch: str
    filename: str
    url: str
    values: dict[str, str]


class BinaryPlugin(BasePlugin):
    """Plugin installing a single prebuilt executable."""

    def __init__(self, config: BinaryPluginConfig, deps: PluginDeps) -> None:
        super().__init__(deps)
        self._config = config

    @property
    def config(self) -> BinaryPluginConfig:
        return self._config

    def name(self) -> str:
        return self._config.name

    def _github_query(self) -> GitHubQuery:
        cfg = self._config
        return GitHubQuery(
            repo_owner=cfg.repo_owner,
            repo_name=cfg.repo_name,
            version_prefix=cfg.version_prefix,
            version_filter=cfg.version_filter,
            use_tags=not cfg.use_releases,
        )

    def _version_index(self) -> VersionIndex | None:
        return self._config.versions_index

    def _legacy_filenames(self) -> tuple[str, ...]:
        return self._config.legacy_filenames

    def dependencies(self) -> tuple[str, ...]:
        return self._config.dependencies

    def resolve(self, version: str) -> Result[ResolvedArtifact, EngineError]:
        """Map the host through os/arch tables and render filename and URL."""
        cfg = self._config

        host_os = platform_name()
        if isinstance(host_os, Err):
            return host_os
        platform = cfg.os_map.get(host_os.value)
        if platform is None:
            return Err(EngineError(ErrorKind.PLATFORM, f"unsupported platform: {host_os.value}"))

        host_arch = arch_name(self.deps.arch_override)
        if isinstance(host_arch, Err):
            return host_arch
        arch = cfg.arch_map.get(host_arch.value)
        if arch is None:
            return Err(
                EngineError(ErrorKind.PLATFORM, f"unsupported architecture: {host_arch.value}")
            )

        values = {
            "name": cfg.name,
            "version": version,
            "platform": platform,
            "arch": arch,
            "binary_name": cfg.binary_name,
            "repo_owner": cfg.repo_owner,
            "repo_name": cfg.repo_name,
        }
        filename = render_template(cfg.filename_template, values)
        values["filename"] = filename
        url = render_template(cfg.download_url_template, values)
        return Ok(ResolvedArtifact(platform, arch, filename, url, values))

    def download(self, ctx: Context, version: str, download_dir: Path) -> Result[None, EngineError]:
        """Fetch the release asset into download_dir unless already cached."""
        resolved = self.resolve(version)
        if isinstance(resolved, Err):
            return resolved
        artifact = resolved.value
        dest = download_dir / artifact.filename

        if not _is_plausible(dest):
            fetched = self.deps.fetcher.download_file(ctx, artifact.url, dest)
            if isinstance(fetched, Err):
                return fetched

        verified = self._verify_manifest(ctx, version, artifact, dest)
        if isinstance(verified, Err):
            return verified
        return make_executable(dest)

    def _verify_manifest(
        self, ctx: Context, version: str, artifact: ResolvedArtifact, dest: Path
    ) -> Result[None, EngineError]:
        template = self._config.checksum_url_template
        if not template:
            return Ok(None)

        url = render_template(template, artifact.values)
        manifest = self.deps.fetcher.download_string(ctx, url)
        if isinstance(manifest, Err):
            self.deps.console.warning(
                f"{self.name()} {version}: checksum manifest unavailable, "
                f"skipping verification ({manifest.error})"
            )
            return Ok(None)

        expected = find_manifest_digest(manifest.value, artifact.filename)
        if expected is None:
            self.deps.console.warning(
                f"{self.name()} {version}: {artifact.filename} not listed in checksum manifest"
            )
            return Ok(None)

        try:
            if verify_sha256(dest, expected):
                return Ok(None)
            actual = sha256_file(dest)
        except OSError as e:
            return Err(EngineError(ErrorKind.IO, f"cannot hash {dest}", e))
        return Err(
            EngineError(
                ErrorKind.INTEGRITY,
                f"checksum mismatch for {artifact.filename}",
                ChecksumMismatch(expected=expected.lower(), actual=actual),
            )
        )

    def _find_download(self, download_dir: Path, filename: str) -> Path | None:
        candidate = download_dir / filename
        if candidate.is_file():
            return candidate
        try:
            names = sorted(os.listdir(download_dir))
        except OSError:
            return None
        for name in names:
            path = download_dir / name
            if not name.startswith(".") and path.is_file():
                return path
        return None

    def install(
        self, ctx: Context, version: str, download_dir: Path, install_dir: Path
    ) -> Result[None, EngineError]:
        """Place the binary at ``<install_dir>/bin/<binary_name>``."""
        cfg = self._config
        resolved = self.resolve(version)
        if isinstance(resolved, Err):
            return resolved

        artifact = self._find_download(download_dir, resolved.value.filename)
        if artifact is None:
            return Err(EngineError(ErrorKind.VALIDATION, f"no binary found in {download_dir}"))

        target = install_dir / "bin" / cfg.binary_name
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            return Err(EngineError(ErrorKind.IO, f"cannot create {target.parent}", e))

        archive_type = (cfg.archive_type or "").lower()
        if archive_type == "gz":
            extracted = self.deps.extractor.extract_gz(artifact, target)
            if isinstance(extracted, Err):
                return Err(EngineError(extracted.error.kind, "extract failed", extracted.error))
        elif archive_type in _EXTRACTED_TYPES:
            placed = self._install_from_archive(artifact, archive_type, target)
            if isinstance(placed, Err):
                return placed
        else:
            try:
                shutil.copyfile(artifact, target)
            except OSError as e:
                return Err(EngineError(ErrorKind.IO, f"cannot copy {artifact}", e))

        return make_executable(target)

    def _install_from_archive(
        self, archive: Path, archive_type: str, target: Path
    ) -> Result[None, EngineError]:
        binary_name = self._config.binary_name
        with tempfile.TemporaryDirectory(prefix=f"toolsmith-{self.name()}-") as scratch:
            scratch_dir = Path(scratch)
            extracted = self.deps.extractor.extract(archive, scratch_dir, archive_type)
            if isinstance(extracted, Err):
                return Err(EngineError(extracted.error.kind, "extract failed", extracted.error))

            found = _find_binary(scratch_dir, binary_name)
            if found is None:
                return Err(
                    EngineError(ErrorKind.VALIDATION, f"binary not found in archive: {binary_name}")
                )
            try:
                shutil.copyfile(found, target)
            except OSError as e:
                return Err(EngineError(ErrorKind.IO, f"cannot copy {found}", e))
        return Ok(None)

    def help(self) -> PluginHelp:
        cfg = self._config
        overview = f"{cfg.name} - {cfg.help_description}" if cfg.help_description else cfg.name
        links: list[str] = []
        if cfg.help_link:
            links.append(f"Documentation: {cfg.help_link}")
        if cfg.repo_owner and cfg.repo_name:
            links.append(f"GitHub: {github_repo_url(cfg.repo_owner, cfg.repo_name)}")
        return PluginHelp(overview=overview, links="\n".join(links))


def _is_plausible(path: Path) -> bool:
    try:
        return path.is_file() and path.stat().st_size > MIN_CACHED_ARTIFACT_BYTES
    except OSError:
        return False


def _find_binary(root: Path, binary_name: str) -> Path | None:
    """First regular file named binary_name in sorted walk order."""
    for current, dirs, files in os.walk(root):
        dirs.sort()
        for name in sorted(files):
            path = Path(current, name)
            if name == binary_name and path.is_file():
                return path
    return None
