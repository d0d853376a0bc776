"""Build-from-source install strategy.

``SourceBuildPlugin.install`` runs:

    all expected artifacts present? done
    -> fetch the source archive (unless a plausible cached copy exists)
    -> extract into a scratch directory
    -> locate the source directory (template name or single top-level dir)
    -> pre_build hook (optional) -> build hook (required)
    -> post_install hook (optional) -> assert expected artifacts exist

Hooks are opaque callables supplied by the tool registration. They return a
Result; an Err is wrapped with the stage that produced it.
"""

from __future__ import annotations

import os
import tempfile
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from toolsmith.core.errors import EngineError, ErrorKind
from toolsmith.core.result import Err, Ok, Result
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
    "SourceBuildPluginConfig",
    "SourceBuildPlugin",
    "BuildHook",
    "PostInstallHook",
    "SourceUrlResolver",
    "DEFAULT_SOURCE_URL_TEMPLATE",
    "SUPPORTED_SOURCE_ARCHIVES",
]

DEFAULT_SOURCE_URL_TEMPLATE = (
    "https://github.com/{repo_owner}/{repo_name}/archive/refs/tags/"
    "{version_prefix}{version}.tar.gz"
)
DEFAULT_EXTRACTED_DIR_TEMPLATE = "{repo_name}-{version}"
DEFAULT_MIN_ARCHIVE_SIZE = 1024

SUPPORTED_SOURCE_ARCHIVES = ("tar.gz", "tgz", "tar.xz", "zip")

# (ctx, version, source_dir, install_dir) -> Ok(None) | Err(reason)
type BuildHook = Callable[[Context, str, Path, Path], Result[None, object]]
# (ctx, version, install_dir) -> Ok(None) | Err(reason)
type PostInstallHook = Callable[[Context, str, Path], Result[None, object]]
# version -> source archive URL
type SourceUrlResolver = Callable[[str], str]


@dataclass(frozen=True, slots=True)
class SourceBuildPluginConfig:
    """Declarative description of a tool compiled from a source archive.

    Hook fields are explicitly optional: ``None`` means "no such stage",
    except ``build``, whose absence is reported as a configuration error at
    install time.

    Attributes:
        name: Plugin name
        repo_owner: GitHub owner
        repo_name: GitHub repository
        version_prefix: Tag prefix stripped from versions and used in URLs
        version_filter: Optional regex a version must match
        use_tags: List tags (True) or releases (False)
        archive_type: ``tar.gz``, ``tar.xz`` or ``zip``
        archive_name_template: Local archive filename; defaults to
            ``{repo_name}-{version}.<archive_type>``
        source_url_template: Static URL template (defaults to the GitHub
            tag archive URL when no resolver is set)
        source_url_resolver: Computes the URL from the version instead
        extracted_dir_template: Source directory name inside the archive
        auto_detect_extracted_dir: Use the archive's top-level directory
        pre_build: Runs before build
        build: Compiles and installs into the install directory
        post_install: Runs after build
        expected_artifacts: Paths relative to the install directory that
            must exist afterwards
        bin_dir: Relative bin directory reported to the host
        create_bin_dir: Create ``bin_dir`` before building
        min_archive_size: Cached archives this small are re-downloaded
        skip_download: No archive; hooks run in the download directory
        skip_extract: Hooks run in the download directory next to the archive
        versions_index: List versions from a text index instead of GitHub
        legacy_filenames: Legacy version files this tool understands
        dependencies: Plugin names installed before this tool
        help: Help text; a minimal default is derived when None
    """

    name: str
    repo_owner: str = ""
    repo_name: str = ""
    version_prefix: str = "v"
    version_filter: str | None = None
    use_tags: bool = False
    archive_type: str = "tar.gz"
    archive_name_template: str | None = None
    source_url_template: str | None = None
    source_url_resolver: SourceUrlResolver | None = None
    extracted_dir_template: str = DEFAULT_EXTRACTED_DIR_TEMPLATE
    auto_detect_extracted_dir: bool = False
    pre_build: BuildHook | None = None
    build: BuildHook | None = None
    post_install: PostInstallHook | None = None
    expected_artifacts: tuple[str, ...] = ()
    bin_dir: str = "bin"
    create_bin_dir: bool = True
    min_archive_size: int = DEFAULT_MIN_ARCHIVE_SIZE
    skip_download: bool = False
    skip_extract: bool = False
    versions_index: VersionIndex | None = None
    legacy_filenames: tuple[str, ...] = ()
    dependencies: tuple[str, ...] = ()
    help: PluginHelp | None = None

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("Plugin name cannot be empty")
        if self.source_url_template and self.source_url_resolver:
            raise ValueError(
                f"{self.name}: set source_url_template or source_url_resolver, not both"
            )
        check_patterns(self.name, self.version_filter, self.versions_index)

    @property
    def archive_name(self) -> str:
        return self.archive_name_template or f"{{repo_name}}-{{version}}.{self.archive_type}"


def _stage_failure(stage: str, cause: object) -> EngineError:
    return EngineError(ErrorKind.BUILD, f"{stage} failed", cause)


class SourceBuildPlugin(BasePlugin):
    """Plugin compiling a tool with caller-supplied build hooks."""

    strict_latest = True

    def __init__(self, config: SourceBuildPluginConfig, deps: PluginDeps) -> None:
        super().__init__(deps)
        self._config = config

    @property
    def config(self) -> SourceBuildPluginConfig:
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
            use_tags=cfg.use_tags,
        )

    def _version_index(self) -> VersionIndex | None:
        return self._config.versions_index

    def _legacy_filenames(self) -> tuple[str, ...]:
        return self._config.legacy_filenames

    def dependencies(self) -> tuple[str, ...]:
        return self._config.dependencies

    def _values(self, version: str) -> dict[str, str]:
        cfg = self._config
        values = {
            "name": cfg.name,
            "version": version,
            "version_prefix": cfg.version_prefix,
            "repo_owner": cfg.repo_owner,
            "repo_name": cfg.repo_name,
            "archive_type": cfg.archive_type,
        }
        values["filename"] = render_template(cfg.archive_name, values)
        return values

    def source_url(self, version: str) -> str:
        """URL of the source archive for version."""
        cfg = self._config
        if cfg.source_url_resolver is not None:
            return cfg.source_url_resolver(version)
        template = cfg.source_url_template or DEFAULT_SOURCE_URL_TEMPLATE
        return render_template(template, self._values(version))

    def _check_config(self) -> Result[None, EngineError]:
        cfg = self._config
        if cfg.build is None:
            return Err(
                EngineError(ErrorKind.CONFIGURATION, f"{cfg.name}: no build step configured")
            )
        if not (cfg.skip_download or cfg.skip_extract):
            if cfg.archive_type.lower() not in SUPPORTED_SOURCE_ARCHIVES:
                return Err(
                    EngineError(
                        ErrorKind.CONFIGURATION, f"unsupported archive type: {cfg.archive_type}"
                    )
                )
        return Ok(None)

    def _fetch_archive(
        self, ctx: Context, version: str, work_dir: Path
    ) -> Result[Path, EngineError]:
        archive = work_dir / self._values(version)["filename"]
        try:
            if archive.is_file() and archive.stat().st_size > self._config.min_archive_size:
                return Ok(archive)
        except OSError as e:
            return Err(EngineError(ErrorKind.IO, f"cannot stat {archive}", e))
        return self.deps.fetcher.download_file(ctx, self.source_url(version), archive)

    def download(self, ctx: Context, version: str, download_dir: Path) -> Result[None, EngineError]:
        """Fetch the source archive so it is covered by checksum verification."""
        if self._config.skip_download:
            return Ok(None)
        fetched = self._fetch_archive(ctx, version, download_dir)
        if isinstance(fetched, Err):
            return fetched
        return Ok(None)

    def _artifacts_present(self, install_dir: Path) -> bool:
        artifacts = self._config.expected_artifacts
        return bool(artifacts) and all((install_dir / rel).exists() for rel in artifacts)

    def _finalize_artifacts(self, install_dir: Path) -> Result[None, EngineError]:
        """Check every expected artifact and mark those under bin_dir executable.

        A failed chmod is only a warning.
        """
        cfg = self._config
        bin_parts = Path(cfg.bin_dir).parts
        for rel in cfg.expected_artifacts:
            path = install_dir / rel
            if not path.exists():
                return Err(EngineError(ErrorKind.VALIDATION, f"install artifact missing: {rel}"))
            in_bin = Path(rel).parts[: len(bin_parts)] == bin_parts
            if in_bin and path.is_file():
                marked = make_executable(path)
                if isinstance(marked, Err):
                    self.deps.console.warning(str(marked.error))
        return Ok(None)

    def install(
        self, ctx: Context, version: str, download_dir: Path, install_dir: Path
    ) -> Result[None, EngineError]:
        """Build version into install_dir (no-op if its artifacts exist)."""
        cfg = self._config
        checked = self._check_config()
        if isinstance(checked, Err):
            return checked

        if self._artifacts_present(install_dir):
            return self._finalize_artifacts(install_dir)

        try:
            install_dir.mkdir(parents=True, exist_ok=True)
            if cfg.create_bin_dir:
                (install_dir / cfg.bin_dir).mkdir(parents=True, exist_ok=True)
            download_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            return Err(EngineError(ErrorKind.IO, f"cannot prepare {install_dir}", e))

        if cfg.skip_download:
            return self._run_hooks(ctx, version, download_dir, install_dir)

        archive = self._fetch_archive(ctx, version, download_dir)
        if isinstance(archive, Err):
            return archive

        if cfg.skip_extract:
            return self._run_hooks(ctx, version, download_dir, install_dir)

        with tempfile.TemporaryDirectory(prefix=f"toolsmith-{cfg.name}-src-") as scratch:
            scratch_dir = Path(scratch)
            extracted = self.deps.extractor.extract(archive.value, scratch_dir, cfg.archive_type)
            if isinstance(extracted, Err):
                return Err(EngineError(extracted.error.kind, "extract failed", extracted.error))

            source_dir = self._source_dir(scratch_dir, version)
            if source_dir is None:
                return Err(
                    EngineError(ErrorKind.VALIDATION, "extracted source directory missing")
                )
            return self._run_hooks(ctx, version, source_dir, install_dir)

    def _source_dir(self, extracted: Path, version: str) -> Path | None:
        cfg = self._config
        if cfg.auto_detect_extracted_dir:
            for name in sorted(os.listdir(extracted)):
                candidate = extracted / name
                if candidate.is_dir():
                    return candidate
            return None
        candidate = extracted / render_template(cfg.extracted_dir_template, self._values(version))
        return candidate if candidate.is_dir() else None

    def _run_hooks(
        self, ctx: Context, version: str, source_dir: Path, install_dir: Path
    ) -> Result[None, EngineError]:
        cfg = self._config
        # Checked by _check_config.
        assert cfg.build is not None

        if cfg.pre_build is not None:
            result = cfg.pre_build(ctx, version, source_dir, install_dir)
            if isinstance(result, Err):
                return Err(_stage_failure("pre-build", result.error))

        result = cfg.build(ctx, version, source_dir, install_dir)
        if isinstance(result, Err):
            return Err(_stage_failure("build", result.error))

        if cfg.post_install is not None:
            result = cfg.post_install(ctx, version, install_dir)
            if isinstance(result, Err):
                return Err(_stage_failure("post-install", result.error))

        return self._finalize_artifacts(install_dir)

    def list_bin_paths(self) -> str:
        return self._config.bin_dir

    def help(self) -> PluginHelp:
        cfg = self._config
        if cfg.help is not None:
            return cfg.help
        links = ""
        if cfg.repo_owner and cfg.repo_name:
            links = f"GitHub: {github_repo_url(cfg.repo_owner, cfg.repo_name)}"
        return PluginHelp(overview=cfg.name, links=links)
