"""Typed engine configuration.

Defaults come from the environment (``ASDF_DATA_DIR``, ``ASDF_OVERWRITE_ARCH``,
``GITHUB_TOKEN``); an optional TOML file with an ``[engine]`` table overrides
them.

Example ``toolsmith.toml``:

    [engine]
    data_dir = "~/.local/share/toolsmith"
    ledger_path = ".tool-sums"
    http_timeout = 600
    max_workers = 4
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, replace
from pathlib import Path

from .result import Err, Ok, Result
from .structured import StrDict, as_str_dict, get_number, get_str, get_table

__all__ = [
    "EngineConfig",
    "ConfigError",
    "load_config",
    "DATA_DIR_ENV",
    "ARCH_OVERRIDE_ENV",
    "DEFAULT_HTTP_TIMEOUT",
    "LEDGER_FILENAME",
    "TOOL_VERSIONS_FILENAME",
]

DATA_DIR_ENV = "ASDF_DATA_DIR"
ARCH_OVERRIDE_ENV = "ASDF_OVERWRITE_ARCH"
GITHUB_TOKEN_ENVS = ("GITHUB_TOKEN", "GITHUB_API_TOKEN")

# Ceiling for one request, sized for large downloads over slow links.
DEFAULT_HTTP_TIMEOUT = 30 * 60.0
DEFAULT_USER_AGENT = "toolsmith/0.1.0"
DEFAULT_GITHUB_API_URL = "https://api.github.com"
DEFAULT_MAX_WORKERS = 8

LEDGER_FILENAME = ".tool-sums"
TOOL_VERSIONS_FILENAME = ".tool-versions"


@dataclass(frozen=True, slots=True)
class ConfigError:
    """Error when config cannot be loaded or parsed."""

    message: str
    path: Path | None = None

    def __str__(self) -> str:
        return self.message


@dataclass(frozen=True, slots=True)
class EngineConfig:
    """Engine-wide settings.

    Attributes:
        data_dir: Root for ``downloads/`` and ``installs/``
        ledger_path: Checksum ledger file
        tool_versions_path: Version pin file used by bulk refresh
        arch_override: Forced CPU architecture name, if any
        http_timeout: Per-request timeout ceiling in seconds
        user_agent: User-Agent header for every request
        github_token: Bearer token for the GitHub API, if any
        github_api_url: GitHub API base URL
        max_workers: Thread pool size for bulk refresh
    """

    data_dir: Path
    ledger_path: Path
    tool_versions_path: Path
    arch_override: str | None = None
    http_timeout: float = DEFAULT_HTTP_TIMEOUT
    user_agent: str = DEFAULT_USER_AGENT
    github_token: str | None = None
    github_api_url: str = DEFAULT_GITHUB_API_URL
    max_workers: int = DEFAULT_MAX_WORKERS

    @classmethod
    def from_env(
        cls,
        environ: Mapping[str, str] | None = None,
        *,
        cwd: Path | None = None,
    ) -> EngineConfig:
        """Build defaults from environment variables."""
        env = os.environ if environ is None else environ
        base = cwd or Path.cwd()

        data_dir_raw = env.get(DATA_DIR_ENV, "").strip()
        data_dir = Path(data_dir_raw).expanduser() if data_dir_raw else Path.home() / ".asdf"

        token = next((env[k].strip() for k in GITHUB_TOKEN_ENVS if env.get(k, "").strip()), None)

        return cls(
            data_dir=data_dir,
            ledger_path=base / LEDGER_FILENAME,
            tool_versions_path=base / TOOL_VERSIONS_FILENAME,
            arch_override=env.get(ARCH_OVERRIDE_ENV, "").strip() or None,
            github_token=token,
        )

    def with_overrides(self, data: Mapping[str, object], *, base: Path) -> EngineConfig:
        """Overlay values from a parsed ``[engine]`` table."""
        data_dir = get_str(data, "data_dir")
        ledger = get_str(data, "ledger_path")
        tool_versions = get_str(data, "tool_versions_path")
        timeout = get_number(data, "http_timeout")
        workers = get_number(data, "max_workers")

        return replace(
            self,
            data_dir=_resolve(base, data_dir) if data_dir else self.data_dir,
            ledger_path=_resolve(base, ledger) if ledger else self.ledger_path,
            tool_versions_path=(
                _resolve(base, tool_versions) if tool_versions else self.tool_versions_path
            ),
            arch_override=get_str(data, "arch_override") or self.arch_override,
            http_timeout=timeout if timeout and timeout > 0 else self.http_timeout,
            user_agent=get_str(data, "user_agent") or self.user_agent,
            github_api_url=(get_str(data, "github_api_url") or self.github_api_url).rstrip("/"),
            max_workers=int(workers) if workers and workers >= 1 else self.max_workers,
        )

    def download_dir(self, name: str, version: str) -> Path:
        return self.data_dir / "downloads" / name / version

    def install_dir(self, name: str, version: str) -> Path:
        return self.data_dir / "installs" / name / version


def _resolve(base: Path, raw: str) -> Path:
    path = Path(raw).expanduser()
    return path if path.is_absolute() else base / path


def _parse_toml(path: Path) -> Result[StrDict, ConfigError]:
    """Parse a TOML file, handling read and syntax errors."""
    import tomllib

    try:
        data_obj: object = tomllib.loads(path.read_bytes().decode("utf-8"))
    except FileNotFoundError:
        return Err(ConfigError(f"Config file not found: {path}", path=path))
    except PermissionError:
        return Err(ConfigError(f"Permission denied reading: {path}", path=path))
    except tomllib.TOMLDecodeError as e:
        return Err(ConfigError(f"Invalid TOML syntax: {e}", path=path))
    except UnicodeDecodeError as e:
        return Err(ConfigError(f"Error reading config: {e}", path=path))

    data = as_str_dict(data_obj)
    if data is None:
        return Err(ConfigError("Config root must be a TOML table", path=path))
    return Ok(data)


def load_config(
    path: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> Result[EngineConfig, ConfigError]:
    """Load engine configuration.

    Args:
        path: Optional TOML file; relative paths inside it resolve against
            its directory
        environ: Environment mapping (defaults to ``os.environ``)

    Returns:
        Ok(EngineConfig) on success, Err(ConfigError) on failure
    """
    config = EngineConfig.from_env(environ)
    if path is None:
        return Ok(config)

    parsed = _parse_toml(path)
    if isinstance(parsed, Err):
        return parsed

    engine = get_table(parsed.value, "engine")
    if engine is None:
        if "engine" in parsed.value:
            return Err(ConfigError("[engine] must be a table", path=path))
        return Ok(config)

    return Ok(config.with_overrides(engine, base=path.parent))
