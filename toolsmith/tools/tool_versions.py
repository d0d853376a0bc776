"""Version pin file (``.tool-versions``) handling.

Format: one ``<name> <version>`` pair per line; blank lines and ``#``
comments are ignored. Extra fields after the version (fallback versions) are
ignored on read. When a name appears twice the last line wins.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from toolsmith.core.result import Err, Ok, Result
from toolsmith.platform.files import atomic_write_text

__all__ = [
    "ToolVersionsError",
    "parse_tool_versions",
    "format_tool_versions",
    "read_tool_versions",
    "write_tool_versions",
    "ensure_tool_version",
]


@dataclass(frozen=True, slots=True)
class ToolVersionsError:
    """Pin file could not be read or written."""

    path: Path
    message: str

    def __str__(self) -> str:
        return f"{self.message}: {self.path}"


def parse_tool_versions(text: str) -> dict[str, str]:
    pins: dict[str, str] = {}
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        fields = line.split()
        if len(fields) < 2:
            continue
        pins[fields[0]] = fields[1]
    return pins


def format_tool_versions(pins: Mapping[str, str]) -> str:
    """One sorted line per tool; entries with an empty version are dropped."""
    lines = [f"{name} {version}" for name, version in sorted(pins.items()) if version]
    return "".join(line + "\n" for line in lines)


def read_tool_versions(path: Path) -> Result[dict[str, str], ToolVersionsError]:
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return Err(ToolVersionsError(path, "Pin file not found"))
    except (OSError, UnicodeDecodeError) as e:
        return Err(ToolVersionsError(path, f"Cannot read pin file ({e})"))
    return Ok(parse_tool_versions(text))


def write_tool_versions(path: Path, pins: Mapping[str, str]) -> Result[None, ToolVersionsError]:
    """Atomically replace path with the formatted pins."""
    try:
        atomic_write_text(path, format_tool_versions(pins))
    except OSError as e:
        return Err(ToolVersionsError(path, f"Cannot write pin file ({e})"))
    return Ok(None)


def ensure_tool_version(
    path: Path, name: str, version: str = "latest"
) -> Result[str, ToolVersionsError]:
    """Make sure path pins name, appending ``<name> <version>`` if it does not.

    Existing lines and comments are kept as written. A missing file is created.

    Returns:
        Ok with the version now pinned for name (the existing pin wins)
    """
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        text = ""
    except (OSError, UnicodeDecodeError) as e:
        return Err(ToolVersionsError(path, f"Cannot read pin file ({e})"))

    pinned = parse_tool_versions(text).get(name)
    if pinned is not None:
        return Ok(pinned)

    if text and not text.endswith("\n"):
        text += "\n"
    try:
        atomic_write_text(path, f"{text}{name} {version}\n")
    except OSError as e:
        return Err(ToolVersionsError(path, f"Cannot write pin file ({e})"))
    return Ok(version)
