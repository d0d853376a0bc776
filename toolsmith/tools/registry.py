"""Plugin registry: a closed name -> factory table.

The set of tools is fixed when the registry is built; there is no dynamic
discovery. Lookups are case-insensitive and accept aliases.

Usage:
    registry = PluginRegistry([
        binary_entry(BinaryPluginConfig(name="jq", repo_owner="jqlang",
                                        repo_name="jq", binary_name="jq")),
        PluginEntry(("golang", "go"), make_go_plugin),
    ])
    plugin = registry.get("Go", deps)
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import TYPE_CHECKING

from toolsmith.core.errors import EngineError, ErrorKind
from toolsmith.core.result import Err, Ok, Result
from toolsmith.tools.binary import BinaryPlugin, BinaryPluginConfig
from toolsmith.tools.source_build import SourceBuildPlugin, SourceBuildPluginConfig

if TYPE_CHECKING:
    from toolsmith.tools.plugin import Plugin, PluginDeps

__all__ = [
    "PluginRegistry",
    "PluginEntry",
    "PluginFactory",
    "binary_entry",
    "source_build_entry",
]

type PluginFactory = Callable[[PluginDeps], Plugin]


@dataclass(frozen=True, slots=True)
class PluginEntry:
    """Registered plugin.

    Attributes:
        names: Primary name first, then aliases
        factory: Builds the plugin from injected collaborators
    """

    names: tuple[str, ...]
    factory: PluginFactory

    def __post_init__(self) -> None:
        if not self.names or not all(n.strip() for n in self.names):
            raise ValueError("Plugin entry needs at least one non-empty name")

    @property
    def name(self) -> str:
        return self.names[0]


def binary_entry(config: BinaryPluginConfig, *aliases: str) -> PluginEntry:
    return PluginEntry((config.name, *aliases), lambda deps: BinaryPlugin(config, deps))


def source_build_entry(config: SourceBuildPluginConfig, *aliases: str) -> PluginEntry:
    return PluginEntry((config.name, *aliases), lambda deps: SourceBuildPlugin(config, deps))


class PluginRegistry:
    """Lookup of plugins by name or alias."""

    def __init__(self, entries: Iterable[PluginEntry]) -> None:
        self._entries: list[PluginEntry] = []
        self._index: dict[str, PluginEntry] = {}
        for entry in entries:
            for name in entry.names:
                key = name.strip().lower()
                if key in self._index:
                    raise ValueError(f"Duplicate plugin name: {name!r}")
                self._index[key] = entry
            self._entries.append(entry)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.strip().lower() in self._index

    def names(self) -> list[str]:
        """Primary names, sorted."""
        return sorted(entry.name for entry in self._entries)

    def entry(self, name: str) -> PluginEntry | None:
        return self._index.get(name.strip().lower())

    def get(self, name: str, deps: PluginDeps) -> Result[Plugin, EngineError]:
        """Build the plugin registered under name (or one of its aliases)."""
        entry = self.entry(name)
        if entry is None:
            return Err(EngineError(ErrorKind.CONFIGURATION, f"unknown plugin: {name}"))
        return Ok(entry.factory(deps))

    def all(self, deps: PluginDeps) -> list[Plugin]:
        """One instance per registered plugin, in name order."""
        return [e.factory(deps) for e in sorted(self._entries, key=lambda e: e.name)]
