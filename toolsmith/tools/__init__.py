"""Artifact acquisition and install engine.

This package provides:
- Version ordering and selection (versions.py) and version sources (sources.py)
- HTTP access and atomic downloads (http.py, download.py)
- Guarded archive extraction (archive.py)
- Checksum helpers and the checksum ledger (checksums.py, ledger.py)
- The plugin contract (plugin.py) with binary and source-build strategies
  (binary.py, source_build.py) and the plugin registry (registry.py)
- ``.tool-versions`` handling (tool_versions.py)
"""

from toolsmith.tools.archive import ArchiveError, ArchiveExtractor, ExtractResult
from toolsmith.tools.binary import BinaryPlugin, BinaryPluginConfig
from toolsmith.tools.download import ArtifactFetcher
from toolsmith.tools.http import HttpClient, HttpError, MockHttpClient, RealHttpClient
from toolsmith.tools.ledger import ChecksumLedger, ChecksumMismatch
from toolsmith.tools.plugin import BasePlugin, Plugin, PluginDeps, PluginHelp
from toolsmith.tools.registry import PluginEntry, PluginRegistry, binary_entry, source_build_entry
from toolsmith.tools.source_build import SourceBuildPlugin, SourceBuildPluginConfig
from toolsmith.tools.sources import GitHubQuery, GitHubVersionSource, VersionIndex, VersionSource
from toolsmith.tools.tool_versions import read_tool_versions, write_tool_versions
from toolsmith.tools.versions import (
    Version,
    compare_versions,
    is_prerelease,
    latest_stable_with_query,
    latest_version,
    sort_versions,
)

__all__ = [
    # Archive
    "ArchiveError",
    "ArchiveExtractor",
    "ExtractResult",
    # Strategies
    "BinaryPlugin",
    "BinaryPluginConfig",
    "SourceBuildPlugin",
    "SourceBuildPluginConfig",
    # Fetch
    "ArtifactFetcher",
    "HttpClient",
    "HttpError",
    "MockHttpClient",
    "RealHttpClient",
    # Ledger
    "ChecksumLedger",
    "ChecksumMismatch",
    # Plugin contract
    "BasePlugin",
    "Plugin",
    "PluginDeps",
    "PluginHelp",
    "PluginEntry",
    "PluginRegistry",
    "binary_entry",
    "source_build_entry",
    # Version sources
    "GitHubQuery",
    "GitHubVersionSource",
    "VersionIndex",
    "VersionSource",
    # Pins
    "read_tool_versions",
    "write_tool_versions",
    # Versions
    "Version",
    "compare_versions",
    "is_prerelease",
    "latest_stable_with_query",
    "latest_version",
    "sort_versions",
]
