"""Version sources: GitHub tags/releases and plain HTTP indexes.

All functions take their HTTP access through an injected ArtifactFetcher so
tests substitute a MockHttpClient.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, runtime_checkable
from urllib.parse import urlparse

from toolsmith.core.config import DEFAULT_GITHUB_API_URL
from toolsmith.core.errors import EngineError, ErrorKind
from toolsmith.core.result import Err, Ok, Result
from toolsmith.core.structured import as_obj_list, str_field_of_items
from toolsmith.tools.versions import extract_versions, is_prerelease, sort_versions

if TYPE_CHECKING:
    from toolsmith.core.context import Context
    from toolsmith.tools.download import ArtifactFetcher

__all__ = [
    "VersionSource",
    "GitHubVersionSource",
    "GitHubQuery",
    "VersionIndex",
    "parse_owner_repo",
    "github_repo_url",
    "compile_pattern",
    "check_patterns",
    "list_github_versions",
    "list_index_versions",
]


@runtime_checkable
class VersionSource(Protocol):
    """Lists raw tag and release names for a repository URL."""

    def get_tags(self, ctx: Context, repo_url: str) -> Result[list[str], EngineError]: ...

    def get_releases(self, ctx: Context, repo_url: str) -> Result[list[str], EngineError]: ...


def github_repo_url(owner: str, repo: str) -> str:
    return f"https://github.com/{owner}/{repo}"


def parse_owner_repo(repo_url: str) -> tuple[str, str] | None:
    """Extract ``(owner, repo)`` from ``https://github.com/<owner>/<repo>[.git]``."""
    parsed = urlparse(repo_url)
    if parsed.netloc.lower() not in ("github.com", "www.github.com"):
        return None
    parts = [p for p in parsed.path.split("/") if p]
    if len(parts) < 2:
        return None
    return parts[0], parts[1].removesuffix(".git")


class GitHubVersionSource:
    """GitHub REST API client for tags and releases.

    Usage:
        source = GitHubVersionSource(fetcher, token=config.github_token)
        tags = source.get_tags(ctx, "https://github.com/ziglang/zig")
    """

    def __init__(
        self,
        fetcher: ArtifactFetcher,
        *,
        api_url: str = DEFAULT_GITHUB_API_URL,
        token: str | None = None,
    ) -> None:
        self._fetcher = fetcher
        self._api_url = api_url.rstrip("/")
        self._token = token

    def _headers(self) -> dict[str, str]:
        headers = {
            "Accept": "application/vnd.github.v3+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    def _get_list(self, ctx: Context, url: str) -> Result[list[object], EngineError]:
        text = self._fetcher.download_string(ctx, url, self._headers())
        if isinstance(text, Err):
            return text
        try:
            data: object = json.loads(text.value)
        except json.JSONDecodeError as e:
            return Err(EngineError(ErrorKind.TRANSIENT, f"invalid JSON from {url}", e))
        items = as_obj_list(data)
        if items is None:
            return Err(EngineError(ErrorKind.TRANSIENT, f"expected JSON array from {url}"))
        return Ok(items)

    def _repo_path(self, repo_url: str) -> Result[str, EngineError]:
        owner_repo = parse_owner_repo(repo_url)
        if owner_repo is None:
            return Err(
                EngineError(ErrorKind.CONFIGURATION, f"not a GitHub repository URL: {repo_url}")
            )
        owner, repo = owner_repo
        return Ok(f"{self._api_url}/repos/{owner}/{repo}")

    def get_tags(self, ctx: Context, repo_url: str) -> Result[list[str], EngineError]:
        """Tag names from the git refs endpoint, ``refs/tags/`` stripped."""
        base = self._repo_path(repo_url)
        if isinstance(base, Err):
            return base
        items = self._get_list(ctx, f"{base.value}/git/refs/tags")
        if isinstance(items, Err):
            return items
        refs = str_field_of_items(items.value, "ref")
        return Ok([ref.removeprefix("refs/tags/") for ref in refs])

    def get_releases(self, ctx: Context, repo_url: str) -> Result[list[str], EngineError]:
        """Release tag names (first page of 100, newest first)."""
        base = self._repo_path(repo_url)
        if isinstance(base, Err):
            return base
        items = self._get_list(ctx, f"{base.value}/releases?per_page=100")
        if isinstance(items, Err):
            return items
        return Ok(str_field_of_items(items.value, "tag_name"))


@dataclass(frozen=True, slots=True)
class GitHubQuery:
    """How a plugin turns a repository's tags or releases into versions.

    Attributes:
        repo_owner: GitHub owner
        repo_name: GitHub repository
        version_prefix: Stripped from names; tags lacking it are skipped
        version_filter: Optional regex a version must match
        use_tags: List tags instead of releases
        include_prereleases: Keep prereleases even when stable versions exist
    """

    repo_owner: str
    repo_name: str
    version_prefix: str = "v"
    version_filter: str | None = None
    use_tags: bool = False
    include_prereleases: bool = False

    @property
    def repo_url(self) -> str:
        return github_repo_url(self.repo_owner, self.repo_name)


def compile_pattern(pattern: str, message: str) -> Result[re.Pattern[str], EngineError]:
    """Compile a configured regex, reporting a bad one as a configuration error."""
    try:
        return Ok(re.compile(pattern))
    except re.error as e:
        return Err(EngineError(ErrorKind.CONFIGURATION, message, e))


def check_patterns(
    name: str, version_filter: str | None, index: VersionIndex | None
) -> None:
    """Reject a plugin config whose version regexes do not compile.

    Raises:
        ValueError: With the regex error as its cause
    """
    patterns = [("version_filter", version_filter)]
    if index is not None:
        patterns.append(("versions_index.pattern", index.pattern))
    for field_name, pattern in patterns:
        if not pattern:
            continue
        try:
            re.compile(pattern)
        except re.error as e:
            raise ValueError(f"{name}: invalid {field_name} regex: {e}") from e


def list_github_versions(
    ctx: Context, source: VersionSource, query: GitHubQuery
) -> Result[list[str], EngineError]:
    """List versions for a repository, sorted ascending.

    Returns:
        Ok with versions (possibly empty), Err(CONFIGURATION) for an invalid
        version_filter, or Err from the source
    """
    pattern: re.Pattern[str] | None = None
    if query.version_filter:
        compiled = compile_pattern(query.version_filter, "invalid version filter regex")
        if isinstance(compiled, Err):
            return compiled
        pattern = compiled.value

    if query.use_tags:
        names = source.get_tags(ctx, query.repo_url)
    else:
        names = source.get_releases(ctx, query.repo_url)
    if isinstance(names, Err):
        return names

    versions: list[str] = []
    for name in names.value:
        if query.use_tags and query.version_prefix and not name.startswith(query.version_prefix):
            continue
        version = name.removeprefix(query.version_prefix) if query.version_prefix else name
        if not version:
            continue
        if pattern is not None and not pattern.search(version):
            continue
        versions.append(version)

    versions = sort_versions(dict.fromkeys(versions))
    if not query.include_prereleases:
        stable = [v for v in versions if not is_prerelease(v)]
        if stable:
            versions = stable
    return Ok(versions)


@dataclass(frozen=True, slots=True)
class VersionIndex:
    """A text page listing versions (e.g. a download directory index).

    Attributes:
        url: Index URL
        pattern: Regex whose first group (or whole match) is a version
    """

    url: str
    pattern: str


def list_index_versions(
    ctx: Context, fetcher: ArtifactFetcher, index: VersionIndex
) -> Result[list[str], EngineError]:
    """Fetch an index page and extract its versions, sorted ascending."""
    pattern = compile_pattern(index.pattern, "invalid version index pattern")
    if isinstance(pattern, Err):
        return pattern
    text = fetcher.download_string(ctx, index.url)
    if isinstance(text, Err):
        return text
    return Ok(extract_versions(text.value, pattern.value))
