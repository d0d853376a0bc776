"""Tests for toolsmith.tools.sources module."""

import json

import pytest

from toolsmith.core.context import Context
from toolsmith.core.errors import EngineError, ErrorKind
from toolsmith.core.result import Err, Ok, Result
from toolsmith.tools.download import ArtifactFetcher
from toolsmith.tools.http import MockHttpClient
from toolsmith.tools.sources import (
    GitHubQuery,
    GitHubVersionSource,
    VersionIndex,
    VersionSource,
    check_patterns,
    list_github_versions,
    list_index_versions,
    parse_owner_repo,
)

API = "https://api.github.com/repos/acme/widget"


def tag_refs(*tags: str) -> str:
    return json.dumps([{"ref": f"refs/tags/{t}", "object": {"sha": "0" * 40}} for t in tags])


def releases(*tags: str) -> str:
    return json.dumps([{"tag_name": t, "draft": False} for t in tags])


class StaticSource:
    """VersionSource returning fixed names."""

    def __init__(self, tags: list[str], releases: list[str] | None = None) -> None:
        self.tags = tags
        self.releases = releases or []

    def get_tags(self, ctx: Context, repo_url: str) -> Result[list[str], EngineError]:
        return Ok(self.tags)

    def get_releases(self, ctx: Context, repo_url: str) -> Result[list[str], EngineError]:
        return Ok(self.releases)


# =============================================================================
# GitHubVersionSource
# =============================================================================


class TestParseOwnerRepo:
    """Repository URL parsing."""

    def test_valid(self) -> None:
        assert parse_owner_repo("https://github.com/acme/widget") == ("acme", "widget")
        assert parse_owner_repo("https://github.com/acme/widget.git") == ("acme", "widget")

    def test_invalid(self) -> None:
        assert parse_owner_repo("https://gitlab.com/acme/widget") is None
        assert parse_owner_repo("https://github.com/acme") is None


class TestGitHubVersionSource:
    """REST calls against a mocked API."""

    def test_tags(self) -> None:
        http = MockHttpClient()
        http.set_text(f"{API}/git/refs/tags", tag_refs("v1.0.0", "v1.1.0"))
        source = GitHubVersionSource(ArtifactFetcher(http))
        assert isinstance(source, VersionSource)
        result = source.get_tags(Context.background(), "https://github.com/acme/widget")
        assert result == Ok(["v1.0.0", "v1.1.0"])

    def test_releases_with_token(self) -> None:
        http = MockHttpClient()
        url = f"{API}/releases?per_page=100"
        http.set_text(url, releases("v2.0.0", "v1.0.0"))
        source = GitHubVersionSource(ArtifactFetcher(http), token="secret")
        result = source.get_releases(Context.background(), "https://github.com/acme/widget")
        assert result == Ok(["v2.0.0", "v1.0.0"])
        assert http.headers[url]["Authorization"] == "Bearer secret"
        assert http.headers[url]["Accept"] == "application/vnd.github.v3+json"

    def test_custom_api_url(self) -> None:
        http = MockHttpClient()
        http.set_text("http://127.0.0.1:8080/repos/acme/widget/git/refs/tags", tag_refs("v1"))
        source = GitHubVersionSource(ArtifactFetcher(http), api_url="http://127.0.0.1:8080/")
        assert source.get_tags(Context.background(), "https://github.com/acme/widget") == Ok(
            ["v1"]
        )

    def test_invalid_json(self) -> None:
        http = MockHttpClient()
        http.set_text(f"{API}/git/refs/tags", "<html>rate limited</html>")
        result = GitHubVersionSource(ArtifactFetcher(http)).get_tags(
            Context.background(), "https://github.com/acme/widget"
        )
        assert isinstance(result, Err)
        assert result.error.kind == ErrorKind.TRANSIENT

    def test_not_an_array(self) -> None:
        http = MockHttpClient()
        http.set_text(f"{API}/git/refs/tags", json.dumps({"message": "Not Found"}))
        result = GitHubVersionSource(ArtifactFetcher(http)).get_tags(
            Context.background(), "https://github.com/acme/widget"
        )
        assert isinstance(result, Err)
        assert "expected JSON array" in result.error.message

    def test_http_failure(self) -> None:
        result = GitHubVersionSource(ArtifactFetcher(MockHttpClient())).get_releases(
            Context.background(), "https://github.com/acme/widget"
        )
        assert isinstance(result, Err)
        assert result.error.kind == ErrorKind.TRANSIENT

    def test_not_github(self) -> None:
        result = GitHubVersionSource(ArtifactFetcher(MockHttpClient())).get_tags(
            Context.background(), "https://example.com/acme/widget"
        )
        assert isinstance(result, Err)
        assert result.error.kind == ErrorKind.CONFIGURATION


# =============================================================================
# list_github_versions
# =============================================================================


class TestListGitHubVersions:
    """Prefix stripping, filtering and ordering."""

    def test_tags_strip_prefix_and_sort(self) -> None:
        source = StaticSource(["v1.10.0", "v1.2.0", "nightly", "v1.2.0"])
        query = GitHubQuery("acme", "widget", use_tags=True)
        assert list_github_versions(Context.background(), source, query) == Ok(
            ["1.2.0", "1.10.0"]
        )

    def test_releases_keep_unprefixed(self) -> None:
        source = StaticSource([], releases=["v2.0.0", "1.5.0"])
        query = GitHubQuery("acme", "widget")
        assert list_github_versions(Context.background(), source, query) == Ok(
            ["1.5.0", "2.0.0"]
        )

    def test_custom_prefix(self) -> None:
        source = StaticSource(["jq-1.7.1", "jq-1.6", "v9"])
        query = GitHubQuery("jqlang", "jq", version_prefix="jq-", use_tags=True)
        assert list_github_versions(Context.background(), source, query) == Ok(["1.6", "1.7.1"])

    def test_filter(self) -> None:
        source = StaticSource(["v1.0.0", "v2.0.0", "vfoo"])
        query = GitHubQuery("acme", "widget", version_filter=r"^\d+\.\d+\.\d+$", use_tags=True)
        assert list_github_versions(Context.background(), source, query) == Ok(
            ["1.0.0", "2.0.0"]
        )

    def test_drops_prereleases_when_stable_exist(self) -> None:
        source = StaticSource(["v1.0.0", "v1.1.0-rc1"])
        query = GitHubQuery("acme", "widget", use_tags=True)
        assert list_github_versions(Context.background(), source, query) == Ok(["1.0.0"])

    @pytest.mark.parametrize(
        ("tags", "include", "expected"),
        [
            (["v1.0.0", "v1.1.0-rc1"], True, ["1.0.0", "1.1.0-rc1"]),
            (["v2.0.0-beta"], False, ["2.0.0-beta"]),
        ],
    )
    def test_prerelease_kept(self, tags: list[str], include: bool, expected: list[str]) -> None:
        query = GitHubQuery("acme", "widget", use_tags=True, include_prereleases=include)
        result = list_github_versions(Context.background(), StaticSource(tags), query)
        assert result == Ok(expected)


class TestListIndexVersions:
    """Plain HTTP version indexes."""

    def test_extracts(self) -> None:
        http = MockHttpClient()
        http.set_text(
            "https://dl.example.com/tool/",
            '<a href="tool-0.9.0.tar.gz"></a><a href="tool-0.10.0.tar.gz"></a>',
        )
        index = VersionIndex("https://dl.example.com/tool/", r"tool-([\d.]+)\.tar\.gz")
        result = list_index_versions(Context.background(), ArtifactFetcher(http), index)
        assert result == Ok(["0.9.0", "0.10.0"])

    def test_invalid_pattern_is_configuration_error(self) -> None:
        http = MockHttpClient()
        index = VersionIndex("https://dl.example.com/tool/", r"tool-([\d.]+")
        result = list_index_versions(Context.background(), ArtifactFetcher(http), index)
        assert isinstance(result, Err)
        assert result.error.kind == ErrorKind.CONFIGURATION
        assert result.error.message == "invalid version index pattern"
        assert http.calls == []


class TestInvalidVersionFilter:
    """A bad version_filter regex is reported, never raised."""

    @pytest.mark.parametrize("pattern", ["[", "(", "*1"])
    def test_configuration_error(self, pattern: str) -> None:
        query = GitHubQuery("acme", "widget", version_filter=pattern, use_tags=True)
        result = list_github_versions(Context.background(), StaticSource(["v1.0.0"]), query)
        assert isinstance(result, Err)
        assert result.error.kind == ErrorKind.CONFIGURATION
        assert str(result.error).startswith("invalid version filter regex: ")

    def test_checked_before_listing(self) -> None:
        http = MockHttpClient()
        source = GitHubVersionSource(ArtifactFetcher(http))
        query = GitHubQuery("acme", "widget", version_filter="[")
        assert isinstance(list_github_versions(Context.background(), source, query), Err)
        assert http.calls == []


class TestCheckPatterns:
    """Config-time regex validation."""

    def test_valid(self) -> None:
        check_patterns("widget", r"^\d+", VersionIndex("https://x/", r"v(\d+)"))
        check_patterns("widget", None, None)

    def test_bad_filter(self) -> None:
        with pytest.raises(ValueError, match="widget: invalid version_filter regex"):
            check_patterns("widget", "[", None)

    def test_bad_index_pattern(self) -> None:
        with pytest.raises(ValueError, match=r"invalid versions_index\.pattern regex"):
            check_patterns("widget", None, VersionIndex("https://x/", "("))
