"""Version parsing, ordering and selection.

Versions are compared by the integers found in their digit runs, so
"1.9" < "1.10" and "v1.2" == "1.2.0". A version is a prerelease when it
contains one of the markers ``rc``, ``alpha``, ``beta`` or ``-pre``
(case-insensitive).

Two selection variants exist:
- ``latest_version``: lenient, returns "" when nothing is available and
  falls back to the full list when a query prefix matches nothing
- ``latest_stable_with_query``: strict, distinguishes "no versions" from
  "no versions matching the query"
"""

from __future__ import annotations

import re
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from functools import cmp_to_key, total_ordering

from toolsmith.core.result import Err, Ok, Result

__all__ = [
    "Version",
    "NoVersionsFound",
    "NoMatchingVersion",
    "VersionLookupError",
    "version_parts",
    "compare_versions",
    "sort_versions",
    "filter_versions",
    "is_prerelease",
    "latest_version",
    "latest_stable_with_query",
    "extract_versions",
]

_DIGIT_RUN = re.compile(r"\d+")
_PRERELEASE_MARKERS = ("rc", "alpha", "beta", "-pre")


def version_parts(version: str) -> tuple[int, ...]:
    """Integers from each digit run, e.g. "v1.21.0-rc2" -> (1, 21, 0, 2)."""
    return tuple(int(run) for run in _DIGIT_RUN.findall(version))


def compare_versions(a: str, b: str) -> int:
    """Compare two versions, returning -1, 0 or 1.

    Shorter sequences are zero-extended before an element-wise comparison.
    """
    pa = version_parts(a)
    pb = version_parts(b)
    for i in range(max(len(pa), len(pb))):
        x = pa[i] if i < len(pa) else 0
        y = pb[i] if i < len(pb) else 0
        if x != y:
            return -1 if x < y else 1
    return 0


def sort_versions(versions: Iterable[str]) -> list[str]:
    """Return a new ascending list; ties keep their input order."""
    return sorted(versions, key=cmp_to_key(compare_versions))


def filter_versions(versions: Iterable[str], predicate: Callable[[str], bool]) -> list[str]:
    """Return the versions matching predicate, preserving input order."""
    return [v for v in versions if predicate(v)]


def is_prerelease(version: str) -> bool:
    lowered = version.lower()
    return any(marker in lowered for marker in _PRERELEASE_MARKERS)


def _prefer_stable_max(working: Sequence[str]) -> str:
    stable = filter_versions(working, lambda v: not is_prerelease(v))
    return sort_versions(stable or working)[-1]


def latest_version(versions: Sequence[str], query: str = "") -> str:
    """Pick the newest version, preferring stable ones.

    Args:
        versions: Candidate versions in any order
        query: Optional literal prefix; ignored when nothing matches it

    Returns:
        The selected version, or "" if versions is empty
    """
    working: Sequence[str] = versions
    if query:
        matched = filter_versions(versions, lambda v: v.startswith(query))
        if matched:
            working = matched
    if not working:
        return ""
    return _prefer_stable_max(working)


@dataclass(frozen=True, slots=True)
class NoVersionsFound:
    """The version source returned nothing at all."""

    def __str__(self) -> str:
        return "no versions found"


@dataclass(frozen=True, slots=True)
class NoMatchingVersion:
    """No version starts with the requested prefix."""

    query: str

    def __str__(self) -> str:
        return f"no versions matching query: {self.query}"


type VersionLookupError = NoVersionsFound | NoMatchingVersion


def latest_stable_with_query(
    versions: Sequence[str], query: str = ""
) -> Result[str, VersionLookupError]:
    """Strict variant of ``latest_version``.

    Returns:
        Ok with the selected version, Err(NoVersionsFound) for empty input,
        or Err(NoMatchingVersion) when the prefix filter leaves nothing
    """
    if not versions:
        return Err(NoVersionsFound())
    working = filter_versions(versions, lambda v: v.startswith(query)) if query else list(versions)
    if not working:
        return Err(NoMatchingVersion(query))
    return Ok(_prefer_stable_max(working))


def extract_versions(text: str, pattern: str | re.Pattern[str]) -> list[str]:
    """Extract versions from a text index (HTML listing, plain list).

    The first capture group is used when the pattern has one, else the
    whole match. Duplicates are dropped and the result is sorted.
    """
    regex = re.compile(pattern) if isinstance(pattern, str) else pattern
    found: dict[str, None] = {}
    for match in regex.finditer(text):
        value = match.group(1) if regex.groups else match.group(0)
        if value:
            found[value] = None
    return sort_versions(found)


@total_ordering
@dataclass(frozen=True, slots=True, eq=False)
class Version:
    """Immutable version value.

    Equality and ordering use the zero-extended digit sequence, so
    ``Version("1.0") == Version("1.0.0")``.
    """

    raw: str

    @property
    def parts(self) -> tuple[int, ...]:
        return version_parts(self.raw)

    @property
    def is_prerelease(self) -> bool:
        return is_prerelease(self.raw)

    def _key(self) -> tuple[int, ...]:
        parts = list(self.parts)
        while parts and parts[-1] == 0:
            parts.pop()
        return tuple(parts)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return compare_versions(self.raw, other.raw) == 0

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return compare_versions(self.raw, other.raw) < 0

    def __hash__(self) -> int:
        return hash(self._key())

    def __str__(self) -> str:
        return self.raw
