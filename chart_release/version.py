"""Semantic version comparison for chart versions.

Chart versions are semver strings such as `1.2.0` or `2.0.0-rc.1`. The
release part is parsed with `packaging.version` and a `-<prerelease>` suffix
is ordered with the semver identifier rules, so `1.0.0-1` and
`1.0.0-alpha.1` both sort below `1.0.0`. `+<build>` metadata is ignored.
Strings that cannot be parsed sort below every parseable version and are
ordered lexically among themselves.
"""

from dataclasses import dataclass
from functools import total_ordering
import re
from typing import Any

from packaging.version import InvalidVersion, Version

__all__ = [
    "ChartVersion",
    "parse_version",
    "is_version",
    "version_key",
]

_IDENTIFIER = re.compile(r"^[0-9A-Za-z-]+$")


@dataclass(frozen=True, order=True)
class ChartVersion:
    """A parsed chart version ordered by semver precedence."""

    release: Version
    """The release part, e.g. `1.2.0`."""

    final: bool
    """False for a semver pre-release, which sorts below its release."""

    prerelease: tuple[tuple[int, int, str], ...] = ()
    """Pre-release identifiers, numeric ones ordered below alphanumeric ones."""


def _identifier(value: str) -> tuple[int, int, str]:
    if value.isdigit():
        return (0, int(value), "")
    return (1, 0, value)


def parse_version(value: str) -> ChartVersion | None:
    """Parse a version string, returning None on failure."""
    value = value.strip().split("+", 1)[0]
    if value.startswith("v"):
        value = value[1:]
    release, sep, prerelease = value.partition("-")
    try:
        parsed = Version(release)
    except InvalidVersion:
        return None
    if not sep:
        return ChartVersion(release=parsed, final=True)
    if any(part is not None for part in (parsed.pre, parsed.post, parsed.dev, parsed.local)):
        return None
    identifiers = prerelease.split(".")
    if not all(_IDENTIFIER.match(identifier) for identifier in identifiers):
        return None
    return ChartVersion(
        release=parsed,
        final=False,
        prerelease=tuple(_identifier(identifier) for identifier in identifiers),
    )


def is_version(value: str) -> bool:
    """Return True if the string parses as a version."""
    return parse_version(value) is not None


@total_ordering
class _VersionKey:
    """Sort key that orders parsed versions above unparseable strings."""

    def __init__(self, value: str) -> None:
        self.value = value
        self.parsed = parse_version(value)

    def _tuple(self) -> tuple[Any, ...]:
        if self.parsed is None:
            return (0, self.value)
        return (1, self.parsed)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, _VersionKey):
            return NotImplemented
        if (self.parsed is None) != (other.parsed is None):
            return False
        return self._tuple() == other._tuple()

    def __lt__(self, other: "_VersionKey") -> bool:
        if (self.parsed is None) != (other.parsed is None):
            return self.parsed is None
        return self._tuple() < other._tuple()


def version_key(value: str) -> _VersionKey:
    """Return a key suitable for `sorted(..., key=version_key)`."""
    return _VersionKey(value)
