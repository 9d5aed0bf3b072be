"""Semantic version parsing for Helm chart and application versions.

Helm reports a release's chart as ``<chart name>-<version>`` (for example
``loki-v3.4.5``). The version is the text after the last dash, with an
optional leading ``v``. Anything that is not ``MAJOR.MINOR.PATCH`` with an
optional pre-release/build suffix is treated as unknown.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

_SEMVER_PATTERN = re.compile(
    r"^v?(?P<major>0|[1-9]\d*)\.(?P<minor>0|[1-9]\d*)\.(?P<patch>0|[1-9]\d*)"
    r"(?:-(?P<prerelease>[0-9A-Za-z.-]+))?"
    r"(?:\+(?P<build>[0-9A-Za-z.-]+))?$"
)


@dataclass(frozen=True, order=True)
class SemanticVersion:
    """A ``MAJOR.MINOR.PATCH`` version.

    Ordering compares the numeric triple only. Pre-release and build
    metadata are kept for display.
    """

    major: int
    minor: int
    patch: int
    prerelease: str | None = field(default=None, compare=False)
    build: str | None = field(default=None, compare=False)

    @classmethod
    def parse(cls, value: str) -> SemanticVersion | None:
        """Parse a version string, returning None when it is not semver.

        Example:
            >>> SemanticVersion.parse("v3.4.5")
            SemanticVersion(major=3, minor=4, patch=5, prerelease=None, build=None)
            >>> SemanticVersion.parse("6.x") is None
            True
        """
        match = _SEMVER_PATTERN.match(value.strip())
        if match is None:
            return None
        return cls(
            major=int(match.group("major")),
            minor=int(match.group("minor")),
            patch=int(match.group("patch")),
            prerelease=match.group("prerelease"),
            build=match.group("build"),
        )

    def __str__(self) -> str:
        text = f"{self.major}.{self.minor}.{self.patch}"
        if self.prerelease:
            text += f"-{self.prerelease}"
        if self.build:
            text += f"+{self.build}"
        return text


def parse_chart_version(chart: str) -> SemanticVersion | None:
    """Extract the version from a Helm ``chart`` column value.

    Example:
        >>> str(parse_chart_version("loki-v3.4.5"))
        '3.4.5'
        >>> parse_chart_version("elasticache-6.x") is None
        True
    """
    _, sep, version = chart.rpartition("-")
    if not sep:
        return None
    return SemanticVersion.parse(version)


def parse_app_version(app_version: str) -> SemanticVersion | None:
    """Parse a Helm ``app_version`` column value."""
    if not app_version:
        return None
    return SemanticVersion.parse(app_version)
