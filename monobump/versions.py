"""Version parsing and bump resolution.

Handles conversion between version strings and semver objects, and derives
the next release version of a package from the commits in its release
range.

Bump rules, evaluated per commit and reduced by maximum:

- breaking change → major
- ``feat`` (configurable) → minor
- ``fix``, ``perf`` (configurable) → patch
- anything else, including unknown commits → none

A package that was never released starts at 0.1.0 (1.0.0 if any commit is
breaking). While the major version is 0, a breaking change bumps the minor
component instead of the major one.
"""

from __future__ import annotations

from collections.abc import Iterable
from enum import IntEnum

import semver
from pydantic import BaseModel, ConfigDict

from .config import CommitRules
from .models import Commit, ViolationKind

INITIAL_VERSION = semver.Version(0, 1, 0)
INITIAL_STABLE_VERSION = semver.Version(1, 0, 0)


class VersionBump(IntEnum):
    """Bump levels, ordered so that ``max()`` picks the strongest."""

    NONE = 0
    PATCH = 1
    MINOR = 2
    MAJOR = 3

    def __str__(self) -> str:
        return self.name.lower()


def parse_version(version_str: str) -> semver.Version:
    """Parse a version string into a semver.Version object.

    Handles incomplete versions by padding with zeros:
    - "1" → "1.0.0"
    - "1.2" → "1.2.0"
    - "1.2.3" → "1.2.3"

    Only the first 3 components are used (major.minor.patch).
    Prerelease/build metadata is not supported.
    """
    parts = version_str.split(".")
    while len(parts) < 3:
        parts.append("0")
    return semver.Version.parse(".".join(parts[:3]))


def bump_version(version: semver.Version, bump: VersionBump) -> semver.Version:
    """Apply ``bump`` to ``version``.

    A major bump of a 0.y.z version increments the minor component: major
    version zero makes no stability promise, so breaking changes stay in
    the 0.x line until a deliberate 1.0.0.

    Examples:
        (1.2.3, MINOR) → 1.3.0
        (0.4.1, MAJOR) → 0.5.0
        (1.4.1, NONE) → 1.4.1
    """
    if bump is VersionBump.MAJOR:
        return version.bump_minor() if version.major == 0 else version.bump_major()
    if bump is VersionBump.MINOR:
        return version.bump_minor()
    if bump is VersionBump.PATCH:
        return version.bump_patch()
    return version


def commit_bump(commit: Commit, rules: CommitRules) -> VersionBump:
    """Return the bump a single commit implies."""
    if not rules.count_invalid_scopes and ViolationKind.INVALID_SCOPE in commit.violations:
        return VersionBump.NONE
    if commit.is_breaking:
        return VersionBump.MAJOR
    if commit.type in rules.types_minor:
        return VersionBump.MINOR
    if commit.type in rules.types_patch:
        return VersionBump.PATCH
    return VersionBump.NONE


class VersionResolution(BaseModel):
    """Outcome of resolving a package's next version.

    Attributes:
        bump: Strongest bump implied by the commits.
        next_version: Version to release, or None when no release is needed.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    bump: VersionBump
    next_version: semver.Version | None

    @property
    def needs_release(self) -> bool:
        return self.next_version is not None


def resolve_version(
    current: semver.Version | str | None,
    commits: Iterable[Commit],
    rules: CommitRules | None = None,
) -> VersionResolution:
    """Compute the next version for a package.

    Args:
        current: Last released version, or None if the package was never
                 released.
        commits: Commits since the last release, oldest first.
        rules: Bump rules. Defaults to the standard Conventional Commit rules.

    Returns:
        The resolved bump and next version. ``next_version`` is None when a
        released package has no qualifying commits; that means "skip the
        release", not an error.
    """
    rules = rules or CommitRules()
    bump = max((commit_bump(c, rules) for c in commits), default=VersionBump.NONE)

    if current is None:
        # First release ignores bump arithmetic entirely
        seed = INITIAL_STABLE_VERSION if bump is VersionBump.MAJOR else INITIAL_VERSION
        return VersionResolution(bump=bump, next_version=seed)

    if isinstance(current, str):
        current = parse_version(current)
    if bump is VersionBump.NONE:
        return VersionResolution(bump=bump, next_version=None)
    return VersionResolution(bump=bump, next_version=bump_version(current, bump))
