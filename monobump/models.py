"""Data models for monobump.

These Pydantic models represent the core data structures shared by the
commit parser, package graph, tag ledger and release pipeline.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

UNKNOWN_TYPE = "unknown"


class ViolationKind(str, Enum):
    """A way a commit message can break the commit convention."""

    MALFORMED_FORMAT = "malformed_format"
    INVALID_TYPE = "invalid_type"
    INVALID_SCOPE = "invalid_scope"
    MISSING_SUBJECT = "missing_subject"
    SUBJECT_TOO_SHORT = "subject_too_short"
    SUBJECT_TOO_LONG = "subject_too_long"


class Commit(BaseModel):
    """A single commit, parsed into its Conventional Commit parts.

    Commits that do not follow the convention are still represented, with
    ``type`` set to ``"unknown"`` and the whole message kept as ``subject``,
    so that parsed totals always match the raw log.

    Attributes:
        hash: Full commit SHA (empty for messages checked before committing).
        authored_at: Author timestamp, if known.
        raw_subject: First line of the message, untouched.
        raw_body: Everything after the first line, stripped.
        type: Lower-cased commit type from the configured vocabulary,
              or "unknown".
        scope: Scope from ``type(scope):``, if any.
        is_breaking: True for ``type!:`` or a breaking-change footer.
        subject: Free text after the ``type(scope):`` prefix.
        paths: Workspace-relative paths the commit touched.
        violations: Convention violations found while parsing.
    """

    model_config = ConfigDict(frozen=True)

    hash: str = ""
    authored_at: datetime | None = None
    raw_subject: str
    raw_body: str = ""
    type: str = UNKNOWN_TYPE
    scope: str | None = None
    is_breaking: bool = False
    subject: str
    paths: tuple[str, ...] = ()
    violations: tuple[ViolationKind, ...] = ()

    @property
    def short_hash(self) -> str:
        return self.hash[:7]


class PackageInfo(BaseModel):
    """Metadata for a single package in the monorepo workspace.

    Attributes:
        name: Canonical (PEP 503) package name, unique in the workspace.
        path: Relative POSIX path from workspace root to the package directory.
        version: Current version string from pyproject.toml.
        deps: List of internal (workspace) dependency names. External deps
              are not tracked here since only workspace packages take part
              in affected-set propagation and version pinning.
    """

    name: str
    path: str
    version: str = "0.0.0"
    deps: list[str] = Field(default_factory=list)


class Tag(BaseModel):
    """A release tag scoped to one package.

    Attributes:
        name: Full git tag name (e.g. ``core/v1.2.3``).
        package: Package the tag belongs to.
        version: Released version string.
        commit_hash: Commit the tag points to.
        created_at: Tag (or tagged commit) creation time, if known.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    package: str
    version: str
    commit_hash: str
    created_at: datetime | None = None


class AffectedReason(str, Enum):
    """Why a package is part of an affected set."""

    DIRECTLY_CHANGED = "directly_changed"
    TRANSITIVELY_AFFECTED = "transitively_affected"


class PlannedRelease(BaseModel):
    """One package release staged by ``prepare``.

    Attributes:
        name: Package name.
        path: Package directory, relative to the workspace root.
        previous: Last released version, or None for a first release.
        version: Version being released.
        bump: Bump level that produced ``version`` ("none" for first
              releases without qualifying commits).
        tag: Tag name ``apply`` will create.
        files: Files written for this release, relative to the workspace root.
    """

    name: str
    path: str
    previous: str | None
    version: str
    bump: str
    tag: str
    files: list[str] = Field(default_factory=list)


class ReleasePlan(BaseModel):
    """Staged releases waiting for ``apply``."""

    releases: list[PlannedRelease] = Field(default_factory=list)
    # Manifests of unreleased packages whose internal pins follow a release
    pinned: list[str] = Field(default_factory=list)

    @property
    def files(self) -> list[str]:
        """All files to stage, deduplicated and sorted."""
        return sorted({f for release in self.releases for f in release.files} | set(self.pinned))


class RawCommit(BaseModel):
    """A commit as reported by the history source, before parsing."""

    model_config = ConfigDict(frozen=True)

    hash: str
    authored_at: datetime | None = None
    message: str
    paths: tuple[str, ...] = ()


class RawTag(BaseModel):
    """A git tag as reported by the history source."""

    model_config = ConfigDict(frozen=True)

    name: str
    commit_hash: str
    created_at: datetime | None = None
