"""Conventional commit parsing and validation.

A commit header has the form ``type(scope)!: subject`` where the scope and
the ``!`` breaking marker are optional. Parsing never raises: a message
that does not match the grammar becomes a commit of type ``"unknown"``
carrying a ``malformed_format`` violation, so every commit in a range is
accounted for exactly once.

Validation findings are computed while parsing (they depend on the
configured vocabulary) and read back through :func:`validate`.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from datetime import datetime

from pydantic import BaseModel, ConfigDict

from .config import CommitRules
from .models import UNKNOWN_TYPE, Commit, RawCommit, ViolationKind

logger = logging.getLogger(__name__)

HEADER_PATTERN = re.compile(
    r"^(?P<type>[A-Za-z][A-Za-z0-9_-]*)"
    r"(?:\((?P<scope>[^()\r\n]+)\))?"
    r"(?P<breaking>!)?"
    r":(?P<subject>.*)$"
)


class Parsed(BaseModel):
    """A header that matched the commit grammar."""

    model_config = ConfigDict(frozen=True)

    type: str
    scope: str | None
    breaking: bool
    subject: str


class Malformed(BaseModel):
    """A header that did not match the commit grammar."""

    model_config = ConfigDict(frozen=True)

    header: str


def match_header(header: str) -> Parsed | Malformed:
    """Match a single header line against the commit grammar."""
    m = HEADER_PATTERN.match(header)
    if m is None:
        return Malformed(header=header)
    scope = m.group("scope")
    return Parsed(
        type=m.group("type").lower(),
        scope=scope.strip() if scope else None,
        breaking=m.group("breaking") is not None,
        subject=m.group("subject").strip(),
    )


def has_breaking_footer(body: str, markers: Iterable[str]) -> bool:
    """Return True if any body line starts with a breaking-change marker."""
    markers = tuple(markers)
    return any(line.startswith(markers) for line in body.splitlines())


def parse_commit(
    message: str,
    rules: CommitRules,
    *,
    hash: str = "",
    authored_at: datetime | None = None,
    paths: Iterable[str] = (),
    package_names: Iterable[str] = (),
) -> Commit:
    """Parse a commit message into a :class:`Commit`.

    Args:
        message: Full commit message (header, body and footers).
        rules: Commit vocabulary and length limits.
        hash: Commit SHA, if the message comes from history.
        authored_at: Author timestamp, if known.
        paths: Paths the commit touched.
        package_names: Workspace package names, accepted as scopes.

    Returns:
        The parsed commit. Never raises for bad input.
    """
    text = message.strip()
    raw_subject, _, rest = text.partition("\n")
    raw_subject = raw_subject.strip()
    raw_body = rest.strip()
    footer_breaking = has_breaking_footer(raw_body, rules.breaking_markers)

    header = match_header(raw_subject)
    if isinstance(header, Malformed):
        logger.debug("Malformed commit header %r (%s)", raw_subject, hash[:7] or "uncommitted")
        violations = [ViolationKind.MALFORMED_FORMAT]
        if not raw_subject:
            violations.append(ViolationKind.MISSING_SUBJECT)
        return Commit(
            hash=hash,
            authored_at=authored_at,
            raw_subject=raw_subject,
            raw_body=raw_body,
            type=UNKNOWN_TYPE,
            scope=None,
            is_breaking=footer_breaking,
            subject=text,
            paths=tuple(paths),
            violations=tuple(violations),
        )

    violations = []
    commit_type = header.type
    if commit_type not in rules.types:
        violations.append(ViolationKind.INVALID_TYPE)
        commit_type = UNKNOWN_TYPE

    if header.scope is not None:
        allowed_scopes = {*rules.scopes, *package_names}
        if allowed_scopes and header.scope not in allowed_scopes:
            violations.append(ViolationKind.INVALID_SCOPE)

    if not header.subject:
        violations.append(ViolationKind.MISSING_SUBJECT)
    elif len(header.subject) < rules.min_length:
        violations.append(ViolationKind.SUBJECT_TOO_SHORT)
    elif len(header.subject) > rules.max_length:
        violations.append(ViolationKind.SUBJECT_TOO_LONG)

    return Commit(
        hash=hash,
        authored_at=authored_at,
        raw_subject=raw_subject,
        raw_body=raw_body,
        type=commit_type,
        scope=header.scope,
        is_breaking=header.breaking or footer_breaking,
        subject=header.subject,
        paths=tuple(paths),
        violations=tuple(violations),
    )


def parse_commits(
    raw_commits: Iterable[RawCommit],
    rules: CommitRules,
    package_names: Iterable[str] = (),
) -> list[Commit]:
    """Parse commits from history, keeping their order."""
    names = tuple(package_names)
    return [
        parse_commit(
            raw.message,
            rules,
            hash=raw.hash,
            authored_at=raw.authored_at,
            paths=raw.paths,
            package_names=names,
        )
        for raw in raw_commits
    ]


def validate(commit: Commit) -> list[ViolationKind]:
    """Return every convention violation found in ``commit``.

    An empty list means the commit is valid. Callers decide which
    violations are fatal.
    """
    return list(commit.violations)


def format_header(commit: Commit) -> str:
    """Re-serialize a commit's type, scope and subject as a header line."""
    scope = f"({commit.scope})" if commit.scope else ""
    bang = "!" if commit.is_breaking else ""
    return f"{commit.type}{scope}{bang}: {commit.subject}"


def filter_skip_release(commits: Iterable[Commit], markers: Iterable[str]) -> list[Commit]:
    """Drop commits whose message contains a skip-release marker.

    Markers are matched case-insensitively anywhere in the header or body.
    """
    lowered = [m.lower() for m in markers]
    if not lowered:
        return list(commits)
    kept: list[Commit] = []
    for commit in commits:
        text = f"{commit.raw_subject}\n{commit.raw_body}".lower()
        if any(marker in text for marker in lowered):
            logger.debug("Skipping %s: skip-release marker", commit.short_hash)
            continue
        kept.append(commit)
    return kept


def validate_branch(branch: str, prefixes: Iterable[str], default_branch: str = "main") -> bool:
    """Check a branch name against the allowed prefixes.

    The default branch is always accepted, as is any branch when no prefixes
    are configured.
    """
    prefixes = tuple(prefixes)
    if not prefixes or branch == default_branch:
        return True
    return branch.startswith(prefixes)
