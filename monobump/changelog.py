"""Changelog generation from parsed commits.

Each release gets one Markdown section::

    ## [1.3.0] - 2026-10-17

    ### Features

    - **cli:** add --json output (1a2b3c4)

    ### Fixes

    - handle empty workspaces (5d6e7f8)

Commits are grouped in a fixed order and keep their chronological order
within a group. Breaking commits are listed only under "Breaking Changes",
whatever their type.

Merging is idempotent: if the changelog already has a section for the
version being generated, that section is replaced in place, so re-running
``prepare`` never duplicates entries.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from datetime import date, datetime, timezone

from .models import Commit

BREAKING_GROUP = "Breaking Changes"
OTHER_GROUP = "Other"

# Section titles by commit type, in output order
TYPE_GROUPS = {
    "feat": "Features",
    "fix": "Fixes",
    "perf": "Performance",
}
GROUP_ORDER = [BREAKING_GROUP, *TYPE_GROUPS.values(), OTHER_GROUP]


def group_commits(commits: Iterable[Commit]) -> dict[str, list[Commit]]:
    """Group commits under their changelog section titles.

    Returns only non-empty groups, in display order.
    """
    groups: dict[str, list[Commit]] = {title: [] for title in GROUP_ORDER}
    for commit in commits:
        if commit.is_breaking:
            groups[BREAKING_GROUP].append(commit)
        else:
            groups[TYPE_GROUPS.get(commit.type, OTHER_GROUP)].append(commit)
    return {title: items for title, items in groups.items() if items}


def format_entry(commit: Commit) -> str:
    """Format one commit as a changelog bullet."""
    scope = f"**{commit.scope}:** " if commit.scope else ""
    sha = f" ({commit.short_hash})" if commit.hash else ""
    # Unknown commits keep their whole message as subject; only the first line fits a bullet
    subject = commit.subject.splitlines()[0] if commit.subject else commit.raw_subject
    return f"- {scope}{subject}{sha}"


def render_section(
    package: str,
    version: str,
    commits: Iterable[Commit],
    *,
    released: date | None = None,
) -> str:
    """Render the changelog section for one release.

    Args:
        package: Package name (used when there is nothing to list).
        version: Version being released.
        commits: Commits in the release, oldest first.
        released: Release date. Defaults to today (UTC).

    Returns:
        The section text, ending with a single newline.
    """
    released = released or datetime.now(timezone.utc).date()
    lines = [f"## [{version}] - {released.isoformat()}", ""]

    groups = group_commits(commits)
    if not groups:
        lines.extend([f"- Release {package} {version}.", ""])
    for title, items in groups.items():
        lines.extend([f"### {title}", ""])
        lines.extend(format_entry(c) for c in items)
        lines.append("")

    return "\n".join(lines).rstrip("\n") + "\n"


def merge_section(section: str, version: str, existing: str | None) -> str:
    """Merge a rendered section into existing changelog content.

    - No existing content: the section alone.
    - A section for ``version`` already exists: it is replaced in place,
      up to the next ``## `` heading or the link reference definitions
      (``[1.0.0]: https://...``) that close the file.
    - Otherwise the section goes above all existing sections, below a
      leading ``# `` title line if there is one.
    """
    if not existing or not existing.strip():
        return section

    current = re.search(
        rf"^## \[{re.escape(version)}\].*?(?=^## |^\[[^\]\n]+\]:|\Z)",
        existing,
        flags=re.MULTILINE | re.DOTALL,
    )
    if current is not None:
        following = existing[current.end() :]
        replacement = section + "\n" if following else section
        return existing[: current.start()] + replacement + following

    if existing.startswith("# "):
        title, _, rest = existing.partition("\n")
        rest = rest.lstrip("\n")
        return f"{title}\n\n{section}" + (f"\n{rest}" if rest else "")
    return section + "\n" + existing.lstrip("\n")


def generate(
    package: str,
    version: str,
    commits: Iterable[Commit],
    existing: str | None,
    *,
    released: date | None = None,
) -> str:
    """Generate the full changelog text for ``package`` after releasing ``version``.

    Regenerating with the same inputs, including feeding the output back in
    as ``existing``, yields byte-identical text.
    """
    section = render_section(package, str(version), commits, released=released)
    return merge_section(section, str(version), existing)
