"""Tag ledger: per-package release history recorded in git tags.

Every package is versioned independently, so tag names embed the package
name (``{name}/v{version}`` by default, e.g. ``core/v1.2.3``). The ledger
reads all tags once, groups them by package and answers two questions for
the release pipeline:

- which tag is the latest release of a package (highest version, not the
  most recently created tag), and
- which commits touched the package since that release.
"""

from __future__ import annotations

import logging
import re

from .commits import parse_commit
from .config import CommitRules
from .errors import TagExistsError
from .graph import PackageGraph
from .history import HistorySource
from .models import Commit, Tag
from .versions import parse_version

logger = logging.getLogger(__name__)

DEFAULT_TAG_FORMAT = "{name}/v{version}"


def tag_pattern(tag_format: str) -> re.Pattern[str]:
    """Compile a regex that matches tag names produced by ``tag_format``."""
    pattern = re.escape(tag_format)
    pattern = pattern.replace(re.escape("{name}"), r"(?P<name>[^\s]+?)")
    pattern = pattern.replace(re.escape("{version}"), r"(?P<version>\d+\.\d+\.\d+)")
    return re.compile(f"^{pattern}$")


class TagLedger:
    """Release tags of every workspace package.

    Args:
        history: Source of tags and commits.
        graph: Workspace package graph; tags for unknown packages are ignored.
        rules: Commit rules used to parse commits in release ranges.
        tag_format: Tag name template with ``{name}`` and ``{version}``.
    """

    def __init__(
        self,
        history: HistorySource,
        graph: PackageGraph,
        rules: CommitRules | None = None,
        tag_format: str = DEFAULT_TAG_FORMAT,
    ) -> None:
        self.history = history
        self.graph = graph
        self.rules = rules or CommitRules()
        self.tag_format = tag_format
        self._tags: dict[str, dict[str, Tag]] = {name: {} for name in graph.names}
        self._load()

    def _load(self) -> None:
        matcher = tag_pattern(self.tag_format)
        glob = self.tag_format.format(name="*", version="*")
        for raw in self.history.list_tags(glob):
            m = matcher.match(raw.name)
            if m is None:
                logger.debug("Ignoring tag %s: does not match %s", raw.name, self.tag_format)
                continue
            package = m.group("name")
            if package not in self._tags:
                logger.debug("Ignoring tag %s: no package named %s", raw.name, package)
                continue
            version = str(parse_version(m.group("version")))
            if version in self._tags[package]:
                logger.warning(
                    "Ignoring tag %s: %s %s is already tagged as %s",
                    raw.name,
                    package,
                    version,
                    self._tags[package][version].name,
                )
                continue
            self._tags[package][version] = Tag(
                name=raw.name,
                package=package,
                version=version,
                commit_hash=raw.commit_hash,
                created_at=raw.created_at,
            )

    def tag_name(self, package: str, version: str) -> str:
        return self.tag_format.format(name=package, version=version)

    def tags_for(self, package: str) -> list[Tag]:
        """All release tags of ``package``, lowest version first."""
        return sorted(self._tags[package].values(), key=lambda t: parse_version(t.version))

    def latest_tag(self, package: str) -> Tag | None:
        """The highest-versioned release tag of ``package``, or None if unreleased."""
        tags = self.tags_for(package)
        return tags[-1] if tags else None

    def commits_since(self, package: str, from_tag: Tag | None) -> list[Commit]:
        """Commits touching ``package`` after ``from_tag``, oldest first.

        With ``from_tag=None`` the whole history of the package is returned.
        A commit belongs to a package when one of its changed files is owned
        by that package, so a commit spanning several packages shows up in
        each of their histories.
        """
        info = self.graph.packages[package]
        raw_commits = self.history.list_commits(
            path_filter=info.path or None,
            since_ref=from_tag.commit_hash if from_tag else None,
        )

        names = self.graph.names
        seen: set[str] = set()
        commits: list[Commit] = []
        for raw in raw_commits:
            if raw.hash in seen:
                continue
            if not any(self.graph.owner_of(p) == package for p in raw.paths):
                continue
            seen.add(raw.hash)
            commits.append(
                parse_commit(
                    raw.message,
                    self.rules,
                    hash=raw.hash,
                    authored_at=raw.authored_at,
                    paths=raw.paths,
                    package_names=names,
                )
            )
        return commits

    def create_tag(self, package: str, version: str, commit_hash: str) -> Tag:
        """Tag ``commit_hash`` as release ``version`` of ``package``.

        Raises:
            TagExistsError: If ``package`` already has a tag for ``version``.
        """
        existing = self._tags[package].get(version)
        if existing is not None:
            raise TagExistsError(
                f"{package} {version} is already tagged as {existing.name} "
                f"({existing.commit_hash[:7]})"
            )
        tag = Tag(
            name=self.tag_name(package, version),
            package=package,
            version=version,
            commit_hash=commit_hash,
        )
        self.history.create_tag(tag.name, commit_hash)
        self._tags[package][version] = tag
        return tag
