"""Git history source.

The release engine never talks to git directly; it goes through a
:class:`HistorySource`, so tests can hand the tag ledger and pipeline a
synthetic history. :class:`GitHistory` is the real implementation, built
on the ``git`` shell helper.
"""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Protocol

from .models import RawCommit, RawTag
from .shell import git

# Separators emitted by the --format strings below (%x1e, %x1f, %x1d)
_RECORD = "\x1e"
_FIELD = "\x1f"
_END_HEADER = "\x1d"


class HistorySource(Protocol):
    """Read and write access to version control history."""

    def list_commits(
        self, path_filter: str | None = None, since_ref: str | None = None
    ) -> list[RawCommit]:
        """Commits reachable from HEAD, oldest first.

        Args:
            path_filter: Only commits touching this path.
            since_ref: Exclude commits reachable from this ref.
        """
        ...

    def list_tags(self, pattern: str = "*") -> list[RawTag]:
        """Tags whose names match the glob ``pattern``."""
        ...

    def changed_paths(self, base: str, head: str = "HEAD") -> list[str]:
        """Files changed between ``base`` and ``head``."""
        ...

    def head(self) -> str:
        """SHA of the current HEAD commit."""
        ...

    def create_tag(self, name: str, commit_hash: str) -> None: ...

    def create_commit(self, message: str, files: list[str]) -> str:
        """Stage ``files``, commit them and return the new commit SHA."""
        ...


def _parse_timestamp(value: str) -> datetime | None:
    value = value.strip()
    return datetime.fromisoformat(value) if value else None


class GitHistory:
    """History source backed by the git repository at ``root``."""

    def __init__(self, root: Path) -> None:
        self.root = root

    def _git(self, *args: str, check: bool = True) -> str:
        return git(*args, cwd=self.root, check=check)

    def list_commits(
        self, path_filter: str | None = None, since_ref: str | None = None
    ) -> list[RawCommit]:
        """Commits from ``git log``, oldest first.

        Raises:
            subprocess.CalledProcessError: If ``since_ref`` cannot be
                resolved (unknown ref, or missing from a shallow clone).
        """
        args = [
            "log",
            "--reverse",
            "--no-renames",
            "--name-only",
            "--format=%x1e%H%x1f%aI%x1f%B%x1d",
        ]
        args.append(f"{since_ref}..HEAD" if since_ref else "HEAD")
        if path_filter:
            args.extend(["--", path_filter])

        # Full history of an unborn HEAD is empty; a bad range is an error
        output = self._git(*args, check=since_ref is not None)
        commits: list[RawCommit] = []
        for record in output.split(_RECORD):
            if not record.strip():
                continue
            header, _, files = record.partition(_END_HEADER)
            sha, authored, message = header.split(_FIELD, 2)
            commits.append(
                RawCommit(
                    hash=sha.strip(),
                    authored_at=_parse_timestamp(authored),
                    message=message.strip(),
                    paths=tuple(line.strip() for line in files.splitlines() if line.strip()),
                )
            )
        return commits

    def list_tags(self, pattern: str = "*") -> list[RawTag]:
        # %(*objectname) is the peeled commit of annotated tags, empty otherwise
        output = self._git(
            "for-each-ref",
            "--sort=creatordate",
            "--format=%(refname:short)%1f%(*objectname)%1f%(objectname)"
            "%1f%(creatordate:iso-strict)",
            "refs/tags" if pattern == "*" else f"refs/tags/{pattern}",
            check=False,
        )
        tags: list[RawTag] = []
        for line in output.splitlines():
            if not line.strip():
                continue
            name, peeled, target, created = line.split(_FIELD, 3)
            tags.append(
                RawTag(
                    name=name,
                    commit_hash=peeled or target,
                    created_at=_parse_timestamp(created),
                )
            )
        return tags

    def changed_paths(self, base: str, head: str = "HEAD") -> list[str]:
        output = self._git("diff", "--name-only", base, head)
        return [line for line in output.splitlines() if line]

    def head(self) -> str:
        return self._git("rev-parse", "HEAD")

    def create_tag(self, name: str, commit_hash: str) -> None:
        self._git("tag", name, commit_hash)

    def create_commit(self, message: str, files: list[str]) -> str:
        if files:
            self._git("add", "--", *files)
        self._git("commit", "-m", message)
        return self.head()
