"""Shared test fixtures."""

from __future__ import annotations

import fnmatch
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
import tomlkit

from monobump.config import CommitRules
from monobump.graph import PackageGraph, build_graph
from monobump.models import PackageInfo, RawCommit, RawTag

EPOCH = datetime(2026, 1, 1, tzinfo=timezone.utc)


class FakeHistory:
    """In-memory history source: a linear list of commits plus tags."""

    def __init__(self) -> None:
        self.commits: list[RawCommit] = []
        self.tags: list[RawTag] = []

    def commit(self, message: str, *paths: str) -> str:
        sha = f"{len(self.commits) + 1:040x}"
        self.commits.append(
            RawCommit(
                hash=sha,
                authored_at=EPOCH + timedelta(hours=len(self.commits)),
                message=message,
                paths=paths,
            )
        )
        return sha

    def tag(self, name: str, sha: str | None = None) -> None:
        self.create_tag(name, sha or self.head())

    # HistorySource interface

    def list_commits(
        self, path_filter: str | None = None, since_ref: str | None = None
    ) -> list[RawCommit]:
        commits = self.commits
        if since_ref:
            hashes = [c.hash for c in commits]
            commits = commits[hashes.index(since_ref) + 1 :]
        if path_filter:
            commits = [
                c
                for c in commits
                if any(p == path_filter or p.startswith(path_filter + "/") for p in c.paths)
            ]
        return list(commits)

    def list_tags(self, pattern: str = "*") -> list[RawTag]:
        return [t for t in self.tags if fnmatch.fnmatch(t.name, pattern)]

    def changed_paths(self, base: str, head: str = "HEAD") -> list[str]:
        paths: set[str] = set()
        for c in self.list_commits(since_ref=base):
            paths.update(c.paths)
        return sorted(paths)

    def head(self) -> str:
        return self.commits[-1].hash

    def create_tag(self, name: str, commit_hash: str) -> None:
        self.tags.append(RawTag(name=name, commit_hash=commit_hash, created_at=EPOCH))

    def create_commit(self, message: str, files: list[str]) -> str:
        return self.commit(message, *files)


@pytest.fixture
def history() -> FakeHistory:
    return FakeHistory()


@pytest.fixture
def rules() -> CommitRules:
    return CommitRules()


@pytest.fixture
def chain_graph() -> PackageGraph:
    """core ← api ← web, plus an independent docs package."""
    return build_graph(
        [
            PackageInfo(name="core", path="packages/core", version="1.2.3"),
            PackageInfo(name="api", path="packages/api", version="0.4.0", deps=["core"]),
            PackageInfo(name="web", path="apps/web", version="2.0.0", deps=["api"]),
            PackageInfo(name="docs", path="docs", version="0.1.0"),
        ]
    )


@pytest.fixture
def make_workspace(tmp_path: Path) -> Callable[..., Path]:
    """Create a uv workspace on disk.

    Call with ``{dir_name: (version, [deps...])}``; packages live in
    ``packages/<dir_name>`` and are named after their directory.
    """

    def _make(packages: dict[str, tuple[str, list[str]]], config: str = "") -> Path:
        (tmp_path / "pyproject.toml").write_text(
            '[tool.uv.workspace]\nmembers = ["packages/*"]\n' + config
        )
        for name, (version, deps) in packages.items():
            pkg_dir = tmp_path / "packages" / name
            pkg_dir.mkdir(parents=True)
            dep_list = ", ".join(f'"{d}>=0.1"' for d in deps)
            (pkg_dir / "pyproject.toml").write_text(
                f'[project]\nname = "{name}"\nversion = "{version}"\n'
                f"dependencies = [{dep_list}]\n"
            )
        return tmp_path

    return _make


@pytest.fixture
def tmp_pyproject(tmp_path: Path) -> Path:
    """Create a temporary pyproject.toml file."""
    content = """\
[project]
name = "test-package"
version = "1.0.0"
dependencies = [
    "requests>=2.0",
    "internal-dep>=1.0",
]

[project.optional-dependencies]
dev = ["pytest>=8.0", "another-internal>=0.5"]

[dependency-groups]
test = ["pytest>=8.0", "group-internal>=0.1"]
"""
    pyproject = tmp_path / "pyproject.toml"
    pyproject.write_text(content)
    return pyproject


@pytest.fixture
def sample_toml_doc() -> tomlkit.TOMLDocument:
    """Create a sample TOML document."""
    content = """\
[project]
name = "my-package"
version = "2.0.0"
dependencies = ["click>=8.0", "pydantic>=2.0"]

[project.optional-dependencies]
dev = ["pytest>=8.0"]
docs = ["sphinx>=7.0"]

[dependency-groups]
test = ["hypothesis>=6.0"]

[tool.uv.workspace]
members = ["packages/*", "libs/*"]
"""
    return tomlkit.parse(content)
