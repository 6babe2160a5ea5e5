"""Tests for monobump.tags."""

from __future__ import annotations

import logging

import pytest

from conftest import FakeHistory
from monobump.config import CommitRules
from monobump.errors import TagExistsError
from monobump.graph import PackageGraph, build_graph
from monobump.models import PackageInfo
from monobump.tags import TagLedger, tag_pattern


class TestTagPattern:
    def test_default_format(self) -> None:
        m = tag_pattern("{name}/v{version}").match("core/v1.2.3")
        assert m is not None
        assert m.group("name") == "core"
        assert m.group("version") == "1.2.3"

    def test_custom_format(self) -> None:
        m = tag_pattern("{name}@{version}").match("my-lib@0.4.0")
        assert m is not None
        assert m.group("name") == "my-lib"

    def test_rejects_non_release_tag(self) -> None:
        assert tag_pattern("{name}/v{version}").match("nightly") is None


class TestLatestTag:
    def test_highest_version_wins(self, history: FakeHistory, chain_graph: PackageGraph) -> None:
        first = history.commit("feat(core): a", "packages/core/a.py")
        second = history.commit("fix(core): b", "packages/core/b.py")
        # 1.10.0 created before 1.9.0 (e.g. a backport)
        history.tag("core/v1.10.0", first)
        history.tag("core/v1.9.0", second)

        ledger = TagLedger(history, chain_graph)
        latest = ledger.latest_tag("core")

        assert latest is not None
        assert latest.version == "1.10.0"
        assert latest.commit_hash == first
        assert [t.version for t in ledger.tags_for("core")] == ["1.9.0", "1.10.0"]

    def test_unreleased_package(self, history: FakeHistory, chain_graph: PackageGraph) -> None:
        assert TagLedger(history, chain_graph).latest_tag("api") is None

    def test_ignores_foreign_tags(self, history: FakeHistory, chain_graph: PackageGraph) -> None:
        history.commit("chore: init", "README.md")
        history.tag("v1.0.0")
        history.tag("unknown-pkg/v3.0.0")
        history.tag("core/vnext")

        ledger = TagLedger(history, chain_graph)
        assert all(ledger.tags_for(name) == [] for name in chain_graph.names)

    def test_duplicate_version_keeps_first(
        self,
        history: FakeHistory,
        chain_graph: PackageGraph,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        first = history.commit("feat(core): a", "packages/core/a.py")
        history.tag("core/v1.0.0", first)
        history.commit("fix(core): b", "packages/core/b.py")
        history.tag("core/v1.0.0", history.head())

        with caplog.at_level(logging.WARNING, logger="monobump.tags"):
            ledger = TagLedger(history, chain_graph)

        assert ledger.latest_tag("core").commit_hash == first
        assert "already tagged" in caplog.text

    def test_custom_tag_format(self, history: FakeHistory, chain_graph: PackageGraph) -> None:
        history.commit("feat(api): a", "packages/api/a.py")
        history.tag("api@0.4.0")

        ledger = TagLedger(history, chain_graph, tag_format="{name}@{version}")

        assert ledger.latest_tag("api").name == "api@0.4.0"
        assert ledger.tag_name("api", "0.5.0") == "api@0.5.0"


class TestCommitsSince:
    def test_commits_after_tag(self, history: FakeHistory, chain_graph: PackageGraph) -> None:
        history.commit("feat(core): old", "packages/core/a.py")
        history.tag("core/v1.2.3")
        history.commit("fix(core): new", "packages/core/a.py")
        history.commit("feat(api): elsewhere", "packages/api/x.py")
        history.commit("feat(core): newer", "packages/core/b.py")

        ledger = TagLedger(history, chain_graph)
        commits = ledger.commits_since("core", ledger.latest_tag("core"))

        assert [c.subject for c in commits] == ["new", "newer"]
        assert [c.type for c in commits] == ["fix", "feat"]

    def test_whole_history_without_tag(
        self, history: FakeHistory, chain_graph: PackageGraph
    ) -> None:
        history.commit("feat(api): one", "packages/api/a.py")
        history.commit("fix(api): two", "packages/api/b.py")

        ledger = TagLedger(history, chain_graph)
        assert len(ledger.commits_since("api", None)) == 2

    def test_multi_package_commit_in_each_history(
        self, history: FakeHistory, chain_graph: PackageGraph
    ) -> None:
        sha = history.commit("refactor: shared rename", "packages/core/a.py", "apps/web/b.ts")

        ledger = TagLedger(history, chain_graph)

        assert [c.hash for c in ledger.commits_since("core", None)] == [sha]
        assert [c.hash for c in ledger.commits_since("web", None)] == [sha]
        assert ledger.commits_since("api", None) == []

    def test_nested_package_files_excluded(self, history: FakeHistory) -> None:
        graph = build_graph(
            [
                PackageInfo(name="outer", path="packages/outer"),
                PackageInfo(name="inner", path="packages/outer/inner"),
            ]
        )
        history.commit("fix: inner only", "packages/outer/inner/x.py")
        history.commit("fix: outer", "packages/outer/y.py")

        ledger = TagLedger(history, graph)

        assert [c.subject for c in ledger.commits_since("outer", None)] == ["outer"]
        assert [c.subject for c in ledger.commits_since("inner", None)] == ["inner only"]

    def test_scope_validated_against_package_names(
        self, history: FakeHistory, chain_graph: PackageGraph
    ) -> None:
        history.commit("fix(core): ok", "packages/core/a.py")
        history.commit("fix(nope): bad", "packages/core/b.py")

        ledger = TagLedger(history, chain_graph, CommitRules(scopes=["deps"]))
        commits = ledger.commits_since("core", None)

        assert commits[0].violations == ()
        assert len(commits[1].violations) == 1


class TestCreateTag:
    def test_creates_and_records(self, history: FakeHistory, chain_graph: PackageGraph) -> None:
        sha = history.commit("feat(core): a", "packages/core/a.py")
        ledger = TagLedger(history, chain_graph)

        tag = ledger.create_tag("core", "1.3.0", sha)

        assert tag.name == "core/v1.3.0"
        assert history.tags[-1].name == "core/v1.3.0"
        assert ledger.latest_tag("core") == tag

    def test_existing_version_rejected(
        self, history: FakeHistory, chain_graph: PackageGraph
    ) -> None:
        sha = history.commit("feat(core): a", "packages/core/a.py")
        history.tag("core/v1.3.0", sha)
        ledger = TagLedger(history, chain_graph)

        with pytest.raises(TagExistsError, match="already tagged"):
            ledger.create_tag("core", "1.3.0", sha)
        assert len(history.tags) == 1
