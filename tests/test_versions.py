"""Tests for monobump.versions."""

from __future__ import annotations

import pytest
import semver
from pydantic import ValidationError

from monobump.commits import parse_commit
from monobump.config import CommitRules
from monobump.models import Commit
from monobump.versions import (
    VersionBump,
    bump_version,
    commit_bump,
    parse_version,
    resolve_version,
)


def commits(rules: CommitRules, *messages: str) -> list[Commit]:
    return [parse_commit(m, rules) for m in messages]


class TestParseVersion:
    def test_full_semver(self) -> None:
        v = parse_version("1.2.3")
        assert (v.major, v.minor, v.patch) == (1, 2, 3)

    def test_two_part_version(self) -> None:
        assert parse_version("1.2") == semver.Version(1, 2, 0)

    def test_single_part_version(self) -> None:
        assert parse_version("5") == semver.Version(5, 0, 0)


class TestVersionBump:
    def test_ordering(self) -> None:
        assert VersionBump.NONE < VersionBump.PATCH < VersionBump.MINOR < VersionBump.MAJOR

    def test_str(self) -> None:
        assert str(VersionBump.MINOR) == "minor"


class TestBumpVersion:
    @pytest.mark.parametrize(
        ("version", "bump", "expected"),
        [
            ("1.2.3", VersionBump.PATCH, "1.2.4"),
            ("1.2.3", VersionBump.MINOR, "1.3.0"),
            ("1.2.3", VersionBump.MAJOR, "2.0.0"),
            ("1.2.3", VersionBump.NONE, "1.2.3"),
            ("0.4.1", VersionBump.PATCH, "0.4.2"),
            ("0.4.1", VersionBump.MINOR, "0.5.0"),
        ],
    )
    def test_bump(self, version: str, bump: VersionBump, expected: str) -> None:
        assert str(bump_version(parse_version(version), bump)) == expected

    def test_major_before_1_0_bumps_minor(self) -> None:
        assert str(bump_version(parse_version("0.4.1"), VersionBump.MAJOR)) == "0.5.0"


class TestCommitBump:
    @pytest.mark.parametrize(
        ("message", "expected"),
        [
            ("feat: x", VersionBump.MINOR),
            ("fix: x", VersionBump.PATCH),
            ("perf: x", VersionBump.PATCH),
            ("docs: x", VersionBump.NONE),
            ("random words", VersionBump.NONE),
            ("docs!: x", VersionBump.MAJOR),
            ("chore: x\n\nBREAKING CHANGE: y", VersionBump.MAJOR),
        ],
    )
    def test_rules(self, rules: CommitRules, message: str, expected: VersionBump) -> None:
        assert commit_bump(parse_commit(message, rules), rules) == expected

    def test_custom_minor_types(self) -> None:
        rules = CommitRules(types_minor=["feat", "refactor"])
        assert commit_bump(parse_commit("refactor: x", rules), rules) == VersionBump.MINOR

    def test_invalid_scope_counts_by_default(self) -> None:
        rules = CommitRules(scopes=["deps"])
        assert commit_bump(parse_commit("feat(nope): x", rules), rules) == VersionBump.MINOR

    def test_invalid_scope_excluded_when_configured(self) -> None:
        rules = CommitRules(scopes=["deps"], count_invalid_scopes=False)
        assert commit_bump(parse_commit("feat(nope): x", rules), rules) == VersionBump.NONE


class TestResolveVersion:
    def test_fix_and_feat_give_minor(self, rules: CommitRules) -> None:
        result = resolve_version("1.2.3", commits(rules, "fix: x", "feat: y"), rules)

        assert result.bump == VersionBump.MINOR
        assert str(result.next_version) == "1.3.0"
        assert result.needs_release

    def test_breaking_gives_major(self, rules: CommitRules) -> None:
        result = resolve_version(
            semver.Version(1, 2, 3), commits(rules, "fix: x", "feat!: y"), rules
        )
        assert str(result.next_version) == "2.0.0"

    def test_breaking_before_1_0_bumps_minor(self, rules: CommitRules) -> None:
        result = resolve_version("0.3.2", commits(rules, "feat!: y"), rules)

        assert result.bump == VersionBump.MAJOR
        assert str(result.next_version) == "0.4.0"

    def test_first_release_is_0_1_0(self, rules: CommitRules) -> None:
        result = resolve_version(None, commits(rules, "feat: x"), rules)
        assert str(result.next_version) == "0.1.0"

    def test_first_release_ignores_fix_arithmetic(self, rules: CommitRules) -> None:
        result = resolve_version(None, commits(rules, "fix: x", "fix: y"), rules)
        assert str(result.next_version) == "0.1.0"

    def test_first_release_without_commits(self, rules: CommitRules) -> None:
        result = resolve_version(None, [], rules)

        assert result.bump == VersionBump.NONE
        assert str(result.next_version) == "0.1.0"

    def test_first_release_breaking_is_1_0_0(self, rules: CommitRules) -> None:
        result = resolve_version(None, commits(rules, "feat: x", "fix!: y"), rules)
        assert str(result.next_version) == "1.0.0"

    def test_no_qualifying_commits_means_no_release(self, rules: CommitRules) -> None:
        result = resolve_version("1.2.3", commits(rules, "docs: x", "chore: y", "oops"), rules)

        assert result.bump == VersionBump.NONE
        assert result.next_version is None
        assert not result.needs_release

    def test_no_commits_means_no_release(self) -> None:
        assert not resolve_version("1.0.0", []).needs_release

    @pytest.mark.parametrize(
        "messages",
        [(), ("docs: x",), ("fix: x",), ("feat: x", "fix: y"), ("feat!: x",)],
    )
    def test_adding_breaking_commit_never_lowers_bump(
        self, rules: CommitRules, messages: tuple[str, ...]
    ) -> None:
        for current in ("0.2.0", "1.2.3", None):
            before = resolve_version(current, commits(rules, *messages), rules)
            after = resolve_version(
                current, commits(rules, *messages, "refactor!: drop api"), rules
            )
            assert after.bump >= before.bump
            assert after.bump == VersionBump.MAJOR
            if before.next_version is not None:
                assert after.next_version >= before.next_version

    def test_resolution_is_frozen(self, rules: CommitRules) -> None:
        result = resolve_version("1.0.0", commits(rules, "fix: x"), rules)

        assert result.next_version == semver.Version(1, 0, 1)
        with pytest.raises(ValidationError):
            result.bump = VersionBump.MAJOR  # type: ignore[misc]
