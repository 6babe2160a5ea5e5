"""Configuration for monobump.

Settings live in the ``[tool.monobump]`` table of the workspace root
pyproject.toml. The table is read with tomlkit and validated with Pydantic
models; every model is frozen so a loaded configuration cannot change
during an invocation.

Example::

    [tool.monobump]
    branch_prefixes = ["feat/", "fix/"]

    [tool.monobump.commits]
    scopes = ["ci", "deps"]
    max_length = 72

    [tool.monobump.ports]
    api = [8000]
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from .errors import ConfigError
from .toml import load_pyproject

DEFAULT_TYPES = [
    "feat",
    "fix",
    "perf",
    "docs",
    "style",
    "refactor",
    "test",
    "build",
    "ci",
    "chore",
    "revert",
]


class CommitRules(BaseModel):
    """Commit message vocabulary and bump rules.

    Attributes:
        types: Allowed commit types.
        scopes: Allowed scopes. Package names are always accepted as well;
                an empty list (with no packages known) accepts any scope.
        types_minor: Types that trigger a minor bump.
        types_patch: Types that trigger a patch bump.
        breaking_markers: Footer prefixes that mark a breaking change.
        min_length: Minimum subject length.
        max_length: Maximum subject length.
        count_invalid_scopes: Whether commits with an invalid scope still
                              count toward the version bump.
        skip_release_markers: Commits containing any of these markers
                              (case-insensitive) are left out of releases.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    types: list[str] = Field(default_factory=lambda: list(DEFAULT_TYPES))
    scopes: list[str] = Field(default_factory=list)
    types_minor: list[str] = Field(default_factory=lambda: ["feat"])
    types_patch: list[str] = Field(default_factory=lambda: ["fix", "perf"])
    breaking_markers: list[str] = Field(
        default_factory=lambda: ["BREAKING CHANGE:", "BREAKING-CHANGE:"]
    )
    min_length: int = Field(default=1, ge=0)
    max_length: int = Field(default=72, gt=0)
    count_invalid_scopes: bool = True
    skip_release_markers: list[str] = Field(
        default_factory=lambda: ["[skip release]", "[release skip]"]
    )

    @model_validator(mode="after")
    def _check_vocabulary(self) -> CommitRules:
        if not self.types:
            raise ValueError("types must not be empty")
        if self.min_length > self.max_length:
            raise ValueError("min_length must not exceed max_length")
        unknown = [t for t in [*self.types_minor, *self.types_patch] if t not in self.types]
        if unknown:
            raise ValueError(f"bump types not listed in types: {', '.join(unknown)}")
        return self


class MonobumpConfig(BaseModel):
    """Top-level ``[tool.monobump]`` settings.

    Attributes:
        default_branch: Branch exempt from branch-prefix checks.
        branch_prefixes: Allowed branch name prefixes. Empty disables the check.
        changelog_file: Changelog file name inside each package directory.
        tag_format: Release tag template with ``{name}`` and ``{version}``.
        global_paths: Root-level files whose change affects every package.
        bump_dependents: Give transitively affected packages without
                         releasable commits of their own a patch release.
        plan_file: Where ``prepare`` stages the release plan for ``apply``.
        ports: Exposed port numbers per package, reported for affected services.
        commits: Commit vocabulary and bump rules.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    default_branch: str = "main"
    branch_prefixes: list[str] = Field(default_factory=list)
    changelog_file: str = "CHANGELOG.md"
    tag_format: str = "{name}/v{version}"
    global_paths: list[str] = Field(default_factory=list)
    bump_dependents: bool = False
    plan_file: str = ".monobump/plan.json"
    ports: dict[str, list[int]] = Field(default_factory=dict)
    commits: CommitRules = Field(default_factory=CommitRules)

    @model_validator(mode="after")
    def _check_tag_format(self) -> MonobumpConfig:
        if "{name}" not in self.tag_format or "{version}" not in self.tag_format:
            raise ValueError("tag_format must contain {name} and {version}")
        return self


def extract_config_table(doc: Any) -> dict[str, Any]:
    """Return ``[tool.monobump]`` from a parsed pyproject.toml as plain data."""
    table = doc.get("tool", {}).get("monobump", {})
    # tomlkit containers carry formatting; hand pydantic plain dicts/lists
    if hasattr(table, "unwrap"):
        table = table.unwrap()
    return dict(table)


def load_config(root: Path) -> MonobumpConfig:
    """Load and validate configuration from ``root/pyproject.toml``.

    A missing pyproject.toml or a missing ``[tool.monobump]`` table yields
    the defaults.

    Raises:
        ConfigError: If the table contains unknown keys or invalid values.
            The error names the first offending field as a dotted path.
    """
    pyproject = root / "pyproject.toml"
    if not pyproject.exists():
        return MonobumpConfig()

    data = extract_config_table(load_pyproject(pyproject))
    try:
        return MonobumpConfig.model_validate(data)
    except ValidationError as e:
        error = e.errors()[0]
        location = ".".join(str(part) for part in error["loc"])
        field = "tool.monobump" + (f".{location}" if location else "")
        raise ConfigError(field, error["msg"]) from e
