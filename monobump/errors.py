"""Exception hierarchy for monobump.

Only failures that make a release impossible are raised. Malformed commit
messages, untagged packages and packages without releasable commits are
folded into the data model instead (see ``commits`` and ``versions``).
"""

from __future__ import annotations


class MonobumpError(Exception):
    """Base class for all fatal monobump errors."""


class CyclicDependency(MonobumpError):
    """Internal dependencies form a cycle.

    Attributes:
        cycle: Package names along the cycle, in dependency order. The first
               package depends on the second, and so on; the last depends
               on the first.
    """

    def __init__(self, cycle: list[str]) -> None:
        self.cycle = cycle
        super().__init__(f"Dependency cycle detected: {' → '.join([*cycle, cycle[0]])}")


class WorkspaceError(MonobumpError):
    """The workspace layout cannot be turned into a package graph."""


class ConfigError(MonobumpError):
    """Configuration is missing required structure or has invalid values."""

    def __init__(self, field: str, message: str) -> None:
        self.field = field
        super().__init__(f"Invalid configuration at {field}: {message}")


class TagExistsError(MonobumpError):
    """A release tag for this package and version already exists."""


class PlanError(MonobumpError):
    """The staged release plan is missing or unreadable."""
