"""Affected-set resolution.

Given the files changed by a commit range or pull request, determine which
packages CI needs to build and test:

1. Each changed file is claimed by the deepest package whose directory
   contains it; those packages are *directly changed*.
2. Every package that depends, directly or indirectly, on a directly
   changed package is *transitively affected*.

Files outside every package (README, CI config, ...) affect nothing and are
reported as unowned, unless they are configured as global paths, in which
case every package counts as directly changed.
"""

from __future__ import annotations

import json
import logging
from collections import deque
from collections.abc import Iterable, Mapping
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from .graph import PackageGraph, normalize_path
from .models import AffectedReason

logger = logging.getLogger(__name__)


class AffectedSet(BaseModel):
    """Packages affected by a change set, with the reason for each.

    Attributes:
        reasons: Package name → why it is affected.
        unowned: Changed paths that belong to no package, sorted.
        order: Topological order of the whole workspace, used to serialize
               results deterministically.
    """

    model_config = ConfigDict(frozen=True)

    reasons: dict[str, AffectedReason] = Field(default_factory=dict)
    unowned: list[str] = Field(default_factory=list)
    order: list[str] = Field(default_factory=list)

    def __contains__(self, name: object) -> bool:
        return name in self.reasons

    def __len__(self) -> int:
        return len(self.reasons)

    @property
    def directly_changed(self) -> list[str]:
        return [n for n in self.names() if self.reasons[n] is AffectedReason.DIRECTLY_CHANGED]

    @property
    def transitively_affected(self) -> list[str]:
        return [
            n for n in self.names() if self.reasons[n] is AffectedReason.TRANSITIVELY_AFFECTED
        ]

    def names(self, order: Literal["topological", "name"] = "topological") -> list[str]:
        """Affected package names in a stable order.

        Args:
            order: "topological" lists dependencies before dependents (ties
                   broken alphabetically); "name" sorts lexicographically.
        """
        if order == "name":
            return sorted(self.reasons)
        return [n for n in self.order if n in self.reasons]

    def to_json(self, order: Literal["topological", "name"] = "topological") -> str:
        """Serialize as a JSON object of name → reason, in stable order."""
        return json.dumps({n: self.reasons[n].value for n in self.names(order)})


def propagate(
    graph: PackageGraph, seeds: Mapping[str, AffectedReason]
) -> dict[str, AffectedReason]:
    """Mark every dependent of the seed packages as transitively affected.

    Breadth-first traversal of the reverse dependency index, repeated until
    no new package is marked. Seed reasons are kept as given, so running
    this on its own output returns the same mapping.
    """
    marked = dict(seeds)
    queue = deque(sorted(marked))
    while queue:
        node = queue.popleft()
        for dependent in graph.dependents(node):
            if dependent not in marked:
                logger.debug("%s affected (depends on %s)", dependent, node)
                marked[dependent] = AffectedReason.TRANSITIVELY_AFFECTED
                queue.append(dependent)
    return marked


def resolve_affected(
    graph: PackageGraph,
    changed_paths: Iterable[str],
    *,
    global_paths: Iterable[str] = (),
) -> AffectedSet:
    """Resolve the set of packages affected by ``changed_paths``.

    Args:
        graph: Workspace package graph.
        changed_paths: Workspace-relative paths of changed files.
        global_paths: Paths whose change affects every package
                      (e.g. a shared lock file).

    Returns:
        The affected set. Unowned paths are logged as warnings and kept on
        the result; they never make resolution fail.
    """
    global_set = {normalize_path(p) for p in global_paths}
    seeds: dict[str, AffectedReason] = {}
    unowned: set[str] = set()

    for raw_path in changed_paths:
        path = normalize_path(raw_path)
        if path in global_set:
            for name in graph.names:
                seeds[name] = AffectedReason.DIRECTLY_CHANGED
            continue
        owner = graph.owner_of(path)
        if owner is None:
            unowned.add(path)
        else:
            seeds[owner] = AffectedReason.DIRECTLY_CHANGED

    for path in sorted(unowned):
        logger.warning("Changed path %s belongs to no package; it affects nothing", path)

    return AffectedSet(
        reasons=propagate(graph, seeds),
        unowned=sorted(unowned),
        order=graph.topo_order(),
    )


def service_ports(affected: AffectedSet, ports: Mapping[str, list[int]]) -> dict[str, list[int]]:
    """Map affected packages to the port numbers they expose.

    Packages without configured ports are left out. Keys follow the
    affected set's topological order.
    """
    return {name: sorted(ports[name]) for name in affected.names() if name in ports}
