"""Dependency graph utilities.

Builds the internal dependency graph of a workspace. The graph rejects
cycles at construction time, keeps a reverse index (who depends on each
package) for affected-set propagation, and provides a topological order so
packages are always reported and released dependencies-first.
"""

from __future__ import annotations

from collections.abc import Iterable
from pathlib import PurePosixPath

from .errors import CyclicDependency, WorkspaceError
from .models import PackageInfo

_WHITE, _GREY, _BLACK = 0, 1, 2


def normalize_path(path: str) -> str:
    """Normalize a workspace-relative path for prefix comparison.

    "./packages/api/" → "packages/api", "." → ""
    """
    normalized = PurePosixPath(path.replace("\\", "/")).as_posix()
    return "" if normalized == "." else normalized.lstrip("/")


class PackageGraph:
    """Acyclic graph of workspace packages and their internal dependencies.

    Build instances with :func:`build_graph`, which validates the input.
    """

    def __init__(self, packages: dict[str, PackageInfo], deps: dict[str, tuple[str, ...]]):
        self.packages = packages
        self._deps = deps
        # Reverse dependency index: package → packages that depend on it
        reverse: dict[str, list[str]] = {name: [] for name in packages}
        for name, targets in deps.items():
            for target in targets:
                reverse[target].append(name)
        self._dependents = {name: tuple(sorted(users)) for name, users in reverse.items()}
        # Longest paths first so the deepest package claims nested files
        self._owners = sorted(
            ((normalize_path(info.path), name) for name, info in packages.items()),
            key=lambda item: (-len(item[0]), item[1]),
        )

    def __contains__(self, name: object) -> bool:
        return name in self.packages

    def __len__(self) -> int:
        return len(self.packages)

    @property
    def names(self) -> list[str]:
        return sorted(self.packages)

    def dependencies(self, name: str) -> tuple[str, ...]:
        """Internal packages ``name`` depends on directly."""
        return self._deps[name]

    def dependents(self, name: str) -> tuple[str, ...]:
        """Internal packages that depend on ``name`` directly."""
        return self._dependents[name]

    def owner_of(self, path: str) -> str | None:
        """Return the package whose directory contains ``path``.

        When package directories nest, the deepest matching package wins.
        Returns None for paths outside every package (e.g. root files).
        """
        path = normalize_path(path)
        for prefix, name in self._owners:
            if not prefix or path == prefix or path.startswith(prefix + "/"):
                return name
        return None

    def topo_order(self, names: Iterable[str] | None = None) -> list[str]:
        """Topologically sort packages, dependencies first.

        Uses Kahn's algorithm. Packages that become ready at the same time
        are taken alphabetically for deterministic output.

        Args:
            names: Restrict the result to these packages. Dependencies
                   outside the subset are treated as already satisfied.

        Example:
            If A depends on B, and B depends on C:
            topo_order() → [C, B, A]
        """
        subset = set(self.packages if names is None else names)
        in_degree = {n: sum(1 for d in self._deps[n] if d in subset) for n in subset}

        queue = sorted(n for n, d in in_degree.items() if d == 0)
        order: list[str] = []
        while queue:
            node = queue.pop(0)
            order.append(node)
            for dependent in self._dependents[node]:
                if dependent not in subset:
                    continue
                in_degree[dependent] -= 1
                if in_degree[dependent] == 0:
                    queue.append(dependent)
            queue.sort()
        return order


def find_cycle(names: list[str], deps: dict[str, tuple[str, ...]]) -> list[str] | None:
    """Find a dependency cycle using iterative three-colour DFS.

    Packages are addressed by index into ``names`` and visited in that
    order, so the reported cycle is the same on every run.

    Returns:
        Package names along the first cycle found, starting at the package
        where the cycle was entered, or None if the graph is acyclic.
    """
    index = {name: i for i, name in enumerate(names)}
    edges = [[index[d] for d in deps[name]] for name in names]
    colour = [_WHITE] * len(names)

    for root in range(len(names)):
        if colour[root] != _WHITE:
            continue
        # Stack of (node, next edge position); the stack is the current path
        stack: list[tuple[int, int]] = [(root, 0)]
        colour[root] = _GREY
        while stack:
            node, pos = stack[-1]
            if pos == len(edges[node]):
                colour[node] = _BLACK
                stack.pop()
                continue
            stack[-1] = (node, pos + 1)
            target = edges[node][pos]
            if colour[target] == _GREY:
                path = [n for n, _ in stack]
                return [names[n] for n in path[path.index(target) :]]
            if colour[target] == _WHITE:
                colour[target] = _GREY
                stack.append((target, 0))
    return None


def build_graph(manifests: Iterable[PackageInfo]) -> PackageGraph:
    """Build a validated package graph from workspace manifests.

    Dependencies on packages outside the workspace are ignored; only
    internal edges are kept.

    Raises:
        WorkspaceError: If two manifests declare the same package name.
        CyclicDependency: If internal dependencies form a cycle.
    """
    packages: dict[str, PackageInfo] = {}
    for info in manifests:
        if info.name in packages:
            raise WorkspaceError(
                f"Duplicate package name {info.name!r} at {packages[info.name].path} "
                f"and {info.path}"
            )
        packages[info.name] = info

    names = sorted(packages)
    deps = {
        name: tuple(sorted({d for d in packages[name].deps if d in packages and d != name}))
        for name in names
    }
    self_dependent = [name for name in names if name in packages[name].deps]
    if self_dependent:
        raise CyclicDependency([self_dependent[0]])

    cycle = find_cycle(names, deps)
    if cycle is not None:
        raise CyclicDependency(cycle)
    return PackageGraph(packages, deps)
