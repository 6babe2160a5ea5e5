"""Dependency handling utilities.

Provides functions for parsing PEP 508 dependency strings and rewriting a
package's pyproject.toml when a release is prepared: the version is set to
the resolved release version and internal workspace dependencies are pinned
to the versions being released alongside it.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, cast

import tomlkit
from packaging.requirements import Requirement
from packaging.utils import canonicalize_name

from .toml import load_pyproject, save_pyproject


def dep_canonical_name(dep_str: str) -> str:
    """Extract the canonical package name from a PEP 508 dependency string.

    Examples:
        "requests>=2.0" → "requests"
        "My_Package[extra]~=1.0" → "my-package"
    """
    return canonicalize_name(Requirement(dep_str).name)


def pin_dep(dep_str: str, version: str) -> str:
    """Pin a PEP 508 dependency to an exact version.

    Preserves extras and environment markers from the original dependency
    string, but replaces the version specifier with an exact pin.

    Examples:
        pin_dep("core>=1.0", "1.3.0") → "core==1.3.0"
        pin_dep("core[cli]~=1.0", "1.5.0") → "core[cli]==1.5.0"
    """
    req = Requirement(dep_str)
    extras = f"[{','.join(sorted(req.extras))}]" if req.extras else ""
    marker = f"; {req.marker}" if req.marker else ""
    return f"{req.name}{extras}=={version}{marker}"


def rewrite_pyproject(
    pyproject_path: Path,
    new_version: str,
    internal_dep_versions: dict[str, str],
) -> None:
    """Update a package's version and pin its internal dependencies.

    Internal deps are pinned in [project].dependencies,
    [project].optional-dependencies.* and [dependency-groups].*. Uses
    tomlkit to preserve formatting and comments.

    Args:
        pyproject_path: Path to the pyproject.toml file.
        new_version: New version string to set.
        internal_dep_versions: Map of package name → version for internal deps.
    """
    doc = load_pyproject(pyproject_path)
    # Cast needed because tomlkit types are complex unions
    project = cast(dict[str, Any], doc["project"])
    project["version"] = new_version
    _pin_internal(doc, internal_dep_versions)
    save_pyproject(pyproject_path, doc)


def repin_pyproject(pyproject_path: Path, internal_dep_versions: dict[str, str]) -> bool:
    """Pin internal dependencies of a package that is not being released.

    Keeps the package's own version. The file is only written when a pin
    actually changes.

    Returns:
        True if the file was rewritten.
    """
    doc = load_pyproject(pyproject_path)
    before = tomlkit.dumps(doc)
    _pin_internal(doc, internal_dep_versions)
    if tomlkit.dumps(doc) == before:
        return False
    save_pyproject(pyproject_path, doc)
    return True


def _pin_internal(doc: tomlkit.TOMLDocument, versions: dict[str, str]) -> None:
    """Pin internal deps in every dependency table of ``doc``."""
    if not versions:
        return
    project = cast(dict[str, Any], doc["project"])

    deps = project.get("dependencies")
    if isinstance(deps, list):
        _pin_dep_list(deps, versions)

    opt_deps = project.get("optional-dependencies")
    if isinstance(opt_deps, dict):
        for group in opt_deps.values():
            if isinstance(group, list):
                _pin_dep_list(group, versions)

    dep_groups = doc.get("dependency-groups")
    if isinstance(dep_groups, dict):
        for group in dep_groups.values():
            if isinstance(group, list):
                _pin_dep_list(group, versions)


def _pin_dep_list(deps: list, versions: dict[str, str]) -> None:
    """Pin internal dependencies in a list, modifying in place."""
    for i, dep_str in enumerate(deps):
        if not isinstance(dep_str, str):
            continue
        name = dep_canonical_name(dep_str)
        if name in versions:
            deps[i] = pin_dep(dep_str, versions[name])
