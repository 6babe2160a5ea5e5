"""Workspace discovery and per-package file access.

Reads [tool.uv.workspace].members from the root pyproject.toml to find
package directories, then extracts name, version and internal dependencies
from each package's pyproject.toml. Also provides the changelog file store
used by the release pipeline.
"""

from __future__ import annotations

import glob
from pathlib import Path

from .deps import dep_canonical_name
from .errors import WorkspaceError
from .models import PackageInfo
from .toml import (
    get_all_dependency_strings,
    get_project_name,
    get_project_version,
    get_workspace_member_globs,
    load_pyproject,
)


def discover_packages(root: Path) -> list[PackageInfo]:
    """Scan the workspace and discover all packages.

    Args:
        root: Workspace root containing the root pyproject.toml.

    Returns:
        Packages in directory order, with ``deps`` restricted to workspace
        packages.

    Raises:
        WorkspaceError: If no members are configured or none match.
    """
    root_doc = load_pyproject(root / "pyproject.toml")
    member_globs = get_workspace_member_globs(root_doc)

    member_dirs: list[Path] = []
    for pattern in member_globs:
        for match in sorted(glob.glob(str(root / pattern))):
            p = Path(match)
            if (p / "pyproject.toml").exists() and p not in member_dirs:
                member_dirs.append(p)

    if not member_dirs:
        raise WorkspaceError("No packages found matching workspace members")

    # First pass: collect basic info from each package
    packages: list[PackageInfo] = []
    raw_deps: dict[str, list[str]] = {}
    for d in member_dirs:
        doc = load_pyproject(d / "pyproject.toml")
        name = get_project_name(doc, d.name)
        packages.append(
            PackageInfo(
                name=name,
                path=d.relative_to(root).as_posix(),
                version=get_project_version(doc),
            )
        )
        raw_deps[name] = get_all_dependency_strings(doc)

    # Second pass: keep only deps that are workspace packages
    workspace_names = {p.name for p in packages}
    for info in packages:
        for dep_str in raw_deps[info.name]:
            dep_name = dep_canonical_name(dep_str)
            if dep_name in workspace_names and dep_name not in info.deps:
                info.deps.append(dep_name)

    return packages


def read_changelog(root: Path, package_path: str, filename: str) -> str | None:
    """Return the package's changelog text, or None if it has none yet."""
    path = root / package_path / filename
    return path.read_text() if path.exists() else None


def write_changelog(root: Path, package_path: str, filename: str, content: str) -> Path:
    """Write the package's changelog and return its path."""
    path = root / package_path / filename
    path.write_text(content)
    return path
