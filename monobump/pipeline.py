"""Release pipeline: discover → affected → resolve → changelog → plan → apply.

This module orchestrates the monobump commands:

- ``affected``: which packages a change set touches, for CI fan-out.
- ``check``: validate a commit message (and branch name) before committing.
- ``prepare``: for every affected package, resolve the next version from
  the commits since its last release tag, write its changelog section,
  set the new version in its pyproject.toml and stage a release plan.
  Unreleased packages depending on a released one get their pins updated.
- ``apply``: commit the staged files and tag each planned release.

``prepare`` may be re-run any number of times before ``apply``; with the
same history and files it rewrites byte-identical content.
"""

from __future__ import annotations

from datetime import date
from pathlib import Path

from pydantic import ValidationError

from .affected import AffectedSet, propagate, resolve_affected
from .changelog import generate
from .commits import filter_skip_release, parse_commit, validate_branch
from .config import MonobumpConfig, load_config
from .deps import repin_pyproject, rewrite_pyproject
from .errors import PlanError, TagExistsError, WorkspaceError
from .graph import PackageGraph, build_graph
from .history import HistorySource
from .models import AffectedReason, Commit, PlannedRelease, ReleasePlan, Tag
from .shell import step
from .tags import TagLedger
from .versions import VersionBump, VersionResolution, bump_version, parse_version, resolve_version
from .workspace import discover_packages, read_changelog, write_changelog

RELEASE_COMMIT_SUBJECT = "chore(release): publish"


def load_graph(root: Path) -> PackageGraph:
    """Discover workspace packages and build their dependency graph."""
    step("Discovering workspace packages")
    graph = build_graph(discover_packages(root))
    for name in graph.topo_order():
        info = graph.packages[name]
        deps = f" → [{', '.join(graph.dependencies(name))}]" if graph.dependencies(name) else ""
        print(f"  {name} {info.version} ({info.path}){deps}")
    return graph


def write_output(output_path: Path, name: str, value: str) -> None:
    """Append a ``name=value`` line to a CI step output file."""
    with open(output_path, "a") as fh:
        fh.write(f"{name}={value}\n")


def find_affected(
    graph: PackageGraph,
    history: HistorySource,
    config: MonobumpConfig,
    *,
    since: str | None = None,
    paths: list[str] | None = None,
) -> AffectedSet:
    """Resolve affected packages from explicit paths and/or a git ref range.

    Args:
        graph: Workspace package graph.
        history: History source used to diff ``since`` against HEAD.
        config: Loaded configuration (for global paths).
        since: Base ref; files changed between it and HEAD are included.
        paths: Extra changed paths, workspace-relative.
    """
    changed = list(paths or [])
    if since:
        changed.extend(history.changed_paths(since))
    return resolve_affected(graph, changed, global_paths=config.global_paths)


def check_message(
    message: str,
    config: MonobumpConfig,
    package_names: list[str],
    branch: str | None = None,
) -> tuple[Commit, list[str]]:
    """Validate a commit message and optional branch name.

    Returns:
        The parsed commit and a list of human-readable problems; an empty
        list means the message is acceptable.
    """
    commit = parse_commit(message, config.commits, package_names=package_names)
    rules = config.commits
    descriptions = {
        "malformed_format": "header must look like 'type(scope): subject'",
        "invalid_type": f"type must be one of: {', '.join(rules.types)}",
        "invalid_scope": "scope must be a package name"
        + (f" or one of: {', '.join(rules.scopes)}" if rules.scopes else ""),
        "missing_subject": "subject is empty",
        "subject_too_short": f"subject is shorter than {rules.min_length} characters",
        "subject_too_long": f"subject is longer than {rules.max_length} characters",
    }
    problems = [f"{v.value}: {descriptions[v.value]}" for v in commit.violations]

    if branch is not None and not validate_branch(
        branch, config.branch_prefixes, config.default_branch
    ):
        problems.append(
            f"invalid_branch: branch must start with one of: {', '.join(config.branch_prefixes)}"
        )
    return commit, problems


def find_last_tags(graph: PackageGraph, ledger: TagLedger) -> dict[str, Tag | None]:
    """Find the latest release tag of each package."""
    step("Finding last release tags")
    last_tags: dict[str, Tag | None] = {}
    for name in graph.topo_order():
        tag = ledger.latest_tag(name)
        last_tags[name] = tag
        print(f"  {name}: {tag.name if tag else '<none>'}")
    return last_tags


def detect_changes(
    graph: PackageGraph,
    ledger: TagLedger,
    last_tags: dict[str, Tag | None],
) -> tuple[AffectedSet, dict[str, list[Commit]]]:
    """Determine which packages changed since their own last release.

    A package is directly changed if it was never released or if any commit
    since its last tag touched it. Its dependents are transitively affected.

    Returns:
        The affected set and the commits since the last release of each
        package.
    """
    step("Detecting changes")
    history: dict[str, list[Commit]] = {}
    seeds: dict[str, AffectedReason] = {}
    for name in graph.topo_order():
        tag = last_tags[name]
        history[name] = ledger.commits_since(name, tag)
        if tag is None:
            seeds[name] = AffectedReason.DIRECTLY_CHANGED
            print(f"  {name}: new package")
        elif history[name]:
            seeds[name] = AffectedReason.DIRECTLY_CHANGED
            print(f"  {name}: {len(history[name])} commits since {tag.name}")

    reasons = propagate(graph, seeds)
    for name in graph.topo_order():
        if reasons.get(name) is AffectedReason.TRANSITIVELY_AFFECTED:
            print(f"  {name}: affected through its dependencies")
    return AffectedSet(reasons=reasons, order=graph.topo_order()), history


def resolve_releases(
    config: MonobumpConfig,
    affected: AffectedSet,
    last_tags: dict[str, Tag | None],
    history: dict[str, list[Commit]],
) -> dict[str, VersionResolution]:
    """Resolve the next version of every affected package.

    Args:
        config: Loaded configuration.
        affected: Packages to consider.
        last_tags: Latest release tag of each package.
        history: Releasable commits of each affected package, oldest first.

    Returns:
        Resolutions of the packages that need a release.
    """
    step("Resolving versions")
    resolved: dict[str, VersionResolution] = {}
    for name in affected.names():
        tag = last_tags[name]
        resolution = resolve_version(tag.version if tag else None, history[name], config.commits)

        if (
            not resolution.needs_release
            and tag is not None
            and config.bump_dependents
            and affected.reasons[name] is AffectedReason.TRANSITIVELY_AFFECTED
        ):
            resolution = VersionResolution(
                bump=VersionBump.PATCH,
                next_version=bump_version(parse_version(tag.version), VersionBump.PATCH),
            )

        if not resolution.needs_release:
            print(f"  {name}: no releasable changes")
            continue
        previous = tag.version if tag else "<unreleased>"
        print(f"  {name}: {previous} → {resolution.next_version} ({resolution.bump})")
        resolved[name] = resolution
    return resolved


def plan_path(root: Path, config: MonobumpConfig) -> Path:
    return root / config.plan_file


def save_plan(path: Path, plan: ReleasePlan) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(plan.model_dump_json(indent=2) + "\n")


def load_plan(path: Path) -> ReleasePlan:
    """Read a staged release plan.

    Raises:
        PlanError: If the plan is missing or cannot be parsed.
    """
    if not path.exists():
        raise PlanError(f"No staged release plan at {path}. Run 'monobump prepare' first.")
    try:
        return ReleasePlan.model_validate_json(path.read_text())
    except ValidationError as e:
        raise PlanError(f"Release plan {path} is corrupt: {e}") from e


def prepare(
    root: Path,
    history: HistorySource,
    *,
    since: str | None = None,
    released: date | None = None,
    dry_run: bool = False,
) -> ReleasePlan:
    """Stage the next release of every affected package.

    Args:
        root: Workspace root.
        history: History source for tags and commits.
        since: Limit candidates to packages affected by changes since this
               ref. By default every package is compared with its own last
               release tag.
        released: Release date written to changelog headings.
        dry_run: Resolve and report without writing anything.

    Returns:
        The staged plan (empty when nothing needs releasing).
    """
    config = load_config(root)
    graph = load_graph(root)
    ledger = TagLedger(history, graph, config.commits, config.tag_format)
    last_tags = find_last_tags(graph, ledger)

    if since:
        step(f"Detecting changes since {since}")
        affected = find_affected(graph, history, config, since=since)
        history_by_package: dict[str, list[Commit]] = {}
        for name in affected.names():
            print(f"  {name}: {affected.reasons[name].value}")
    else:
        affected, history_by_package = detect_changes(graph, ledger, last_tags)

    # Commits carrying a skip-release marker count neither for the bump nor the changelog
    for name in affected.names():
        if name not in history_by_package:
            history_by_package[name] = ledger.commits_since(name, last_tags[name])
        history_by_package[name] = filter_skip_release(
            history_by_package[name], config.commits.skip_release_markers
        )

    resolved = resolve_releases(config, affected, last_tags, history_by_package)
    plan = ReleasePlan()
    if not resolved:
        print("\nNothing to release.")
        return plan

    # Released packages get their new version; the rest keep their manifest version
    all_versions = {name: info.version for name, info in graph.packages.items()}
    all_versions.update({name: str(r.next_version) for name, r in resolved.items()})

    for name in graph.topo_order(resolved):
        info = graph.packages[name]
        tag = last_tags[name]
        version = str(resolved[name].next_version)
        changelog_rel = (Path(info.path) / config.changelog_file).as_posix()
        pyproject_rel = (Path(info.path) / "pyproject.toml").as_posix()
        plan.releases.append(
            PlannedRelease(
                name=name,
                path=info.path,
                previous=tag.version if tag else None,
                version=version,
                bump=str(resolved[name].bump),
                tag=ledger.tag_name(name, version),
                files=[changelog_rel, pyproject_rel],
            )
        )

    # Exact pins in unreleased dependents must follow the new versions
    repins: dict[str, dict[str, str]] = {}
    for name in graph.topo_order():
        if name in resolved:
            continue
        pins = {dep: all_versions[dep] for dep in graph.dependencies(name) if dep in resolved}
        if pins:
            repins[name] = pins
            plan.pinned.append((Path(graph.packages[name].path) / "pyproject.toml").as_posix())

    if dry_run:
        print("\nDry run: no files written.")
        return plan

    step("Writing changelogs and versions")
    for release in plan.releases:
        info = graph.packages[release.name]
        content = generate(
            release.name,
            release.version,
            history_by_package[release.name],
            read_changelog(root, info.path, config.changelog_file),
            released=released,
        )
        write_changelog(root, info.path, config.changelog_file, content)
        rewrite_pyproject(
            root / info.path / "pyproject.toml",
            release.version,
            {dep: all_versions[dep] for dep in graph.dependencies(release.name)},
        )
        print(f"  {release.name}: {', '.join(release.files)}")

    for name, pins in repins.items():
        # Already pinned on a re-run; the manifest stays in the plan regardless
        repin_pyproject(root / graph.packages[name].path / "pyproject.toml", pins)
        print(f"  {name}: pinned {', '.join(f'{dep}=={v}' for dep, v in pins.items())}")

    save_plan(plan_path(root, config), plan)
    print(f"\nStaged {len(plan.releases)} releases. Run 'monobump apply' to commit and tag.")
    return plan


def release_commit_message(plan: ReleasePlan) -> str:
    """Build the release commit message summarizing every version change."""
    summary = "\n".join(
        f"  {r.name}: {r.previous or '<unreleased>'} → {r.version}" for r in plan.releases
    )
    return f"{RELEASE_COMMIT_SUBJECT}\n\n{summary}"


def apply(root: Path, history: HistorySource, *, create_tags: bool = True) -> list[Tag]:
    """Commit the staged release and tag every planned package.

    Tags are checked before committing, so a plan that would re-tag an
    existing release fails without creating a commit.

    Raises:
        PlanError: If there is no staged plan or it is empty.
        TagExistsError: If a planned release is already tagged.
    """
    config = load_config(root)
    path = plan_path(root, config)
    plan = load_plan(path)
    if not plan.releases:
        raise PlanError(f"Release plan {path} has no releases")

    graph = build_graph(discover_packages(root))
    ledger = TagLedger(history, graph, config.commits, config.tag_format)
    for release in plan.releases:
        if release.name not in graph:
            raise WorkspaceError(f"Planned package {release.name} is not in the workspace")
        if create_tags and any(t.version == release.version for t in ledger.tags_for(release.name)):
            raise TagExistsError(f"{release.name} {release.version} is already released")

    step("Committing release")
    sha = history.create_commit(release_commit_message(plan), plan.files)
    print(f"  {sha[:7]} {RELEASE_COMMIT_SUBJECT}")

    tags: list[Tag] = []
    if create_tags:
        step("Creating package tags")
        for release in plan.releases:
            tag = ledger.create_tag(release.name, release.version, sha)
            tags.append(tag)
            print(f"  {tag.name}")

    path.unlink()
    return tags
