"""CLI entry point for monobump."""

from __future__ import annotations

import json
import logging
import subprocess
from datetime import date, datetime
from pathlib import Path

import click

from .affected import service_ports
from .config import load_config
from .errors import MonobumpError, WorkspaceError
from .graph import build_graph
from .history import GitHistory
from .pipeline import apply, check_message, find_affected, load_graph, prepare, write_output
from .workspace import discover_packages


class Context:
    """Per-invocation state shared by subcommands."""

    def __init__(self, root: Path) -> None:
        self.root = root
        self.history = GitHistory(root)


pass_context = click.make_pass_decorator(Context)

# Failures reported as a one-line error instead of a traceback
FAILURES = (MonobumpError, subprocess.CalledProcessError)


def failure(e: Exception) -> click.ClickException:
    """Convert a library or git failure into a CLI error."""
    if isinstance(e, subprocess.CalledProcessError):
        detail = (e.stderr or "").strip()
        command = " ".join(str(part) for part in e.cmd)
        return click.ClickException(f"{command} failed" + (f": {detail}" if detail else ""))
    return click.ClickException(str(e))


@click.group()
@click.version_option()
@click.option(
    "--root",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=".",
    show_default=True,
    help="Workspace root (contains the root pyproject.toml).",
)
@click.option("-v", "--verbose", is_flag=True, help="Show debug logging.")
@click.pass_context
def cli(ctx: click.Context, root: Path, verbose: bool) -> None:
    """Monorepo release hygiene: commit checks, affected packages, versions, changelogs."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    ctx.obj = Context(root.resolve())


@cli.command()
@click.option("--since", metavar="REF", help="Include files changed between REF and HEAD.")
@click.option(
    "--path", "paths", multiple=True, metavar="PATH", help="A changed path (repeatable)."
)
@click.option("--json", "as_json", is_flag=True, help="Print a JSON array.")
@click.option("--ports", is_flag=True, help="Print affected services and their ports as JSON.")
@click.option(
    "--github-output",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Also append affected/ports outputs to this file.",
)
@pass_context
def affected(
    obj: Context,
    since: str | None,
    paths: tuple[str, ...],
    as_json: bool,
    ports: bool,
    github_output: Path | None,
) -> None:
    """List packages affected by changed files, dependencies first."""
    if not since and not paths:
        raise click.UsageError("Pass --since REF and/or at least one --path.")
    if as_json and ports:
        raise click.UsageError("--json and --ports are mutually exclusive.")
    try:
        config = load_config(obj.root)
        graph = build_graph(discover_packages(obj.root))
        result = find_affected(graph, obj.history, config, since=since, paths=list(paths))
    except FAILURES as e:
        raise failure(e) from e

    names = result.names()
    port_map = service_ports(result, config.ports)
    if ports:
        click.echo(json.dumps(port_map))
    elif as_json:
        click.echo(json.dumps(names))
    else:
        for name in names:
            click.echo(name)

    if github_output:
        write_output(github_output, "affected", json.dumps(names))
        write_output(github_output, "ports", json.dumps(port_map))


@cli.command()
@click.argument(
    "message_file", required=False, type=click.Path(exists=True, dir_okay=False, path_type=Path)
)
@click.option("-m", "--message", help="Commit message to check instead of MESSAGE_FILE.")
@click.option("--branch", help="Also check this branch name against the allowed prefixes.")
@pass_context
def check(obj: Context, message_file: Path | None, message: str | None, branch: str | None) -> None:
    """Validate a commit message (use as a commit-msg hook)."""
    if message is None:
        if message_file is None:
            raise click.UsageError("Pass MESSAGE_FILE or --message.")
        # Drop git's comment lines from the hook's message file
        message = "\n".join(
            line for line in message_file.read_text().splitlines() if not line.startswith("#")
        )

    try:
        config = load_config(obj.root)
    except FAILURES as e:
        raise failure(e) from e
    try:
        package_names = [p.name for p in discover_packages(obj.root)]
    except (WorkspaceError, FileNotFoundError):
        # Outside a uv workspace only configured scopes are known
        package_names = []

    commit, problems = check_message(message, config, package_names, branch)
    if problems:
        click.echo(f"✗ {commit.raw_subject or '<empty message>'}", err=True)
        for problem in problems:
            click.echo(f"  - {problem}", err=True)
        raise SystemExit(1)
    click.echo(f"✓ {commit.raw_subject}")


@cli.command(name="prepare")
@click.option("--since", metavar="REF", help="Only consider packages affected since REF.")
@click.option(
    "--date",
    "release_date",
    type=click.DateTime(formats=["%Y-%m-%d"]),
    help="Release date for changelog headings (default: today, UTC).",
)
@click.option("--dry-run", is_flag=True, help="Report what would be released; write nothing.")
@pass_context
def prepare_cmd(
    obj: Context, since: str | None, release_date: datetime | None, dry_run: bool
) -> None:
    """Resolve versions and write changelogs for affected packages."""
    released: date | None = release_date.date() if release_date else None
    try:
        prepare(obj.root, obj.history, since=since, released=released, dry_run=dry_run)
    except FAILURES as e:
        raise failure(e) from e


@cli.command(name="apply")
@click.option("--no-tags", is_flag=True, help="Commit the release without tagging it.")
@pass_context
def apply_cmd(obj: Context, no_tags: bool) -> None:
    """Commit the staged release and create package tags."""
    try:
        tags = apply(obj.root, obj.history, create_tags=not no_tags)
    except FAILURES as e:
        raise failure(e) from e
    click.echo(f"\n✓ Released {len(tags)} packages" if tags else "\n✓ Release committed")


@cli.command()
@pass_context
def graph(obj: Context) -> None:
    """Show workspace packages in dependency order."""
    try:
        load_graph(obj.root)
    except FAILURES as e:
        raise failure(e) from e
