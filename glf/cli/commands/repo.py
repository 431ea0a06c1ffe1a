"""Tree-wide repository commands: init, checkout, status."""

from __future__ import annotations

import typer
from rich.console import Console
from rich.table import Table
from rich.text import Text

from glf.cli.commands._helpers import (
    ALL_OPTION,
    DRY_RUN_OPTION,
    EXCLUDE_OPTION,
    INCLUDE_OPTION,
    exit_on_failures,
    parse_target,
    select_nodes,
)
from glf.cli.context import build_context
from glf.flow.actions import NodeStatus, WorkflowService

_console = Console(highlight=False)


def init(
    include: list[str] | None = INCLUDE_OPTION,
    exclude: list[str] | None = EXCLUDE_OPTION,
    all_nodes: bool = ALL_OPTION,
    dry_run: bool = DRY_RUN_OPTION,
) -> None:
    """Create repositories, remotes and branches described by the configuration."""
    ctx = build_context(dry_run=dry_run)
    nodes = select_nodes(ctx, include, exclude, ignore_defaults=all_nodes)
    reports = WorkflowService(open_repo=ctx.open_repo, console=ctx.console, dry_run=dry_run).init(
        nodes
    )
    exit_on_failures(ctx, sum(1 for r in reports if r.failed), len(reports))


def checkout(
    target: str = typer.Argument(..., help="branch://, feature://, release://, hotfix:// or support://"),
    include: list[str] | None = INCLUDE_OPTION,
    exclude: list[str] | None = EXCLUDE_OPTION,
    all_nodes: bool = ALL_OPTION,
    dry_run: bool = DRY_RUN_OPTION,
) -> None:
    """Check out an address on every selected node that has it."""
    ctx = build_context(dry_run=dry_run)
    uri = parse_target(ctx, target)
    nodes = select_nodes(ctx, include, exclude, ignore_defaults=all_nodes)
    reports = WorkflowService(
        open_repo=ctx.open_repo, console=ctx.console, dry_run=dry_run
    ).checkout(nodes, uri)
    exit_on_failures(ctx, sum(1 for r in reports if r.failed), len(reports))


def _render_artifact(status: NodeStatus) -> Text:
    artifact = status.artifact
    if artifact is None:
        return Text("?", style="dim")
    match artifact.kind:
        case "master" | "develop":
            return Text(artifact.kind, style="green")
        case "unknown":
            return Text("-", style="dim")
        case _:
            return Text(f"{artifact.kind}://{artifact.name}", style="cyan")


def _render_dirty(status: NodeStatus) -> Text:
    if status.dirty is None:
        return Text("")
    return Text("dirty", style="yellow") if status.dirty else Text("clean", style="dim")


def status(
    include: list[str] | None = INCLUDE_OPTION,
    exclude: list[str] | None = EXCLUDE_OPTION,
    all_nodes: bool = ALL_OPTION,
) -> None:
    """Show branch, artifact and working tree state of every selected node."""
    ctx = build_context()
    nodes = select_nodes(ctx, include, exclude, ignore_defaults=all_nodes)
    statuses = WorkflowService(open_repo=ctx.open_repo, console=ctx.console).status(nodes)

    table = Table(show_header=True, header_style="bold")
    table.add_column("node")
    table.add_column("branch", style="blue")
    table.add_column("artifact")
    table.add_column("tree")
    for st in statuses:
        branch = Text(st.branch) if st.branch else Text(st.error or "?", style="red")
        table.add_row(st.node.pathspec, branch, _render_artifact(st), _render_dirty(st))
    _console.print(table)
