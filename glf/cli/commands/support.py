from __future__ import annotations

import typer
from rich.console import Console
from rich.table import Table

from glf.cli.commands._helpers import (
    ALL_OPTION,
    DRY_RUN_OPTION,
    EXCLUDE_OPTION,
    INCLUDE_OPTION,
    YES_OPTION,
    exit_on_failures,
    select_nodes,
)
from glf.cli.context import build_context
from glf.core.errors import ErrorCode
from glf.flow.actions import WorkflowService
from glf.flow.tree import walk
from glf.output.console import Style

_console = Console(highlight=False)

support_app = typer.Typer(
    no_args_is_help=True,
    help="Long-lived support lines with their own master/develop pair.",
    add_completion=False,
)


@support_app.command("create")
def create(
    name: str = typer.Argument(..., help="Support name"),
    from_uri: str | None = typer.Option(
        None, "--from", help="Source address (default branch://master)"
    ),
    master_branch_name: str | None = typer.Option(
        None, "--master-branch-name", help="Default support/<name>/master"
    ),
    develop_branch_name: str | None = typer.Option(
        None, "--develop-branch-name", help="Default support/<name>/develop"
    ),
    upstream: str | None = typer.Option(None, "--upstream", help="Remote the branches track"),
    include: list[str] | None = INCLUDE_OPTION,
    exclude: list[str] | None = EXCLUDE_OPTION,
    all_nodes: bool = ALL_OPTION,
    dry_run: bool = DRY_RUN_OPTION,
) -> None:
    """Create a support and its master/develop branches."""
    ctx = build_context(dry_run=dry_run)
    nodes = select_nodes(ctx, include, exclude, ignore_defaults=all_nodes)
    reports = WorkflowService(
        open_repo=ctx.open_repo, console=ctx.console, dry_run=dry_run
    ).create_support(
        nodes,
        name,
        from_uri=from_uri,
        master_branch_name=master_branch_name,
        develop_branch_name=develop_branch_name,
        upstream=upstream,
    )
    exit_on_failures(ctx, sum(1 for r in reports if r.failed), len(reports))


@support_app.command("delete")
def delete(
    name: str = typer.Argument(..., help="Support name"),
    include: list[str] | None = INCLUDE_OPTION,
    exclude: list[str] | None = EXCLUDE_OPTION,
    all_nodes: bool = ALL_OPTION,
    dry_run: bool = DRY_RUN_OPTION,
    yes: bool = YES_OPTION,
) -> None:
    """Delete a support, its items and all their branches."""
    ctx = build_context(dry_run=dry_run, assume_yes=yes)
    if not ctx.confirm(f"Delete support://{name}, its items and all their branches?"):
        raise typer.Exit(code=int(ErrorCode.USER_ERROR))
    nodes = select_nodes(ctx, include, exclude, ignore_defaults=all_nodes)
    reports = WorkflowService(
        open_repo=ctx.open_repo, console=ctx.console, dry_run=dry_run
    ).delete_support(nodes, name)
    exit_on_failures(ctx, sum(1 for r in reports if r.failed), len(reports))


@support_app.command("list")
def list_cmd() -> None:
    """List every support in the tree."""
    ctx = build_context()
    rows = [(node, support) for node in walk(ctx.root) for support in node.supports]
    if not rows:
        ctx.console.print("no support in the tree", Style.DIM)
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("node")
    table.add_column("name")
    table.add_column("master", style="blue")
    table.add_column("develop", style="blue")
    table.add_column("items", justify="right")
    for node, support in rows:
        table.add_row(
            node.pathspec,
            support.name,
            support.master_branch_name,
            support.develop_branch_name,
            str(sum(1 for _ in support.all_items())),
        )
    _console.print(table)
