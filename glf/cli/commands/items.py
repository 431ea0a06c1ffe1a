"""feature / release / hotfix sub-commands.

The three kinds share one command set, built per kind by ``item_app``.
"""

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
from glf.cli.commands.close import run_close
from glf.cli.context import build_context
from glf.core.errors import ErrorCode
from glf.flow.actions import WorkflowService, list_items
from glf.flow.model import Hotfix, ItemKind, Release
from glf.flow.uri import Uri
from glf.output.console import Style

_console = Console(highlight=False)


def item_app(kind: ItemKind) -> typer.Typer:
    app = typer.Typer(
        no_args_is_help=True,
        help=f"Create, close and delete {kind} branches.",
        add_completion=False,
    )

    @app.command("create")
    def create(
        name: str = typer.Argument(..., help=f"{kind.capitalize()} name"),
        from_uri: str | None = typer.Option(
            None,
            "--from",
            help="Source address (default branch://develop, support://<name> for a support)",
        ),
        branch_name: str | None = typer.Option(
            None, "--branch-name", help=f"Branch name (default {kind}/<name>)"
        ),
        checkout: bool = typer.Option(False, "--checkout", help="Check out the new branch"),
        upstream: str | None = typer.Option(None, "--upstream", help="Remote the branch tracks"),
        intermediate: bool = typer.Option(
            False, "--intermediate", help="Mark as intermediate (release/hotfix only)"
        ),
        include: list[str] | None = INCLUDE_OPTION,
        exclude: list[str] | None = EXCLUDE_OPTION,
        all_nodes: bool = ALL_OPTION,
        dry_run: bool = DRY_RUN_OPTION,
    ) -> None:
        """Create the item and its branch on every selected node."""
        ctx = build_context(dry_run=dry_run)
        nodes = select_nodes(ctx, include, exclude, ignore_defaults=all_nodes)
        reports = WorkflowService(
            open_repo=ctx.open_repo, console=ctx.console, dry_run=dry_run
        ).create_item(
            nodes,
            kind,
            name,
            from_uri=from_uri,
            branch_name=branch_name,
            checkout=checkout,
            upstream=upstream,
            intermediate=intermediate,
        )
        exit_on_failures(ctx, sum(1 for r in reports if r.failed), len(reports))

    @app.command("delete")
    def delete(
        name: str = typer.Argument(..., help="Name, or <support>/<name>"),
        include: list[str] | None = INCLUDE_OPTION,
        exclude: list[str] | None = EXCLUDE_OPTION,
        all_nodes: bool = ALL_OPTION,
        dry_run: bool = DRY_RUN_OPTION,
        yes: bool = YES_OPTION,
    ) -> None:
        """Delete the branch and drop the item without merging."""
        ctx = build_context(dry_run=dry_run, assume_yes=yes)
        if not ctx.confirm(f"Delete {kind}://{name} and its branch?"):
            raise typer.Exit(code=int(ErrorCode.USER_ERROR))
        nodes = select_nodes(ctx, include, exclude, ignore_defaults=all_nodes)
        reports = WorkflowService(
            open_repo=ctx.open_repo, console=ctx.console, dry_run=dry_run
        ).delete_item(nodes, kind, name)
        exit_on_failures(ctx, sum(1 for r in reports if r.failed), len(reports))

    @app.command("close")
    def close(
        name: str | None = typer.Argument(
            None, help="Name, or <support>/<name> (default: the checked out item)"
        ),
        abort: bool = typer.Option(False, "--abort", help="Skip merging, only remove"),
        strategy: str | None = typer.Option(None, "--strategy", "-X", help="git merge -X option"),
        include: list[str] | None = INCLUDE_OPTION,
        exclude: list[str] | None = EXCLUDE_OPTION,
        all_nodes: bool = ALL_OPTION,
        dry_run: bool = DRY_RUN_OPTION,
        yes: bool = YES_OPTION,
    ) -> None:
        """Close the item (same as ``glf close <kind>://<name>``)."""
        ctx = build_context(dry_run=dry_run, assume_yes=yes)
        run_close(
            ctx,
            Uri(type=kind, value=name) if name else None,
            include=include,
            exclude=exclude,
            all_nodes=all_nodes,
            abort=abort,
            strategy=strategy,
        )

    @app.command("list")
    def list_cmd() -> None:
        """List every item of this kind in the tree."""
        ctx = build_context()
        found = list_items(ctx.root, kind)
        if not found:
            ctx.console.print(f"no {kind} in the tree", Style.DIM)
            return

        table = Table(show_header=True, header_style="bold")
        table.add_column("node")
        table.add_column("name")
        table.add_column("branch", style="blue")
        table.add_column("support")
        table.add_column("source", style="dim")
        if kind != "feature":
            table.add_column("intermediate")
        for node, item in found:
            row = [
                node.pathspec,
                item.name,
                item.branch_name,
                item.support or "",
                (item.source_sha or "")[:8],
            ]
            if isinstance(item, (Release, Hotfix)):
                row.append("yes" if item.intermediate else "")
            table.add_row(*row)
        _console.print(table)

    return app


feature_app = item_app("feature")
release_app = item_app("release")
hotfix_app = item_app("hotfix")
