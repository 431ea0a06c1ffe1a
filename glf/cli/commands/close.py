"""Close command - finish a feature, release or hotfix across the tree."""

from __future__ import annotations

import typer

from glf.cli.commands._helpers import (
    ALL_OPTION,
    DRY_RUN_OPTION,
    EXCLUDE_OPTION,
    INCLUDE_OPTION,
    YES_OPTION,
    exit_on_failures,
    parse_target,
    select_nodes,
)
from glf.cli.context import CLIContext, build_context
from glf.flow.close import close_nodes
from glf.flow.uri import Uri


def run_close(
    ctx: CLIContext,
    target: Uri | None,
    *,
    include: list[str] | None,
    exclude: list[str] | None,
    all_nodes: bool,
    abort: bool,
    strategy: str | None,
) -> None:
    nodes = select_nodes(ctx, include, exclude, ignore_defaults=all_nodes)
    reports = close_nodes(
        nodes,
        target,
        open_repo=ctx.open_repo,
        console=ctx.console,
        confirm=ctx.confirm,
        confirm_resolved=ctx.confirm_resolved,
        abort=abort,
        strategy=strategy,
        dry_run=ctx.dry_run,
    )
    exit_on_failures(ctx, sum(1 for r in reports if r.failed), len(reports))


def close(
    target: str | None = typer.Argument(
        None,
        help="feature://, release:// or hotfix:// address (default: the checked out item)",
    ),
    abort: bool = typer.Option(
        False, "--abort", help="Skip merging: delete the branch and drop the item"
    ),
    strategy: str | None = typer.Option(
        None, "--strategy", "-X", help="Merge strategy option passed to git merge -X"
    ),
    include: list[str] | None = INCLUDE_OPTION,
    exclude: list[str] | None = EXCLUDE_OPTION,
    all_nodes: bool = ALL_OPTION,
    dry_run: bool = DRY_RUN_OPTION,
    yes: bool = YES_OPTION,
) -> None:
    """Merge an item into develop (and master + tag for releases/hotfixes), then remove it.

    An interrupted close (conflicts, crash) resumes on the next run.
    """
    ctx = build_context(dry_run=dry_run, assume_yes=yes)
    uri = parse_target(ctx, target) if target else None
    run_close(
        ctx,
        uri,
        include=include,
        exclude=exclude,
        all_nodes=all_nodes,
        abort=abort,
        strategy=strategy,
    )
