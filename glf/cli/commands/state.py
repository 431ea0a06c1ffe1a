from __future__ import annotations

import typer

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

state_app = typer.Typer(
    no_args_is_help=True,
    help="Workflow progress kept in each node's .glf/state.json.",
    add_completion=False,
)


@state_app.command("reset")
def reset(
    include: list[str] | None = INCLUDE_OPTION,
    exclude: list[str] | None = EXCLUDE_OPTION,
    all_nodes: bool = ALL_OPTION,
    dry_run: bool = DRY_RUN_OPTION,
    yes: bool = YES_OPTION,
) -> None:
    """Forget workflow progress, such as an interrupted close."""
    ctx = build_context(dry_run=dry_run, assume_yes=yes)
    if not ctx.confirm("Reset the workflow state? Interrupted closes will start over."):
        raise typer.Exit(code=int(ErrorCode.USER_ERROR))
    nodes = select_nodes(ctx, include, exclude, ignore_defaults=all_nodes)
    reports = WorkflowService(
        open_repo=ctx.open_repo, console=ctx.console, dry_run=dry_run
    ).reset_state(nodes)
    exit_on_failures(ctx, sum(1 for r in reports if r.failed), len(reports))
