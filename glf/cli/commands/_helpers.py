"""Shared helpers and options for CLI commands."""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING

import typer

from glf.core.errors import ErrorCode
from glf.core.result import Err, Result
from glf.flow.errors import FlowError, error_code_for
from glf.flow.filters import resolve_filtered_configs
from glf.flow.model import ConfigNode
from glf.flow.uri import Uri, parse_uri
from glf.output.console import Style

if TYPE_CHECKING:
    from glf.cli.context import CLIContext


DRY_RUN_OPTION = typer.Option(
    False, "--dry-run", help="Print git commands without running them or writing files"
)
YES_OPTION = typer.Option(False, "--yes", "-y", help="Answer yes to confirmation prompts")
INCLUDE_OPTION = typer.Option(
    None,
    "--include",
    "-i",
    help="Only nodes matching this URI glob (repeatable, ';' joins conditions)",
)
EXCLUDE_OPTION = typer.Option(
    None,
    "--exclude",
    "-x",
    help="Skip nodes matching this URI glob (repeatable)",
)
ALL_OPTION = typer.Option(
    False, "--all", help="Ignore the included/excluded defaults of the configuration"
)


def exit_on_error[T, E](
    result: Result[T, E],
    ctx: CLIContext,
    error_code: ErrorCode | None = None,
) -> None:
    """Exit with error if result is Err, otherwise return.

    Without an explicit ``error_code``, a ``FlowError`` exits with the code of
    its kind and anything else with ``WORKFLOW_ERROR``.
    """
    if isinstance(result, Err):
        error = result.error
        message: str = getattr(error, "message", str(error))
        hint: str | None = getattr(error, "hint", None)
        ctx.console.error(message)
        if hint:
            ctx.console.print(f"hint: {hint}", Style.DIM)
        if error_code is None:
            error_code = (
                error_code_for(error) if isinstance(error, FlowError) else ErrorCode.WORKFLOW_ERROR
            )
        raise typer.Exit(code=int(error_code))


def parse_target(ctx: CLIContext, text: str) -> Uri:
    result = parse_uri(text)
    exit_on_error(result, ctx)
    assert not isinstance(result, Err)
    return result.value


def select_nodes(
    ctx: CLIContext,
    include: Sequence[str] | None,
    exclude: Sequence[str] | None,
    *,
    ignore_defaults: bool = False,
) -> list[ConfigNode]:
    """Filtered nodes of the loaded tree (configuration defaults unless overridden)."""
    included = list(include) if include else ([] if ignore_defaults else None)
    excluded = list(exclude) if exclude else ([] if ignore_defaults else None)
    result = resolve_filtered_configs(
        ctx.root, open_repo=ctx.open_repo, included=included, excluded=excluded
    )
    exit_on_error(result, ctx)
    assert not isinstance(result, Err)
    nodes = result.value
    if not nodes:
        ctx.console.warning("no node matches the filters")
    return nodes


def exit_on_failures(ctx: CLIContext, failed: int, total: int) -> None:
    if failed:
        ctx.console.error(f"{failed} of {total} node(s) failed")
        raise typer.Exit(code=int(ErrorCode.WORKFLOW_ERROR))
