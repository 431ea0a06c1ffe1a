from __future__ import annotations

import os
from pathlib import Path

import typer

from glf import __version__
from glf.cli.commands.close import close
from glf.cli.commands.items import feature_app, hotfix_app, release_app
from glf.cli.commands.repo import checkout, init, status
from glf.cli.commands.state import state_app
from glf.cli.commands.support import support_app
from glf.cli.context import CONFIG_ENV_VAR
from glf.core.errors import ErrorCode


app = typer.Typer(
    add_completion=False,
    no_args_is_help=True,
    rich_markup_mode="rich",
    help="git-flow branching across a tree of nested repositories.",
)


# Commands
app.command()(close)
app.command()(checkout)
app.command()(init)
app.command()(status)

# Sub-apps
app.add_typer(feature_app, name="feature")
app.add_typer(release_app, name="release")
app.add_typer(hotfix_app, name="hotfix")
app.add_typer(support_app, name="support")
app.add_typer(state_app, name="state")


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(__version__)
        raise typer.Exit(code=0)


@app.callback()
def _main(  # pyright: ignore[reportUnusedFunction]
    version: bool = typer.Option(
        False,
        "--version",
        is_eager=True,
        callback=_version_callback,
        help="Show version and exit.",
    ),
    config: Path | None = typer.Option(
        None,
        "--config",
        "-c",
        help=f"Root configuration document (default ./.gitflow.yml, env {CONFIG_ENV_VAR})",
    ),
) -> None:
    if config is not None:
        try:
            path = config.expanduser().resolve()
        except OSError as e:
            typer.echo(f"error: invalid --config: {e}", err=True)
            raise typer.Exit(code=int(ErrorCode.USER_ERROR))

        if path.is_dir():
            typer.echo(f"error: --config '{path}' is a directory", err=True)
            raise typer.Exit(code=int(ErrorCode.CONFIG_ERROR))

        os.environ[CONFIG_ENV_VAR] = str(path)


def main() -> None:
    app()
