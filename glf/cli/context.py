from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

import typer

from glf.core.result import Err, Ok
from glf.flow.errors import error_code_for
from glf.flow.model import CONFIG_FILENAME, ConfigNode
from glf.flow.tree import load_tree
from glf.git.repository import Repository
from glf.output.console import ConsoleProtocol, RichConsole, Style

CONFIG_ENV_VAR = "GLF_CONFIG"


def config_path_from_env() -> Path:
    return Path(os.environ.get(CONFIG_ENV_VAR) or CONFIG_FILENAME)


@dataclass(frozen=True, slots=True)
class CLIContext:
    config_path: Path
    root: ConfigNode
    console: ConsoleProtocol
    dry_run: bool = False
    assume_yes: bool = False

    def open_repo(self, node: ConfigNode) -> Repository:
        return Repository(node.path, console=self.console, dry_run=self.dry_run)

    def confirm(self, message: str) -> bool:
        if self.assume_yes:
            return True
        return typer.confirm(message, default=False)

    def confirm_resolved(self, message: str) -> bool:
        # --yes never vouches for a conflict resolution
        if self.assume_yes:
            return False
        return typer.confirm(message, default=False)


def build_context(*, dry_run: bool = False, assume_yes: bool = False) -> CLIContext:
    console = RichConsole()
    config_path = config_path_from_env()

    result = load_tree(config_path, console=console)
    match result:
        case Err(e):
            console.error(e.message)
            if e.hint:
                console.print(f"hint: {e.hint}", Style.DIM)
            raise typer.Exit(code=int(error_code_for(e)))
        case Ok(root):
            pass

    if dry_run:
        console.print("dry run: git changes and file writes are skipped", Style.WARNING)

    return CLIContext(
        config_path=config_path,
        root=root,
        console=console,
        dry_run=dry_run,
        assume_yes=assume_yes,
    )
