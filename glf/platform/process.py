"""Blocking subprocess calls that return a Result instead of raising.

Only the Git Gateway shells out. It passes a handful of environment
overrides (merged onto the current environment) and a timeout, so that a
git waiting on a credential prompt or a stuck remote fails instead of
hanging the whole tree walk.

Usage:
    match run(["git", "rev-parse", "--abbrev-ref", "HEAD"], cwd=repo_path, timeout=30):
        case Ok(stdout):
            branch = stdout.strip()
        case Err(error) if error.timed_out:
            ...
        case Err(error):
            print(error.output)
"""

from __future__ import annotations

import os
import subprocess
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from glf.core.result import Err, Ok, Result

__all__ = ["ProcessError", "run"]


@dataclass(frozen=True, slots=True)
class ProcessError:
    """A command that could not be started, timed out or exited nonzero.

    Attributes:
        command: argv as executed
        returncode: Exit code, -1 when the process never ran or was killed
        stdout: Captured standard output
        stderr: Captured standard error, or the reason it never ran
        timed_out: Killed after exceeding its timeout
    """

    command: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str
    timed_out: bool = False

    @property
    def output(self) -> str:
        """stderr, falling back to stdout (git reports some failures on stdout)."""
        return self.stderr.strip() or self.stdout.strip()

    def __str__(self) -> str:
        shown = " ".join(self.command[:3])
        if len(self.command) > 3:
            shown += " ..."
        return f"{shown} failed (exit {self.returncode})"


def run(
    cmd: list[str],
    cwd: Path,
    env: Mapping[str, str] | None = None,
    *,
    timeout: float | None = None,
) -> Result[str, ProcessError]:
    """Run ``cmd`` in ``cwd`` and return its stdout.

    ``env`` entries override the current environment rather than replace it.
    """
    merged = {**os.environ, **env} if env else None
    try:
        proc = subprocess.run(
            cmd,
            cwd=str(cwd),
            env=merged,
            capture_output=True,
            text=True,
            timeout=timeout,
            check=False,
        )
    except subprocess.TimeoutExpired as e:
        partial = e.stdout if isinstance(e.stdout, str) else ""
        return Err(
            ProcessError(
                command=tuple(cmd),
                returncode=-1,
                stdout=partial,
                stderr=f"timed out after {timeout:g}s",
                timed_out=True,
            )
        )
    except OSError as e:
        return Err(ProcessError(command=tuple(cmd), returncode=-1, stdout="", stderr=str(e)))

    if proc.returncode != 0:
        return Err(
            ProcessError(
                command=tuple(cmd),
                returncode=proc.returncode,
                stdout=proc.stdout,
                stderr=proc.stderr,
            )
        )
    return Ok(proc.stdout)
