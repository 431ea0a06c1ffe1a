from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from glf.core.errors import ErrorCode
from glf.git.repository import GitError

__all__ = ["FlowError", "FlowErrorKind", "error_code_for", "from_git_error"]

FlowErrorKind = Literal[
    "validation",
    "not_found",
    "invalid_uri",
    "dirty_working_tree",
    "merge_aborted",
    "close_aborted",
    "type_mismatch",
    "git_failed",
    "io_failed",
]


@dataclass(frozen=True, slots=True)
class FlowError:
    """Error from the config tree, the resolver or a workflow run."""

    kind: FlowErrorKind
    message: str
    hint: str | None = None

    def __str__(self) -> str:
        return self.message


def from_git_error(error: GitError, *, hint: str | None = None) -> FlowError:
    return FlowError(kind="git_failed", message=str(error), hint=hint)


_EXIT_CODES: dict[FlowErrorKind, ErrorCode] = {
    "validation": ErrorCode.CONFIG_ERROR,
    "not_found": ErrorCode.USER_ERROR,
    "invalid_uri": ErrorCode.USER_ERROR,
    "dirty_working_tree": ErrorCode.WORKFLOW_ERROR,
    "merge_aborted": ErrorCode.USER_ERROR,
    "close_aborted": ErrorCode.USER_ERROR,
    "type_mismatch": ErrorCode.CONFIG_ERROR,
    "git_failed": ErrorCode.WORKFLOW_ERROR,
    "io_failed": ErrorCode.IO_ERROR,
}


def error_code_for(error: FlowError) -> ErrorCode:
    """Map an error kind to the process exit code the CLI reports."""
    return _EXIT_CODES[error.kind]
