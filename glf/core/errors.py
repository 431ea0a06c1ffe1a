"""Error codes for CLI exit status.

Every glf command exits with one of these codes. The numeric values are
part of the command line contract and should remain stable:
- 0: Success
- 1: User error (bad URI, unknown element, declined prompt)
- 2: Config error (invalid or mismatched configuration document)
- 3: Workflow error (git failure, dirty tree, merge not completed)
- 5: I/O error (document or state file unreadable / unwritable)
"""

from enum import IntEnum

__all__ = ["ErrorCode"]


class ErrorCode(IntEnum):
    """Exit codes for CLI commands."""

    OK = 0
    USER_ERROR = 1
    CONFIG_ERROR = 2
    WORKFLOW_ERROR = 3
    IO_ERROR = 5

    def __str__(self) -> str:
        """Return human-readable name."""
        return self.name.lower().replace("_", " ")

    @property
    def is_success(self) -> bool:
        return self == ErrorCode.OK

    @property
    def is_error(self) -> bool:
        return self != ErrorCode.OK
