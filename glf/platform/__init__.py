"""Platform abstraction layer."""

from .files import atomic_write_text, read_text_if_exists
from .process import ProcessError, run

__all__ = [
    # files
    "atomic_write_text",
    "read_text_if_exists",
    # process
    "ProcessError",
    "run",
]
