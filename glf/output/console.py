"""Console output abstraction.

Services and the close workflow never print directly; they talk to a
``ConsoleProtocol``. The CLI hands them a ``RichConsole``, tests hand them a
``MockConsole`` and assert on what was recorded.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, auto
from pathlib import Path
from typing import Protocol

__all__ = [
    "Style",
    "ConsoleProtocol",
    "RichConsole",
    "MockConsole",
    "OutputRecord",
]


class Style(Enum):
    """Text styles for console output."""

    DEFAULT = auto()
    SUCCESS = auto()
    ERROR = auto()
    WARNING = auto()
    INFO = auto()
    DIM = auto()
    BOLD = auto()
    HEADER = auto()
    COMMAND = auto()  # echoed git invocation

    def __str__(self) -> str:
        return self.name.lower()


class ConsoleProtocol(Protocol):
    """Protocol for console output."""

    def print(self, message: str, style: Style = Style.DEFAULT) -> None:
        """Print a message with optional styling."""
        ...

    def success(self, message: str) -> None: ...

    def error(self, message: str) -> None: ...

    def warning(self, message: str) -> None: ...

    def info(self, message: str) -> None: ...

    def header(self, message: str) -> None: ...

    def command(self, argv: list[str], cwd: Path) -> None:
        """Echo a command about to run (or skipped in dry-run) in ``cwd``."""
        ...

    def newline(self) -> None: ...


class RichConsole:
    """Production console backed by Rich."""

    def __init__(self) -> None:
        from rich.console import Console

        self._console = Console(highlight=False)
        self._style_map = {
            Style.DEFAULT: "",
            Style.SUCCESS: "green",
            Style.ERROR: "red bold",
            Style.WARNING: "yellow",
            Style.INFO: "blue",
            Style.DIM: "dim",
            Style.BOLD: "bold",
            Style.HEADER: "magenta bold",
            Style.COMMAND: "cyan",
        }

    def print(self, message: str, style: Style = Style.DEFAULT) -> None:
        from rich.markup import escape

        rich_style = self._style_map.get(style, "")
        if rich_style:
            self._console.print(escape(message), style=rich_style)
        else:
            self._console.print(escape(message))

    def success(self, message: str) -> None:
        from rich.markup import escape

        self._console.print(f"[green]OK[/green] {escape(message)}")

    def error(self, message: str) -> None:
        from rich.markup import escape

        self._console.print(f"[red bold]error:[/red bold] {escape(message)}")

    def warning(self, message: str) -> None:
        from rich.markup import escape

        self._console.print(f"[yellow]warning:[/yellow] {escape(message)}")

    def info(self, message: str) -> None:
        from rich.markup import escape

        self._console.print(f"[blue]{escape(message)}[/blue]")

    def header(self, message: str) -> None:
        from rich.markup import escape

        self._console.print(f"\n[magenta bold]{escape(message)}[/magenta bold]")

    def command(self, argv: list[str], cwd: Path) -> None:
        from rich.markup import escape

        self._console.print(f"[cyan]{escape(' '.join(argv))}[/cyan] [dim]\\[{escape(str(cwd))}][/dim]")

    def newline(self) -> None:
        self._console.print()


@dataclass
class OutputRecord:
    """A single output record for MockConsole."""

    message: str
    style: Style


def _empty_outputs() -> list[OutputRecord]:
    return []


@dataclass
class MockConsole:
    """Console that records output for assertions in tests."""

    outputs: list[OutputRecord] = field(default_factory=_empty_outputs)

    def print(self, message: str, style: Style = Style.DEFAULT) -> None:
        self.outputs.append(OutputRecord(message, style))

    def success(self, message: str) -> None:
        self.outputs.append(OutputRecord(f"OK {message}", Style.SUCCESS))

    def error(self, message: str) -> None:
        self.outputs.append(OutputRecord(f"error: {message}", Style.ERROR))

    def warning(self, message: str) -> None:
        self.outputs.append(OutputRecord(f"warning: {message}", Style.WARNING))

    def info(self, message: str) -> None:
        self.outputs.append(OutputRecord(message, Style.INFO))

    def header(self, message: str) -> None:
        self.outputs.append(OutputRecord(message, Style.HEADER))

    def command(self, argv: list[str], cwd: Path) -> None:
        self.outputs.append(OutputRecord(f"{' '.join(argv)} [{cwd}]", Style.COMMAND))

    def newline(self) -> None:
        self.outputs.append(OutputRecord("", Style.DEFAULT))

    # Test helpers

    def clear(self) -> None:
        self.outputs.clear()

    @property
    def messages(self) -> list[str]:
        return [o.message for o in self.outputs]

    @property
    def text(self) -> str:
        return "\n".join(self.messages)

    @property
    def commands(self) -> list[str]:
        """Echoed commands, without their working directory suffix."""
        return [o.message.rsplit(" [", 1)[0] for o in self.outputs if o.style == Style.COMMAND]

    def has_error(self) -> bool:
        return any(o.style == Style.ERROR for o in self.outputs)

    def has_warning(self) -> bool:
        return any(o.style == Style.WARNING for o in self.outputs)

    def find(self, substring: str) -> list[OutputRecord]:
        return [o for o in self.outputs if substring in o.message]

    def count(self, style: Style) -> int:
        return sum(1 for o in self.outputs if o.style == style)
