"""Output rendering for the nodekb CLI.

File: src/nodekb/ui/render.py

Purpose
- Provide a thin rendering layer for human-readable CLI output on top of ``rich``.
- Respect NO_COLOR environment variable and --no-color CLI flag.

Functional requirements
- Markup in rendered values is never interpreted: node descriptions and config values
  are printed literally.
- Output written to a non-terminal stream carries no ANSI escapes.
"""

from __future__ import annotations

import os
import sys
from typing import TYPE_CHECKING

from rich import box
from rich.console import Console
from rich.table import Table
from rich.text import Text

if TYPE_CHECKING:
    from collections.abc import Sequence


def _color_allowed(no_color_flag: bool) -> bool:
    """Check whether color output should be attempted."""

    if no_color_flag:
        return False
    if os.environ.get("NO_COLOR", ""):
        return False
    return hasattr(sys.stdout, "isatty") and sys.stdout.isatty()


class CLIRenderer:
    """Thin CLI output renderer backed by a ``rich`` console."""

    def __init__(self, *, no_color: bool = False, verbose: bool = False) -> None:
        self.verbose = verbose
        self._color = _color_allowed(no_color)
        self._console = Console(
            no_color=not self._color,
            highlight=False,
            markup=False,
            emoji=False,
            soft_wrap=True,
        )

    def heading(self, text: str) -> None:
        self._console.print(Text(text, style="bold"))

    def kv(self, key: str, value: object) -> None:
        self._console.print(Text.assemble((f"{key}: ", "bold"), str(value)))

    def text(self, line: str) -> None:
        self._console.print(line)

    def blank(self) -> None:
        self._console.print()

    def section(self, title: str) -> None:
        """Print a section header with a preceding blank line."""

        self._console.print()
        self._console.print(Text(title, style="bold underline"))

    def warning(self, text: str) -> None:
        self._console.print(Text.assemble(("  Warning: ", "yellow"), text))

    def error(self, text: str) -> None:
        self._console.print(Text.assemble(("  Error: ", "bold red"), text))

    def items(self, entries: Sequence[str], *, prefix: str = "- ") -> None:
        for entry in entries:
            self._console.print(f"  {prefix}{entry}")

    def table(
        self,
        headers: Sequence[str],
        rows: Sequence[Sequence[str]],
        *,
        title: str | None = None,
    ) -> None:
        """Print a table; nothing is printed for an empty row set."""

        if not rows:
            return
        if title:
            self.section(title)
        table = Table(box=box.SIMPLE_HEAD, show_edge=False, header_style="bold", pad_edge=False)
        for header in headers:
            table.add_column(header, overflow="fold")
        for row in rows:
            cells = [str(row[i]) if i < len(row) else "" for i in range(len(headers))]
            table.add_row(*cells)
        self._console.print(table)

    def next_steps(self, steps: Sequence[str]) -> None:
        """Print actionable next-step hints."""

        if not steps:
            return
        self.section("Next steps:")
        for step in steps:
            self._console.print(f"  $ {step}")

    def ok(self, label: str) -> None:
        self._console.print(Text.assemble(("  OK  ", "bold green"), label))

    def fail(self, label: str) -> None:
        self._console.print(Text.assemble(("  FAIL  ", "bold red"), label))


def create_renderer(*, no_color: bool = False, verbose: bool = False) -> CLIRenderer:
    """Create a CLI renderer with the given settings."""

    return CLIRenderer(no_color=no_color, verbose=verbose)


__all__ = ["CLIRenderer", "create_renderer"]
