"""Output rendering abstraction for the art-plan CLI.

File: src/release_train/ui/render.py
Last updated: 2026-10-18

Purpose
- Provide a thin plain-text rendering layer for CLI output.
- Respect NO_COLOR environment variable and --no-color CLI flag.

Functional requirements
- Output must be deterministic so plan reports can be diffed between runs.
- All public methods must be safe to call in any environment.
"""

from __future__ import annotations

import os
import sys
from typing import TYPE_CHECKING, TextIO

if TYPE_CHECKING:
    from collections.abc import Sequence

_ANSI_BOLD = "\033[1m"
_ANSI_RED = "\033[31m"
_ANSI_GREEN = "\033[32m"
_ANSI_YELLOW = "\033[33m"
_ANSI_RESET = "\033[0m"


def _color_allowed(no_color_flag: bool, stream: TextIO) -> bool:
    """Check whether color output should be attempted."""

    if no_color_flag:
        return False
    if os.environ.get("NO_COLOR", ""):
        return False
    return hasattr(stream, "isatty") and stream.isatty()


class CLIRenderer:
    """Thin CLI output renderer.

    Produces clean, deterministic plain-text output. ANSI styling is only
    applied when the target stream is a terminal and color is not disabled.
    """

    def __init__(
        self,
        *,
        no_color: bool = False,
        verbose: bool = False,
        stream: TextIO | None = None,
    ) -> None:
        self.verbose = verbose
        self._stream = stream if stream is not None else sys.stdout
        self._color = _color_allowed(no_color, self._stream)

    def heading(self, text: str) -> None:
        """Print a heading line."""

        self._emit(self._style(text, _ANSI_BOLD))

    def kv(self, key: str, value: object) -> None:
        """Print a key: value pair."""

        self._emit(f"{key}: {value}")

    def text(self, line: str) -> None:
        self._emit(line)

    def blank(self) -> None:
        self._emit("")

    def section(self, title: str) -> None:
        """Print a section header with a preceding blank line."""

        self._emit(f"\n{self._style(title, _ANSI_BOLD)}")

    def warning(self, text: str) -> None:
        self._emit(f"  {self._style('Warning:', _ANSI_YELLOW)} {text}")

    def items(self, entries: Sequence[str], *, prefix: str = "- ") -> None:
        """Print a bulleted list."""

        for entry in entries:
            self._emit(f"  {prefix}{entry}")

    def detail(self, line: str) -> None:
        """Print a line only in verbose mode."""

        if self.verbose:
            self._emit(f"    {line}")

    def table(
        self,
        headers: Sequence[str],
        rows: Sequence[Sequence[str]],
        *,
        title: str | None = None,
    ) -> None:
        """Print left-aligned columns under a dashed rule; nothing when ``rows`` is empty."""

        if not rows:
            return

        grid = [list(headers)] + [
            [str(cell) for cell in row[: len(headers)]] + [""] * (len(headers) - len(row))
            for row in rows
        ]
        widths = [max(len(line[column]) for line in grid) for column in range(len(headers))]

        if title:
            self.section(title)
        for position, line in enumerate(grid):
            cells = (cell.ljust(width) for cell, width in zip(line, widths, strict=True))
            self._emit(f"  {'  '.join(cells).rstrip()}")
            if position == 0:
                self._emit(f"  {'  '.join('-' * width for width in widths)}")

    def next_steps(self, steps: Sequence[str]) -> None:
        """Print actionable next-step hints."""

        if not steps:
            return
        self.section("Next steps:")
        for step in steps:
            self._emit(f"  $ {step}")

    def ok(self, label: str) -> None:
        self._emit(f"  {self._style('OK', _ANSI_GREEN)}  {label}")

    def fail(self, label: str) -> None:
        self._emit(f"  {self._style('FAIL', _ANSI_RED)}  {label}")

    def _style(self, text: str, code: str) -> str:
        if not self._color:
            return text
        return f"{code}{text}{_ANSI_RESET}"

    def _emit(self, line: str) -> None:
        print(line, file=self._stream)


def create_renderer(
    *,
    no_color: bool = False,
    verbose: bool = False,
    stream: TextIO | None = None,
) -> CLIRenderer:
    """Create a CLI renderer with the given settings."""

    return CLIRenderer(no_color=no_color, verbose=verbose, stream=stream)


__all__ = ["CLIRenderer", "create_renderer"]
