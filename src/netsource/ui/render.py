"""
netsource — CLI output rendering

File: src/netsource/ui/render.py
Last updated: 2026-10-18

Purpose
- Render store status and pipeline reports as deterministic plain text.

Functional requirements
- Only the OK/FAIL markers are ever colored, and never when ``NO_COLOR`` is set, when
  ``--no-color`` is passed, or when stdout is not a terminal.
- Warnings go to stderr so ``--json`` style consumers of stdout are not disturbed.
"""

from __future__ import annotations

import os
import sys
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence

    from netsource.persistence import PipelineReport

_MARKER_COLORS = {"OK": "\033[32m", "FAIL": "\033[31m"}
_RESET = "\033[0m"


class CLIRenderer:
    """Plain-text renderer for store status and pipeline reports."""

    def __init__(self, *, no_color: bool = False, verbose: bool = False) -> None:
        self.verbose = verbose
        self._color = (
            not no_color
            and not os.environ.get("NO_COLOR")
            and getattr(sys.stdout, "isatty", lambda: False)()
        )

    def heading(self, text: str) -> None:
        self._line(text)

    def text(self, line: str) -> None:
        self._line(line)

    def kv(self, key: str, value: object) -> None:
        self._line(f"{key}: {value}")

    def section(self, title: str) -> None:
        self._line("")
        self._line(title)

    def items(self, entries: Sequence[str], *, prefix: str = "- ") -> None:
        for entry in entries:
            self._line(f"  {prefix}{entry}")

    def warning(self, text: str) -> None:
        print(f"  Warning: {text}", file=sys.stderr)

    def ok(self, label: str) -> None:
        self._line(f"  {self._marker('OK')}  {label}")

    def fail(self, label: str) -> None:
        self._line(f"  {self._marker('FAIL')}  {label}")

    def next_steps(self, commands: Sequence[str]) -> None:
        if commands:
            self.section("Next steps:")
            for command in commands:
                self._line(f"  $ {command}")

    def table(
        self,
        headers: Sequence[str],
        rows: Sequence[Sequence[str]],
        *,
        title: str | None = None,
        empty: str | None = None,
    ) -> None:
        """Print left-aligned columns under a dashed header rule.

        Short rows are padded with empty cells; ``empty`` replaces the table when
        there are no rows.
        """

        if title:
            self.section(title)
        if not rows:
            if empty:
                self._line(f"  {empty}")
            return

        grid = [list(headers)]
        grid.extend(
            [str(row[i]) if i < len(row) else "" for i in range(len(headers))] for row in rows
        )
        widths = [max(len(cells[i]) for cells in grid) for i in range(len(headers))]
        rule = ["-" * width for width in widths]
        for cells in (grid[0], rule, *grid[1:]):
            padded = "  ".join(
                cell.ljust(width) for cell, width in zip(cells, widths, strict=True)
            )
            self._line(f"  {padded.rstrip()}")

    def _marker(self, name: str) -> str:
        return f"{_MARKER_COLORS[name]}{name}{_RESET}" if self._color else name

    @staticmethod
    def _line(text: str) -> None:
        print(text)


def create_renderer(*, no_color: bool = False, verbose: bool = False) -> CLIRenderer:
    return CLIRenderer(no_color=no_color, verbose=verbose)


def render_pipeline_report(renderer: CLIRenderer, report: PipelineReport) -> None:
    """Render what one initialization or reset run did to the store."""

    if report.readonly:
        renderer.text("Read-only store: ledger verified, nothing applied.")
        return
    renderer.table(
        ["VERSION", "NAME"],
        [[str(record.version), record.name] for record in report.applied],
        title="Applied migrations:",
        empty="(none pending)",
    )
    for item in report.skipped:
        renderer.warning(f"skipped {item.filename}: {item.reason}")
    seeded = sorted((table, count) for table, count in report.seeded.items() if count)
    if seeded:
        renderer.section("Seeded:")
        renderer.items([f"{table}: {count} row(s)" for table, count in seeded])
    if renderer.verbose:
        renderer.kv("Duration", f"{report.duration_seconds:.3f}s")


__all__ = ["CLIRenderer", "create_renderer", "render_pipeline_report"]
