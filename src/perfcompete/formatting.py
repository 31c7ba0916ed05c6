"""Shared text formatting helpers for perfcompete.

Provides functions for formatting durations, severity markers and aligned
text tables used by the CLI and the competition report.
"""

from __future__ import annotations


def format_duration(seconds: float) -> str:
    """Format an elapsed time in seconds.

    Examples: ``'0.25s'``, ``'8.0s'``, ``'1m 23s'``.
    """
    if seconds < 10:
        return f"{seconds:.2f}s"
    if seconds < 60:
        return f"{seconds:.1f}s"
    total = int(seconds)
    return f"{total // 60}m {total % 60:2d}s"


def format_severity_icon(severity: str) -> str:
    """Return a visual marker for a message severity label."""
    icons: dict[str, str] = {
        "Verbose": "·",
        "Informational": "ℹ",
        "Warning": "⚠",
        "TestError": "✗",
        "SetupError": "✗",
        "ExecutionError": "✗",
    }
    return icons.get(severity, "?")


def format_table(
    headers: list[str],
    rows: list[list[str]],
    *,
    alignments: list[str] | None = None,
    max_col_width: dict[int, int] | None = None,
    indent: int = 2,
) -> str:
    """Format rows as an aligned text table.

    Column widths follow the content. Cells longer than *max_col_width*
    are cut with a ``'...'`` suffix. *alignments* holds ``'l'``, ``'r'``
    or ``'c'`` per column.
    """
    if not headers:
        return ""

    ncols = len(headers)
    aligns = list(alignments or [])
    aligns += ["l"] * (ncols - len(aligns))
    limits = max_col_width or {}

    def _cut(text: str, ci: int) -> str:
        width = limits.get(ci)
        if width is None or len(text) <= width:
            return text
        return text[: width - 3] + "..."

    table = [[_cut(h, ci) for ci, h in enumerate(headers)]]
    for row in rows:
        cells = (list(row) + [""] * ncols)[:ncols]
        table.append([_cut(cell, ci) for ci, cell in enumerate(cells)])

    widths = [max(len(r[ci]) for r in table) for ci in range(ncols)]

    def _align(text: str, ci: int) -> str:
        if aligns[ci] == "r":
            return text.rjust(widths[ci])
        if aligns[ci] == "c":
            return text.center(widths[ci])
        return text.ljust(widths[ci])

    prefix = " " * indent
    return "\n".join(
        prefix + "  ".join(_align(cell, ci) for ci, cell in enumerate(r)).rstrip() for r in table
    )
