"""Render a ``<table>`` as an aligned Markdown grid.

The first row is always used as the header row, whether or not the
source marks it up with ``<th>``.
"""

from __future__ import annotations

import re

from bs4 import Tag

from extraction import block_text

# Narrowest column, so the separator always has at least "---"
MIN_COLUMN_WIDTH = 3

_NEWLINES_RE = re.compile(r"\n+")


def cell_text(cell: Tag) -> str:
    """Single-line text of *cell* with ``|`` escaped as ``\\|``."""
    text = _NEWLINES_RE.sub(" ", block_text.render_text(cell).strip())
    return text.replace("|", r"\|")


def table_model(table: Tag) -> list[list[str]]:
    """Return the cell texts of *table*, one list per ``<tr>``, rectangularized."""
    matrix: list[list[str]] = []
    for tr in table.find_all("tr"):
        row = [cell_text(cell) for cell in tr.find_all(["th", "td"])]
        matrix.append(row)

    width = max((len(row) for row in matrix), default=0)
    for row in matrix:
        row.extend([""] * (width - len(row)))
    return matrix


def column_widths(matrix: list[list[str]]) -> list[int]:
    if not matrix:
        return []
    return [
        max(MIN_COLUMN_WIDTH, *(len(row[c]) for row in matrix))
        for c in range(len(matrix[0]))
    ]


def format_grid(matrix: list[list[str]]) -> str:
    """Format a rectangular matrix; row 0 becomes the header."""
    if not matrix or not matrix[0]:
        return ""

    widths = column_widths(matrix)

    def _line(cells: list[str]) -> str:
        return "| " + " | ".join(cell.ljust(w) for cell, w in zip(cells, widths)) + " |"

    lines = [_line(matrix[0]), _line(["-" * w for w in widths])]
    lines.extend(_line(row) for row in matrix[1:])
    return "\n".join(lines)


def render_markdown_table(table: Tag) -> str:
    """Return *table* as Markdown, or ``""`` when it has no rows."""
    return format_grid(table_model(table))
