"""Flatten a tree node to plain text with line breaks at block boundaries.

Tables are handed to :mod:`extraction.markdown_table` whole and come
back as a Markdown grid on their own lines.
"""

from __future__ import annotations

from bs4 import NavigableString
from bs4.element import PageElement

from extraction import markdown_table
from hostdom.selection import BLOCK_TAGS, INVISIBLE_TAGS, is_text


def render_text(node: PageElement) -> str:
    """Return the text of *node*, one line per block element.

    - text nodes yield their content
    - ``<br>`` yields a newline
    - ``<table>`` yields a Markdown table surrounded by newlines
    - script/style-like elements yield nothing
    - block elements end with a newline if their content does not
    """
    if isinstance(node, NavigableString):
        return str(node) if is_text(node) else ""

    tag = (node.name or "").lower()

    if tag == "table":
        return "\n" + markdown_table.render_markdown_table(node) + "\n"
    if tag == "br":
        return "\n"
    if tag in INVISIBLE_TAGS:
        return ""

    result = "".join(render_text(child) for child in node.contents)

    if tag in BLOCK_TAGS and result and not result.endswith("\n"):
        result += "\n"
    return result
