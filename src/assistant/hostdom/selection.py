"""Ranges and selections over a BeautifulSoup tree.

A boundary point is ``(container, offset)``: for a ``Tag`` the offset
counts children, for a ``NavigableString`` it counts characters.  Points
are compared by their path from the root (list of child indices followed
by the offset), which orders them exactly as document order does.
"""

from __future__ import annotations

import copy
import logging

from bs4 import BeautifulSoup, NavigableString, Tag
from bs4.element import Comment, Declaration, Doctype, PageElement, ProcessingInstruction

logger = logging.getLogger(__name__)

# Elements rendered as their own block (a line break follows their content)
BLOCK_TAGS = frozenset({
    "p", "div", "h1", "h2", "h3", "h4", "h5", "h6",
    "li", "blockquote", "pre", "hr",
    "section", "article",
})

# Elements whose content is never displayed
INVISIBLE_TAGS = frozenset({"style", "script", "template", "noscript"})

# String subclasses that are markup, not text
NON_TEXT_STRINGS = (Comment, Declaration, Doctype, ProcessingInstruction)


def is_text(node: PageElement | None) -> bool:
    """Return ``True`` for a displayable text node."""
    return isinstance(node, NavigableString) and not isinstance(node, NON_TEXT_STRINGS)


def node_length(node: PageElement) -> int:
    """Number of offsets inside *node* (characters or children)."""
    if isinstance(node, NavigableString):
        return len(node)
    return len(node.contents)


def node_path(node: PageElement) -> list[int]:
    """Child indices leading from the root down to *node*."""
    path: list[int] = []
    while node.parent is not None:
        path.append(node.parent.index(node))
        node = node.parent
    path.reverse()
    return path


def tree_root(node: PageElement) -> PageElement:
    while node.parent is not None:
        node = node.parent
    return node


def ancestors_or_self(node: PageElement) -> list[PageElement]:
    chain = [node]
    chain.extend(node.parents)
    return chain


def _copy_attrs(attrs: dict) -> dict:
    return {k: list(v) if isinstance(v, list) else v for k, v in attrs.items()}


class SelectionRange:
    """A start/end pair of boundary points over one tree."""

    def __init__(
        self,
        start_container: PageElement,
        start_offset: int = 0,
        end_container: PageElement | None = None,
        end_offset: int | None = None,
    ) -> None:
        self.start_container = start_container
        self.start_offset = start_offset
        self.end_container = start_container
        self.end_offset = start_offset
        self.set_start(start_container, start_offset)
        if end_container is not None:
            self.set_end(end_container, node_length(end_container) if end_offset is None else end_offset)

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def covering(cls, node: PageElement) -> SelectionRange:
        """Return a range selecting the contents of *node*."""
        rng = cls(node, 0)
        rng.select_node_contents(node)
        return rng

    @staticmethod
    def _check(container: PageElement, offset: int) -> None:
        if not 0 <= offset <= node_length(container):
            raise IndexError(f"Offset {offset} out of bounds for {container!r:.60}")

    def set_start(self, container: PageElement, offset: int) -> None:
        self._check(container, offset)
        self.start_container, self.start_offset = container, offset
        if (
            tree_root(container) is not tree_root(self.end_container)
            or self._start_key() > self._end_key()
        ):
            self.end_container, self.end_offset = container, offset

    def set_end(self, container: PageElement, offset: int) -> None:
        self._check(container, offset)
        self.end_container, self.end_offset = container, offset
        if (
            tree_root(container) is not tree_root(self.start_container)
            or self._end_key() < self._start_key()
        ):
            self.start_container, self.start_offset = container, offset

    def select_node_contents(self, node: PageElement) -> None:
        self.start_container, self.start_offset = node, 0
        self.end_container, self.end_offset = node, node_length(node)

    def collapse(self, to_start: bool = False) -> None:
        if to_start:
            self.end_container, self.end_offset = self.start_container, self.start_offset
        else:
            self.start_container, self.start_offset = self.end_container, self.end_offset

    # ------------------------------------------------------------------
    # Geometry
    # ------------------------------------------------------------------

    def _start_key(self) -> list[int]:
        return node_path(self.start_container) + [self.start_offset]

    def _end_key(self) -> list[int]:
        return node_path(self.end_container) + [self.end_offset]

    @property
    def collapsed(self) -> bool:
        return self.start_container is self.end_container and self.start_offset == self.end_offset

    @property
    def common_ancestor(self) -> PageElement:
        """Deepest node containing both boundary points."""
        start_chain = {id(n) for n in ancestors_or_self(self.start_container)}
        for node in ancestors_or_self(self.end_container):
            if id(node) in start_chain:
                return node
        return tree_root(self.start_container)

    def intersects_node(self, node: PageElement) -> bool:
        """Return ``True`` if any part of *node* lies inside the range."""
        if tree_root(node) is not tree_root(self.start_container):
            return False
        if node.parent is None:
            return True
        node_start = node_path(node)
        node_end = node_start[:-1] + [node_start[-1] + 1]
        return node_start < self._end_key() and node_end > self._start_key()

    # ------------------------------------------------------------------
    # Content
    # ------------------------------------------------------------------

    def clone_contents(self) -> BeautifulSoup:
        """Copy the selected nodes into a detached fragment.

        Fully selected nodes are deep-copied, partially selected ancestors
        are copied without the unselected children, and boundary text
        nodes are sliced.  The original tree is left untouched.
        """
        fragment = BeautifulSoup("", "html.parser")
        if self.collapsed:
            return fragment

        ancestor = self.common_ancestor
        if isinstance(ancestor, NavigableString):
            fragment.append(type(ancestor)(str(ancestor)[self.start_offset:self.end_offset]))
            return fragment

        start_key, end_key = self._start_key(), self._end_key()
        for child in self._clone_children(fragment, ancestor, node_path(ancestor), start_key, end_key):
            fragment.append(child)
        return fragment

    def _clone_children(
        self,
        fragment: BeautifulSoup,
        parent: Tag,
        base: list[int],
        start_key: list[int],
        end_key: list[int],
    ) -> list[PageElement]:
        cloned: list[PageElement] = []
        for index, child in enumerate(list(parent.contents)):
            node_start = base + [index]
            node_end = base + [index + 1]
            if node_end <= start_key or node_start >= end_key:
                continue
            if start_key <= node_start and node_end <= end_key:
                cloned.append(copy.copy(child))
            elif isinstance(child, NavigableString):
                text = str(child)
                begin = self.start_offset if child is self.start_container else 0
                end = self.end_offset if child is self.end_container else len(text)
                cloned.append(type(child)(text[begin:end]))
            else:
                shell = fragment.new_tag(child.name, attrs=_copy_attrs(child.attrs))
                for grandchild in self._clone_children(fragment, child, node_start, start_key, end_key):
                    shell.append(grandchild)
                cloned.append(shell)
        return cloned

    def to_text(self, exclude: tuple[str, ...] | list[str] = ()) -> str:
        """Return the visual text of the range.

        Invisible elements, ``hidden`` elements and any subtree matching
        one of the *exclude* selectors contribute nothing; ``<br>``, table
        rows and block elements end a line.
        """
        fragment = self.clone_contents()
        for selector in exclude:
            for element in fragment.select(selector):
                element.decompose()
        for element in fragment.find_all(lambda t: t.name in INVISIBLE_TAGS or t.has_attr("hidden")):
            element.decompose()
        return _visual_text(fragment)

    def __repr__(self) -> str:
        return (
            f"SelectionRange({self.start_container!r:.40}, {self.start_offset}, "
            f"{self.end_container!r:.40}, {self.end_offset})"
        )


def _visual_text(node: PageElement) -> str:
    if isinstance(node, NavigableString):
        return str(node) if is_text(node) else ""
    if node.name == "br":
        return "\n"
    text = "".join(_visual_text(child) for child in node.contents)
    if (node.name in BLOCK_TAGS or node.name == "tr") and text and not text.endswith("\n"):
        text += "\n"
    return text


class Selection:
    """The document's current selection (zero or one range in practice)."""

    def __init__(self) -> None:
        self._ranges: list[SelectionRange] = []

    @property
    def ranges(self) -> tuple[SelectionRange, ...]:
        return tuple(self._ranges)

    @property
    def range_count(self) -> int:
        return len(self._ranges)

    def get_range_at(self, index: int) -> SelectionRange:
        return self._ranges[index]

    def add_range(self, rng: SelectionRange) -> None:
        self._ranges.append(rng)

    def remove_all_ranges(self) -> None:
        self._ranges.clear()

    def select(self, rng: SelectionRange) -> None:
        """Replace the current selection with *rng*."""
        self._ranges = [rng]

    @property
    def anchor_node(self) -> PageElement | None:
        return self._ranges[0].start_container if self._ranges else None

    @property
    def is_collapsed(self) -> bool:
        return not self._ranges or self._ranges[0].collapsed

    def to_string(self) -> str:
        return self._ranges[0].to_text() if self._ranges else ""
