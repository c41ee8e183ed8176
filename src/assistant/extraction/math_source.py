"""Recover the TeX source behind rendered math.

When a user selects rendered math, its visual text (``x²+y²``) is not
what they want to quote; the TeX (``x^2+y^2``) is.  Three rendering
families are understood:

- **attribute wrappers** — an element carrying the source in an
  attribute (``<span class="math-inline" data-math="x^2">``)
- **annotation children** — KaTeX and MathML keep the source in
  ``<annotation encoding="application/x-tex">``
- **script holders** — MathJax 3 keeps it in a child ``<script>`` or in
  ``aria-label``; MathJax 2 in a ``<script type="math/tex">`` sibling

Resolution order for a selection:

1. The selection's common ancestor sits inside an attribute wrapper in
   the original tree: that attribute wins outright.
2. Rendered nodes in the cloned fragment are resolved in place, display
   wrappers before the inline nodes they contain.
3. Rendered nodes that lost their wrapper when the range clipped them
   are re-attached to the wrapper found in the original tree.  This only
   fires for fragments from a clone that drops partially selected
   ancestors; :meth:`SelectionRange.clone_contents` keeps those shells
   with their attributes, so its own fragments never hold orphans.

Inline math renders as ``$src$``, display math as ``$$src$$``.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

import soupsieve as sv
from bs4 import BeautifulSoup, NavigableString, Tag
from bs4.element import PageElement

from hostdom.selection import BLOCK_TAGS, INVISIBLE_TAGS, SelectionRange, is_text, tree_root
from shared.selectors import DEFAULT_MATH_SELECTORS, MathSelectors

logger = logging.getLogger(__name__)

_WHITESPACE_RE = re.compile(r"\s+")


@dataclass(frozen=True)
class MathAnnotation:
    """Source notation of one math region and whether it is displayed as a block."""

    source: str
    display: bool

    def render(self) -> str:
        return f"$${self.source}$$" if self.display else f"${self.source}$"


def _attached(element: PageElement, root: PageElement) -> bool:
    """Return ``True`` while *element* still hangs below *root*."""
    return any(parent is root for parent in element.parents)


class MathSourceResolver:
    """Find and substitute TeX source for the math inside a selection."""

    def __init__(self, selectors: MathSelectors = DEFAULT_MATH_SELECTORS) -> None:
        self.selectors = selectors

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def has_math(self, fragment: Tag) -> bool:
        """Return ``True`` if *fragment* holds any supported math marker."""
        return fragment.select_one(self.selectors.marker) is not None

    def from_boundary(self, rng: SelectionRange) -> MathAnnotation | None:
        """Return the wrapper annotation enclosing the whole selection, if any.

        Covers the single-equation case: the clone of a range that lies
        inside one equation has lost the wrapper, but the original tree
        still has it above the common ancestor.
        """
        node = rng.common_ancestor
        element = node.parent if isinstance(node, NavigableString) else node
        attr = self.selectors.source_attribute
        while isinstance(element, Tag) and not isinstance(element, BeautifulSoup):
            source = element.get(attr)
            if source:
                return MathAnnotation(str(source), self._is_display_wrapper(element))
            element = element.parent
        return None

    def resolve(self, node: Tag, rng: SelectionRange | None = None) -> MathAnnotation | None:
        """Return the best-available annotation for one math region.

        *node* may be a clipped clone; *rng* is the original selection, used
        for the boundary check and to find a lost wrapper.  Returns ``None``
        when nothing can be recovered.
        """
        if rng is not None:
            found = self.from_boundary(rng)
            if found:
                return found

        for family in (self._from_attribute, self._from_annotation, self._from_script):
            found = family(node)
            if found:
                return found

        if rng is not None:
            for wrapper in self._intersecting_wrappers(rng):
                if self._visible_text(node) in self._visible_text(wrapper):
                    return MathAnnotation(
                        str(wrapper[self.selectors.source_attribute]),
                        self._is_display_wrapper(wrapper),
                    )
        return None

    def reassociate_orphans(self, fragment: BeautifulSoup, rng: SelectionRange) -> int:
        """Wrap rendered nodes that lost their source wrapper.

        For each source-bearing wrapper of the original tree that
        intersects *rng*, the first orphan whose visible text fits inside
        the wrapper's visible text is wrapped in a copy of that wrapper.
        Returns the number of nodes re-associated.
        """
        orphans = self._orphans(fragment)
        if not orphans:
            return 0

        count = 0
        for wrapper in self._intersecting_wrappers(rng):
            wrapper_text = self._visible_text(wrapper)
            for index, orphan in enumerate(orphans):
                if self._visible_text(orphan) in wrapper_text:
                    attrs = {k: list(v) if isinstance(v, list) else v for k, v in wrapper.attrs.items()}
                    orphan.wrap(fragment.new_tag(wrapper.name, attrs=attrs))
                    del orphans[index]
                    count += 1
                    logger.debug(
                        "Re-associated orphaned <%s> with %r",
                        orphan.name,
                        wrapper.get(self.selectors.source_attribute),
                    )
                    break
            if not orphans:
                break
        return count

    def replace_math(self, fragment: BeautifulSoup) -> int:
        """Replace every resolvable math node in *fragment* with its source text.

        Display wrappers go first so the inline nodes inside them are not
        substituted twice.  Leftover hidden mirrors are removed afterwards.
        Returns the number of substitutions.
        """
        s = self.selectors
        attr = f"[{s.source_attribute}]"
        steps = [
            (f"{s.display_wrapper}{attr}", self._from_attribute),
            (s.katex_display, self._from_annotation),
            (attr, self._from_attribute),
            (s.katex, self._from_annotation),
            (s.mathjax3, self._from_script),
            (s.mathjax2, self._from_script),
            (s.mathml, self._from_annotation),
        ]

        count = 0
        for selector, family in steps:
            for element in fragment.select(selector):
                if not _attached(element, fragment):
                    continue
                annotation = family(element)
                if annotation is None:
                    continue
                if sv.match(s.mathjax2, element) and not sv.match(s.mathjax3, element):
                    holder = self._sibling_script(element)
                    if holder is not None:
                        holder.decompose()
                element.replace_with(self._replacement(fragment, element, annotation))
                count += 1

        for selector in s.hidden_mirrors:
            for element in fragment.select(selector):
                element.decompose()

        logger.debug("Replaced %d math node(s) with source notation", count)
        return count

    # ------------------------------------------------------------------
    # Families
    # ------------------------------------------------------------------

    def _from_attribute(self, element: Tag) -> MathAnnotation | None:
        attr = self.selectors.source_attribute
        holder = element if element.get(attr) else element.select_one(f"[{attr}]")
        if holder is None or not holder.get(attr):
            return None
        return MathAnnotation(str(holder[attr]), self._is_display_wrapper(holder))

    def _from_annotation(self, element: Tag) -> MathAnnotation | None:
        annotation = element.select_one(self.selectors.tex_annotation)
        if annotation is None:
            return None
        source = annotation.get_text()
        if not source:
            return None
        math = element if element.name == "math" else element.find("math")
        display = sv.match(self.selectors.katex_display, element) or (
            math is not None and math.get("display") == "block"
        )
        return MathAnnotation(source, bool(display))

    def _from_script(self, element: Tag) -> MathAnnotation | None:
        s = self.selectors
        if sv.match(s.mathjax2, element) and not sv.match(s.mathjax3, element):
            holder = self._sibling_script(element)
            if holder is None:
                return None
            kind = str(holder.get("type", ""))
            return MathAnnotation(holder.get_text(), "display" in kind)

        script = element.select_one('script[type^="math/tex"]')
        source = script.get_text() if script is not None else ""
        if not source:
            source = str(element.get("aria-label") or "")
        if not source:
            return None
        return MathAnnotation(source, element.get("display") in ("block", "true"))

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _replacement(fragment: BeautifulSoup, element: Tag, annotation: MathAnnotation) -> PageElement:
        """Source text standing in for *element*; block elements keep their line."""
        text = NavigableString(annotation.render())
        if element.name not in BLOCK_TAGS:
            return text
        block = fragment.new_tag(element.name)
        block.append(text)
        return block

    def _is_display_wrapper(self, element: Tag) -> bool:
        return bool(sv.match(self.selectors.display_wrapper, element))

    @staticmethod
    def _sibling_script(element: Tag) -> Tag | None:
        sibling = element.find_next_sibling()
        if sibling is not None and sibling.name == "script" and "math/tex" in str(sibling.get("type", "")):
            return sibling
        return None

    def _has_own_source(self, element: Tag) -> bool:
        return (
            element.select_one(self.selectors.tex_annotation) is not None
            or element.select_one('script[type^="math/tex"]') is not None
            or bool(element.get("aria-label"))
            or self._sibling_script(element) is not None
        )

    def _orphans(self, fragment: BeautifulSoup) -> list[Tag]:
        """Outermost rendered math nodes with no source of their own and no wrapper."""
        s = self.selectors
        rendered = f"{s.katex_display}, {s.katex}, {s.mathjax3}, {s.mathjax2}"
        attr = s.source_attribute
        orphans: list[Tag] = []
        for element in fragment.select(rendered):
            ancestors = [p for p in element.parents if isinstance(p, Tag) and not isinstance(p, BeautifulSoup)]
            if any(p.get(attr) for p in ancestors) or element.get(attr):
                continue
            if any(sv.match(rendered, p) for p in ancestors):
                continue
            if self._has_own_source(element):
                continue
            orphans.append(element)
        return orphans

    def _intersecting_wrappers(self, rng: SelectionRange) -> list[Tag]:
        root = tree_root(rng.start_container)
        if not isinstance(root, Tag):
            return []
        attr = self.selectors.source_attribute
        return [
            el for el in root.find_all(attrs={attr: True})
            if el.get(attr) and rng.intersects_node(el)
        ]

    def _is_hidden(self, element: Tag) -> bool:
        if element.name in INVISIBLE_TAGS or element.name == "annotation":
            return True
        return any(sv.match(selector, element) for selector in self.selectors.hidden_mirrors)

    def _visible_text(self, element: Tag) -> str:
        """Text a reader sees in *element*, whitespace removed."""
        parts: list[str] = []
        for string in element.find_all(string=True):
            if not is_text(string):
                continue
            hidden = False
            for parent in string.parents:
                if parent is element.parent or isinstance(parent, BeautifulSoup):
                    break
                if self._is_hidden(parent):
                    hidden = True
                    break
            if not hidden:
                parts.append(str(string))
        return _WHITESPACE_RE.sub("", "".join(parts))
