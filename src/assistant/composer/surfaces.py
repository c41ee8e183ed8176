"""Editable surfaces — write composed text into the host's input box.

Three shapes are supported, picked once by inspecting the element:

1. **Content-editable region** (Quill, ProseMirror, plain) — the text is
   split into ``<p>`` paragraphs (an empty line becomes ``<p><br></p>``)
   and set through the host's editing command; when that is unavailable
   the children are replaced directly and ``input``/``change`` fired.
2. **Composite widget** (``<rich-textarea>``) — the first inner editable
   region (light DOM, then shadow root) gets the content-editable
   treatment; with none, its ``value`` property is assigned.
3. **Plain value input** (``<textarea>``/``<input>``) — ``value`` is
   assigned and ``input``/``change`` fired.

The caret ends up after the injected content.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

from bs4 import Tag

from extraction.block_text import render_text
from hostdom.document import HostDocument
from hostdom.selection import SelectionRange
from shared.selectors import DEFAULT_HOST_SELECTORS, HostSelectors

logger = logging.getLogger(__name__)


class EditableSurface(ABC):
    """One input box, whatever its structure."""

    #: ``True`` when the content is a single string value rather than a tree
    value_based = False

    def __init__(self, document: HostDocument, element: Tag) -> None:
        self.document = document
        self.element = element

    @property
    def focus_target(self) -> Tag:
        return self.element

    @abstractmethod
    def read(self) -> str:
        """Return the text currently typed into the surface."""

    @abstractmethod
    def write(self, text: str) -> bool:
        """Replace the surface content with *text*; ``False`` if impossible."""


class ContentEditableSurface(EditableSurface):
    """A ``contenteditable`` region holding one ``<p>`` per line."""

    def read(self) -> str:
        return render_text(self.element).strip("\n")

    def paragraphs(self, text: str) -> list[Tag]:
        soup = self.document.soup
        nodes = []
        for line in text.split("\n"):
            p = soup.new_tag("p")
            if line:
                p.string = line
            else:
                p.append(soup.new_tag("br"))
            nodes.append(p)
        return nodes

    def write(self, text: str) -> bool:
        self.document.focus(self.element)
        nodes = self.paragraphs(text)

        if not self.document.replace_contents(self.element, nodes):
            logger.debug("Editing command unavailable, replacing children directly")
            self.element.clear()
            for node in nodes:
                self.element.append(node)
            self.document.notify_change(self.element)

        place_caret_at_end(self.document, self.element)
        logger.debug("Injected %d paragraph(s) into <%s>", len(nodes), self.element.name)
        return True


class CompositeSurface(EditableSurface):
    """A custom editing widget wrapping an inner editable region."""

    def __init__(self, document: HostDocument, element: Tag, inner_selectors: tuple[str, ...]) -> None:
        super().__init__(document, element)
        self.inner = self._find_inner(inner_selectors)
        self.value_based = self.inner is None

    def _find_inner(self, selectors: tuple[str, ...]) -> ContentEditableSurface | None:
        inner = self.document.query(selectors, root=self.element)
        if inner is None:
            shadow = self.document.shadow_root(self.element)
            if shadow is not None:
                inner = self.document.query(selectors, root=shadow)
                if inner is not None:
                    logger.debug("Found inner editable element in shadow root")
        return ContentEditableSurface(self.document, inner) if inner is not None else None

    @property
    def focus_target(self) -> Tag:
        return self.inner.element if self.inner is not None else self.element

    def read(self) -> str:
        if self.inner is not None:
            return self.inner.read()
        return self.document.get_value(self.element)

    def write(self, text: str) -> bool:
        if self.inner is not None:
            return self.inner.write(text)

        if self.document.has_value(self.element):
            logger.debug("No inner editable region; assigning value on <%s>", self.element.name)
            self.document.set_value(self.element, text)
            self.document.notify_change(self.element)
            return True

        logger.warning("Could not find an editable surface inside <%s>", self.element.name)
        return False


class PlainValueSurface(EditableSurface):
    """A ``<textarea>`` or ``<input>``."""

    value_based = True

    def read(self) -> str:
        return self.document.get_value(self.element)

    def write(self, text: str) -> bool:
        self.document.focus(self.element)
        self.document.set_value(self.element, text)
        self.document.notify_change(self.element)
        self.document.set_caret(self.element, len(text))
        return True


def place_caret_at_end(document: HostDocument, element: Tag) -> None:
    """Collapse the selection at the end of *element*'s last child (or itself)."""
    children = [c for c in element.contents if isinstance(c, Tag)]
    last = children[-1] if children else (element.contents[-1] if element.contents else None)

    rng = SelectionRange.covering(last if last is not None else element)
    rng.collapse(to_start=False)
    document.selection.select(rng)
    document.focus(element)


class CompositionInjector:
    """Locate the host's input surface and write composed text into it."""

    def __init__(self, document: HostDocument, selectors: HostSelectors = DEFAULT_HOST_SELECTORS) -> None:
        self.document = document
        self.selectors = selectors

    def surface_for(self, element: Tag) -> EditableSurface | None:
        """Pick the surface variant for *element*, or ``None`` if none fits."""
        if self.document.is_content_editable(element):
            return ContentEditableSurface(self.document, element)
        if element.name in self.selectors.composite_tags:
            return CompositeSurface(self.document, element, self.selectors.inner_editable)
        if element.name in ("textarea", "input"):
            return PlainValueSurface(self.document, element)
        logger.warning("Unknown input element type: <%s>", element.name)
        return None

    def find_surface(self) -> EditableSurface | None:
        element = self.document.query(self.selectors.input)
        if element is None:
            logger.warning("Could not find the input element with any known selector.")
            return None
        return self.surface_for(element)

    def inject(self, surface: EditableSurface | None, text: str) -> bool:
        """Write *text* into *surface*.  Never raises; ``False`` on failure."""
        if surface is None:
            return False
        try:
            return surface.write(text)
        except Exception:
            logger.warning("Injection into <%s> failed", surface.element.name, exc_info=True)
            return False
