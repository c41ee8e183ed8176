"""extraction — turn a selection of rendered content into quotable text.

Steps:
    1. Visual text of the range → ``display_text`` (previews only)
    2. Range inside a single math wrapper → its source notation, done
    3. Clone the range; no math inside → block text of the clone, done
    4. Re-attach clipped math to its wrapper in the original tree
    5. Replace math nodes with ``$…$`` / ``$$…$$`` source notation
    6. Block text of the clone, runs of blank lines collapsed

Any error in steps 2–6 falls back to the visual text; ``extract`` never
raises.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from extraction.block_text import render_text
from extraction.math_source import MathAnnotation, MathSourceResolver
from hostdom.selection import Selection, SelectionRange
from shared.selectors import DEFAULT_MATH_SELECTORS, MathSelectors

logger = logging.getLogger(__name__)

__all__ = [
    "ExtractedSelection",
    "MathAnnotation",
    "MathSourceResolver",
    "SelectionExtractor",
    "collapse_blank_lines",
    "extract_selection",
    "render_text",
]

_BLANK_LINES_RE = re.compile(r"\n{3,}")


@dataclass(frozen=True)
class ExtractedSelection:
    """Quotable text of a selection plus the plain text shown in previews."""

    text: str
    display_text: str


def collapse_blank_lines(text: str) -> str:
    """Collapse three or more consecutive newlines to exactly two."""
    return _BLANK_LINES_RE.sub("\n\n", text)


class SelectionExtractor:
    """Extract semantic text (TeX math, Markdown tables) from a selection."""

    def __init__(self, math_selectors: MathSelectors = DEFAULT_MATH_SELECTORS) -> None:
        self.math_selectors = math_selectors
        self.resolver = MathSourceResolver(math_selectors)

    @property
    def _hidden(self) -> tuple[str, ...]:
        return (*self.math_selectors.hidden_mirrors, "annotation")

    def visual_text(self, rng: SelectionRange) -> str:
        """Return what the reader sees in *rng*, trimmed."""
        return rng.to_text(exclude=self._hidden).strip()

    def extract(self, selection: Selection | SelectionRange | None) -> ExtractedSelection:
        """Return the quote text and display text of *selection*."""
        rng = _first_range(selection)
        if rng is None or rng.collapsed:
            return ExtractedSelection(text="", display_text="")

        try:
            display_text = self.visual_text(rng)
        except Exception:
            logger.warning("Could not read the visual text of the selection", exc_info=True)
            display_text = ""

        try:
            text = self._semantic_text(rng)
        except Exception:
            logger.warning("Math/table extraction failed — using visual text", exc_info=True)
            text = display_text

        return ExtractedSelection(text=text, display_text=display_text)

    def _semantic_text(self, rng: SelectionRange) -> str:
        annotation = self.resolver.from_boundary(rng)
        if annotation is not None:
            logger.debug("Selection lies inside one equation: %r", annotation.source[:40])
            return annotation.render()

        fragment = rng.clone_contents()
        if not self.resolver.has_math(fragment):
            return collapse_blank_lines(render_text(fragment)).strip()

        logger.debug("Math elements detected in selection, extracting source notation")
        self.resolver.reassociate_orphans(fragment, rng)
        self.resolver.replace_math(fragment)
        return collapse_blank_lines(render_text(fragment)).strip()


def _first_range(selection: Selection | SelectionRange | None) -> SelectionRange | None:
    if isinstance(selection, SelectionRange):
        return selection
    if selection is None or selection.range_count == 0:
        return None
    return selection.get_range_at(0)


def extract_selection(
    selection: Selection | SelectionRange | None,
    math_selectors: MathSelectors = DEFAULT_MATH_SELECTORS,
) -> ExtractedSelection:
    """Convenience wrapper around :meth:`SelectionExtractor.extract`."""
    return SelectionExtractor(math_selectors).extract(selection)
