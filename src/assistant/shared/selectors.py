"""Selector tables describing the host page.

The core never hardcodes which elements are responses, inputs or send
controls.  Everything it looks up goes through a :class:`HostSelectors`
or :class:`MathSelectors` instance, so a page redesign only needs a new
JSON overlay (``QUOTE_SELECTORS_FILE``), not new code.

Overlay format::

    {
      "host": {"send": ["button.send-button"]},
      "math": {"source_attribute": "data-tex"}
    }

List-valued fields replace the built-in list wholesale.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, fields, replace
from pathlib import Path

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HostSelectors:
    """Prioritized CSS selector lists for the host page (first match wins)."""

    # Containers where model responses are rendered
    response: tuple[str, ...] = (
        ".model-response-text",
        ".response-container-content",
        ".response-container",
        ".message-content",
        ".markdown-main-panel",
        ".model-response",
        '[data-message-author-role="model"]',
        ".markdown",
        ".markdown-body",
    )

    # Editable input surfaces, most specific first
    input: tuple[str, ...] = (
        "rich-textarea .ql-editor",
        "rich-textarea .ProseMirror",
        "rich-textarea [contenteditable='true']",
        "rich-textarea [contenteditable]",
        ".text-input-field [contenteditable='true']",
        ".input-area [contenteditable='true']",
        "rich-textarea",
        'div[contenteditable="true"][data-placeholder]',
        "textarea.text-input",
        ".input-area textarea",
        "textarea[aria-label]",
    )

    # Regions owned by the input or toolbars; selections there are ignored
    exclude: tuple[str, ...] = (
        "rich-textarea",
        ".text-input-field",
        ".input-area-container",
        ".input-area",
        "button",
        '[role="button"]',
        ".toolbar",
        ".action-bar",
    )

    # The host's native send control
    send: tuple[str, ...] = (
        "button.send-button",
        'button[aria-label="Send message"]',
        'button[data-testid="send-button"]',
    )

    # Editable regions searched for inside a composite editing widget
    inner_editable: tuple[str, ...] = (
        ".ql-editor",
        ".ProseMirror",
        '[contenteditable="true"]',
        "[contenteditable]",
    )

    # Custom elements that wrap an inner editable region
    composite_tags: tuple[str, ...] = ("rich-textarea",)


@dataclass(frozen=True)
class MathSelectors:
    """How rendered math is recognized and where its source notation lives."""

    # Any of these inside a fragment means "math present"
    marker: str = (
        ".katex, .katex-display, .MathJax, mjx-container, math, "
        ".math-inline, .math-block, [data-math]"
    )

    # Attribute-annotated wrappers
    source_attribute: str = "data-math"
    display_wrapper: str = ".math-block"
    inline_wrapper: str = ".math-inline"

    # KaTeX
    katex_display: str = ".katex-display"
    katex: str = ".katex"
    tex_annotation: str = 'annotation[encoding="application/x-tex"]'

    # MathJax 3 container and MathJax 2 rendered span
    mathjax3: str = "mjx-container"
    mathjax2: str = ".MathJax"

    # Bare MathML
    mathml: str = "math"

    # Alternate-format copies of content that is emitted elsewhere
    hidden_mirrors: tuple[str, ...] = (".katex-mathml", ".MathJax_Preview")


DEFAULT_HOST_SELECTORS = HostSelectors()
DEFAULT_MATH_SELECTORS = MathSelectors()


def _overlay(base, data: dict, label: str):
    """Return *base* with the known keys of *data* replaced."""
    known = {f.name: f for f in fields(base)}
    changes = {}
    for key, value in data.items():
        if key not in known:
            logger.warning("Ignoring unknown %s selector key %r", label, key)
            continue
        current = getattr(base, key)
        if isinstance(current, tuple):
            if isinstance(value, str):
                value = [value]
            changes[key] = tuple(str(v) for v in value)
        else:
            changes[key] = str(value)
    return replace(base, **changes)


def load_selectors(path: Path | None) -> tuple[HostSelectors, MathSelectors]:
    """Load selector tables, overlaying *path* on the built-in defaults.

    A missing, unreadable or malformed overlay logs a warning and the
    defaults are used unchanged.
    """
    if path is None:
        return DEFAULT_HOST_SELECTORS, DEFAULT_MATH_SELECTORS

    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, ValueError):
        logger.warning("Could not read selector overlay %s — using defaults", path, exc_info=True)
        return DEFAULT_HOST_SELECTORS, DEFAULT_MATH_SELECTORS

    if not isinstance(data, dict):
        logger.warning("Selector overlay %s is not a JSON object — using defaults", path)
        return DEFAULT_HOST_SELECTORS, DEFAULT_MATH_SELECTORS

    host = _overlay(DEFAULT_HOST_SELECTORS, data.get("host") or {}, "host")
    math = _overlay(DEFAULT_MATH_SELECTORS, data.get("math") or {}, "math")
    logger.info("Loaded selector overlay from %s", path)
    return host, math
