"""Floating elements the assistant adds to the host page.

- :class:`FloatingTrigger` — the "Ask Gemini" button shown next to a
  fresh selection
- :class:`QuoteIndicator` — shows the captured quote above the input,
  with a dismiss control
- :class:`NoticeBanner` — user-visible failure notice

Each element is created lazily in the host document's body and shown or
hidden by toggling a CSS class.  Positioning is left to the stylesheet.
"""

from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod

from bs4 import Tag
from bs4.element import PageElement

from hostdom.document import HostDocument

logger = logging.getLogger(__name__)

VISIBLE_CLASS = "ask-gemini-visible"

# Longest preview shown in the indicator
PREVIEW_LIMIT = 80

_WHITESPACE_RE = re.compile(r"\s+")


def preview(text: str, limit: int = PREVIEW_LIMIT) -> str:
    """Collapse *text* to one line and cut it to *limit* characters."""
    line = _WHITESPACE_RE.sub(" ", text).strip()
    if len(line) <= limit:
        return line
    return line[: limit - 1].rstrip() + "…"


class _Overlay(ABC):
    element_id = ""

    def __init__(self, document: HostDocument) -> None:
        self.document = document
        self._element: Tag | None = None

    @abstractmethod
    def _build(self) -> Tag:
        """Create the detached element."""

    @property
    def element(self) -> Tag:
        if self._element is None:
            self._element = self._build()
            self.document.body.append(self._element)
            logger.debug("Created overlay #%s", self.element_id)
        return self._element

    @property
    def visible(self) -> bool:
        return self._element is not None and VISIBLE_CLASS in self._element.get("class", [])

    def show(self) -> None:
        classes = self.element.get("class", [])
        if VISIBLE_CLASS not in classes:
            self.element["class"] = [*classes, VISIBLE_CLASS]

    def hide(self) -> None:
        if self._element is None:
            return
        classes = self._element.get("class", [])
        if VISIBLE_CLASS in classes:
            self._element["class"] = [c for c in classes if c != VISIBLE_CLASS]

    def contains(self, node: PageElement | None) -> bool:
        return self._element is not None and self.document.contains(self._element, node)


class FloatingTrigger(_Overlay):
    """Button offered next to a fresh selection."""

    element_id = "ask-gemini-bubble"

    def _build(self) -> Tag:
        soup = self.document.soup
        bubble = soup.new_tag("div", attrs={"id": self.element_id, "role": "button", "tabindex": "0"})
        icon = soup.new_tag("span", attrs={"class": "ask-gemini-bubble-icon"})
        icon.string = "✨"
        label = soup.new_tag("span", attrs={"class": "ask-gemini-bubble-label"})
        label.string = "Ask Gemini"
        bubble.append(icon)
        bubble.append(label)
        return bubble


class QuoteIndicator(_Overlay):
    """Shows the captured quote until it is sent or dismissed."""

    element_id = "ask-gemini-quote"

    def _build(self) -> Tag:
        soup = self.document.soup
        box = soup.new_tag("div", attrs={"id": self.element_id})
        text = soup.new_tag("span", attrs={"class": "ask-gemini-quote-text"})
        dismiss = soup.new_tag(
            "span",
            attrs={"class": "ask-gemini-quote-dismiss", "role": "button", "aria-label": "Remove quote"},
        )
        dismiss.string = "×"
        box.append(text)
        box.append(dismiss)
        return box

    @property
    def text(self) -> str:
        return self.element.select_one(".ask-gemini-quote-text").get_text()

    @property
    def dismiss_control(self) -> Tag:
        return self.element.select_one(".ask-gemini-quote-dismiss")

    def show_quote(self, display_text: str) -> None:
        self.element.select_one(".ask-gemini-quote-text").string = preview(display_text)
        self.show()


class NoticeBanner(_Overlay):
    """User-visible notice for failures the user has to act on."""

    element_id = "ask-gemini-notice"

    def _build(self) -> Tag:
        return self.document.soup.new_tag("div", attrs={"id": self.element_id, "role": "alert"})

    @property
    def message(self) -> str:
        return self.element.get_text() if self._element is not None else ""

    def notify(self, message: str) -> None:
        logger.warning("Notice: %s", message)
        self.element.string = message
        self.show()
