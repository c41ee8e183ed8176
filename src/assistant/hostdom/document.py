"""Host document — a BeautifulSoup tree with the browser-side state around it.

The core reads and writes a page through this object only: CSS lookups
over prioritized selector lists, event dispatch with a capture phase,
element values and focus, shadow roots, the selection, mutation
observation and the current location.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Generic, Iterable, TypeVar

import soupsieve as sv
from bs4 import BeautifulSoup, NavigableString, Tag
from bs4.element import PageElement
from soupsieve import SelectorSyntaxError

from hostdom.selection import Selection

logger = logging.getLogger(__name__)


@dataclass
class HostEvent:
    """A DOM-style event travelling through the document."""

    type: str
    target: PageElement | None = None
    key: str = ""
    shift_key: bool = False
    synthetic: bool = False
    default_prevented: bool = False
    propagation_stopped: bool = False

    def prevent_default(self) -> None:
        self.default_prevented = True

    def stop_propagation(self) -> None:
        self.propagation_stopped = True


Listener = Callable[[HostEvent], None]
MutationObserver = Callable[[list[PageElement]], None]

# contenteditable values that make an element editable
_EDITABLE_VALUES = {"", "true", "plaintext-only"}


def _element(node: PageElement | None) -> Tag | None:
    """Return *node* itself for tags, its parent element for text nodes."""
    if isinstance(node, NavigableString):
        node = node.parent
    return node if isinstance(node, Tag) else None


T = TypeVar("T")


class _ElementState(Generic[T]):
    """Per-element state keyed by identity.

    bs4 tags compare by markup, so entries are keyed by ``id()`` and hold
    the element itself; a reused id never matches a stale entry.
    """

    def __init__(self) -> None:
        self._entries: dict[int, tuple[Tag, T]] = {}

    def __contains__(self, element: Tag) -> bool:
        entry = self._entries.get(id(element))
        return entry is not None and entry[0] is element

    def get(self, element: Tag, default: T | None = None) -> T | None:
        entry = self._entries.get(id(element))
        if entry is None or entry[0] is not element:
            return default
        return entry[1]

    def set(self, element: Tag, value: T) -> None:
        self._entries[id(element)] = (element, value)

    def discard(self, element: Tag) -> None:
        if element in self:
            del self._entries[id(element)]

    def __len__(self) -> int:
        return len(self._entries)


def _matches(tag: Tag, selector: str) -> bool:
    try:
        return sv.match(selector, tag)
    except SelectorSyntaxError:
        logger.debug("Skipping invalid selector %r", selector)
        return False


class HostDocument:
    """A rendered page the assistant can observe and drive."""

    def __init__(
        self,
        markup: str | BeautifulSoup,
        location: str = "about:blank",
        *,
        editing_commands: bool = True,
    ) -> None:
        self.soup = markup if isinstance(markup, BeautifulSoup) else BeautifulSoup(markup, "html.parser")
        self.location = location
        self.editing_commands = editing_commands
        self.selection = Selection()
        self.active_element: Tag | None = None

        self._capture: dict[str, list[Listener]] = {}
        self._bubble: dict[str, list[Listener]] = {}
        self._observers: list[MutationObserver] = []
        self._shadow_roots: _ElementState[BeautifulSoup] = _ElementState()
        self._values: _ElementState[str] = _ElementState()
        self._carets: _ElementState[int] = _ElementState()

    @property
    def body(self) -> Tag:
        return self.soup.body or self.soup

    # ------------------------------------------------------------------
    # Selector lookups
    # ------------------------------------------------------------------

    def query(self, selectors: Iterable[str], root: Tag | None = None) -> Tag | None:
        """Return the first element matched by the first selector that matches."""
        scope = root if root is not None else self.soup
        for selector in selectors:
            try:
                found = scope.select_one(selector)
            except SelectorSyntaxError:
                logger.debug("Skipping invalid selector %r", selector)
                continue
            if found is not None:
                logger.debug("Selector %r matched <%s>", selector, found.name)
                return found
        return None

    def closest(self, node: PageElement | None, selectors: Iterable[str]) -> Tag | None:
        """Return the nearest element (self included) matching any selector."""
        element = _element(node)
        selectors = list(selectors)
        while element is not None and not isinstance(element, BeautifulSoup):
            if any(_matches(element, s) for s in selectors):
                return element
            element = element.parent
        return None

    def is_inside(self, node: PageElement | None, selectors: Iterable[str]) -> bool:
        return self.closest(node, selectors) is not None

    @staticmethod
    def contains(container: Tag | None, node: PageElement | None) -> bool:
        """Return ``True`` if *node* is *container* or one of its descendants."""
        if container is None or node is None:
            return False
        return node is container or any(p is container for p in node.parents)

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def add_listener(self, event_type: str, listener: Listener, capture: bool = False) -> None:
        registry = self._capture if capture else self._bubble
        registry.setdefault(event_type, []).append(listener)

    def remove_listener(self, event_type: str, listener: Listener, capture: bool = False) -> None:
        registry = self._capture if capture else self._bubble
        listeners = registry.get(event_type, [])
        if listener in listeners:
            listeners.remove(listener)

    def dispatch(self, event: HostEvent) -> bool:
        """Run capture listeners, then bubble listeners unless stopped.

        Returns ``False`` if a listener cancelled the event.
        """
        for listener in list(self._capture.get(event.type, [])):
            listener(event)
            if event.propagation_stopped:
                return not event.default_prevented
        for listener in list(self._bubble.get(event.type, [])):
            listener(event)
            if event.propagation_stopped:
                break
        return not event.default_prevented

    def click(self, target: PageElement, synthetic: bool = False) -> bool:
        return self.dispatch(HostEvent("click", target=target, synthetic=synthetic))

    def press_key(
        self,
        key: str,
        shift: bool = False,
        target: PageElement | None = None,
        synthetic: bool = False,
    ) -> bool:
        event = HostEvent(
            "keydown",
            target=target if target is not None else self.active_element,
            key=key,
            shift_key=shift,
            synthetic=synthetic,
        )
        return self.dispatch(event)

    def pointer_down(self, target: PageElement | None = None) -> bool:
        return self.dispatch(HostEvent("mousedown", target=target))

    def pointer_up(self, target: PageElement | None = None) -> bool:
        return self.dispatch(HostEvent("mouseup", target=target))

    def scroll(self) -> bool:
        return self.dispatch(HostEvent("scroll", target=self.body))

    def notify_change(self, target: Tag) -> None:
        """Fire the ``input`` and ``change`` notifications frameworks listen for."""
        self.dispatch(HostEvent("input", target=target, synthetic=True))
        self.dispatch(HostEvent("change", target=target, synthetic=True))

    # ------------------------------------------------------------------
    # Focus, values and editing
    # ------------------------------------------------------------------

    def focus(self, element: Tag) -> None:
        if self.active_element is element:
            return
        self.active_element = element
        self.dispatch(HostEvent("focus", target=element, synthetic=True))

    def is_content_editable(self, element: Tag) -> bool:
        node: Tag | None = element
        while isinstance(node, Tag) and not isinstance(node, BeautifulSoup):
            value = node.get("contenteditable")
            if value is not None:
                return str(value).strip().lower() in _EDITABLE_VALUES
            node = node.parent
        return False

    def define_value_property(self, element: Tag, value: str = "") -> None:
        """Give a custom element a ``value`` property."""
        self._values.set(element, value)

    def has_value(self, element: Tag) -> bool:
        return element.name in ("textarea", "input") or element in self._values

    def get_value(self, element: Tag) -> str:
        if element in self._values:
            return self._values.get(element)
        if element.name == "textarea":
            return element.get_text()
        if element.name == "input":
            return str(element.get("value", ""))
        return ""

    def set_value(self, element: Tag, value: str) -> None:
        self._values.set(element, value)

    def set_caret(self, element: Tag, position: int) -> None:
        self._carets.set(element, position)

    def caret(self, element: Tag) -> int | None:
        return self._carets.get(element)

    def replace_contents(self, element: Tag, nodes: list[PageElement]) -> bool:
        """Replace the children of *element* through the host's editing command.

        The command fires its own ``input`` notification.  Returns ``False``
        (and changes nothing) when the host has editing commands disabled.
        """
        if not self.editing_commands:
            return False
        element.clear()
        for node in nodes:
            element.append(node)
        self.dispatch(HostEvent("input", target=element, synthetic=True))
        return True

    # ------------------------------------------------------------------
    # Shadow roots
    # ------------------------------------------------------------------

    def attach_shadow(self, host: Tag, markup: str = "") -> BeautifulSoup:
        root = BeautifulSoup(markup, "html.parser")
        self._shadow_roots.set(host, root)
        return root

    def shadow_root(self, host: Tag) -> BeautifulSoup | None:
        return self._shadow_roots.get(host)

    # ------------------------------------------------------------------
    # Mutations and navigation
    # ------------------------------------------------------------------

    def observe(self, observer: MutationObserver) -> None:
        self._observers.append(observer)

    def disconnect(self, observer: MutationObserver) -> None:
        if observer in self._observers:
            self._observers.remove(observer)

    def remove(self, node: PageElement) -> PageElement:
        """Detach *node* from the tree and report it to mutation observers."""
        removed = node.extract()
        self._forget(removed)
        for observer in list(self._observers):
            observer([removed])
        return removed

    def _forget(self, node: PageElement) -> None:
        """Drop values, carets and shadow roots held for a detached subtree."""
        if not isinstance(node, Tag):
            return
        for element in [node, *node.find_all(True)]:
            self._values.discard(element)
            self._carets.discard(element)
            self._shadow_roots.discard(element)

    def navigate(self, location: str) -> None:
        self.location = location
