"""Citation templates — the block a quote is wrapped in before sending.

A template holds the placeholder ``[SELECTED]`` exactly once.  The
current template lives in the settings store under ``citationFormat``;
:class:`CitationTemplateCache` keeps a local copy that follows changes.
"""

from __future__ import annotations

import logging

from shared.settings_store import SettingsStore, StorageChange

logger = logging.getLogger(__name__)

PLACEHOLDER = "[SELECTED]"

SETTINGS_KEY = "citationFormat"

DEFAULT_CITATION_TEMPLATE = (
    "Regarding the following selected content:\n"
    "------\n"
    f"{PLACEHOLDER}\n"
    "------\n"
)


def validate_template(raw: str) -> str:
    """Return *raw* unchanged, or raise ``ValueError`` if it is not a usable template."""
    count = raw.count(PLACEHOLDER)
    if count != 1:
        raise ValueError(
            f"Citation template must contain the {PLACEHOLDER} placeholder exactly once "
            f"(found {count})"
        )
    return raw


def to_display(template: str) -> str:
    """Show real newlines as literal ``\\n`` for single-line editors."""
    return template.replace("\n", "\\n")


def from_display(text: str) -> str:
    """Inverse of :func:`to_display`."""
    return text.replace("\\n", "\n")


def render_citation(template: str, quote: str) -> str:
    """Substitute *quote* for the placeholder of *template*."""
    return template.replace(PLACEHOLDER, quote, 1)


def compose_message(template: str, quote: str, live_input: str = "") -> str:
    """Build the outgoing message from the citation and what the user typed.

    With no live input the citation alone is sent, trailing whitespace
    removed.
    """
    citation = render_citation(template, quote)
    live = live_input.strip()
    if not live:
        return citation.rstrip()
    return citation + live


class CitationTemplateCache:
    """Local copy of the current citation template.

    Read once at construction and replaced whenever the store reports a
    change.  Falls back to :data:`DEFAULT_CITATION_TEMPLATE` when the store
    is missing, unreadable, or holds an unusable value.
    """

    def __init__(self, store: SettingsStore | None = None) -> None:
        self._store = store
        self._template = DEFAULT_CITATION_TEMPLATE

        if store is None:
            logger.debug("No settings store; using default citation template.")
            return

        try:
            items = store.get({SETTINGS_KEY: DEFAULT_CITATION_TEMPLATE})
        except (OSError, ValueError):
            logger.warning("Settings store unreachable — using default citation template", exc_info=True)
        else:
            self._template = self._usable(items.get(SETTINGS_KEY))
            logger.debug("Loaded citation template from %s", store.path)

        store.add_listener(self._on_change)

    @property
    def template(self) -> str:
        return self._template

    def render(self, quote: str) -> str:
        return render_citation(self._template, quote)

    def close(self) -> None:
        if self._store is not None:
            self._store.remove_listener(self._on_change)

    def _on_change(self, changes: dict[str, StorageChange]) -> None:
        change = changes.get(SETTINGS_KEY)
        if change is None:
            return
        self._template = self._usable(change.new_value)
        logger.info("Citation template updated from settings store")

    @staticmethod
    def _usable(value) -> str:
        if not isinstance(value, str) or not value:
            return DEFAULT_CITATION_TEMPLATE
        try:
            return validate_template(value)
        except ValueError:
            logger.warning("Stored citation template has no usable placeholder — using default")
            return DEFAULT_CITATION_TEMPLATE
