"""Selector probe — which host selectors match a given page.

Used to check the built-in (or overlaid) selector tables against a saved
copy of the host page after it changes its markup.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from soupsieve import SelectorSyntaxError

from hostdom.document import HostDocument
from shared.selectors import HostSelectors

logger = logging.getLogger(__name__)


@dataclass
class ProbeReport:
    """Match counts per selector, grouped by role."""

    response: dict[str, int] = field(default_factory=dict)
    input: dict[str, int] = field(default_factory=dict)
    send: dict[str, int] = field(default_factory=dict)

    @property
    def input_found(self) -> bool:
        return any(self.input.values())

    @property
    def response_found(self) -> bool:
        return any(self.response.values())


def _count(document: HostDocument, selectors: tuple[str, ...]) -> dict[str, int]:
    counts = {}
    for selector in selectors:
        try:
            counts[selector] = len(document.soup.select(selector))
        except SelectorSyntaxError:
            logger.warning("Invalid selector %r", selector)
            counts[selector] = 0
    return counts


def probe_selectors(document: HostDocument, selectors: HostSelectors) -> ProbeReport:
    report = ProbeReport(
        response=_count(document, selectors.response),
        input=_count(document, selectors.input),
        send=_count(document, selectors.send),
    )
    logger.debug("Response selectors: %s", report.response)
    logger.debug("Input selectors: %s", report.input)
    if not report.input_found:
        logger.warning("No input selector matched.")
    return report
