"""composer — turn a captured quote into the next sent message.

``create_controller`` wires a :class:`QuoteSessionController` from the
process configuration: selector tables, the settings store holding the
citation template, and an asyncio-backed scheduler.
"""

from __future__ import annotations

import logging

from composer.citation import (
    DEFAULT_CITATION_TEMPLATE,
    PLACEHOLDER,
    CitationTemplateCache,
    compose_message,
    render_citation,
)
from composer.controller import QuoteSession, QuoteSessionController, QuoteState, Timings
from composer.probe import ProbeReport, probe_selectors
from composer.surfaces import CompositionInjector, EditableSurface
from hostdom.document import HostDocument
from hostdom.scheduler import AsyncioScheduler, Scheduler
from shared.config import config
from shared.selectors import load_selectors
from shared.settings_store import SettingsStore

logger = logging.getLogger(__name__)

__all__ = [
    "DEFAULT_CITATION_TEMPLATE",
    "PLACEHOLDER",
    "CitationTemplateCache",
    "CompositionInjector",
    "EditableSurface",
    "ProbeReport",
    "QuoteSession",
    "QuoteSessionController",
    "QuoteState",
    "Timings",
    "compose_message",
    "create_controller",
    "probe_selectors",
    "render_citation",
]


def create_controller(document: HostDocument, scheduler: Scheduler | None = None) -> QuoteSessionController:
    """Build and start a controller for *document* from ``config``."""
    host_selectors, math_selectors = load_selectors(config.selectors_path)
    templates = CitationTemplateCache(SettingsStore(config.settings_path))

    controller = QuoteSessionController(
        document,
        templates,
        scheduler or AsyncioScheduler(),
        host_selectors=host_selectors,
        math_selectors=math_selectors,
        timings=Timings.from_config(config),
        compose_on_send=config.compose_on_send,
    )
    controller.start()
    logger.info("Quote controller started for %s", document.location)
    return controller
