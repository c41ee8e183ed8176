"""Quote session controller — the capture / compose / send state machine.

States::

    IDLE ──commit──▶ QUOTED ──send gesture──▶ COMPOSING ──re-send──▶ IDLE
                       │  ▲                        │
                       │  └─────injection failed───┘
                       └──dismiss / navigation──▶ IDLE

- A pointer-up schedules a read of the selection; a valid, non-empty
  extraction shows the floating trigger.  Clicking the trigger commits
  the quote (IDLE/QUOTED → QUOTED).
- A send gesture (send-control click, or unshifted Enter in the input)
  while QUOTED is cancelled in the capture phase.  The citation plus the
  live input is injected, then the native send is re-triggered once with
  the bypass flag set so that the controller lets that synthesized
  event through.  User gestures are never bypassed, and committing a new
  quote drops the flag.
- Navigation (location change, or removal of a response subtree) clears
  the quote from any state.

Every deferred step is a :class:`DeferredTask` stamped with the state
generation it was scheduled in; a task whose generation is no longer
current is dropped instead of acting on changed state.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Callable

from bs4 import Tag
from bs4.element import PageElement

from composer.citation import CitationTemplateCache, compose_message
from composer.overlay import FloatingTrigger, NoticeBanner, QuoteIndicator
from composer.surfaces import CompositionInjector, EditableSurface
from extraction import ExtractedSelection, SelectionExtractor
from hostdom.document import HostDocument, HostEvent
from hostdom.scheduler import Scheduler
from hostdom.selection import Selection
from shared.config import Config, config
from shared.selectors import DEFAULT_HOST_SELECTORS, DEFAULT_MATH_SELECTORS, HostSelectors, MathSelectors

logger = logging.getLogger(__name__)

NO_SURFACE_NOTICE = (
    "Ask Gemini: Could not find the input box. "
    "The page structure may have changed. "
    "Please copy the text manually."
)


class QuoteState(enum.Enum):
    IDLE = "idle"
    QUOTED = "quoted"
    COMPOSING = "composing"


@dataclass(frozen=True)
class QuoteSession:
    """The captured quote awaiting the next send."""

    raw_text: str
    display_text: str


@dataclass(frozen=True)
class Timings:
    """Deferral lengths in milliseconds."""

    selection_settle_ms: int = 10
    focus_settle_ms: int = 50
    send_delay_ms: int = 100
    bypass_clear_ms: int = 500
    location_poll_ms: int = 1000

    @classmethod
    def from_config(cls, cfg: Config) -> Timings:
        return cls(
            selection_settle_ms=cfg.selection_settle_ms,
            focus_settle_ms=cfg.focus_settle_ms,
            send_delay_ms=cfg.send_delay_ms,
            bypass_clear_ms=cfg.bypass_clear_ms,
            location_poll_ms=cfg.location_poll_ms,
        )


@dataclass(frozen=True)
class DeferredTask:
    """A scheduled step and the state it was scheduled against."""

    name: str
    generation: int
    selection_epoch: int | None = None


class QuoteSessionController:
    """Owns the quote session and the floating UI of one host document."""

    def __init__(
        self,
        document: HostDocument,
        templates: CitationTemplateCache,
        scheduler: Scheduler,
        *,
        host_selectors: HostSelectors = DEFAULT_HOST_SELECTORS,
        math_selectors: MathSelectors = DEFAULT_MATH_SELECTORS,
        timings: Timings | None = None,
        compose_on_send: bool | None = None,
    ) -> None:
        self.document = document
        self.templates = templates
        self.scheduler = scheduler
        self.selectors = host_selectors
        self.timings = timings or Timings.from_config(config)
        self.compose_on_send = config.compose_on_send if compose_on_send is None else compose_on_send

        self.extractor = SelectionExtractor(math_selectors)
        self.injector = CompositionInjector(document, host_selectors)

        self.trigger = FloatingTrigger(document)
        self.indicator = QuoteIndicator(document)
        self.notice = NoticeBanner(document)

        self._state = QuoteState.IDLE
        self._session: QuoteSession | None = None
        self._candidate: ExtractedSelection | None = None
        self._bypass = False
        self._bypass_token = 0
        self._generation = 0
        self._selection_epoch = 0
        self._last_location = document.location
        self._poll_handle = None
        self._listeners: list[tuple[str, Callable[[HostEvent], None]]] = [
            ("mouseup", self.on_pointer_up),
            ("mousedown", self.on_pointer_down),
            ("keydown", self.on_key_down),
            ("click", self.on_click),
            ("scroll", self.on_scroll),
        ]

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Listen to the document (capture phase) and start location polling."""
        for event_type, listener in self._listeners:
            self.document.add_listener(event_type, listener, capture=True)
        self.document.observe(self.on_mutation)
        self._last_location = self.document.location
        self._schedule_poll()
        logger.info("Quote assistant initialized (compose_on_send=%s).", self.compose_on_send)

    def stop(self) -> None:
        for event_type, listener in self._listeners:
            self.document.remove_listener(event_type, listener, capture=True)
        self.document.disconnect(self.on_mutation)
        if self._poll_handle is not None:
            self._poll_handle.cancel()
            self._poll_handle = None

    @property
    def state(self) -> QuoteState:
        return self._state

    @property
    def session(self) -> QuoteSession | None:
        return self._session

    @property
    def candidate(self) -> ExtractedSelection | None:
        return self._candidate

    @property
    def bypass_active(self) -> bool:
        return self._bypass

    # ------------------------------------------------------------------
    # Deferred tasks
    # ------------------------------------------------------------------

    def _enter(self, state: QuoteState) -> None:
        self._generation += 1
        if state is not self._state:
            logger.info("Quote state %s → %s", self._state.value, state.value)
        self._state = state

    def _defer(self, delay_ms: int, task: DeferredTask, action: Callable[[], None]) -> None:
        def _run() -> None:
            if not self._is_current(task):
                logger.debug("Dropping stale task %s", task.name)
                return
            action()

        self.scheduler.call_later(delay_ms, _run)

    def _task(self, name: str, selection: bool = False) -> DeferredTask:
        return DeferredTask(
            name=name,
            generation=self._generation,
            selection_epoch=self._selection_epoch if selection else None,
        )

    def _is_current(self, task: DeferredTask) -> bool:
        if task.generation != self._generation:
            return False
        return task.selection_epoch is None or task.selection_epoch == self._selection_epoch

    # ------------------------------------------------------------------
    # Selection → trigger
    # ------------------------------------------------------------------

    def on_pointer_up(self, event: HostEvent) -> None:
        if self.trigger.contains(event.target) or self.indicator.contains(event.target):
            return
        self.check_location()
        self._selection_epoch += 1
        self._defer(
            self.timings.selection_settle_ms,
            self._task("read-selection", selection=True),
            self._read_selection,
        )

    def _read_selection(self) -> None:
        if self._state is QuoteState.COMPOSING:
            return

        selection = self.document.selection
        result = self.extractor.extract(selection)

        if not result.text:
            self._drop_candidate()
            return

        if not self.is_valid_selection(selection):
            logger.debug("Selection is not in a valid area.")
            self._drop_candidate()
            return

        self._candidate = result
        self.trigger.show()
        logger.debug("Valid text selected: %s", result.text[:80])

    def _drop_candidate(self) -> None:
        self._candidate = None
        self.trigger.hide()

    def is_valid_selection(self, selection: Selection) -> bool:
        """Accept a selection unless its anchor lies in an excluded region."""
        anchor = selection.anchor_node
        if anchor is None:
            return False
        if self.trigger.contains(anchor) or self.indicator.contains(anchor):
            return False
        if self.document.is_inside(anchor, self.selectors.exclude):
            logger.debug("Selection is inside an excluded area (input/toolbar).")
            return False
        if self.document.is_inside(anchor, self.selectors.response):
            logger.debug("Selection is inside a known response container.")
            return True
        logger.debug("Selection is outside known containers but not excluded; accepting.")
        return True

    def commit_selection(self) -> bool:
        """Turn the pending candidate into the quote session."""
        candidate = self._candidate
        self._candidate = None
        self.document.selection.remove_all_ranges()
        self.trigger.hide()

        if candidate is None or not candidate.text:
            logger.warning("No text selected.")
            return False
        if self._state is QuoteState.COMPOSING:
            logger.debug("Ignoring capture while a message is being composed.")
            return False

        if not self.compose_on_send:
            return self._inject_now(candidate)

        self._bypass = False
        self._session = QuoteSession(raw_text=candidate.text, display_text=candidate.display_text)
        self.indicator.show_quote(candidate.display_text)
        self._enter(QuoteState.QUOTED)
        return True

    def _inject_now(self, candidate: ExtractedSelection) -> bool:
        surface = self.injector.find_surface()
        if surface is None:
            self.notice.notify(NO_SURFACE_NOTICE)
            return False

        text = self.templates.render(candidate.text)
        self.document.focus(surface.focus_target)

        def _write() -> None:
            if self.injector.inject(surface, text):
                logger.info("Quote injected into the input box.")
            else:
                logger.warning("Failed to inject text into input.")

        self._defer(self.timings.focus_settle_ms, self._task("inject-now"), _write)
        return True

    # ------------------------------------------------------------------
    # Dismissal and navigation
    # ------------------------------------------------------------------

    def dismiss(self) -> None:
        """Drop the quote.  A no-op when there is none."""
        if self._session is None and self._state is QuoteState.IDLE:
            logger.debug("Dismiss with no active quote; nothing to do.")
            return
        self._session = None
        self.indicator.hide()
        self._enter(QuoteState.IDLE)

    def handle_navigation(self, reason: str) -> None:
        self._drop_candidate()
        if self._session is None and self._state is QuoteState.IDLE:
            return
        logger.info("Conversation changed (%s); clearing quote.", reason)
        self.dismiss()

    def check_location(self) -> bool:
        """Return ``True`` (and clear the quote) if the location changed."""
        if self.document.location == self._last_location:
            return False
        self._last_location = self.document.location
        self.handle_navigation("location change")
        return True

    def _schedule_poll(self) -> None:
        self._poll_handle = self.scheduler.call_later(self.timings.location_poll_ms, self._poll)

    def _poll(self) -> None:
        self.check_location()
        self._schedule_poll()

    def on_mutation(self, removed: list[PageElement]) -> None:
        markers = 0
        for node in removed:
            if not isinstance(node, Tag):
                continue
            if self.document.closest(node, self.selectors.response) is not None:
                markers += 1
            elif self.document.query(self.selectors.response, root=node) is not None:
                markers += 1
        if markers:
            self.handle_navigation("response subtree removed")

    # ------------------------------------------------------------------
    # Send interception
    # ------------------------------------------------------------------

    def _input_focused(self, event: HostEvent) -> bool:
        return self.document.is_inside(event.target, self.selectors.input) or self.document.is_inside(
            self.document.active_element, self.selectors.input
        )

    def on_send_gesture(self, event: HostEvent) -> None:
        if self._bypass and event.synthetic:
            logger.debug("Letting self-triggered send through.")
            return

        if self._state is QuoteState.COMPOSING:
            event.prevent_default()
            event.stop_propagation()
            logger.debug("Send already in progress; swallowing duplicate gesture.")
            return

        if self._state is not QuoteState.QUOTED or self._session is None:
            return

        event.prevent_default()
        event.stop_propagation()

        surface = self.injector.find_surface()
        if surface is None:
            self.notice.notify(NO_SURFACE_NOTICE)
            return

        message = compose_message(self.templates.template, self._session.raw_text, surface.read())
        self._enter(QuoteState.COMPOSING)
        self.document.focus(surface.focus_target)
        self._defer(
            self.timings.focus_settle_ms,
            self._task("compose"),
            lambda: self._compose(surface, message),
        )

    def _compose(self, surface: EditableSurface, message: str) -> None:
        if not self.injector.inject(surface, message):
            logger.warning("Injection failed; keeping the quote and not sending.")
            self._enter(QuoteState.QUOTED)
            return
        self._defer(
            self.timings.send_delay_ms,
            self._task("resend"),
            lambda: self._resend(surface),
        )

    def _resend(self, surface: EditableSurface) -> None:
        self._bypass = True
        self._bypass_token += 1
        token = self._bypass_token

        send = self.document.query(self.selectors.send)
        if send is not None:
            self.document.click(send, synthetic=True)
        else:
            logger.debug("No send control found; synthesizing Enter.")
            self.document.press_key("Enter", target=surface.focus_target, synthetic=True)

        self._session = None
        self.indicator.hide()
        self._enter(QuoteState.IDLE)
        self.scheduler.call_later(self.timings.bypass_clear_ms, lambda: self._clear_bypass(token))

    def _clear_bypass(self, token: int) -> None:
        if token == self._bypass_token:
            self._bypass = False

    # ------------------------------------------------------------------
    # Event listeners
    # ------------------------------------------------------------------

    def on_pointer_down(self, event: HostEvent) -> None:
        if not self.trigger.contains(event.target):
            self.trigger.hide()

    def on_scroll(self, event: HostEvent) -> None:
        self.trigger.hide()

    def on_click(self, event: HostEvent) -> None:
        target = event.target
        if self.trigger.contains(target):
            event.prevent_default()
            event.stop_propagation()
            self.commit_selection()
            return
        if self.indicator.visible and self.document.contains(self.indicator.dismiss_control, target):
            event.prevent_default()
            event.stop_propagation()
            self.dismiss()
            return
        if self.document.is_inside(target, self.selectors.send):
            self.on_send_gesture(event)

    def on_key_down(self, event: HostEvent) -> None:
        if self.trigger.visible and self.trigger.contains(event.target) and event.key in ("Enter", " "):
            event.prevent_default()
            self.commit_selection()
            return
        if event.key == "Escape":
            self.trigger.hide()
            self.document.selection.remove_all_ranges()
            self._candidate = None
            return
        if event.key == "Enter" and not event.shift_key and self._input_focused(event):
            self.on_send_gesture(event)
