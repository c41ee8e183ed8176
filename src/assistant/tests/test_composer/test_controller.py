"""Tests for composer.controller — the quote / compose / send state machine.

The host page's own send behaviour is modelled by bubble-phase listeners
that record every native send; the controller listens in the capture
phase, as it does on the real page.
"""

from unittest.mock import patch

import pytest

from composer import create_controller
from composer.citation import CitationTemplateCache
from composer.controller import QuoteSession, QuoteSessionController, QuoteState, Timings
from composer.surfaces import CompositionInjector
from hostdom import HostDocument, HostEvent, ManualScheduler, SelectionRange
from shared.selectors import DEFAULT_HOST_SELECTORS

TIMINGS = Timings()

EXPECTED_SKY = "Regarding the following selected content:\n------\nThe sky is blue\n------"


def install_host_send(doc: HostDocument) -> list[str]:
    """Register the host's native send handlers; return the send log."""
    sends: list[str] = []

    def _on_click(event: HostEvent) -> None:
        if not event.default_prevented and doc.is_inside(event.target, DEFAULT_HOST_SELECTORS.send):
            sends.append("click")

    def _on_key(event: HostEvent) -> None:
        if (
            event.key == "Enter"
            and not event.shift_key
            and not event.default_prevented
            and doc.is_inside(event.target, DEFAULT_HOST_SELECTORS.input)
        ):
            sends.append("enter")

    doc.add_listener("click", _on_click)
    doc.add_listener("keydown", _on_key)
    return sends


@pytest.fixture
def sends(chat_document) -> list[str]:
    return install_host_send(chat_document)


@pytest.fixture
def controller(chat_document, scheduler, sends):
    ctrl = QuoteSessionController(
        chat_document,
        CitationTemplateCache(),
        scheduler,
        timings=TIMINGS,
        compose_on_send=True,
    )
    ctrl.start()
    yield ctrl
    ctrl.stop()


@pytest.fixture
def select(chat_document, scheduler, find_text):
    """Select the text node containing a substring and release the pointer."""

    def _select(needle: str) -> None:
        node = find_text(chat_document.soup, needle)
        chat_document.selection.select(SelectionRange(node, 0, node, len(node)))
        chat_document.pointer_up(node.parent)
        scheduler.advance(TIMINGS.selection_settle_ms)

    return _select


@pytest.fixture
def capture(chat_document, controller, select):
    """Select a text and click the floating trigger."""

    def _capture(needle: str) -> None:
        select(needle)
        assert controller.trigger.visible
        chat_document.click(controller.trigger.element)

    return _capture


def _editor(doc: HostDocument):
    return doc.soup.find(class_="ql-editor")


def _press_enter_in_input(doc: HostDocument) -> bool:
    doc.focus(_editor(doc))
    return doc.press_key("Enter")


def _finish_compose(scheduler: ManualScheduler) -> None:
    scheduler.advance(TIMINGS.focus_settle_ms)
    scheduler.advance(TIMINGS.send_delay_ms)


# ---------------------------------------------------------------------------
# Selection and capture
# ---------------------------------------------------------------------------


class TestCapture:
    """Idle → Quoted."""

    def test_selection_shows_trigger(self, controller, select) -> None:
        """A settled selection shows the trigger without committing."""
        select("The sky is blue")
        assert controller.trigger.visible
        assert controller.candidate.text == "The sky is blue"
        assert controller.state is QuoteState.IDLE

    def test_trigger_click_commits_quote(self, chat_document, controller, capture) -> None:
        """Clicking the trigger commits the quote and clears the selection."""
        capture("The sky is blue")
        assert controller.state is QuoteState.QUOTED
        assert controller.session == QuoteSession("The sky is blue", "The sky is blue")
        assert controller.indicator.visible
        assert controller.indicator.text == "The sky is blue"
        assert not controller.trigger.visible
        assert chat_document.selection.range_count == 0

    def test_trigger_keyboard_activation(self, chat_document, controller, select) -> None:
        """Enter on the focused trigger commits the quote."""
        select("The sky is blue")
        chat_document.press_key("Enter", target=controller.trigger.element)
        assert controller.state is QuoteState.QUOTED

    def test_partial_paragraph_quote(self, controller, capture) -> None:
        """Part of a paragraph is quoted as selected."""
        capture("Energy")
        assert controller.session.raw_text == "Energy"

    def test_math_quote_keeps_source(self, chat_document, controller, scheduler) -> None:
        """A quote with math keeps the TeX; the preview shows the visual text."""
        paragraph = chat_document.soup.find(id="inline")
        chat_document.selection.select(SelectionRange.covering(paragraph))
        chat_document.pointer_up(paragraph)
        scheduler.advance(TIMINGS.selection_settle_ms)
        chat_document.click(controller.trigger.element)

        assert controller.session == QuoteSession("Energy $E=mc^2$ holds.", "Energy E=mc2 holds.")
        assert controller.indicator.text == "Energy E=mc2 holds."

    def test_excluded_region_rejected(self, controller, select) -> None:
        """Selections inside excluded regions offer no trigger."""
        select("Send")
        assert not controller.trigger.visible
        assert controller.candidate is None

    def test_unknown_region_accepted(self, scheduler, find_text) -> None:
        """Selections outside any known response region are accepted."""
        doc = HostDocument("<body><aside><p>Loose text</p></aside></body>")
        ctrl = QuoteSessionController(doc, CitationTemplateCache(), scheduler, timings=TIMINGS)
        ctrl.start()
        node = find_text(doc.soup, "Loose")
        doc.selection.select(SelectionRange(node, 0, node, len(node)))
        doc.pointer_up(node.parent)
        scheduler.advance(TIMINGS.selection_settle_ms)
        assert ctrl.trigger.visible

    def test_empty_selection_hides_trigger(self, chat_document, controller, scheduler, select) -> None:
        """An empty selection hides the trigger."""
        select("The sky is blue")
        chat_document.selection.remove_all_ranges()
        chat_document.pointer_up(chat_document.body)
        scheduler.advance(TIMINGS.selection_settle_ms)
        assert not controller.trigger.visible

    def test_commit_without_candidate(self, controller) -> None:
        """Committing with nothing selected does nothing."""
        assert controller.commit_selection() is False
        assert controller.state is QuoteState.IDLE

    def test_new_capture_replaces_quote(self, controller, capture) -> None:
        """A second capture replaces the first quote."""
        capture("The sky is blue")
        capture("holds.")
        assert controller.session.raw_text == "holds."
        assert controller.state is QuoteState.QUOTED


class TestTriggerHousekeeping:
    """Scroll, pointer-down and Escape hide the trigger."""

    def test_scroll(self, chat_document, controller, select) -> None:
        """Scrolling hides the trigger."""
        select("The sky is blue")
        chat_document.scroll()
        assert not controller.trigger.visible

    def test_pointer_down_elsewhere(self, chat_document, controller, select) -> None:
        """Pressing the pointer elsewhere hides the trigger."""
        select("The sky is blue")
        chat_document.pointer_down(chat_document.body)
        assert not controller.trigger.visible

    def test_pointer_down_on_trigger_keeps_it(self, chat_document, controller, select) -> None:
        """Pressing the pointer on the trigger keeps it visible."""
        select("The sky is blue")
        chat_document.pointer_down(controller.trigger.element)
        assert controller.trigger.visible

    def test_escape_clears_selection(self, chat_document, controller, select) -> None:
        """Escape hides the trigger and clears the selection."""
        select("The sky is blue")
        chat_document.press_key("Escape", target=chat_document.body)
        assert not controller.trigger.visible
        assert controller.candidate is None
        assert chat_document.selection.range_count == 0


# ---------------------------------------------------------------------------
# Send interception
# ---------------------------------------------------------------------------


class TestSendInterception:
    """Quoted → Composing → Idle."""

    def test_sky_is_blue_scenario(self, chat_document, controller, scheduler, capture, sends) -> None:
        """Enter with a quote composes the citation and sends it once."""
        capture("The sky is blue")

        assert _press_enter_in_input(chat_document) is False
        assert controller.state is QuoteState.COMPOSING
        assert sends == []

        _finish_compose(scheduler)
        assert sends == ["click"]
        assert controller.state is QuoteState.IDLE
        assert controller.session is None
        assert not controller.indicator.visible

        surface = CompositionInjector(chat_document).find_surface()
        assert surface.read() == EXPECTED_SKY

    def test_live_input_follows_citation(self, chat_document, controller, scheduler, capture) -> None:
        """Text already typed follows the citation."""
        capture("The sky is blue")
        editor = _editor(chat_document)
        editor.p.clear()
        editor.p.append("Why?")

        _press_enter_in_input(chat_document)
        _finish_compose(scheduler)
        assert CompositionInjector(chat_document).find_surface().read() == EXPECTED_SKY + "\nWhy?"

    def test_click_and_enter_send_exactly_once(self, chat_document, controller, scheduler, capture, sends) -> None:
        """Repeated send gestures while composing produce one send."""
        capture("The sky is blue")
        _press_enter_in_input(chat_document)
        chat_document.click(chat_document.soup.find("button", class_="send-button"))
        _press_enter_in_input(chat_document)

        scheduler.advance(5000)
        assert sends == ["click"]

    def test_send_click_intercepted(self, chat_document, controller, scheduler, capture, sends) -> None:
        """A send-control click with a quote is intercepted and re-sent."""
        capture("The sky is blue")
        assert chat_document.click(chat_document.soup.find("button", class_="send-button")) is False
        assert controller.state is QuoteState.COMPOSING
        _finish_compose(scheduler)
        assert sends == ["click"]

    def test_shift_enter_not_intercepted(self, chat_document, controller, capture) -> None:
        """Shift+Enter is left to the page and keeps the quote."""
        capture("The sky is blue")
        chat_document.focus(_editor(chat_document))
        assert chat_document.press_key("Enter", shift=True)
        assert controller.state is QuoteState.QUOTED

    def test_synthesized_enter_without_send_control(
        self, chat_document, controller, scheduler, capture, sends
    ) -> None:
        """Without a send control the re-send is a synthesized Enter."""
        chat_document.remove(chat_document.soup.find("button", class_="send-button"))
        capture("The sky is blue")
        _press_enter_in_input(chat_document)
        _finish_compose(scheduler)
        assert sends == ["enter"]
        assert controller.state is QuoteState.IDLE

    def test_bypass_cleared_after_delay(self, chat_document, controller, scheduler, capture) -> None:
        """The bypass flag clears once its delay has passed."""
        capture("The sky is blue")
        _press_enter_in_input(chat_document)
        _finish_compose(scheduler)
        assert controller.bypass_active
        scheduler.advance(TIMINGS.bypass_clear_ms - 1)
        assert controller.bypass_active
        scheduler.advance(1)
        assert not controller.bypass_active

    def test_user_send_inside_bypass_window_is_composed(
        self, chat_document, controller, scheduler, capture, sends
    ) -> None:
        """A user Enter right after a re-send still composes the new quote."""
        capture("The sky is blue")
        _press_enter_in_input(chat_document)
        _finish_compose(scheduler)
        scheduler.advance(150)

        capture("holds.")
        assert not controller.bypass_active
        assert _press_enter_in_input(chat_document) is False
        assert controller.state is QuoteState.COMPOSING
        assert sends == ["click"]

        _finish_compose(scheduler)
        assert sends == ["click", "click"]
        assert controller.state is QuoteState.IDLE

    def test_user_send_inside_bypass_window_without_quote(
        self, chat_document, controller, scheduler, capture, sends
    ) -> None:
        """With no quote pending, a user Enter in the window goes out natively."""
        capture("The sky is blue")
        _press_enter_in_input(chat_document)
        _finish_compose(scheduler)
        assert controller.bypass_active
        assert _press_enter_in_input(chat_document)
        assert sends == ["click", "enter"]

    def test_plain_send_without_quote_untouched(self, chat_document, controller, sends) -> None:
        """Sends without a quote are left to the page."""
        assert _press_enter_in_input(chat_document)
        assert sends == ["enter"]
        assert controller.state is QuoteState.IDLE


class TestFailurePaths:
    """Missing surface and failed injection keep the quote."""

    def test_injection_failure_keeps_quote(self, chat_document, controller, scheduler, capture, sends) -> None:
        """A failed injection keeps the quote and sends nothing."""
        capture("The sky is blue")
        with patch.object(CompositionInjector, "inject", return_value=False):
            _press_enter_in_input(chat_document)
            scheduler.advance(5000)
        assert controller.state is QuoteState.QUOTED
        assert controller.session.raw_text == "The sky is blue"
        assert sends == []

    def test_no_surface_shows_notice(self, scheduler, find_text) -> None:
        """With no input box a notice is shown and the quote is kept."""
        doc = HostDocument(
            '<body><div class="model-response"><p>Only text</p></div>'
            '<button class="send-button">Send</button></body>'
        )
        sends = install_host_send(doc)
        ctrl = QuoteSessionController(doc, CitationTemplateCache(), scheduler, timings=TIMINGS)
        ctrl.start()

        node = find_text(doc.soup, "Only text")
        doc.selection.select(SelectionRange(node, 0, node, len(node)))
        doc.pointer_up(node.parent)
        scheduler.advance(TIMINGS.selection_settle_ms)
        doc.click(ctrl.trigger.element)

        doc.click(doc.soup.find("button"))
        scheduler.advance(5000)
        assert ctrl.notice.visible
        assert "input box" in ctrl.notice.message
        assert ctrl.state is QuoteState.QUOTED
        assert sends == []


# ---------------------------------------------------------------------------
# Dismissal and navigation
# ---------------------------------------------------------------------------


class TestInvalidation:
    """Quoted → Idle on dismissal and navigation."""

    def test_dismiss_control(self, chat_document, controller, capture) -> None:
        """The dismiss control drops the quote."""
        capture("The sky is blue")
        chat_document.click(controller.indicator.dismiss_control)
        assert controller.state is QuoteState.IDLE
        assert controller.session is None
        assert not controller.indicator.visible

    def test_dismiss_is_idempotent(self, controller) -> None:
        """Dismissing with no quote is harmless."""
        controller.dismiss()
        controller.dismiss()
        assert controller.state is QuoteState.IDLE

    def test_location_change_cleared_before_next_selection(
        self, chat_document, controller, capture, find_text
    ) -> None:
        """A location change clears the quote before the next selection is read."""
        capture("The sky is blue")
        chat_document.navigate("https://gemini.google.com/app/second")
        chat_document.pointer_up(find_text(chat_document.soup, "holds.").parent)
        assert controller.state is QuoteState.IDLE
        assert not controller.indicator.visible
        assert not controller.trigger.visible

    def test_location_poll(self, chat_document, controller, scheduler, capture) -> None:
        """Polling notices a location change and clears the quote."""
        capture("The sky is blue")
        chat_document.navigate("https://gemini.google.com/app/second")
        scheduler.advance(TIMINGS.location_poll_ms)
        assert controller.state is QuoteState.IDLE

    def test_response_removal(self, chat_document, controller, capture) -> None:
        """Removing a response subtree clears the quote."""
        capture("The sky is blue")
        chat_document.remove(chat_document.soup.find(class_="model-response"))
        assert controller.state is QuoteState.IDLE

    def test_unrelated_removal_ignored(self, chat_document, controller, capture) -> None:
        """Removing unrelated nodes keeps the quote."""
        capture("The sky is blue")
        chat_document.remove(chat_document.soup.find("button", class_="send-button"))
        assert controller.state is QuoteState.QUOTED

    def test_navigation_during_compose_drops_send(
        self, chat_document, controller, scheduler, capture, sends
    ) -> None:
        """Navigation while composing cancels the pending send."""
        capture("The sky is blue")
        _press_enter_in_input(chat_document)
        chat_document.remove(chat_document.soup.find(class_="model-response"))

        scheduler.advance(5000)
        assert controller.state is QuoteState.IDLE
        assert sends == []
        assert _editor(chat_document).get_text() == ""


# ---------------------------------------------------------------------------
# Modes and lifecycle
# ---------------------------------------------------------------------------


class TestImmediateMode:
    """compose_on_send=False injects at capture time."""

    def test_injects_without_sending(self, chat_document, scheduler, sends, find_text) -> None:
        """Immediate mode writes the citation into the input and does not send."""
        ctrl = QuoteSessionController(
            chat_document, CitationTemplateCache(), scheduler, timings=TIMINGS, compose_on_send=False
        )
        ctrl.start()
        node = find_text(chat_document.soup, "The sky is blue")
        chat_document.selection.select(SelectionRange(node, 0, node, len(node)))
        chat_document.pointer_up(node.parent)
        scheduler.advance(TIMINGS.selection_settle_ms)
        chat_document.click(ctrl.trigger.element)
        scheduler.advance(TIMINGS.focus_settle_ms)

        assert CompositionInjector(chat_document).find_surface().read() == EXPECTED_SKY
        assert ctrl.state is QuoteState.IDLE
        assert ctrl.session is None
        assert sends == []


class TestLifecycle:
    """start(), stop() and create_controller()."""

    def test_stop_detaches(self, chat_document, scheduler, controller, select) -> None:
        """stop() cancels timers and detaches listeners."""
        controller.stop()
        assert scheduler.pending == 0
        select("The sky is blue")
        assert not controller.trigger.visible

    def test_create_controller(self, chat_document) -> None:
        """create_controller() returns a started controller polling the location."""
        scheduler = ManualScheduler()
        ctrl = create_controller(chat_document, scheduler)
        try:
            assert ctrl.state is QuoteState.IDLE
            assert scheduler.pending == 1
        finally:
            ctrl.stop()
