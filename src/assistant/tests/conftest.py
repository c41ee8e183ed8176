"""Shared test fixtures for the quote assistant.

Environment variables MUST be set at module level (before any assistant
modules are imported) because ``shared.config`` evaluates
``_load_config()`` at import time.  pytest processes conftest.py before
collecting test modules, so ``os.environ.setdefault(...)`` here runs
early enough.
"""

import os

os.environ.setdefault("QUOTE_DEBUG", "false")
os.environ.setdefault("QUOTE_COMPOSE_ON_SEND", "true")

from typing import Callable  # noqa: E402

import pytest  # noqa: E402
from bs4 import BeautifulSoup, NavigableString  # noqa: E402

from hostdom import HostDocument, ManualScheduler  # noqa: E402

# ---------------------------------------------------------------------------
# Host page markup
# ---------------------------------------------------------------------------

CHAT_PAGE = """
<html><body>
  <main>
    <div class="conversation">
      <div class="model-response">
        <div class="markdown">
          <p id="plain">The sky is blue</p>
          <p id="inline">Energy <span class="math-inline" data-math="E=mc^2"><span class="katex"><span class="katex-mathml"><math><semantics><mi>E</mi><annotation encoding="application/x-tex">E=mc^2</annotation></semantics></math></span><span class="katex-html" aria-hidden="true">E=mc2</span></span></span> holds.</p>
          <div id="tables"><table><tr><td>A</td><td>BB</td></tr><tr><td>CCC</td><td>D</td></tr></table></div>
        </div>
      </div>
    </div>
  </main>
  <div class="input-area">
    <rich-textarea><div class="ql-editor" contenteditable="true"><p><br></p></div></rich-textarea>
    <button class="send-button" aria-label="Send message">Send</button>
  </div>
</body></html>
"""


@pytest.fixture
def chat_document() -> HostDocument:
    """A chat page with a response, a Quill-style input and a send button."""
    return HostDocument(CHAT_PAGE, location="https://gemini.google.com/app/first")


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def find_text() -> Callable[[BeautifulSoup, str], NavigableString]:
    """Return a helper locating the text node that contains a substring."""

    def _find(root, needle: str) -> NavigableString:
        for string in root.find_all(string=True):
            if needle in string:
                return string
        raise LookupError(f"No text node contains {needle!r}")

    return _find
