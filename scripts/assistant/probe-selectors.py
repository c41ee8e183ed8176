"""Show which host selectors match a saved copy of the host page.

Usage: python scripts/assistant/probe-selectors.py <html-file>
(run with ``src/assistant`` on PYTHONPATH)
"""

import logging
import sys
from pathlib import Path

from composer.probe import probe_selectors
from hostdom import HostDocument
from shared.config import config
from shared.selectors import load_selectors

logging.basicConfig(
    level=logging.DEBUG if config.debug else logging.WARNING,
    format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
)

if len(sys.argv) != 2:
    print("Usage: probe-selectors.py <html-file>", file=sys.stderr)
    sys.exit(1)

html_path = Path(sys.argv[1])
if not html_path.exists():
    print(f"Input not found: {html_path}", file=sys.stderr)
    sys.exit(1)

host_selectors, _ = load_selectors(config.selectors_path)
report = probe_selectors(HostDocument(html_path.read_text(encoding="utf-8")), host_selectors)

print()
print(f"Page: {html_path.name}")
print("─" * 80)
for role, counts in (("response", report.response), ("input", report.input), ("send", report.send)):
    print(f"{role}:")
    for selector, count in counts.items():
        mark = "✓" if count else " "
        print(f"  {mark} {selector:60s} {count:>4}")
print("─" * 80)

if not report.input_found:
    print("  ⚠  no input selector matched; quotes cannot be injected")
if not report.response_found:
    print("  ⚠  no response selector matched; selections are accepted everywhere not excluded")
print()
