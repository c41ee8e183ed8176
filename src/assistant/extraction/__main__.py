"""Allow ``python -m extraction <html_file> <css_selector>``.

Selects the contents of the first element matching the selector and
prints the text a quote of that selection would carry.
"""

import logging
import sys
from pathlib import Path

from extraction import SelectionExtractor
from hostdom import HostDocument, SelectionRange
from shared.config import config
from shared.selectors import load_selectors


def main() -> None:
    logging.basicConfig(
        level=logging.DEBUG if config.debug else logging.INFO,
        format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
    )

    if len(sys.argv) != 3:
        print("Usage: python -m extraction <html_file> <css_selector>", file=sys.stderr)
        sys.exit(1)

    html_path = Path(sys.argv[1])
    if not html_path.exists():
        print(f"Input not found: {html_path}", file=sys.stderr)
        sys.exit(1)

    document = HostDocument(html_path.read_text(encoding="utf-8"))
    target = document.query([sys.argv[2]])
    if target is None:
        print(f"No element matches {sys.argv[2]!r}", file=sys.stderr)
        sys.exit(1)

    _, math_selectors = load_selectors(config.selectors_path)
    result = SelectionExtractor(math_selectors).extract(SelectionRange.covering(target))
    print(result.text)


if __name__ == "__main__":
    main()
