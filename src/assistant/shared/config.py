"""Shared configuration — loads environment variables and validates settings.

Usage:
    from shared.config import config
    print(config.settings_path)
"""

import os
import sys
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv


def _find_env_file() -> Path | None:
    """Search for .env file starting from this file's directory, then up."""
    current = Path(__file__).resolve().parent.parent  # src/assistant/
    candidates = [
        current / ".env",
        current.parent.parent / ".env",  # repo root
    ]
    for candidate in candidates:
        if candidate.exists():
            return candidate
    return None


@dataclass(frozen=True)
class Config:
    """Typed configuration loaded from environment variables."""

    # JSON file holding the persisted citation template
    settings_path: Path

    # Optional JSON overlay for the host / math selector tables
    selectors_path: Path | None

    debug: bool = False

    # Hold the quote until the next send (False: inject as soon as it is captured)
    compose_on_send: bool = True

    # Deferrals, in milliseconds
    selection_settle_ms: int = 10
    focus_settle_ms: int = 50
    send_delay_ms: int = 100
    bypass_clear_ms: int = 500
    location_poll_ms: int = 1000


_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off", ""}


def _load_config() -> Config:
    """Load and validate configuration from environment."""
    env_file = _find_env_file()
    if env_file:
        load_dotenv(env_file, override=False)

    project_root = Path(__file__).resolve().parent.parent.parent.parent

    errors: list[str] = []

    def _flag(var: str, default: bool) -> bool:
        raw = os.environ.get(var)
        if raw is None:
            return default
        value = raw.strip().lower()
        if value in _TRUE:
            return True
        if value in _FALSE:
            return False
        errors.append(f"{var}={raw!r} is not a boolean")
        return default

    def _millis(var: str, default: int) -> int:
        raw = os.environ.get(var)
        if raw is None or not raw.strip():
            return default
        try:
            value = int(raw)
        except ValueError:
            errors.append(f"{var}={raw!r} is not an integer")
            return default
        if value < 0:
            errors.append(f"{var}={raw!r} must not be negative")
            return default
        return value

    selectors_file = os.environ.get("QUOTE_SELECTORS_FILE", "").strip()

    loaded = Config(
        settings_path=Path(
            os.environ.get("QUOTE_SETTINGS_PATH") or project_root / ".quote-settings.json"
        ),
        selectors_path=Path(selectors_file) if selectors_file else None,
        debug=_flag("QUOTE_DEBUG", False),
        compose_on_send=_flag("QUOTE_COMPOSE_ON_SEND", True),
        selection_settle_ms=_millis("QUOTE_SELECTION_SETTLE_MS", 10),
        focus_settle_ms=_millis("QUOTE_FOCUS_SETTLE_MS", 50),
        send_delay_ms=_millis("QUOTE_SEND_DELAY_MS", 100),
        bypass_clear_ms=_millis("QUOTE_BYPASS_CLEAR_MS", 500),
        location_poll_ms=_millis("QUOTE_LOCATION_POLL_MS", 1000),
    )

    if errors:
        print(
            f"Error: Invalid environment variables: {'; '.join(errors)}\n"
            f"Fix the values in .env or unset them to use the defaults.",
            file=sys.stderr,
        )
        sys.exit(1)

    return loaded


# Singleton — imported as `from shared.config import config`
config = _load_config()
