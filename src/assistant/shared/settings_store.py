"""Persisted settings — a JSON-file key/value store with change notification.

Stands in for the browser's synced extension storage.  Readers call
:meth:`SettingsStore.get` with a dict of defaults; writers call
:meth:`SettingsStore.set`, which notifies every listener with the keys
that actually changed.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StorageChange:
    """Old and new value of one key."""

    old_value: Any
    new_value: Any


ChangeListener = Callable[[dict[str, StorageChange]], None]


class SettingsStore:
    """JSON-file-backed settings with change listeners."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self._listeners: list[ChangeListener] = []

    def _read(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        data = json.loads(self.path.read_text(encoding="utf-8"))
        if not isinstance(data, dict):
            raise ValueError(f"Settings file {self.path} does not hold a JSON object")
        return data

    def get(self, defaults: dict[str, Any]) -> dict[str, Any]:
        """Return the stored values for the keys of *defaults*.

        Raises ``OSError`` or ``ValueError`` when the file cannot be read
        or parsed.
        """
        stored = self._read()
        return {key: stored.get(key, default) for key, default in defaults.items()}

    def set(self, items: dict[str, Any]) -> None:
        """Write *items* and notify listeners of the keys that changed."""
        stored = self._read()
        changes = {
            key: StorageChange(stored.get(key), value)
            for key, value in items.items()
            if stored.get(key) != value
        }
        stored.update(items)

        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=".settings-", dir=self.path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(stored, f, indent=2, ensure_ascii=False)
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

        logger.debug("Wrote %d key(s) to %s", len(items), self.path)

        if changes:
            for listener in list(self._listeners):
                listener(changes)

    def add_listener(self, listener: ChangeListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: ChangeListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)
