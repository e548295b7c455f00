"""Preference storage — the boolean key/value contract the decision engine persists its flag through.

JsonPreferenceStore keeps values in a small JSON file (default
``.conductor/preferences.json``); InMemoryPreferenceStore is for tests and
ephemeral sessions.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Protocol

logger = logging.getLogger("conductor.preferences")


class PreferenceStore(Protocol):
    async def save_bool_preference(self, key: str, value: bool) -> None: ...

    async def get_bool_preference(self, key: str, default: bool = False) -> bool: ...


class InMemoryPreferenceStore:
    def __init__(self, initial: dict[str, bool] | None = None):
        self.values: dict[str, bool] = dict(initial or {})

    async def save_bool_preference(self, key: str, value: bool) -> None:
        self.values[key] = bool(value)

    async def get_bool_preference(self, key: str, default: bool = False) -> bool:
        return self.values.get(key, default)


class JsonPreferenceStore:
    """Preferences persisted as a flat JSON object.

    Unreadable files are treated as empty; write errors propagate so the
    caller decides whether they are fatal.
    """

    def __init__(self, path: str | Path | None = None):
        self.path = Path(path) if path else Path(".conductor") / "preferences.json"

    def _load(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text())
        except (json.JSONDecodeError, OSError) as e:
            logger.warning(f"Failed to read preferences from {self.path}: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    async def save_bool_preference(self, key: str, value: bool) -> None:
        data = self._load()
        data[key] = bool(value)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(data, indent=2))
        logger.debug(f"Saved preference {key}={value} to {self.path}")

    async def get_bool_preference(self, key: str, default: bool = False) -> bool:
        value = self._load().get(key, default)
        return value if isinstance(value, bool) else default
