"""Cache module for the Settings record read by report-card generation."""

import time
from typing import Any, Dict, Optional


class SettingsCache:
    """
    In-process TTL cache of settings snapshots.

    Snapshots are replaced whole, so a reader always sees one internally
    consistent version even while an administrator edits the record.
    """

    SETTINGS_KEY = "settings"

    def __init__(self, ttl_seconds: int = 300):
        self.ttl_seconds = ttl_seconds
        self._entries: Dict[str, Dict[str, Any]] = {}

    def get(self, key: str = SETTINGS_KEY) -> Optional[Dict[str, Any]]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry["expires_at"] <= time.monotonic():
            self._entries.pop(key, None)
            return None
        return entry["value"]

    def set(self, value: Dict[str, Any], key: str = SETTINGS_KEY) -> None:
        self._entries[key] = {
            "value": value,
            "expires_at": time.monotonic() + self.ttl_seconds,
        }

