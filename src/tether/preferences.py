"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

User preference flag controlling whether remote features may be used.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from pydantic import BaseModel, ConfigDict, ValidationError

from .storage import KeyValueStore, StorageError, load_json, save_json

logger = logging.getLogger("tether.preferences")

PreferenceListener = Callable[[bool], None]

DEFAULT_STORAGE_KEY = "tether-ai-preferences"


class _PersistedPreferences(BaseModel):
    model_config = ConfigDict(extra="ignore")

    ai_enabled: bool = True
    updated_at: float | None = None


class Preferences:
    """
    Persisted "remote features enabled" flag.

    Defaults to enabled when nothing is stored or the record is unreadable.
    Listeners are notified after every change.
    """

    def __init__(
        self,
        *,
        store: KeyValueStore | None = None,
        storage_key: str = DEFAULT_STORAGE_KEY,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._storage_key = storage_key
        self._clock = clock
        self._listeners: list[PreferenceListener] = []
        self._enabled = self._load()

    def is_enabled(self) -> bool:
        return self._enabled

    def __call__(self) -> bool:
        return self._enabled

    def set_enabled(self, enabled: bool) -> None:
        self._enabled = bool(enabled)
        if self._store is not None:
            try:
                save_json(
                    self._store,
                    self._storage_key,
                    {"ai_enabled": self._enabled, "updated_at": self._clock()},
                )
            except StorageError:
                logger.exception("Failed to persist preferences")
        logger.info("Remote features %s", "enabled" if self._enabled else "disabled")
        for listener in list(self._listeners):
            try:
                listener(self._enabled)
            except Exception:  # noqa: BLE001
                logger.exception("Preference listener failed")

    def add_listener(self, listener: PreferenceListener) -> Callable[[], None]:
        """Register a change listener; returns a callable that removes it."""
        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _remove

    def _load(self) -> bool:
        if self._store is None:
            return True
        try:
            raw = load_json(self._store, self._storage_key)
            if raw is None:
                return True
            return _PersistedPreferences.model_validate(raw).ai_enabled
        except (StorageError, ValidationError):
            logger.exception("Failed to load preferences; defaulting to enabled")
            return True
