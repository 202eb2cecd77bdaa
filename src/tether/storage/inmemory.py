"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Module: storage/inmemory.py.
"""

from __future__ import annotations

from .base import KeyValueStore, StorageQuotaError


class InMemoryKeyValueStore(KeyValueStore):
    """
    Process-local store suitable for tests and ephemeral clients.

    When ``max_chars`` is set, writes that would push the total stored size
    past it raise ``StorageQuotaError``.
    """

    store_id = "memory"

    def __init__(self, *, max_chars: int | None = None) -> None:
        self._rows: dict[str, str] = {}
        self._max_chars = max_chars

    def get_item(self, key: str) -> str | None:
        return self._rows.get(key)

    def set_item(self, key: str, value: str) -> None:
        if self._max_chars is not None:
            used = sum(len(k) + len(v) for k, v in self._rows.items() if k != key)
            if used + len(key) + len(value) > self._max_chars:
                raise StorageQuotaError(
                    f"Store quota exceeded writing '{key}' ({len(value)} chars)"
                )
        self._rows[key] = value

    def remove_item(self, key: str) -> None:
        self._rows.pop(key, None)

    def keys(self) -> list[str]:
        return sorted(self._rows)
