"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Module: storage/base.py.
"""

from __future__ import annotations

import json
from typing import Any, Protocol


class StorageError(RuntimeError):
    """Raised when a durable store cannot read or write a record."""


class StorageQuotaError(StorageError):
    """Raised when a write would exceed the store's capacity."""


class KeyValueStore(Protocol):
    """Synchronous string key-value store with local-storage semantics."""

    store_id: str

    def get_item(self, key: str) -> str | None: ...

    def set_item(self, key: str, value: str) -> None: ...

    def remove_item(self, key: str) -> None: ...


def load_json(store: KeyValueStore, key: str) -> Any | None:
    """Read and decode one JSON record, returning `None` when absent."""
    blob = store.get_item(key)
    if blob is None:
        return None
    try:
        return json.loads(blob)
    except (TypeError, ValueError) as exc:
        raise StorageError(f"Corrupt record under '{key}'") from exc


def save_json(store: KeyValueStore, key: str, value: Any) -> None:
    """Encode and write one JSON record."""
    store.set_item(key, json.dumps(value, ensure_ascii=True, default=str))
