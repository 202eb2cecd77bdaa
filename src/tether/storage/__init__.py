"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Durable JSON key-value stores backing cache, quota and preference state.
"""

from .base import KeyValueStore, StorageError, StorageQuotaError, load_json, save_json
from .factory import create_store_from_env
from .file import JsonFileStore
from .inmemory import InMemoryKeyValueStore

__all__ = [
    "KeyValueStore",
    "StorageError",
    "StorageQuotaError",
    "load_json",
    "save_json",
    "InMemoryKeyValueStore",
    "JsonFileStore",
    "create_store_from_env",
]


# Lazy import for Redis store
def __getattr__(name: str):
    """Lazily expose optional store backends that require extra dependencies."""
    if name == "RedisKeyValueStore":
        from .redis import RedisKeyValueStore

        return RedisKeyValueStore
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
