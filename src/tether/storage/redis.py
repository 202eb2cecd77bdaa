"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Module: storage/redis.py.
"""

from __future__ import annotations

from typing import Any

from .base import KeyValueStore, StorageError, StorageQuotaError


class RedisKeyValueStore(KeyValueStore):
    """
    Redis-backed durable store for clients that share one Redis instance.

    Requires a synchronous ``redis.Redis`` client (``pip install redis``).
    Values are namespaced under ``{prefix}:{key}``.

    Args:
        redis: A ``redis.Redis`` client instance.
        prefix: Key prefix for namespacing.
    """

    store_id = "redis"

    def __init__(self, redis: Any, *, prefix: str = "tether:store") -> None:
        self._redis = redis
        self._prefix = prefix

    def _key(self, key: str) -> str:
        return f"{self._prefix}:{key}"

    def get_item(self, key: str) -> str | None:
        try:
            blob = self._redis.get(self._key(key))
        except Exception as exc:  # noqa: BLE001
            raise StorageError(f"Redis read failed for '{key}': {exc}") from exc
        if blob is None:
            return None
        if isinstance(blob, bytes):
            return blob.decode("utf-8")
        return str(blob)

    def set_item(self, key: str, value: str) -> None:
        try:
            self._redis.set(self._key(key), value)
        except Exception as exc:  # noqa: BLE001
            # Redis reports maxmemory rejections as "OOM command not allowed".
            if "oom" in str(exc).lower():
                raise StorageQuotaError(f"Redis out of memory writing '{key}'") from exc
            raise StorageError(f"Redis write failed for '{key}': {exc}") from exc

    def remove_item(self, key: str) -> None:
        try:
            self._redis.delete(self._key(key))
        except Exception as exc:  # noqa: BLE001
            raise StorageError(f"Redis delete failed for '{key}': {exc}") from exc
