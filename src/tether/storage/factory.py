"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Factory helpers for selecting durable store backends from environment variables.
"""

from __future__ import annotations

import os
from typing import Any

from .base import KeyValueStore
from .file import JsonFileStore
from .inmemory import InMemoryKeyValueStore


def _env_first(*names: str, default: str | None = None) -> str | None:
    """
    Return the first non-empty environment variable in `names`.

    Args:
        *names: Environment variable names to check in order.
        default: Value returned if no non-empty variable is found.
    """
    for name in names:
        raw = os.getenv(name)
        if raw is None:
            continue
        value = raw.strip()
        if value:
            return value
    return default


def create_store_from_env(*, redis_client: Any | None = None) -> KeyValueStore:
    """
    Create a durable store from `TETHER_STORE_*` environment variables.

    Backends:
    - `memory` (default)
    - `file` (JSON document at `TETHER_STORE_PATH`)
    - `redis`

    Redis resolution:
    - Uses the provided `redis_client` when supplied.
    - Otherwise builds a client from `TETHER_REDIS_URL`.
    - If no URL is set, falls back to host/port/db/password variables.
    """
    backend = os.getenv("TETHER_STORE_BACKEND", "memory").strip().lower()

    if backend in ("mem", "memory", "inmemory", "in_memory"):
        return InMemoryKeyValueStore()

    if backend in ("file", "json"):
        path = _env_first("TETHER_STORE_PATH", default=".tether/state.json")
        return JsonFileStore(path or ".tether/state.json")

    if backend in ("redis",):
        from .redis import RedisKeyValueStore

        prefix = _env_first("TETHER_STORE_REDIS_PREFIX", default="tether:store")

        client = redis_client
        if client is None:
            try:
                import redis
            except ModuleNotFoundError as exc:  # pragma: no cover
                raise RuntimeError(
                    "Redis store backend requires `redis` to be installed."
                ) from exc

            url = _env_first("TETHER_REDIS_URL")
            if not url:
                host = _env_first("TETHER_REDIS_HOST", default="localhost")
                port = _env_first("TETHER_REDIS_PORT", default="6379")
                db = _env_first("TETHER_REDIS_DB", default="0")
                password = _env_first("TETHER_REDIS_PASSWORD", default="")
                if password:
                    url = f"redis://:{password}@{host}:{port}/{db}"
                else:
                    url = f"redis://{host}:{port}/{db}"

            client = redis.Redis.from_url(url)

        return RedisKeyValueStore(client, prefix=prefix or "tether:store")

    raise ValueError(f"Unknown TETHER_STORE_BACKEND: {backend}")
