"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Module: runtime/debounce.py.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Final, TypeVar

from .contracts import DebouncePolicy

T = TypeVar("T")


class _Superseded:
    """Marker returned for debounced calls replaced by a newer call."""

    _instance: _Superseded | None = None

    def __new__(cls) -> _Superseded:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "SUPERSEDED"

    def __bool__(self) -> bool:
        return False


SUPERSEDED: Final = _Superseded()


class Debouncer:
    """
    Coalesce rapid calls per key with a monotonically increasing generation.

    Each call bumps the key's generation and waits ``delay_s``. When the timer
    fires, only the call whose captured generation is still current runs its
    factory; older calls resolve with ``SUPERSEDED``.
    """

    def __init__(self, policy: DebouncePolicy | None = None) -> None:
        self._policy = policy or DebouncePolicy()
        self._generations: dict[str, int] = {}

    def generation(self, key: str) -> int:
        return self._generations.get(key, 0)

    async def run(
        self,
        key: str,
        factory: Callable[[], Awaitable[T]],
        *,
        delay_s: float | None = None,
    ) -> T | _Superseded:
        generation = self._generations.get(key, 0) + 1
        self._generations[key] = generation

        await asyncio.sleep(self._policy.delay_s if delay_s is None else delay_s)
        if self._generations.get(key) != generation:
            return SUPERSEDED
        return await factory()
