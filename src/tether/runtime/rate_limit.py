"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Module: runtime/rate_limit.py.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..storage import KeyValueStore, StorageError, StorageQuotaError, load_json, save_json
from .contracts import RateLimitPolicy

logger = logging.getLogger("tether.rate_limit")

_UNLIMITED = 999


@dataclass(frozen=True, slots=True)
class RateLimitStatus:
    """Quota snapshot: requests left, when the oldest one expires, and whether limited."""

    remaining: int
    reset_time: float
    is_limited: bool


class _PersistedWindow(BaseModel):
    model_config = ConfigDict(extra="ignore")

    requests: list[float] = Field(default_factory=list)
    window_start: float | None = None


class SlidingWindowRateLimiter:
    """
    Rolling-window quota of at most ``max_requests`` per ``window_s``.

    Only calls that actually reach the remote service should consume quota.
    """

    def __init__(
        self,
        policy: RateLimitPolicy | None = None,
        *,
        store: KeyValueStore | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._policy = policy or RateLimitPolicy()
        if self._policy.max_requests < 1:
            raise ValueError("max_requests must be >= 1")
        if self._policy.window_s <= 0:
            raise ValueError("window_s must be > 0")
        self._store = store
        self._clock = clock
        self._requests: list[float] = []
        self._load()

    @property
    def policy(self) -> RateLimitPolicy:
        return self._policy

    def _bypass(self, high_priority: bool) -> bool:
        return high_priority and self._policy.bypass_for_high_priority

    def _live(self, now: float) -> list[float]:
        cutoff = now - self._policy.window_s
        return [ts for ts in self._requests if ts > cutoff]

    def check_limit(self, *, high_priority: bool = False) -> RateLimitStatus:
        """Report quota status without mutating the window."""
        now = self._clock()
        if self._bypass(high_priority):
            return RateLimitStatus(
                remaining=_UNLIMITED,
                reset_time=now + self._policy.window_s,
                is_limited=False,
            )

        live = self._live(now)
        remaining = max(0, self._policy.max_requests - len(live))
        reset_time = (live[0] if live else now) + self._policy.window_s
        return RateLimitStatus(
            remaining=remaining,
            reset_time=reset_time,
            is_limited=remaining == 0,
        )

    def consume_request(self, *, high_priority: bool = False) -> bool:
        """Record one request and return `True` iff the window has room."""
        if self._bypass(high_priority):
            logger.debug("High-priority caller bypassing rate limit")
            return True

        now = self._clock()
        live = self._live(now)
        purged = len(live) != len(self._requests)
        self._requests = live
        if len(live) >= self._policy.max_requests:
            if purged:
                self._save()
            return False

        self._requests.append(now)
        self._save()
        return True

    def reset(self) -> None:
        self._requests = []
        self._save()

    def time_until_reset(self, *, high_priority: bool = False) -> float:
        """Seconds until the oldest in-window request expires."""
        status = self.check_limit(high_priority=high_priority)
        return max(0.0, status.reset_time - self._clock())

    def _load(self) -> None:
        if self._store is None:
            return
        try:
            raw = load_json(self._store, self._policy.storage_key)
            if raw is None:
                return
            record = _PersistedWindow.model_validate(raw)
        except (StorageError, ValidationError):
            logger.exception("Failed to load rate limit window; starting fresh")
            self._requests = []
            return
        self._requests = sorted(record.requests)
        self._requests = self._live(self._clock())

    def _save(self) -> None:
        if self._store is None:
            return
        try:
            save_json(self._store, self._policy.storage_key, self._record())
            return
        except StorageQuotaError:
            logger.warning("Storage quota exceeded; trimming rate limit window")
        except StorageError:
            logger.exception("Failed to persist rate limit window")
            return

        self._requests = self._requests[-self._policy.max_requests :]
        try:
            save_json(self._store, self._policy.storage_key, self._record())
        except StorageError:
            logger.exception("Failed to persist rate limit window after trimming")

    def _record(self) -> dict[str, object]:
        return {"requests": list(self._requests), "window_start": self._clock()}
