"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Module: runtime/fallback.py.
"""

from __future__ import annotations

import logging
from typing import Any

from ..errors import (
    CircuitOpenError,
    InvalidResponseError,
    NetworkError,
    PreferenceDisabledError,
    QueueFullError,
    RateLimitError,
    RemoteError,
    RemoteTimeoutError,
    RequestCancelledError,
    TetherError,
)
from ..types import FallbackFn, FallbackResult

logger = logging.getLogger("tether.fallback")

UNAVAILABLE_MESSAGE = "Remote service temporarily unavailable"


def is_fallback_eligible(error: BaseException, *, allow_client_errors: bool = False) -> bool:
    """
    Whether `error` should be absorbed by the fallback path.

    Quota and capacity boundaries (`RateLimitError`, `QueueFullError`, a
    remote 429) and cancellations are never eligible. Other 4xx remote errors
    are eligible only when tagged so or when `allow_client_errors` is set.
    """
    if isinstance(error, (RateLimitError, QueueFullError, RequestCancelledError)):
        return False
    if isinstance(
        error,
        (
            NetworkError,
            RemoteTimeoutError,
            InvalidResponseError,
            CircuitOpenError,
            PreferenceDisabledError,
        ),
    ):
        return True
    if isinstance(error, RemoteError):
        if error.is_rate_limited:
            return False
        return error.should_fallback or (allow_client_errors and error.is_client_error)
    if isinstance(error, TetherError):
        return error.should_fallback
    return False


class FallbackEngine:
    """Registry of deterministic, zero-cost substitutes keyed by operation kind."""

    def __init__(self, functions: dict[str, FallbackFn] | None = None) -> None:
        self._functions: dict[str, FallbackFn] = {}
        self._confidence: dict[str, float] = {}
        for kind, fn in (functions or {}).items():
            self.register(kind, fn)

    def register(
        self,
        kind: str,
        fn: FallbackFn,
        *,
        confidence: float = 0.5,
        overwrite: bool = False,
    ) -> None:
        key = kind.strip()
        if not key:
            raise ValueError("Fallback kind must be non-empty")
        if key in self._functions and not overwrite:
            raise ValueError(f"Fallback already registered: {key}")
        if not 0.0 <= confidence <= 1.0:
            raise ValueError("confidence must be within [0, 1]")
        self._functions[key] = fn
        self._confidence[key] = confidence

    def has(self, kind: str) -> bool:
        return kind in self._functions

    def run(self, kind: str, payload: Any, *, reason: str = "fallback") -> FallbackResult:
        """
        Compute the substitute result for `kind`.

        A fallback that raises is logged and replaced by the unavailable result.
        """
        fn = self._functions.get(kind)
        if fn is None:
            return self.unavailable(kind, reason)
        try:
            data = fn(payload)
        except Exception:  # noqa: BLE001
            logger.exception("Fallback for '%s' failed", kind)
            return self.unavailable(kind, reason)
        return FallbackResult(
            data=data,
            reason=reason,
            confidence=self._confidence.get(kind, 0.5),
        )

    def unavailable(self, kind: str, reason: str | None = None) -> FallbackResult:
        """Degraded placeholder used when no substitute exists for `kind`."""
        return FallbackResult(
            data={"kind": kind, "available": False, "message": UNAVAILABLE_MESSAGE},
            reason=reason or "unavailable",
            confidence=0.0,
        )
