"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

This module defines common types shared by the orchestration runtime.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, Literal, TypeAlias

JSONPrimitive: TypeAlias = str | int | float | bool | None
JSONValue: TypeAlias = JSONPrimitive | list["JSONValue"] | dict[str, "JSONValue"]

Priority = Literal["high", "normal"]
RequestStatus = Literal["queued", "processing", "completed", "failed", "cancelled"]
ResultStatus = Literal["ok", "degraded", "superseded"]

# Common operation kinds; any non-empty string is accepted.
ANALYZE = "analyze"
SUGGEST = "suggest"
ENHANCE = "enhance"
CHAT = "chat"

RemoteCall = Callable[[Any], Awaitable[Any]]
FallbackFn = Callable[[Any], Any]
Validator = Callable[[Any], None]


@dataclass(frozen=True, slots=True)
class FallbackResult:
    """Substitute output produced without contacting the remote service."""

    data: Any
    reason: str
    confidence: float = 0.5
    degraded: bool = True


@dataclass(frozen=True, slots=True)
class InvocationResult:
    """
    Outcome of one orchestrated invocation.

    Attributes:
        kind: Operation kind that was invoked.
        status: ``ok`` for a full-confidence remote or cached result,
            ``degraded`` for a fallback/unavailable substitute, and
            ``superseded`` when a newer debounced call replaced this one.
        data: Result payload (``None`` for superseded calls).
        from_cache: Whether the payload was served from the response cache.
        degraded_reason: Why a degraded result was produced.
        confidence: Confidence of the payload, 1.0 for remote results.
        error: Error that caused degradation, when there was one.
    """

    kind: str
    status: ResultStatus
    data: Any = None
    from_cache: bool = False
    degraded_reason: str | None = None
    confidence: float = 1.0
    error: BaseException | None = field(default=None, compare=False)

    @property
    def is_degraded(self) -> bool:
        return self.status == "degraded"

    @property
    def is_superseded(self) -> bool:
        return self.status == "superseded"

    @classmethod
    def ok(cls, kind: str, data: Any, *, from_cache: bool = False) -> InvocationResult:
        return cls(kind=kind, status="ok", data=data, from_cache=from_cache)

    @classmethod
    def degraded(
        cls,
        kind: str,
        fallback: FallbackResult,
        *,
        error: BaseException | None = None,
    ) -> InvocationResult:
        return cls(
            kind=kind,
            status="degraded",
            data=fallback.data,
            degraded_reason=fallback.reason,
            confidence=fallback.confidence,
            error=error,
        )

    @classmethod
    def superseded(cls, kind: str) -> InvocationResult:
        return cls(kind=kind, status="superseded", confidence=0.0)
