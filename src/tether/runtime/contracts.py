"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Typed runtime policies for resilient remote invocation.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class CachePolicy:
    """Response cache controls."""

    enabled: bool = True
    max_size: int = 100
    ttl_s: float = 3600.0
    persist: bool = True
    storage_key: str = "tether-response-cache"


@dataclass(frozen=True, slots=True)
class RateLimitPolicy:
    """Sliding-window quota applied to calls that reach the remote service."""

    max_requests: int = 20
    window_s: float = 3600.0
    storage_key: str = "tether-rate-limit"
    bypass_for_high_priority: bool = False


@dataclass(frozen=True, slots=True)
class CircuitBreakerPolicy:
    """Consecutive failure policy with a single half-open probe."""

    failure_threshold: int = 5
    cooldown_s: float = 300.0


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Retry semantics for queued requests."""

    max_retries: int = 2
    backoff_base_s: float = 0.0
    backoff_max_s: float = 30.0
    backoff_jitter_s: float = 0.0


@dataclass(frozen=True, slots=True)
class QueuePolicy:
    """Concurrency, depth and timeout limits for the request queue."""

    max_concurrent: int = 3
    max_queue_size: int = 50
    request_timeout_s: float | None = 30.0
    enable_priority: bool = True


@dataclass(frozen=True, slots=True)
class DebouncePolicy:
    """Coalescing window for rapid repeated invocations."""

    delay_s: float = 0.5
