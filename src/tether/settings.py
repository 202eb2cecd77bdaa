"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Runtime settings and explicit config loading.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from .runtime.contracts import (
    CachePolicy,
    CircuitBreakerPolicy,
    DebouncePolicy,
    QueuePolicy,
    RateLimitPolicy,
    RetryPolicy,
)

_TRUTHY = {"1", "true", "yes", "on"}


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in _TRUTHY


@dataclass(frozen=True, slots=True)
class TetherSettings:
    """Explicit settings used to build the orchestration runtime."""

    cache_enabled: bool = True
    cache_max_size: int = 100
    cache_ttl_s: float = 3600.0
    cache_persist: bool = True

    rate_limit_max_requests: int = 20
    rate_limit_window_s: float = 3600.0
    rate_limit_bypass_high_priority: bool = False

    breaker_failure_threshold: int = 5
    breaker_cooldown_s: float = 300.0

    queue_max_concurrent: int = 3
    queue_max_size: int = 50
    request_timeout_s: float = 30.0
    enable_priority: bool = True

    max_retries: int = 2
    backoff_base_s: float = 0.0
    backoff_max_s: float = 30.0
    backoff_jitter_s: float = 0.0

    debounce_s: float = 0.5

    @staticmethod
    def from_env() -> "TetherSettings":
        """Load settings from environment variables."""
        return TetherSettings(
            cache_enabled=_env_bool("TETHER_CACHE_ENABLED", True),
            cache_max_size=int(os.getenv("TETHER_CACHE_MAX_SIZE", "100")),
            cache_ttl_s=float(os.getenv("TETHER_CACHE_TTL_S", "3600")),
            cache_persist=_env_bool("TETHER_CACHE_PERSIST", True),
            rate_limit_max_requests=int(os.getenv("TETHER_RATE_LIMIT_MAX_REQUESTS", "20")),
            rate_limit_window_s=float(os.getenv("TETHER_RATE_LIMIT_WINDOW_S", "3600")),
            rate_limit_bypass_high_priority=_env_bool(
                "TETHER_RATE_LIMIT_BYPASS_HIGH_PRIORITY", False
            ),
            breaker_failure_threshold=int(
                os.getenv("TETHER_BREAKER_FAILURE_THRESHOLD", "5")
            ),
            breaker_cooldown_s=float(os.getenv("TETHER_BREAKER_COOLDOWN_S", "300")),
            queue_max_concurrent=int(os.getenv("TETHER_QUEUE_MAX_CONCURRENT", "3")),
            queue_max_size=int(os.getenv("TETHER_QUEUE_MAX_SIZE", "50")),
            request_timeout_s=float(os.getenv("TETHER_REQUEST_TIMEOUT_S", "30")),
            enable_priority=_env_bool("TETHER_QUEUE_ENABLE_PRIORITY", True),
            max_retries=int(os.getenv("TETHER_MAX_RETRIES", "2")),
            backoff_base_s=float(os.getenv("TETHER_BACKOFF_BASE_S", "0")),
            backoff_max_s=float(os.getenv("TETHER_BACKOFF_MAX_S", "30")),
            backoff_jitter_s=float(os.getenv("TETHER_BACKOFF_JITTER_S", "0")),
            debounce_s=float(os.getenv("TETHER_DEBOUNCE_S", "0.5")),
        )

    def cache_policy(self) -> CachePolicy:
        return CachePolicy(
            enabled=self.cache_enabled,
            max_size=self.cache_max_size,
            ttl_s=self.cache_ttl_s,
            persist=self.cache_persist,
        )

    def rate_limit_policy(self) -> RateLimitPolicy:
        return RateLimitPolicy(
            max_requests=self.rate_limit_max_requests,
            window_s=self.rate_limit_window_s,
            bypass_for_high_priority=self.rate_limit_bypass_high_priority,
        )

    def circuit_breaker_policy(self) -> CircuitBreakerPolicy:
        return CircuitBreakerPolicy(
            failure_threshold=self.breaker_failure_threshold,
            cooldown_s=self.breaker_cooldown_s,
        )

    def queue_policy(self) -> QueuePolicy:
        return QueuePolicy(
            max_concurrent=self.queue_max_concurrent,
            max_queue_size=self.queue_max_size,
            request_timeout_s=self.request_timeout_s,
            enable_priority=self.enable_priority,
        )

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_retries=self.max_retries,
            backoff_base_s=self.backoff_base_s,
            backoff_max_s=self.backoff_max_s,
            backoff_jitter_s=self.backoff_jitter_s,
        )

    def debounce_policy(self) -> DebouncePolicy:
        return DebouncePolicy(delay_s=self.debounce_s)
