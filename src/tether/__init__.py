"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Client-side resilience layer for remote inference calls.

Wraps each remote operation in a preference gate, circuit breaker, response
cache, sliding-window quota, priority request queue and fallback engine.

Quick start::

    from tether import build_orchestrator

    orchestrator = build_orchestrator()
    orchestrator.register_operation("analyze", call_remote, fallback=local_rules)
    result = await orchestrator.analyze({"text": "..."})
    if result.is_degraded:
        ...
"""

from .errors import (
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
    UnknownOperationError,
    classify_error,
)
from .factory import build_orchestrator
from .metrics import InMemoryMetrics, MetricsSink, NoOpMetrics, PrometheusMetrics
from .preferences import Preferences
from .runtime import (
    CachePolicy,
    CircuitBreakerPolicy,
    CircuitState,
    DebouncePolicy,
    FallbackEngine,
    Orchestrator,
    OrchestratorState,
    QueuePolicy,
    RateLimitPolicy,
    RetryPolicy,
    RuntimeContext,
)
from .settings import TetherSettings
from .types import (
    ANALYZE,
    CHAT,
    ENHANCE,
    SUGGEST,
    FallbackResult,
    InvocationResult,
)

__all__ = [
    "build_orchestrator",
    "Orchestrator",
    "OrchestratorState",
    "RuntimeContext",
    "TetherSettings",
    "Preferences",
    "FallbackEngine",
    "InvocationResult",
    "FallbackResult",
    "CircuitState",
    "CachePolicy",
    "RateLimitPolicy",
    "CircuitBreakerPolicy",
    "RetryPolicy",
    "QueuePolicy",
    "DebouncePolicy",
    "InMemoryMetrics",
    "MetricsSink",
    "NoOpMetrics",
    "PrometheusMetrics",
    "TetherError",
    "RemoteError",
    "NetworkError",
    "RemoteTimeoutError",
    "InvalidResponseError",
    "RateLimitError",
    "CircuitOpenError",
    "QueueFullError",
    "PreferenceDisabledError",
    "RequestCancelledError",
    "UnknownOperationError",
    "classify_error",
    "ANALYZE",
    "SUGGEST",
    "ENHANCE",
    "CHAT",
]
