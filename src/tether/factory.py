"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Wiring helpers that build a ready-to-use orchestrator from settings.
"""

from __future__ import annotations

import time
from collections.abc import Callable

from .metrics import MetricsSink
from .preferences import Preferences
from .runtime.context import RuntimeContext
from .runtime.orchestrator import Orchestrator
from .settings import TetherSettings
from .storage import KeyValueStore, create_store_from_env


def build_orchestrator(
    settings: TetherSettings | None = None,
    *,
    store: KeyValueStore | None = None,
    metrics: MetricsSink | None = None,
    preferences: Preferences | Callable[[], bool] | None = None,
    high_priority: Callable[[], bool] | bool = False,
    caller_id: str | None = None,
    clock: Callable[[], float] = time.time,
) -> Orchestrator:
    """
    Build an orchestrator with every component sharing one store and clock.

    Args:
        settings: Runtime settings; loaded from the environment when omitted.
        store: Durable store; selected from the environment when omitted.
        metrics: Metrics sink shared by queue and orchestrator.
        preferences: Preference provider; a persisted `Preferences` on the
            same store is created when omitted.
        high_priority: Tier provider (or a fixed flag) for queue priority.
        caller_id: Identifier used for queue-position reporting.
        clock: Wall-clock source in seconds.
    """
    settings = settings or TetherSettings.from_env()
    if store is None:
        store = create_store_from_env()
    if preferences is None:
        preferences = Preferences(store=store, clock=clock)

    context = RuntimeContext.create(
        store=store,
        cache_policy=settings.cache_policy(),
        rate_limit_policy=settings.rate_limit_policy(),
        circuit_breaker_policy=settings.circuit_breaker_policy(),
        queue_policy=settings.queue_policy(),
        retry_policy=settings.retry_policy(),
        debounce_policy=settings.debounce_policy(),
        metrics=metrics,
        clock=clock,
    )
    return Orchestrator(
        context,
        preferences=preferences,
        high_priority=high_priority,
        caller_id=caller_id,
        metrics=metrics,
    )
