"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Orchestrator composing preference gate, circuit breaker, cache, rate limiter,
request queue and fallback engine around registered remote operations.
"""

from __future__ import annotations

import logging
import math
import time
import uuid
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from itertools import islice
from typing import Any

from ..errors import (
    CircuitOpenError,
    InvalidResponseError,
    PreferenceDisabledError,
    QueueFullError,
    RateLimitError,
    RemoteError,
    RequestCancelledError,
    TetherError,
    UnknownOperationError,
)
from ..metrics import MetricsSink, NoOpMetrics
from ..preferences import Preferences
from ..types import (
    ANALYZE,
    CHAT,
    ENHANCE,
    SUGGEST,
    FallbackFn,
    InvocationResult,
    RemoteCall,
    Validator,
)
from .cache import estimate_warming_size, make_cache_key
from .circuit_breaker import CircuitState
from .context import RuntimeContext
from .debounce import SUPERSEDED
from .fallback import is_fallback_eligible
from .retry import as_tether_error

logger = logging.getLogger("tether.orchestrator")

StateListener = Callable[["OrchestratorState"], None]


@dataclass(frozen=True, slots=True)
class Operation:
    """
    One registered remote operation.

    Attributes:
        kind: Operation kind used for routing, cache keys and fallbacks.
        remote: Coroutine function called with the payload.
        timeout_s: Per-attempt timeout override, ``None`` uses the queue policy.
        cacheable: Whether successful results are cached.
        validate: Optional validator; raising marks the response invalid.
        debounce: Whether invocations are debounced by default.
        fallback_on_client_error: Degrade on 4xx remote errors instead of raising.
    """

    kind: str
    remote: RemoteCall
    timeout_s: float | None = None
    cacheable: bool = True
    validate: Validator | None = None
    debounce: bool = False
    fallback_on_client_error: bool = False


@dataclass(frozen=True, slots=True)
class OrchestratorState:
    """Observable snapshot for UI/status surfaces."""

    is_loading: bool
    last_error: BaseException | None
    is_using_fallback: bool
    remaining_quota: int
    quota_reset_time: float
    queue_position: int | None
    circuit_state: CircuitState


class Orchestrator:
    """
    Single entry point for remote operations.

    Every invocation runs the same pipeline: preference gate, circuit check,
    cache lookup, quota check and consume, queued remote execution and finally
    success recording or fallback. Degraded outcomes are returned as results;
    only quota, capacity and non-eligible remote errors are raised.
    """

    def __init__(
        self,
        context: RuntimeContext,
        *,
        preferences: Preferences | Callable[[], bool] | None = None,
        high_priority: Callable[[], bool] | bool = False,
        caller_id: str | None = None,
        metrics: MetricsSink | None = None,
    ) -> None:
        self._ctx = context
        self._operations: dict[str, Operation] = {}
        self._preferences = preferences
        self._high_priority = high_priority
        self._caller_id = caller_id or f"caller_{uuid.uuid4().hex[:9]}"
        self._metrics: MetricsSink = metrics or NoOpMetrics()

        self._in_flight = 0
        self._last_error: BaseException | None = None
        self._using_fallback = False
        self._listeners: list[StateListener] = []
        self._remove_preference_listener: Callable[[], None] | None = None
        if isinstance(preferences, Preferences):
            self._remove_preference_listener = preferences.add_listener(
                self._on_preference_change
            )

    @property
    def context(self) -> RuntimeContext:
        return self._ctx

    @property
    def caller_id(self) -> str:
        return self._caller_id

    def register_operation(
        self,
        kind: str,
        remote: RemoteCall,
        *,
        fallback: FallbackFn | None = None,
        fallback_confidence: float = 0.5,
        timeout_s: float | None = None,
        cacheable: bool = True,
        validate: Validator | None = None,
        debounce: bool = False,
        fallback_on_client_error: bool = False,
    ) -> Operation:
        key = kind.strip()
        if not key:
            raise ValueError("Operation kind must be non-empty")
        operation = Operation(
            kind=key,
            remote=remote,
            timeout_s=timeout_s,
            cacheable=cacheable,
            validate=validate,
            debounce=debounce,
            fallback_on_client_error=fallback_on_client_error,
        )
        self._operations[key] = operation
        if fallback is not None:
            self._ctx.fallback.register(
                key, fallback, confidence=fallback_confidence, overwrite=True
            )
        logger.debug("Registered operation '%s'", key)
        return operation

    def register_fallback(
        self, kind: str, fallback: FallbackFn, *, confidence: float = 0.5
    ) -> None:
        """Register a substitute for `kind`, usable even without a remote."""
        self._ctx.fallback.register(kind, fallback, confidence=confidence, overwrite=True)

    def operations(self) -> list[str]:
        return sorted(self._operations)

    async def invoke(
        self,
        kind: str,
        payload: Any,
        *,
        caller_id: str | None = None,
        high_priority: bool | None = None,
        debounce: bool | None = None,
    ) -> InvocationResult:
        """
        Run one operation through the resilience pipeline.

        Returns:
            ``ok`` for remote or cached data, ``degraded`` for fallback output,
            ``superseded`` when a newer debounced call replaced this one.

        Raises:
            UnknownOperationError: `kind` has neither a remote nor a fallback.
            RateLimitError: Local quota is exhausted.
            QueueFullError: The request queue is at capacity.
            TetherError: Remote failures that are not fallback-eligible.
        """
        operation = self._operations.get(kind)
        if operation is None:
            if not self._ctx.fallback.has(kind):
                raise UnknownOperationError(f"Unknown operation: {kind}")
            logger.info("No remote registered for '%s'; using fallback", kind)
            return self._degrade(kind, payload, None, reason="remote_unavailable")

        caller = caller_id or self._caller_id
        use_debounce = operation.debounce if debounce is None else debounce
        if not use_debounce:
            return await self._invoke_now(operation, payload, caller, high_priority)

        outcome = await self._ctx.debouncer.run(
            operation.kind,
            lambda: self._invoke_now(operation, payload, caller, high_priority),
        )
        if outcome is SUPERSEDED:
            logger.debug("Invocation of '%s' superseded by a newer call", kind)
            self._metrics.incr(
                "invocations_total", tags={"kind": kind, "outcome": "superseded"}
            )
            return InvocationResult.superseded(kind)
        return outcome

    async def analyze(self, payload: Any, **kwargs: Any) -> InvocationResult:
        return await self.invoke(ANALYZE, payload, **kwargs)

    async def suggest(self, payload: Any, **kwargs: Any) -> InvocationResult:
        return await self.invoke(SUGGEST, payload, **kwargs)

    async def enhance(self, payload: Any, **kwargs: Any) -> InvocationResult:
        return await self.invoke(ENHANCE, payload, **kwargs)

    async def chat(self, payload: Any, **kwargs: Any) -> InvocationResult:
        return await self.invoke(CHAT, payload, **kwargs)

    @property
    def state(self) -> OrchestratorState:
        return self.state_for(self._caller_id)

    def state_for(self, caller_id: str) -> OrchestratorState:
        quota = self._ctx.rate_limiter.check_limit(
            high_priority=self._resolve_priority(None)
        )
        return OrchestratorState(
            is_loading=self._in_flight > 0,
            last_error=self._last_error,
            is_using_fallback=self._using_fallback,
            remaining_quota=quota.remaining,
            quota_reset_time=quota.reset_time,
            queue_position=self._ctx.queue.stats(caller_id).position,
            circuit_state=self._ctx.circuit_breaker.state,
        )

    def add_listener(self, listener: StateListener) -> Callable[[], None]:
        """Register a state listener; returns a callable that removes it."""
        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _remove

    def clear_cache(self) -> None:
        self._ctx.cache.clear()
        logger.info("Response cache cleared")

    def warm_cache(self, kind: str, rows: Iterable[tuple[Any, Any]]) -> int:
        """
        Seed the cache with known ``(payload, data)`` pairs for `kind`.

        At most 30% of capacity is warmed, bounded by free space.
        """
        cache = self._ctx.cache
        budget = estimate_warming_size(cache.policy.max_size, len(cache))
        entries = [
            (make_cache_key(kind, payload), data)
            for payload, data in islice(rows, budget)
        ]
        warmed = cache.warm(entries)
        logger.info("Warmed %d cache entries for '%s'", warmed, kind)
        return warmed

    async def shutdown(self, *, timeout_s: float = 30.0) -> None:
        if self._remove_preference_listener is not None:
            self._remove_preference_listener()
            self._remove_preference_listener = None
        await self._ctx.queue.shutdown(timeout_s=timeout_s)

    async def _invoke_now(
        self,
        operation: Operation,
        payload: Any,
        caller_id: str,
        high_priority: bool | None,
    ) -> InvocationResult:
        self._in_flight += 1
        self._notify()
        started = time.monotonic()
        outcome = "error"
        try:
            result = await self._run_pipeline(
                operation, payload, caller_id, high_priority
            )
            outcome = "cache" if result.from_cache else result.status
            return result
        finally:
            self._metrics.observe(
                "invocation_latency_seconds",
                time.monotonic() - started,
                tags={"kind": operation.kind, "outcome": outcome},
            )
            self._in_flight -= 1
            self._notify()

    async def _run_pipeline(
        self,
        operation: Operation,
        payload: Any,
        caller_id: str,
        high_priority: bool | None,
    ) -> InvocationResult:
        kind = operation.kind
        is_high = self._resolve_priority(high_priority)
        ctx = self._ctx

        if not self._remote_enabled():
            logger.info("Remote features disabled; using fallback for '%s'", kind)
            return self._degrade(
                kind,
                payload,
                PreferenceDisabledError("Remote features disabled by preference"),
                reason="preference_disabled",
            )

        breaker = ctx.circuit_breaker
        if not breaker.can_attempt():
            error = CircuitOpenError(
                breaker.status_message(),
                retry_after_s=breaker.time_until_recovery(),
            )
            logger.warning("Circuit open; using fallback for '%s'", kind)
            return self._degrade(kind, payload, error, reason="circuit_open")

        # A half-open probe grant must be returned unless the remote was reached.
        reached_remote = False
        try:
            use_cache = operation.cacheable and ctx.cache.policy.enabled
            cache_key = make_cache_key(kind, payload)
            if use_cache:
                cached = ctx.cache.get(cache_key)
                if cached is not None:
                    self._metrics.incr("cache_hits_total", tags={"kind": kind})
                    self._metrics.incr(
                        "invocations_total", tags={"kind": kind, "outcome": "cache"}
                    )
                    self._mark_healthy()
                    return InvocationResult.ok(kind, cached, from_cache=True)

            limiter = ctx.rate_limiter
            if limiter.check_limit(high_priority=is_high).is_limited or not (
                limiter.consume_request(high_priority=is_high)
            ):
                logger.warning("Rate limit reached for '%s'", kind)
                raise self._fail(self._rate_limit_error(is_high), kind)

            try:
                data = await ctx.queue.enqueue(
                    lambda: operation.remote(payload),
                    caller_id,
                    high_priority=is_high,
                    timeout_s=operation.timeout_s,
                )
                self._validate(operation, data)
            except (QueueFullError, RequestCancelledError) as exc:
                raise self._fail(exc, kind)
            except Exception as exc:  # noqa: BLE001
                error = as_tether_error(exc)
                self._metrics.incr("errors_total", tags={"kind": kind, "error": error.kind})
                # A remote 429 is a quota signal, not a circuit failure.
                if not (isinstance(error, RemoteError) and error.is_rate_limited):
                    reached_remote = True
                    breaker.record_failure()
                if is_fallback_eligible(
                    error, allow_client_errors=operation.fallback_on_client_error
                ):
                    logger.warning(
                        "Remote '%s' failed (%s); using fallback", kind, error.kind
                    )
                    return self._degrade(kind, payload, error, reason=error.kind)
                logger.error("Remote '%s' failed: %s", kind, error)
                if error is exc:
                    raise self._fail(error, kind)
                raise self._fail(error, kind) from exc

            reached_remote = True
            breaker.record_success()
            if use_cache:
                ctx.cache.set(cache_key, data)
            self._mark_healthy()
            self._metrics.incr("invocations_total", tags={"kind": kind, "outcome": "ok"})
            return InvocationResult.ok(kind, data)
        finally:
            if not reached_remote:
                breaker.release_probe()

    def _rate_limit_error(self, high_priority: bool) -> RateLimitError:
        limiter = self._ctx.rate_limiter
        status = limiter.check_limit(high_priority=high_priority)
        wait_s = limiter.time_until_reset()
        minutes = max(1, math.ceil(wait_s / 60.0))
        return RateLimitError(
            f"Remote quota reached. Try again in {minutes} minute"
            f"{'s' if minutes != 1 else ''} or upgrade for priority access.",
            retry_after_s=wait_s,
            reset_time=status.reset_time,
        )

    @staticmethod
    def _validate(operation: Operation, data: Any) -> None:
        if operation.validate is None:
            return
        try:
            operation.validate(data)
        except InvalidResponseError:
            raise
        except Exception as exc:  # noqa: BLE001
            raise InvalidResponseError(
                f"Invalid response for '{operation.kind}': {exc}"
            ) from exc

    def _degrade(
        self,
        kind: str,
        payload: Any,
        error: TetherError | None,
        *,
        reason: str,
    ) -> InvocationResult:
        fallback = self._ctx.fallback.run(kind, payload, reason=reason)
        self._using_fallback = True
        # Opting out is not an error condition.
        self._last_error = None if isinstance(error, PreferenceDisabledError) else error
        self._metrics.incr(
            "fallbacks_total", tags={"kind": kind, "reason": reason}
        )
        self._metrics.incr(
            "invocations_total", tags={"kind": kind, "outcome": "degraded"}
        )
        return InvocationResult.degraded(kind, fallback, error=error)

    def _fail(self, error: TetherError, kind: str) -> TetherError:
        self._last_error = error
        self._metrics.incr(
            "invocations_total", tags={"kind": kind, "outcome": "error"}
        )
        return error

    def _mark_healthy(self) -> None:
        self._last_error = None
        self._using_fallback = False

    def _remote_enabled(self) -> bool:
        if self._preferences is None:
            return True
        return bool(self._preferences())

    def _resolve_priority(self, high_priority: bool | None) -> bool:
        if high_priority is not None:
            return high_priority
        if callable(self._high_priority):
            return bool(self._high_priority())
        return bool(self._high_priority)

    def _on_preference_change(self, enabled: bool) -> None:
        if enabled and self._using_fallback:
            self._mark_healthy()
        self._notify()

    def _notify(self) -> None:
        if not self._listeners:
            return
        snapshot = self.state
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:  # noqa: BLE001
                logger.exception("State listener failed")
