"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Priority-aware, concurrency-bounded request queue with timeout and retry.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from ..errors import QueueFullError, RequestCancelledError, TetherError
from ..metrics import MetricsSink, NoOpMetrics
from ..types import Priority, RequestStatus
from .contracts import QueuePolicy, RetryPolicy
from .retry import as_tether_error, compute_backoff_s
from .timeouts import await_with_timeout

logger = logging.getLogger("tether.queue")

Operation = Callable[[], Awaitable[Any]]


def _drain(future: asyncio.Future[Any]) -> None:
    if not future.cancelled():
        future.exception()


@dataclass(slots=True, eq=False)
class QueuedRequest:
    """
    One unit of work waiting for, or occupying, an execution slot.

    Attributes:
        id: Unique request identifier.
        operation: Zero-argument coroutine factory executed per attempt.
        caller_id: Caller the request belongs to (used for queue position).
        priority: ``high`` requests run before ``normal`` ones.
        future: Resolved with the result or rejected with the final error.
        enqueue_time: Timestamp of the latest (re-)enqueue.
        status: Current lifecycle status.
        retry_count: Retries performed so far.
        max_retries: Retries allowed after the first failed attempt.
        timeout_s: Per-attempt timeout, ``None`` disables it.
        started_at: Timestamp of the latest attempt start.
    """

    id: str
    operation: Operation
    caller_id: str
    priority: Priority
    future: asyncio.Future[Any]
    enqueue_time: float
    status: RequestStatus = "queued"
    retry_count: int = 0
    max_retries: int = 2
    timeout_s: float | None = None
    started_at: float | None = None
    retry_handle: asyncio.TimerHandle | None = field(default=None, repr=False)

    @property
    def is_terminal(self) -> bool:
        return self.status in ("completed", "failed", "cancelled")


@dataclass(frozen=True, slots=True)
class QueueStats:
    """Queue statistics, optionally including one caller's position."""

    queue_size: int
    processing: int
    completed: int
    failed: int
    average_wait_s: float
    position: int | None = None


class RequestQueue:
    """
    Executes remote operations under a concurrency bound.

    Ordering is priority first, FIFO within a tier. Running work is never
    preempted; priority only decides which queued request takes a freed slot.
    Retryable failures are re-queued at the back of their own tier.
    """

    def __init__(
        self,
        policy: QueuePolicy | None = None,
        retry_policy: RetryPolicy | None = None,
        *,
        metrics: MetricsSink | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._policy = policy or QueuePolicy()
        if self._policy.max_concurrent < 1:
            raise ValueError("max_concurrent must be >= 1")
        if self._policy.max_queue_size < 1:
            raise ValueError("max_queue_size must be >= 1")
        self._retry_policy = retry_policy or RetryPolicy()
        self._metrics: MetricsSink = metrics or NoOpMetrics()
        self._clock = clock

        self._tiers: dict[Priority, deque[QueuedRequest]] = {
            "high": deque(),
            "normal": deque(),
        }
        self._requests: dict[str, QueuedRequest] = {}
        self._processing: set[str] = set()
        self._active_tasks: set[asyncio.Task[None]] = set()
        self._wait_times: deque[float] = deque(maxlen=100)
        self._completed = 0
        self._failed = 0
        self._next_id = 0

    @property
    def policy(self) -> QueuePolicy:
        return self._policy

    @property
    def processing_count(self) -> int:
        return len(self._processing)

    @property
    def queued_count(self) -> int:
        return sum(1 for req in self._requests.values() if req.status == "queued")

    def submit(
        self,
        operation: Operation,
        caller_id: str = "anonymous",
        *,
        high_priority: bool = False,
        timeout_s: float | None = None,
        max_retries: int | None = None,
    ) -> QueuedRequest:
        """
        Add one operation to the queue and return its handle.

        Raises:
            QueueFullError: When queued depth has reached ``max_queue_size``.
        """
        if self.queued_count >= self._policy.max_queue_size:
            self._metrics.incr("queue_rejected_total")
            raise QueueFullError(
                f"Request queue is full ({self._policy.max_queue_size} requests). "
                "Please try again later.",
                max_queue_size=self._policy.max_queue_size,
            )

        priority: Priority = (
            "high" if high_priority and self._policy.enable_priority else "normal"
        )
        self._next_id += 1
        request = QueuedRequest(
            id=f"req_{self._next_id}",
            operation=operation,
            caller_id=caller_id,
            priority=priority,
            future=asyncio.get_running_loop().create_future(),
            enqueue_time=self._clock(),
            max_retries=(
                self._retry_policy.max_retries if max_retries is None else max_retries
            ),
            timeout_s=(
                self._policy.request_timeout_s if timeout_s is None else timeout_s
            ),
        )
        self._requests[request.id] = request
        self._tiers[priority].append(request)
        logger.debug(
            "Enqueued %s with %s priority (queued=%d)",
            request.id,
            priority,
            self.queued_count,
        )
        self._pump()
        return request

    async def enqueue(
        self,
        operation: Operation,
        caller_id: str = "anonymous",
        *,
        high_priority: bool = False,
        timeout_s: float | None = None,
    ) -> Any:
        """
        Submit an operation and wait for its final result.

        Cancelling the awaiting task cancels the request if it has not started.
        """
        request = self.submit(
            operation,
            caller_id,
            high_priority=high_priority,
            timeout_s=timeout_s,
        )
        try:
            return await asyncio.shield(request.future)
        except asyncio.CancelledError:
            # Nobody awaits the future anymore; consume its outcome when it settles.
            request.future.add_done_callback(_drain)
            self.cancel(request.id)
            raise

    def cancel(self, request_id: str) -> bool:
        """Cancel one still-queued request; processing requests are left alone."""
        request = self._requests.get(request_id)
        if request is None or request.status != "queued":
            return False

        tier = self._tiers[request.priority]
        if request in tier:
            tier.remove(request)
        if request.retry_handle is not None:
            request.retry_handle.cancel()
            request.retry_handle = None
        self._settle(
            request,
            "cancelled",
            error=RequestCancelledError(f"Request {request_id} cancelled by caller"),
        )
        logger.info("Cancelled request %s", request_id)
        return True

    def clear(self) -> int:
        """Cancel every queued request; returns how many were cancelled."""
        queued = [rid for rid, req in self._requests.items() if req.status == "queued"]
        cancelled = sum(1 for rid in queued if self.cancel(rid))
        logger.info("Cleared %d queued requests", cancelled)
        return cancelled

    async def shutdown(self, *, timeout_s: float = 30.0) -> None:
        """Cancel queued work and wait for in-flight requests up to ``timeout_s``."""
        self.clear()
        if not self._active_tasks:
            return
        logger.info("Waiting for %d active requests...", len(self._active_tasks))
        _, pending = await asyncio.wait(set(self._active_tasks), timeout=timeout_s)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    def position(self, request_id: str) -> int:
        """1-based position among queued requests, or 0 when not queued."""
        for index, request in enumerate(self._ordered(), start=1):
            if request.id == request_id:
                return index
        return 0

    def requests(self, *, status: RequestStatus | None = None) -> list[QueuedRequest]:
        """Live (non-terminal) requests, processing first then in queue order."""
        processing = sorted(
            (self._requests[rid] for rid in self._processing),
            key=lambda req: req.started_at or 0.0,
        )
        # Requests sleeping through a retry backoff are not in any tier yet.
        backing_off = [
            req for req in self._requests.values() if req.retry_handle is not None
        ]
        rows = [*processing, *self._ordered(), *backing_off]
        if status is not None:
            rows = [req for req in rows if req.status == status]
        return rows

    def stats(self, caller_id: str | None = None) -> QueueStats:
        position: int | None = None
        if caller_id is not None:
            for index, request in enumerate(self._ordered(), start=1):
                if request.caller_id == caller_id:
                    position = index
                    break
        waits = list(self._wait_times)[-20:]
        return QueueStats(
            queue_size=self.queued_count,
            processing=len(self._processing),
            completed=self._completed,
            failed=self._failed,
            average_wait_s=(sum(waits) / len(waits)) if waits else 0.0,
            position=position,
        )

    def debug_info(self) -> dict[str, Any]:
        now = self._clock()
        return {
            "policy": self._policy,
            "queue": [
                {
                    "id": req.id,
                    "priority": req.priority,
                    "status": req.status,
                    "caller_id": req.caller_id,
                    "queued_for_s": now - req.enqueue_time,
                    "retries": req.retry_count,
                }
                for req in self.requests()
            ],
            "processing": sorted(self._processing),
            "stats": self.stats(),
        }

    def _ordered(self) -> list[QueuedRequest]:
        return [*self._tiers["high"], *self._tiers["normal"]]

    def _next_queued(self) -> QueuedRequest | None:
        for tier in (self._tiers["high"], self._tiers["normal"]):
            if tier:
                return tier.popleft()
        return None

    def _pump(self) -> None:
        """Start queued requests while execution slots are free."""
        while len(self._processing) < self._policy.max_concurrent:
            request = self._next_queued()
            if request is None:
                return
            request.status = "processing"
            request.started_at = self._clock()
            self._processing.add(request.id)
            self._metrics.observe(
                "queue_wait_seconds", request.started_at - request.enqueue_time
            )
            logger.debug(
                "Processing %s (%s priority, %d/%d slots)",
                request.id,
                request.priority,
                len(self._processing),
                self._policy.max_concurrent,
            )
            task = asyncio.create_task(self._execute(request))
            self._active_tasks.add(task)
            task.add_done_callback(self._active_tasks.discard)

    async def _execute(self, request: QueuedRequest) -> None:
        """Run one attempt, then settle, retry or fail the request."""
        try:
            result = await await_with_timeout(request.operation(), request.timeout_s)
        except asyncio.CancelledError:
            self._processing.discard(request.id)
            self._settle(
                request,
                "failed",
                error=RequestCancelledError(f"Request {request.id} interrupted by shutdown"),
            )
            raise
        except Exception as exc:  # noqa: BLE001
            self._processing.discard(request.id)
            self._handle_failure(request, as_tether_error(exc))
            self._pump()
            return

        self._processing.discard(request.id)
        wait_s = self._clock() - request.enqueue_time
        self._wait_times.append(wait_s)
        self._settle(request, "completed", result=result)
        self._metrics.incr("queue_completed_total")
        logger.debug("Request %s completed (waited %.3fs)", request.id, wait_s)
        self._pump()

    def _handle_failure(self, request: QueuedRequest, error: TetherError) -> None:
        attempts = request.retry_count + 1
        if error.retryable and request.retry_count < request.max_retries:
            request.retry_count += 1
            request.status = "queued"
            request.started_at = None
            delay_s = compute_backoff_s(request.retry_count, policy=self._retry_policy)
            self._metrics.incr("queue_retried_total", tags={"kind": error.kind})
            self._metrics.observe(
                "queue_retry_delay_seconds", delay_s, tags={"kind": error.kind}
            )
            logger.warning(
                "Request %s failed (attempt %d/%d): %s; retrying",
                request.id,
                attempts,
                request.max_retries + 1,
                error,
            )
            if delay_s > 0:
                loop = asyncio.get_running_loop()
                request.retry_handle = loop.call_later(delay_s, self._requeue, request)
            else:
                self._requeue(request)
            return

        self._settle(request, "failed", error=error)
        self._metrics.incr("queue_failed_total", tags={"kind": error.kind})
        if request.retry_count:
            self._metrics.incr(
                "queue_retries_exhausted_total", tags={"kind": error.kind}
            )
        logger.error(
            "Request %s failed permanently after %d attempt(s): %s",
            request.id,
            attempts,
            error,
        )

    def _requeue(self, request: QueuedRequest) -> None:
        """Re-enter a retried request at the back of its own tier."""
        request.retry_handle = None
        if request.status != "queued":
            return
        request.enqueue_time = self._clock()
        self._tiers[request.priority].append(request)
        self._pump()

    def _settle(
        self,
        request: QueuedRequest,
        status: RequestStatus,
        *,
        result: Any = None,
        error: BaseException | None = None,
    ) -> None:
        request.status = status
        self._requests.pop(request.id, None)
        if status == "completed":
            self._completed += 1
        elif status == "failed":
            self._failed += 1
        if request.future.done():
            return
        if error is not None:
            request.future.set_exception(error)
        else:
            request.future.set_result(result)
