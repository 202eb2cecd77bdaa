from __future__ import annotations

import asyncio

import pytest

from tether.errors import (
    NetworkError,
    QueueFullError,
    RemoteError,
    RemoteTimeoutError,
    RequestCancelledError,
)
from tether.runtime.contracts import QueuePolicy, RetryPolicy
from tether.runtime.queue import RequestQueue


def run_async(coro):
    return asyncio.run(coro)


class _RecordingMetrics:
    def __init__(self) -> None:
        self.calls: list[tuple[str, int, dict[str, str]]] = []
        self.observed: list[tuple[str, float, dict[str, str]]] = []

    def incr(self, name, value=1, *, tags=None) -> None:
        self.calls.append((name, value, dict(tags or {})))

    def observe(self, name, value_s, *, tags=None) -> None:
        self.observed.append((name, value_s, dict(tags or {})))

    def names(self) -> list[str]:
        return [name for name, _, _ in self.calls]


def _gated(gate: asyncio.Event, log: list[str], label: str, result=None):
    async def _op():
        log.append(label)
        await gate.wait()
        return result if result is not None else label

    return _op


def test_max_concurrent_two_runs_two_and_queues_three():
    async def scenario() -> None:
        queue = RequestQueue(QueuePolicy(max_concurrent=2))
        gate = asyncio.Event()
        started: list[str] = []
        handles = [
            queue.submit(_gated(gate, started, f"op{i}")) for i in range(5)
        ]

        assert queue.processing_count == 2
        assert queue.queued_count == 3
        await asyncio.sleep(0)
        assert started == ["op0", "op1"]

        gate.set()
        results = await asyncio.gather(*(h.future for h in handles))
        assert results == ["op0", "op1", "op2", "op3", "op4"]
        stats = queue.stats()
        assert stats.completed == 5
        assert stats.queue_size == 0
        assert stats.processing == 0

    run_async(scenario())


def test_high_priority_takes_freed_slot_before_earlier_normal_requests():
    async def scenario() -> None:
        queue = RequestQueue(QueuePolicy(max_concurrent=1))
        gate = asyncio.Event()
        order: list[str] = []

        async def record(label: str):
            order.append(label)
            return label

        blocker = queue.submit(_gated(gate, [], "blocker"))
        normal_a = queue.submit(lambda: record("normal-a"))
        normal_b = queue.submit(lambda: record("normal-b"))
        high = queue.submit(lambda: record("high"), high_priority=True)

        assert queue.position(high.id) == 1
        assert queue.position(normal_a.id) == 2
        assert queue.position(blocker.id) == 0

        gate.set()
        await asyncio.gather(blocker.future, normal_a.future, normal_b.future, high.future)
        assert order == ["high", "normal-a", "normal-b"]

    run_async(scenario())


def test_priority_disabled_keeps_fifo():
    async def scenario() -> None:
        queue = RequestQueue(QueuePolicy(max_concurrent=1, enable_priority=False))
        gate = asyncio.Event()
        order: list[str] = []

        async def record(label: str):
            order.append(label)

        blocker = queue.submit(_gated(gate, [], "blocker"))
        first = queue.submit(lambda: record("normal"))
        second = queue.submit(lambda: record("high"), high_priority=True)
        assert second.priority == "normal"

        gate.set()
        await asyncio.gather(blocker.future, first.future, second.future)
        assert order == ["normal", "high"]

    run_async(scenario())


def test_retryable_failure_is_retried_until_success():
    async def scenario() -> None:
        metrics = _RecordingMetrics()
        queue = RequestQueue(retry_policy=RetryPolicy(max_retries=2), metrics=metrics)
        attempts = {"count": 0}

        async def flaky():
            attempts["count"] += 1
            if attempts["count"] < 3:
                raise NetworkError("connection reset")
            return "ok"

        assert await queue.enqueue(flaky) == "ok"
        assert attempts["count"] == 3
        assert metrics.names().count("queue_retried_total") == 2
        assert "queue_completed_total" in metrics.names()
        assert metrics.calls.count(("queue_retried_total", 1, {"kind": "network"})) == 2
        delays = [obs for obs in metrics.observed if obs[0] == "queue_retry_delay_seconds"]
        assert delays == [("queue_retry_delay_seconds", 0.0, {"kind": "network"})] * 2
        assert "queue_retries_exhausted_total" not in metrics.names()

    run_async(scenario())


def test_retries_exhausted_rejects_with_last_error():
    async def scenario() -> None:
        metrics = _RecordingMetrics()
        queue = RequestQueue(retry_policy=RetryPolicy(max_retries=2), metrics=metrics)
        attempts = {"count": 0}

        async def always_down():
            attempts["count"] += 1
            raise RemoteError("upstream 503", status=503)

        with pytest.raises(RemoteError) as exc_info:
            await queue.enqueue(always_down)
        assert exc_info.value.status == 503
        assert attempts["count"] == 3
        assert queue.stats().failed == 1
        assert ("queue_failed_total", 1, {"kind": "remote"}) in metrics.calls
        assert ("queue_retries_exhausted_total", 1, {"kind": "remote"}) in metrics.calls

    run_async(scenario())


def test_client_error_fails_without_retry():
    async def scenario() -> None:
        queue = RequestQueue()
        attempts = {"count": 0}

        async def bad_request():
            attempts["count"] += 1
            raise RemoteError("bad request", status=400)

        with pytest.raises(RemoteError):
            await queue.enqueue(bad_request)
        assert attempts["count"] == 1

    run_async(scenario())


def test_too_many_requests_is_retried():
    async def scenario() -> None:
        queue = RequestQueue(retry_policy=RetryPolicy(max_retries=1))
        attempts = {"count": 0}

        async def throttled():
            attempts["count"] += 1
            if attempts["count"] == 1:
                raise RemoteError("slow down", status=429)
            return "done"

        assert await queue.enqueue(throttled) == "done"
        assert attempts["count"] == 2

    run_async(scenario())


def test_foreign_exceptions_are_classified():
    async def scenario() -> None:
        queue = RequestQueue(retry_policy=RetryPolicy(max_retries=0))

        async def refused():
            raise ConnectionRefusedError("ECONNREFUSED")

        with pytest.raises(NetworkError):
            await queue.enqueue(refused)

    run_async(scenario())


def test_attempt_timeout_raises_remote_timeout():
    async def scenario() -> None:
        queue = RequestQueue(retry_policy=RetryPolicy(max_retries=0))

        async def slow():
            await asyncio.sleep(1.0)

        with pytest.raises(RemoteTimeoutError, match="timeout"):
            await queue.enqueue(slow, timeout_s=0.02)

    run_async(scenario())


def test_backoff_delay_requeues_after_timer():
    async def scenario() -> None:
        queue = RequestQueue(
            retry_policy=RetryPolicy(max_retries=1, backoff_base_s=0.01)
        )
        attempts = {"count": 0}

        async def flaky():
            attempts["count"] += 1
            if attempts["count"] == 1:
                raise NetworkError("network down")
            return "recovered"

        assert await queue.enqueue(flaky) == "recovered"

    run_async(scenario())


def test_queue_full_rejects_new_requests():
    async def scenario() -> None:
        metrics = _RecordingMetrics()
        queue = RequestQueue(
            QueuePolicy(max_concurrent=1, max_queue_size=2), metrics=metrics
        )
        gate = asyncio.Event()
        handles = [queue.submit(_gated(gate, [], f"op{i}")) for i in range(3)]

        with pytest.raises(QueueFullError) as exc_info:
            queue.submit(_gated(gate, [], "overflow"))
        assert exc_info.value.max_queue_size == 2
        assert "queue_rejected_total" in metrics.names()

        gate.set()
        await asyncio.gather(*(h.future for h in handles))

    run_async(scenario())


def test_cancel_only_affects_queued_requests():
    async def scenario() -> None:
        queue = RequestQueue(QueuePolicy(max_concurrent=1))
        gate = asyncio.Event()
        running = queue.submit(_gated(gate, [], "running"))
        waiting = queue.submit(_gated(gate, [], "waiting"))

        assert queue.cancel(running.id) is False
        assert queue.cancel(waiting.id) is True
        assert queue.cancel(waiting.id) is False
        with pytest.raises(RequestCancelledError):
            await waiting.future

        gate.set()
        assert await running.future == "running"

    run_async(scenario())


def test_cancelling_awaiting_task_removes_queued_request():
    async def scenario() -> None:
        queue = RequestQueue(QueuePolicy(max_concurrent=1))
        gate = asyncio.Event()
        blocker = queue.submit(_gated(gate, [], "blocker"))

        waiter = asyncio.create_task(queue.enqueue(_gated(gate, [], "late")))
        await asyncio.sleep(0)
        assert queue.queued_count == 1

        waiter.cancel()
        with pytest.raises(asyncio.CancelledError):
            await waiter
        assert queue.queued_count == 0

        gate.set()
        await blocker.future

    run_async(scenario())


def test_clear_cancels_all_queued_requests():
    async def scenario() -> None:
        queue = RequestQueue(QueuePolicy(max_concurrent=1))
        gate = asyncio.Event()
        blocker = queue.submit(_gated(gate, [], "blocker"))
        queued = [queue.submit(_gated(gate, [], f"q{i}")) for i in range(3)]

        assert queue.clear() == 3
        for handle in queued:
            with pytest.raises(RequestCancelledError):
                await handle.future

        gate.set()
        await blocker.future

    run_async(scenario())


def test_stats_report_caller_position():
    async def scenario() -> None:
        queue = RequestQueue(QueuePolicy(max_concurrent=1))
        gate = asyncio.Event()
        handles = [
            queue.submit(_gated(gate, [], "a"), "alice"),
            queue.submit(_gated(gate, [], "b"), "bob"),
            queue.submit(_gated(gate, [], "c"), "carol"),
        ]

        assert queue.stats("alice").position is None
        assert queue.stats("bob").position == 1
        assert queue.stats("carol").position == 2
        assert [req.status for req in queue.requests()] == [
            "processing",
            "queued",
            "queued",
        ]

        gate.set()
        await asyncio.gather(*(h.future for h in handles))
        assert queue.stats().average_wait_s >= 0.0

    run_async(scenario())


def test_shutdown_cancels_queued_and_waits_for_active():
    async def scenario() -> None:
        queue = RequestQueue(QueuePolicy(max_concurrent=1))

        async def quick():
            await asyncio.sleep(0.01)
            return "quick"

        active = queue.submit(quick)
        queued = queue.submit(quick)

        await queue.shutdown(timeout_s=1.0)
        assert await active.future == "quick"
        with pytest.raises(RequestCancelledError):
            await queued.future

    run_async(scenario())


def test_invalid_policy_is_rejected():
    with pytest.raises(ValueError, match="max_concurrent"):
        RequestQueue(QueuePolicy(max_concurrent=0))


def test_failure_without_retries_is_not_counted_as_exhausted():
    async def scenario() -> None:
        metrics = _RecordingMetrics()
        queue = RequestQueue(retry_policy=RetryPolicy(max_retries=0), metrics=metrics)

        async def down():
            raise NetworkError("network down")

        with pytest.raises(NetworkError):
            await queue.enqueue(down)
        assert ("queue_failed_total", 1, {"kind": "network"}) in metrics.calls
        assert "queue_retries_exhausted_total" not in metrics.names()

    run_async(scenario())


def test_wait_time_is_observed_when_a_slot_frees():
    async def scenario() -> None:
        clock = {"now": 100.0}
        metrics = _RecordingMetrics()
        queue = RequestQueue(
            QueuePolicy(max_concurrent=1), metrics=metrics, clock=lambda: clock["now"]
        )
        gate = asyncio.Event()
        blocker = queue.submit(_gated(gate, [], "blocker"))
        waiting = queue.submit(_gated(gate, [], "waiting"))

        clock["now"] = 102.5
        gate.set()
        await asyncio.gather(blocker.future, waiting.future)

        waits = [value for name, value, _ in metrics.observed if name == "queue_wait_seconds"]
        assert waits == [0.0, 2.5]

    run_async(scenario())


def test_queue_size_must_admit_at_least_one_request():
    with pytest.raises(ValueError, match="max_queue_size"):
        RequestQueue(QueuePolicy(max_queue_size=0))
