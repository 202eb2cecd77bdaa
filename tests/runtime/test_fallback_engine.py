from __future__ import annotations

import pytest

from tether.errors import (
    CircuitOpenError,
    InvalidResponseError,
    NetworkError,
    PreferenceDisabledError,
    QueueFullError,
    RateLimitError,
    RemoteError,
    RemoteTimeoutError,
    RequestCancelledError,
)
from tether.runtime.fallback import UNAVAILABLE_MESSAGE, FallbackEngine, is_fallback_eligible


@pytest.mark.parametrize(
    "error",
    [
        NetworkError("down"),
        RemoteTimeoutError("slow"),
        InvalidResponseError("garbage"),
        CircuitOpenError("open"),
        PreferenceDisabledError("off"),
        RemoteError("boom", status=500),
        RemoteError("unknown"),
    ],
)
def test_eligible_errors(error):
    assert is_fallback_eligible(error) is True


@pytest.mark.parametrize(
    "error",
    [
        RateLimitError("quota"),
        QueueFullError("full"),
        RequestCancelledError("cancelled"),
        RemoteError("bad request", status=400),
        RemoteError("too many requests", status=429),
        ValueError("not ours"),
    ],
)
def test_ineligible_errors(error):
    assert is_fallback_eligible(error) is False


def test_client_errors_eligible_when_allowed():
    error = RemoteError("not found", status=404)
    assert is_fallback_eligible(error, allow_client_errors=True) is True


def test_remote_too_many_requests_never_eligible():
    error = RemoteError("too many requests", status=429)
    assert is_fallback_eligible(error, allow_client_errors=True) is False


def test_remote_error_tag_overrides_status_default():
    error = RemoteError("forbidden but degrade", status=403, should_fallback=True)
    assert is_fallback_eligible(error) is True


def test_run_uses_registered_function_and_confidence():
    engine = FallbackEngine()
    engine.register("analyze", lambda payload: {"words": len(payload.split())}, confidence=0.7)

    result = engine.run("analyze", "three small words", reason="network")

    assert result.data == {"words": 3}
    assert result.reason == "network"
    assert result.confidence == 0.7
    assert result.degraded is True


def test_run_without_registration_returns_unavailable():
    result = FallbackEngine().run("chat", "hi", reason="timeout")
    assert result.data == {"kind": "chat", "available": False, "message": UNAVAILABLE_MESSAGE}
    assert result.confidence == 0.0
    assert result.reason == "timeout"


def test_raising_fallback_is_replaced_by_unavailable():
    def broken(_payload):
        raise RuntimeError("heuristics crashed")

    engine = FallbackEngine({"suggest": broken})
    result = engine.run("suggest", {})
    assert result.data["available"] is False


def test_duplicate_registration_requires_overwrite():
    engine = FallbackEngine({"enhance": lambda p: p})
    with pytest.raises(ValueError, match="already registered"):
        engine.register("enhance", lambda p: p)
    engine.register("enhance", lambda p: "new", overwrite=True)
    assert engine.run("enhance", "old").data == "new"


def test_register_validates_inputs():
    engine = FallbackEngine()
    with pytest.raises(ValueError, match="non-empty"):
        engine.register("  ", lambda p: p)
    with pytest.raises(ValueError, match="confidence"):
        engine.register("chat", lambda p: p, confidence=1.5)
