"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Error taxonomy for remote invocation failures and orchestration boundaries.

Every error carries a ``kind`` tag and a ``should_fallback`` flag so remote
callables can signal how the orchestrator should react.
"""

from __future__ import annotations

import asyncio
import re
import socket


class TetherError(RuntimeError):
    """Base error for all orchestration failures."""

    kind: str = "error"
    should_fallback: bool = True
    retryable: bool = False

    def __init__(
        self,
        message: str = "",
        *,
        should_fallback: bool | None = None,
    ) -> None:
        super().__init__(message)
        if should_fallback is not None:
            self.should_fallback = should_fallback


class RemoteError(TetherError):
    """Remote service answered with an error status (4xx/5xx)."""

    kind = "remote"

    def __init__(
        self,
        message: str = "",
        *,
        status: int | None = None,
        should_fallback: bool | None = None,
    ) -> None:
        self.status = status
        if should_fallback is None:
            should_fallback = not self.is_client_error
        super().__init__(message, should_fallback=should_fallback)

    @property
    def is_client_error(self) -> bool:
        """Whether status is a 4xx code."""
        return self.status is not None and 400 <= self.status < 500

    @property
    def is_rate_limited(self) -> bool:
        """Whether the remote rejected the call for its own quota (429)."""
        return self.status == 429

    @property
    def retryable(self) -> bool:  # type: ignore[override]
        if self.status is None:
            return False
        return self.status >= 500 or self.status == 429


class NetworkError(TetherError):
    """Connection-level failure before a response arrived."""

    kind = "network"
    retryable = True


class RemoteTimeoutError(TetherError, TimeoutError):
    """Remote call exceeded its per-request timeout."""

    kind = "timeout"
    retryable = True


class InvalidResponseError(TetherError):
    """Remote response failed schema validation."""

    kind = "invalid_response"


class RateLimitError(TetherError):
    """Local request quota is exhausted; caller should wait or upgrade tier."""

    kind = "rate_limit"
    should_fallback = False

    def __init__(
        self,
        message: str = "",
        *,
        retry_after_s: float = 0.0,
        reset_time: float | None = None,
    ) -> None:
        super().__init__(message)
        self.retry_after_s = max(0.0, retry_after_s)
        self.reset_time = reset_time


class CircuitOpenError(TetherError):
    """Circuit breaker refuses remote calls during cooldown."""

    kind = "circuit_open"

    def __init__(self, message: str = "", *, retry_after_s: float = 0.0) -> None:
        super().__init__(message)
        self.retry_after_s = max(0.0, retry_after_s)


class QueueFullError(TetherError):
    """Request queue reached its configured depth."""

    kind = "queue_full"
    should_fallback = False

    def __init__(self, message: str = "", *, max_queue_size: int = 0) -> None:
        super().__init__(message)
        self.max_queue_size = max_queue_size


class PreferenceDisabledError(TetherError):
    """Remote features are switched off by user preference."""

    kind = "preference_disabled"


class RequestCancelledError(TetherError):
    """Queued request was cancelled before it started."""

    kind = "cancelled"
    should_fallback = False


class UnknownOperationError(TetherError):
    """Raised when invoking an operation kind that was never registered."""

    kind = "configuration"
    should_fallback = False


_STATUS_RE = re.compile(r"\b([45]\d\d)\b")
_NETWORK_PHRASES = (
    "network",
    "econnrefused",
    "econnreset",
    "enotfound",
    "connection refused",
    "connection reset",
)
_TIMEOUT_PHRASES = ("timeout", "timed out", "etimedout")


def classify_error(error: BaseException) -> TetherError:
    """Classify arbitrary exceptions into the tagged error taxonomy."""
    if isinstance(error, TetherError):
        return error
    if isinstance(error, (asyncio.TimeoutError, TimeoutError, socket.timeout)):
        return RemoteTimeoutError(str(error) or "Request timed out")
    if isinstance(error, (ConnectionError, OSError)):
        return NetworkError(str(error))

    msg = str(error).lower()
    if any(token in msg for token in _TIMEOUT_PHRASES):
        return RemoteTimeoutError(str(error))
    if any(token in msg for token in _NETWORK_PHRASES):
        return NetworkError(str(error))
    match = _STATUS_RE.search(msg)
    if match is not None:
        return RemoteError(str(error), status=int(match.group(1)))
    return RemoteError(str(error) or type(error).__name__)
