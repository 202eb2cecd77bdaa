"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Module: runtime/retry.py.
"""

from __future__ import annotations

from random import random

from ..errors import TetherError, classify_error
from .contracts import RetryPolicy


def is_retryable(error: BaseException) -> bool:
    """Network, timeout, 5xx and 429 failures are retryable; everything else is not."""
    classified = classify_error(error)
    return bool(classified.retryable)


def compute_backoff_s(retry_count: int, *, policy: RetryPolicy) -> float:
    """Compute retry delay using capped exponential backoff plus jitter."""
    if policy.backoff_base_s <= 0:
        base = 0.0
    else:
        base = policy.backoff_base_s * (2 ** max(0, retry_count - 1))
    capped = min(base, policy.backoff_max_s)
    jitter = random() * policy.backoff_jitter_s
    return max(0.0, capped + jitter)


def as_tether_error(error: BaseException) -> TetherError:
    """Classify `error`, preserving the original as the cause."""
    classified = classify_error(error)
    if classified is not error and classified.__cause__ is None:
        classified.__cause__ = error
    return classified
