"""Helpers for computing backoff intervals."""

from __future__ import annotations

import random
from datetime import timedelta


def jitter_up(duration: timedelta, jitter: float) -> timedelta:
    """Randomly scale ``duration`` within ``±jitter`` of itself.

    For 10s and a jitter of 0.1 the result lies within [9s, 11s].
    """
    multiplier = jitter * (random.random() * 2 - 1)
    return duration * (1 + multiplier)


def exponent_base2(a: int) -> int:
    """Return 2**(a-1) for a >= 1, and 0 for a == 0."""
    if a < 0:
        raise ValueError(f"exponent must be non-negative, got {a}")
    return (1 << a) >> 1