"""Exponential backoff delays for publish retries.

``backoff_delay`` is pure so that the schedule can be tested without any I/O;
``jittered`` spreads simultaneous reconnects from many regions apart.
"""

from __future__ import annotations

import random


def backoff_delay(attempt: int, base_delay: float, max_delay: float) -> float:
    """Delay before retry number *attempt* (0-based).

    Computes ``min(base_delay * 2**attempt, max_delay)``, so successive
    delays never decrease.
    """
    if attempt < 0:
        raise ValueError("attempt must be >= 0")
    # Clamp the exponent before it overflows a float.
    if attempt >= 64:
        return max_delay
    return min(base_delay * (2 ** attempt), max_delay)


def jittered(delay: float, jitter: float, rng: random.Random | None = None) -> float:
    """Add random jitter of up to ±``jitter`` (a fraction) of *delay*."""
    if jitter <= 0 or delay <= 0:
        return delay
    r = rng or random
    return max(0.0, delay + delay * r.uniform(-jitter, jitter))
