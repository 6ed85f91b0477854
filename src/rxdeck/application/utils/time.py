"""Epoch-millisecond clock helpers."""

import time
from collections.abc import Callable

Clock = Callable[[], int]


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def round_half_up(value: float) -> int:
    # round() is banker's rounding; delays should round 2.5 -> 3
    return int(value + 0.5) if value >= 0 else -int(-value + 0.5)
