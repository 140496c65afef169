"""Bounded exponential backoff schedule."""

from collections.abc import Iterator


def backoff_delays(initial: float, factor: float, cap: float) -> Iterator[float]:
    """Yield *initial*, then each previous delay times *factor*, never above *cap*."""
    delay = min(initial, cap)
    while True:
        yield delay
        delay = min(delay * factor, cap)
