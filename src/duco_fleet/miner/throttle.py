"""Hash rate throttling.

A device reports a result of ``n`` hashes; at ``target_rate`` H/s that much
work takes ``n * 1_000_000 // target_rate`` microseconds. If the local
computation finished sooner the session waits out the difference before
reporting, so the rate the pool sees matches the target. If it took longer
the device is falling behind and reports its true (lower) rate.

All durations are integer microseconds.
"""

from __future__ import annotations

from dataclasses import dataclass

from duco_fleet.miner.constants import MICROS_PER_SECOND


@dataclass(frozen=True)
class ThrottlePlan:
    """
    Throttle decision for one round.

    Attributes:
        expected_interval: Microseconds per hash at the target rate.
        expected_duration: Microseconds the result should have taken.
        wait: Microseconds to sleep before reporting (0 when behind).
        lag: Microseconds behind the target (0 when ahead).
    """

    expected_interval: int
    expected_duration: int
    wait: int
    lag: int

    @property
    def behind(self) -> bool:
        """True when the computation was too slow to be throttled."""
        return self.wait == 0


def expected_interval(target_rate: int) -> int:
    """
    Microseconds per hash at ``target_rate`` H/s.

    The division truncates, so a device looks slightly faster than its
    target. Above 1_000_000 H/s the interval is 0 and no round is ever
    throttled.
    """
    if target_rate <= 0:
        raise ValueError(f"target_rate must be positive, got {target_rate}")
    return MICROS_PER_SECOND // target_rate


def plan_throttle(result: int, elapsed: int, target_rate: int) -> ThrottlePlan:
    """
    Compute how long to wait before reporting ``result``.

    Args:
        result: Reported hash count.
        elapsed: Microseconds the computation took.
        target_rate: Rate the device should appear to sustain (H/s).

    Returns:
        The throttle plan; ``wait`` is never negative.
    """
    interval = expected_interval(target_rate)
    duration = interval * result
    if elapsed < duration:
        return ThrottlePlan(interval, duration, wait=duration - elapsed, lag=0)
    return ThrottlePlan(interval, duration, wait=0, lag=elapsed - duration)


def hash_rate(result: int, elapsed: int) -> float:
    """Hashes per second for ``result`` hashes over ``elapsed`` microseconds."""
    # Clamp so an immeasurably fast round does not divide by zero
    return result / max(elapsed, 1) * MICROS_PER_SECOND
