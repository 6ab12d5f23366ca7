"""
BackoffSchedule — the poll intervals used by MessagePoller.

A fixed, ordered sequence of wait durations plus a cursor. Each empty poll
advances the cursor one stage; the cursor saturates at the last stage
instead of wrapping. Any received message resets it to the first stage, so
busy queues are polled every 100 ms while idle ones settle at 5 s.

    schedule = BackoffSchedule()
    schedule.advance()   # 200 ms
    schedule.advance()   # 500 ms
    schedule.reset()     # 100 ms
"""
from __future__ import annotations

import dataclasses
from datetime import timedelta

DEFAULT_INTERVALS: tuple[timedelta, ...] = (
    timedelta(milliseconds=100),
    timedelta(milliseconds=200),
    timedelta(milliseconds=500),
    timedelta(milliseconds=1000),
    timedelta(milliseconds=2000),
    timedelta(milliseconds=5000),
)


@dataclasses.dataclass
class BackoffSchedule:
    """
    Ordered wait durations with a saturating cursor.

    Parameters
    ----------
    intervals : non-empty sequence of positive durations
    """

    intervals: tuple[timedelta, ...] = DEFAULT_INTERVALS
    idx: int = dataclasses.field(default=0, init=False)

    def __post_init__(self) -> None:
        self.intervals = tuple(self.intervals)
        if not self.intervals:
            raise ValueError("backoff schedule must have at least one interval")
        if any(i <= timedelta(0) for i in self.intervals):
            raise ValueError("backoff intervals must be positive")

    @property
    def current(self) -> timedelta:
        return self.intervals[self.idx]

    @property
    def first(self) -> timedelta:
        return self.intervals[0]

    @property
    def saturated(self) -> bool:
        return self.idx == len(self.intervals) - 1

    def advance(self) -> timedelta:
        """Move one stage further (no-op at the last stage). Returns the new interval."""
        if not self.saturated:
            self.idx += 1
        return self.current

    def reset(self) -> timedelta:
        """Return to the first stage. Returns the first interval."""
        self.idx = 0
        return self.current
