"""
Shared fixtures.
"""

from __future__ import annotations

from datetime import datetime, timedelta

import numpy as np
import pytest

from heartlen.valleys import Valley

ANALYSIS_TIME = datetime(2024, 3, 1, 12, 0, 0)


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, t: float = 0.0) -> None:
        self.t = t

    def __call__(self) -> float:
        return self.t


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


def make_valleys(intervals_s, start: datetime = ANALYSIS_TIME):
    """Build valleys whose consecutive timestamps are *intervals_s* seconds apart."""
    valleys = [Valley(index=0, value=0.0, timestamp=start)]
    ts = start
    for i, iv in enumerate(intervals_s, start=1):
        ts = ts + timedelta(seconds=iv)
        valleys.append(Valley(index=i * 30, value=0.0, timestamp=ts))
    return valleys


def sine_window(n: int, fps: float = 30.0, hz: float = 1.0, offset: float = 100.0, amp: float = 5.0) -> np.ndarray:
    t = np.arange(n) / fps
    return offset + amp * np.sin(2 * np.pi * hz * t)
