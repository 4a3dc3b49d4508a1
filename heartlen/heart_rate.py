"""
Heart-rate estimation from valley-to-valley intervals.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import List, Sequence, Tuple

import numpy as np

from heartlen.valleys import Valley

# Plausible beat interval in seconds (150 – 30 BPM).
HR_INTERVAL_RANGE: Tuple[float, float] = (0.4, 2.0)


@dataclass(frozen=True)
class HeartRateResult:
    bpm: int = 0              # 0 = undetermined
    confidence: float = 0.0   # 0 – 100


def valley_intervals(valleys: Sequence[Valley]) -> List[float]:
    """Seconds between consecutive valley timestamps."""
    return [
        (later.timestamp - earlier.timestamp).total_seconds()
        for earlier, later in zip(valleys, valleys[1:])
    ]


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def estimate_heart_rate(valleys: Sequence[Valley]) -> HeartRateResult:
    """
    Return a :class:`HeartRateResult` for *valleys*.

    BPM is derived from the median plausible interval (the element at
    ``n // 2`` of the ascending sort).  Confidence is ``100 - CV``, where CV
    is the coefficient of variation (population std / mean, in percent) of
    the same intervals, clamped to [0, 100].
    """
    if len(valleys) < 2:
        return HeartRateResult()

    lo, hi = HR_INTERVAL_RANGE
    intervals = np.array(
        [iv for iv in valley_intervals(valleys) if lo <= iv <= hi],
        dtype=np.float64,
    )
    if intervals.size == 0:
        return HeartRateResult()

    median = float(np.sort(intervals)[intervals.size // 2])
    bpm = round_half_up(60.0 / median)

    mean = float(intervals.mean())
    std = float(np.sqrt(np.mean((intervals - mean) ** 2)))
    cv = std / mean * 100.0
    confidence = max(0.0, min(100.0, 100.0 - cv))

    if not math.isfinite(confidence):
        return HeartRateResult()
    return HeartRateResult(bpm=bpm, confidence=confidence)
