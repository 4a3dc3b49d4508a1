"""
Heart-rate variability (SDNN) from valley-to-valley intervals.

SDNN is the sample standard deviation of the normal-to-normal intervals.
With a 10 s window only a handful of beats are available, so the estimate
is indicative only; its confidence reflects both how many intervals were
usable and how consistent they were.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Sequence, Tuple

import numpy as np

from heartlen.heart_rate import round_half_up, valley_intervals
from heartlen.valleys import Valley

# Accepted RR interval in milliseconds.
HRV_INTERVAL_RANGE_MS: Tuple[float, float] = (250.0, 2000.0)
# Interval count at which the count-based confidence saturates.
FULL_CONFIDENCE_INTERVALS: int = 5


@dataclass(frozen=True)
class HRVResult:
    sdnn: int = 0          # milliseconds, 0 = undetermined
    confidence: int = 0    # 0 – 100


def estimate_hrv(valleys: Sequence[Valley]) -> HRVResult:
    """
    Return an :class:`HRVResult` for *valleys*.

    Confidence is the mean of

    * ``min(100, n / 5 * 100)`` – rewards at least five usable intervals;
    * ``max(0, 100 - sdnn / meanRR * 100)`` – penalises relative spread.

    A single usable interval has no sample deviation; it yields an
    undetermined result rather than a division by zero.
    """
    if len(valleys) < 2:
        return HRVResult()

    lo, hi = HRV_INTERVAL_RANGE_MS
    rr = np.array(
        [iv * 1000.0 for iv in valley_intervals(valleys)],
        dtype=np.float64,
    )
    rr = rr[(rr >= lo) & (rr <= hi)]
    n = rr.size
    if n < 2:
        return HRVResult()

    mean_rr = float(rr.mean())
    sdnn = float(np.std(rr, ddof=1))

    interval_confidence = min(100.0, n / FULL_CONFIDENCE_INTERVALS * 100.0)
    consistency_confidence = max(0.0, 100.0 - sdnn / mean_rr * 100.0)
    confidence = max(0.0, min(100.0, (interval_confidence + consistency_confidence) / 2.0))

    if not (math.isfinite(sdnn) and math.isfinite(confidence)):
        return HRVResult()
    return HRVResult(sdnn=round_half_up(sdnn), confidence=round_half_up(confidence))
