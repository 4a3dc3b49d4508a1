"""
Valley (trough) detection.

Each cardiac cycle produces one trough in the PPG waveform.  The detector
min-max normalises the window, scans for local minima over a half-second
neighbourhood, and keeps them greedily left to right so that no two
accepted valleys are closer than 0.4 s (i.e. faster than 150 BPM).

Valleys are recomputed from scratch on every pass; their timestamps are
back-dated from the analysis instant by their distance to the end of the
window, so no per-sample timestamps need to be stored.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional, Sequence

import numpy as np

logger = logging.getLogger(__name__)

# Neighbourhood half-width and minimum spacing, in seconds.
WINDOW_SECONDS: float = 0.5
MIN_DISTANCE_SECONDS: float = 0.4


@dataclass(frozen=True)
class Valley:
    index: int          # position in the window at detection time
    value: float        # raw (un-normalised) sample value
    timestamp: datetime


def normalize_signal(signal: Sequence[float]) -> np.ndarray:
    """
    Min-max scale *signal* to [0, 1].

    A flat (or empty) signal has no range to scale by; it maps to all zeros.
    """
    x = np.asarray(signal, dtype=np.float64)
    if x.size == 0:
        return x
    lo = float(x.min())
    hi = float(x.max())
    if hi == lo:
        return np.zeros_like(x)
    return (x - lo) / (hi - lo)


def is_local_minimum(signal: np.ndarray, index: int, window_size: int) -> bool:
    """
    True if ``signal[index]`` is a minimum of its ``window_size`` neighbourhood.

    Left neighbours may equal the candidate, right neighbours must be
    strictly greater, so the first sample of a flat-bottomed trough wins.
    Empty neighbourhoods never qualify.
    """
    left = signal[max(0, index - window_size):index]
    right = signal[index + 1:index + window_size + 1]
    if left.size == 0 or right.size == 0:
        return False
    value = signal[index]
    return bool(left.min() >= value and right.min() > value)


def detect_valleys(
    signal: Sequence[float],
    fps: float,
    now: Optional[datetime] = None,
) -> List[Valley]:
    """
    Locate valleys in *signal*.

    Parameters
    ----------
    signal:
        The analysis window, oldest sample first.
    fps:
        Measured sample rate.  Determines the neighbourhood
        (``floor(fps * 0.5)``) and the minimum spacing (``floor(fps * 0.4)``).
    now:
        Analysis instant used to back-date valley timestamps.  Defaults to
        the current wall-clock time.

    Returns
    -------
    list of Valley
        Ordered by index.  Empty for short, flat or featureless windows.
    """
    if fps <= 0:
        return []

    raw = np.asarray(signal, dtype=np.float64)
    n = raw.size
    window_size = math.floor(fps * WINDOW_SECONDS)
    min_distance = math.floor(fps * MIN_DISTANCE_SECONDS)
    if window_size < 1 or n <= 2 * window_size:
        return []

    norm = normalize_signal(raw)
    if now is None:
        now = datetime.now()

    valleys: List[Valley] = []
    for i in range(window_size, n - window_size):
        if not is_local_minimum(norm, i, window_size):
            continue
        if valleys and i - valleys[-1].index < min_distance:
            continue
        offset = timedelta(seconds=(n - i) / fps)
        valleys.append(Valley(index=i, value=float(raw[i]), timestamp=now - offset))

    logger.debug("Detected %d valleys in %d samples (fps=%.1f)", len(valleys), n, fps)
    return valleys
