"""
Rolling sample buffer and frame-rate meter.
"""

from __future__ import annotations

import time
from collections import deque
from typing import Callable, Deque, Tuple

import numpy as np

# Samples retained in the analysis window (≈ 10 s at 30 fps).
MAX_WINDOW: int = 300
# Window length below which no analysis pass runs.
MIN_ANALYSIS_LEN: int = 100


class SignalBuffer:
    """
    Fixed-capacity FIFO of PPG samples.

    Parameters
    ----------
    max_window:
        Capacity.  Once full, every append evicts the oldest sample.
    min_analysis_len:
        Length at which :attr:`ready` becomes true.
    """

    def __init__(self, max_window: int = MAX_WINDOW, min_analysis_len: int = MIN_ANALYSIS_LEN) -> None:
        if max_window <= 0:
            raise ValueError("max_window must be positive")
        self.max_window = max_window
        self.min_analysis_len = min_analysis_len
        self._samples: Deque[float] = deque(maxlen=max_window)

    def append(self, value: float) -> None:
        self._samples.append(float(value))

    def __len__(self) -> int:
        return len(self._samples)

    @property
    def ready(self) -> bool:
        """True once enough samples are buffered for an analysis pass."""
        return len(self._samples) >= self.min_analysis_len

    @property
    def fill_ratio(self) -> float:
        """How full the buffer is (0 – 1)."""
        return len(self._samples) / self.max_window

    def snapshot(self) -> Tuple[float, ...]:
        """Immutable copy of the window, oldest sample first."""
        return tuple(self._samples)

    def as_array(self) -> np.ndarray:
        return np.array(self._samples, dtype=np.float64)

    def clear(self) -> None:
        self._samples.clear()


class FrameRateMeter:
    """
    Measures the incoming sample rate over rolling spans.

    Frames are counted with :meth:`tick`; whenever at least ``span`` seconds
    have passed since the span began, the rate is recomputed as
    ``round(frames / elapsed)`` and a new span starts.  The first tick only
    opens the span.

    Parameters
    ----------
    initial_fps:
        Rate reported until the first span completes.
    span:
        Measurement span in seconds.
    clock:
        Monotonic time source, injectable for tests.
    """

    def __init__(
        self,
        initial_fps: float = 30.0,
        span: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.initial_fps = initial_fps
        self.span = span
        self._clock = clock
        self._fps: float = initial_fps
        self._span_start: float | None = None
        self._frames: int = 0

    @property
    def fps(self) -> float:
        return self._fps

    def tick(self) -> float:
        """Count one frame and return the current rate estimate."""
        now = self._clock()
        if self._span_start is None:
            self._span_start = now
            self._frames = 1
            return self._fps

        elapsed = now - self._span_start
        if elapsed >= self.span:
            measured = round(self._frames / elapsed)
            # A stalled span (no frames) must not zero the rate.
            if measured > 0:
                self._fps = float(measured)
            self._frames = 0
            self._span_start = now
        self._frames += 1
        return self._fps

    def reset(self) -> None:
        self._fps = self.initial_fps
        self._span_start = None
        self._frames = 0
