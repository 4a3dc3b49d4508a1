"""
PPG processing pipeline.

Per-frame flow
--------------

.. code-block:: text

    process_frame(bgr_frame | None)
       │
       ├─ None → frame skipped
       ▼
    FrameRateMeter.tick()
       ▼
    sample_frame → combine_channels(mode)
       │
       ├─ no valid sample point → frame skipped
       ▼
    SignalBuffer.append (oldest evicted beyond 300)
       ▼  (window ≥ 100 samples)
    detect_valleys ─┬─ estimate_heart_rate
                    └─ estimate_hrv
    extract_features → QualityClassifier.submit (asynchronous)
       ▼
    AnalysisRecord snapshot

Every call runs to completion before returning.  Only the classifier
result arrives later; it is applied whenever it lands.

Thread safety
-------------
Not thread-safe.  Drive one instance from a single frame loop; the
accessors return immutable snapshots.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime
from typing import Callable, Optional, Tuple

import numpy as np

from heartlen.buffer import MAX_WINDOW, MIN_ANALYSIS_LEN, FrameRateMeter, SignalBuffer
from heartlen.combiner import ChannelSums, CombinationMode, combine_channels, sample_frame
from heartlen.features import N_FEATURES, extract_features
from heartlen.heart_rate import HeartRateResult, estimate_heart_rate
from heartlen.hrv import HRVResult, estimate_hrv
from heartlen.quality import QualityClassifier, QualityTracker, SignalQuality
from heartlen.records import AnalysisRecord
from heartlen.valleys import Valley, detect_valleys

logger = logging.getLogger(__name__)


class PPGPipeline:
    """
    Owns the sample window and the latest estimates.

    Parameters
    ----------
    classifier:
        Optional signal-quality classifier.  Without one, quality stays
        at its initial ``"--"`` value.
    combination_mode:
        How the RGB sums are folded into one sample.
    max_window:
        Samples retained (default 300).
    min_analysis_len:
        Window length at which analysis starts (default 100).
    initial_fps:
        Sample rate assumed until the first one-second span is measured.
    clock:
        Monotonic clock driving the frame-rate meter.
    wall_clock:
        Source of the analysis instant used to timestamp valleys and records.
    """

    def __init__(
        self,
        classifier: Optional[QualityClassifier] = None,
        combination_mode: CombinationMode | str = CombinationMode.DEFAULT,
        max_window: int = MAX_WINDOW,
        min_analysis_len: int = MIN_ANALYSIS_LEN,
        initial_fps: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
        wall_clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.classifier = classifier
        self._mode = CombinationMode.parse(combination_mode)
        self._buffer = SignalBuffer(max_window, min_analysis_len)
        self._meter = FrameRateMeter(initial_fps=initial_fps, clock=clock)
        self._wall_clock = wall_clock
        self._quality = QualityTracker()

        self._valleys: Tuple[Valley, ...] = ()
        self._heart_rate = HeartRateResult()
        self._hrv = HRVResult()
        self._features: np.ndarray = np.zeros(N_FEATURES)
        self._last_record: Optional[AnalysisRecord] = None

    # ------------------------------------------------------------------
    # Per-frame entry points
    # ------------------------------------------------------------------

    def process_frame(self, frame: Optional[np.ndarray]) -> bool:
        """
        Feed one camera frame.

        Parameters
        ----------
        frame:
            BGR image array (H × W × 3), or ``None`` when acquisition failed.

        Returns
        -------
        bool
            True if an analysis pass ran on this frame.
        """
        if frame is None:
            return False
        return self.push_sums(sample_frame(frame))

    def push_sums(self, sums: ChannelSums) -> bool:
        """Feed pre-computed sample-point sums for one frame."""
        self._meter.tick()
        value = combine_channels(sums, self._mode)
        if value is None:
            logger.debug("No valid sample points – frame skipped.")
            return False
        return self.push_sample(value)

    def push_sample(self, value: float) -> bool:
        """
        Append one combined sample and analyse the window if it is long enough.

        Below the analysis threshold the previous results are left unchanged.
        """
        self._buffer.append(value)
        if not self._buffer.ready:
            return False
        self._analyse()
        return True

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def combination_mode(self) -> CombinationMode:
        return self._mode

    @combination_mode.setter
    def combination_mode(self, mode: CombinationMode | str) -> None:
        self._mode = CombinationMode.parse(mode)
        logger.info("Combination mode set to %s", self._mode.value)

    @property
    def fps(self) -> float:
        return self._meter.fps

    @property
    def window(self) -> Tuple[float, ...]:
        return self._buffer.snapshot()

    @property
    def buffer_fill_ratio(self) -> float:
        return self._buffer.fill_ratio

    @property
    def valleys(self) -> Tuple[Valley, ...]:
        return self._valleys

    @property
    def heart_rate(self) -> HeartRateResult:
        return self._heart_rate

    @property
    def hrv(self) -> HRVResult:
        return self._hrv

    @property
    def features(self) -> np.ndarray:
        return self._features.copy()

    @property
    def signal_quality(self) -> SignalQuality:
        return self._quality.quality

    @property
    def last_record(self) -> Optional[AnalysisRecord]:
        return self._last_record

    def reset(self) -> None:
        """Clear the window and all results."""
        self._buffer.clear()
        self._meter.reset()
        self._quality.reset()
        self._valleys = ()
        self._heart_rate = HeartRateResult()
        self._hrv = HRVResult()
        self._features = np.zeros(N_FEATURES)
        self._last_record = None

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _analyse(self) -> None:
        now = self._wall_clock()
        window = self._buffer.snapshot()

        valleys = detect_valleys(window, self._meter.fps, now=now)
        self._valleys = tuple(valleys)
        self._heart_rate = estimate_heart_rate(valleys)
        self._hrv = estimate_hrv(valleys)

        self._features = extract_features(window)
        self._submit_features(self._features)

        self._last_record = AnalysisRecord(
            ppg_window=window,
            heart_rate=self._heart_rate,
            hrv=self._hrv,
            timestamp=now,
        )
        logger.debug(
            "Pass: n=%d valleys=%d bpm=%d (%.0f%%) sdnn=%d (%d%%)",
            len(window), len(valleys),
            self._heart_rate.bpm, self._heart_rate.confidence,
            self._hrv.sdnn, self._hrv.confidence,
        )

    def _submit_features(self, features: np.ndarray) -> None:
        if self.classifier is None:
            return
        try:
            future = self.classifier.submit(features)
        except Exception as exc:                          # noqa: BLE001
            logger.warning("Could not submit features for classification: %s", exc)
            return
        self._quality.attach(future)
