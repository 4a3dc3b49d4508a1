"""
Feature extraction for the signal-quality classifier.

The classifier consumes a fixed-length vector; its order is positional and
must match :data:`FEATURE_NAMES` exactly.

====  ===================  ==================================================
 #    name                 definition
====  ===================  ==================================================
 0    mean                 arithmetic mean
 1    std                  population standard deviation
 2    median               element ``n // 2`` of the ascending sort
 3    variance             population variance
 4    skewness             third standardised moment (0 if std is 0)
 5    kurtosis             fourth standardised moment, not excess (0 if std 0)
 6    range                max − min
 7    zero_crossings       sign changes, ``>= 0`` counted as positive
 8    rms                  root mean square
 9    peak_to_peak         max − min (duplicate of *range*, kept for layout)
10    dominant_frequency   FFT magnitude peak, scaled by ``fs / (2 · bins)``
11    snr_db               smoothed-signal vs residual power, in dB
12    perfusion_index      (max − min) / mean · 100
13    continuity           1 − jumps / (n − 1), jump = step > 3 std
14    entropy              Shannon entropy of a 10-bin histogram, in bits
====  ===================  ==================================================
"""

from __future__ import annotations

import math
from typing import Sequence, Tuple

import numpy as np
from scipy import stats

FEATURE_NAMES: Tuple[str, ...] = (
    "mean",
    "std",
    "median",
    "variance",
    "skewness",
    "kurtosis",
    "range",
    "zero_crossings",
    "rms",
    "peak_to_peak",
    "dominant_frequency",
    "snr_db",
    "perfusion_index",
    "continuity",
    "entropy",
)
N_FEATURES: int = len(FEATURE_NAMES)

# The classifier was trained assuming this sample rate, regardless of the
# camera's actual frame rate.
FEATURE_SAMPLE_RATE: float = 100.0
SNR_HALF_WINDOW: int = 5
ENTROPY_BINS: int = 10
DISCONTINUITY_STDS: float = 3.0


# ---------------------------------------------------------------------------
# Individual features
# ---------------------------------------------------------------------------

def zero_crossings(x: np.ndarray) -> int:
    """Count sign changes, treating 0 as positive."""
    if x.size < 2:
        return 0
    positive = x >= 0
    return int(np.count_nonzero(positive[1:] != positive[:-1]))


def dominant_frequency(x: np.ndarray, sample_rate: float = FEATURE_SAMPLE_RATE) -> float:
    if x.size == 0:
        return 0.0
    magnitude = np.abs(np.fft.rfft(x))
    peak = int(np.argmax(magnitude))
    return peak * sample_rate / (2 * magnitude.size)


def moving_average(x: np.ndarray, half_window: int = SNR_HALF_WINDOW) -> np.ndarray:
    """Centred moving average over ``±half_window`` samples, truncated at the edges."""
    kernel = np.ones(2 * half_window + 1)
    centre = slice(half_window, half_window + x.size)
    sums = np.convolve(x, kernel, mode="full")[centre]
    counts = np.convolve(np.ones_like(x), kernel, mode="full")[centre]
    return sums / counts


def snr_db(x: np.ndarray) -> float:
    if x.size < 4:
        return 0.0
    smoothed = moving_average(x)
    signal_power = float(np.mean(smoothed ** 2))
    noise_power = float(np.mean((x - smoothed) ** 2))
    if noise_power <= 0 or signal_power <= 0:
        return 0.0
    return 10.0 * math.log10(signal_power / noise_power)


def perfusion_index(x: np.ndarray) -> float:
    if x.size == 0:
        return 0.0
    dc = float(x.mean())
    if dc == 0:
        return 0.0
    return float(x.max() - x.min()) / dc * 100.0


def continuity(x: np.ndarray) -> float:
    if x.size < 2:
        return 0.0
    threshold = DISCONTINUITY_STDS * float(x.std())
    jumps = int(np.count_nonzero(np.abs(np.diff(x)) > threshold))
    return 1.0 - jumps / (x.size - 1)


def histogram_entropy(x: np.ndarray, bins: int = ENTROPY_BINS) -> float:
    """Shannon entropy (bits) of *x* binned linearly into *bins* buckets."""
    if x.size == 0:
        return 0.0
    lo = float(x.min())
    span = float(x.max()) - lo
    if span == 0:
        return 0.0
    idx = np.minimum(bins - 1, np.floor((x - lo) / span * bins).astype(int))
    counts = np.bincount(idx, minlength=bins)
    return float(stats.entropy(counts, base=2))


# ---------------------------------------------------------------------------
# Vector
# ---------------------------------------------------------------------------

def extract_features(signal: Sequence[float]) -> np.ndarray:
    """
    Compute the classifier input vector for *signal*.

    Returns
    -------
    numpy.ndarray
        ``float64`` array of length :data:`N_FEATURES`, ordered as
        :data:`FEATURE_NAMES`.  All zeros for an empty window.
    """
    x = np.asarray(signal, dtype=np.float64)
    if x.size == 0:
        return np.zeros(N_FEATURES)

    mean = float(x.mean())
    variance = float(x.var())
    std = math.sqrt(variance)
    median = float(np.sort(x)[x.size // 2])

    if std > 0:
        skewness = float(stats.skew(x, bias=True))
        kurtosis = float(stats.kurtosis(x, fisher=False, bias=True))
    else:
        skewness = kurtosis = 0.0

    peak_to_peak = float(x.max() - x.min())
    rms = float(np.sqrt(np.mean(x ** 2)))

    vector = np.array([
        mean,
        std,
        median,
        variance,
        skewness,
        kurtosis,
        peak_to_peak,
        zero_crossings(x),
        rms,
        peak_to_peak,
        dominant_frequency(x),
        snr_db(x),
        perfusion_index(x),
        continuity(x),
        histogram_entropy(x),
    ], dtype=np.float64)
    # Any residual overflow must not reach the classifier as NaN / inf.
    return np.nan_to_num(vector, nan=0.0, posinf=0.0, neginf=0.0)
