"""
Signal combiner.

Reduces a camera frame to one PPG sample.  Five fixed points are read from
the frame (corners and centre, as fractions of width / height), their RGB
values are summed, and the sums are folded into a single scalar according
to the active :class:`CombinationMode`.

With the flash on and a fingertip over the lens, the red channel carries
most of the pulsatile component; the default mode ``2R - G - B`` boosts it
while cancelling illumination changes common to all three channels.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

import numpy as np


# Normalised (x, y) positions of the sample points.
SAMPLE_POINTS: Tuple[Tuple[float, float], ...] = (
    (0.2, 0.2),   # top-left
    (0.8, 0.2),   # top-right
    (0.5, 0.5),   # centre
    (0.2, 0.8),   # bottom-left
    (0.8, 0.8),   # bottom-right
)


class CombinationMode(Enum):
    DEFAULT        = "default"
    RED_ONLY       = "redOnly"
    GREEN_ONLY     = "greenOnly"
    BLUE_ONLY      = "blueOnly"
    RED_MINUS_BLUE = "redMinusBlue"
    CUSTOM         = "custom"

    @classmethod
    def parse(cls, value: "str | CombinationMode") -> "CombinationMode":
        """Accept an enum member, its value (``"redOnly"``) or its name (``"RED_ONLY"``)."""
        if isinstance(value, cls):
            return value
        for mode in cls:
            if value in (mode.value, mode.name, mode.name.lower()):
                return mode
        raise ValueError(f"Unknown combination mode: {value!r}")


@dataclass(frozen=True)
class ChannelSums:
    """RGB sums over the sample points that fell inside the frame."""

    red: float
    green: float
    blue: float
    valid_samples: int


def sample_frame(frame: np.ndarray) -> ChannelSums:
    """
    Read the :data:`SAMPLE_POINTS` of *frame* and sum their colour values.

    Parameters
    ----------
    frame:
        BGR image array (H × W × 3), as delivered by OpenCV.

    Points whose pixel coordinates fall outside the frame are ignored; an
    empty frame therefore yields ``valid_samples == 0``.
    """
    height, width = frame.shape[:2]
    r_sum = g_sum = b_sum = 0.0
    valid = 0
    for px, py in SAMPLE_POINTS:
        x = math.floor(px * width)
        y = math.floor(py * height)
        if 0 <= x < width and 0 <= y < height:
            b, g, r = (float(v) for v in frame[y, x, :3])
            r_sum += r
            g_sum += g
            b_sum += b
            valid += 1
    return ChannelSums(r_sum, g_sum, b_sum, valid)


def combine_channels(sums: ChannelSums, mode: CombinationMode = CombinationMode.DEFAULT) -> Optional[float]:
    """
    Fold *sums* into one PPG sample.

    Returns ``None`` when no sample point was valid, meaning the frame must
    be skipped.
    """
    n = sums.valid_samples
    if n <= 0:
        return None

    r, g, b = sums.red, sums.green, sums.blue
    if mode is CombinationMode.RED_ONLY:
        return r / n
    if mode is CombinationMode.GREEN_ONLY:
        return g / n
    if mode is CombinationMode.BLUE_ONLY:
        return b / n
    if mode is CombinationMode.RED_MINUS_BLUE:
        return (r - b) / n
    if mode is CombinationMode.CUSTOM:
        return (3 * r - g - b) / n
    return (2 * r - g - b) / n
