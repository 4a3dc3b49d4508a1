"""
Unit tests for HRV (SDNN) estimation.
"""

from __future__ import annotations

import numpy as np
import pytest

from conftest import make_valleys
from heartlen.hrv import HRVResult, estimate_hrv


class TestEstimateHRV:

    def test_no_valleys(self):
        assert estimate_hrv([]) == HRVResult(0, 0)

    def test_single_valley(self):
        assert estimate_hrv(make_valleys([])) == HRVResult(0, 0)

    def test_single_interval_is_undetermined(self):
        assert estimate_hrv(make_valleys([0.8])) == HRVResult(0, 0)

    def test_perfectly_regular(self):
        result = estimate_hrv(make_valleys([0.8] * 5))
        assert result.sdnn == 0
        assert result.confidence == 100

    def test_sample_standard_deviation(self):
        # RR 800 / 1000 ms: mean 900, SDNN = sqrt(2 · 100² / 1) ≈ 141.4
        result = estimate_hrv(make_valleys([0.8, 1.0]))
        assert result.sdnn == 141
        # interval 40 %, consistency 100 − 141.42 / 900 · 100 ≈ 84.29 → mean ≈ 62.1
        assert result.confidence == 62

    def test_interval_confidence_saturates(self):
        few = estimate_hrv(make_valleys([0.8, 0.8]))
        many = estimate_hrv(make_valleys([0.8] * 8))
        assert few.confidence == 70       # (40 + 100) / 2
        assert many.confidence == 100

    def test_out_of_range_intervals_filtered(self):
        result = estimate_hrv(make_valleys([0.2, 0.8, 0.8, 2.5]))
        assert result.sdnn == 0
        assert result.confidence == 70

    def test_results_are_integers(self):
        result = estimate_hrv(make_valleys([0.81, 0.93, 0.77, 1.02]))
        assert isinstance(result.sdnn, int)
        assert isinstance(result.confidence, int)

    def test_bounds_on_random_intervals(self):
        rng = np.random.default_rng(11)
        for _ in range(200):
            intervals = rng.uniform(0.1, 3.0, size=rng.integers(1, 10))
            result = estimate_hrv(make_valleys(intervals))
            assert result.sdnn >= 0
            assert 0 <= result.confidence <= 100
