"""
Integration tests for PPGPipeline.
Run with:  pytest tests/test_pipeline.py
"""

from __future__ import annotations

from concurrent.futures import Future

import numpy as np
import pytest

from conftest import ANALYSIS_TIME, sine_window
from heartlen.combiner import ChannelSums, CombinationMode
from heartlen.features import FEATURE_NAMES
from heartlen.heart_rate import HeartRateResult
from heartlen.hrv import HRVResult
from heartlen.pipeline import PPGPipeline
from heartlen.quality import QualityClassifier


class StubClassifier(QualityClassifier):
    def __init__(self, probabilities=(0.1, 0.8, 0.1)):
        self.probabilities = list(probabilities)
        self.submitted = []

    def submit(self, features):
        self.submitted.append(np.asarray(features))
        f: Future = Future()
        f.set_result(self.probabilities)
        return f


class BrokenClassifier(QualityClassifier):
    def submit(self, features):
        raise RuntimeError("inference backend gone")


def make_pipeline(**kwargs) -> PPGPipeline:
    kwargs.setdefault("wall_clock", lambda: ANALYSIS_TIME)
    return PPGPipeline(**kwargs)


def frame_of(value: int) -> np.ndarray:
    frame = np.zeros((20, 20, 3), dtype=np.uint8)
    frame[:, :, 2] = value          # red
    return frame


class TestFrameInput:

    def test_none_frame_skipped(self):
        pipe = make_pipeline()
        pipe.process_frame(frame_of(100))
        assert pipe.process_frame(None) is False
        assert len(pipe.window) == 1

    def test_all_points_out_of_bounds_skipped(self):
        pipe = make_pipeline()
        for v in sine_window(120):
            pipe.push_sample(v)
        valleys_before = pipe.valleys
        length_before = len(pipe.window)
        assert pipe.process_frame(np.zeros((0, 0, 3), dtype=np.uint8)) is False
        assert len(pipe.window) == length_before
        assert pipe.valleys == valleys_before

    def test_frame_combined_with_default_mode(self):
        pipe = make_pipeline()
        pipe.process_frame(frame_of(100))
        assert pipe.window == (200.0,)       # 2R − G − B per point

    def test_mode_switch_applies_to_next_frame(self):
        pipe = make_pipeline()
        sums = ChannelSums(red=500.0, green=300.0, blue=200.0, valid_samples=5)
        pipe.push_sums(sums)
        pipe.combination_mode = "redOnly"
        pipe.push_sums(sums)
        assert pipe.combination_mode is CombinationMode.RED_ONLY
        assert pipe.window == (100.0, 100.0)
        pipe.combination_mode = CombinationMode.CUSTOM
        pipe.push_sums(sums)
        assert pipe.window[-1] == pytest.approx(200.0)


class TestAnalysis:

    def test_no_analysis_below_threshold(self):
        pipe = make_pipeline()
        for v in sine_window(99):
            assert pipe.push_sample(v) is False
        assert pipe.last_record is None
        assert pipe.heart_rate == HeartRateResult()

    def test_sine_at_60_bpm(self):
        pipe = make_pipeline()
        ran = [pipe.push_sample(v) for v in sine_window(100, fps=30.0, hz=1.0)]
        assert ran[-1] is True
        assert abs(pipe.heart_rate.bpm - 60) <= 2
        assert pipe.heart_rate.confidence > 80.0
        assert len(pipe.valleys) == 3

    def test_constant_window(self):
        pipe = make_pipeline()
        for _ in range(150):
            pipe.push_sample(5.0)
        assert pipe.heart_rate == HeartRateResult(0, 0.0)
        assert pipe.hrv == HRVResult(0, 0)
        assert pipe.valleys == ()
        assert pipe.features[FEATURE_NAMES.index("entropy")] == 0.0

    def test_window_capped(self):
        pipe = make_pipeline()
        signal = sine_window(400)
        for v in signal:
            pipe.push_sample(v)
        assert len(pipe.window) == 300
        assert pipe.window == pytest.approx(tuple(signal[-300:]))

    def test_valley_spacing_over_stream(self):
        pipe = make_pipeline()
        rng = np.random.default_rng(5)
        for v in sine_window(400, hz=1.4) + rng.normal(0, 1.0, 400):
            pipe.push_sample(v)
            idx = [vl.index for vl in pipe.valleys]
            assert all(b - a >= 12 for a, b in zip(idx, idx[1:]))
            assert 0 <= pipe.heart_rate.confidence <= 100
            assert 0 <= pipe.hrv.confidence <= 100

    def test_record_snapshot(self):
        pipe = make_pipeline()
        for v in sine_window(150, hz=1.2):
            pipe.push_sample(v)
        record = pipe.last_record
        assert record is not None
        assert record.timestamp == ANALYSIS_TIME
        assert record.ppg_window == pipe.window
        assert record.heart_rate == pipe.heart_rate
        assert record.hrv == pipe.hrv

    def test_fps_measured_from_frames(self, clock):
        pipe = make_pipeline(clock=clock)
        for i in range(41):
            clock.t = i / 20
            pipe.process_frame(frame_of(100))
        assert pipe.fps == 20.0

    def test_reset(self):
        pipe = make_pipeline(classifier=StubClassifier())
        for v in sine_window(150):
            pipe.push_sample(v)
        pipe.reset()
        assert pipe.window == ()
        assert pipe.valleys == ()
        assert pipe.heart_rate == HeartRateResult()
        assert pipe.hrv == HRVResult()
        assert pipe.signal_quality.label == "--"
        assert pipe.last_record is None


class TestSignalQuality:

    def test_quality_without_classifier(self):
        pipe = make_pipeline()
        for v in sine_window(150):
            pipe.push_sample(v)
        assert pipe.signal_quality.label == "--"

    def test_features_submitted_each_pass(self):
        clf = StubClassifier((0.1, 0.8, 0.1))
        pipe = make_pipeline(classifier=clf)
        for v in sine_window(110):
            pipe.push_sample(v)
        assert len(clf.submitted) == 11
        assert clf.submitted[-1].shape == (15,)
        assert pipe.signal_quality.label == "acceptable"
        assert pipe.signal_quality.confidence == pytest.approx(80.0)

    def test_submit_failure_is_absorbed(self):
        pipe = make_pipeline(classifier=BrokenClassifier())
        for v in sine_window(120):
            pipe.push_sample(v)
        assert pipe.signal_quality.label == "--"
        assert pipe.heart_rate.bpm > 0
