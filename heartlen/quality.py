"""
Signal-quality classification boundary.

The pipeline does not know how quality is inferred.  It hands a feature
vector to a :class:`QualityClassifier`, receives a
:class:`concurrent.futures.Future`, and lets a :class:`QualityTracker`
apply whatever result arrives last.  Results may complete out of order
relative to newer vectors; the latest *received* one always wins, so the
frame loop never waits on inference.

Two classifiers are provided:

* :class:`CallableQualityClassifier` wraps any ``predict(batch)`` callable
  (a Keras model's ``predict``, a scikit-learn ``predict_proba``, a lambda
  in tests) and runs it on a single background worker.
* :class:`OnnxQualityClassifier` runs an exported model with onnxruntime.
"""

from __future__ import annotations

import logging
import os
import threading
from abc import ABC, abstractmethod
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, Optional, Sequence, Tuple

import numpy as np

from heartlen.features import N_FEATURES

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# onnxruntime is optional (pip install heartlen[onnx])
# ---------------------------------------------------------------------------
try:
    import onnxruntime as ort
    _ORT_AVAILABLE = True
except ImportError:
    ort = None
    _ORT_AVAILABLE = False

QUALITY_CLASSES: Tuple[str, ...] = ("bad", "acceptable", "excellent")


@dataclass(frozen=True)
class SignalQuality:
    label: str = "--"          # "--" until the first result arrives
    confidence: float = 0.0    # probability of *label*, 0 – 100


def as_batch(features: Sequence[float]) -> np.ndarray:
    """Shape a feature vector as a ``(1, N_FEATURES)`` float32 batch."""
    batch = np.asarray(features, dtype=np.float32).reshape(1, -1)
    if batch.shape[1] != N_FEATURES:
        raise ValueError(
            f"Expected {N_FEATURES} features, got {batch.shape[1]}"
        )
    return batch


class QualityClassifier(ABC):
    """Asynchronous classifier over :data:`QUALITY_CLASSES`."""

    @abstractmethod
    def submit(self, features: Sequence[float]) -> Future:
        """
        Queue *features* for classification.

        The returned future resolves to one probability per entry of
        :data:`QUALITY_CLASSES`, in that order.
        """

    def close(self) -> None:
        """Release any worker resources."""


class CallableQualityClassifier(QualityClassifier):
    """
    Runs ``predict`` on a background worker.

    At most one prediction runs at a time.  Vectors submitted while it is
    busy wait in a single slot; a newer vector replaces the waiting one,
    whose future is cancelled.  A slow model therefore lags by at most one
    prediction instead of building a backlog.

    Parameters
    ----------
    predict:
        Callable taking a ``(1, N_FEATURES)`` float32 array and returning
        the class probabilities (any shape that flattens to 3 values).
    executor:
        Executor to run on.  A private single-worker pool is created (and
        shut down by :meth:`close`) when omitted.
    """

    def __init__(
        self,
        predict: Callable[[np.ndarray], Sequence[float]],
        executor: Optional[ThreadPoolExecutor] = None,
    ) -> None:
        self._predict = predict
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="heartlen-quality"
        )
        self._lock = threading.Lock()
        self._waiting: Optional[Tuple[np.ndarray, Future]] = None
        self._draining = False

    def submit(self, features: Sequence[float]) -> Future:
        batch = as_batch(features)
        future: Future = Future()
        with self._lock:
            superseded = self._waiting
            self._waiting = (batch, future)
            start = not self._draining
            self._draining = True
        if superseded is not None:
            superseded[1].cancel()
        if start:
            try:
                self._executor.submit(self._drain)
            except RuntimeError:
                with self._lock:
                    self._draining = False
                    self._waiting = None
                raise
        return future

    def close(self) -> None:
        with self._lock:
            waiting, self._waiting = self._waiting, None
        if waiting is not None:
            waiting[1].cancel()
        if self._owns_executor:
            self._executor.shutdown(wait=False, cancel_futures=True)

    def _drain(self) -> None:
        while True:
            with self._lock:
                item, self._waiting = self._waiting, None
                if item is None:
                    self._draining = False
                    return
            batch, future = item
            if not future.set_running_or_notify_cancel():
                continue
            try:
                future.set_result(self._predict(batch))
            except Exception as exc:                      # noqa: BLE001
                future.set_exception(exc)


class OnnxQualityClassifier(CallableQualityClassifier):
    """
    Quality classifier backed by an ONNX model.

    A model that cannot be loaded is logged once; every later
    :meth:`submit` then returns an already-failed future, so the caller
    keeps its previous quality instead of crashing.

    Parameters
    ----------
    model_path:
        Path to the ``.onnx`` file.  The model takes one float32 input of
        shape ``(batch, 15)`` and returns ``(batch, 3)`` probabilities.
    providers:
        onnxruntime execution providers (default: CPU only).
    """

    def __init__(
        self,
        model_path: str,
        providers: Optional[Sequence[str]] = None,
        executor: Optional[ThreadPoolExecutor] = None,
    ) -> None:
        super().__init__(self._run, executor)
        self.model_path = model_path
        self._session = None
        self._input_name: Optional[str] = None
        self._load_error: Optional[Exception] = None
        try:
            self._load(list(providers or ["CPUExecutionProvider"]))
            logger.info("Quality model loaded from %s", model_path)
        except Exception as exc:                          # noqa: BLE001
            self._load_error = exc
            logger.warning("Could not load quality model %s: %s", model_path, exc)

    @property
    def loaded(self) -> bool:
        return self._session is not None

    def submit(self, features: Sequence[float]) -> Future:
        if self._session is None:
            failed: Future = Future()
            failed.set_exception(RuntimeError(f"Quality model unavailable: {self._load_error}"))
            return failed
        return super().submit(features)

    def _load(self, providers: list) -> None:
        if not _ORT_AVAILABLE:
            raise RuntimeError("onnxruntime is not installed")
        if not os.path.isfile(self.model_path):
            raise FileNotFoundError(f"Quality model not found: {self.model_path}")
        self._session = ort.InferenceSession(self.model_path, providers=providers)
        self._input_name = self._session.get_inputs()[0].name

    def _run(self, batch: np.ndarray) -> np.ndarray:
        return self._session.run(None, {self._input_name: batch})[0]


class QualityTracker:
    """
    Holds the most recently received :class:`SignalQuality`.

    Futures are attached with :meth:`attach`; their completion callbacks
    may run on a worker thread, so the stored value is guarded by a lock.
    Failed or malformed results leave the previous quality in place.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._quality = SignalQuality()

    @property
    def quality(self) -> SignalQuality:
        with self._lock:
            return self._quality

    def attach(self, future: Future) -> None:
        future.add_done_callback(self._on_done)

    def apply(self, probabilities: Sequence[float]) -> SignalQuality:
        """Adopt *probabilities* as the current quality and return it."""
        probs = np.asarray(probabilities, dtype=np.float64).ravel()
        if probs.size != len(QUALITY_CLASSES) or not np.all(np.isfinite(probs)):
            logger.warning("Ignoring malformed classifier output (shape=%s)", probs.shape)
            return self.quality

        idx = int(np.argmax(probs))
        confidence = max(0.0, min(100.0, float(probs[idx]) * 100.0))
        quality = SignalQuality(label=QUALITY_CLASSES[idx], confidence=confidence)
        with self._lock:
            self._quality = quality
        return quality

    def reset(self) -> None:
        with self._lock:
            self._quality = SignalQuality()

    def _on_done(self, future: Future) -> None:
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            logger.warning("Signal quality classification failed: %s", exc)
            return
        self.apply(future.result())
