"""
Camera frame source.

Wraps OpenCV ``VideoCapture`` to provide an iterator of BGR frames for the
pipeline.  Failed reads are passed through as ``None`` so the pipeline can
skip them; a long run of failures ends the stream.
"""

from __future__ import annotations

import logging
from typing import Generator, Optional, Tuple

import cv2
import numpy as np

logger = logging.getLogger(__name__)


class Camera:
    """
    Thin wrapper around an OpenCV capture device.

    Parameters
    ----------
    camera_index:
        OpenCV device index.
    resolution:
        Requested (width, height).  The driver may pick another size.
    fps:
        Requested frame rate.  The pipeline measures the real one.
    max_failures:
        Consecutive failed reads after which :meth:`frames` stops.
    """

    def __init__(
        self,
        camera_index: int = 0,
        resolution: Tuple[int, int] = (1280, 720),
        fps: int = 30,
        max_failures: int = 10,
    ) -> None:
        self.camera_index = camera_index
        self.resolution = resolution
        self.fps = fps
        self.max_failures = max_failures
        self._cap: "cv2.VideoCapture | None" = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def open(self) -> None:
        cap = cv2.VideoCapture(self.camera_index)
        if not cap.isOpened():
            raise RuntimeError(
                f"Cannot open video capture device index={self.camera_index}"
            )
        w, h = self.resolution
        cap.set(cv2.CAP_PROP_FRAME_WIDTH, w)
        cap.set(cv2.CAP_PROP_FRAME_HEIGHT, h)
        cap.set(cv2.CAP_PROP_FPS, self.fps)
        self._cap = cap
        logger.info(
            "Camera opened – index=%d resolution=%s fps=%d",
            self.camera_index, self.resolution, self.fps,
        )

    def close(self) -> None:
        if self._cap is None:
            return
        self._cap.release()
        self._cap = None
        logger.info("Camera closed.")

    def __enter__(self) -> "Camera":
        self.open()
        return self

    def __exit__(self, *_) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Frame acquisition
    # ------------------------------------------------------------------

    def read_frame(self) -> Optional[np.ndarray]:
        """Capture one BGR frame, or return *None* on failure."""
        if self._cap is None:
            raise RuntimeError("Camera is not open.  Call open() first.")
        ok, frame = self._cap.read()
        if not ok or frame is None:
            logger.warning("VideoCapture.read() returned no frame.")
            return None
        return frame

    def frames(self) -> Generator[Optional[np.ndarray], None, None]:
        """
        Yield frames (or *None* for failed reads) until the camera closes.

        Usage::

            with Camera() as cam:
                for frame in cam.frames():
                    pipeline.process_frame(frame)
        """
        failures = 0
        while self._cap is not None:
            frame = self.read_frame()
            if frame is None:
                failures += 1
                if failures >= self.max_failures:
                    logger.error(
                        "Camera returned %d consecutive empty frames – aborting.",
                        failures,
                    )
                    break
            else:
                failures = 0
            yield frame
