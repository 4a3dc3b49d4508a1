#!/usr/bin/env python3
"""
HeartLen – main entry point.

Usage
-----
    python main.py [OPTIONS]

Options
-------
    --camera-index INT      OpenCV camera index (default: 0)
    --resolution WxH        Camera resolution (default: 1280x720)
    --fps INT               Requested frame rate (default: 30)
    --mode NAME             Signal combination mode (default: default)
    --model PATH            ONNX signal-quality model (optional)
    --subject ID            Subject ID attached to saved records
    --save-records PATH     Append analysis records to a JSON-lines file
    --sample-interval SEC   Seconds between saved records (default: 10)
    --headless              Run without display window (log metrics to stdout)

Keyboard shortcuts (when a window is open)
------------------------------------------
    q / ESC  – quit
    r        – reset signal buffer
    m        – cycle signal combination mode
"""

from __future__ import annotations

import argparse
import logging
import sys
import time
from pathlib import Path
from typing import Callable

# Must be set before cv2 is imported so Qt5 uses X11/XWayland instead of
# looking for a Wayland plugin that is not bundled with pip-installed opencv.
import os
os.environ.setdefault("QT_QPA_PLATFORM", "xcb")

import cv2

from heartlen.camera import Camera
from heartlen.combiner import CombinationMode
from heartlen.pipeline import PPGPipeline
from heartlen.quality import OnnxQualityClassifier
from heartlen.records import RecordWriter, summarize_records

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s – %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("heartlen")

WINDOW_TITLE = "HeartLen"


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Camera PPG heart-rate / HRV monitor",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("--camera-index", type=int, default=0,
                        help="OpenCV VideoCapture index")
    parser.add_argument("--resolution", default="1280x720",
                        help="Camera resolution, e.g. 1280x720")
    parser.add_argument("--fps", type=int, default=30,
                        help="Requested capture frame rate")
    parser.add_argument("--mode", default=CombinationMode.DEFAULT.value,
                        choices=[m.value for m in CombinationMode],
                        help="Signal combination mode")
    parser.add_argument("--model", type=Path, default=None,
                        help="ONNX signal-quality model")
    parser.add_argument("--subject", default=None,
                        help="Subject ID attached to saved records")
    parser.add_argument("--save-records", type=Path, default=None,
                        help="Append analysis records to this JSON-lines file")
    parser.add_argument("--sample-interval", type=float, default=10.0,
                        help="Seconds between saved records")
    parser.add_argument("--headless", action="store_true",
                        help="No display window; log metrics to stdout only")
    return parser.parse_args(argv)


def _next_mode(mode: CombinationMode) -> CombinationMode:
    modes = list(CombinationMode)
    return modes[(modes.index(mode) + 1) % len(modes)]


def _status_lines(pipeline: PPGPipeline) -> list[str]:
    hr, hrv, quality = pipeline.heart_rate, pipeline.hrv, pipeline.signal_quality
    return [
        f"HR   {hr.bpm:3d} BPM  ({hr.confidence:.0f}%)" if hr.bpm else "HR   --",
        f"HRV  {hrv.sdnn:3d} ms   ({hrv.confidence}%)" if hrv.sdnn else "HRV  --",
        f"SQ   {quality.label}  ({quality.confidence:.0f}%)",
        f"mode={pipeline.combination_mode.value}  fps={pipeline.fps:.0f}",
    ]


def _draw(frame, pipeline: PPGPipeline):
    for i, line in enumerate(_status_lines(pipeline)):
        cv2.putText(frame, line, (10, 30 + 28 * i), cv2.FONT_HERSHEY_SIMPLEX,
                    0.8, (0, 255, 255), 2, cv2.LINE_AA)
    return frame


# ---------------------------------------------------------------------------
# Main loop
# ---------------------------------------------------------------------------

def run(args: argparse.Namespace, clock: Callable[[], float] = time.monotonic) -> int:
    try:
        res_w, res_h = (int(v) for v in args.resolution.lower().split("x"))
    except ValueError:
        logger.error("Invalid --resolution format.  Use WxH, e.g. 1280x720.")
        return 1

    classifier = OnnxQualityClassifier(str(args.model)) if args.model else None
    pipeline = PPGPipeline(classifier=classifier, combination_mode=args.mode)
    camera = Camera(camera_index=args.camera_index, resolution=(res_w, res_h), fps=args.fps)

    writer: RecordWriter | None = None
    if args.save_records:
        writer = RecordWriter(args.save_records)
        history = summarize_records(
            r for r in writer.read_all()
            if args.subject is None or r.subject_id == args.subject
        )
        if history.count:
            logger.info(
                "History: %d records, avg HR=%s BPM, avg HRV=%s ms, last access %s",
                history.count,
                f"{history.avg_heart_rate:.2f}" if history.avg_heart_rate else "n/a",
                f"{history.avg_hrv:.2f}" if history.avg_hrv else "n/a",
                history.last_access,
            )

    logger.info("Starting HeartLen.  Cover the camera with a fingertip.")
    if not args.headless:
        cv2.namedWindow(WINDOW_TITLE, cv2.WINDOW_NORMAL)

    last_log = last_save = clock()
    try:
        with camera:
            for frame in camera.frames():
                pipeline.process_frame(frame)
                now = clock()

                if writer is not None and now - last_save >= args.sample_interval:
                    record = pipeline.last_record
                    if record is not None:
                        writer.write(record.with_subject(args.subject))
                    last_save = now

                if args.headless:
                    if now - last_log >= 1.0:
                        ts = time.strftime("%H:%M:%S")
                        print(f"[{ts}] " + " | ".join(_status_lines(pipeline)))
                        last_log = now
                    continue

                if frame is None:
                    continue
                cv2.imshow(WINDOW_TITLE, _draw(frame, pipeline))
                key = cv2.waitKey(1) & 0xFF
                if key in (ord("q"), 27):          # q or ESC
                    logger.info("Quit requested by user.")
                    break
                elif key == ord("r"):
                    pipeline.reset()
                    logger.info("Signal buffer reset.")
                elif key == ord("m"):
                    pipeline.combination_mode = _next_mode(pipeline.combination_mode)

    except KeyboardInterrupt:
        logger.info("Interrupted.")
    finally:
        if classifier is not None:
            classifier.close()
        if not args.headless:
            cv2.destroyAllWindows()

    return 0


def main() -> int:
    return run(parse_args())


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    sys.exit(main())
