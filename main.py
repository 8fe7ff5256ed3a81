#!/usr/bin/env python3
"""
Face Manager Demo

Reads a video, tracks and identifies the faces in it, and writes an
annotated copy with each person's name and the processing frame rate.

Usage:
    python main.py INPUT OUTPUT [--method METHOD] [--person NAME IMAGE]...

Motion methods:
    ALWAYS, NEVER, CONTOURS, MSE, MSE_WITH_BLUR, DIFF, DIFF_WITH_BLUR

Example:
    python main.py in.mp4 out.avi --method diff \\
        --person alice faces/alice.jpg --person bob faces/bob.jpg
"""

from __future__ import annotations

import argparse
import dataclasses
import functools
import math
import sys
import time
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

import cv2
import numpy as np
import yaml
from loguru import logger

from facemanager.capture import (
    MotionMethod,
    VideoSource,
    WARM_UP_FRAMES,
    motion_detector_factory,
)
from facemanager.core.contracts import Person
from facemanager.core.errors import (
    AmbiguousOrMissingFaceError,
    DescriptorComputationFailure,
    DetectorUnavailable,
)
from facemanager.detection import OpenCVFaceDetector
from facemanager.diagnostics import FrameLogger
from facemanager.manager import FaceManager, FaceManagerConfig
from facemanager.tracking import CorrelationTracker


# ============================================================
# LOGGING CONFIGURATION
# ============================================================

def setup_logging(log_level: str = "INFO", log_file: Optional[str] = None):
    """Configure logging."""
    logger.remove()  # Remove default handler

    # Console output with colors
    logger.add(
        sys.stderr,
        level=log_level,
        format="<green>{time:HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | <cyan>{module}</cyan>:<cyan>{line}</cyan> | <level>{message}</level>",
        colorize=True,
    )

    # File output
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            log_file,
            level="DEBUG",
            format="{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {module}:{line} | {message}",
            rotation="10 MB",
            retention="7 days",
        )


# ============================================================
# FRAME RATE
# ============================================================

class FpsMeter:
    """Exponentially weighted moving average of frame rate, bias corrected."""

    def __init__(self, weight: float = 0.9):
        self.weight = weight
        self.frame_count = 0
        self.min_fps = math.inf
        self.max_fps = 0.0

        self._average_frame_time = 0.0
        self._start = time.perf_counter()
        self._last = self._start

    def tick(self) -> float:
        """Record a frame and return the smoothed FPS."""
        now = time.perf_counter()
        frame_time = now - self._last
        self._last = now
        self.frame_count += 1

        self._average_frame_time = (
            self.weight * self._average_frame_time + (1.0 - self.weight) * frame_time
        )
        # Average starts at zero, so early values are scaled up
        mean_frame_time = self._average_frame_time / (1.0 - self.weight ** self.frame_count)

        fps = 1.0 / mean_frame_time if mean_frame_time > 0 else 0.0
        self.min_fps = min(self.min_fps, fps)
        self.max_fps = max(self.max_fps, fps)
        return fps

    @property
    def mean_fps(self) -> float:
        elapsed = self._last - self._start
        return self.frame_count / elapsed if elapsed > 0 else 0.0


# ============================================================
# OUTPUT RENDERER
# ============================================================

class FrameAnnotator:
    """Draws tracked people and status text onto frames."""

    def __init__(
        self,
        box_colour: Tuple[int, int, int] = (255, 0, 0),
        name_colour: Tuple[int, int, int] = (255, 0, 0),
        info_colour: Tuple[int, int, int] = (255, 128, 0),
    ):
        self.box_colour = box_colour
        self.name_colour = name_colour
        self.info_colour = info_colour

    def render(
        self,
        frame: np.ndarray,
        people: Sequence[Person],
        fps: float,
        visible_count: int,
        known_count: int,
    ):
        """Annotate frame in place."""
        for person in people:
            self._draw_person(frame, person)
        self._draw_info_overlay(frame, fps, visible_count, known_count)

    def _draw_person(self, frame: np.ndarray, person: Person):
        box = person.bounding_box
        # Rectangle is inclusive, OpenCV points are too
        cv2.rectangle(frame, (box.left, box.top), (box.right, box.bottom), self.box_colour, 2)
        cv2.putText(
            frame, person.display_name, (box.left, box.top),
            cv2.FONT_HERSHEY_SIMPLEX, 0.75, self.name_colour, 2
        )

    def _draw_info_overlay(self, frame: np.ndarray, fps: float, visible_count: int, known_count: int):
        text = f"FPS: {fps:5.3g}, #visible: {visible_count:2d}, #people: {known_count:2d}"
        cv2.putText(
            frame, text, (20, 20),
            cv2.FONT_HERSHEY_SIMPLEX, 0.75, self.info_colour, 2
        )


# ============================================================
# MAIN APPLICATION
# ============================================================

def _dataclass_kwargs(cls: Any, section: Dict[str, Any], name: str) -> Dict[str, Any]:
    """Keep only the keys of a config section that cls accepts."""
    known = {f.name for f in dataclasses.fields(cls)}
    unknown = set(section) - known
    if unknown:
        logger.warning(f"Ignoring unknown {name} settings: {sorted(unknown)}")
    return {k: v for k, v in section.items() if k in known}


class FaceTrackingDemo:
    """Main application class."""

    def __init__(
        self,
        config_path: Optional[str] = None,
        models_dir: Optional[str] = None,
        method: Optional[str] = None,
        debug_dir: Optional[str] = None,
    ):
        self.config = self._load_config(config_path)

        motion_config = self.config.get('motion') or {}
        video_config = self.config.get('video') or {}
        detector_config = dict(self.config.get('detector') or {})
        tracker_config = self.config.get('tracker') or {}
        diagnostics_config = self.config.get('diagnostics') or {}

        self.method = MotionMethod.from_string(method or motion_config.get('method', 'ALWAYS'))
        self.warm_up_frames = video_config.get('warm_up_frames', WARM_UP_FRAMES)
        self.codec = video_config.get('codec', 'MJPG')

        self.diagnostics = FrameLogger(
            level=diagnostics_config.get('level', 'DEBUG'),
            enabled=diagnostics_config.get('enabled', True),
            image_dir=debug_dir or diagnostics_config.get('image_dir'),
        )

        if models_dir:
            detector_config['model_dir'] = models_dir
        self.face_detector = OpenCVFaceDetector(**detector_config)

        manager_config = FaceManagerConfig(
            **_dataclass_kwargs(FaceManagerConfig, self.config.get('manager') or {}, 'manager')
        )
        self.manager = FaceManager(
            self.face_detector,
            config=manager_config,
            tracker_factory=functools.partial(CorrelationTracker, **tracker_config),
            diagnostics=self.diagnostics,
        )

        self.annotator = FrameAnnotator()

    def _load_config(self, config_path: Optional[str]) -> dict:
        """Load configuration from file."""
        if config_path and Path(config_path).exists():
            with open(config_path) as f:
                return yaml.safe_load(f) or {}

        if config_path:
            logger.warning(f"Config file {config_path} not found, using defaults")

        # Try default location
        default_path = Path(__file__).parent / "config" / "settings.yaml"
        if default_path.exists():
            with open(default_path) as f:
                return yaml.safe_load(f) or {}

        return {}

    def enroll(self, people: List[Tuple[str, str]]) -> int:
        """
        Enroll known people.

        Returns:
            Number of people enrolled
        """
        enrolled = 0
        for name, face_filename in people:
            logger.info(f"Name: {name}, face: {face_filename}")
            try:
                self.manager.enroll_from_file(name, face_filename)
                enrolled += 1
            except (AmbiguousOrMissingFaceError, FileNotFoundError,
                    DetectorUnavailable, DescriptorComputationFailure) as e:
                logger.error(f"Could not enroll {name}: {e}")
        return enrolled

    def run(self, input_path: str, output_path: str) -> int:
        """
        Process a video.

        Returns:
            Process exit code
        """
        logger.info(f"Read {input_path}, write {output_path}, motion detector {self.method}")

        source = VideoSource(input_path)
        if not source.open():
            return 1

        width, height = source.frame_size
        fps = source.fps or 30.0
        logger.info(f"Writing to {output_path} with size {width} x {height} at {fps} FPS")
        writer = cv2.VideoWriter(
            output_path, cv2.VideoWriter_fourcc(*self.codec), fps, (width, height)
        )

        meter = FpsMeter()
        try:
            source.skip_warm_up(self.warm_up_frames)

            motion_detector = motion_detector_factory(self.method, self.diagnostics)
            for _ in range(motion_detector.num_init_frames()):
                frame = source.read_frame()
                if frame is None:
                    logger.error("Video ended before motion detector was initialised")
                    return 1
                motion_detector.init_frame(frame)

            frame_no = 0
            while True:
                frame = source.read_frame()
                if frame is None:
                    break
                frame_no += 1
                self.diagnostics.next_frame()

                if motion_detector.detect_motion(frame):
                    self._process(frame_no, frame)

                current_fps = meter.tick()
                self.annotator.render(
                    frame,
                    self.manager.visible_people(),
                    current_fps,
                    self.manager.visible_count(),
                    self.manager.known_count(),
                )
                writer.write(frame)

        except KeyboardInterrupt:
            logger.info("Interrupted by user")
        finally:
            source.release()
            writer.release()

        if meter.frame_count:
            logger.info(
                f"Mean FPS {meter.mean_fps:.2f}, Min FPS {meter.min_fps:.2f}, Max FPS {meter.max_fps:.2f}"
            )
        counters = self.face_detector.counters
        logger.info(
            f"Detector calls: detect {counters.detect_count}, "
            f"extract {counters.extract_face_image_count}, "
            f"descriptor {counters.face_descriptor_count}"
        )
        return 0

    def _process(self, frame_no: int, frame: np.ndarray):
        try:
            self.manager.new_frame(frame_no, frame)
        except (DetectorUnavailable, DescriptorComputationFailure) as e:
            logger.warning(f"Skipping frame {frame_no}: {e}")


# ============================================================
# ENTRY POINT
# ============================================================

def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Annotate a video with face tracking results and frame rate",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )

    parser.add_argument("input", help="Input video file or camera index")
    parser.add_argument("output", help="Output video file")

    parser.add_argument(
        "--method", "-m",
        type=str,
        default=None,
        help="Motion detection method (default: from config, else ALWAYS)",
    )

    parser.add_argument(
        "--person", "-p",
        nargs=2,
        action="append",
        default=[],
        metavar=("NAME", "IMAGE"),
        help="Known person and a reference image with exactly one face (repeatable)",
    )

    parser.add_argument(
        "--config", "-c",
        type=str,
        default=None,
        help="Path to configuration file",
    )

    parser.add_argument(
        "--models-dir",
        type=str,
        default=None,
        help="Directory holding the face detection and recognition models",
    )

    parser.add_argument(
        "--log-level",
        type=str,
        default="INFO",
        choices=["TRACE", "DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )

    parser.add_argument(
        "--log-file",
        type=str,
        default=None,
        help="Log file path",
    )

    parser.add_argument(
        "--debug-dir",
        type=str,
        default=None,
        help="Write intermediate images to this directory",
    )

    args = parser.parse_args(argv)

    # Setup logging
    setup_logging(args.log_level, args.log_file)

    try:
        demo = FaceTrackingDemo(args.config, args.models_dir, args.method, args.debug_dir)
    except ValueError as e:
        parser.error(str(e))

    if not demo.face_detector.initialize():
        logger.error("Face detector could not be initialised")
        return 1

    demo.enroll([tuple(p) for p in args.person])
    return demo.run(args.input, args.output)


if __name__ == "__main__":
    sys.exit(main())
