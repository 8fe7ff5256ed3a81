"""
Motion Detection.

Stateful detectors that decide whether a frame differs enough from the
previous ones to be worth running through the face manager.

Usage:
    detector = motion_detector_factory(MotionMethod.from_string("diff"))
    for _ in range(detector.num_init_frames()):
        detector.init_frame(next_frame())
    if detector.detect_motion(frame):
        ...
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from enum import Enum
from typing import Optional
import numpy as np
from numpy.typing import NDArray
import cv2
from loguru import logger

from facemanager.diagnostics.frame_logger import FrameLogger


# ============================================================
# CONSTANTS
# ============================================================

MOTION_WIDTH = 500
MOTION_CONTOUR_MIN_AREA = 500.0
MOTION_MSE_THRESHOLD = 2000.0
MOTION_DIFF_THRESHOLD = 250.0

BLUR_KERNEL_SIZE = 21
THRESH_MIN = 25
THRESH_MAX = 255
DILATE_KERNEL = cv2.getStructuringElement(cv2.MORPH_ELLIPSE, (3, 3))
DILATE_ITERATIONS = 2
ERODE_KERNEL = cv2.getStructuringElement(cv2.MORPH_RECT, (2, 2))
ACCUMULATOR_WEIGHT = 0.5


def resize_to_width(image: NDArray[np.uint8], width: int) -> NDArray[np.uint8]:
    """Resize keeping aspect ratio."""
    rows, cols = image.shape[:2]
    height = int(round(rows * width / float(cols)))
    return cv2.resize(image, (width, height), interpolation=cv2.INTER_AREA)


class MotionDetector(ABC):
    """
    Detects motion in a sequence of frames.

    init_frame() must be called num_init_frames() times before detect_motion().
    """

    def __init__(self, diagnostics: Optional[FrameLogger] = None):
        self.diagnostics = diagnostics or FrameLogger(enabled=False)

    @abstractmethod
    def num_init_frames(self) -> int:
        """Frames needed before motion can be detected."""
        pass

    @abstractmethod
    def init_frame(self, frame: NDArray[np.uint8]):
        pass

    @abstractmethod
    def detect_motion(self, frame: NDArray[np.uint8]) -> bool:
        pass


class ConstantMotionDetector(MotionDetector):
    """Always returns the same answer. Used to time the pipeline with and without processing."""

    def __init__(self, detect_motion_result: bool, diagnostics: Optional[FrameLogger] = None):
        super().__init__(diagnostics)
        self.detect_motion_result = detect_motion_result

    def num_init_frames(self) -> int:
        return 0

    def init_frame(self, frame: NDArray[np.uint8]):
        pass

    def detect_motion(self, frame: NDArray[np.uint8]) -> bool:
        return self.detect_motion_result


class ContourMotionDetector(MotionDetector):
    """
    Compares each frame to a running average and looks for large changed blobs.

    Args:
        image_width: Frames are resized to this width first
        motion_detected_area: Minimum contour area that counts as motion
    """

    def __init__(
        self,
        image_width: int = MOTION_WIDTH,
        motion_detected_area: float = MOTION_CONTOUR_MIN_AREA,
        diagnostics: Optional[FrameLogger] = None,
    ):
        super().__init__(diagnostics)
        self.image_width = image_width
        self.motion_detected_area = motion_detected_area
        self._accumulator: Optional[NDArray[np.float32]] = None

    def num_init_frames(self) -> int:
        return 1

    def init_frame(self, frame: NDArray[np.uint8]):
        processed = self._preprocess(frame)
        self.diagnostics.image("contour-first-frame-processed", processed)
        self._accumulator = processed.astype(np.float32)

    def detect_motion(self, frame: NDArray[np.uint8]) -> bool:
        if self._accumulator is None:
            raise RuntimeError("ContourMotionDetector used before init_frame()")

        current = self._preprocess(frame)

        # Compare against the average before folding this frame in
        average = cv2.convertScaleAbs(self._accumulator)
        cv2.accumulateWeighted(current, self._accumulator, ACCUMULATOR_WEIGHT)

        diff = cv2.absdiff(current, average)
        _, thresh = cv2.threshold(diff, THRESH_MIN, THRESH_MAX, cv2.THRESH_BINARY)
        dilated = cv2.dilate(thresh, DILATE_KERNEL, iterations=DILATE_ITERATIONS)
        self.diagnostics.image("contour-dilated", dilated)

        contours, _ = cv2.findContours(dilated, cv2.RETR_EXTERNAL, cv2.CHAIN_APPROX_SIMPLE)
        return any(cv2.contourArea(c) > self.motion_detected_area for c in contours)

    def _preprocess(self, frame: NDArray[np.uint8]) -> NDArray[np.uint8]:
        small = resize_to_width(frame, self.image_width)
        grey = cv2.cvtColor(small, cv2.COLOR_BGR2GRAY)
        return cv2.GaussianBlur(grey, (BLUR_KERNEL_SIZE, BLUR_KERNEL_SIZE), 0)


class MeanSquaredErrorMotionDetector(MotionDetector):
    """L2 distance between each frame and a running average."""

    def __init__(
        self,
        image_width: int = MOTION_WIDTH,
        threshold: float = MOTION_MSE_THRESHOLD,
        use_blur: bool = False,
        diagnostics: Optional[FrameLogger] = None,
    ):
        super().__init__(diagnostics)
        self.image_width = image_width
        self.threshold = threshold
        self.use_blur = use_blur
        self._accumulator: Optional[NDArray[np.float32]] = None

    def num_init_frames(self) -> int:
        return 1

    def init_frame(self, frame: NDArray[np.uint8]):
        self._accumulator = self._preprocess(frame)

    def detect_motion(self, frame: NDArray[np.uint8]) -> bool:
        if self._accumulator is None:
            raise RuntimeError("MeanSquaredErrorMotionDetector used before init_frame()")

        current = self._preprocess(frame)
        distance = cv2.norm(current, self._accumulator, cv2.NORM_L2)
        cv2.accumulateWeighted(current, self._accumulator, ACCUMULATOR_WEIGHT)
        self.diagnostics.trace(f"MSE motion distance {distance:.1f}")

        return distance > self.threshold

    def _preprocess(self, frame: NDArray[np.uint8]) -> NDArray[np.float32]:
        small = resize_to_width(frame, self.image_width)
        grey = cv2.cvtColor(small, cv2.COLOR_BGR2GRAY).astype(np.float32)
        if self.use_blur:
            return cv2.GaussianBlur(grey, (BLUR_KERNEL_SIZE, BLUR_KERNEL_SIZE), 0)
        return grey


class FrameDifferenceMotionDetector(MotionDetector):
    """
    Three-frame differencing.

    A pixel counts as changed only if it differs from both the previous
    and the next frame, which suppresses ghosting from a single change.
    Width 0 disables resizing.
    """

    def __init__(
        self,
        image_width: int = MOTION_WIDTH,
        threshold: float = MOTION_DIFF_THRESHOLD,
        use_blur: bool = False,
        diagnostics: Optional[FrameLogger] = None,
    ):
        super().__init__(diagnostics)
        self.image_width = image_width
        self.threshold = threshold
        self.use_blur = use_blur
        self._prev_frame: Optional[NDArray[np.uint8]] = None
        self._current_frame: Optional[NDArray[np.uint8]] = None

    def num_init_frames(self) -> int:
        return 2

    def init_frame(self, frame: NDArray[np.uint8]):
        if self._prev_frame is None:
            self._prev_frame = self._preprocess(frame)
        else:
            self._current_frame = self._preprocess(frame)

    def detect_motion(self, frame: NDArray[np.uint8]) -> bool:
        if self._prev_frame is None or self._current_frame is None:
            raise RuntimeError("FrameDifferenceMotionDetector needs 2 init frames")

        next_frame = self._preprocess(frame)
        diff1 = cv2.absdiff(self._prev_frame, next_frame)
        diff2 = cv2.absdiff(next_frame, self._current_frame)

        self._prev_frame = self._current_frame
        self._current_frame = next_frame

        motion = cv2.bitwise_and(diff1, diff2)
        _, thresh = cv2.threshold(motion, THRESH_MIN, THRESH_MAX, cv2.THRESH_BINARY)
        eroded = cv2.erode(thresh, ERODE_KERNEL)
        self.diagnostics.image("diff-eroded", eroded)

        # Binary image, so sum / 255 is the changed pixel count
        changed_pixels = float(eroded.sum()) / 255.0
        return changed_pixels > self.threshold

    def _preprocess(self, frame: NDArray[np.uint8]) -> NDArray[np.uint8]:
        image = resize_to_width(frame, self.image_width) if self.image_width > 0 else frame
        grey = cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)
        if self.use_blur:
            return cv2.GaussianBlur(grey, (BLUR_KERNEL_SIZE, BLUR_KERNEL_SIZE), 0)
        return grey


# ============================================================
# FACTORY
# ============================================================

class MotionMethod(Enum):
    ALWAYS = "ALWAYS"                  # always report motion, for timing comparisons
    NEVER = "NEVER"                    # cost of reading video with no processing
    CONTOURS = "CONTOURS"
    MSE = "MSE"
    MSE_WITH_BLUR = "MSE_WITH_BLUR"
    DIFF = "DIFF"
    DIFF_WITH_BLUR = "DIFF_WITH_BLUR"

    @classmethod
    def from_string(cls, name: str) -> "MotionMethod":
        try:
            return cls(name.strip().upper())
        except ValueError:
            valid = ", ".join(m.value for m in cls)
            raise ValueError(f"Invalid motion detector type: '{name}' (expected one of {valid})") from None

    def __str__(self) -> str:
        return self.value


def motion_detector_factory(
    method: MotionMethod,
    diagnostics: Optional[FrameLogger] = None,
) -> MotionDetector:
    """Create a motion detector with the default tuning for a method."""
    logger.debug(f"Creating {method} motion detector")

    if method == MotionMethod.ALWAYS:
        return ConstantMotionDetector(True, diagnostics)
    if method == MotionMethod.NEVER:
        return ConstantMotionDetector(False, diagnostics)
    if method == MotionMethod.CONTOURS:
        return ContourMotionDetector(MOTION_WIDTH, MOTION_CONTOUR_MIN_AREA, diagnostics)
    if method == MotionMethod.MSE:
        return MeanSquaredErrorMotionDetector(MOTION_WIDTH, MOTION_MSE_THRESHOLD, False, diagnostics)
    if method == MotionMethod.MSE_WITH_BLUR:
        return MeanSquaredErrorMotionDetector(MOTION_WIDTH, MOTION_MSE_THRESHOLD, True, diagnostics)
    if method == MotionMethod.DIFF:
        return FrameDifferenceMotionDetector(MOTION_WIDTH, MOTION_DIFF_THRESHOLD, False, diagnostics)
    if method == MotionMethod.DIFF_WITH_BLUR:
        return FrameDifferenceMotionDetector(MOTION_WIDTH, MOTION_DIFF_THRESHOLD, True, diagnostics)

    raise ValueError(f"Unknown motion method: {method}")
