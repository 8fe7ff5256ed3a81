"""
Video Source.

Handles:
- Video file or camera acquisition
- Stream properties for the output writer
- Warm-up frames
"""

from __future__ import annotations

from typing import Optional, Tuple, Union
import numpy as np
from numpy.typing import NDArray
import cv2
from loguru import logger


# Camera sensors take a while to calibrate
WARM_UP_FRAMES = 5


class VideoSource:
    """
    Frame source backed by cv2.VideoCapture.

    Frames are returned in BGR order, as read, since the face detector
    and motion detectors work on BGR.
    """

    def __init__(self, source: Union[str, int] = 0):
        """
        Initialize video source.

        Args:
            source: Video filename, or camera device index
        """
        self.source = source
        self._capture: Optional[cv2.VideoCapture] = None
        self._frame_count: int = 0

    def open(self) -> bool:
        """
        Open the source.

        Returns:
            True if opened successfully
        """
        if self._capture is not None:
            return True

        source = int(self.source) if str(self.source).isdigit() else self.source
        self._capture = cv2.VideoCapture(source)

        if not self._capture.isOpened():
            logger.error(f"Could not read video source {self.source}")
            self._capture = None
            return False

        logger.info(
            f"Video source opened: {self.width}x{self.height} @ {self.fps}fps"
        )
        return True

    def release(self):
        if self._capture is not None:
            self._capture.release()
            self._capture = None
        logger.info(f"Video source released after {self._frame_count} frames")

    def read_frame(self) -> Optional[NDArray[np.uint8]]:
        """
        Read the next frame.

        Returns:
            BGR frame, or None at end of stream
        """
        if self._capture is None:
            return None

        ret, frame = self._capture.read()
        if not ret or frame is None:
            return None

        self._frame_count += 1
        return frame

    def skip_warm_up(self, frames: int = WARM_UP_FRAMES) -> int:
        """Drop the first frames of the stream. Returns how many were dropped."""
        dropped = 0
        for _ in range(frames):
            if self.read_frame() is None:
                break
            dropped += 1
        logger.debug(f"Skipped {dropped} warm-up frames")
        return dropped

    @property
    def is_open(self) -> bool:
        return self._capture is not None

    @property
    def frame_count(self) -> int:
        return self._frame_count

    @property
    def width(self) -> int:
        return int(self._capture.get(cv2.CAP_PROP_FRAME_WIDTH)) if self._capture else 0

    @property
    def height(self) -> int:
        return int(self._capture.get(cv2.CAP_PROP_FRAME_HEIGHT)) if self._capture else 0

    @property
    def fps(self) -> float:
        return float(self._capture.get(cv2.CAP_PROP_FPS)) if self._capture else 0.0

    @property
    def frame_size(self) -> Tuple[int, int]:
        """Frame size (width, height)."""
        return (self.width, self.height)

    def __enter__(self) -> "VideoSource":
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.release()
