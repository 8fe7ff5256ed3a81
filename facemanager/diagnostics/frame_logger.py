"""
Per-frame diagnostic logger.

Messages go to loguru, tagged with the current frame number and a
sequence number within the frame. Intermediate images can be written
to a directory for offline inspection, named so they sort in the
order they were produced:

    {image_dir}/{frame:05d}-{seq:03d}-{step}.png
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional
import numpy as np
from numpy.typing import NDArray
import cv2
from loguru import logger


class FrameLogger:
    """
    Diagnostic sink passed to the face manager.

    Level filtering is done here, before any formatting or image encoding,
    so disabled levels cost nothing.
    """

    def __init__(
        self,
        level: str = "DEBUG",
        enabled: bool = True,
        image_dir: Optional[str] = None,
    ):
        """
        Initialize frame logger.

        Args:
            level: Minimum level to emit (TRACE, DEBUG, INFO, WARNING, ERROR)
            enabled: Master switch for messages and images
            image_dir: Directory for image dumps, None disables them
        """
        self.enabled = enabled
        self.image_dir = Path(image_dir) if image_dir else None
        self._level_no = logger.level(level).no
        self._level = level

        self.frame_count = 0
        self.seq = 0

    @property
    def level(self) -> str:
        return self._level

    @level.setter
    def level(self, name: str):
        self._level_no = logger.level(name).no
        self._level = name

    def is_enabled(self, level: str) -> bool:
        return self.enabled and logger.level(level).no >= self._level_no

    def next_frame(self):
        self.frame_count += 1
        self.seq = 0

    def set_frame(self, frame_no: int):
        self.frame_count = frame_no
        self.seq = 0

    def frame_string(self) -> str:
        return f"{self.frame_count:05d}-{self.seq:03d}"

    def log(self, level: str, message: str):
        if not self.is_enabled(level):
            return
        logger.bind(frame=self.frame_count, seq=self.seq).opt(depth=2).log(
            level, f"[{self.frame_string()}] {message}"
        )

    def trace(self, message: str):
        self.log("TRACE", message)

    def debug(self, message: str):
        self.log("DEBUG", message)

    def info(self, message: str):
        self.log("INFO", message)

    def warning(self, message: str):
        self.log("WARNING", message)

    def error(self, message: str):
        self.log("ERROR", message)

    def image(self, step: str, image: NDArray[np.uint8], level: str = "DEBUG") -> Optional[Path]:
        """
        Write an intermediate image.

        Returns:
            Path written, or None if images are disabled at this level
        """
        if self.image_dir is None or not self.is_enabled(level):
            return None

        self.image_dir.mkdir(parents=True, exist_ok=True)
        path = self.image_dir / f"{self.frame_string()}-{step}.png"
        if not cv2.imwrite(str(path), image):
            logger.warning(f"Failed to write diagnostic image {path}")
            return None

        self.seq += 1
        return path
