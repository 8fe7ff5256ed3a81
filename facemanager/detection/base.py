"""
Base class for face detectors.

A face detector bundles three collaborators the face manager relies on:
1. detect_faces: find face rectangles in a frame
2. extract_face_image: produce a normalized, aligned face chip
3. get_face_descriptor: turn a face chip into a fixed-length vector

To add a new detector, inherit from FaceDetector and implement the three
underscore methods. The public methods keep usage counters so callers
can check how much work each frame cost.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List
import numpy as np
from numpy.typing import NDArray

from facemanager.core.contracts import Rectangle


@dataclass
class FaceCounters:
    """Number of calls made to each detector operation."""
    detect_count: int = 0
    extract_face_image_count: int = 0
    face_descriptor_count: int = 0

    def reset(self):
        self.detect_count = 0
        self.extract_face_image_count = 0
        self.face_descriptor_count = 0


class FaceDetector(ABC):
    """Abstract base class for face detection and description."""

    def __init__(self):
        self._counters = FaceCounters()

    def detect_faces(self, image: NDArray[np.uint8]) -> List[Rectangle]:
        """Detect faces in a BGR image."""
        self._counters.detect_count += 1
        return self._detect_faces(image)

    def extract_face_image(self, image: NDArray[np.uint8], face_bounds: Rectangle) -> NDArray[np.uint8]:
        """Extract the aligned face chip for a detected rectangle."""
        self._counters.extract_face_image_count += 1
        return self._extract_face_image(image, face_bounds)

    def get_face_descriptor(self, face_image: NDArray[np.uint8], use_jitter: bool = False) -> NDArray[np.float32]:
        """
        Compute a face descriptor.

        Jitter averages the descriptors of several randomly perturbed copies
        of the face chip. It is more robust to noise but much slower.
        """
        self._counters.face_descriptor_count += 1
        return self._get_face_descriptor(face_image, use_jitter)

    @property
    def counters(self) -> FaceCounters:
        return FaceCounters(
            self._counters.detect_count,
            self._counters.extract_face_image_count,
            self._counters.face_descriptor_count,
        )

    def reset_counters(self):
        self._counters.reset()

    @abstractmethod
    def _detect_faces(self, image: NDArray[np.uint8]) -> List[Rectangle]:
        pass

    @abstractmethod
    def _extract_face_image(self, image: NDArray[np.uint8], face_bounds: Rectangle) -> NDArray[np.uint8]:
        pass

    @abstractmethod
    def _get_face_descriptor(self, face_image: NDArray[np.uint8], use_jitter: bool) -> NDArray[np.float32]:
        pass
