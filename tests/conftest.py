"""Shared fakes for face manager tests."""

from __future__ import annotations

from typing import Dict, List, Optional, Set

import numpy as np
import pytest

from facemanager.core.contracts import Rectangle
from facemanager.core.errors import TrackerFailure
from facemanager.detection.base import FaceDetector
from facemanager.manager import FaceManager, FaceManagerConfig
from facemanager.tracking.correlation_tracker import TrackerPrimitive


DESCRIPTOR_SIZE = 128


def descriptor(*values: float) -> np.ndarray:
    """Descriptor with the given leading values, zero elsewhere."""
    d = np.zeros(DESCRIPTOR_SIZE, dtype=np.float32)
    d[:len(values)] = values
    return d


class FakeFaceDetector(FaceDetector):
    """
    Scripted face detector.

    `faces` is returned by every detect_faces() call. Descriptors are
    looked up by the rectangle the chip was extracted from. Rectangles
    with no scripted descriptor get a unique one, far from all others.
    """

    def __init__(self):
        super().__init__()
        self.faces: List[Rectangle] = []
        self.descriptors: Dict[Rectangle, np.ndarray] = {}
        self.fail_detect = False
        self.fail_descriptor_for: Set[Rectangle] = set()
        self.jitter_calls: List[bool] = []

        self._last_rect: Optional[Rectangle] = None
        self._unique = 0

    def _detect_faces(self, image):
        if self.fail_detect:
            raise RuntimeError("detector exploded")
        return list(self.faces)

    def _extract_face_image(self, image, face_bounds):
        self._last_rect = face_bounds
        return np.zeros((4, 4, 3), dtype=np.uint8)

    def _get_face_descriptor(self, face_image, use_jitter):
        self.jitter_calls.append(use_jitter)
        rect = self._last_rect
        if rect in self.fail_descriptor_for:
            raise RuntimeError(f"no descriptor for {rect}")
        if rect not in self.descriptors:
            self._unique += 1
            self.descriptors[rect] = descriptor(1000.0 * self._unique)
        return self.descriptors[rect]


class FakeTracker(TrackerPrimitive):
    """Tracker that stays where it was started and reports a settable confidence."""

    def __init__(self, confidence: float = 20.0, start_errors: Optional[Dict[Rectangle, Exception]] = None):
        self.confidence = confidence
        self.fail_update = False
        # Raised from update() instead of returning a confidence
        self.update_error: Optional[Exception] = None
        # Region -> error raised when starting on it
        self.start_errors = start_errors if start_errors is not None else {}
        self.rectangle: Optional[Rectangle] = None
        self.updates = 0

    def start_track(self, image, rectangle):
        if rectangle in self.start_errors:
            raise self.start_errors[rectangle]
        if rectangle.width < 2 or rectangle.height < 2:
            raise TrackerFailure(f"Region too small to track: {rectangle}")
        self.rectangle = rectangle

    def update(self, image):
        self.updates += 1
        if self.fail_update:
            raise TrackerFailure("lost")
        if self.update_error is not None:
            raise self.update_error
        return self.confidence

    def get_position(self):
        return self.rectangle


class FakeTrackerFactory:
    """Creates FakeTrackers and remembers them in creation order."""

    def __init__(self, confidence: float = 20.0):
        self.confidence = confidence
        self.created: List[FakeTracker] = []
        # Padded regions whose tracker fails to start
        self.start_errors: Dict[Rectangle, Exception] = {}

    def __call__(self) -> FakeTracker:
        tracker = FakeTracker(self.confidence, self.start_errors)
        self.created.append(tracker)
        return tracker


@pytest.fixture
def image():
    return np.zeros((480, 640, 3), dtype=np.uint8)


@pytest.fixture
def detector():
    return FakeFaceDetector()


@pytest.fixture
def trackers():
    return FakeTrackerFactory()


@pytest.fixture
def manager(detector, trackers):
    return FaceManager(detector, FaceManagerConfig(), tracker_factory=trackers)
