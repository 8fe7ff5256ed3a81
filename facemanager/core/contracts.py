"""
Core data contracts for the face manager.

All components exchange these types:
- Rectangle: inclusive pixel bounds in frame coordinates
- Person: a known identity, owned by the identity registry
- TrackedEntry: an actively tracked identity and its tracker
- AssociationResult / FrameResult: per-pass outcomes
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Dict, List, Optional, Set, Tuple
import numpy as np
from numpy.typing import NDArray

if TYPE_CHECKING:
    from facemanager.tracking.correlation_tracker import TrackerPrimitive


# ============================================================
# GEOMETRY
# ============================================================

@dataclass(frozen=True)
class Rectangle:
    """
    Axis-aligned rectangle with inclusive bounds.

    A rectangle with left == right covers one pixel column, so
    width = right - left + 1. Empty rectangles have right < left
    or bottom < top.
    """
    left: int
    top: int
    right: int
    bottom: int

    @classmethod
    def from_xywh(cls, x: float, y: float, w: float, h: float) -> Rectangle:
        """Convert an OpenCV style (x, y, width, height) box."""
        left = int(round(x))
        top = int(round(y))
        return cls(left, top, left + int(round(w)) - 1, top + int(round(h)) - 1)

    @property
    def width(self) -> int:
        return max(0, self.right - self.left + 1)

    @property
    def height(self) -> int:
        return max(0, self.bottom - self.top + 1)

    @property
    def area(self) -> int:
        return self.width * self.height

    @property
    def is_empty(self) -> bool:
        return self.area == 0

    @property
    def center(self) -> Tuple[int, int]:
        return (self.left + self.width // 2, self.top + self.height // 2)

    def contains(self, x: int, y: int) -> bool:
        """True if the point lies within the bounds, edges included."""
        return self.left <= x <= self.right and self.top <= y <= self.bottom

    def intersection(self, other: Rectangle) -> Rectangle:
        return Rectangle(
            max(self.left, other.left),
            max(self.top, other.top),
            min(self.right, other.right),
            min(self.bottom, other.bottom),
        )

    def iou(self, other: Rectangle) -> float:
        """Calculate Intersection over Union with another rectangle."""
        intersection = self.intersection(other).area
        if intersection == 0:
            return 0.0
        union = self.area + other.area - intersection
        return intersection / union if union > 0 else 0.0

    def padded(self, horizontal: int, vertical: int) -> Rectangle:
        """Expand by fixed margins on every side."""
        return Rectangle(
            self.left - horizontal,
            self.top - vertical,
            self.right + horizontal,
            self.bottom + vertical,
        )

    def to_xywh(self) -> Tuple[int, int, int, int]:
        return (self.left, self.top, self.width, self.height)

    def __str__(self) -> str:
        return f"{self.left}, {self.top}, {self.right}, {self.bottom}"


# ============================================================
# IDENTITY
# ============================================================

@dataclass
class Person:
    """
    A known identity.

    local_id is assigned by the identity registry when the person is
    registered and is never reused within a session. A value of 0 means
    the person has not been registered yet.
    """
    bounding_box: Rectangle
    face_image: NDArray[np.uint8] = field(repr=False)
    descriptor: NDArray[np.float32] = field(repr=False)

    local_id: int = 0
    external_id: str = ""

    # Placeholder, never computed
    blur: float = 0.0

    # Consecutive detection passes without confirmation
    non_visible_frames: int = 0

    @property
    def display_name(self) -> str:
        return self.external_id or f"Local ID: {self.local_id}"

    def reset_non_visible_frames(self):
        self.non_visible_frames = 0

    def inc_non_visible_frames(self) -> int:
        self.non_visible_frames += 1
        return self.non_visible_frames


# ============================================================
# TRACKING
# ============================================================

@dataclass
class TrackedEntry:
    """An identity that is actively tracked, with the tracker that owns its region."""
    local_id: int
    tracker: TrackerPrimitive = field(repr=False)
    confidence: float = float("inf")

    @property
    def position(self) -> Rectangle:
        return self.tracker.get_position()


# ============================================================
# RESULT TYPES
# ============================================================

@dataclass
class AssociationResult:
    """Result of matching detected regions against tracked regions."""
    # local_id -> detected region (first detection to claim the id)
    matches: Dict[int, Rectangle] = field(default_factory=dict)

    # Detected regions that matched no tracked region
    novel: List[Rectangle] = field(default_factory=list)

    # Every tracked id that satisfied the match test for some detection
    matched_ids: Set[int] = field(default_factory=set)

    # Tracked ids with no corresponding detection in this pass
    unconfirmed: Set[int] = field(default_factory=set)

    # (accepted_id, ignored_id) pairs where a detection matched more than one tracker
    duplicates: List[Tuple[int, int]] = field(default_factory=list)


@dataclass
class FrameResult:
    """Outcome of processing a single frame."""
    frame_no: int
    detection_ran: bool = False
    faces_detected: int = 0

    low_confidence_ids: List[int] = field(default_factory=list)
    matched_ids: List[int] = field(default_factory=list)
    spawned_ids: List[int] = field(default_factory=list)
    registered_ids: List[int] = field(default_factory=list)
    not_visible_ids: List[int] = field(default_factory=list)
    duplicates: List[Tuple[int, int]] = field(default_factory=list)

    @property
    def evicted_ids(self) -> List[int]:
        return self.low_confidence_ids + self.not_visible_ids
