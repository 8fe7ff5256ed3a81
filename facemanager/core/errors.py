"""
Error taxonomy for the face manager.

Only enrollment failures and detection-pass failures reach callers.
Tracker failures are absorbed by evicting the tracker.
"""

from __future__ import annotations


class FaceManagerError(Exception):
    """Base class for all face manager errors."""


class AmbiguousOrMissingFaceError(FaceManagerError):
    """Enrollment image did not contain exactly one face."""

    def __init__(self, external_id: str, face_count: int):
        self.external_id = external_id
        self.face_count = face_count
        super().__init__(
            f"{face_count} faces detected for '{external_id}', needed 1"
        )


class TrackerFailure(FaceManagerError):
    """A tracker could not start or update."""


class DetectorUnavailable(FaceManagerError):
    """The face detector could not be loaded or failed to run."""


class DescriptorComputationFailure(FaceManagerError):
    """A face chip or face descriptor could not be computed."""
