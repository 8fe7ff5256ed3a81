"""
Core data types and errors shared by every face manager component.

Per-frame processing order (NEVER REORDER):
1. Update every active tracker, evict low-confidence trackers
2. On detection frames only: detect faces
3. Associate detections with tracked regions
4. Resolve novel faces against known identities, register new ones
5. Spawn trackers for novel faces, retire unconfirmed trackers
"""

from .contracts import (
    Rectangle,
    Person,
    TrackedEntry,
    AssociationResult,
    FrameResult,
)
from .errors import (
    FaceManagerError,
    AmbiguousOrMissingFaceError,
    TrackerFailure,
    DetectorUnavailable,
    DescriptorComputationFailure,
)
