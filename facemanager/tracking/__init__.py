"""
Face Tracking Module.

Responsibilities:
- One correlation tracker per tracked identity
- Confidence-based tracker eviction
- Mutual-centroid association of detections with trackers
"""

from .correlation_tracker import TrackerPrimitive, CorrelationTracker
from .tracker_pool import TrackerPool
from .association import associate, mutual_centroid_match
