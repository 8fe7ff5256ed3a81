"""
Tracker Pool with one tracker per tracked identity.

Guarantees:
- At most one tracked entry per local ID
- Evicted trackers are released immediately
- Tracker failures never propagate, the tracker is evicted instead
"""

from __future__ import annotations

import math
from typing import Callable, Dict, List, Optional, Set, Tuple
import numpy as np
from numpy.typing import NDArray
from loguru import logger

from facemanager.core.contracts import Rectangle, TrackedEntry
from .correlation_tracker import CorrelationTracker, TrackerPrimitive


class TrackerPool:
    """
    Owns the active single-object trackers, keyed by local ID.

    Iteration order is ascending local ID, which is the stable order
    used when associating detections with tracked regions.
    """

    def __init__(
        self,
        tracker_factory: Optional[Callable[[], TrackerPrimitive]] = None,
        min_confidence: float = 7.0,
    ):
        """
        Initialize tracker pool.

        Args:
            tracker_factory: Creates a new, unstarted tracker
            min_confidence: Entries with confidence below this are evicted on update
        """
        self.tracker_factory = tracker_factory or CorrelationTracker
        self.min_confidence = min_confidence

        # Active entries
        self._entries: Dict[int, TrackedEntry] = {}

    def update(self, image: NDArray[np.uint8]) -> Tuple[Dict[int, Tuple[Rectangle, float]], List[int]]:
        """
        Advance every tracker by one frame and evict those below confidence.

        Args:
            image: Current frame

        Returns:
            Tuple of ({local_id: (position, confidence)} for every entry, evicted local IDs)
        """
        updates: Dict[int, Tuple[Rectangle, float]] = {}
        low_confidence: List[int] = []

        for local_id in self.active_ids_ordered():
            entry = self._entries[local_id]
            try:
                confidence = float(entry.tracker.update(image))
            except Exception as e:
                # Any primitive failure counts as a lost target
                logger.warning(f"Tracker for {local_id} failed: {e}")
                confidence = -math.inf

            if math.isnan(confidence):
                logger.warning(f"Tracker for {local_id} reported non-numeric confidence")
                confidence = -math.inf

            entry.confidence = confidence
            updates[local_id] = (entry.position, confidence)
            logger.trace(f"Tracker for {local_id} has confidence {confidence:.3f}")

            if confidence < self.min_confidence:
                low_confidence.append(local_id)

        if low_confidence:
            logger.debug(
                f"{len(low_confidence)} trackers with confidence less than "
                f"{self.min_confidence} to dispose of"
            )
            for local_id in low_confidence:
                self.evict(local_id)

        return updates, low_confidence

    def spawn(self, local_id: int, image: NDArray[np.uint8], rectangle: Rectangle) -> Optional[TrackedEntry]:
        """
        Start a new tracker for local_id, replacing any existing one.

        Returns:
            The new entry, or None if the tracker could not be started
        """
        tracker = self.tracker_factory()
        try:
            tracker.start_track(image, rectangle)
        except Exception as e:
            logger.warning(f"Could not start tracker for {local_id} at {rectangle}: {e}")
            self.evict(local_id)
            return None

        entry = TrackedEntry(local_id=local_id, tracker=tracker)
        if local_id in self._entries:
            logger.debug(f"Replacing tracker for {local_id}")
        self._entries[local_id] = entry
        logger.debug(f"New tracker for {local_id} at {rectangle}")
        return entry

    def evict(self, local_id: int) -> bool:
        """Remove and release the tracker for local_id. Returns True if one existed."""
        entry = self._entries.pop(local_id, None)
        if entry is None:
            return False
        logger.debug(f"Tracker for {local_id} evicted")
        return True

    def clear(self):
        """Evict all trackers."""
        for local_id in list(self._entries):
            self.evict(local_id)

    def get(self, local_id: int) -> Optional[TrackedEntry]:
        return self._entries.get(local_id)

    def active_ids(self) -> Set[int]:
        return set(self._entries)

    def active_ids_ordered(self) -> List[int]:
        return sorted(self._entries)

    def positions(self) -> Dict[int, Rectangle]:
        """Current region of every entry, in ascending local ID order."""
        return {local_id: self._entries[local_id].position for local_id in self.active_ids_ordered()}

    def __contains__(self, local_id: int) -> bool:
        return local_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)
