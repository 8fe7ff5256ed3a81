"""
Identity Registry.

Owns every Person known in the session, keyed by a local ID that is
assigned on registration and never reused.
"""

from __future__ import annotations

from typing import Dict, Iterator, List, Optional
import numpy as np
from numpy.typing import NDArray
from loguru import logger

from facemanager.core.contracts import Person, Rectangle


class IdentityRegistry:
    """
    Table of known people.

    Lookups that can match several people scan in registration order
    and return the first match (descriptor) or all matches (region,
    external ID). There is no nearest-neighbour search.
    """

    def __init__(
        self,
        descriptor_threshold: float = 0.6,
        region_threshold: float = 0.5,
    ):
        """
        Initialize identity registry.

        Args:
            descriptor_threshold: Descriptors closer than this (Euclidean) belong to the same person
            region_threshold: Rectangles with IoU above this are the same region
        """
        self.descriptor_threshold = descriptor_threshold
        self.region_threshold = region_threshold

        self._people: Dict[int, Person] = {}
        self._last_local_id: int = 0

    def register(self, person: Person) -> int:
        """
        Assign the next local ID to person, store it and return the ID.

        Raises:
            ValueError: person already has a local ID
        """
        if person.local_id:
            raise ValueError(f"Person already registered with local ID {person.local_id}")

        self._last_local_id += 1
        person.local_id = self._last_local_id
        self._people[person.local_id] = person

        logger.info(
            f"Registered person {person.local_id}"
            + (f" ({person.external_id})" if person.external_id else "")
        )
        return person.local_id

    def is_same_person(self, descriptor1: NDArray[np.float32], descriptor2: NDArray[np.float32]) -> bool:
        distance = float(np.linalg.norm(np.asarray(descriptor1) - np.asarray(descriptor2)))
        return distance < self.descriptor_threshold

    def is_same_region(self, box1: Rectangle, box2: Rectangle) -> bool:
        return box1.iou(box2) > self.region_threshold

    def find_by_descriptor(self, descriptor: NDArray[np.float32]) -> Optional[Person]:
        """First registered person whose descriptor is within the threshold, or None."""
        for person in self._people.values():
            if self.is_same_person(descriptor, person.descriptor):
                return person
        return None

    def find_by_region(self, box: Rectangle) -> List[Person]:
        """All people whose last known bounding box overlaps box above the IoU threshold."""
        return [p for p in self._people.values() if self.is_same_region(box, p.bounding_box)]

    def find_by_external_id(self, external_id: str) -> List[Person]:
        """External IDs are not unique, so several people may be returned."""
        return [p for p in self._people.values() if p.external_id == external_id]

    def find_by_id(self, local_id: int) -> Optional[Person]:
        return self._people.get(local_id)

    def __contains__(self, local_id: int) -> bool:
        return local_id in self._people

    def __iter__(self) -> Iterator[Person]:
        return iter(self._people.values())

    def __len__(self) -> int:
        return len(self._people)
