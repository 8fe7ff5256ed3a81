"""
Association of detected face regions with tracked regions.

A detection and a tracked region match when each one's centre lies
inside the other. This is stricter and cheaper than IoU matching.
"""

from __future__ import annotations

from typing import Dict, List, Mapping, Sequence
from loguru import logger

from facemanager.core.contracts import AssociationResult, Rectangle


def mutual_centroid_match(detected: Rectangle, tracked: Rectangle) -> bool:
    """True if the centre of each rectangle lies within the other."""
    dx, dy = detected.center
    tx, ty = tracked.center
    return tracked.contains(dx, dy) and detected.contains(tx, ty)


def associate(
    detections: Sequence[Rectangle],
    tracked: Mapping[int, Rectangle],
) -> AssociationResult:
    """
    Match detected regions to tracked regions.

    Every detection is tested against every tracked region, in the
    iteration order of `tracked`. The first tracked region that matches a
    detection is accepted. Later matches for the same detection are
    recorded as duplicates. They still count as matched but do not
    replace the first match. A detection that matches nothing is novel.

    Args:
        detections: Regions reported by the face detector
        tracked: local_id -> current tracked region, in stable order

    Returns:
        AssociationResult with matches, novel detections and unconfirmed ids
    """
    result = AssociationResult()

    for detected in detections:
        logger.trace(f"Face rectangle (from detector): {detected}")

        first_match = None
        for local_id, region in tracked.items():
            if not mutual_centroid_match(detected, region):
                continue

            if first_match is None:
                logger.debug(f"Detected face and tracked face match. Local ID = {local_id}")
                first_match = local_id
                result.matches.setdefault(local_id, detected)
            else:
                logger.warning(f"Duplicate tracker/face match Local IDs = {first_match} & {local_id}")
                result.duplicates.append((first_match, local_id))
            result.matched_ids.add(local_id)

        if first_match is None:
            logger.debug(f"New face detected at {detected}")
            result.novel.append(detected)

    result.unconfirmed = set(tracked) - result.matched_ids
    return result
