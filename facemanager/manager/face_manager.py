"""
Face Manager.

Decides, frame by frame, which tracked faces persist, which detected
faces belong to known people and which are new.

Per-frame processing order (NEVER REORDER):
1. Update every tracker and evict those below minimum confidence
2. On detection frames only (frame_no % detection_interval == 0):
   a. Detect faces
   b. Associate detections with tracked regions
   c. Describe every novel face
   d. Move matched people to their detected regions
   e. Resolve novel faces to known people or register new ones,
      and start a tracker on the padded face region
   f. Evict trackers that no detection confirmed
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, List, Optional, Set, Tuple
import numpy as np
from numpy.typing import NDArray
import cv2

from facemanager.core.contracts import FrameResult, Person, Rectangle
from facemanager.core.errors import (
    AmbiguousOrMissingFaceError,
    DescriptorComputationFailure,
    DetectorUnavailable,
    FaceManagerError,
)
from facemanager.detection.base import FaceDetector
from facemanager.diagnostics.frame_logger import FrameLogger
from facemanager.identity.registry import IdentityRegistry
from facemanager.tracking.association import associate
from facemanager.tracking.correlation_tracker import TrackerPrimitive
from facemanager.tracking.tracker_pool import TrackerPool


@dataclass
class FaceManagerConfig:
    """Configuration for the face manager."""
    # Maximum difference between two face descriptors to treat as same person
    descriptor_threshold: float = 0.6

    # Minimum IoU to treat bounding boxes as the same region
    region_threshold: float = 0.5

    # Trackers below this confidence are evicted
    min_tracker_confidence: float = 7.0

    # Margins around a face when starting a new tracker
    tracker_horizontal_margin: int = 10
    tracker_vertical_margin: int = 20

    # Number of frames between each run of the face detector. 1 means every frame
    detection_interval: int = 5

    # Jitter descriptors of novel faces during tracking (enrollment always jitters)
    use_jitter: bool = False


class FaceManager:
    """
    Tracks faces across a video stream and resolves them to identities.

    Guarantees:
    - Local IDs start at 1, increase strictly and are never reused
    - Every tracked local ID belongs to a registered person
    - At most one tracker per local ID
    - Known people survive reset()

    Not thread-safe: new_frame() and enroll() must be called from one thread.
    """

    def __init__(
        self,
        face_detector: FaceDetector,
        config: Optional[FaceManagerConfig] = None,
        tracker_factory: Optional[Callable[[], TrackerPrimitive]] = None,
        diagnostics: Optional[FrameLogger] = None,
    ):
        """
        Initialize face manager.

        Args:
            face_detector: Detects, aligns and describes faces
            config: Face manager configuration
            tracker_factory: Creates single-object trackers, CorrelationTracker by default
            diagnostics: Frame-sequenced diagnostic logger
        """
        self.config = config or FaceManagerConfig()
        if self.config.detection_interval < 1:
            raise ValueError(f"detection_interval must be >= 1, got {self.config.detection_interval}")

        self.face_detector = face_detector
        self.diagnostics = diagnostics or FrameLogger()

        self._registry = IdentityRegistry(
            descriptor_threshold=self.config.descriptor_threshold,
            region_threshold=self.config.region_threshold,
        )
        self._pool = TrackerPool(
            tracker_factory=tracker_factory,
            min_confidence=self.config.min_tracker_confidence,
        )

        self._last_frame: int = 0

        self.diagnostics.info("Face manager initialized")

    # ============================================================
    # FRAME PROCESSING
    # ============================================================

    def new_frame(self, frame_no: int, image: NDArray[np.uint8]) -> FrameResult:
        """
        Update knowledge of the scene from a new frame.

        Args:
            frame_no: Frame number, used only to decide whether to run detection
            image: BGR frame

        Returns:
            FrameResult describing what changed

        Raises:
            DetectorUnavailable: face detection failed; tracker updates were applied,
                nothing else changed
            DescriptorComputationFailure: a novel face could not be described;
                tracker updates were applied, nothing else changed
        """
        result = FrameResult(frame_no=frame_no)
        self._last_frame = frame_no
        self.diagnostics.set_frame(frame_no)

        # 1. Update the trackers
        updates, low_confidence = self._pool.update(image)
        for local_id, (position, confidence) in updates.items():
            person = self._registry.find_by_id(local_id)
            if person is None:
                self.diagnostics.error(f"Tracker for {local_id} has no registered person")
                continue
            person.bounding_box = position
        result.low_confidence_ids = low_confidence

        if frame_no % self.config.detection_interval != 0:
            return result

        # 2a. Detect faces
        result.detection_ran = True
        faces = self._detect(image)
        result.faces_detected = len(faces)
        self.diagnostics.debug(
            f"Number of faces detected: {len(faces)}, current visible faces: {len(self._pool)}"
        )

        # 2b. Associate
        association = associate(faces, self._pool.positions())
        result.duplicates = association.duplicates

        # 2c. Describe novel faces before changing any state
        novel: List[Tuple[Rectangle, NDArray[np.uint8], NDArray[np.float32]]] = []
        for face_rect in association.novel:
            face_image, descriptor = self._describe(image, face_rect, self.config.use_jitter)
            novel.append((face_rect, face_image, descriptor))

        confirmed: Set[int] = set(association.matched_ids)

        # 2d. Detector regions override tracker estimates
        for local_id, face_rect in association.matches.items():
            person = self._registry.find_by_id(local_id)
            if person is not None:
                person.bounding_box = face_rect
        result.matched_ids = sorted(association.matched_ids)

        # 2e. Known or new person, then start tracking
        for face_rect, face_image, descriptor in novel:
            local_id = self._resolve(face_rect, face_image, descriptor, result)
            confirmed.add(local_id)

            padded = face_rect.padded(
                self.config.tracker_horizontal_margin,
                self.config.tracker_vertical_margin,
            )
            if self._pool.spawn(local_id, image, padded) is not None:
                result.spawned_ids.append(local_id)

        # 2f. Trackers no detection confirmed
        for local_id in self._pool.active_ids_ordered():
            if local_id not in confirmed:
                self._person_not_visible(local_id)
                result.not_visible_ids.append(local_id)
        if result.not_visible_ids:
            self.diagnostics.debug(
                f"Found {len(result.not_visible_ids)} local IDs that are tracked but not detected: "
                + ",".join(str(i) for i in result.not_visible_ids)
            )

        for person in self._registry:
            if person.local_id in confirmed:
                person.reset_non_visible_frames()
            else:
                person.inc_non_visible_frames()

        return result

    def _resolve(
        self,
        face_rect: Rectangle,
        face_image: NDArray[np.uint8],
        descriptor: NDArray[np.float32],
        result: FrameResult,
    ) -> int:
        """Local ID for a novel face, registering a new person if nobody matches."""
        known = self._registry.find_by_descriptor(descriptor)
        if known is not None:
            self.diagnostics.debug(f"Recognised person {known.local_id} at {face_rect}")
            known.bounding_box = face_rect
            return known.local_id

        person = Person(bounding_box=face_rect, face_image=face_image, descriptor=descriptor)
        local_id = self._registry.register(person)
        result.registered_ids.append(local_id)
        self.diagnostics.debug(f"New person {local_id} at {face_rect}")
        return local_id

    def _person_not_visible(self, local_id: int):
        self._pool.evict(local_id)

    def _detect(self, image: NDArray[np.uint8]) -> List[Rectangle]:
        try:
            return self.face_detector.detect_faces(image)
        except FaceManagerError:
            raise
        except Exception as e:
            raise DetectorUnavailable(f"Face detection failed: {e}") from e

    def _describe(
        self,
        image: NDArray[np.uint8],
        face_rect: Rectangle,
        use_jitter: bool,
    ) -> Tuple[NDArray[np.uint8], NDArray[np.float32]]:
        """Aligned face chip and descriptor for a face rectangle."""
        try:
            face_image = self.face_detector.extract_face_image(image, face_rect)
            self.diagnostics.image("face-chip", face_image)
            descriptor = self.face_detector.get_face_descriptor(face_image, use_jitter)
        except FaceManagerError:
            raise
        except Exception as e:
            raise DescriptorComputationFailure(f"Could not describe face at {face_rect}: {e}") from e
        return face_image, np.asarray(descriptor, dtype=np.float32)

    # ============================================================
    # ENROLLMENT
    # ============================================================

    def enroll(self, external_id: str, image: NDArray[np.uint8]) -> Person:
        """
        Add a known person from a reference image.

        The image must contain exactly one face. The descriptor is jittered
        for robustness.

        Raises:
            AmbiguousOrMissingFaceError: zero or several faces in image
        """
        self.diagnostics.debug(f"Add person {external_id}")

        faces = self._detect(image)
        if len(faces) != 1:
            self.diagnostics.error(f"{len(faces)} faces detected for {external_id}, needed 1")
            raise AmbiguousOrMissingFaceError(external_id, len(faces))

        face_box = faces[0]
        face_image, descriptor = self._describe(image, face_box, use_jitter=True)

        person = Person(
            bounding_box=face_box,
            face_image=face_image,
            descriptor=descriptor,
            external_id=external_id,
        )
        self._registry.register(person)
        return person

    def enroll_from_file(self, external_id: str, face_filename: str) -> Person:
        """Load a reference image from disk and enroll it."""
        self.diagnostics.debug(f"Add person {external_id} with file {face_filename}")
        image = cv2.imread(str(face_filename), cv2.IMREAD_COLOR)
        if image is None:
            raise FileNotFoundError(f"Could not read face image: {face_filename}")
        return self.enroll(external_id, image)

    # ============================================================
    # QUERIES
    # ============================================================

    def visible_people(self) -> List[Person]:
        """One person per active tracker, in ascending local ID order."""
        people = []
        for local_id in self._pool.active_ids_ordered():
            person = self._registry.find_by_id(local_id)
            if person is not None:
                people.append(person)
        return people

    def visible_count(self) -> int:
        return len(self._pool)

    def known_count(self) -> int:
        return len(self._registry)

    def find_by_descriptor(self, descriptor: NDArray[np.float32]) -> Optional[Person]:
        return self._registry.find_by_descriptor(descriptor)

    def find_by_region(self, box: Rectangle) -> List[Person]:
        return self._registry.find_by_region(box)

    def find_by_external_id(self, external_id: str) -> List[Person]:
        return self._registry.find_by_external_id(external_id)

    def find_by_id(self, local_id: int) -> Optional[Person]:
        return self._registry.find_by_id(local_id)

    @property
    def detection_interval(self) -> int:
        return self.config.detection_interval

    @detection_interval.setter
    def detection_interval(self, interval: int):
        if interval < 1:
            raise ValueError(f"detection_interval must be >= 1, got {interval}")
        self.config.detection_interval = interval

    @property
    def last_frame(self) -> int:
        return self._last_frame

    def reset(self):
        """Clear tracking state. Known people are kept."""
        self._pool.clear()
        self._last_frame = 0
        self.diagnostics.info("Face manager reset")
