"""
Face Detection and Recognition with OpenCV DNN models.

Uses:
- YuNet (cv2.FaceDetectorYN) for face rectangles and five-point landmarks
- SFace (cv2.FaceRecognizerSF) for aligned face chips and 128-D descriptors

Descriptors are L2-normalized, so the Euclidean distance between two of
them lies in [0, 2].
"""

from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Optional
import numpy as np
from numpy.typing import NDArray
import cv2
from loguru import logger

from facemanager.core.contracts import Rectangle
from facemanager.core.errors import DescriptorComputationFailure, DetectorUnavailable
from .base import FaceDetector


DEFAULT_DETECTION_MODEL = "face_detection_yunet_2023mar.onnx"
DEFAULT_RECOGNITION_MODEL = "face_recognition_sface_2021dec.onnx"

# SFace input size
FACE_CHIP_SIZE = 112

# Jitter perturbation ranges
JITTER_MAX_ANGLE = 5.0
JITTER_SCALE_RANGE = (0.95, 1.05)
JITTER_MAX_SHIFT = 0.02  # fraction of chip size


class OpenCVFaceDetector(FaceDetector):
    """
    Face detector backed by OpenCV's YuNet and SFace ONNX models.

    Landmarks from the most recent detect_faces() call are remembered per
    rectangle so extract_face_image() can align the chip. Rectangles that
    were not produced by the last detection fall back to a plain resized crop.
    """

    def __init__(
        self,
        model_dir: str = "models",
        detection_model: str = DEFAULT_DETECTION_MODEL,
        recognition_model: str = DEFAULT_RECOGNITION_MODEL,
        score_threshold: float = 0.9,
        nms_threshold: float = 0.3,
        top_k: int = 5000,
        jitter_samples: int = 100,
        seed: Optional[int] = None,
    ):
        """
        Initialize face detector.

        Args:
            model_dir: Directory holding the ONNX model files
            detection_model: YuNet model file name
            recognition_model: SFace model file name
            score_threshold: Minimum YuNet face score
            nms_threshold: YuNet non-maximum suppression threshold
            top_k: Maximum candidates kept before NMS
            jitter_samples: Number of perturbed copies averaged in jitter mode
            seed: Seed for the jitter random generator
        """
        super().__init__()
        self.model_dir = Path(model_dir)
        self.detection_model = detection_model
        self.recognition_model = recognition_model
        self.score_threshold = score_threshold
        self.nms_threshold = nms_threshold
        self.top_k = top_k
        self.jitter_samples = jitter_samples
        self._rng = np.random.default_rng(seed)

        # Model state
        self._detector = None
        self._recognizer = None
        self._is_initialized = False

        # rectangle -> YuNet row (box, landmarks, score) from the last detection
        self._last_detections: Dict[Rectangle, NDArray[np.float32]] = {}

    def initialize(self) -> bool:
        """
        Load the detection and recognition models.

        Returns:
            True if both models loaded
        """
        detection_path = self.model_dir / self.detection_model
        recognition_path = self.model_dir / self.recognition_model

        for path in (detection_path, recognition_path):
            if not path.exists():
                logger.error(f"Model file not found: {path}")
                return False

        try:
            self._detector = cv2.FaceDetectorYN.create(
                str(detection_path),
                "",
                (320, 320),
                self.score_threshold,
                self.nms_threshold,
                self.top_k,
            )
            self._recognizer = cv2.FaceRecognizerSF.create(str(recognition_path), "")
        except cv2.error as e:
            logger.error(f"Failed to load face models: {e}")
            return False

        self._is_initialized = True
        logger.info(f"Face detector initialized from {self.model_dir}")
        return True

    @property
    def is_initialized(self) -> bool:
        return self._is_initialized

    def _require_initialized(self):
        if not self._is_initialized:
            raise DetectorUnavailable("Face detector used before initialize()")

    def _detect_faces(self, image: NDArray[np.uint8]) -> List[Rectangle]:
        self._require_initialized()

        h, w = image.shape[:2]
        try:
            self._detector.setInputSize((w, h))
            _, faces = self._detector.detect(image)
        except cv2.error as e:
            raise DetectorUnavailable(f"Face detection failed: {e}") from e

        self._last_detections = {}
        if faces is None:
            return []

        rectangles = []
        for row in faces:
            rect = Rectangle.from_xywh(row[0], row[1], row[2], row[3])
            self._last_detections[rect] = row
            rectangles.append(rect)
        return rectangles

    def _extract_face_image(self, image: NDArray[np.uint8], face_bounds: Rectangle) -> NDArray[np.uint8]:
        self._require_initialized()

        row = self._last_detections.get(face_bounds)
        try:
            if row is not None:
                return self._recognizer.alignCrop(image, row)
            return self._resized_crop(image, face_bounds)
        except cv2.error as e:
            raise DescriptorComputationFailure(f"Face chip extraction failed: {e}") from e

    def _get_face_descriptor(self, face_image: NDArray[np.uint8], use_jitter: bool) -> NDArray[np.float32]:
        self._require_initialized()

        try:
            if not use_jitter:
                return self._feature(face_image)
            descriptors = [self._feature(chip) for chip in self._jitter(face_image)]
        except cv2.error as e:
            raise DescriptorComputationFailure(f"Face descriptor failed: {e}") from e

        return np.mean(descriptors, axis=0).astype(np.float32)

    def _feature(self, face_image: NDArray[np.uint8]) -> NDArray[np.float32]:
        feature = self._recognizer.feature(face_image).flatten().astype(np.float32)
        norm = np.linalg.norm(feature)
        if norm == 0 or not np.isfinite(norm):
            raise DescriptorComputationFailure("Face descriptor has zero or invalid norm")
        return feature / norm

    def _jitter(self, face_image: NDArray[np.uint8]) -> List[NDArray[np.uint8]]:
        """Randomly rotated, scaled, shifted and mirrored copies of a face chip."""
        h, w = face_image.shape[:2]
        crops = []
        for _ in range(self.jitter_samples):
            angle = self._rng.uniform(-JITTER_MAX_ANGLE, JITTER_MAX_ANGLE)
            scale = self._rng.uniform(*JITTER_SCALE_RANGE)
            M = cv2.getRotationMatrix2D((w / 2.0, h / 2.0), angle, scale)
            M[0, 2] += self._rng.uniform(-JITTER_MAX_SHIFT, JITTER_MAX_SHIFT) * w
            M[1, 2] += self._rng.uniform(-JITTER_MAX_SHIFT, JITTER_MAX_SHIFT) * h

            crop = cv2.warpAffine(face_image, M, (w, h), borderMode=cv2.BORDER_REFLECT)
            if self._rng.random() < 0.5:
                crop = cv2.flip(crop, 1)
            crops.append(crop)
        return crops

    @staticmethod
    def _resized_crop(image: NDArray[np.uint8], face_bounds: Rectangle) -> NDArray[np.uint8]:
        h, w = image.shape[:2]
        left = max(0, face_bounds.left)
        top = max(0, face_bounds.top)
        right = min(w - 1, face_bounds.right)
        bottom = min(h - 1, face_bounds.bottom)
        if right < left or bottom < top:
            raise DescriptorComputationFailure(f"Face rectangle outside image: {face_bounds}")

        crop = image[top:bottom + 1, left:right + 1]
        return cv2.resize(crop, (FACE_CHIP_SIZE, FACE_CHIP_SIZE), interpolation=cv2.INTER_AREA)
