"""
Face Detection Module.

Responsibilities:
- Face rectangles from frames
- Aligned face chips
- Face descriptors, optionally jittered
"""

from .base import FaceDetector, FaceCounters
from .opencv_detector import OpenCVFaceDetector
