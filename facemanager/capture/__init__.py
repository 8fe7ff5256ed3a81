"""
Video Capture Module.

Responsibilities:
- Reading frames from video files or cameras
- Motion gating before face processing
"""

from .video_capture import VideoSource, WARM_UP_FRAMES
from .motion_detector import (
    MotionDetector,
    ConstantMotionDetector,
    ContourMotionDetector,
    MeanSquaredErrorMotionDetector,
    FrameDifferenceMotionDetector,
    MotionMethod,
    motion_detector_factory,
    resize_to_width,
)
