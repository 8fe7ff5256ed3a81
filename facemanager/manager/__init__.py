"""
Face Manager Module.

Orchestrates tracking, detection, association and identity resolution.
"""

from .face_manager import FaceManager, FaceManagerConfig
