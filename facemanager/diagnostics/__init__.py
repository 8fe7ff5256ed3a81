"""
Diagnostics Module.

Frame-sequenced messages and intermediate image dumps.
"""

from .frame_logger import FrameLogger
