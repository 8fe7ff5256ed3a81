"""
Face Manager

Tracks faces through a video stream and keeps a stable identity for
each person: a local ID assigned on first sighting, and optionally an
external name from enrollment.

Expensive face detection runs only every few frames. In between, cheap
correlation trackers follow each face. Every detection pass confirms,
corrects or drops the trackers and recognises returning people by
their face descriptor.
"""

__version__ = "0.1.0"
