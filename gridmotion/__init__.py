"""
Grid-based persistent motion detection.

A small GStreamer/NumPy application for:
- Polling snapshots from video streams at a fixed interval
- Detecting motion by frame differencing on a downscaled grayscale buffer
- Suppressing transient noise with per-cell temporal persistence
"""

__version__ = "1.0.0"
