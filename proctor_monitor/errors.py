"""
Proctor Monitor Errors

Fatal errors (ModelLoadError, CameraAccessError) stop the session and are
reported once on the error channel. FrameDetectionError is per-frame and only
logged. NoFaceDetected is raised by capture mode so the UI can ask for a retry.
"""

from typing import Optional


class ProctorMonitorError(Exception):
    """Base class for all monitor errors"""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class ModelLoadError(ProctorMonitorError):
    """The face landmark model session could not be created"""


class CameraAccessError(ProctorMonitorError):
    """The camera was denied or is unavailable"""


class FrameDetectionError(ProctorMonitorError):
    """The detector failed on a single frame"""

    def __init__(self, reason: str, frame_timestamp: Optional[float] = None):
        super().__init__(reason)
        self.frame_timestamp = frame_timestamp


class NoFaceDetected(ProctorMonitorError):
    """Capture found zero or several faces instead of exactly one"""

    def __init__(self, face_count: int):
        if face_count == 0:
            reason = "No face detected. Look at the camera and try again."
        else:
            reason = f"{face_count} faces detected. Only the candidate should be in view."
        super().__init__(reason)
        self.face_count = face_count
