"""
Proctor Monitor

Watches the candidate's camera during a timed exam and reports:
- Face absence
- Multiple-person presence
- Identity mismatch against an enrolled reference face

Also provides a one-shot capture mode used during enrollment.
"""

from .errors import (
    CameraAccessError,
    FrameDetectionError,
    ModelLoadError,
    NoFaceDetected,
    ProctorMonitorError
)
from .events import ViolationEvent, ViolationKind
from .lifecycle import ResourceLifecycleManager, SessionState
from .monitor import ProctorMonitor

__all__ = [
    "ProctorMonitor",
    "ResourceLifecycleManager",
    "SessionState",
    "ViolationEvent",
    "ViolationKind",
    "ProctorMonitorError",
    "ModelLoadError",
    "CameraAccessError",
    "FrameDetectionError",
    "NoFaceDetected"
]
