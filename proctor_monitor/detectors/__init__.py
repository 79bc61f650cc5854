"""Face detection and identity signature modules"""

from .base import FaceLandmarkDetector, LandmarkSet, as_landmark_set, run_detection
from .face_landmarker import MediaPipeFaceDetector
from .signature import (
    FaceSignature,
    LANDMARK_INDICES,
    compare_signatures,
    extract_signature,
    is_mismatch
)

__all__ = [
    "FaceLandmarkDetector",
    "LandmarkSet",
    "as_landmark_set",
    "run_detection",
    "MediaPipeFaceDetector",
    "FaceSignature",
    "LANDMARK_INDICES",
    "compare_signatures",
    "extract_signature",
    "is_mismatch"
]
