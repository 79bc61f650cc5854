"""
Capture Mode - One-shot reference capture during enrollment
"""

import logging
from typing import Any, Optional

from .detectors.base import FaceLandmarkDetector, LandmarkSet, run_detection
from .errors import FrameDetectionError, NoFaceDetected

logger = logging.getLogger(__name__)


async def capture_reference(detector: FaceLandmarkDetector, frame: Optional[Any]) -> LandmarkSet:
    """
    Run exactly one detection on the current frame.

    Args:
        detector: Loaded face landmark detector
        frame: Current camera frame

    Returns:
        Landmarks of the single face in view

    Raises:
        NoFaceDetected: Zero or several faces in view
        FrameDetectionError: No frame available or the detector failed
    """
    if frame is None:
        raise FrameDetectionError("No camera frame available for capture")

    try:
        faces = await run_detection(detector, frame)
    except Exception as e:
        raise FrameDetectionError(f"Capture detection failed: {e}", frame.timestamp_ms) from e

    if len(faces) != 1:
        logger.info(f"Capture rejected: {len(faces)} faces in view")
        raise NoFaceDetected(len(faces))

    return faces[0]
