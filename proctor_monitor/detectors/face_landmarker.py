"""
Face Landmarker - MediaPipe FaceLandmarker adapter

Wraps a FaceLandmarker task in VIDEO running mode and exposes it through the
FaceLandmarkDetector contract: one frame in, a list of (N, 3) arrays out.
"""

import logging
import threading
from typing import Any, List, Optional

import cv2
import numpy as np

from ..errors import ModelLoadError
from .base import LandmarkSet

logger = logging.getLogger(__name__)


class MediaPipeFaceDetector:
    """
    Detects faces and their 478 mesh landmarks with MediaPipe.

    The landmarker is created eagerly in ``__init__`` (this is the
    expensive, blocking model load) and released by ``close``.
    """

    def __init__(
        self,
        model_path: str,
        delegate: str = "GPU",
        max_faces: int = 2,
        min_detection_confidence: float = 0.5,
        min_presence_confidence: float = 0.5,
        min_tracking_confidence: float = 0.5
    ):
        """
        Initialize the landmarker.

        Args:
            model_path: Local path to face_landmarker.task
            delegate: "GPU" or "CPU"; GPU falls back to CPU on failure
            max_faces: Maximum number of faces to report
            min_detection_confidence: Face detection score threshold
            min_presence_confidence: Face presence score threshold
            min_tracking_confidence: Tracking score threshold

        Raises:
            ModelLoadError: MediaPipe missing or the model failed to load
        """
        self.model_path = model_path
        self.max_faces = max_faces
        self._last_timestamp_ms = -1
        self._closed = False
        self._lock = threading.Lock()

        try:
            import mediapipe as mp
            from mediapipe.tasks import python as mp_python
            from mediapipe.tasks.python import vision
        except ImportError as e:
            raise ModelLoadError(
                "MediaPipe not installed. Run: pip install mediapipe"
            ) from e

        self._mp = mp

        def build(delegate_name: str):
            base_options = mp_python.BaseOptions(
                model_asset_path=model_path,
                delegate=getattr(mp_python.BaseOptions.Delegate, delegate_name)
            )
            options = vision.FaceLandmarkerOptions(
                base_options=base_options,
                running_mode=vision.RunningMode.VIDEO,
                num_faces=max_faces,
                min_face_detection_confidence=min_detection_confidence,
                min_face_presence_confidence=min_presence_confidence,
                min_tracking_confidence=min_tracking_confidence,
            )
            return vision.FaceLandmarker.create_from_options(options)

        delegate = delegate.upper()
        try:
            self._landmarker = build(delegate)
        except Exception as e:
            if delegate != "GPU":
                raise ModelLoadError(f"Failed to load face landmark model: {e}") from e
            logger.warning(f"GPU delegate unavailable ({e}), retrying on CPU")
            try:
                self._landmarker = build("CPU")
                delegate = "CPU"
            except Exception as cpu_error:
                raise ModelLoadError(
                    f"Failed to load face landmark model: {cpu_error}"
                ) from cpu_error

        self.delegate = delegate
        logger.info(f"MediaPipe FaceLandmarker loaded ({delegate}, max_faces={max_faces})")

    def detect(self, frame: Any) -> List[LandmarkSet]:
        """
        Detect faces in a frame.

        Args:
            frame: Frame with ``image`` (BGR) and ``timestamp_ms``

        Returns:
            One read-only (N, 3) array per detected face
        """
        image = frame.image
        if image is None or image.size == 0:
            return []

        rgb = cv2.cvtColor(image, cv2.COLOR_BGR2RGB)
        mp_image = self._mp.Image(image_format=self._mp.ImageFormat.SRGB, data=rgb)

        with self._lock:
            if self._closed:
                raise RuntimeError("Face landmarker is closed")

            # VIDEO mode rejects non-increasing timestamps
            timestamp_ms = max(int(frame.timestamp_ms), self._last_timestamp_ms + 1)
            self._last_timestamp_ms = timestamp_ms
            result = self._landmarker.detect_for_video(mp_image, timestamp_ms)

        faces: List[LandmarkSet] = []
        for face_landmarks in result.face_landmarks or []:
            points = np.array(
                [[lm.x, lm.y, lm.z] for lm in face_landmarks],
                dtype=np.float64
            )
            points.flags.writeable = False
            faces.append(points)
        return faces

    def close(self) -> None:
        """Release the landmarker (safe to call more than once; waits for an in-flight detect)"""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            landmarker: Optional[Any] = getattr(self, "_landmarker", None)
            if landmarker is not None:
                landmarker.close()
                logger.info("MediaPipe FaceLandmarker closed")
