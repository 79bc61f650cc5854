"""
Camera Stream - OpenCV capture wrapper owned by the lifecycle manager
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Optional

import cv2
import numpy as np

from .errors import CameraAccessError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Frame:
    """A captured video frame"""
    image: np.ndarray  # BGR
    timestamp_ms: float


class CameraStream:
    """
    Live camera stream with an explicit enabled flag.

    ``stop`` disables the stream before releasing the device so no further
    frames are handed out while the release is in progress, and can be
    called any number of times. ``read_frame`` blocks until the device
    delivers a frame, so callers run it in a worker thread; ``stop`` waits
    for an in-flight read before releasing.
    """

    def __init__(self, capture: "cv2.VideoCapture", label: str = "camera"):
        self._capture = capture
        self.label = label
        self.enabled = True
        self._stopped = False
        self._lock = threading.Lock()

    @property
    def is_live(self) -> bool:
        return not self._stopped and self._capture is not None and self._capture.isOpened()

    def read_frame(self) -> Optional[Frame]:
        """
        Grab the current frame.

        The timestamp comes from the capture backend when it reports one
        (video files), otherwise from the monotonic clock.

        Returns:
            Frame, or None if the stream is disabled or the read failed
        """
        with self._lock:
            if not self.enabled or self._stopped:
                return None

            ok, image = self._capture.read()
            if not ok or image is None:
                return None

            position_ms = self._capture.get(cv2.CAP_PROP_POS_MSEC)

        timestamp_ms = position_ms if position_ms and position_ms > 0 else time.monotonic() * 1000.0
        return Frame(image=image, timestamp_ms=timestamp_ms)

    def stop(self) -> None:
        """Disable and release the device"""
        self.enabled = False
        with self._lock:
            if self._stopped:
                return
            self._stopped = True
            try:
                self._capture.release()
            finally:
                logger.info(f"Camera stream stopped: {self.label}")


def open_camera(
    index: int = 0,
    width: Optional[int] = None,
    height: Optional[int] = None,
    fps: Optional[int] = None
) -> CameraStream:
    """
    Open a camera (blocking).

    Args:
        index: OpenCV device index
        width: Requested frame width
        height: Requested frame height
        fps: Requested frame rate

    Raises:
        CameraAccessError: Permission denied or device unavailable
    """
    try:
        capture = cv2.VideoCapture(index)
    except Exception as e:
        raise CameraAccessError(f"Camera {index} could not be opened: {e}") from e

    if not capture.isOpened():
        capture.release()
        raise CameraAccessError(
            f"Camera access denied or camera {index} unavailable. "
            f"Please allow camera access to continue."
        )

    if width:
        capture.set(cv2.CAP_PROP_FRAME_WIDTH, width)
    if height:
        capture.set(cv2.CAP_PROP_FRAME_HEIGHT, height)
    if fps:
        capture.set(cv2.CAP_PROP_FPS, fps)

    logger.info(f"Camera {index} opened")
    return CameraStream(capture, label=f"camera:{index}")
