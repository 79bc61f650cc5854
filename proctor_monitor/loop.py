"""
Detection Loop - Per-frame face checks while a session is active

Runs as a single asyncio task. Each iteration reads the current frame,
runs the detector, classifies the result and only then schedules the next
iteration, so frame processing never overlaps itself. Camera reads and
synchronous detector calls run in worker threads.
"""

import asyncio
import inspect
import logging
import time
from typing import Any, Awaitable, Callable, List, Optional, Sequence, Tuple, Union

from .detectors.base import LandmarkSet, run_detection
from .detectors.signature import (
    DEFAULT_MISMATCH_THRESHOLD,
    DEFAULT_WEIGHTS,
    FaceSignature,
    compare_signatures,
    extract_signature,
    is_mismatch
)
from .errors import CameraAccessError, FrameDetectionError, ProctorMonitorError
from .events import ViolationEvent, ViolationKind
from .lifecycle import ResourceSession
from .scoring.violation_throttle import ViolationThrottle
from .utils.logging import log_violation

logger = logging.getLogger(__name__)

ViolationCallback = Callable[[ViolationEvent], Union[None, Awaitable[None]]]

MAX_READ_FAILURES = 30


def wall_clock_ms() -> float:
    return time.time() * 1000.0


def format_score(score: float) -> str:
    return f"{score:.3f}"


class DetectionLoop:
    """
    Routes detector output to violation decisions.

    - 0 faces: ``no_face``
    - more than 1 face: ``multiple_faces`` with the count
    - exactly 1 face and a reference: ``face_mismatch`` with the score when
      the dissimilarity exceeds the threshold
    - exactly 1 face and no reference: nothing

    ``max_read_failures`` consecutive failed camera reads end the loop and
    are reported through ``on_fatal`` as a CameraAccessError.
    """

    def __init__(
        self,
        session: ResourceSession,
        throttle: ViolationThrottle,
        on_violation: Optional[ViolationCallback] = None,
        reference: Optional[FaceSignature] = None,
        mismatch_threshold: float = DEFAULT_MISMATCH_THRESHOLD,
        weights: Tuple[float, float, float] = DEFAULT_WEIGHTS,
        frame_interval: float = 1 / 30,
        clock: Callable[[], float] = wall_clock_ms,
        on_fatal: Optional[Callable[[ProctorMonitorError], Any]] = None,
        max_read_failures: int = MAX_READ_FAILURES
    ):
        self.session = session
        self.throttle = throttle
        self.on_violation = on_violation
        self.reference = reference
        self.mismatch_threshold = mismatch_threshold
        self.weights = weights
        self.frame_interval = frame_interval
        self.clock = clock
        self.on_fatal = on_fatal
        self.max_read_failures = max_read_failures
        self.read_failures = 0
        self._last_read_error: Optional[Exception] = None

    async def run(self):
        """Process frames until the session stops being active"""
        session = self.session
        logger.info(f"Detection loop started for session {session.id}")

        while session.is_active:
            frame = await self.read_frame()
            if not session.is_active:
                break

            if frame is None:
                self.read_failures += 1
                if self.read_failures >= self.max_read_failures:
                    self._camera_failed()
                    break
            else:
                self.read_failures = 0
                await self.process_frame(frame)

            await asyncio.sleep(self.frame_interval)

        logger.info(
            f"Detection loop finished for session {session.id} "
            f"({session.frames_processed} frames)"
        )

    async def read_frame(self) -> Optional[Any]:
        """Grab the current frame in a worker thread; read errors yield None"""
        stream = self.session.camera_stream
        if stream is None:
            return None
        try:
            return await asyncio.to_thread(stream.read_frame)
        except Exception as e:
            self._last_read_error = e
            logger.warning(f"Camera read error for session {self.session.id}: {e}")
            return None

    def _camera_failed(self):
        reason = f"Camera stream lost after {self.read_failures} failed reads"
        if self._last_read_error is not None:
            reason += f": {self._last_read_error}"
        error = CameraAccessError(reason)
        logger.error(f"Session {self.session.id}: {reason}")

        if self.on_fatal is not None:
            self.on_fatal(error)

    async def process_frame(self, frame: Any) -> List[ViolationEvent]:
        """
        Run one frame through the detector and violation checks.

        Frames whose timestamp equals the last processed one are skipped.
        Detector failures are logged and swallowed so the loop carries on.

        Returns:
            Violations emitted for this frame
        """
        session = self.session
        if frame.timestamp_ms == session.last_frame_timestamp:
            return []
        session.last_frame_timestamp = frame.timestamp_ms

        sink = session.video_sink
        if sink is not None:
            try:
                sink(frame)
            except Exception as e:
                logger.warning(f"Video sink error: {e}")

        detector = session.model_handle
        if detector is None:
            return []

        try:
            faces = await run_detection(detector, frame)
        except Exception as e:
            error = FrameDetectionError(str(e), frame.timestamp_ms)
            logger.warning(f"Detection error at {error.frame_timestamp}: {error.reason}")
            return []

        # Torn down while the detector call was in flight
        if not session.alive:
            return []

        session.frames_processed += 1
        return await self.evaluate(faces)

    async def evaluate(self, faces: Sequence[LandmarkSet]) -> List[ViolationEvent]:
        """Turn one frame's detections into (throttled) violations"""
        count = len(faces)

        if count == 0:
            event = await self._request(ViolationKind.NO_FACE, {"count": 0})
        elif count > 1:
            event = await self._request(ViolationKind.MULTIPLE_FACES, {"count": count})
        elif self.reference is None:
            # Mismatch checking is disabled without an enrolled face
            return []
        else:
            signature = extract_signature(faces[0])
            if signature is None:
                logger.debug("Face landmarks incomplete, skipping identity check")
                return []
            score = compare_signatures(signature, self.reference, self.weights)
            if not is_mismatch(score, self.mismatch_threshold):
                return []
            event = await self._request(ViolationKind.FACE_MISMATCH, {"score": format_score(score)})

        return [event] if event is not None else []

    async def _request(self, kind: ViolationKind, payload: dict) -> Optional[ViolationEvent]:
        now = self.clock()
        if not self.throttle.should_emit(kind, now):
            return None

        event = ViolationEvent(kind=kind, payload=payload, timestamp=now)
        log_violation(self.session.id, kind.value, payload)

        if self.on_violation is not None:
            try:
                result = self.on_violation(event)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.exception(f"Violation handler raised: {e}")

        return event
