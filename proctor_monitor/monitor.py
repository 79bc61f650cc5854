"""
Proctor Monitor - Camera proctoring for a single exam attempt

Wires the lifecycle manager, detection loop, throttle and capture mode
together behind the interface the exam UI uses: an ``active`` switch, a
capture-mode flag, an optional reference face and three callbacks.
"""

import asyncio
import inspect
import logging
import uuid
from functools import partial
from typing import Any, Awaitable, Callable, Optional, Union

from .camera import open_camera
from .capture import capture_reference
from .config import Settings, settings as default_settings
from .detectors.base import LandmarkSet, as_landmark_set
from .detectors.signature import FaceSignature, extract_signature
from .errors import FrameDetectionError, ProctorMonitorError
from .events import ViolationEvent, ViolationKind
from .lifecycle import TERMINAL_STATES, ResourceLifecycleManager, ResourceSession, SessionState
from .loop import DetectionLoop, wall_clock_ms
from .models.model_loader import load_face_landmarker
from .scoring.violation_throttle import ViolationThrottle
from .utils.logging import log_session_end, log_session_start

logger = logging.getLogger(__name__)

MaybeAwaitable = Union[None, Awaitable[None]]


class ProctorMonitor:
    """
    Monitors the candidate's camera during an exam.

    In monitoring mode a detection loop reports ``no_face``,
    ``multiple_faces`` and ``face_mismatch`` violations. In capture mode no
    loop runs; ``capture()`` grabs one reference face instead.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        on_violation: Optional[Callable[[ViolationKind, dict], MaybeAwaitable]] = None,
        on_capture: Optional[Callable[[LandmarkSet], MaybeAwaitable]] = None,
        on_error: Optional[Callable[[ProctorMonitorError], None]] = None,
        capture_mode: bool = False,
        reference_landmarks: Optional[Any] = None,
        detector_factory: Optional[Callable[[], Any]] = None,
        camera_factory: Optional[Callable[[], Any]] = None,
        clock: Callable[[], float] = wall_clock_ms,
        video_sink: Optional[Callable[[Any], None]] = None,
        session_id: Optional[str] = None
    ):
        """
        Initialize a monitor.

        Args:
            settings: Monitor settings (defaults to environment settings)
            on_violation: Called with (kind, payload) for each emitted violation
            on_capture: Called with the landmarks of a successful capture
            on_error: Called once with ModelLoadError / CameraAccessError
            capture_mode: Run in enrollment capture mode instead of monitoring
            reference_landmarks: Enrolled face; None disables mismatch checks
            detector_factory: Blocking callable returning a face detector
            camera_factory: Blocking callable returning a camera stream
            clock: Millisecond clock used for violation timestamps
            video_sink: Optional preview callback receiving every frame
            session_id: Optional custom session ID
        """
        self.settings = settings or default_settings
        self.id = session_id or f"MON_{uuid.uuid4().hex[:6].upper()}"
        self.capture_mode = capture_mode
        self.on_violation = on_violation
        self.on_capture = on_capture
        self.on_error = on_error
        self.clock = clock
        self.video_sink = video_sink

        self._detector_factory = detector_factory or partial(load_face_landmarker, self.settings)
        self._camera_factory = camera_factory or partial(
            open_camera,
            self.settings.CAMERA_INDEX,
            self.settings.FRAME_WIDTH,
            self.settings.FRAME_HEIGHT,
            self.settings.TARGET_FPS
        )

        self.violation_count = 0
        self._manager: Optional[ResourceLifecycleManager] = None
        self._loop: Optional[DetectionLoop] = None
        self._loop_task: Optional[asyncio.Task] = None

        self.reference_signature: Optional[FaceSignature] = None
        self.set_reference(reference_landmarks)

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def session(self) -> Optional[ResourceSession]:
        return self._manager.session if self._manager is not None else None

    @property
    def state(self) -> SessionState:
        if self._manager is None:
            return SessionState.UNINITIALIZED
        return self._manager.state

    @property
    def is_running(self) -> bool:
        session = self.session
        return session is not None and session.alive and session.run_state not in TERMINAL_STATES

    @property
    def frames_processed(self) -> int:
        session = self.session
        return session.frames_processed if session is not None else 0

    @property
    def error(self) -> Optional[ProctorMonitorError]:
        session = self.session
        return session.error if session is not None else None

    def set_reference(self, landmarks: Optional[Any]) -> Optional[FaceSignature]:
        """
        Set (or clear) the enrolled reference face.

        Returns:
            The reference signature, or None when mismatch checking is off
        """
        if landmarks is None:
            self.reference_signature = None
        else:
            signature = extract_signature(as_landmark_set(landmarks))
            if signature is None:
                logger.warning(
                    f"Reference landmarks for {self.id} are incomplete; "
                    f"identity checks disabled"
                )
            self.reference_signature = signature

        if self._loop is not None:
            self._loop.reference = self.reference_signature
        return self.reference_signature

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def set_active(self, active: bool) -> bool:
        """Follow the caller's ``active`` flag"""
        if active:
            if self.is_running:
                return self.state == SessionState.ACTIVE
            return await self.start()
        await self.stop()
        return False

    async def start(self) -> bool:
        """
        Acquire the model and camera and, in monitoring mode, start the loop.

        Returns:
            True if the monitor is active
        """
        if self.is_running:
            raise RuntimeError(f"Monitor {self.id} is already running")

        manager = ResourceLifecycleManager(
            self._detector_factory,
            self._camera_factory,
            session_id=self.id,
            on_error=self._report_error,
            startup_timeout=self.settings.STARTUP_TIMEOUT_SECONDS,
            video_sink=self.video_sink
        )
        self._manager = manager
        log_session_start(self.id, self.capture_mode, self.reference_signature is not None)

        if not await manager.start():
            return False
        if manager is not self._manager or not manager.session.is_active:
            return False

        if not self.capture_mode:
            if self.reference_signature is None:
                logger.warning(f"Monitor {self.id} has no reference face; identity checks disabled")

            self._loop = DetectionLoop(
                manager.session,
                ViolationThrottle(self.settings.VIOLATION_COOLDOWN_MS),
                on_violation=self._handle_violation,
                reference=self.reference_signature,
                mismatch_threshold=self.settings.MISMATCH_THRESHOLD,
                weights=tuple(self.settings.SIGNATURE_WEIGHTS),
                frame_interval=self.settings.frame_interval,
                clock=self.clock,
                on_fatal=manager.fail,
                max_read_failures=self.settings.MAX_READ_FAILURES
            )
            self._loop_task = asyncio.create_task(self._loop.run(), name=f"detection-loop-{self.id}")
            self._loop_task.add_done_callback(partial(self._loop_finished, manager))

        return True

    async def stop(self):
        """Stop monitoring and release the camera and model (idempotent)"""
        manager = self._manager
        if manager is None:
            return

        was_running = manager.session.alive
        manager.stop()

        task, self._loop_task = self._loop_task, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._loop = None

        if was_running:
            log_session_end(self.id, manager.state.value, manager.session.frames_processed, self.violation_count)

    async def __aenter__(self) -> "ProctorMonitor":
        await self.start()
        return self

    async def __aexit__(self, *exc_info):
        await self.stop()

    # ------------------------------------------------------------------
    # Capture mode
    # ------------------------------------------------------------------

    async def capture(self) -> LandmarkSet:
        """
        Capture the reference face from the current frame.

        Raises:
            NoFaceDetected: Zero or several faces in view
            RuntimeError: Not in capture mode or not active
        """
        if not self.capture_mode:
            raise RuntimeError("Capture is only available in capture mode")

        session = self.session
        if session is None or not session.is_active:
            raise RuntimeError(f"Monitor {self.id} is not active")

        try:
            frame = await asyncio.to_thread(session.camera_stream.read_frame)
        except Exception as e:
            raise FrameDetectionError(f"Camera read failed: {e}") from e
        landmarks = await capture_reference(session.model_handle, frame)
        logger.info(f"Reference face captured for {self.id} ({len(landmarks)} landmarks)")

        if self.on_capture is not None:
            result = self.on_capture(landmarks)
            if inspect.isawaitable(result):
                await result

        return landmarks

    # ------------------------------------------------------------------
    # Callbacks
    # ------------------------------------------------------------------

    async def _handle_violation(self, event: ViolationEvent):
        self.violation_count += 1
        if self.on_violation is None:
            return
        result = self.on_violation(event.kind, event.payload)
        if inspect.isawaitable(result):
            await result

    def _loop_finished(self, manager: ResourceLifecycleManager, task: "asyncio.Task"):
        if task.cancelled():
            return
        error = task.exception()
        if error is None:
            return
        logger.error(f"Detection loop for {self.id} crashed: {error!r}")
        manager.fail(ProctorMonitorError(f"Detection loop stopped: {error}"))

    def _report_error(self, error: ProctorMonitorError):
        if self.on_error is not None:
            self.on_error(error)
