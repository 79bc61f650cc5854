"""
Resource Lifecycle Manager - Owns the model session and the camera stream

State machine:

    uninitialized -> loading_model -> model_ready -> starting_camera -> active
    any non-terminal state -> stopped (teardown)
    loading_model / starting_camera / active -> error

Every continuation after an await checks ``session.alive`` first. A model or
camera that resolves after teardown is released on the spot and never stored,
so a slow load cannot start a camera session that nobody will close.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional, Set

from .errors import CameraAccessError, ModelLoadError, ProctorMonitorError
from .utils.logging import log_fatal_error, log_state_transition

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    UNINITIALIZED = "uninitialized"
    LOADING_MODEL = "loading_model"
    MODEL_READY = "model_ready"
    STARTING_CAMERA = "starting_camera"
    ACTIVE = "active"
    ERROR = "error"
    STOPPED = "stopped"


TERMINAL_STATES = {SessionState.ERROR, SessionState.STOPPED}

ALLOWED_TRANSITIONS: Dict[SessionState, Set[SessionState]] = {
    SessionState.UNINITIALIZED: {SessionState.LOADING_MODEL, SessionState.STOPPED},
    SessionState.LOADING_MODEL: {SessionState.MODEL_READY, SessionState.ERROR, SessionState.STOPPED},
    SessionState.MODEL_READY: {SessionState.STARTING_CAMERA, SessionState.STOPPED},
    SessionState.STARTING_CAMERA: {SessionState.ACTIVE, SessionState.ERROR, SessionState.STOPPED},
    SessionState.ACTIVE: {SessionState.STOPPED, SessionState.ERROR},
    SessionState.ERROR: set(),
    SessionState.STOPPED: set(),
}


@dataclass
class ResourceSession:
    """State shared by every continuation of one monitoring session"""
    id: str
    model_handle: Any = None
    camera_stream: Any = None
    run_state: SessionState = SessionState.UNINITIALIZED
    alive: bool = True
    last_frame_timestamp: Optional[float] = None
    video_sink: Optional[Callable[[Any], None]] = None
    error: Optional[ProctorMonitorError] = None
    frames_processed: int = 0

    @property
    def is_active(self) -> bool:
        return self.alive and self.run_state == SessionState.ACTIVE


class ResourceLifecycleManager:
    """
    Acquires the model, then the camera, and releases both on teardown.

    ``model_factory`` and ``camera_factory`` are blocking callables; they run
    in worker threads so the event loop keeps going while they resolve.
    """

    def __init__(
        self,
        model_factory: Callable[[], Any],
        camera_factory: Callable[[], Any],
        session_id: str,
        on_error: Optional[Callable[[ProctorMonitorError], None]] = None,
        startup_timeout: Optional[float] = None,
        video_sink: Optional[Callable[[Any], None]] = None
    ):
        self._model_factory = model_factory
        self._camera_factory = camera_factory
        self._on_error = on_error
        self.startup_timeout = startup_timeout
        self.session = ResourceSession(id=session_id, video_sink=video_sink)

    @property
    def state(self) -> SessionState:
        return self.session.run_state

    def _transition(self, new_state: SessionState):
        session = self.session
        old_state = session.run_state
        if new_state not in ALLOWED_TRANSITIONS[old_state]:
            raise RuntimeError(f"Illegal transition {old_state.value} -> {new_state.value}")
        session.run_state = new_state
        log_state_transition(session.id, old_state.value, new_state.value)

    async def start(self) -> bool:
        """
        Load the model, then open the camera.

        Returns:
            True if the session reached ``active``; False on error or when
            torn down before the resources resolved
        """
        session = self.session
        if session.run_state != SessionState.UNINITIALIZED:
            raise RuntimeError(f"Session {session.id} already started ({session.run_state.value})")

        self._transition(SessionState.LOADING_MODEL)
        try:
            model = await self._run_blocking(self._model_factory, _close_model)
        except Exception as e:
            if not session.alive:
                logger.info(f"Discarding model load failure after teardown: {e}")
                return False
            self._fail(_as_error(e, ModelLoadError, "Failed to load face detection model"))
            return False

        if not session.alive:
            logger.info(f"Session {session.id} torn down during model load, discarding model")
            _close_model(model)
            return False

        session.model_handle = model
        self._transition(SessionState.MODEL_READY)

        self._transition(SessionState.STARTING_CAMERA)
        try:
            stream = await self._run_blocking(self._camera_factory, _stop_stream)
        except Exception as e:
            if not session.alive:
                logger.info(f"Discarding camera failure after teardown: {e}")
                return False
            self._fail(_as_error(e, CameraAccessError, "Camera access denied"))
            return False

        if not session.alive:
            logger.info(f"Session {session.id} torn down during camera start, releasing camera")
            _stop_stream(stream)
            return False

        session.camera_stream = stream
        self._transition(SessionState.ACTIVE)
        logger.info(f"Monitor session {session.id} active")
        return True

    async def _run_blocking(self, factory: Callable[[], Any], release: Callable[[Any], None]) -> Any:
        future = asyncio.ensure_future(asyncio.to_thread(factory))
        try:
            if self.startup_timeout is None:
                return await asyncio.shield(future)
            return await asyncio.wait_for(asyncio.shield(future), self.startup_timeout)
        except (asyncio.CancelledError, asyncio.TimeoutError):
            # The worker thread cannot be interrupted; release whatever it
            # eventually produces
            future.add_done_callback(lambda f: _release_late_result(f, release))
            raise

    def fail(self, error: ProctorMonitorError) -> bool:
        """
        Report a fatal error raised while active.

        Returns:
            False if the session was already torn down or terminal
        """
        session = self.session
        if not session.alive or session.run_state in TERMINAL_STATES:
            logger.info(f"Ignoring late error for session {session.id}: {error.reason}")
            return False
        self._fail(error)
        return True

    def _fail(self, error: ProctorMonitorError):
        session = self.session
        session.error = error
        self._transition(SessionState.ERROR)
        log_fatal_error(session.id, type(error).__name__, error.reason)
        self._release()

        if self._on_error is not None:
            try:
                self._on_error(error)
            except Exception as e:
                logger.exception(f"Error handler raised: {e}")

    def stop(self):
        """
        Tear the session down (idempotent).

        Flips the liveness flag once, then releases the camera stream, the
        video sink and the model session.
        """
        session = self.session
        if session.alive:
            session.alive = False
            if session.run_state not in TERMINAL_STATES:
                self._transition(SessionState.STOPPED)
        self._release()

    def _release(self):
        session = self.session

        stream, session.camera_stream = session.camera_stream, None
        if stream is not None:
            _stop_stream(stream)

        session.video_sink = None

        model, session.model_handle = session.model_handle, None
        if model is not None:
            _close_model(model)


def _as_error(error: Exception, error_type, default_reason: str) -> ProctorMonitorError:
    if isinstance(error, error_type):
        return error
    if isinstance(error, asyncio.TimeoutError):
        return error_type(f"{default_reason}: timed out")
    return error_type(f"{default_reason}: {error}")


def _stop_stream(stream: Any):
    try:
        if hasattr(stream, "enabled"):
            stream.enabled = False
        stream.stop()
    except Exception as e:
        logger.warning(f"Error stopping camera stream: {e}")


def _close_model(model: Any):
    try:
        model.close()
    except Exception as e:
        logger.warning(f"Error closing model session: {e}")


def _release_late_result(future: "asyncio.Future", release: Callable[[Any], None]):
    if future.cancelled() or future.exception() is not None:
        return
    release(future.result())
