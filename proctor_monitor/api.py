"""
Proctor Monitor API - FastAPI endpoints controlling camera monitors

Endpoints:
- POST /api/proctor/start - Start a monitor (monitoring or capture mode)
- POST /api/proctor/capture - Capture the reference face (capture mode)
- POST /api/proctor/stop - Stop a monitor and release camera and model
- GET /api/proctor/status/{session_id} - Get monitor status
- GET /api/proctor/violations/{session_id} - Recent violations
"""

import asyncio
import logging
import time
from collections import deque
from typing import Any, Deque, Dict, List, Optional, Set

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from .config import settings
from .errors import FrameDetectionError, NoFaceDetected
from .events import SEVERITY, ViolationKind
from .monitor import ProctorMonitor
from .reporting import ProctorEventReporter

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/proctor", tags=["Proctoring"])

MAX_BUFFERED_VIOLATIONS = 200

# In-memory monitor storage (one process owns the camera)
_monitors: Dict[str, ProctorMonitor] = {}
_violations: Dict[str, Deque[Dict[str, Any]]] = {}
_report_tasks: Set[asyncio.Task] = set()


def monitor_factory(**kwargs) -> ProctorMonitor:
    """Build a monitor; replaced in tests"""
    return ProctorMonitor(**kwargs)


# ============== Request/Response Models ==============

class StartMonitorRequest(BaseModel):
    """Request to start a monitor"""
    submission_id: Optional[str] = Field(None, description="Exam submission to report violations for")
    capture_mode: bool = Field(False, description="Start in reference capture mode")
    reference_landmarks: Optional[List[List[float]]] = Field(
        None, description="Enrolled face landmarks (N x 3)"
    )


class StartMonitorResponse(BaseModel):
    """Response after starting a monitor"""
    session_id: str
    state: str
    message: str


class SessionRequest(BaseModel):
    """Request referencing a monitor session"""
    session_id: str


class CaptureResponse(BaseModel):
    """Captured reference face"""
    session_id: str
    landmark_count: int
    landmarks: List[List[float]]


class StopMonitorResponse(BaseModel):
    """Final monitor summary"""
    session_id: str
    state: str
    frames_processed: int
    violations: int


class MonitorStatusResponse(BaseModel):
    """Current monitor status"""
    session_id: str
    state: str
    is_running: bool
    capture_mode: bool
    has_reference: bool
    frames_processed: int
    violations: int
    error: Optional[str] = None


class ViolationItem(BaseModel):
    kind: str
    severity: str
    payload: Dict[str, Any]
    timestamp: float


class ModelStatusResponse(BaseModel):
    """Model availability status"""
    mediapipe: bool
    face_landmarker: bool
    remote_asset: bool


# ============== Helpers ==============

def _get_monitor(session_id: str) -> ProctorMonitor:
    monitor = _monitors.get(session_id)
    if monitor is None:
        raise HTTPException(status_code=404, detail="Session not found")
    return monitor


def _make_violation_handler(buffer: Deque[Dict[str, Any]], reporter: Optional[ProctorEventReporter]):
    def handle(kind: ViolationKind, payload: Dict[str, Any]):
        kind = ViolationKind(kind)
        buffer.append({
            "kind": kind.value,
            "severity": SEVERITY[kind],
            "payload": dict(payload),
            "timestamp": time.time() * 1000.0
        })
        if reporter is not None:
            # Fire and forget so a slow backend never stalls the loop
            task = asyncio.create_task(reporter.report(kind, payload))
            _report_tasks.add(task)
            task.add_done_callback(_report_tasks.discard)
    return handle


# ============== API Endpoints ==============

@router.post("/start", response_model=StartMonitorResponse)
async def start_monitor(request: StartMonitorRequest):
    """
    Start a camera monitor.

    Loads the face landmark model, opens the camera and, unless in
    capture mode, starts the detection loop.
    """
    buffer: Deque[Dict[str, Any]] = deque(maxlen=MAX_BUFFERED_VIOLATIONS)

    reporter = None
    if settings.REPORT_BASE_URL and request.submission_id:
        reporter = ProctorEventReporter(
            settings.REPORT_BASE_URL,
            request.submission_id,
            timeout=settings.REPORT_TIMEOUT_SECONDS
        )

    try:
        monitor = monitor_factory(
            on_violation=_make_violation_handler(buffer, reporter),
            capture_mode=request.capture_mode,
            reference_landmarks=request.reference_landmarks
        )
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))

    started = await monitor.start()
    if not started:
        error = monitor.error
        await monitor.stop()
        detail = error.reason if error is not None else "Monitor stopped during startup"
        logger.error(f"Failed to start monitor {monitor.id}: {detail}")
        raise HTTPException(status_code=503, detail=detail)

    _monitors[monitor.id] = monitor
    _violations[monitor.id] = buffer

    logger.info(f"Started monitor: {monitor.id}")

    return StartMonitorResponse(
        session_id=monitor.id,
        state=monitor.state.value,
        message="Capture mode ready" if request.capture_mode else "Monitoring started"
    )


@router.post("/capture", response_model=CaptureResponse)
async def capture_reference_face(request: SessionRequest):
    """
    Capture the candidate's reference face.

    Returns 422 when zero or several faces are in view so the UI can
    prompt for a retry.
    """
    monitor = _get_monitor(request.session_id)

    if not monitor.capture_mode:
        raise HTTPException(status_code=400, detail="Session is not in capture mode")
    if not monitor.is_running:
        raise HTTPException(status_code=400, detail="Session is not active")

    try:
        landmarks = await monitor.capture()
    except NoFaceDetected as e:
        raise HTTPException(status_code=422, detail=e.reason)
    except FrameDetectionError as e:
        logger.warning(f"Capture failed for {monitor.id}: {e.reason}")
        raise HTTPException(status_code=503, detail=e.reason)

    return CaptureResponse(
        session_id=monitor.id,
        landmark_count=len(landmarks),
        landmarks=landmarks.tolist()
    )


@router.post("/stop", response_model=StopMonitorResponse)
async def stop_monitor(request: SessionRequest):
    """
    Stop a monitor and release its camera and model.
    """
    monitor = _get_monitor(request.session_id)

    await monitor.stop()

    _monitors.pop(monitor.id, None)
    _violations.pop(monitor.id, None)

    return StopMonitorResponse(
        session_id=monitor.id,
        state=monitor.state.value,
        frames_processed=monitor.frames_processed,
        violations=monitor.violation_count
    )


@router.get("/status/{session_id}", response_model=MonitorStatusResponse)
async def get_monitor_status(session_id: str):
    """
    Get current status of a monitor.
    """
    monitor = _get_monitor(session_id)
    error = monitor.error

    return MonitorStatusResponse(
        session_id=monitor.id,
        state=monitor.state.value,
        is_running=monitor.is_running,
        capture_mode=monitor.capture_mode,
        has_reference=monitor.reference_signature is not None,
        frames_processed=monitor.frames_processed,
        violations=monitor.violation_count,
        error=error.reason if error is not None else None
    )


@router.get("/violations/{session_id}", response_model=List[ViolationItem])
async def get_violations(session_id: str, limit: int = 50):
    """
    Most recent violations, newest last.
    """
    _get_monitor(session_id)
    items = list(_violations.get(session_id, ()))
    if limit <= 0:
        return []
    return [ViolationItem(**item) for item in items[-limit:]]


@router.get("/models-status", response_model=ModelStatusResponse)
async def get_models_status():
    """
    Check which model pieces are available.
    """
    from .models.model_loader import check_models

    return ModelStatusResponse(**check_models(settings))


@router.get("/health")
async def health_check():
    """Health check for the monitor module"""
    return {
        "status": "healthy",
        "active_sessions": len(_monitors),
        "module": "proctor-monitor"
    }
