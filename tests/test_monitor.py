"""
Tests for ProctorMonitor

End-to-end runs with fake detector and camera factories.
"""

import asyncio

import numpy as np
import pytest

from conftest import BlockingFactory, FakeCamera, FakeDetector, build_face
from proctor_monitor.errors import (
    CameraAccessError,
    FrameDetectionError,
    ModelLoadError,
    NoFaceDetected,
    ProctorMonitorError
)
from proctor_monitor.events import ViolationKind
from proctor_monitor.lifecycle import SessionState
from proctor_monitor.monitor import ProctorMonitor


async def wait_until(predicate, timeout: float = 2.0):
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.005)


def make_monitor(settings, detector, camera=None, **kwargs):
    camera = camera or FakeCamera()
    return ProctorMonitor(
        settings,
        detector_factory=lambda: detector,
        camera_factory=lambda: camera,
        session_id=kwargs.pop("session_id", "MON_TEST"),
        **kwargs
    )


class TestMonitoring:
    """Tests for monitoring mode"""

    @pytest.mark.asyncio
    async def test_reports_no_face(self, settings, clock):
        """An empty view reports no_face once within the cooldown"""
        violations = []
        detector = FakeDetector(default=[])
        monitor = make_monitor(
            settings, detector, clock=clock,
            on_violation=lambda kind, payload: violations.append((kind, payload))
        )

        async with monitor:
            assert monitor.state == SessionState.ACTIVE
            await wait_until(lambda: len(detector.calls) >= 5)

        assert violations == [(ViolationKind.NO_FACE, {"count": 0})]
        assert monitor.violation_count == 1
        assert monitor.state == SessionState.STOPPED

    @pytest.mark.asyncio
    async def test_reports_mismatch_against_reference(self, settings, clock):
        """A different face than the enrolled one reports face_mismatch"""
        violations = []
        detector = FakeDetector(default=[build_face(width=0.47)])
        monitor = make_monitor(
            settings, detector, clock=clock,
            reference_landmarks=build_face(),
            on_violation=lambda kind, payload: violations.append((kind, payload))
        )

        async with monitor:
            await wait_until(lambda: violations)

        kind, payload = violations[0]
        assert kind == ViolationKind.FACE_MISMATCH
        assert payload == {"score": "0.150"}

    @pytest.mark.asyncio
    async def test_async_violation_callback(self, settings, clock):
        """Coroutine callbacks are awaited"""
        seen = []

        async def on_violation(kind, payload):
            seen.append(kind)

        detector = FakeDetector(default=[build_face(), build_face()])
        monitor = make_monitor(settings, detector, clock=clock, on_violation=on_violation)

        async with monitor:
            await wait_until(lambda: seen)

        assert seen == [ViolationKind.MULTIPLE_FACES]

    @pytest.mark.asyncio
    async def test_stop_releases_resources(self, settings):
        """Stopping cancels the loop and releases camera and model"""
        detector = FakeDetector(default=[build_face()])
        camera = FakeCamera()
        monitor = make_monitor(settings, detector, camera)

        await monitor.start()
        await wait_until(lambda: detector.calls)
        await monitor.stop()

        assert camera.stop_count == 1
        assert detector.closed
        assert not monitor.is_running

        # Let any detect already handed to a worker thread finish
        await asyncio.sleep(0.02)
        calls = len(detector.calls)
        await asyncio.sleep(0.02)
        assert len(detector.calls) == calls

    @pytest.mark.asyncio
    async def test_start_while_running_rejected(self, settings):
        """A running monitor cannot be started again"""
        monitor = make_monitor(settings, FakeDetector())
        async with monitor:
            with pytest.raises(RuntimeError):
                await monitor.start()

    @pytest.mark.asyncio
    async def test_restart_after_stop(self, settings):
        """A stopped monitor can start a fresh session"""
        monitor = ProctorMonitor(
            settings,
            detector_factory=FakeDetector,
            camera_factory=FakeCamera,
            session_id="MON_RESTART"
        )

        assert await monitor.start() is True
        await monitor.stop()
        assert await monitor.start() is True
        assert monitor.state == SessionState.ACTIVE
        await monitor.stop()

    @pytest.mark.asyncio
    async def test_set_active(self, settings):
        """The active flag starts and stops the monitor"""
        monitor = make_monitor(settings, FakeDetector())

        assert await monitor.set_active(True) is True
        assert await monitor.set_active(True) is True
        assert await monitor.set_active(False) is False
        assert monitor.state == SessionState.STOPPED

    @pytest.mark.asyncio
    async def test_set_active_false_during_load(self, settings):
        """Deactivating while the model loads leaves nothing running"""
        detector = FakeDetector()
        factory = BlockingFactory(detector)
        camera_calls = []
        monitor = ProctorMonitor(
            settings,
            detector_factory=factory,
            camera_factory=lambda: camera_calls.append(1) or FakeCamera(),
            session_id="MON_FLIP"
        )

        task = asyncio.create_task(monitor.set_active(True))
        await wait_until(factory.started.is_set)
        await monitor.set_active(False)
        factory.release.set()

        assert await task is False
        assert camera_calls == []
        assert detector.closed
        assert monitor.state == SessionState.STOPPED

    @pytest.mark.asyncio
    async def test_reference_update_reaches_running_loop(self, settings, clock):
        """Setting a reference mid-session enables identity checks"""
        violations = []
        detector = FakeDetector(default=[build_face(width=0.47)])
        monitor = make_monitor(
            settings, detector, clock=clock,
            on_violation=lambda kind, payload: violations.append(kind)
        )

        async with monitor:
            await wait_until(lambda: len(detector.calls) >= 2)
            assert violations == []
            monitor.set_reference(build_face())
            await wait_until(lambda: violations)

        assert violations == [ViolationKind.FACE_MISMATCH]

    def test_incomplete_reference_disables_checks(self, settings):
        """A reference without usable landmarks is treated as absent"""
        monitor = make_monitor(settings, FakeDetector(), reference_landmarks=build_face()[:50])
        assert monitor.reference_signature is None


class TestErrors:
    """Tests for fatal startup errors"""

    @pytest.mark.asyncio
    async def test_model_error_reported_once(self, settings):
        """on_error receives the ModelLoadError and the monitor ends in error"""
        errors = []

        def failing():
            raise ModelLoadError("asset missing")

        monitor = ProctorMonitor(
            settings,
            detector_factory=failing,
            camera_factory=FakeCamera,
            on_error=errors.append,
            session_id="MON_ERR"
        )

        assert await monitor.start() is False
        await monitor.stop()

        assert len(errors) == 1
        assert monitor.state == SessionState.ERROR
        assert monitor.error is errors[0]
        assert not monitor.is_running

    @pytest.mark.asyncio
    async def test_camera_denied(self, settings):
        """Camera denial is reported as CameraAccessError"""
        errors = []
        detector = FakeDetector()

        def denied():
            raise CameraAccessError("Camera access denied")

        monitor = ProctorMonitor(
            settings,
            detector_factory=lambda: detector,
            camera_factory=denied,
            on_error=errors.append,
            session_id="MON_CAM"
        )

        assert await monitor.start() is False
        assert isinstance(errors[0], CameraAccessError)
        assert detector.closed


class TestCaptureMode:
    """Tests for reference capture"""

    @pytest.mark.asyncio
    async def test_capture_single_face(self, settings):
        """One face in view yields its landmarks via the callback"""
        captured = []
        face = build_face()
        detector = FakeDetector(default=[face])
        monitor = make_monitor(settings, detector, capture_mode=True, on_capture=captured.append)

        async with monitor:
            landmarks = await monitor.capture()

        assert np.array_equal(landmarks, face)
        assert len(captured) == 1
        assert len(detector.calls) == 1

    @pytest.mark.asyncio
    async def test_capture_no_face(self, settings):
        """No face in view raises NoFaceDetected and skips the callback"""
        captured = []
        monitor = make_monitor(settings, FakeDetector(default=[]), capture_mode=True, on_capture=captured.append)

        async with monitor:
            with pytest.raises(NoFaceDetected) as exc_info:
                await monitor.capture()

        assert exc_info.value.face_count == 0
        assert captured == []

    @pytest.mark.asyncio
    async def test_capture_multiple_faces(self, settings):
        """Two faces in view are rejected"""
        monitor = make_monitor(settings, FakeDetector(default=[build_face(), build_face()]), capture_mode=True)

        async with monitor:
            with pytest.raises(NoFaceDetected) as exc_info:
                await monitor.capture()

        assert exc_info.value.face_count == 2

    @pytest.mark.asyncio
    async def test_no_loop_in_capture_mode(self, settings):
        """Capture mode never runs continuous detection"""
        violations = []
        detector = FakeDetector(default=[])
        monitor = make_monitor(
            settings, detector, capture_mode=True,
            on_violation=lambda kind, payload: violations.append(kind)
        )

        async with monitor:
            await asyncio.sleep(0.02)

        assert detector.calls == []
        assert violations == []

    @pytest.mark.asyncio
    async def test_capture_requires_capture_mode(self, settings):
        """Capture in monitoring mode is rejected"""
        monitor = make_monitor(settings, FakeDetector())
        async with monitor:
            with pytest.raises(RuntimeError):
                await monitor.capture()

    @pytest.mark.asyncio
    async def test_capture_requires_active(self, settings):
        """Capture before start is rejected"""
        monitor = make_monitor(settings, FakeDetector(), capture_mode=True)
        with pytest.raises(RuntimeError):
            await monitor.capture()


class TestConstruction:
    """Tests for building a monitor"""

    def test_defaults_without_reference(self, settings):
        """A fresh monitor is idle with identity checks off"""
        monitor = ProctorMonitor(settings, detector_factory=FakeDetector, camera_factory=FakeCamera)

        assert monitor.id.startswith("MON_")
        assert monitor.state == SessionState.UNINITIALIZED
        assert monitor.reference_signature is None
        assert monitor.session is None
        assert not monitor.is_running
        assert monitor.frames_processed == 0
        assert monitor.error is None

    def test_with_reference(self, settings):
        """Reference landmarks given up front become the reference signature"""
        monitor = ProctorMonitor(
            settings,
            reference_landmarks=build_face(),
            detector_factory=FakeDetector,
            camera_factory=FakeCamera
        )

        assert monitor.reference_signature is not None
        assert monitor.reference_signature.r2 == pytest.approx(2.0)


class BrokenCamera(FakeCamera):
    """Camera that delivers one frame, then fails every read"""

    def __init__(self):
        super().__init__()
        self.reads = 0

    def read_frame(self):
        self.reads += 1
        if self.reads > 1:
            raise OSError("device unplugged")
        return super().read_frame()


class TestRuntimeFailures:
    """Failures after the session became active reach on_error"""

    @pytest.mark.asyncio
    async def test_lost_camera_is_reported(self, settings):
        """Persistent read failures move the session to error"""
        errors = []
        detector = FakeDetector(default=[build_face()])
        camera = BrokenCamera()
        monitor = make_monitor(
            settings.model_copy(update={"MAX_READ_FAILURES": 3}),
            detector, camera, on_error=errors.append
        )

        await monitor.start()
        await wait_until(lambda: errors)

        assert len(errors) == 1
        assert isinstance(errors[0], CameraAccessError)
        assert "device unplugged" in errors[0].reason
        assert monitor.state == SessionState.ERROR
        assert not monitor.is_running
        assert camera.stop_count == 1
        assert detector.closed
        assert len(detector.calls) == 1

        await monitor.stop()
        assert monitor.state == SessionState.ERROR
        assert len(errors) == 1

    @pytest.mark.asyncio
    async def test_loop_crash_is_reported(self, settings):
        """A loop that dies unexpectedly does not leave the monitor active"""
        errors = []
        # A malformed detector result breaks classification
        detector = FakeDetector(results=[None])
        monitor = make_monitor(settings, detector, on_error=errors.append)

        await monitor.start()
        await wait_until(lambda: errors)

        assert isinstance(errors[0], ProctorMonitorError)
        assert "Detection loop stopped" in errors[0].reason
        assert monitor.state == SessionState.ERROR
        assert not monitor.is_running
        await monitor.stop()

    @pytest.mark.asyncio
    async def test_capture_read_error(self, settings):
        """A raising camera read during capture is a FrameDetectionError"""
        camera = BrokenCamera()
        camera.reads = 1
        monitor = make_monitor(settings, FakeDetector(default=[build_face()]), camera, capture_mode=True)

        async with monitor:
            with pytest.raises(FrameDetectionError):
                await monitor.capture()
