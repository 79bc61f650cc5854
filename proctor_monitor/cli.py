"""
Command-line runner: enroll a reference face, then watch the camera.

    python -m proctor_monitor --duration 600 --report-url http://localhost:8000/api \
        --submission-id 64f0c2...

Violations are logged; with --report-url they are also sent to the exam
backend's proctor log.
"""

import argparse
import asyncio
import logging
from typing import Optional

from .config import Settings, settings as default_settings
from .detectors.base import LandmarkSet
from .errors import FrameDetectionError, NoFaceDetected, ProctorMonitorError
from .monitor import ProctorMonitor
from .reporting import ProctorEventReporter
from .utils.logging_config import setup_logging

logger = logging.getLogger(__name__)


async def enroll(settings: Settings, attempts: int, retry_delay: float) -> Optional[LandmarkSet]:
    """
    Capture a reference face, retrying while the view is not a single face.

    Returns:
        Reference landmarks, or None if every attempt failed
    """
    errors = []
    monitor = ProctorMonitor(settings, capture_mode=True, on_error=errors.append)

    async with monitor:
        if not monitor.is_running:
            logger.error(f"Enrollment could not start: {errors[0].reason if errors else 'unknown'}")
            return None

        for attempt in range(1, attempts + 1):
            try:
                return await monitor.capture()
            except (NoFaceDetected, FrameDetectionError) as e:
                logger.info(f"Capture attempt {attempt}/{attempts}: {e.reason}")
                await asyncio.sleep(retry_delay)

    return None


async def watch(
    settings: Settings,
    reference: Optional[LandmarkSet],
    duration: float,
    reporter: Optional[ProctorEventReporter] = None
) -> int:
    """
    Monitor the camera for ``duration`` seconds (0 = until interrupted).

    Returns:
        Process exit code
    """
    fatal: list = []

    async def on_violation(kind, payload):
        logger.warning(f"Violation: {kind.value} {payload}")
        if reporter is not None:
            await reporter.report(kind, payload)

    def on_error(error: ProctorMonitorError):
        fatal.append(error)

    monitor = ProctorMonitor(
        settings,
        on_violation=on_violation,
        on_error=on_error,
        reference_landmarks=reference
    )

    async with monitor:
        if not monitor.is_running:
            logger.error(f"Monitoring could not start: {fatal[0].reason if fatal else 'unknown'}")
            return 1

        if duration > 0:
            await asyncio.sleep(duration)
        else:
            await asyncio.Event().wait()

    logger.info(
        f"Monitoring finished: {monitor.frames_processed} frames, "
        f"{monitor.violation_count} violations"
    )
    return 0


async def run(args: argparse.Namespace) -> int:
    overrides = {}
    if args.model:
        overrides["MODEL_ASSET_PATH"] = args.model
    if args.delegate:
        overrides["DELEGATE"] = args.delegate
    if args.camera_index is not None:
        overrides["CAMERA_INDEX"] = args.camera_index
    settings = Settings(**overrides)

    reference = None
    if not args.skip_enroll:
        reference = await enroll(settings, args.capture_attempts, args.capture_retry_delay)
        if reference is None:
            logger.error("No reference face captured")
            return 2

    reporter = None
    report_url = args.report_url or settings.REPORT_BASE_URL
    if report_url and args.submission_id:
        reporter = ProctorEventReporter(
            report_url,
            args.submission_id,
            auth_token=args.token,
            timeout=settings.REPORT_TIMEOUT_SECONDS
        )

    return await watch(settings, reference, args.duration, reporter)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Camera proctoring monitor",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("--model", default=None, help="Path or URL of face_landmarker.task")
    parser.add_argument("--delegate", choices=["GPU", "CPU"], default=None, help="Inference delegate")
    parser.add_argument("--camera-index", type=int, default=None, help="OpenCV camera index")
    parser.add_argument("--duration", type=float, default=0.0, help="Seconds to monitor (0 = until Ctrl-C)")
    parser.add_argument("--skip-enroll", action="store_true", help="Monitor without a reference face")
    parser.add_argument("--capture-attempts", type=int, default=5, help="Reference capture attempts")
    parser.add_argument("--capture-retry-delay", type=float, default=1.0, help="Seconds between capture attempts")
    parser.add_argument("--report-url", default=None, help="Exam backend API base URL")
    parser.add_argument("--submission-id", default=None, help="Submission to report violations for")
    parser.add_argument("--token", default=None, help="Bearer token for the exam backend")
    parser.add_argument("--log-level", default=None, help="Log level (default: PROCTOR_LOG_LEVEL)")
    parser.add_argument("--log-file", action="store_true", help="Also write rotating log files")
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(
        default_settings,
        level=args.log_level,
        log_to_file=True if args.log_file else None
    )

    try:
        return asyncio.run(run(args))
    except KeyboardInterrupt:
        logger.info("Interrupted")
        return 130
