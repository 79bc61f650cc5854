"""
Pytest Configuration for Proctor Monitor Tests
"""
import os
import sys
import threading
from typing import Callable, List, Optional, Sequence

import numpy as np
import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from proctor_monitor.camera import Frame
from proctor_monitor.config import Settings
from proctor_monitor.detectors.signature import LANDMARK_INDICES

MESH_SIZE = 478


def build_face(
    ipd: float = 0.2,
    nose_chin: float = 0.3,
    width: float = 0.4,
    central: float = 0.16,
    offset: Sequence[float] = (0.5, 0.4, 0.0)
) -> np.ndarray:
    """
    Landmarks with controlled geometry.

    Ratios of the result are nose_chin/ipd, width/ipd and central/ipd.
    """
    ox, oy, oz = offset
    points = np.zeros((MESH_SIZE, 3), dtype=np.float64)
    points[LANDMARK_INDICES["left_eye"]] = [ox - ipd / 2, oy, oz]
    points[LANDMARK_INDICES["right_eye"]] = [ox + ipd / 2, oy, oz]
    points[LANDMARK_INDICES["nose_tip"]] = [ox, oy + 0.1, oz]
    points[LANDMARK_INDICES["chin"]] = [ox, oy + 0.1 + nose_chin, oz]
    points[LANDMARK_INDICES["left_cheek"]] = [ox - width / 2, oy + 0.1, oz]
    points[LANDMARK_INDICES["right_cheek"]] = [ox + width / 2, oy + 0.1, oz]
    points[LANDMARK_INDICES["glabella"]] = [ox, oy - 0.02, oz]
    points[LANDMARK_INDICES["upper_lip"]] = [ox, oy - 0.02 + central, oz]
    points.flags.writeable = False
    return points


def make_frame(timestamp_ms: float) -> Frame:
    return Frame(image=np.zeros((48, 64, 3), dtype=np.uint8), timestamp_ms=timestamp_ms)


class FakeDetector:
    """Detector returning scripted results, one entry per call"""

    def __init__(self, results: Optional[List] = None, default: Optional[List] = None):
        self.results = list(results or [])
        self.default = default if default is not None else []
        self.calls: List[Frame] = []
        self.close_count = 0
        self.on_detect: Optional[Callable[[Frame], None]] = None

    @property
    def closed(self) -> bool:
        return self.close_count > 0

    def detect(self, frame):
        self.calls.append(frame)
        if self.on_detect is not None:
            self.on_detect(frame)
        result = self.results.pop(0) if self.results else self.default
        if isinstance(result, Exception):
            raise result
        return result

    def close(self):
        self.close_count += 1


class FakeCamera:
    """Camera yielding frames at fixed timestamps; repeats the last one when exhausted"""

    def __init__(self, timestamps: Optional[Sequence[float]] = None, step_ms: float = 100.0):
        self.timestamps = list(timestamps) if timestamps is not None else None
        self.step_ms = step_ms
        self._next = 0.0
        self._last: Optional[Frame] = None
        self.enabled = True
        self.stop_count = 0

    @property
    def is_live(self) -> bool:
        return self.stop_count == 0

    def read_frame(self):
        if not self.enabled or self.stop_count:
            return None
        if self.timestamps is None:
            self._last = make_frame(self._next)
            self._next += self.step_ms
        elif self.timestamps:
            self._last = make_frame(self.timestamps.pop(0))
        return self._last

    def stop(self):
        self.enabled = False
        self.stop_count += 1


class ManualClock:
    """Millisecond clock advanced by hand"""

    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def advance(self, ms: float):
        self.now += ms

    def __call__(self) -> float:
        return self.now


class BlockingFactory:
    """Blocking factory released from the test, mimicking a slow load"""

    def __init__(self, result):
        self.result = result
        self.release = threading.Event()
        self.started = threading.Event()
        self.calls = 0

    def __call__(self):
        self.calls += 1
        self.started.set()
        self.release.wait(timeout=5)
        return self.result


@pytest.fixture
def settings():
    return Settings(TARGET_FPS=500, VIOLATION_COOLDOWN_MS=5000.0, MISMATCH_THRESHOLD=0.12)


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def reference_face():
    return build_face()
