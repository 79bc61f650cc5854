"""
Detector contract shared by the detection loop and capture mode
"""

import asyncio
import inspect
from typing import Any, Awaitable, List, Protocol, Sequence, Union

import numpy as np

# One detected face: (N, 3) array of normalized (x, y, z) points
LandmarkSet = np.ndarray

DetectionResult = Union[List[LandmarkSet], Awaitable[List[LandmarkSet]]]


class FaceLandmarkDetector(Protocol):
    """
    Anything that turns a frame into zero or more landmark sets.

    ``detect`` may be a plain function or a coroutine; callers await the
    result when it is awaitable.
    """

    def detect(self, frame: Any) -> DetectionResult:
        ...

    def close(self) -> None:
        ...


def as_landmark_set(points: Union[np.ndarray, Sequence[Sequence[float]]]) -> LandmarkSet:
    """
    Convert points into a read-only float array of shape (N, 3).

    2D points get z = 0.
    """
    array = np.array(points, dtype=np.float64)
    if array.ndim != 2 or array.shape[1] not in (2, 3):
        raise ValueError(f"Expected (N, 2) or (N, 3) landmarks, got shape {array.shape}")
    if array.shape[1] == 2:
        array = np.hstack([array, np.zeros((array.shape[0], 1))])
    array.flags.writeable = False
    return array


async def run_detection(detector: FaceLandmarkDetector, frame: Any) -> List[LandmarkSet]:
    """
    Call ``detector.detect`` without blocking the event loop.

    Coroutine detectors are awaited directly; plain ones run in a worker
    thread.
    """
    if inspect.iscoroutinefunction(detector.detect):
        return await detector.detect(frame)

    faces = await asyncio.to_thread(detector.detect, frame)
    if inspect.isawaitable(faces):
        faces = await faces
    return faces
