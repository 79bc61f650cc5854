"""
Face Signature - Scale-invariant geometric signature of a face

Three distances are divided by the interpupillary distance (IPD) so the
signature does not depend on how far the candidate sits from the camera or
on the camera resolution, while still following the shape of the face:

- r1: nose tip to chin (vertical profile)
- r2: cheek to cheek (face width)
- r3: glabella to upper lip (central height)
"""

import logging
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

import numpy as np

from .base import LandmarkSet

logger = logging.getLogger(__name__)


# MediaPipe face mesh indices (478-point model with iris refinement)
LANDMARK_INDICES: Dict[str, int] = {
    "left_eye": 468,
    "right_eye": 473,
    "nose_tip": 1,
    "upper_lip": 13,
    "left_cheek": 234,
    "right_cheek": 454,
    "chin": 152,
    "glabella": 168,
}

DEFAULT_WEIGHTS: Tuple[float, float, float] = (1.0, 1.5, 1.0)
DEFAULT_MISMATCH_THRESHOLD = 0.12


@dataclass(frozen=True)
class FaceSignature:
    """Ratios of facial distances to the IPD"""
    r1: float
    r2: float
    r3: float


def _distance(a: np.ndarray, b: np.ndarray) -> float:
    return float(np.linalg.norm(a - b))


def extract_signature(landmarks: Optional[LandmarkSet]) -> Optional[FaceSignature]:
    """
    Compute the geometric signature of one face.

    Args:
        landmarks: (N, 3) landmark array for a single face

    Returns:
        FaceSignature, or None when a required landmark is missing or
        not finite, or the eyes coincide
    """
    if landmarks is None:
        return None

    points = np.asarray(landmarks, dtype=np.float64)
    if points.ndim != 2 or points.shape[1] < 3:
        return None
    if points.shape[0] <= max(LANDMARK_INDICES.values()):
        return None

    p = {name: points[index, :3] for name, index in LANDMARK_INDICES.items()}
    if not all(np.all(np.isfinite(point)) for point in p.values()):
        return None

    ipd = _distance(p["left_eye"], p["right_eye"])
    if ipd <= 0.0:
        logger.debug("Degenerate landmarks: zero interpupillary distance")
        return None

    return FaceSignature(
        r1=_distance(p["nose_tip"], p["chin"]) / ipd,
        r2=_distance(p["left_cheek"], p["right_cheek"]) / ipd,
        r3=_distance(p["glabella"], p["upper_lip"]) / ipd,
    )


def compare_signatures(
    a: FaceSignature,
    b: FaceSignature,
    weights: Tuple[float, float, float] = DEFAULT_WEIGHTS
) -> float:
    """
    Weighted mean absolute difference between two signatures.

    The width ratio carries the most weight: it is the most distinctive
    and the least affected by facial expression.
    """
    w1, w2, w3 = weights
    total = abs(a.r1 - b.r1) * w1 + abs(a.r2 - b.r2) * w2 + abs(a.r3 - b.r3) * w3
    return total / (w1 + w2 + w3)


def is_mismatch(score: float, threshold: float = DEFAULT_MISMATCH_THRESHOLD) -> bool:
    """True when the dissimilarity exceeds the threshold"""
    return score > threshold
