"""
Violation events emitted by the monitor
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict


class ViolationKind(str, Enum):
    """Kinds of camera violations"""
    NO_FACE = "no_face"
    MULTIPLE_FACES = "multiple_faces"
    FACE_MISMATCH = "face_mismatch"


# Severity levels used by the exam backend's proctor log
SEVERITY: Dict[ViolationKind, str] = {
    ViolationKind.NO_FACE: "medium",
    ViolationKind.MULTIPLE_FACES: "high",
    ViolationKind.FACE_MISMATCH: "critical",
}


@dataclass(frozen=True)
class ViolationEvent:
    """A violation that passed the throttle"""
    kind: ViolationKind
    payload: Dict[str, Any] = field(default_factory=dict)
    timestamp: float = 0.0  # milliseconds

    @property
    def severity(self) -> str:
        return SEVERITY[self.kind]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "payload": dict(self.payload),
            "timestamp": self.timestamp,
            "severity": self.severity
        }
