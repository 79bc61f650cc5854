"""
Violation Throttle - Rate-limits repeated violation notifications
"""

import logging
from typing import Dict, Optional

from ..events import ViolationKind

logger = logging.getLogger(__name__)


class ViolationThrottle:
    """
    Per-kind cooldown gate.

    The detection loop runs many times per second; without a gate a
    sustained violation would fire on every frame. Each kind has its own
    cooldown, so a ``no_face`` emission never suppresses a
    ``multiple_faces`` one.
    """

    DEFAULT_COOLDOWN_MS = 5000.0

    def __init__(self, cooldown_ms: float = DEFAULT_COOLDOWN_MS):
        self.cooldown_ms = cooldown_ms
        self._last_emitted: Dict[ViolationKind, float] = {}

    def should_emit(self, kind: ViolationKind, now: float) -> bool:
        """
        Decide whether a violation may be emitted, recording it if so.

        Args:
            kind: Violation kind
            now: Current time in milliseconds

        Returns:
            True if the cooldown for this kind has elapsed
        """
        kind = ViolationKind(kind)
        last = self._last_emitted.get(kind)

        if last is not None and now - last <= self.cooldown_ms:
            return False

        self._last_emitted[kind] = now
        return True

    def last_emitted(self, kind: ViolationKind) -> Optional[float]:
        """Last emission time for a kind, if any"""
        return self._last_emitted.get(ViolationKind(kind))
