"""Violation scoring modules"""

from .violation_throttle import ViolationThrottle

__all__ = ["ViolationThrottle"]
