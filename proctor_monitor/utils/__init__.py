"""Utility modules"""

from .logging import log_monitor_event
from .logging_config import setup_logging

__all__ = ["log_monitor_event", "setup_logging"]
