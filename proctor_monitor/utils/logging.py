"""
Proctoring Logger - Logs monitor lifecycle and violation events
"""

import logging
from typing import Dict, Any, Optional

logger = logging.getLogger(__name__)


def log_monitor_event(
    session_id: str,
    event_type: str,
    details: Optional[Dict[str, Any]] = None,
    level: str = "info"
):
    """
    Log a monitor event.

    Args:
        session_id: Monitor session ID
        event_type: Type of event (session_start, state, violation, etc.)
        details: Optional event details
        level: Log level (debug, info, warning, error)
    """
    message = f"[PROCTOR] session={session_id} event={event_type}"

    if details:
        detail_str = " ".join(f"{k}={v}" for k, v in details.items())
        message += f" {detail_str}"

    if level == "debug":
        logger.debug(message)
    elif level == "warning":
        logger.warning(message)
    elif level == "error":
        logger.error(message)
    else:
        logger.info(message)


def log_session_start(session_id: str, capture_mode: bool, has_reference: bool):
    """Log session start event"""
    log_monitor_event(
        session_id=session_id,
        event_type="session_start",
        details={
            "mode": "capture" if capture_mode else "monitor",
            "reference": "yes" if has_reference else "no"
        }
    )


def log_session_end(session_id: str, state: str, frames: int, violations: int):
    """Log session end event"""
    log_monitor_event(
        session_id=session_id,
        event_type="session_end",
        details={
            "state": state,
            "frames_processed": frames,
            "violations": violations
        }
    )


def log_state_transition(session_id: str, old_state: str, new_state: str):
    """Log a lifecycle state change"""
    log_monitor_event(
        session_id=session_id,
        event_type="state",
        details={"from": old_state, "to": new_state},
        level="debug"
    )


def log_violation(session_id: str, kind: str, payload: Dict[str, Any]):
    """Log a violation that passed the throttle"""
    log_monitor_event(
        session_id=session_id,
        event_type="violation",
        details={"kind": kind, **payload},
        level="warning"
    )


def log_fatal_error(session_id: str, error_type: str, reason: str):
    """Log an error that stopped monitoring"""
    log_monitor_event(
        session_id=session_id,
        event_type="fatal_error",
        details={"type": error_type, "reason": repr(reason)},
        level="error"
    )
