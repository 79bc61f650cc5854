"""
Proctor Event Reporter - Forwards violations to the exam backend's proctor log

POST {base_url}/proctor/log with {submissionId, event, severity, meta}.
Reporting is best-effort: failures are logged and never interrupt the exam.
"""

import logging
from typing import Any, Dict, Optional

import httpx

from .events import SEVERITY, ViolationKind

logger = logging.getLogger(__name__)

TIMEOUT_SECONDS = 5.0


class ProctorEventReporter:
    """Sends violation events for one exam submission"""

    def __init__(
        self,
        base_url: str,
        submission_id: str,
        auth_token: Optional[str] = None,
        timeout: float = TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.base_url = base_url.rstrip("/")
        self.submission_id = submission_id
        self.auth_token = auth_token
        self.timeout = timeout
        self._transport = transport
        self.sent_count = 0
        self.failed_count = 0

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.auth_token:
            headers["Authorization"] = f"Bearer {self.auth_token}"
        return headers

    async def report(self, kind: ViolationKind, payload: Dict[str, Any]) -> bool:
        """
        Log one violation on the backend.

        Usable directly as a monitor ``on_violation`` callback.

        Returns:
            True if the backend accepted the event
        """
        kind = ViolationKind(kind)
        body = {
            "submissionId": self.submission_id,
            "event": kind.value,
            "severity": SEVERITY[kind],
            "meta": dict(payload)
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(
                    f"{self.base_url}/proctor/log",
                    json=body,
                    headers=self._headers()
                )
        except httpx.TimeoutException:
            self.failed_count += 1
            logger.warning(f"Proctor log timed out for {kind.value}")
            return False
        except httpx.HTTPError as e:
            self.failed_count += 1
            logger.warning(f"Proctor log request failed: {e}")
            return False

        if response.status_code >= 400:
            self.failed_count += 1
            logger.warning(f"Proctor log rejected ({response.status_code}): {response.text[:200]}")
            return False

        self.sent_count += 1
        return True
