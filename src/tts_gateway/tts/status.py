"""
Terminal status reports for document jobs.

The REST backend is told when a document job finishes:

    POST {endpoint}/text-to-speech?token=<token>
    {"speechId": ..., "audioFileName": ..., "speechMarksFileName": ..., "state": "COMPLETED"}

Only an HTTP 200 counts as accepted.
"""
from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional, Protocol

import httpx

from tts_gateway.core.config import Defaults, StatusConfig
from tts_gateway.core.errors import ConfigurationError
from tts_gateway.core.logging import get_logger, info, warn

_LOG = get_logger("tts-gateway.status")


class StatusState(str, Enum):
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class StatusReporter(Protocol):
    async def report(
        self,
        job_id: str,
        state: StatusState,
        token: Optional[str] = None,
        audio_path: Optional[str] = None,
        speech_marks_path: Optional[str] = None,
    ) -> bool:
        ...


class HttpStatusReporter:
    """Reports job state to the REST backend over HTTP."""

    def __init__(
        self,
        endpoint: str,
        timeout_s: float = Defaults.STATUS_TIMEOUT_S,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not endpoint:
            raise ConfigurationError("status.endpoint (REST_BACKEND_ENDPOINT) is not configured")
        self.endpoint = endpoint.rstrip("/")
        self._client = httpx.AsyncClient(timeout=float(timeout_s), transport=transport)

    @classmethod
    def from_config(cls, config: StatusConfig, transport=None) -> "HttpStatusReporter":
        return cls(config.endpoint, timeout_s=config.timeout_s, transport=transport)

    async def report(
        self,
        job_id: str,
        state: StatusState,
        token: Optional[str] = None,
        audio_path: Optional[str] = None,
        speech_marks_path: Optional[str] = None,
    ) -> bool:
        """
        Send one status report.

        Returns:
            True if the backend answered 200. Transport errors count as
            a rejection and are logged.
        """
        payload: Dict[str, Any] = {
            "speechId": job_id,
            "audioFileName": audio_path,
            "speechMarksFileName": speech_marks_path,
            "state": StatusState(state).value,
        }
        params = {"token": token} if token else None
        try:
            response = await self._client.post(f"{self.endpoint}/text-to-speech", params=params, json=payload)
        except httpx.HTTPError as e:
            warn(_LOG, "status_report_error", job=job_id, state=payload["state"], error=str(e))
            return False

        accepted = response.status_code == 200
        if accepted:
            info(_LOG, "status_reported", job=job_id, state=payload["state"])
        else:
            warn(_LOG, "status_rejected", job=job_id, state=payload["state"], status=response.status_code)
        return accepted

    async def aclose(self) -> None:
        await self._client.aclose()
