"""
HTTP client for the Workstation transcription engine.

Endpoints consumed:

- ``POST {base}/transcription/start_transcription`` (multipart ``file``, ``reportId``) -> ``{"job_id": ...}``
- ``GET {base}/transcription/get_transcription_status?job_id=...`` -> ``{"status", "progress", "messages", "result"?}``
"""

import logging
import mimetypes
import time
from pathlib import Path
from typing import Any

import httpx

from backend.app.core.config import settings
from backend.app.core.exceptions import TransferError

logger = logging.getLogger(__name__)


class WorkstationClient:
    """Thin async client for the Workstation API."""

    def __init__(self, base_url: str | None = None, timeout: float | None = None):
        """
        Initialize the client.

        Args:
            base_url: Workstation base URL (defaults to settings.workstation_url)
            timeout: Request timeout in seconds (defaults to settings.workstation_timeout)
        """
        self.base_url = (base_url or settings.workstation_url).rstrip("/")
        self.timeout = timeout or settings.workstation_timeout

    @property
    def start_url(self) -> str:
        return f"{self.base_url}/transcription/start_transcription"

    @property
    def status_url(self) -> str:
        return f"{self.base_url}/transcription/get_transcription_status"

    async def _post_file(
        self,
        url: str,
        path: Path,
        report_id: str,
        content_type: str | None = None,
    ) -> httpx.Response:
        content_type = content_type or mimetypes.guess_type(path.name)[0] or "application/octet-stream"
        start_time = time.time()

        with path.open("rb") as handle:
            async with httpx.AsyncClient() as client:
                response = await client.post(
                    url,
                    files={"file": (path.name, handle, content_type)},
                    data={"reportId": str(report_id)},
                    timeout=self.timeout,
                )
                response.raise_for_status()

        logger.info(f"[WORKSTATION] Sent {path.name} for report {report_id} in {time.time() - start_time:.2f}s")
        return response

    async def submit(self, path: Path, report_id: str, content_type: str | None = None) -> None:
        """
        Forward a file to the Workstation without tracking a job.

        Raises:
            TransferError: If the request fails
        """
        try:
            await self._post_file(self.base_url, path, report_id, content_type)
        except httpx.HTTPError as e:
            logger.error(f"[WORKSTATION] Transfer of {path.name} failed: {e}")
            raise TransferError("file transfer", original_error=e) from e

    async def start_transcription(
        self,
        path: Path,
        report_id: str,
        content_type: str | None = None,
    ) -> str:
        """
        Start a transcription job for a stored file.

        Returns:
            The job identifier assigned by the Workstation

        Raises:
            TransferError: If the request fails or no job id is returned
        """
        try:
            response = await self._post_file(self.start_url, path, report_id, content_type)
            job_id = response.json().get("job_id")
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"[WORKSTATION] start_transcription for {path.name} failed: {e}")
            raise TransferError("start_transcription", original_error=e) from e

        if not job_id:
            raise TransferError("start_transcription", original_error=ValueError("response has no job_id"))

        logger.info(f"[WORKSTATION] Job {job_id} started for report {report_id}")
        return str(job_id)

    async def get_transcription_status(self, job_id: str) -> dict[str, Any]:
        """
        Query the state of a transcription job.

        Raises:
            TransferError: If the request fails
        """
        try:
            async with httpx.AsyncClient() as client:
                response = await client.get(
                    self.status_url,
                    params={"job_id": job_id},
                    timeout=self.timeout,
                )
                response.raise_for_status()
                data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"[WORKSTATION] Status query for job {job_id} failed: {e}")
            raise TransferError("get_transcription_status", original_error=e) from e

        logger.debug(f"[WORKSTATION] Job {job_id}: {data.get('status')} / {data.get('progress')}")
        return data


# Global client instance
_workstation_client: WorkstationClient | None = None


def get_workstation_client() -> WorkstationClient:
    """Get or create the Workstation client (FastAPI dependency)."""
    global _workstation_client
    if _workstation_client is None:
        _workstation_client = WorkstationClient()
    return _workstation_client
