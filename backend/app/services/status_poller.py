"""
Client-side polling of a report's transcription progress.

The poller queries ``GET /reports/{reportId}/users/{userId}/`` at a fixed
interval, maps the reported stage to a 0-100 indicator and stops once the
job finishes or fails. Only one request is in flight at a time; cancelling
the task running :meth:`StatusPoller.run` stops the loop.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

import httpx

from backend.app.core.config import settings
from backend.app.core.exceptions import PollTimeoutError, TranscriptionFailedError, TransferError
from backend.app.models.report import TranscriptionProgress

logger = logging.getLogger(__name__)

PROGRESS_INDICATORS: dict[TranscriptionProgress, int] = {
    TranscriptionProgress.STARTED: 0,
    TranscriptionProgress.SPLITTING: 20,
    TranscriptionProgress.LOADING_NEMO: 40,
    TranscriptionProgress.TRANSCRIBING: 60,
    TranscriptionProgress.ALIGNING: 80,
    TranscriptionProgress.FINISHED: 100,
}

FAILED_STATUSES = frozenset({"failed", "error"})


def parse_progress(value: str | None) -> TranscriptionProgress | None:
    """Return the enum member for ``value``, or None (logged) if it is not a known stage."""
    if value is None:
        return None
    try:
        return TranscriptionProgress(value)
    except ValueError:
        logger.warning(f"[POLL] Unrecognized transcription progress: {value!r}")
        return None


def progress_indicator(value: str | None) -> int | None:
    """Map a progress stage to its indicator value; unknown stages map to None."""
    stage = parse_progress(value)
    if stage is None:
        return None
    return PROGRESS_INDICATORS[stage]


@dataclass
class PollUpdate:
    """Snapshot of one status query."""

    progress: str | None
    indicator: int
    status: str | None
    messages: Any = None


class StatusPoller:
    """
    Poll a report until its transcription finishes.

    Examples:
        >>> poller = StatusPoller("http://localhost:8000", "r1", "u1")
        >>> transcript = await poller.run(on_update=print)
    """

    def __init__(
        self,
        base_url: str,
        report_id: str,
        user_id: str,
        interval: float | None = None,
        timeout: float | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.report_id = report_id
        self.user_id = user_id
        self.interval = settings.poll_interval if interval is None else interval
        self.timeout = settings.poll_timeout if timeout is None else timeout
        self.client = client
        self.indicator = 0

    @property
    def status_url(self) -> str:
        return f"{self.base_url}/reports/{self.report_id}/users/{self.user_id}/"

    async def fetch(self) -> dict[str, Any]:
        """
        Query the report once and return its transfer data.

        Raises:
            TransferError: If the request fails or the report has no transfer data
        """
        try:
            if self.client is not None:
                response = await self.client.get(self.status_url)
            else:
                async with httpx.AsyncClient() as client:
                    response = await client.get(self.status_url)
            response.raise_for_status()
            reports = response.json()["reports"]
        except (httpx.HTTPError, ValueError, KeyError) as e:
            raise TransferError("status query", original_error=e) from e

        if not reports or not reports[0].get("transferData"):
            raise TransferError("status query", original_error=ValueError("report has no transfer data"))
        return reports[0]["transferData"]

    def apply(self, transfer_data: dict[str, Any]) -> PollUpdate:
        """Update the indicator from one status snapshot; unknown stages keep the previous value."""
        progress = transfer_data.get("progress")
        indicator = progress_indicator(progress)
        if indicator is not None:
            self.indicator = indicator
        return PollUpdate(
            progress=progress,
            indicator=self.indicator,
            status=transfer_data.get("status"),
            messages=transfer_data.get("messages"),
        )

    async def run(
        self,
        on_update: Callable[[PollUpdate], Awaitable[None] | None] | None = None,
    ) -> list[dict[str, Any]]:
        """
        Poll until the job reaches a terminal state.

        Returns:
            The transcript segments of the finished job

        Raises:
            TranscriptionFailedError: The job stalled at ``started`` or reported a failure
            PollTimeoutError: The job did not finish within ``timeout`` seconds
            TransferError: A status query failed
        """
        started_at = time.monotonic()
        ticks = 0
        logger.info(f"[POLL] Watching report {self.report_id} every {self.interval}s")

        while True:
            await asyncio.sleep(self.interval)
            transfer_data = await self.fetch()
            ticks += 1
            update = self.apply(transfer_data)

            if on_update is not None:
                callback_result = on_update(update)
                if asyncio.iscoroutine(callback_result):
                    await callback_result

            if update.progress == TranscriptionProgress.FINISHED.value:
                logger.info(f"[POLL] Report {self.report_id} finished")
                return transfer_data.get("result") or []

            # The first query may still see the record written at dispatch;
            # "started" on any later tick means the engine stalled
            stalled = update.progress == TranscriptionProgress.STARTED.value and ticks > 1
            if stalled or update.status in FAILED_STATUSES:
                self.indicator = 0
                logger.error(f"[POLL] Engine failed to transcribe report {self.report_id}: {update.messages}")
                raise TranscriptionFailedError(update.progress, update.messages)

            if self.timeout and time.monotonic() - started_at >= self.timeout:
                raise PollTimeoutError(self.timeout, update.progress)
