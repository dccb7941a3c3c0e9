"""Relay of stored audio files to the Workstation."""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.config import settings
from backend.app.models.report import Report
from backend.app.services import report_store
from backend.app.services.workstation import WorkstationClient

logger = logging.getLogger(__name__)


@dataclass
class RelayOutcome:
    """Result of forwarding a file to the Workstation."""

    transfer_status: str = "successful"
    job_id: str | None = None
    transfer_data: dict[str, Any] | None = field(default=None)


class RelayDispatcher:
    """
    Forwards audio files to the Workstation.

    Two modes, selected by ``settings.relay_mode``:

    - ``fire_and_forget``: POST the file, keep nothing but the outcome
    - ``tracked``: start a transcription job, query its status once and store
      ``{jobId, status, progress, messages, fileName}`` on the report
    """

    def __init__(self, client: WorkstationClient, mode: str | None = None):
        self.client = client
        self.mode = mode or settings.relay_mode

    async def dispatch(
        self,
        db: AsyncSession,
        report: Report,
        path: Path,
        file_name: str,
        file_type: str | None = None,
    ) -> RelayOutcome:
        """
        Forward ``path`` for transcription.

        Raises:
            TransferError: If the Workstation cannot be reached
            PersistenceError: If the job state cannot be stored
        """
        if self.mode == "fire_and_forget":
            await self.client.submit(path, report.report_id, file_type)
            logger.info(f"[RELAY] Transferred {file_name} for report {report.report_id}")
            return RelayOutcome()

        job_id = await self.client.start_transcription(path, report.report_id, file_type)
        job = await self.client.get_transcription_status(job_id)

        # The transcript itself is only stored once the job finishes
        transfer_data = {key: value for key, value in job.items() if key != "result"}
        transfer_data["jobId"] = job_id
        transfer_data["fileName"] = file_name

        await report_store.record_transfer(db, report, transfer_data, audio_file=file_name)
        logger.info(
            f"[RELAY] Report {report.report_id} job {job_id} "
            f"status={transfer_data.get('status')} progress={transfer_data.get('progress')}"
        )
        return RelayOutcome(job_id=job_id, transfer_data=transfer_data)
