"""Report upload, status and transcript API endpoints."""

import logging
from urllib.parse import quote

from fastapi import APIRouter, Depends, File, Form, UploadFile
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.exceptions import ValidationError
from backend.app.db.base import get_db
from backend.app.schemas.report import (
    ReportListResponse,
    ReportResponse,
    ReportUpdate,
    TranscriptAnalysisResponse,
    TransferUpdate,
    UploadResponse,
)
from backend.app.services import report_store, transcript_analysis
from backend.app.services.blob_directory import BlobDirectory
from backend.app.services.intake import IntakeForm, IntakeHandler
from backend.app.services.relay import RelayDispatcher
from backend.app.services.status_poller import parse_progress
from backend.app.services.workstation import WorkstationClient, get_workstation_client

router = APIRouter(prefix="/reports", tags=["reports"])
logger = logging.getLogger(__name__)


def get_blob_directory() -> BlobDirectory:
    """Blob directory rooted at the configured upload root."""
    return BlobDirectory()


def get_relay_dispatcher(
    client: WorkstationClient = Depends(get_workstation_client),
) -> RelayDispatcher:
    """Relay dispatcher bound to the Workstation client."""
    return RelayDispatcher(client)


def get_intake_handler(
    db: AsyncSession = Depends(get_db),
    blobs: BlobDirectory = Depends(get_blob_directory),
    relay: RelayDispatcher = Depends(get_relay_dispatcher),
) -> IntakeHandler:
    return IntakeHandler(db, blobs, relay)


@router.post(
    "/{report_id}/users/{user_id}",
    response_model=UploadResponse,
    response_model_exclude_none=True,
)
async def create_report(
    report_id: str,
    user_id: str,
    file: UploadFile | None = File(None),
    file_name: str | None = Form(None, alias="fileName"),
    grade_level: str | None = Form(None, alias="gradeLevel"),
    subject: str | None = Form(None),
    report_name: str | None = Form(None, alias="reportName"),
    handler: IntakeHandler = Depends(get_intake_handler),
) -> UploadResponse:
    """Create a report, optionally with a first file; fails if the report already exists."""
    form = IntakeForm(
        file_name=file_name,
        grade_level=grade_level,
        subject=subject,
        report_name=report_name,
    )
    return await handler.handle(user_id, report_id, file, form, require_file=False, create_only=True)


@router.post(
    "/{report_id}/users/{user_id}/files",
    response_model=UploadResponse,
    response_model_exclude_none=True,
)
async def upload_file(
    report_id: str,
    user_id: str,
    file: UploadFile | None = File(None),
    file_name: str | None = Form(None, alias="fileName"),
    grade_level: str | None = Form(None, alias="gradeLevel"),
    subject: str | None = Form(None),
    report_name: str | None = Form(None, alias="reportName"),
    handler: IntakeHandler = Depends(get_intake_handler),
) -> UploadResponse:
    """Upload a file into a report, creating the report if needed. Same-named files are replaced."""
    form = IntakeForm(
        file_name=file_name,
        grade_level=grade_level,
        subject=subject,
        report_name=report_name,
    )
    return await handler.handle(user_id, report_id, file, form, require_file=True, create_only=False)


@router.get("/{report_id}/users/{user_id}/", response_model=ReportListResponse)
@router.get("/{report_id}/users/{user_id}", response_model=ReportListResponse, include_in_schema=False)
async def get_report_status(
    report_id: str,
    user_id: str,
    db: AsyncSession = Depends(get_db),
) -> ReportListResponse:
    """Current state of a report, including its transcription transfer data."""
    report = await report_store.get_report(db, user_id, report_id)
    reports = [ReportResponse.model_validate(report)] if report else []
    return ReportListResponse(reports=reports)


@router.patch("/{report_id}/users/{user_id}", response_model=ReportResponse)
async def update_report(
    report_id: str,
    user_id: str,
    update: ReportUpdate,
    db: AsyncSession = Depends(get_db),
) -> ReportResponse:
    """Save edited report metadata."""
    report = await report_store.require_report(db, user_id, report_id)
    report = await report_store.update_metadata(
        db,
        report,
        grade_level=update.grade_level,
        subject=update.subject,
        report_name=update.report_name,
    )
    return ReportResponse.model_validate(report)


@router.put("/{report_id}/users/{user_id}/transfer", response_model=ReportResponse)
async def push_transfer_status(
    report_id: str,
    user_id: str,
    update: TransferUpdate,
    db: AsyncSession = Depends(get_db),
) -> ReportResponse:
    """Record a status update for the report's transcription job."""
    report = await report_store.require_report(db, user_id, report_id)
    # Unknown stages are stored as reported but logged
    parse_progress(update.progress)
    report = await report_store.update_transfer(db, report, update.model_dump(exclude_none=True))
    return ReportResponse.model_validate(report)


@router.post("/{report_id}/users/{user_id}/transfer/refresh", response_model=ReportResponse)
async def refresh_transfer_status(
    report_id: str,
    user_id: str,
    db: AsyncSession = Depends(get_db),
    client: WorkstationClient = Depends(get_workstation_client),
) -> ReportResponse:
    """Pull the current job status from the Workstation and store it."""
    report = await report_store.require_report(db, user_id, report_id)
    job_id = (report.transfer_data or {}).get("jobId")
    if not job_id:
        raise ValidationError("Report has no transcription job")

    job = await client.get_transcription_status(job_id)
    parse_progress(job.get("progress"))
    report = await report_store.update_transfer(db, report, job)
    return ReportResponse.model_validate(report)


async def _transcript(db: AsyncSession, user_id: str, report_id: str) -> list[dict]:
    report = await report_store.require_report(db, user_id, report_id)
    segments = (report.transfer_data or {}).get("result")
    if not segments:
        raise ValidationError("Transcript is not available yet")
    return segments


@router.get("/{report_id}/users/{user_id}/analysis", response_model=TranscriptAnalysisResponse)
async def get_transcript_analysis(
    report_id: str,
    user_id: str,
    limit: int = 100,
    db: AsyncSession = Depends(get_db),
) -> TranscriptAnalysisResponse:
    """Talking distribution and word frequencies of the finished transcript."""
    segments = await _transcript(db, user_id, report_id)
    return TranscriptAnalysisResponse(**transcript_analysis.analyze(segments, limit))


@router.get("/{report_id}/users/{user_id}/transcript.csv")
async def download_transcript_csv(
    report_id: str,
    user_id: str,
    db: AsyncSession = Depends(get_db),
) -> Response:
    """Download the transcript as CSV."""
    segments = await _transcript(db, user_id, report_id)
    filename_encoded = quote(f"transcript_{report_id}.csv")

    return Response(
        content=transcript_analysis.transcript_csv(segments).encode("utf-8"),
        media_type="text/csv; charset=utf-8",
        headers={
            "Content-Disposition": f"attachment; filename*=UTF-8''{filename_encoded}",
        }
    )
