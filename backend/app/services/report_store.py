"""Report Store operations on top of the async SQLAlchemy session."""

import logging
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.exceptions import DuplicateReportError, PersistenceError, ReportNotFoundError
from backend.app.models.report import Report

logger = logging.getLogger(__name__)

# Fields of an engine status payload kept on the report
TRANSFER_FIELDS = ("status", "progress", "messages", "result")


async def get_report(db: AsyncSession, user_id: str, report_id: str) -> Report | None:
    """Return the report for ``(user_id, report_id)`` if it exists."""
    result = await db.execute(
        select(Report).where(
            Report.user_id == user_id,
            Report.report_id == report_id,
        )
    )
    return result.scalar_one_or_none()


async def require_report(db: AsyncSession, user_id: str, report_id: str) -> Report:
    """Like :func:`get_report` but raises ReportNotFoundError."""
    report = await get_report(db, user_id, report_id)
    if report is None:
        raise ReportNotFoundError(user_id, report_id)
    return report


async def create_report(
    db: AsyncSession,
    user_id: str,
    report_id: str,
    grade_level: str | None = None,
    subject: str | None = None,
    report_name: str | None = None,
) -> Report:
    """
    Create a new report.

    Raises:
        DuplicateReportError: If the user already has a report with this id
    """
    report = Report(
        user_id=user_id,
        report_id=report_id,
        grade_level=grade_level,
        subject=subject,
        report_name=report_name,
        files=[],
    )
    db.add(report)
    try:
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        raise DuplicateReportError(user_id, report_id) from e

    await db.refresh(report)
    logger.info(f"[STORE] Created report {report_id} for user {user_id}")
    return report


async def get_or_create_report(
    db: AsyncSession,
    user_id: str,
    report_id: str,
    **metadata: str | None,
) -> Report:
    """
    Return the existing report or create one from ``metadata``.

    A concurrent request may create the report between the lookup and the
    insert; the unique constraint then rejects ours and the winner is returned.
    """
    report = await get_report(db, user_id, report_id)
    if report is not None:
        return report
    try:
        return await create_report(db, user_id, report_id, **metadata)
    except DuplicateReportError:
        report = await get_report(db, user_id, report_id)
        if report is None:
            raise
        logger.info(f"[STORE] Report {report_id} for user {user_id} was created concurrently")
        return report


def merge_manifest(files: list[dict[str, Any]], entry: dict[str, Any]) -> list[dict[str, Any]]:
    """Return a new manifest with ``entry`` replacing the one of the same name, or appended."""
    merged = [dict(f) for f in files]
    for index, existing in enumerate(merged):
        if existing.get("fileName") == entry["fileName"]:
            merged[index] = dict(entry)
            return merged
    merged.append(dict(entry))
    return merged


async def upsert_manifest_entry(
    db: AsyncSession,
    report: Report,
    entry: dict[str, Any],
) -> list[dict[str, Any]]:
    """
    Record a file on the report, replacing any entry with the same ``fileName``.

    Raises:
        PersistenceError: If the update cannot be committed
    """
    # JSON columns are only flagged dirty on reassignment
    report.files = merge_manifest(report.files or [], entry)
    try:
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        raise PersistenceError("update the file manifest", original_error=e) from e
    await db.refresh(report)
    return report.files


async def record_transfer(
    db: AsyncSession,
    report: Report,
    transfer_data: dict[str, Any],
    audio_file: str,
) -> Report:
    """Store the state of a newly started transcription job on the report."""
    report.transfer_data = dict(transfer_data)
    report.status = transfer_data.get("status")
    report.audio_file = audio_file
    try:
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        raise PersistenceError("record the transcription job", original_error=e) from e
    await db.refresh(report)
    return report


async def update_transfer(db: AsyncSession, report: Report, update: dict[str, Any]) -> Report:
    """Merge a job status update into the report's transfer data."""
    transfer_data = dict(report.transfer_data or {})
    for field in TRANSFER_FIELDS:
        if update.get(field) is not None:
            transfer_data[field] = update[field]

    report.transfer_data = transfer_data
    if update.get("status") is not None:
        report.status = update["status"]
    try:
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        raise PersistenceError("update the transcription status", original_error=e) from e
    await db.refresh(report)
    logger.info(
        f"[STORE] Report {report.report_id} transfer now "
        f"status={transfer_data.get('status')} progress={transfer_data.get('progress')}"
    )
    return report


async def update_metadata(
    db: AsyncSession,
    report: Report,
    grade_level: str | None = None,
    subject: str | None = None,
    report_name: str | None = None,
) -> Report:
    """Update the editable descriptive fields of a report; ``None`` leaves a field as is."""
    if grade_level is not None:
        report.grade_level = grade_level
    if subject is not None:
        report.subject = subject
    if report_name is not None:
        report.report_name = report_name
    try:
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        raise PersistenceError("update the report details", original_error=e) from e
    await db.refresh(report)
    return report


async def list_reports(db: AsyncSession, user_id: str) -> list[Report]:
    """All reports of a user, oldest first."""
    result = await db.execute(
        select(Report)
        .where(Report.user_id == user_id)
        .order_by(Report.created_at, Report.id)
    )
    return list(result.scalars().all())
