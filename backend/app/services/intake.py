"""
Upload intake: validate, stage, store and (for audio) relay an uploaded file.

Both upload routes go through :class:`IntakeHandler`; they only differ in
whether a file is mandatory and whether an existing report is an error.
"""

import logging
from dataclasses import dataclass
from pathlib import Path

from fastapi import UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.exceptions import (
    DuplicateReportError,
    PersistenceError,
    UnsupportedTypeError,
    UploadFailureError,
    ValidationError,
)
from backend.app.schemas.report import UploadResponse
from backend.app.services import report_store
from backend.app.services.blob_directory import BlobDirectory, safe_component
from backend.app.services.relay import RelayDispatcher

logger = logging.getLogger(__name__)

AUDIO_TYPES = frozenset({
    "audio/mpeg",
    "audio/wav",
    "audio/aac",
    "audio/ogg",
    "audio/webm",
})

ALLOWED_TYPES = frozenset({
    "application/json",
    "text/csv",
    "application/pdf",
}) | AUDIO_TYPES


@dataclass
class IntakeForm:
    """Optional form fields sent along with an upload."""

    file_name: str | None = None
    grade_level: str | None = None
    subject: str | None = None
    report_name: str | None = None

    def report_metadata(self) -> dict[str, str | None]:
        return {
            "grade_level": self.grade_level,
            "subject": self.subject,
            "report_name": self.report_name,
        }


@dataclass
class _TransferFlags:
    """Partial-state flags reported to the client when a later step fails."""

    upload_status: str | None = None
    transfer_status: str | None = None

    def failed(self) -> tuple[str | None, str | None]:
        upload_status = "failed" if self.upload_status == "pending" else self.upload_status
        transfer_status = self.transfer_status
        if upload_status == "successful" and transfer_status == "pending":
            transfer_status = "failed"
        return upload_status, transfer_status


def is_audio(file_type: str | None) -> bool:
    return file_type in AUDIO_TYPES


class IntakeHandler:
    """Handles one upload request against the report store and blob directory."""

    def __init__(self, db: AsyncSession, blobs: BlobDirectory, relay: RelayDispatcher):
        self.db = db
        self.blobs = blobs
        self.relay = relay

    async def handle(
        self,
        user_id: str | None,
        report_id: str | None,
        upload: UploadFile | None,
        form: IntakeForm,
        require_file: bool = True,
        create_only: bool = False,
    ) -> UploadResponse:
        """
        Run the intake workflow.

        Args:
            user_id: Owner of the report
            report_id: Report the file belongs to
            upload: The uploaded file, if any
            form: Optional form fields
            require_file: Reject requests without a file
            create_only: Reject requests for a report that already exists

        Raises:
            ValidationError: Missing identifier or file (nothing has been written)
            DuplicateReportError: ``create_only`` and the report exists
            UnsupportedTypeError: MIME type not allowed (staged file removed)
            PersistenceError: Moving the file or updating the manifest failed
            TransferError: The Workstation relay failed (the upload is kept)
        """
        user_id = (user_id or "").strip()
        report_id = (report_id or "").strip()
        has_file = upload is not None and bool(upload.filename)

        if not user_id:
            raise ValidationError("userId is required")
        if not report_id:
            raise ValidationError("reportId is required")
        if require_file and not has_file:
            raise ValidationError("File is required")
        safe_component(user_id, "userId")
        safe_component(report_id, "reportId")

        if create_only and await report_store.get_report(self.db, user_id, report_id):
            raise DuplicateReportError(user_id, report_id)

        data = {
            "userId": user_id,
            "reportId": report_id,
            "file": upload.filename if has_file else "No file uploaded",
            "gradeLevel": form.grade_level,
            "subject": form.subject,
            "reportName": form.report_name,
        }

        if not has_file:
            await report_store.create_report(self.db, user_id, report_id, **form.report_metadata())
            logger.info(f"[INTAKE] Created report {report_id} for user {user_id} without a file")
            return UploadResponse(
                flag=True,
                code=200,
                message="Database entry successfully created without file upload",
                data=data,
            )

        return await self._handle_file(user_id, report_id, upload, form, data, create_only)

    async def _handle_file(
        self,
        user_id: str,
        report_id: str,
        upload: UploadFile,
        form: IntakeForm,
        data: dict,
        create_only: bool,
    ) -> UploadResponse:
        flags = _TransferFlags(upload_status="pending")
        file_type = upload.content_type

        staged = await self.blobs.stage_upload(upload, user_id)

        # Until the relocation succeeds the staged copy is the only one
        try:
            if file_type not in ALLOWED_TYPES:
                logger.warning(f"[INTAKE] Rejected {upload.filename} of type {file_type} for user {user_id}")
                raise UnsupportedTypeError(file_type)

            if create_only:
                report = await report_store.create_report(self.db, user_id, report_id, **form.report_metadata())
            else:
                report = await report_store.get_or_create_report(
                    self.db, user_id, report_id, **form.report_metadata()
                )

            destination = self.blobs.destination_path(user_id, report_id, upload.filename, form.file_name)
            manifest_name = destination.stem if not form.file_name else safe_component(form.file_name, "fileName")
            data["fileName"] = form.file_name or destination.name

            try:
                self.blobs.relocate(staged, destination)
            except OSError as e:
                raise PersistenceError("move the uploaded file", original_error=e) from e
        except UploadFailureError as e:
            self.blobs.discard(staged)
            e.upload_status, e.transfer_status = flags.failed()
            e.data = data
            raise
        except Exception:
            self.blobs.discard(staged)
            raise

        try:
            files = await report_store.upsert_manifest_entry(
                self.db,
                report,
                {
                    "fileName": manifest_name,
                    "filePath": str(Path(destination).resolve()),
                    "fileType": file_type,
                },
            )
        except UploadFailureError as e:
            e.upload_status, e.transfer_status = flags.failed()
            e.data = data
            raise

        flags.upload_status = "successful"
        data["filePath"] = str(Path(destination).resolve())
        data["files"] = files
        logger.info(f"[INTAKE] Stored {destination.name} for report {report_id} (user {user_id})")

        if not is_audio(file_type):
            return UploadResponse(
                flag=True,
                code=200,
                message="File uploaded and database entry successfully created",
                data=data,
                upload_status=flags.upload_status,
            )

        flags.transfer_status = "pending"
        try:
            outcome = await self.relay.dispatch(
                self.db, report, destination, data["fileName"], file_type
            )
        except UploadFailureError as e:
            e.upload_status, e.transfer_status = flags.failed()
            e.data = data
            raise

        if outcome.job_id:
            data["job_id"] = outcome.job_id
            message = "File uploaded, database entry successfully created, and transcription started"
        else:
            message = "File uploaded, database entry successfully created, and file transferred successfully"

        return UploadResponse(
            flag=True,
            code=200,
            message=message,
            data=data,
            upload_status=flags.upload_status,
            transfer_status=outcome.transfer_status,
            transfer_data=outcome.transfer_data,
        )
