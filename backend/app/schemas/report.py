"""Report-related schemas."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base schema serialising field names in camelCase for the frontend."""

    model_config = {
        "from_attributes": True,
        "alias_generator": to_camel,
        "populate_by_name": True,
    }


class ManifestEntry(CamelModel):
    """One uploaded file recorded on a report."""

    file_name: str = Field(..., description="Name the file is tracked under")
    file_path: str = Field(..., description="Location in the blob directory")
    file_type: str = Field(..., description="Declared MIME type")


class ReportResponse(CamelModel):
    """Schema for report data in responses."""

    user_id: str = Field(..., description="Owner identifier")
    report_id: str = Field(..., description="Report identifier")
    grade_level: str | None = Field(None, description="Grade level")
    subject: str | None = Field(None, description="Subject")
    report_name: str | None = Field(None, description="Report name")
    status: str | None = Field(None, description="Latest transfer status")
    audio_file: str | None = Field(None, description="Most recently relayed audio file")
    files: list[ManifestEntry] = Field(default_factory=list, description="File manifest")
    transfer_data: dict[str, Any] | None = Field(None, description="Transcription job state")
    created_at: datetime = Field(..., description="Creation timestamp")
    updated_at: datetime = Field(..., description="Last update timestamp")


class ReportListResponse(BaseModel):
    """Schema for report list."""

    reports: list[ReportResponse] = Field(..., description="List of reports")


class ReportUpdate(CamelModel):
    """Schema for editing report metadata."""

    grade_level: str | None = None
    subject: str | None = None
    report_name: str | None = None


class TransferUpdate(BaseModel):
    """Status update for a transcription job, as reported by the Workstation."""

    status: str | None = Field(None, description="Job status")
    progress: str | None = Field(None, description="Job stage")
    messages: Any = Field(None, description="Engine messages")
    result: list[dict[str, Any]] | None = Field(None, description="Transcript segments")


class UploadResponse(BaseModel):
    """Envelope returned by the upload routes."""

    model_config = {"populate_by_name": True}

    flag: bool = Field(..., description="Whether the request succeeded")
    code: int = Field(..., description="HTTP status code mirrored in the body")
    message: str = Field(..., description="Human-readable outcome")
    data: dict[str, Any] = Field(default_factory=dict, description="Upload details")
    upload_status: str | None = Field(None, alias="uploadStatus")
    transfer_status: str | None = Field(None, alias="transferStatus")
    transfer_data: dict[str, Any] | None = Field(None, alias="transferData")


class SpeakerShare(CamelModel):
    """Talking time of one speaker."""

    speaker: str
    seconds: float
    share: float


class TranscriptAnalysisResponse(CamelModel):
    """Summary statistics of a finished transcript."""

    teacher: str | None = Field(None, description="Speaker with the most talking time")
    speakers: list[str] = Field(default_factory=list)
    talking_distribution: list[SpeakerShare] = Field(default_factory=list)
    word_frequencies: dict[str, int] = Field(default_factory=dict)
    segment_count: int = 0
