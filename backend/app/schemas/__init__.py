"""Pydantic schemas for API request/response validation."""

from backend.app.schemas.report import (
    ManifestEntry,
    ReportResponse,
    ReportListResponse,
    ReportUpdate,
    TransferUpdate,
    UploadResponse,
    SpeakerShare,
    TranscriptAnalysisResponse,
)

__all__ = [
    "ManifestEntry",
    "ReportResponse",
    "ReportListResponse",
    "ReportUpdate",
    "TransferUpdate",
    "UploadResponse",
    "SpeakerShare",
    "TranscriptAnalysisResponse",
]
