"""Database models."""

from backend.app.models.report import Report, TranscriptionProgress

__all__ = ["Report", "TranscriptionProgress"]
