"""Report model."""

from datetime import datetime
from enum import Enum
from typing import Any

from sqlalchemy import JSON, DateTime, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from backend.app.db.base import Base


class TranscriptionProgress(str, Enum):
    """Stages reported by the Workstation for a transcription job, in order."""
    STARTED = "started"
    SPLITTING = "splitting"
    LOADING_NEMO = "loading-nemo"
    TRANSCRIBING = "transcribing"
    ALIGNING = "aligning"
    FINISHED = "finished"


class Report(Base):
    """
    Report model aggregating one teacher's uploads for a recording session.

    Attributes:
        id: Surrogate primary key
        user_id: Owner identifier (from the identity provider)
        report_id: Client-chosen report identifier, unique per user
        grade_level: Free-form grade level
        subject: Free-form subject
        report_name: Display name
        status: Mirrors the latest transfer status reported by the Workstation
        audio_file: Name of the most recently relayed audio file
        files: Ordered manifest of uploaded files ({fileName, filePath, fileType})
        transfer_data: Transcription job state ({jobId, status, progress, messages, result})
        created_at: Creation timestamp
        updated_at: Last modification timestamp
    """

    __tablename__ = "reports"
    __table_args__ = (
        UniqueConstraint("user_id", "report_id", name="uix_user_report"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    report_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    grade_level: Mapped[str | None] = mapped_column(String(255), nullable=True)
    subject: Mapped[str | None] = mapped_column(String(255), nullable=True)
    report_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    status: Mapped[str | None] = mapped_column(String(50), nullable=True)
    audio_file: Mapped[str | None] = mapped_column(String(255), nullable=True)
    files: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    transfer_data: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        default=datetime.utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
    )

    def __repr__(self) -> str:
        return f"<Report(user_id={self.user_id}, report_id={self.report_id}, status={self.status})>"
