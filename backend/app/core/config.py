"""Application configuration."""

from typing import Literal
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Database
    database_url: str = Field(
        default="sqlite+aiosqlite:///./classroom.db",
        description="Database connection URL"
    )

    # Blob directory
    upload_root: str = Field(
        default="uploads",
        description="Root directory for uploaded files (uploads/<userId>/<reportId>/...)"
    )
    temporary_dir_name: str = Field(
        default=".temporary_uploads",
        description="Staging directory under upload_root for in-flight uploads"
    )
    max_upload_size: int = Field(
        default=5 * 1024 * 1024 * 1024,
        description="Maximum accepted upload size in bytes (5 GiB)"
    )

    # Workstation transcription engine
    workstation_url: str = Field(
        default="http://localhost:5000",
        description="Base URL of the Workstation transcription service"
    )
    workstation_timeout: float = Field(
        default=60.0,
        description="Timeout in seconds for requests to the Workstation"
    )
    relay_mode: Literal["tracked", "fire_and_forget"] = Field(
        default="tracked",
        description="tracked: start a job and record its id; fire_and_forget: plain POST"
    )

    # Status polling
    poll_interval: float = Field(
        default=5.0,
        description="Seconds between status queries while a transcription runs"
    )
    poll_timeout: float = Field(
        default=7200.0,
        description="Give up polling after this many seconds (0 disables)"
    )

    # CORS
    cors_origins: str = Field(
        default="http://localhost:5173,http://localhost:3000",
        description="Comma-separated list of allowed CORS origins"
    )

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS origins from comma-separated string."""
        return [origin.strip() for origin in self.cors_origins.split(",")]

    # Development Settings
    debug: bool = Field(default=False, description="Debug mode")
    log_level: str = Field(default="INFO", description="Log level")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is valid."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"log_level must be one of {valid_levels}")
        return v_upper

    @field_validator("max_upload_size", "workstation_timeout", "poll_interval")
    @classmethod
    def validate_positive(cls, v: float) -> float:
        """Validate value is positive."""
        if v <= 0:
            raise ValueError(f"Value must be positive, got {v}")
        return v

    @field_validator("poll_timeout")
    @classmethod
    def validate_poll_timeout(cls, v: float) -> float:
        """Validate poll timeout is not negative."""
        if v < 0:
            raise ValueError("poll_timeout must be zero (disabled) or positive")
        return v

    @field_validator("workstation_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        """Normalize the Workstation base URL."""
        return v.rstrip("/")


# Global settings instance
settings = Settings()
