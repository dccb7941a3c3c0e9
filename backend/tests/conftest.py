"""Pytest configuration and fixtures."""

from pathlib import Path
from typing import Any, AsyncGenerator

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from backend.app.core.config import settings
from backend.app.core.exceptions import TransferError
from backend.app.db.base import Base, get_db
from backend.app.main import app
from backend.app.services.workstation import get_workstation_client


SAMPLE_TRANSCRIPT = [
    {"speaker": "SPEAKER_00", "start_time": 0.0, "end_time": 12.5, "text": "Good morning class, today we study photosynthesis."},
    {"speaker": "SPEAKER_01", "start_time": 12.5, "end_time": 15.0, "text": "What does a plant need?"},
    {"speaker": "SPEAKER_00", "start_time": 15.0, "end_time": 30.0, "text": "Plants need sunlight, water and carbon dioxide."},
]


class FakeWorkstationClient:
    """In-memory stand-in for the Workstation API."""

    def __init__(self):
        self.submitted: list[tuple[Path, str]] = []
        self.started: list[tuple[Path, str]] = []
        self.status_queries: list[str] = []
        self.job_status: dict[str, Any] = {
            "status": "processing",
            "progress": "splitting",
            "messages": ["Splitting audio"],
            "result": None,
        }
        self.fail = False

    async def submit(self, path: Path, report_id: str, content_type: str | None = None) -> None:
        if self.fail:
            raise TransferError("file transfer", original_error=ConnectionError("workstation down"))
        self.submitted.append((Path(path), report_id))

    async def start_transcription(self, path: Path, report_id: str, content_type: str | None = None) -> str:
        if self.fail:
            raise TransferError("start_transcription", original_error=ConnectionError("workstation down"))
        self.started.append((Path(path), report_id))
        return f"job-{len(self.started)}"

    async def get_transcription_status(self, job_id: str) -> dict[str, Any]:
        if self.fail:
            raise TransferError("get_transcription_status", original_error=ConnectionError("workstation down"))
        self.status_queries.append(job_id)
        return dict(self.job_status)


@pytest.fixture
def sample_transcript() -> list[dict[str, Any]]:
    """Transcript segments as returned by the Workstation."""
    return [dict(segment) for segment in SAMPLE_TRANSCRIPT]


@pytest.fixture
def upload_root(tmp_path, monkeypatch) -> Path:
    """Point the blob directory at a per-test temporary directory."""
    root = tmp_path / "uploads"
    monkeypatch.setattr(settings, "upload_root", str(root))
    return root


@pytest.fixture
def fake_workstation() -> FakeWorkstationClient:
    return FakeWorkstationClient()


@pytest.fixture(scope="function")
async def test_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Create a test database session.

    Each test gets a fresh database with all tables created.
    """
    # Use in-memory SQLite for tests
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        poolclass=StaticPool,
    )

    # Create all tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    # Create session factory
    async_session = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    # Provide session to test
    async with async_session() as session:
        yield session

    # Cleanup
    await engine.dispose()


@pytest.fixture(scope="function")
async def test_client_with_db(
    upload_root: Path,
    fake_workstation: FakeWorkstationClient,
) -> AsyncGenerator[AsyncClient, None]:
    """
    Create test client with in-memory database.

    This fixture creates a fresh test database for each test, overrides the
    app's database dependency and replaces the Workstation with a fake.
    """
    # Create test database engine
    test_engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        poolclass=StaticPool,
    )

    # Create all tables
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    # Create session factory
    TestSessionLocal = async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    # Override get_db dependency
    async def override_get_db():
        async with TestSessionLocal() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_workstation_client] = lambda: fake_workstation

    # Create test client
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    # Cleanup
    app.dependency_overrides.clear()
    await test_engine.dispose()
