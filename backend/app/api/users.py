"""User-scoped API endpoints."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.db.base import get_db
from backend.app.schemas.report import ReportListResponse, ReportResponse
from backend.app.services import report_store

router = APIRouter(prefix="/users", tags=["users"])


@router.get("/{user_id}/reports", response_model=ReportListResponse)
async def list_user_reports(
    user_id: str,
    db: AsyncSession = Depends(get_db),
) -> ReportListResponse:
    """List every report owned by a user."""
    reports = await report_store.list_reports(db, user_id)
    return ReportListResponse(
        reports=[ReportResponse.model_validate(report) for report in reports]
    )
