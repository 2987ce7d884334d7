"""Sync API endpoints."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from api.dependencies import get_sync_service
from api.helpers import get_current_user_id, http_error_for
from database import get_db
from schemas import ManualSyncResponse, SyncHistoryResponse, SyncStatisticsResponse
from services.exceptions import NotFoundError, ValidationError
from services.sync_history_service import SyncHistoryService
from services.sync_service import SyncService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/sync", tags=["sync"])


@router.post("", response_model=ManualSyncResponse)
def trigger_sync(
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    sync_service: SyncService = Depends(get_sync_service),
):
    """Sync the caller's linked accounts over the wide lookback window.

    Per-account failures are reported inside the returned report; the
    endpoint itself only fails for unexpected errors.
    """
    try:
        report = sync_service.trigger_manual_sync(db, user_id)
    except NotFoundError as e:
        raise http_error_for(e)
    except Exception as e:
        db.rollback()
        raise http_error_for(e)

    if report is None:
        return ManualSyncResponse(message="No linked accounts to sync")
    return ManualSyncResponse(
        message=f"Synced {report.total_accounts} accounts ({report.status})",
        report=report,
    )


@router.get("/history", response_model=SyncHistoryResponse)
def sync_history(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status: Optional[str] = Query(None, pattern="^(success|partial|failed)$"),
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    """Paginated sync reports, newest first."""
    try:
        history = SyncHistoryService.get_history(db, user_id, page=page, limit=limit, status=status)
    except ValidationError as e:
        raise http_error_for(e)
    return SyncHistoryResponse(
        data=history.data,
        total=history.total,
        page=history.page,
        limit=history.limit,
        total_pages=history.total_pages,
    )


@router.get("/statistics", response_model=SyncStatisticsResponse)
def sync_statistics(
    days: int = Query(30, ge=1, le=365),
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    """Success rate and volume over the last ``days`` days."""
    return SyncHistoryService.get_statistics(db, user_id, days=days)
