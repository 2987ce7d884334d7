"""Cron trigger for the scheduled bank sync."""

import hmac
import logging

from fastapi import APIRouter, Depends, Header, HTTPException

from api.dependencies import get_sync_service
from config import settings
from schemas import CronResponse
from services.sync_service import SyncService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/cron", tags=["cron"])


@router.post("/daily-bank-sync", response_model=CronResponse)
def trigger_daily_bank_sync(
    x_cron_secret: str | None = Header(default=None),
    sync_service: SyncService = Depends(get_sync_service),
):
    """Run the daily sync for all users.

    Guarded by the ``x-cron-secret`` header.  Always answers 200 with a
    structured body once authenticated; a failed run is reported as
    ``{"status": "error"}``.

    Raises:
        HTTPException: 401 if no secret is configured or the header does not match.
    """
    expected = settings.CRON_SECRET
    if not expected:
        logger.error("CRON_SECRET not configured")
        raise HTTPException(status_code=401, detail="Cron endpoint not properly configured")

    if not x_cron_secret or not hmac.compare_digest(
        x_cron_secret.encode("utf-8"), expected.encode("utf-8")
    ):
        logger.warning("Unauthorized cron request - invalid secret")
        raise HTTPException(status_code=401, detail="Invalid cron secret")

    logger.info("Triggering daily bank sync")
    try:
        summary = sync_service.run_daily_sync()
    except Exception:
        logger.error("Daily bank sync failed", exc_info=True)
        return CronResponse(
            status="error",
            message="Daily bank sync failed. Check the server logs for details.",
        )

    return CronResponse(
        status="success",
        message=(
            f"Daily bank sync completed: {summary.users_processed} users synced, "
            f"{summary.users_failed} failed, {summary.reports_created} reports created"
        ),
    )
