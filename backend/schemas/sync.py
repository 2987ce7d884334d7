"""Pydantic schemas for sync reports and the cron trigger."""

from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel


class SyncReportResponse(BaseModel):
    """Response schema for one sync report."""

    id: str
    status: str
    sync_type: str
    sync_started_at: datetime
    sync_completed_at: datetime
    total_accounts: int
    successful_accounts: int
    failed_accounts: int
    total_new_transactions: int
    total_duplicates: int
    total_pending_duplicates: int
    account_results: Optional[list[dict[str, Any]]] = None
    error_message: Optional[str] = None

    model_config = {"from_attributes": True}


class ManualSyncResponse(BaseModel):
    """Result of a manual sync; ``report`` is None when nothing is linked."""

    message: str
    report: Optional[SyncReportResponse] = None


class SyncHistoryResponse(BaseModel):
    data: list[SyncReportResponse]
    total: int
    page: int
    limit: int
    total_pages: int


class SyncStatisticsResponse(BaseModel):
    total_syncs: int
    successful_syncs: int
    failed_syncs: int
    partial_syncs: int
    success_rate: float
    total_new_transactions: int
    total_duplicates: int
    average_transactions_per_sync: int

    model_config = {"from_attributes": True}


class CronResponse(BaseModel):
    """Structured cron result; sync failures are reported here, not as 5xx."""

    status: Literal["success", "error"]
    message: str
