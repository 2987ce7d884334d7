"""SyncReport model - the outcome of syncing one user's linked accounts."""

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, Integer, JSON, String, Text

from database import Base
from integrations.parsing_utils import ensure_utc
from models.utils import generate_uuid

SUCCESS = "success"
PARTIAL = "partial"
FAILED = "failed"

SYNC_TYPE_AUTOMATIC = "automatic"
SYNC_TYPE_MANUAL = "manual"


def derive_report_status(successful_accounts: int, failed_accounts: int) -> str:
    """Status from account outcomes: all ok -> success, none ok -> failed, else partial."""
    if failed_accounts == 0:
        return SUCCESS
    if successful_accounts == 0:
        return FAILED
    return PARTIAL


class SyncReport(Base):
    """One report per (user, sync run).

    ``account_results`` holds the per-account outcome list; ``status`` is
    written from :func:`derive_report_status` and never set directly.
    """

    __tablename__ = "sync_reports"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(String, nullable=False)  # "success" | "partial" | "failed"
    sync_type = Column(String, nullable=False, default=SYNC_TYPE_AUTOMATIC)  # "automatic" | "manual"
    sync_started_at = Column(DateTime, nullable=False, index=True)
    sync_completed_at = Column(DateTime, nullable=False)
    date_from = Column(DateTime, nullable=True)
    date_to = Column(DateTime, nullable=True)
    total_accounts = Column(Integer, default=0, nullable=False)
    successful_accounts = Column(Integer, default=0, nullable=False)
    failed_accounts = Column(Integer, default=0, nullable=False)
    total_new_transactions = Column(Integer, default=0, nullable=False)
    total_duplicates = Column(Integer, default=0, nullable=False)
    total_pending_duplicates = Column(Integer, default=0, nullable=False)
    account_results = Column(JSON, nullable=True)  # list[dict], one entry per account
    error_message = Column(Text, nullable=True)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))

    @property
    def duration_seconds(self) -> float | None:
        if self.sync_started_at is None or self.sync_completed_at is None:
            return None
        return (ensure_utc(self.sync_completed_at) - ensure_utc(self.sync_started_at)).total_seconds()
