"""Sync report persistence, paginated history and per-user statistics."""

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from sqlalchemy.orm import Session

from models import SyncReport
from models.sync_report import FAILED, SUCCESS, SYNC_TYPE_AUTOMATIC, derive_report_status
from services.exceptions import NotFoundError, ValidationError

logger = logging.getLogger(__name__)

ALL_FAILED_MESSAGE = "All accounts failed to sync"


@dataclass
class SyncHistoryPage:
    data: list[SyncReport] = field(default_factory=list)
    total: int = 0
    page: int = 1
    limit: int = 10
    total_pages: int = 0


@dataclass
class SyncStatistics:
    total_syncs: int = 0
    successful_syncs: int = 0
    failed_syncs: int = 0
    partial_syncs: int = 0
    success_rate: float = 0.0
    total_new_transactions: int = 0
    total_duplicates: int = 0
    average_transactions_per_sync: int = 0


class SyncHistoryService:
    """Service for sync reports."""

    @staticmethod
    def create_report(
        db: Session,
        user_id: str,
        account_results: list[dict],
        sync_started_at: datetime,
        sync_completed_at: datetime | None = None,
        sync_type: str = SYNC_TYPE_AUTOMATIC,
        date_from: datetime | None = None,
        date_to: datetime | None = None,
    ) -> SyncReport:
        """Persist a report built from per-account outcome dicts.

        Each outcome carries ``success``, ``new_transactions``,
        ``duplicates`` and ``pending_duplicates``.  Totals only count
        successful accounts.  Status is derived from the outcomes.

        Raises:
            ValidationError: If there are no account outcomes.
        """
        if not account_results:
            raise ValidationError("A sync report needs at least one account outcome")

        succeeded = [r for r in account_results if r.get("success")]
        successful = len(succeeded)
        failed = len(account_results) - successful
        status = derive_report_status(successful, failed)

        report = SyncReport(
            user_id=user_id,
            status=status,
            sync_type=sync_type,
            sync_started_at=sync_started_at,
            sync_completed_at=sync_completed_at or datetime.now(timezone.utc),
            date_from=date_from,
            date_to=date_to,
            total_accounts=len(account_results),
            successful_accounts=successful,
            failed_accounts=failed,
            total_new_transactions=sum(r.get("new_transactions", 0) for r in succeeded),
            total_duplicates=sum(r.get("duplicates", 0) for r in succeeded),
            total_pending_duplicates=sum(r.get("pending_duplicates", 0) for r in succeeded),
            account_results=account_results,
            error_message=ALL_FAILED_MESSAGE if status == FAILED else None,
        )
        db.add(report)
        db.flush()

        logger.info(
            "Sync report %s for user %s: %s (%d/%d accounts ok, %d new) in %.1fs",
            report.id, user_id, status, successful, len(account_results),
            report.total_new_transactions, report.duration_seconds,
        )
        return report

    @staticmethod
    def get_report(db: Session, report_id: str, user_id: str) -> SyncReport:
        report = (
            db.query(SyncReport)
            .filter(SyncReport.id == report_id, SyncReport.user_id == user_id)
            .first()
        )
        if not report:
            raise NotFoundError("Sync report not found", entity="sync_report")
        return report

    @staticmethod
    def get_history(
        db: Session,
        user_id: str,
        page: int = 1,
        limit: int = 10,
        status: str | None = None,
    ) -> SyncHistoryPage:
        """Reports for a user, newest first."""
        if page < 1 or limit < 1:
            raise ValidationError("page and limit must be positive")

        query = db.query(SyncReport).filter(SyncReport.user_id == user_id)
        if status:
            query = query.filter(SyncReport.status == status)

        total = query.count()
        data = (
            query.order_by(SyncReport.sync_started_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return SyncHistoryPage(
            data=data,
            total=total,
            page=page,
            limit=limit,
            total_pages=math.ceil(total / limit),
        )

    @staticmethod
    def get_statistics(
        db: Session, user_id: str, days: int = 30, now: datetime | None = None
    ) -> SyncStatistics:
        """Aggregate the user's reports from the last ``days`` days."""
        start = (now or datetime.now(timezone.utc)) - timedelta(days=days)
        reports = (
            db.query(SyncReport)
            .filter(SyncReport.user_id == user_id, SyncReport.sync_started_at >= start)
            .all()
        )
        total = len(reports)
        if total == 0:
            return SyncStatistics()

        successful = sum(1 for r in reports if r.status == SUCCESS)
        failed = sum(1 for r in reports if r.status == FAILED)
        new_transactions = sum(r.total_new_transactions or 0 for r in reports)

        return SyncStatistics(
            total_syncs=total,
            successful_syncs=successful,
            failed_syncs=failed,
            partial_syncs=total - successful - failed,
            success_rate=round(successful / total * 100, 2),
            total_new_transactions=new_transactions,
            total_duplicates=sum(r.total_duplicates or 0 for r in reports),
            average_transactions_per_sync=round(new_transactions / total),
        )
