#!/usr/bin/env python3
"""Run the bank sync outside the HTTP surface.

Without arguments this performs the scheduled run for every eligible user
(the same work as ``POST /api/cron/daily-bank-sync``).  With ``--user-id``
it runs one user's manual sync over the wide lookback window.

Usage:
    python -m scripts.run_daily_sync
    python -m scripts.run_daily_sync --user-id 6f1c...
"""

import argparse
import logging
import sys

from database import get_session_local
from logging_config import setup_logging
from services.exceptions import NotFoundError
from services.sync_service import SyncService

logger = logging.getLogger(__name__)


def run_all(service: SyncService) -> int:
    summary = service.run_daily_sync()
    print(
        f"Users processed: {summary.users_processed}  "
        f"failed: {summary.users_failed}  "
        f"reports: {summary.reports_created}  "
        f"connections updated: {summary.connections_updated}"
    )
    for error in summary.errors:
        print(f"  ! {error}")
    return 1 if summary.errors else 0


def run_user(service: SyncService, user_id: str) -> int:
    db = get_session_local()()
    try:
        report = service.trigger_manual_sync(db, user_id)
        if report is None:
            print(f"User {user_id} has no linked accounts")
            return 0
        print_report(report)
        return 0 if report.status != "failed" else 1
    except NotFoundError as e:
        print(f"Error: {e}")
        return 1
    finally:
        db.close()


def print_report(report) -> None:
    print(
        f"Report {report.id}: {report.status} "
        f"({report.successful_accounts}/{report.total_accounts} accounts, "
        f"{report.total_new_transactions} new transactions)"
    )
    for result in report.account_results or []:
        marker = "+" if result.get("success") else "!"
        detail = result.get("error") or f"{result.get('new_transactions', 0)} new"
        print(f"  {marker} {result.get('account_name')}: {detail}")


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Run the GoCardless bank sync")
    parser.add_argument(
        "--user-id",
        help="Sync one user over the manual lookback window instead of all users",
    )
    args = parser.parse_args(argv)

    setup_logging()
    service = SyncService()

    if args.user_id:
        return run_user(service, args.user_id)
    return run_all(service)


if __name__ == "__main__":
    sys.exit(main())
