"""Sync service - scheduled multi-user import of linked accounts.

``run_daily_sync`` is the scheduled entry point.  It walks every
non-demo user in turn and, for each linked account, calls the injected
Importer over a short lookback window.  Failure handling is layered:

- an account that fails is recorded in the user's report and its
  siblings still run;
- a user whose step throws is logged and the next user still runs;
- ``run_daily_sync`` itself never raises.

Each user's report is committed before reconciliation is triggered, so a
reconciliation failure can never lose the report.
"""

import logging
from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

from sqlalchemy.orm import Session

from config import settings
from database import get_session_local
from integrations.exceptions import AggregatorError, UpstreamError
from integrations.gocardless_client import GoCardlessClient, current_balance
from integrations.provider_protocol import (
    AccountBalance,
    AccountDetails,
    Importer,
    ImportOptions,
)
from models import Account, Connection, PaymentAccount, SyncReport, User
from models.account import BANK_ACCOUNT
from models.sync_report import SYNC_TYPE_AUTOMATIC, SYNC_TYPE_MANUAL
from services.connection_service import ConnectionService
from services.exceptions import NotFoundError
from services.import_service import PAYMENT_ACCOUNT, ImportService
from services.reconciliation_service import ReconciliationService
from services.sync_history_service import SyncHistoryService

logger = logging.getLogger(__name__)


@dataclass
class LinkedAccount:
    """A local account (bank, card or payment) linked to an aggregator account."""

    local_id: str
    gocardless_account_id: str
    name: str
    account_type: str  # "bank_account" | "credit_card" | "payment_account"
    connection_id: str | None = None


@dataclass
class AccountOutcome:
    """Result of importing one linked account; ``error`` set means it failed."""

    account_id: str
    gocardless_account_id: str
    account_name: str
    account_type: str
    success: bool
    new_transactions: int = 0
    duplicates: int = 0
    pending_duplicates: int = 0
    record_errors: list[str] = field(default_factory=list)
    error: str | None = None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class DailySyncSummary:
    """What one scheduled run did; failures are counted, never raised."""

    started_at: datetime
    completed_at: datetime | None = None
    users_processed: int = 0
    users_failed: int = 0
    reports_created: int = 0
    connections_updated: int = 0
    errors: list[str] = field(default_factory=list)


@dataclass
class ConnectedAccount:
    """A linked account with its live aggregator details and balances."""

    account_type: str
    local_id: str
    local_name: str
    gocardless_account_id: str
    details: AccountDetails
    balances: list[AccountBalance] = field(default_factory=list)


@dataclass
class BalanceSyncOutcome:
    account_type: str
    account_name: str
    gocardless_account_id: str
    success: bool
    new_balance: Decimal | None = None
    error: str | None = None


@dataclass
class BalanceSyncResult:
    """Per-account results of a balance-only refresh."""

    results: list[BalanceSyncOutcome] = field(default_factory=list)

    @property
    def total_accounts(self) -> int:
        return len(self.results)

    @property
    def successful(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if not r.success)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SyncService:
    """Orchestrates imports for all users and builds per-user sync reports."""

    def __init__(
        self,
        importer: Importer | None = None,
        client: GoCardlessClient | None = None,
        reconciliation_service: ReconciliationService | None = None,
        session_factory=None,
    ):
        """Initialize with injectable collaborators.

        Args:
            importer: Imports one linked account. Defaults to ImportService
                sharing ``client``.
            client: Aggregator client, used for balance refreshes.
            reconciliation_service: Follow-up step run after each report.
            session_factory: Callable returning a new Session for the
                scheduled run. Defaults to the application sessionmaker.
        """
        self.client = client or GoCardlessClient()
        self.importer = importer or ImportService(client=self.client)
        self.reconciliation_service = reconciliation_service or ReconciliationService()
        self._session_factory = session_factory

    def _new_session(self) -> Session:
        factory = self._session_factory or get_session_local()
        return factory()

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def run_daily_sync(self, now: datetime | None = None) -> DailySyncSummary:
        """Sync every eligible user over the periodic lookback window.

        Never raises: per-user failures are logged and counted, and any
        failure outside the user loop ends the run early with the error
        recorded in the summary.
        """
        now = now or _utcnow()
        summary = DailySyncSummary(started_at=now)
        date_from = (now - timedelta(hours=settings.SYNC_LOOKBACK_HOURS)).date()
        date_to = now.date()
        logger.info("Starting daily bank sync (transactions from %s)", date_from)

        db = None
        try:
            db = self._new_session()
            try:
                summary.connections_updated = ConnectionService.update_expiration_statuses(db, now)
                db.commit()
            except Exception as e:
                db.rollback()
                logger.error("Connection status update failed: %s", e, exc_info=True)
                summary.errors.append(f"connection statuses: {e}")

            users = self._eligible_users(db)
            logger.info("Found %d users for sync", len(users))

            for user in users:
                user_id = user.id
                try:
                    report = self.sync_user(
                        db, user, date_from, date_to, sync_type=SYNC_TYPE_AUTOMATIC
                    )
                    summary.users_processed += 1
                    if report is not None:
                        summary.reports_created += 1
                except Exception as e:
                    db.rollback()
                    summary.users_failed += 1
                    summary.errors.append(f"user {user_id}: {e}")
                    logger.error(
                        "Failed to sync accounts for user %s: %s", user_id, e, exc_info=True
                    )
        except Exception as e:
            logger.error("Daily bank sync failed: %s", e, exc_info=True)
            summary.errors.append(str(e))
        finally:
            if db is not None:
                db.close()

        summary.completed_at = _utcnow()
        logger.info(
            "Daily bank sync completed: %d users processed, %d failed, %d reports",
            summary.users_processed, summary.users_failed, summary.reports_created,
        )
        return summary

    def trigger_manual_sync(
        self, db: Session, user_id: str, now: datetime | None = None
    ) -> SyncReport | None:
        """Sync one user over the wide (first-run) window.

        Returns:
            The persisted report, or None when the user has no linked accounts.

        Raises:
            NotFoundError: If the user does not exist.
        """
        user = db.query(User).filter(User.id == user_id).first()
        if not user:
            raise NotFoundError("User not found", entity="user")

        now = now or _utcnow()
        date_from = (now - timedelta(days=settings.MANUAL_SYNC_LOOKBACK_DAYS)).date()
        return self.sync_user(db, user, date_from, now.date(), sync_type=SYNC_TYPE_MANUAL)

    def sync_user(
        self,
        db: Session,
        user: User,
        date_from: date,
        date_to: date,
        sync_type: str = SYNC_TYPE_AUTOMATIC,
    ) -> SyncReport | None:
        """Import every linked account of one user and persist a report.

        Accounts run sequentially.  The report is committed only when at
        least one account was attempted; reconciliation runs afterwards and
        its failures are logged, never raised.
        """
        started_at = _utcnow()
        user_id = user.id
        linked = self.linked_accounts(db, user_id)
        if not linked:
            logger.info("User %s has no linked accounts, skipping", user_id)
            return None

        logger.info(
            "Syncing %d accounts for user %s (from %s to %s)",
            len(linked), user_id, date_from, date_to,
        )
        outcomes = [
            self._sync_account(db, user_id, account, date_from, date_to)
            for account in linked
        ]

        report = SyncHistoryService.create_report(
            db,
            user_id,
            [o.to_dict() for o in outcomes],
            sync_started_at=started_at,
            sync_type=sync_type,
            date_from=datetime.combine(date_from, datetime.min.time(), tzinfo=timezone.utc),
            date_to=datetime.combine(date_to, datetime.min.time(), tzinfo=timezone.utc),
        )
        db.commit()

        self._reconcile(db, user_id)
        return report

    def get_connected_accounts(self, db: Session, user_id: str) -> list[ConnectedAccount]:
        """Linked accounts of a user with live details and balances.

        An account whose details or balances cannot be fetched is logged and
        left out.  Missing credentials still raise NotConfiguredError.
        """
        connected = []
        for account in self.linked_accounts(db, user_id):
            try:
                details = self.client.get_account_details(account.gocardless_account_id)
                balances = self.client.get_account_balances(account.gocardless_account_id)
            except UpstreamError as e:
                logger.warning(
                    "Failed to get details for %s %s: %s", account.account_type, account.name, e,
                )
                continue
            connected.append(
                ConnectedAccount(
                    account_type=account.account_type,
                    local_id=account.local_id,
                    local_name=account.name,
                    gocardless_account_id=account.gocardless_account_id,
                    details=details,
                    balances=balances,
                )
            )
        return connected

    def sync_account_balances(self, db: Session, user_id: str) -> BalanceSyncResult:
        """Refresh local balances from the aggregator without importing transactions.

        Payment accounts carry no local balance and are not included.  Each
        account's failure is recorded in its result; the others still run.
        """
        result = BalanceSyncResult()
        for account in self.linked_accounts(db, user_id):
            if account.account_type == PAYMENT_ACCOUNT:
                continue
            outcome = BalanceSyncOutcome(
                account_type=account.account_type,
                account_name=account.name,
                gocardless_account_id=account.gocardless_account_id,
                success=False,
            )
            try:
                outcome.new_balance = self._refresh_balance(db, account)
                outcome.success = True
            except Exception as e:
                outcome.error = str(e)
                logger.warning(
                    "Failed to sync balance for %s %s: %s", account.account_type, account.name, e,
                )
            result.results.append(outcome)

        logger.info(
            "Balance sync for user %s: %d/%d accounts updated",
            user_id, result.successful, result.total_accounts,
        )
        return result

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    @staticmethod
    def _eligible_users(db: Session) -> list[User]:
        return db.query(User).filter(User.is_demo_user.is_(False)).order_by(User.created_at, User.id).all()

    @staticmethod
    def linked_accounts(db: Session, user_id: str) -> list[LinkedAccount]:
        """Accounts of a user that are linked to the aggregator.

        Bank accounts and credit cards come first, then active payment
        accounts.  Accounts whose newest covering connection is
        DISCONNECTED are left out.
        """
        covering: dict[str, Connection] = {}
        connections = (
            db.query(Connection)
            .filter(Connection.user_id == user_id)
            .order_by(Connection.connected_at.desc())
            .all()
        )
        for conn in connections:
            for account_id in conn.account_ids:
                covering.setdefault(account_id, conn)

        candidates: list[LinkedAccount] = []
        accounts = (
            db.query(Account)
            .filter(Account.user_id == user_id, Account.gocardless_account_id.isnot(None))
            .order_by(Account.created_at, Account.id)
            .all()
        )
        for account in accounts:
            candidates.append(
                LinkedAccount(
                    local_id=account.id,
                    gocardless_account_id=account.gocardless_account_id,
                    name=account.name,
                    account_type=account.account_type or BANK_ACCOUNT,
                )
            )
        payment_accounts = (
            db.query(PaymentAccount)
            .filter(
                PaymentAccount.user_id == user_id,
                PaymentAccount.is_active.is_(True),
                PaymentAccount.gocardless_account_id.isnot(None),
            )
            .order_by(PaymentAccount.created_at, PaymentAccount.id)
            .all()
        )
        for payment_account in payment_accounts:
            candidates.append(
                LinkedAccount(
                    local_id=payment_account.id,
                    gocardless_account_id=payment_account.gocardless_account_id,
                    name=payment_account.display_name,
                    account_type=PAYMENT_ACCOUNT,
                )
            )

        linked = []
        for candidate in candidates:
            conn = covering.get(candidate.gocardless_account_id)
            if conn is not None and conn.is_disconnected:
                logger.info(
                    "Skipping %s %s: connection %s is disconnected",
                    candidate.account_type, candidate.name, conn.id,
                )
                continue
            candidate.connection_id = conn.id if conn is not None else None
            linked.append(candidate)
        return linked

    def _sync_account(
        self,
        db: Session,
        user_id: str,
        account: LinkedAccount,
        date_from: date,
        date_to: date,
    ) -> AccountOutcome:
        """Import one account; any failure becomes data in the outcome."""
        outcome = AccountOutcome(
            account_id=account.local_id,
            gocardless_account_id=account.gocardless_account_id,
            account_name=account.name,
            account_type=account.account_type,
            success=False,
        )
        options = ImportOptions(
            date_from=date_from,
            date_to=date_to,
            local_account_id=account.local_id,
            account_type=account.account_type,
        )

        logger.info(
            "Importing transactions for %s %s (%s)",
            account.account_type, account.name, account.gocardless_account_id,
        )
        try:
            # Savepoint per account so a partial flush from a failed import
            # is rolled back before the next account runs
            with db.begin_nested():
                result = self.importer.import_from_source(
                    db, account.gocardless_account_id, user_id, options
                )
            outcome.success = True
            outcome.new_transactions = result.imported
            outcome.duplicates = result.skipped
            outcome.pending_duplicates = result.pending_duplicates
            outcome.record_errors = list(result.errors)
        except UpstreamError as e:
            outcome.error = str(e)
            if e.is_auth_error:
                logger.warning(
                    "GoCardless rejected access to %s %s, consent may have expired: %s",
                    account.account_type, account.name, e,
                )
            else:
                logger.warning(
                    "Import failed for %s %s (retriable=%s): %s",
                    account.account_type, account.name, e.retriable, e,
                )
        except AggregatorError as e:
            outcome.error = str(e)
            logger.warning(
                "Import failed for %s %s: %s", account.account_type, account.name, e,
            )
        except Exception as e:
            outcome.error = str(e)
            logger.error(
                "Unexpected error importing %s %s: %s",
                account.account_type, account.name, e, exc_info=True,
            )

        if outcome.success and account.account_type != PAYMENT_ACCOUNT:
            try:
                self._refresh_balance(db, account)
            except Exception as e:
                logger.warning(
                    "Failed to update balance for %s %s: %s", account.account_type, account.name, e,
                )
        self._record_account_sync(db, account, outcome)
        self._record_connection_sync(db, account, outcome)
        return outcome

    def _refresh_balance(self, db: Session, account: LinkedAccount) -> Decimal | None:
        """Set the local balance to the aggregator's current balance.

        Returns the new balance, or None when the aggregator reports no
        balances (the local value is left unchanged).
        """
        balances = self.client.get_account_balances(account.gocardless_account_id)
        if not balances:
            return None
        balance = current_balance(balances)
        with db.begin_nested():
            db.query(Account).filter(Account.id == account.local_id).update(
                {Account.balance: balance}, synchronize_session="fetch"
            )
        logger.info("Updated %s %s balance to %s", account.account_type, account.name, balance)
        return balance

    @staticmethod
    def _record_account_sync(db: Session, account: LinkedAccount, outcome: AccountOutcome) -> None:
        model = PaymentAccount if account.account_type == PAYMENT_ACCOUNT else Account
        record = db.query(model).filter(model.id == account.local_id).first()
        if record is None:
            return
        record.last_sync_time = _utcnow()
        record.last_sync_status = "success" if outcome.success else "failed"
        record.last_sync_error = outcome.error
        db.flush()

    @staticmethod
    def _record_connection_sync(db: Session, account: LinkedAccount, outcome: AccountOutcome) -> None:
        if not account.connection_id:
            return
        try:
            with db.begin_nested():
                ConnectionService.update_after_sync(
                    db, account.connection_id, outcome.success, outcome.error
                )
        except Exception as e:
            logger.warning(
                "Failed to record sync on connection %s: %s", account.connection_id, e,
            )

    def _reconcile(self, db: Session, user_id: str) -> None:
        """Non-fatal follow-up: reconcile pending payment activities."""
        try:
            result = self.reconciliation_service.process_for_user(db, user_id)
            logger.info(
                "Reconciliation completed for user %s: %d reconciled, %d unreconciled",
                user_id, result.reconciled_count, result.unreconciled_count,
            )
        except Exception as e:
            db.rollback()
            logger.error("Reconciliation failed for user %s: %s", user_id, e, exc_info=True)
