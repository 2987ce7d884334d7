"""Importer: pulls one linked account's transactions from GoCardless.

Bank accounts and credit cards produce primary ``Transaction`` rows;
payment accounts (PayPal and similar) produce ``PaymentActivity`` rows via
the activity store.  Both paths are idempotent per external transaction
id: a record already imported is counted as skipped, never written twice.
"""

import logging
import re
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

from sqlalchemy.orm import Session

from config import settings
from integrations.gocardless_client import GoCardlessClient
from integrations.parsing_utils import date_to_datetime
from integrations.provider_protocol import BankTransaction, ImportOptions, ImportResult
from models import Account, PaymentAccount, Transaction
from models.transaction import EXPENSE, INCOME, STATUS_EXECUTED, STATUS_PENDING
from services.exceptions import NotFoundError
from services.payment_activity_service import PaymentActivityService

logger = logging.getLogger(__name__)

PAYMENT_ACCOUNT = "payment_account"
PENDING_PREFIX = "[PENDING] "
FALLBACK_DESCRIPTION = "Bank Transaction"
MAX_DESCRIPTION_LENGTH = 255

# Amount difference (absolute) and date distance for a likely re-import of
# the same movement under a different external id
DUPLICATE_AMOUNT_TOLERANCE = Decimal("0.01")
DUPLICATE_DATE_WINDOW = timedelta(days=1)

_SHORT_CODE_RE = re.compile(r"^[A-Z0-9\s\-_]{1,15}$", re.IGNORECASE)


def _is_meaningful(text: str) -> bool:
    """Free text worth keeping next to the counterparty name (not a bank code)."""
    stripped = text.strip()
    lowered = stripped.lower()
    return (
        len(stripped) > 10
        and not _SHORT_CODE_RE.match(stripped)
        and "bank transaction" not in lowered
        and "instant transfer" not in lowered
    )


def build_description(tx: BankTransaction) -> str:
    """Readable description: counterparty first, then remittance text.

    The counterparty is the creditor for outgoing money and the debtor for
    incoming money.  Remittance text is kept alongside the counterparty
    only when it carries more than a bank code.
    """
    if tx.amount < 0:
        counterparty = (tx.creditor_name or "").strip()
    else:
        counterparty = (tx.debtor_name or "").strip()

    remittance = [r for r in [tx.remittance_information] if r and r.strip()]

    parts = []
    if counterparty:
        parts.append(counterparty)
        if any(_is_meaningful(r) for r in remittance):
            parts.extend(remittance)
    else:
        parts.extend(remittance)

    description = " | ".join(p.strip() for p in parts).strip()

    if tx.merchant_category_code and "mcc" not in description.lower():
        description = f"{description} (MCC: {tx.merchant_category_code})".strip()

    if len(description) < 5:
        if tx.bank_transaction_code:
            description = f"Bank Transaction: {tx.bank_transaction_code}"
        else:
            description = FALLBACK_DESCRIPTION

    description = " ".join(description.split())
    return description[:MAX_DESCRIPTION_LENGTH]


def activity_merchant_name(tx: BankTransaction) -> str:
    return tx.debtor_name or tx.creditor_name or tx.remittance_information or "Unknown Merchant"


class ImportService:
    """GoCardless-backed implementation of the Importer contract."""

    def __init__(self, client: GoCardlessClient | None = None, activity_store=None):
        self.client = client or GoCardlessClient()
        self.activity_store = activity_store or PaymentActivityService()

    def import_from_source(
        self,
        db: Session,
        account_id: str,
        user_id: str,
        options: ImportOptions | None = None,
    ) -> ImportResult:
        """Import transactions for one aggregator account.

        Args:
            db: Database session
            account_id: GoCardless account id
            user_id: Owner of the local account
            options: Date range, duplicate-check switch and local target.
                Without a date range the last ``MANUAL_SYNC_LOOKBACK_DAYS``
                days are fetched.

        Returns:
            ImportResult with per-record errors collected, not raised.

        Raises:
            AggregatorError: If the transactions cannot be fetched.
            NotFoundError: If no local account is linked to ``account_id``.
        """
        options = options or ImportOptions()
        date_to = options.date_to or datetime.now(timezone.utc).date()
        date_from = options.date_from or (
            date_to - timedelta(days=settings.MANUAL_SYNC_LOOKBACK_DAYS)
        )

        if options.account_type == PAYMENT_ACCOUNT:
            target = self._resolve_payment_account(db, account_id, user_id, options)
        else:
            target = self._resolve_account(db, account_id, user_id, options)

        logger.info(
            "Importing GoCardless account %s into %s %s (%s to %s)",
            account_id, options.account_type or "bank_account", target.id,
            _as_date(date_from), _as_date(date_to),
        )
        page = self.client.get_account_transactions(account_id, date_from, date_to)

        if options.account_type == PAYMENT_ACCOUNT:
            result = self._import_activities(db, target, user_id, page.all(), options)
        else:
            result = self._import_transactions(db, target, user_id, page.all(), options)

        logger.info(
            "Import completed for %s: %d imported, %d skipped, %d pending duplicates, %d errors",
            account_id, result.imported, result.skipped, result.pending_duplicates,
            len(result.errors),
        )
        return result

    # ------------------------------------------------------------------
    # Target resolution
    # ------------------------------------------------------------------

    @staticmethod
    def _resolve_account(
        db: Session, account_id: str, user_id: str, options: ImportOptions
    ) -> Account:
        query = db.query(Account).filter(Account.user_id == user_id)
        if options.local_account_id:
            query = query.filter(Account.id == options.local_account_id)
        else:
            query = query.filter(Account.gocardless_account_id == account_id)
        account = query.first()
        if not account:
            raise NotFoundError(
                f"No local account linked to GoCardless account {account_id}",
                entity="account",
            )
        return account

    @staticmethod
    def _resolve_payment_account(
        db: Session, account_id: str, user_id: str, options: ImportOptions
    ) -> PaymentAccount:
        query = db.query(PaymentAccount).filter(PaymentAccount.user_id == user_id)
        if options.local_account_id:
            query = query.filter(PaymentAccount.id == options.local_account_id)
        else:
            query = query.filter(PaymentAccount.gocardless_account_id == account_id)
        payment_account = query.first()
        if not payment_account:
            raise NotFoundError(
                f"No payment account linked to GoCardless account {account_id}",
                entity="payment_account",
            )
        return payment_account

    # ------------------------------------------------------------------
    # Primary transactions
    # ------------------------------------------------------------------

    def _import_transactions(
        self,
        db: Session,
        account: Account,
        user_id: str,
        transactions: list[BankTransaction],
        options: ImportOptions,
    ) -> ImportResult:
        result = ImportResult()
        for tx in transactions:
            if tx.amount == 0:
                continue
            execution = tx.execution_date
            if execution is None:
                result.errors.append(f"Transaction {tx.transaction_id}: missing booking and value date")
                continue

            try:
                with db.begin_nested():
                    if tx.transaction_id and self._exists(db, account.id, tx.transaction_id):
                        result.skipped += 1
                        continue

                    record = Transaction(
                        user_id=user_id,
                        account_id=account.id,
                        external_id=tx.transaction_id,
                        type=INCOME if tx.amount > 0 else EXPENSE,
                        amount=abs(tx.amount),
                        currency=tx.currency,
                        execution_date=date_to_datetime(execution),
                        description=build_description(tx),
                        source="gocardless",
                        status=STATUS_PENDING if tx.is_pending else STATUS_EXECUTED,
                    )
                    if tx.is_pending:
                        record.description = f"{PENDING_PREFIX}{record.description}"

                    if not options.skip_duplicate_check and self._has_likely_duplicate(db, record):
                        record.needs_duplicate_review = True
                        result.pending_duplicates += 1
                    else:
                        result.imported += 1

                    db.add(record)
                    db.flush()
            except Exception as e:
                logger.error(
                    "Error importing transaction %s: %s", tx.transaction_id, e, exc_info=True
                )
                result.errors.append(f"Transaction {tx.transaction_id}: {e}")
        return result

    @staticmethod
    def _exists(db: Session, account_id: str, external_id: str) -> bool:
        return (
            db.query(Transaction.id)
            .filter(Transaction.account_id == account_id, Transaction.external_id == external_id)
            .first()
            is not None
        )

    @staticmethod
    def _has_likely_duplicate(db: Session, record: Transaction) -> bool:
        """Same account, direction, amount (+/- 0.01) and date (+/- 1 day)."""
        candidates = (
            db.query(Transaction)
            .filter(
                Transaction.account_id == record.account_id,
                Transaction.type == record.type,
                Transaction.execution_date >= record.execution_date - DUPLICATE_DATE_WINDOW,
                Transaction.execution_date <= record.execution_date + DUPLICATE_DATE_WINDOW,
            )
            .all()
        )
        return any(
            abs(Decimal(str(c.amount)) - record.amount) <= DUPLICATE_AMOUNT_TOLERANCE
            for c in candidates
        )

    # ------------------------------------------------------------------
    # Payment activities
    # ------------------------------------------------------------------

    def _import_activities(
        self,
        db: Session,
        payment_account: PaymentAccount,
        user_id: str,
        transactions: list[BankTransaction],
        options: ImportOptions,
    ) -> ImportResult:
        result = ImportResult()
        for tx in transactions:
            if not tx.transaction_id:
                result.errors.append("Transaction without id cannot be deduplicated; skipped")
                continue
            execution = tx.execution_date
            if execution is None:
                result.errors.append(f"Transaction {tx.transaction_id}: missing booking and value date")
                continue

            try:
                with db.begin_nested():
                    existing = self.activity_store.find_by_external_id(
                        db, tx.transaction_id, user_id
                    )
                    if existing:
                        logger.debug("Skipping duplicate activity: %s", tx.transaction_id)
                        result.skipped += 1
                        continue

                    merchant_name = activity_merchant_name(tx)
                    direction = EXPENSE if tx.amount < 0 else INCOME
                    raw_data = {"gocardless": tx.raw_data or {}, "direction": direction}
                    if tx.bank_transaction_code:
                        # Provider transaction codes (e.g. "LOAN_PAYMENT") drive classification
                        raw_data["transaction_type"] = tx.bank_transaction_code

                    self.activity_store.create(
                        db,
                        {
                            "user_id": user_id,
                            "payment_account_id": payment_account.id,
                            "external_id": tx.transaction_id,
                            "merchant_name": merchant_name,
                            "merchant_category_code": tx.merchant_category_code,
                            "amount": abs(tx.amount),
                            "type": direction,
                            "execution_date": date_to_datetime(execution),
                            "description": tx.remittance_information or merchant_name,
                            "raw_data": raw_data,
                        },
                    )
                    result.imported += 1
            except Exception as e:
                logger.error(
                    "Error importing activity %s: %s", tx.transaction_id, e, exc_info=True
                )
                result.errors.append(f"Transaction {tx.transaction_id}: {e}")
        return result


def _as_date(value: date | datetime) -> date:
    return value.date() if isinstance(value, datetime) else value
