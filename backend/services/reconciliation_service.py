"""Reconciliation of payment activities against bank transactions.

A payment-provider purchase (e.g. PayPal) usually shows up on the bank
statement as a generic "PAYPAL *..." line a few days later, sometimes with
a small rounding difference.  Matching therefore looks for a bank
transaction of the same direction whose description names the provider,
within ``DATE_WINDOW_DAYS`` and ``AMOUNT_TOLERANCE`` of the activity, and
picks the earliest one.  Reconciling links the two records and enriches
the bank description with the real merchant name.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from sqlalchemy import func
from sqlalchemy.orm import Session

from integrations.parsing_utils import ensure_utc
from models import PaymentActivity, Transaction
from models.payment_activity import MANUAL, PENDING, RECONCILED
from models.transaction import NOT_RECONCILED, RECONCILED_AS_PRIMARY
from services.exceptions import NotFoundError, ValidationError
from services.payment_activity_service import PaymentActivityService

logger = logging.getLogger(__name__)

AMOUNT_TOLERANCE = Decimal("0.01")  # +/- 1% of the activity amount
DATE_WINDOW_DAYS = 3
DEFAULT_SOURCE_KEYWORD = "paypal"
PRIMARY_SOURCE = "gocardless"


@dataclass
class ReconciliationResult:
    """Outcome of one batch pass for a user."""

    reconciled_count: int = 0
    unreconciled_count: int = 0
    unreconciled: list[dict] = field(default_factory=list)


def enrich_description(description: str | None, merchant_name: str | None) -> str:
    """Append the merchant name unless the description already contains it."""
    description = description or ""
    if not merchant_name or not merchant_name.strip():
        return description
    if merchant_name.lower() in description.lower():
        return description
    if not description:
        return merchant_name
    return f"{description} - {merchant_name}"


def amount_within_tolerance(primary_amount, secondary_amount) -> bool:
    secondary = Decimal(str(secondary_amount))
    tolerance = abs(secondary) * AMOUNT_TOLERANCE
    return abs(Decimal(str(primary_amount)) - secondary) <= tolerance


def confidence_score(primary: Transaction, secondary: PaymentActivity) -> int:
    """Score a match 0-100.

    Up to 40 points for amount closeness, 30 for date proximity within the
    window and 30 for merchant/description overlap.
    """
    score = 0.0

    secondary_amount = Decimal(str(secondary.amount))
    if secondary_amount:
        diff = abs(Decimal(str(primary.amount)) - secondary_amount)
        score += float(1 - diff / secondary_amount) * 40

    if primary.execution_date and secondary.execution_date:
        delta = abs(ensure_utc(primary.execution_date) - ensure_utc(secondary.execution_date))
        days = delta.total_seconds() / 86400
        score += max(0.0, 1 - days / DATE_WINDOW_DAYS) * 30

    description = (primary.description or "").lower()
    merchant = (secondary.merchant_name or secondary.description or "").lower()
    if merchant and (merchant in description or (description and description in merchant)):
        score += 30
    elif merchant:
        merchant_words = set(merchant.split())
        common = set(description.split()) & merchant_words
        score += len(common) / len(merchant_words) * 30

    return round(min(100.0, max(0.0, score)))


def _summary(activity: PaymentActivity) -> dict:
    return {
        "id": activity.id,
        "external_id": activity.external_id,
        "merchant_name": activity.merchant_name,
        "description": activity.description,
        "amount": str(activity.amount),
        "execution_date": activity.execution_date.isoformat() if activity.execution_date else None,
    }


class ReconciliationService:
    """Match pending payment activities to bank transactions for a user."""

    def __init__(self, activity_store=None):
        self.activity_store = activity_store or PaymentActivityService()

    @staticmethod
    def _source_keyword(activity: PaymentActivity) -> str:
        account = activity.payment_account
        if account is not None and account.provider:
            return account.provider.lower()
        return DEFAULT_SOURCE_KEYWORD

    def find_match(
        self, db: Session, activity: PaymentActivity, user_id: str
    ) -> Transaction | None:
        """Find the bank transaction that most likely settled this activity.

        Same type, execution date within +/- 3 days, amount within +/- 1%
        (both inclusive), description naming the provider and not already
        reconciled.  The earliest candidate wins.
        """
        if activity.execution_date is None or activity.amount is None:
            return None

        executed = activity.execution_date
        window = timedelta(days=DATE_WINDOW_DAYS)
        keyword = self._source_keyword(activity)

        candidates = (
            db.query(Transaction)
            .filter(
                Transaction.user_id == user_id,
                Transaction.type == activity.type,
                Transaction.source == PRIMARY_SOURCE,
                Transaction.execution_date >= executed - window,
                Transaction.execution_date <= executed + window,
                func.lower(Transaction.description).like(f"%{keyword}%"),
                Transaction.reconciliation_status == NOT_RECONCILED,
            )
            .order_by(Transaction.execution_date.asc(), Transaction.id.asc())
            .all()
        )
        for candidate in candidates:
            # Amounts compared as Decimal; the column may round-trip through float
            if amount_within_tolerance(candidate.amount, activity.amount):
                return candidate
        return None

    def reconcile(
        self,
        db: Session,
        primary: Transaction,
        secondary: PaymentActivity,
        status: str = RECONCILED,
    ) -> PaymentActivity:
        """Link an activity to its bank transaction and enrich the description.

        Both rows are written inside one savepoint: either both changes are
        flushed or neither is.
        """
        confidence = confidence_score(primary, secondary)
        with db.begin_nested():
            primary.description = enrich_description(primary.description, secondary.merchant_name)
            primary.reconciliation_status = RECONCILED_AS_PRIMARY
            secondary.reconciliation_status = status
            secondary.reconciled_transaction_id = primary.id
            secondary.reconciliation_confidence = confidence
            secondary.reconciled_at = datetime.now(timezone.utc)
            db.flush()

        logger.info(
            "Reconciled activity %s with transaction %s (confidence %d%%)",
            secondary.id, primary.id, confidence,
        )
        return secondary

    def process_for_user(self, db: Session, user_id: str) -> ReconciliationResult:
        """Try to reconcile every pending activity of a user.

        A failure on one record is logged and the record is reported as
        unreconciled; the remaining records are still processed.  Commits
        once at the end.
        """
        pending = self.activity_store.find_pending(db, user_id)
        logger.info("Found %d pending payment activities for user %s", len(pending), user_id)

        result = ReconciliationResult()
        for activity in pending:
            try:
                match = self.find_match(db, activity, user_id)
                if match is None:
                    result.unreconciled.append(_summary(activity))
                    continue
                self.reconcile(db, match, activity)
                result.reconciled_count += 1
            except Exception:
                logger.error(
                    "Error reconciling payment activity %s", activity.id, exc_info=True
                )
                result.unreconciled.append(_summary(activity))

        result.unreconciled_count = len(result.unreconciled)
        db.commit()
        logger.info(
            "Reconciliation complete for user %s: %d reconciled, %d unreconciled",
            user_id, result.reconciled_count, result.unreconciled_count,
        )
        return result

    def manual_reconcile(
        self, db: Session, activity_id: str, transaction_id: str, user_id: str
    ) -> PaymentActivity:
        """Link an activity to a transaction chosen by the user.

        Raises:
            NotFoundError: If either record does not belong to the user.
            ValidationError: If the transaction is already reconciled with another activity.
        """
        activity = self.activity_store.get_activity(db, activity_id, user_id)
        if not activity:
            raise NotFoundError("Payment activity not found", entity="payment_activity")
        transaction = (
            db.query(Transaction)
            .filter(Transaction.id == transaction_id, Transaction.user_id == user_id)
            .first()
        )
        if not transaction:
            raise NotFoundError("Transaction not found", entity="transaction")

        if transaction.reconciliation_status == RECONCILED_AS_PRIMARY:
            linked = (
                db.query(PaymentActivity)
                .filter(
                    PaymentActivity.reconciled_transaction_id == transaction.id,
                    PaymentActivity.id != activity.id,
                )
                .first()
            )
            if linked:
                raise ValidationError("Transaction is already reconciled with another activity")

        if activity.reconciled_transaction_id and activity.reconciled_transaction_id != transaction.id:
            raise ValidationError("Payment activity is already reconciled")

        return self.reconcile(db, transaction, activity, status=MANUAL)

    def mark_failed(self, db: Session, activity_id: str, user_id: str) -> PaymentActivity:
        activity = self.activity_store.get_activity(db, activity_id, user_id)
        if not activity:
            raise NotFoundError("Payment activity not found", entity="payment_activity")
        if activity.reconciliation_status != PENDING:
            raise ValidationError(
                f"Only pending activities can be marked failed (status {activity.reconciliation_status!r})"
            )
        return self.activity_store.update_reconciliation(
            db, activity_id, user_id, {"reconciliation_status": "failed"}
        )

    def get_stats(self, db: Session, user_id: str) -> dict[str, int]:
        return self.activity_store.get_stats(db, user_id)
