"""Persistence for payment activity records (the ActivityStore)."""

import logging
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import func
from sqlalchemy.orm import Session

from models import PaymentActivity
from models.payment_activity import (
    FAILED,
    LINKED_STATUSES,
    MANUAL,
    NOT_APPLICABLE,
    PENDING,
    RECONCILED,
)
from services.exceptions import NotFoundError, ValidationError
from services.reconciliation_rules import determine_initial_status

logger = logging.getLogger(__name__)

_REQUIRED_FIELDS = ("user_id", "payment_account_id", "external_id", "amount", "type", "execution_date")
_UPDATABLE_STATUSES = (RECONCILED, FAILED, MANUAL)


class PaymentActivityService:
    """Create, look up and update payment activity records for a user."""

    @staticmethod
    def get_activity(db: Session, activity_id: str, user_id: str) -> PaymentActivity | None:
        return (
            db.query(PaymentActivity)
            .filter(PaymentActivity.id == activity_id, PaymentActivity.user_id == user_id)
            .first()
        )

    @staticmethod
    def find_by_external_id(
        db: Session, external_id: str, user_id: str
    ) -> PaymentActivity | None:
        return (
            db.query(PaymentActivity)
            .filter(
                PaymentActivity.external_id == external_id,
                PaymentActivity.user_id == user_id,
            )
            .first()
        )

    @staticmethod
    def find_pending(db: Session, user_id: str) -> list[PaymentActivity]:
        """Activities still waiting for a match, oldest first."""
        return (
            db.query(PaymentActivity)
            .filter(
                PaymentActivity.user_id == user_id,
                PaymentActivity.reconciliation_status == PENDING,
            )
            .order_by(PaymentActivity.execution_date.asc(), PaymentActivity.id)
            .all()
        )

    @staticmethod
    def create(db: Session, data: dict) -> PaymentActivity:
        """Create an activity, classifying it once for reconciliation.

        Raises:
            ValidationError: If a required field is missing or the amount is negative.
        """
        missing = [f for f in _REQUIRED_FIELDS if data.get(f) in (None, "")]
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

        amount = Decimal(str(data["amount"]))
        if amount < 0:
            raise ValidationError("Payment activity amount must not be negative")

        status = determine_initial_status(
            data.get("raw_data"),
            data.get("merchant_category"),
            data.get("description"),
        )
        activity = PaymentActivity(
            user_id=data["user_id"],
            payment_account_id=data["payment_account_id"],
            external_id=data["external_id"],
            merchant_name=data.get("merchant_name"),
            merchant_category=data.get("merchant_category"),
            merchant_category_code=data.get("merchant_category_code"),
            amount=amount,
            type=data["type"],
            execution_date=data["execution_date"],
            description=data.get("description"),
            raw_data=data.get("raw_data"),
            reconciliation_status=status,
        )
        db.add(activity)
        db.flush()

        if status == NOT_APPLICABLE:
            logger.debug("Activity %s excluded from reconciliation", activity.external_id)
        return activity

    @staticmethod
    def update_reconciliation(
        db: Session, activity_id: str, user_id: str, data: dict
    ) -> PaymentActivity:
        """Set the reconciliation outcome of one activity.

        ``data`` carries ``reconciliation_status`` (reconciled, failed or
        manual) and, for linked statuses, ``reconciled_transaction_id`` and
        an optional ``reconciliation_confidence``.

        Raises:
            NotFoundError: If the activity does not belong to the user.
            ValidationError: On an unsupported status or a link/status mismatch.
        """
        activity = PaymentActivityService.get_activity(db, activity_id, user_id)
        if not activity:
            raise NotFoundError("Payment activity not found", entity="payment_activity")

        status = data.get("reconciliation_status")
        if status not in _UPDATABLE_STATUSES:
            raise ValidationError(f"Unsupported reconciliation status: {status!r}")

        transaction_id = data.get("reconciled_transaction_id")
        if status in LINKED_STATUSES and not transaction_id:
            raise ValidationError(f"Status {status!r} requires reconciled_transaction_id")
        if status not in LINKED_STATUSES and transaction_id:
            raise ValidationError(f"Status {status!r} cannot carry a transaction link")

        if status in LINKED_STATUSES:
            activity.reconciliation_status = status
            activity.reconciled_transaction_id = transaction_id
            activity.reconciliation_confidence = data.get("reconciliation_confidence")
        else:
            activity.reconciled_transaction_id = None
            activity.reconciliation_confidence = None
            activity.reconciliation_status = status
        activity.reconciled_at = datetime.now(timezone.utc)

        db.flush()
        return activity

    @staticmethod
    def mark_failed(db: Session, activity_id: str, user_id: str) -> PaymentActivity:
        """Flag an activity for manual review."""
        return PaymentActivityService.update_reconciliation(
            db, activity_id, user_id, {"reconciliation_status": FAILED}
        )

    @staticmethod
    def get_stats(db: Session, user_id: str) -> dict[str, int]:
        """Count a user's activities by reconciliation status."""
        rows = (
            db.query(PaymentActivity.reconciliation_status, func.count(PaymentActivity.id))
            .filter(PaymentActivity.user_id == user_id)
            .group_by(PaymentActivity.reconciliation_status)
            .all()
        )
        counts = {status: count for status, count in rows}
        stats = {
            status: counts.get(status, 0)
            for status in (PENDING, NOT_APPLICABLE, RECONCILED, FAILED, MANUAL)
        }
        stats["total"] = sum(counts.values())
        return stats
