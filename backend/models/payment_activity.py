"""PaymentActivity model - a secondary record from a payment intermediary."""

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, Integer, Numeric, String, UniqueConstraint
from sqlalchemy.orm import relationship, validates

from database import Base
from models.encrypted_types import EncryptedJSON
from models.utils import generate_uuid

PENDING = "pending"
NOT_APPLICABLE = "not_applicable"
RECONCILED = "reconciled"
FAILED = "failed"
MANUAL = "manual"

RECONCILIATION_STATUSES = (PENDING, NOT_APPLICABLE, RECONCILED, FAILED, MANUAL)
LINKED_STATUSES = (RECONCILED, MANUAL)


class PaymentActivity(Base):
    """A payment-provider event (e.g. a PayPal purchase).

    Not a bank transaction itself, but usually explains one.  The initial
    ``reconciliation_status`` is set once at import; afterwards only the
    reconciliation operations change it.  ``reconciled_transaction_id`` may
    be set only while the status is ``reconciled`` or ``manual``.
    """

    __tablename__ = "payment_activities"
    __table_args__ = (
        UniqueConstraint("user_id", "external_id", name="uix_payment_activity_user_external"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    payment_account_id = Column(
        String(36), ForeignKey("payment_accounts.id", ondelete="CASCADE"), nullable=False
    )
    external_id = Column(String, nullable=False)
    merchant_name = Column(String, nullable=True)
    merchant_category = Column(String, nullable=True)
    merchant_category_code = Column(String, nullable=True)
    amount = Column(Numeric(18, 4), nullable=False)  # Always positive
    type = Column(String, nullable=False)  # "expense" | "income"
    execution_date = Column(DateTime, nullable=False)
    description = Column(String, nullable=True)
    raw_data = Column(EncryptedJSON, nullable=True)
    reconciliation_status = Column(String, nullable=False, default=PENDING)
    reconciled_transaction_id = Column(
        String(36), ForeignKey("transactions.id", ondelete="SET NULL"), nullable=True
    )
    reconciliation_confidence = Column(Integer, nullable=True)  # 0-100
    reconciled_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))

    # Relationships
    payment_account = relationship("PaymentAccount", back_populates="activities")
    reconciled_transaction = relationship("Transaction")

    @validates("reconciliation_status")
    def _validate_status(self, key, value):
        if value not in RECONCILIATION_STATUSES:
            raise ValueError(f"Invalid reconciliation status: {value!r}")
        if value not in LINKED_STATUSES and self.reconciled_transaction_id is not None:
            raise ValueError(
                f"Cannot set status {value!r} while linked to a transaction"
            )
        return value

    @validates("reconciled_transaction_id")
    def _validate_link(self, key, value):
        if value is not None and self.reconciliation_status not in LINKED_STATUSES:
            raise ValueError(
                "A reconciled transaction link requires status 'reconciled' or 'manual'"
            )
        return value
