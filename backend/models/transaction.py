"""Transaction model - a primary record imported from a bank account or card."""

from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Numeric, String, UniqueConstraint
from sqlalchemy.orm import relationship

from database import Base
from models.utils import generate_uuid

EXPENSE = "expense"
INCOME = "income"

STATUS_EXECUTED = "executed"
STATUS_PENDING = "pending"

NOT_RECONCILED = "not_reconciled"
RECONCILED_AS_PRIMARY = "reconciled_as_primary"


class Transaction(Base):
    """A bank or card transaction.

    ``amount`` is always positive; direction is carried by ``type``.
    Deduplication via unique (account_id, external_id).
    """

    __tablename__ = "transactions"
    __table_args__ = (
        UniqueConstraint("account_id", "external_id", name="uix_transaction_account_external"),
    )

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    account_id = Column(String(36), ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False)
    external_id = Column(String, nullable=True, index=True)
    type = Column(String, nullable=False)  # "expense" | "income"
    amount = Column(Numeric(18, 4), nullable=False)
    currency = Column(String(3), nullable=True)
    execution_date = Column(DateTime, nullable=False)
    description = Column(String, nullable=True)
    source = Column(String, nullable=False, default="gocardless")
    status = Column(String, nullable=False, default=STATUS_EXECUTED)  # "executed" | "pending"
    reconciliation_status = Column(String, nullable=False, default=NOT_RECONCILED)
    needs_duplicate_review = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    account = relationship("Account", back_populates="transactions")
