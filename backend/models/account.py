"""Account model - a local bank account or credit card."""

from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import Column, DateTime, ForeignKey, Numeric, String
from sqlalchemy.orm import relationship

from database import Base
from models.utils import generate_uuid

BANK_ACCOUNT = "bank_account"
CREDIT_CARD = "credit_card"
ACCOUNT_TYPES = (BANK_ACCOUNT, CREDIT_CARD)


class Account(Base):
    """A bank account or credit card owned by a user.

    The account is linked to the aggregator when ``gocardless_account_id``
    is set; only linked accounts take part in scheduled sync.
    """

    __tablename__ = "accounts"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String, nullable=False)
    account_type = Column(String, nullable=False, default=BANK_ACCOUNT)  # "bank_account" | "credit_card"
    currency = Column(String(3), nullable=False, default="EUR")
    balance = Column(Numeric(18, 4), nullable=False, default=Decimal("0"))
    gocardless_account_id = Column(String, nullable=True, index=True)
    institution_name = Column(String, nullable=True)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Sync tracking (per-account)
    last_sync_time = Column(DateTime, nullable=True)
    last_sync_status = Column(String, nullable=True)  # "success" | "failed"
    last_sync_error = Column(String, nullable=True)

    # Relationships
    transactions = relationship("Transaction", back_populates="account")

    @property
    def is_linked(self) -> bool:
        return bool(self.gocardless_account_id)
