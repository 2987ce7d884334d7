"""PaymentAccount model - a payment intermediary account (e.g. PayPal)."""

from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, String
from sqlalchemy.orm import relationship

from database import Base
from models.utils import generate_uuid


class PaymentAccount(Base):
    """An account at a payment intermediary.

    Its activity is imported as secondary records that explain bank
    transactions rather than as transactions of their own.
    """

    __tablename__ = "payment_accounts"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    provider = Column(String, nullable=False, default="paypal")  # keyword searched in bank descriptions
    display_name = Column(String, nullable=False)
    gocardless_account_id = Column(String, nullable=True, index=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))

    # Sync tracking
    last_sync_time = Column(DateTime, nullable=True)
    last_sync_status = Column(String, nullable=True)
    last_sync_error = Column(String, nullable=True)

    # Relationships
    activities = relationship("PaymentActivity", back_populates="payment_account")

    @property
    def is_linked(self) -> bool:
        return bool(self.gocardless_account_id)
