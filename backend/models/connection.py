"""Connection model - one consent granted to the aggregator for one institution."""

import enum
import hashlib
from datetime import datetime, timedelta, timezone

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text, event
from sqlalchemy.orm import validates

from database import Base
from models.encrypted_types import EncryptedJSON, EncryptedString
from models.utils import generate_uuid

DEFAULT_ACCESS_VALID_FOR_DAYS = 90


class ConnectionStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    EXPIRING_SOON = "EXPIRING_SOON"
    EXPIRED = "EXPIRED"
    ERROR = "ERROR"
    DISCONNECTED = "DISCONNECTED"


def hash_requisition_id(requisition_id: str) -> str:
    """Digest used to look up a connection by its encrypted requisition id."""
    return hashlib.sha256(requisition_id.encode("utf-8")).hexdigest()


class Connection(Base):
    """A time-bounded consent linking a user to one institution's accounts.

    ``expires_at`` is derived from ``connected_at + access_valid_for_days``
    and recomputed whenever either input changes; it is never assigned on
    its own.  Consent identifiers and the linked account id list are stored
    encrypted, so ``requisition_id_hash`` carries a digest for lookups.
    Connections are never deleted: disconnecting marks them ``DISCONNECTED``,
    which time-based recomputation leaves untouched.
    """

    __tablename__ = "connections"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    requisition_id = Column(EncryptedString, nullable=False)
    requisition_id_hash = Column(String(64), nullable=False, index=True)
    eua_id = Column(EncryptedString, nullable=True)
    institution_id = Column(String, nullable=False)
    institution_name = Column(String, nullable=True)
    institution_logo = Column(String, nullable=True)
    status = Column(String, nullable=False, default=ConnectionStatus.ACTIVE.value)
    connected_at = Column(DateTime, nullable=False)
    access_valid_for_days = Column(Integer, nullable=False, default=DEFAULT_ACCESS_VALID_FOR_DAYS)
    expires_at = Column(DateTime, nullable=False)
    last_sync_at = Column(DateTime, nullable=True)
    last_sync_error = Column(Text, nullable=True)
    linked_account_ids = Column(EncryptedJSON, nullable=True)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    @staticmethod
    def compute_expires_at(connected_at: datetime, access_valid_for_days: int) -> datetime:
        return connected_at + timedelta(days=access_valid_for_days)

    def recompute_expires_at(self) -> None:
        if self.connected_at is None:
            self.connected_at = datetime.now(timezone.utc)
        days = self.access_valid_for_days
        if days is None:
            days = self.access_valid_for_days = DEFAULT_ACCESS_VALID_FOR_DAYS
        self.expires_at = self.compute_expires_at(self.connected_at, days)

    @validates("connected_at", "access_valid_for_days")
    def _recompute_on_change(self, key, value):
        connected_at = value if key == "connected_at" else self.connected_at
        days = value if key == "access_valid_for_days" else self.access_valid_for_days
        if connected_at is not None:
            self.expires_at = self.compute_expires_at(
                connected_at, days if days is not None else DEFAULT_ACCESS_VALID_FOR_DAYS
            )
        return value

    @validates("requisition_id")
    def _hash_requisition_id(self, key, value):
        self.requisition_id_hash = hash_requisition_id(value) if value else None
        return value

    @property
    def account_ids(self) -> list[str]:
        return list(self.linked_account_ids or [])

    @property
    def is_disconnected(self) -> bool:
        return self.status == ConnectionStatus.DISCONNECTED.value


@event.listens_for(Connection, "before_insert")
@event.listens_for(Connection, "before_update")
def _enforce_expires_at(mapper, connection, target: Connection) -> None:
    target.recompute_expires_at()
