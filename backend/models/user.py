"""User model - an owner of accounts and connections."""

from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, String

from database import Base
from models.utils import generate_uuid


class User(Base):
    """An application user.

    Authentication happens upstream; this table only records ownership and
    whether the user is a demo/sandbox user (excluded from scheduled sync).
    """

    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=generate_uuid)
    email = Column(String, unique=True, nullable=False)
    name = Column(String, nullable=True)
    is_demo_user = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
