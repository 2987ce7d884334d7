"""Pydantic schemas for aggregator connections."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class ConnectionResponse(BaseModel):
    """A connection as shown to its owner (consent identifiers are omitted)."""

    id: str
    institution_id: str
    institution_name: Optional[str] = None
    institution_logo: Optional[str] = None
    status: str
    connected_at: datetime
    access_valid_for_days: int
    expires_at: datetime
    last_sync_at: Optional[datetime] = None
    last_sync_error: Optional[str] = None
    linked_account_ids: list[str] = []

    model_config = {"from_attributes": True}


class ConnectionAlertResponse(BaseModel):
    connection_id: str
    institution_name: str
    status: str
    expires_at: datetime
    days_until_expiration: int
    linked_account_ids: list[str]


class ConnectionStatusResponse(BaseModel):
    """Per-status counts plus renewal alerts, most urgent first."""

    total_connections: int
    active_connections: int
    expiring_soon_connections: int
    expired_connections: int
    error_connections: int
    disconnected_connections: int
    alerts: list[ConnectionAlertResponse]


class CompleteConnectionRequest(BaseModel):
    """Body for recording a connection after the user returns from the bank."""

    requisition_id: Optional[str] = None
    reference: Optional[str] = None
    institution_name: Optional[str] = None
    institution_logo: Optional[str] = None
    access_valid_for_days: int = Field(default=90, gt=0, le=730)
