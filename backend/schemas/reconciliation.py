"""Pydantic schemas for payment activity reconciliation."""

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, Field


class ReconciliationRunResponse(BaseModel):
    reconciled_count: int
    unreconciled_count: int
    unreconciled: list[dict[str, Any]]


class ReconciliationStatsResponse(BaseModel):
    total: int
    pending: int
    not_applicable: int
    reconciled: int
    failed: int
    manual: int


class ManualReconcileRequest(BaseModel):
    activity_id: str = Field(min_length=1)
    transaction_id: str = Field(min_length=1)


class PaymentActivityResponse(BaseModel):
    id: str
    payment_account_id: str
    external_id: str
    merchant_name: Optional[str] = None
    amount: Decimal
    type: str
    execution_date: datetime
    description: Optional[str] = None
    reconciliation_status: str
    reconciled_transaction_id: Optional[str] = None
    reconciliation_confidence: Optional[int] = None
    reconciled_at: Optional[datetime] = None

    model_config = {"from_attributes": True}
