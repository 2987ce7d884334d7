"""Pydantic request/response schemas."""

from .connection import (
    CompleteConnectionRequest,
    ConnectionAlertResponse,
    ConnectionResponse,
    ConnectionStatusResponse,
)
from .gocardless import (
    BalanceSyncResponse,
    ConnectedAccountsResponse,
    InstitutionResponse,
    LinkRequest,
    LinkResponse,
    RequisitionResponse,
)
from .reconciliation import (
    ManualReconcileRequest,
    PaymentActivityResponse,
    ReconciliationRunResponse,
    ReconciliationStatsResponse,
)
from .sync import (
    CronResponse,
    ManualSyncResponse,
    SyncHistoryResponse,
    SyncReportResponse,
    SyncStatisticsResponse,
)

__all__ = [
    "BalanceSyncResponse",
    "CompleteConnectionRequest",
    "ConnectedAccountsResponse",
    "ConnectionAlertResponse",
    "ConnectionResponse",
    "ConnectionStatusResponse",
    "CronResponse",
    "InstitutionResponse",
    "LinkRequest",
    "LinkResponse",
    "ManualReconcileRequest",
    "ManualSyncResponse",
    "PaymentActivityResponse",
    "ReconciliationRunResponse",
    "ReconciliationStatsResponse",
    "RequisitionResponse",
    "SyncHistoryResponse",
    "SyncReportResponse",
    "SyncStatisticsResponse",
]
