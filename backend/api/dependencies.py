"""Service factories used as FastAPI dependencies (overridden in tests)."""

from functools import lru_cache

from integrations.gocardless_client import GoCardlessClient
from services.reconciliation_service import ReconciliationService
from services.sync_service import SyncService


@lru_cache
def get_gocardless_client() -> GoCardlessClient:
    """Process-wide client, so the session token is reused across requests."""
    return GoCardlessClient()


def get_sync_service() -> SyncService:
    return SyncService(client=get_gocardless_client())


def get_reconciliation_service() -> ReconciliationService:
    return ReconciliationService()
