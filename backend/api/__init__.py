"""API route handlers."""
from . import connections, cron, gocardless, reconciliation, sync

__all__ = ["connections", "cron", "gocardless", "reconciliation", "sync"]
