"""External API integrations.

This package contains:
- Aggregator protocol: normalized GoCardless data and collaborator interfaces
- GoCardless client: Integration with the Bank Account Data API
- Exceptions: aggregator error hierarchy
"""

from integrations.exceptions import AggregatorError, NotConfiguredError, UpstreamError
from integrations.gocardless_client import GoCardlessClient
from integrations.provider_protocol import (
    ActivityStore,
    BankTransaction,
    Importer,
    ImportOptions,
    ImportResult,
)

__all__ = [
    "ActivityStore",
    "AggregatorError",
    "BankTransaction",
    "GoCardlessClient",
    "ImportOptions",
    "ImportResult",
    "Importer",
    "NotConfiguredError",
    "UpstreamError",
]
