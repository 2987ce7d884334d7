"""Typed exception hierarchy for aggregator errors.

Provides structured exceptions for differentiated error handling
(missing configuration vs upstream HTTP failures).
"""


class AggregatorError(Exception):
    """Base exception for all aggregator-related errors.

    Carries the provider name so callers can identify which upstream failed.
    """

    def __init__(self, message: str, provider_name: str = "GoCardless"):
        self.provider_name = provider_name
        super().__init__(message)


class NotConfiguredError(AggregatorError):
    """Credentials or secrets required for a call are missing."""

    pass


class UpstreamError(AggregatorError):
    """Non-2xx response (or transport failure) from the aggregator API.

    ``status_code`` is ``None`` when the request never produced a response
    (timeout, DNS failure, connection refused).
    """

    def __init__(
        self,
        message: str,
        provider_name: str = "GoCardless",
        status_code: int | None = None,
        body=None,
    ):
        self.status_code = status_code
        self.body = body
        super().__init__(message, provider_name)

    @property
    def retriable(self) -> bool:
        """Transport failures, 429 (rate limit) and 5xx errors are retriable."""
        if self.status_code is None:
            return True
        return self.status_code == 429 or self.status_code >= 500

    @property
    def is_auth_error(self) -> bool:
        return self.status_code in (401, 403)
