"""GoCardless Bank Account Data API client.

Owns the short-lived bearer token for the aggregator API: the token is
issued from the long-lived secret id/key pair, cached on the client
instance and re-issued whenever it is missing or expired.  Every call
except token issuance carries the bearer header.  All upstream failures
are normalised to :class:`~integrations.exceptions.UpstreamError`.

Each client instance holds its own token.  Separate processes (or separate
credential sets) must use separate instances.
"""

import logging
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import httpx

from config import settings
from integrations.exceptions import NotConfiguredError, UpstreamError
from integrations.parsing_utils import parse_decimal, parse_iso_date, parse_iso_datetime
from integrations.provider_protocol import (
    AccountBalance,
    AccountDetails,
    Agreement,
    BankTransaction,
    Institution,
    Requisition,
    SessionToken,
    TransactionsPage,
)
from services.exceptions import NotFoundError

logger = logging.getLogger(__name__)

TOKEN_PATH = "/token/new/"

DEFAULT_ACCESS_SCOPE = ["balances", "details", "transactions"]

# Balance types that reflect the spendable balance, in order of preference
_CURRENT_BALANCE_TYPES = ("expected", "interimAvailable")


def current_balance(balances: list[AccountBalance]) -> Decimal:
    """Pick the current balance amount from a list of balance entries.

    Prefers an ``expected`` or ``interimAvailable`` entry, falls back to the
    first entry, and returns zero when there are no entries.
    """
    if not balances:
        return Decimal("0")
    for balance in balances:
        if balance.balance_type in _CURRENT_BALANCE_TYPES:
            return balance.amount
    return balances[0].amount


class GoCardlessClient:
    """Wrapper around the GoCardless Bank Account Data API (v2)."""

    def __init__(
        self,
        secret_id: str | None = None,
        secret_key: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.BaseTransport | None = None,
    ):
        """Initialize the client with credentials.

        Args:
            secret_id: GoCardless secret id (defaults to settings)
            secret_key: GoCardless secret key (defaults to settings)
            base_url: API root (defaults to settings)
            timeout: Per-request timeout in seconds (defaults to settings)
            transport: Optional httpx transport, used by tests
        """
        self._secret_id = secret_id or settings.GOCARDLESS_SECRET_ID
        self._secret_key = secret_key or settings.GOCARDLESS_SECRET_KEY
        self._base_url = base_url or settings.GOCARDLESS_BASE_URL
        self._timeout = timeout if timeout is not None else settings.GOCARDLESS_TIMEOUT_SECONDS
        self._transport = transport
        self._token: SessionToken | None = None

    @property
    def provider_name(self) -> str:
        return "GoCardless"

    @property
    def session_token(self) -> SessionToken | None:
        """The cached token, if any (read-only view for diagnostics and tests)."""
        return self._token

    def is_configured(self) -> bool:
        """Check if both halves of the secret are present."""
        return bool(self._secret_id and self._secret_key)

    def _check_credentials(self) -> None:
        """Raise NotConfiguredError if credentials are missing."""
        if not self.is_configured():
            raise NotConfiguredError(
                "GoCardless credentials not configured. Set GOCARDLESS_SECRET_ID "
                "and GOCARDLESS_SECRET_KEY in the environment or keychain.",
                provider_name=self.provider_name,
            )

    # ------------------------------------------------------------------
    # Token lifecycle
    # ------------------------------------------------------------------

    def _token_is_valid(self, now: datetime) -> bool:
        return self._token is not None and now < self._token.expires_at

    def ensure_valid_token(self) -> None:
        """Issue a new token unless the cached one is still valid."""
        if self._token_is_valid(datetime.now(timezone.utc)):
            return
        self._check_credentials()
        self.create_access_token()

    def create_access_token(self) -> SessionToken:
        """Exchange the secret id/key pair for a bearer token.

        Returns:
            The new SessionToken (also cached on the client).
        """
        self._check_credentials()
        logger.info("GoCardless: creating access token")
        issued_at = datetime.now(timezone.utc)
        data = self._request(
            "POST",
            TOKEN_PATH,
            json={"secret_id": self._secret_id, "secret_key": self._secret_key},
            authenticated=False,
        )
        try:
            token = data["access"]
            expires_in = int(data["access_expires"])
        except (KeyError, TypeError, ValueError) as exc:
            raise UpstreamError(
                "GoCardless token response missing access token or expiry",
                provider_name=self.provider_name,
                body=data,
            ) from exc

        self._token = SessionToken(
            token=token,
            expires_at=issued_at + timedelta(seconds=expires_in),
        )
        logger.info(
            "GoCardless: access token valid until %s",
            self._token.expires_at.isoformat(),
        )
        return self._token

    # ------------------------------------------------------------------
    # HTTP plumbing
    # ------------------------------------------------------------------

    def _request(
        self,
        method: str,
        path: str,
        params: dict | None = None,
        json: dict | None = None,
        authenticated: bool = True,
    ):
        """Perform one HTTP call and return the decoded JSON body.

        Raises:
            UpstreamError: On any non-2xx response or transport failure.
        """
        headers = {"accept": "application/json"}
        if authenticated:
            self.ensure_valid_token()
            headers["Authorization"] = f"Bearer {self._token.token}"

        try:
            with httpx.Client(
                base_url=self._base_url,
                timeout=self._timeout,
                transport=self._transport,
            ) as client:
                response = client.request(
                    method, path, params=params, json=json, headers=headers
                )
                response.raise_for_status()
                return response.json() if response.content else {}
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            body = _response_body(exc.response)
            logger.error(
                "GoCardless API error: %s %s -> HTTP %d: %s",
                method, path, status, body,
            )
            raise UpstreamError(
                f"GoCardless API error (HTTP {status}): {_summarize_body(body)}",
                provider_name=self.provider_name,
                status_code=status,
                body=body,
            ) from exc
        except httpx.TransportError as exc:
            logger.error("GoCardless connection failed: %s %s: %s", method, path, exc)
            raise UpstreamError(
                f"GoCardless connection failed: {exc}",
                provider_name=self.provider_name,
            ) from exc
        except ValueError as exc:
            raise UpstreamError(
                "GoCardless returned a non-JSON response",
                provider_name=self.provider_name,
            ) from exc

    # ------------------------------------------------------------------
    # Capabilities
    # ------------------------------------------------------------------

    def get_institutions(self, country_code: str) -> list[Institution]:
        """List institutions available in a country (ISO 3166 alpha-2)."""
        data = self._request(
            "GET", "/institutions/", params={"country": country_code.lower()}
        )
        institutions = [_map_institution(item) for item in data or []]
        logger.info(
            "GoCardless: %d institutions for %s", len(institutions), country_code.upper()
        )
        return institutions

    def create_end_user_agreement(
        self,
        institution_id: str,
        max_historical_days: int = 90,
        access_valid_for_days: int = 90,
        access_scope: list[str] | None = None,
    ) -> Agreement:
        """Create the consent terms a requisition will be bound to."""
        data = self._request(
            "POST",
            "/agreements/enduser/",
            json={
                "institution_id": institution_id,
                "max_historical_days": max_historical_days,
                "access_valid_for_days": access_valid_for_days,
                "access_scope": access_scope or DEFAULT_ACCESS_SCOPE,
            },
        )
        logger.info("GoCardless: end user agreement %s created", data.get("id"))
        return _map_agreement(data)

    def create_requisition(
        self,
        institution_id: str,
        redirect: str,
        reference: str,
        agreement: str | None = None,
        user_language: str = "EN",
    ) -> Requisition:
        """Start a linking session; the result carries the authorization URL."""
        payload = {
            "institution_id": institution_id,
            "redirect": redirect,
            "reference": reference,
            "user_language": user_language,
        }
        if agreement:
            payload["agreement"] = agreement
        data = self._request("POST", "/requisitions/", json=payload)
        logger.info("GoCardless: requisition %s created", data.get("id"))
        return _map_requisition(data)

    def get_requisition(self, requisition_id: str) -> Requisition:
        """Fetch a requisition (and its linked account ids) by id."""
        data = self._request("GET", f"/requisitions/{requisition_id}/")
        return _map_requisition(data)

    def get_requisition_by_reference(self, reference: str) -> Requisition:
        """Find a requisition by the caller-chosen reference.

        The API has no lookup by reference, so the paginated list is scanned.

        Raises:
            NotFoundError: If no requisition carries the reference.
        """
        data = self._request("GET", "/requisitions/")
        while True:
            for item in data.get("results", []):
                if item.get("reference") == reference:
                    return _map_requisition(item)
            next_url = data.get("next")
            if not next_url:
                break
            data = self._request("GET", next_url)

        raise NotFoundError(
            f"Requisition not found for reference: {reference}",
            entity="requisition",
        )

    def get_account_details(self, account_id: str) -> AccountDetails:
        data = self._request("GET", f"/accounts/{account_id}/details/")
        account = data.get("account") or {}
        return AccountDetails(
            account_id=account_id,
            iban=account.get("iban"),
            name=account.get("name") or account.get("displayName"),
            owner_name=account.get("ownerName"),
            currency=account.get("currency"),
            product=account.get("product"),
            raw_data=account,
        )

    def get_account_balances(self, account_id: str) -> list[AccountBalance]:
        data = self._request("GET", f"/accounts/{account_id}/balances/")
        balances = []
        for item in data.get("balances") or []:
            amount_info = item.get("balanceAmount") or {}
            amount = parse_decimal(amount_info.get("amount"))
            if amount is None:
                continue
            balances.append(
                AccountBalance(
                    amount=amount,
                    currency=amount_info.get("currency") or "EUR",
                    balance_type=item.get("balanceType") or "",
                    reference_date=parse_iso_date(item.get("referenceDate")),
                )
            )
        return balances

    def get_account_transactions(
        self,
        account_id: str,
        date_from: date | None = None,
        date_to: date | None = None,
    ) -> TransactionsPage:
        """Fetch booked and pending transactions for an account.

        Args:
            account_id: GoCardless account id
            date_from: Inclusive start date (omitted when None)
            date_to: Inclusive end date (omitted when None)
        """
        params = {}
        if date_from:
            params["date_from"] = _as_date(date_from).isoformat()
        if date_to:
            params["date_to"] = _as_date(date_to).isoformat()

        data = self._request(
            "GET", f"/accounts/{account_id}/transactions/", params=params or None
        )
        transactions = data.get("transactions") or {}
        page = TransactionsPage(
            booked=_map_transactions(transactions.get("booked"), pending=False),
            pending=_map_transactions(transactions.get("pending"), pending=True),
        )
        logger.info(
            "GoCardless: account %s returned %d booked, %d pending transactions",
            account_id, len(page.booked), len(page.pending),
        )
        return page


def _as_date(value: date | datetime) -> date:
    return value.date() if isinstance(value, datetime) else value


def _response_body(response: httpx.Response):
    try:
        return response.json()
    except ValueError:
        return response.text


def _summarize_body(body) -> str:
    """Pull the human-readable part out of a GoCardless error body."""
    if isinstance(body, dict):
        summary = body.get("summary") or body.get("detail")
        if summary:
            return str(summary)
    return str(body)[:200]


def _map_institution(item: dict) -> Institution:
    total_days = item.get("transaction_total_days")
    try:
        total_days = int(total_days) if total_days is not None else None
    except (TypeError, ValueError):
        total_days = None
    return Institution(
        id=item.get("id", ""),
        name=item.get("name") or item.get("id", ""),
        bic=item.get("bic"),
        transaction_total_days=total_days,
        countries=list(item.get("countries") or []),
        logo=item.get("logo"),
    )


def _map_agreement(data: dict) -> Agreement:
    return Agreement(
        id=data.get("id", ""),
        institution_id=data.get("institution_id", ""),
        max_historical_days=int(data.get("max_historical_days") or 0),
        access_valid_for_days=int(data.get("access_valid_for_days") or 0),
        access_scope=list(data.get("access_scope") or []),
        created=parse_iso_datetime(data.get("created")),
        accepted=parse_iso_datetime(data.get("accepted")),
    )


def _map_requisition(data: dict) -> Requisition:
    return Requisition(
        id=data.get("id", ""),
        institution_id=data.get("institution_id", ""),
        status=data.get("status", ""),
        link=data.get("link"),
        reference=data.get("reference"),
        agreement=data.get("agreement"),
        accounts=list(data.get("accounts") or []),
        created=parse_iso_datetime(data.get("created")),
    )


def _map_transactions(items: list | None, pending: bool) -> list[BankTransaction]:
    result = []
    for item in items or []:
        amount_info = item.get("transactionAmount") or {}
        amount = parse_decimal(amount_info.get("amount"))
        if amount is None:
            logger.debug("GoCardless: skipping transaction without amount: %r", item)
            continue

        remittance = item.get("remittanceInformationUnstructured")
        if not remittance and item.get("remittanceInformationUnstructuredArray"):
            remittance = " ".join(item["remittanceInformationUnstructuredArray"])

        result.append(
            BankTransaction(
                transaction_id=item.get("transactionId") or item.get("internalTransactionId"),
                amount=amount,
                currency=amount_info.get("currency") or "EUR",
                booking_date=parse_iso_date(item.get("bookingDate")),
                value_date=parse_iso_date(item.get("valueDate")),
                creditor_name=item.get("creditorName"),
                debtor_name=item.get("debtorName"),
                remittance_information=remittance,
                merchant_category_code=item.get("merchantCategoryCode"),
                bank_transaction_code=item.get("bankTransactionCode")
                or item.get("proprietaryBankTransactionCode"),
                is_pending=pending,
                raw_data=item,
            )
        )
    return result
