"""Normalized aggregator data and collaborator protocols.

This module defines the dataclasses that the GoCardless client maps its
responses to, and the interfaces that the sync orchestrator and the
reconciliation engine depend on (``Importer``, ``ActivityStore``).
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Protocol

from sqlalchemy.orm import Session


@dataclass
class SessionToken:
    """Bearer token for the aggregator API and the moment it stops being valid."""

    token: str
    expires_at: datetime


@dataclass
class Institution:
    """A bank or payment provider reachable through the aggregator."""

    id: str
    name: str
    bic: str | None = None
    transaction_total_days: int | None = None
    countries: list[str] = field(default_factory=list)
    logo: str | None = None


@dataclass
class Agreement:
    """End-user agreement (consent terms) created before a requisition."""

    id: str
    institution_id: str
    max_historical_days: int
    access_valid_for_days: int
    access_scope: list[str] = field(default_factory=list)
    created: datetime | None = None
    accepted: datetime | None = None


@dataclass
class Requisition:
    """A linking session; ``accounts`` is filled once the user authorizes."""

    id: str
    institution_id: str
    status: str  # e.g. "CR" created, "LN" linked, "EX" expired, "RJ" rejected
    link: str | None = None  # Authorization URL for the end user
    reference: str | None = None
    agreement: str | None = None
    accounts: list[str] = field(default_factory=list)
    created: datetime | None = None


@dataclass
class AccountBalance:
    """One balance entry from ``/accounts/{id}/balances/``."""

    amount: Decimal
    currency: str
    balance_type: str  # e.g. "expected", "interimAvailable", "closingBooked"
    reference_date: date | None = None


@dataclass
class AccountDetails:
    """Display metadata from ``/accounts/{id}/details/``."""

    account_id: str
    iban: str | None = None
    name: str | None = None
    owner_name: str | None = None
    currency: str | None = None
    product: str | None = None
    raw_data: dict | None = None


@dataclass
class BankTransaction:
    """One booked or pending transaction from ``/accounts/{id}/transactions/``.

    ``amount`` keeps the upstream sign (negative for money leaving the account).
    """

    transaction_id: str | None
    amount: Decimal
    currency: str
    booking_date: date | None
    value_date: date | None = None
    creditor_name: str | None = None
    debtor_name: str | None = None
    remittance_information: str | None = None
    merchant_category_code: str | None = None
    bank_transaction_code: str | None = None
    is_pending: bool = False
    raw_data: dict | None = None

    @property
    def execution_date(self) -> date | None:
        """Booking date, or value date for pending transactions."""
        return self.booking_date or self.value_date


@dataclass
class TransactionsPage:
    """Booked and pending transactions for one account and date range."""

    booked: list[BankTransaction] = field(default_factory=list)
    pending: list[BankTransaction] = field(default_factory=list)

    def all(self) -> list[BankTransaction]:
        return [*self.booked, *self.pending]


@dataclass
class ImportOptions:
    """Options for one ``Importer.import_from_source`` call."""

    date_from: date | None = None
    date_to: date | None = None
    skip_duplicate_check: bool = False
    local_account_id: str | None = None
    account_type: str | None = None  # "bank_account" | "credit_card" | "payment_account"


@dataclass
class ImportResult:
    """Outcome of importing one linked account.

    ``skipped`` counts records already present by external id;
    ``pending_duplicates`` counts new records flagged for duplicate review.
    """

    imported: int = 0
    skipped: int = 0
    pending_duplicates: int = 0
    errors: list[str] = field(default_factory=list)


class Importer(Protocol):
    """Imports transactions for one linked account.

    Implementations must be idempotent per external transaction id.
    """

    def import_from_source(
        self,
        db: Session,
        account_id: str,
        user_id: str,
        options: ImportOptions,
    ) -> ImportResult:
        """Fetch and persist transactions for an aggregator account.

        Args:
            db: Database session.
            account_id: The aggregator's account id.
            user_id: Owner of the local account.
            options: Date range and local target.

        Returns:
            Counts of imported and skipped records plus per-record errors.

        Raises:
            AggregatorError: If the aggregator call fails.
            NotFoundError: If the local target does not exist.
        """
        ...


class ActivityStore(Protocol):
    """Persistence for secondary activity records (payment provider events)."""

    def find_by_external_id(self, db: Session, external_id: str, user_id: str):
        ...

    def create(self, db: Session, data: dict):
        ...

    def update_reconciliation(
        self, db: Session, activity_id: str, user_id: str, data: dict
    ):
        ...

    def get_activity(self, db: Session, activity_id: str, user_id: str):
        ...

    def find_pending(self, db: Session, user_id: str) -> list:
        ...

    def get_stats(self, db: Session, user_id: str) -> dict[str, int]:
        ...
