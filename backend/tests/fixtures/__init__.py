"""Test fixtures and sample data."""
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from sqlalchemy.orm import Session

from models import Account, Connection, PaymentAccount, PaymentActivity, Transaction, User
from models.payment_activity import PENDING
from models.transaction import EXPENSE


def create_user(db: Session, email: str = "user@example.com", is_demo_user: bool = False) -> User:
    user = User(email=email, name=email.split("@")[0], is_demo_user=is_demo_user)
    db.add(user)
    db.flush()
    return user


def create_account(
    db: Session,
    user: User,
    gocardless_account_id: str | None = "gc-acc-1",
    name: str = "Current Account",
    account_type: str = "bank_account",
) -> Account:
    account = Account(
        user_id=user.id,
        name=name,
        account_type=account_type,
        currency="EUR",
        gocardless_account_id=gocardless_account_id,
        institution_name="Test Bank",
    )
    db.add(account)
    db.flush()
    return account


def create_payment_account(
    db: Session,
    user: User,
    gocardless_account_id: str | None = "gc-paypal-1",
    provider: str = "paypal",
) -> PaymentAccount:
    payment_account = PaymentAccount(
        user_id=user.id,
        provider=provider,
        display_name="PayPal",
        gocardless_account_id=gocardless_account_id,
    )
    db.add(payment_account)
    db.flush()
    return payment_account


def create_connection(
    db: Session,
    user: User,
    requisition_id: str = "req-1",
    linked_account_ids: list[str] | None = None,
    connected_at: datetime | None = None,
    access_valid_for_days: int = 90,
    status: str = "ACTIVE",
    institution_name: str = "Test Bank",
) -> Connection:
    """Insert a connection directly (bypasses the service's status derivation)."""
    connection = Connection(
        user_id=user.id,
        requisition_id=requisition_id,
        institution_id="TEST_BANK_XX",
        institution_name=institution_name,
        connected_at=connected_at or datetime.now(timezone.utc),
        access_valid_for_days=access_valid_for_days,
        linked_account_ids=linked_account_ids if linked_account_ids is not None else ["gc-acc-1"],
        status=status,
    )
    db.add(connection)
    db.flush()
    return connection


def create_transaction(
    db: Session,
    account: Account,
    amount: str = "100.00",
    execution_date: datetime | None = None,
    description: str = "PAYPAL *ACME",
    type: str = EXPENSE,
    external_id: str | None = None,
) -> Transaction:
    transaction = Transaction(
        user_id=account.user_id,
        account_id=account.id,
        external_id=external_id,
        type=type,
        amount=Decimal(amount),
        currency="EUR",
        execution_date=execution_date or datetime(2025, 3, 10, tzinfo=timezone.utc),
        description=description,
        source="gocardless",
    )
    db.add(transaction)
    db.flush()
    return transaction


def create_activity(
    db: Session,
    payment_account: PaymentAccount,
    amount: str = "100.00",
    execution_date: datetime | None = None,
    merchant_name: str | None = "Acme Store",
    external_id: str = "pp-1",
    type: str = EXPENSE,
    status: str = PENDING,
) -> PaymentActivity:
    activity = PaymentActivity(
        user_id=payment_account.user_id,
        payment_account_id=payment_account.id,
        external_id=external_id,
        merchant_name=merchant_name,
        amount=Decimal(amount),
        type=type,
        execution_date=execution_date or datetime(2025, 3, 10, tzinfo=timezone.utc),
        description=merchant_name,
        reconciliation_status=status,
    )
    db.add(activity)
    db.flush()
    return activity


def days_ago(days: float, now: datetime | None = None) -> datetime:
    return (now or datetime.now(timezone.utc)) - timedelta(days=days)


@pytest.fixture
def user(db: Session) -> User:
    """Create a test user."""
    u = create_user(db)
    db.commit()
    db.refresh(u)
    return u


@pytest.fixture
def bank_account(db: Session, user: User) -> Account:
    """Create a bank account linked to GoCardless account ``gc-acc-1``."""
    account = create_account(db, user)
    db.commit()
    db.refresh(account)
    return account


@pytest.fixture
def payment_account(db: Session, user: User) -> PaymentAccount:
    """Create a PayPal account linked to GoCardless account ``gc-paypal-1``."""
    pa = create_payment_account(db, user)
    db.commit()
    db.refresh(pa)
    return pa


@pytest.fixture
def connection(db: Session, user: User) -> Connection:
    """Create an active connection covering ``gc-acc-1``."""
    conn = create_connection(db, user)
    db.commit()
    db.refresh(conn)
    return conn
