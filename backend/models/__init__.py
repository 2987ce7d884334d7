"""SQLAlchemy ORM models."""

from .account import Account
from .connection import Connection, ConnectionStatus
from .payment_account import PaymentAccount
from .payment_activity import PaymentActivity
from .sync_report import SyncReport
from .transaction import Transaction
from .user import User
from .utils import generate_uuid

__all__ = ["Account", "Connection", "ConnectionStatus", "PaymentAccount", "PaymentActivity", "SyncReport", "Transaction", "User", "generate_uuid"]
