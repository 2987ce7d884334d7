"""Connection registry: consent validity tracking and expiry alerts.

A connection's status is a function of time (``calculate_status``) except
for two states set by events: ``ERROR`` (a sync failed for a reason other
than an expired consent) and ``DISCONNECTED`` (terminal, set by the user).
Time-based recomputation never overwrites ``DISCONNECTED``.
"""

import logging
import math
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from sqlalchemy.orm import Session

from config import settings
from integrations.parsing_utils import ensure_utc
from models import Connection, ConnectionStatus
from models.connection import DEFAULT_ACCESS_VALID_FOR_DAYS, hash_requisition_id
from services.exceptions import NotFoundError, ValidationError

logger = logging.getLogger(__name__)

# Phrases in a sync error that point at an expired or revoked consent
EXPIRATION_PHRASES = (
    "access expired",
    "agreement expired",
    "eua expired",
    "eua_expired",
    "consent expired",
    "has expired",
)
_AUTH_STATUS_RE = re.compile(r"(?<!\d)(401|403)(?!\d)")


@dataclass
class ConnectionAlert:
    """A connection whose consent needs renewing, with the accounts affected."""

    connection_id: str
    institution_name: str
    status: ConnectionStatus
    expires_at: datetime
    days_until_expiration: int
    linked_account_ids: list[str] = field(default_factory=list)


@dataclass
class ConnectionStatusSummary:
    total_connections: int = 0
    active_connections: int = 0
    expiring_soon_connections: int = 0
    expired_connections: int = 0
    error_connections: int = 0
    disconnected_connections: int = 0
    alerts: list[ConnectionAlert] = field(default_factory=list)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def calculate_status(
    expires_at: datetime,
    now: datetime | None = None,
    warning_days: int | None = None,
) -> ConnectionStatus:
    """Derive a connection's status from its expiry.

    EXPIRED if ``expires_at < now``; EXPIRING_SOON if it falls within the
    warning window (boundary inclusive); ACTIVE otherwise.
    """
    now = ensure_utc(now or _utcnow())
    expires_at = ensure_utc(expires_at)
    if warning_days is None:
        warning_days = settings.CONNECTION_EXPIRY_WARNING_DAYS

    if expires_at < now:
        return ConnectionStatus.EXPIRED
    if expires_at <= now + timedelta(days=warning_days):
        return ConnectionStatus.EXPIRING_SOON
    return ConnectionStatus.ACTIVE


def days_until_expiration(expires_at: datetime, now: datetime | None = None) -> int:
    """Whole days until expiry, rounded up; negative once expired."""
    now = ensure_utc(now or _utcnow())
    delta = ensure_utc(expires_at) - now
    return math.ceil(delta.total_seconds() / 86400)


def classify_post_sync_error(message: str | None) -> ConnectionStatus:
    """Decide whether a failed sync means the consent expired.

    Best-effort heuristic over the error text: consent phrases or an HTTP
    401/403 status code give EXPIRED, anything else gives ERROR.
    """
    if not message:
        return ConnectionStatus.ERROR
    lowered = message.lower()
    if any(phrase in lowered for phrase in EXPIRATION_PHRASES):
        return ConnectionStatus.EXPIRED
    if _AUTH_STATUS_RE.search(lowered):
        return ConnectionStatus.EXPIRED
    return ConnectionStatus.ERROR


class ConnectionService:
    """Service for connection lifecycle and status reporting."""

    @staticmethod
    def create_connection(
        db: Session,
        *,
        user_id: str,
        requisition_id: str,
        institution_id: str,
        eua_id: str | None = None,
        institution_name: str | None = None,
        institution_logo: str | None = None,
        connected_at: datetime | None = None,
        access_valid_for_days: int = DEFAULT_ACCESS_VALID_FOR_DAYS,
        linked_account_ids: list[str] | None = None,
    ) -> Connection:
        """Record a consent once the user completes the linking flow."""
        if not requisition_id:
            raise ValidationError("requisition_id is required")
        if access_valid_for_days <= 0:
            raise ValidationError("access_valid_for_days must be positive")

        connected_at = ensure_utc(connected_at or _utcnow())
        connection = Connection(
            user_id=user_id,
            requisition_id=requisition_id,
            eua_id=eua_id,
            institution_id=institution_id,
            institution_name=institution_name,
            institution_logo=institution_logo,
            connected_at=connected_at,
            access_valid_for_days=access_valid_for_days,
            linked_account_ids=list(dict.fromkeys(linked_account_ids or [])),
        )
        connection.status = calculate_status(connection.expires_at).value
        db.add(connection)
        db.flush()

        logger.info(
            "Created connection %s for user %s, expires at %s",
            connection.id, user_id, connection.expires_at.isoformat(),
        )
        return connection

    @staticmethod
    def update_after_sync(
        db: Session,
        connection_id: str,
        success: bool,
        error: str | None = None,
        now: datetime | None = None,
    ) -> Connection | None:
        """Record a sync attempt; a failure moves the status to EXPIRED or ERROR."""
        connection = db.query(Connection).filter(Connection.id == connection_id).first()
        if not connection:
            return None

        connection.last_sync_at = now or _utcnow()
        connection.last_sync_error = error if not success else None

        if not success and not connection.is_disconnected:
            new_status = classify_post_sync_error(error)
            if connection.status != new_status.value:
                logger.warning(
                    "Connection %s moved %s -> %s after failed sync",
                    connection.id, connection.status, new_status.value,
                )
                connection.status = new_status.value

        db.flush()
        return connection

    @staticmethod
    def recompute_and_alert(
        db: Session, user_id: str, now: datetime | None = None
    ) -> ConnectionStatusSummary:
        """Refresh statuses for a user's connections and build renewal alerts.

        Connections are walked most-recently-connected first.  An account
        already covered by a newer ACTIVE connection is not alerted on, so
        re-linking a bank silences the old consent's warnings.
        """
        now = ensure_utc(now or _utcnow())
        connections = (
            db.query(Connection)
            .filter(Connection.user_id == user_id)
            .order_by(Connection.connected_at.desc(), Connection.id)
            .all()
        )

        changed = 0
        for conn in connections:
            if conn.is_disconnected:
                continue
            new_status = calculate_status(conn.expires_at, now).value
            if conn.status != new_status:
                conn.status = new_status
                changed += 1
        if changed:
            db.flush()
            logger.info("Updated %d connection statuses for user %s", changed, user_id)

        covered: dict[str, str] = {}
        for conn in connections:
            if conn.status == ConnectionStatus.ACTIVE.value:
                for account_id in conn.account_ids:
                    covered.setdefault(account_id, conn.id)

        alerts = []
        for conn in connections:
            if conn.status not in (
                ConnectionStatus.EXPIRING_SOON.value,
                ConnectionStatus.EXPIRED.value,
            ):
                continue
            needing_attention = [a for a in conn.account_ids if a not in covered]
            if not needing_attention:
                continue
            alerts.append(
                ConnectionAlert(
                    connection_id=conn.id,
                    institution_name=conn.institution_name or conn.institution_id,
                    status=ConnectionStatus(conn.status),
                    expires_at=ensure_utc(conn.expires_at),
                    days_until_expiration=days_until_expiration(conn.expires_at, now),
                    linked_account_ids=needing_attention,
                )
            )

        alerts.sort(key=lambda a: a.days_until_expiration)

        def count(status: ConnectionStatus) -> int:
            return sum(1 for c in connections if c.status == status.value)

        return ConnectionStatusSummary(
            total_connections=len(connections),
            active_connections=count(ConnectionStatus.ACTIVE),
            expiring_soon_connections=count(ConnectionStatus.EXPIRING_SOON),
            expired_connections=count(ConnectionStatus.EXPIRED),
            error_connections=count(ConnectionStatus.ERROR),
            disconnected_connections=count(ConnectionStatus.DISCONNECTED),
            alerts=alerts,
        )

    @staticmethod
    def update_expiration_statuses(db: Session, now: datetime | None = None) -> int:
        """Bulk time-based status update across all users.

        Only ACTIVE and EXPIRING_SOON connections move; ERROR and
        DISCONNECTED are left for event-driven updates.

        Returns:
            Number of connections updated.
        """
        now = ensure_utc(now or _utcnow())
        warning_date = now + timedelta(days=settings.CONNECTION_EXPIRY_WARNING_DAYS)
        db.flush()

        expiring = (
            db.query(Connection)
            .filter(
                Connection.status == ConnectionStatus.ACTIVE.value,
                Connection.expires_at >= now,
                Connection.expires_at <= warning_date,
            )
            .update(
                {Connection.status: ConnectionStatus.EXPIRING_SOON.value},
                synchronize_session=False,
            )
        )
        expired = (
            db.query(Connection)
            .filter(
                Connection.status.in_(
                    [ConnectionStatus.ACTIVE.value, ConnectionStatus.EXPIRING_SOON.value]
                ),
                Connection.expires_at < now,
            )
            .update(
                {Connection.status: ConnectionStatus.EXPIRED.value},
                synchronize_session=False,
            )
        )
        db.expire_all()

        total = (expiring or 0) + (expired or 0)
        if total:
            logger.info(
                "Updated %d connection statuses (%d expiring soon, %d expired)",
                total, expiring, expired,
            )
        return total

    @staticmethod
    def find_by_account_id(
        db: Session, user_id: str, gocardless_account_id: str
    ) -> Connection | None:
        """Newest connection of a user whose consent covers an aggregator account.

        The linked id list is encrypted, so matching happens in Python.
        """
        connections = (
            db.query(Connection)
            .filter(Connection.user_id == user_id)
            .order_by(Connection.connected_at.desc())
            .all()
        )
        for conn in connections:
            if gocardless_account_id in conn.account_ids:
                return conn
        return None

    @staticmethod
    def find_by_requisition_id(db: Session, requisition_id: str) -> Connection | None:
        return (
            db.query(Connection)
            .filter(Connection.requisition_id_hash == hash_requisition_id(requisition_id))
            .first()
        )

    @staticmethod
    def list_for_user(db: Session, user_id: str) -> list[Connection]:
        """All connections of a user, soonest expiry first."""
        return (
            db.query(Connection)
            .filter(Connection.user_id == user_id)
            .order_by(Connection.expires_at.asc())
            .all()
        )

    @staticmethod
    def disconnect(db: Session, connection_id: str, user_id: str) -> Connection:
        """Mark a connection DISCONNECTED; it is kept for history.

        Raises:
            NotFoundError: If the connection does not exist for this user.
        """
        connection = (
            db.query(Connection)
            .filter(Connection.id == connection_id, Connection.user_id == user_id)
            .first()
        )
        if not connection:
            raise NotFoundError("Connection not found", entity="connection")

        connection.status = ConnectionStatus.DISCONNECTED.value
        db.flush()
        logger.info("Disconnected connection %s for user %s", connection_id, user_id)
        return connection

    @staticmethod
    def add_linked_account_ids(
        db: Session, connection_id: str, account_ids: list[str]
    ) -> Connection:
        """Union new aggregator account ids into a connection's linked set.

        Raises:
            NotFoundError: If the connection does not exist.
        """
        connection = db.query(Connection).filter(Connection.id == connection_id).first()
        if not connection:
            raise NotFoundError("Connection not found", entity="connection")

        # Assign a new list: the encrypted JSON column does not track in-place edits
        connection.linked_account_ids = list(
            dict.fromkeys([*connection.account_ids, *account_ids])
        )
        db.flush()
        return connection
