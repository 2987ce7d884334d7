"""Shared API helpers for route handlers.

Caller identity and the mapping from service exceptions to HTTP errors.
"""

import logging

from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session

from database import get_db
from integrations.exceptions import NotConfiguredError, UpstreamError
from models import User
from services.exceptions import NotFoundError, ValidationError

logger = logging.getLogger(__name__)


def get_current_user_id(
    x_user_id: str | None = Header(default=None),
    db: Session = Depends(get_db),
) -> str:
    """Resolve the caller from the ``X-User-Id`` header set by the gateway.

    Raises:
        HTTPException: 401 if the header is missing or names no user.
    """
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Missing X-User-Id header")
    exists = db.query(User.id).filter(User.id == x_user_id).first()
    if not exists:
        raise HTTPException(status_code=401, detail="Unknown user")
    return x_user_id


def http_error_for(exc: Exception) -> HTTPException:
    """Translate a service or aggregator exception into an HTTPException.

    NotFoundError -> 404, ValidationError -> 400, NotConfiguredError -> 503,
    UpstreamError -> 502.  Anything else becomes a generic 500 and its text
    is never exposed.
    """
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, ValidationError):
        return HTTPException(status_code=400, detail=str(exc))
    if isinstance(exc, NotConfiguredError):
        logger.warning("Aggregator not configured: %s", exc)
        return HTTPException(
            status_code=503,
            detail=f"{exc.provider_name} is not configured on this server.",
        )
    if isinstance(exc, UpstreamError):
        logger.warning("Upstream error: %s", exc)
        return HTTPException(
            status_code=502,
            detail=f"{exc.provider_name} request failed"
            + (f" (HTTP {exc.status_code})" if exc.status_code else ""),
        )
    logger.error("Unexpected error: %s", exc, exc_info=exc)
    return HTTPException(status_code=500, detail="An unexpected error occurred.")


def connection_response_dict(connection) -> dict:
    """Build a ConnectionResponse-compatible dict (consent identifiers omitted)."""
    return {
        "id": connection.id,
        "institution_id": connection.institution_id,
        "institution_name": connection.institution_name,
        "institution_logo": connection.institution_logo,
        "status": connection.status,
        "connected_at": connection.connected_at,
        "access_valid_for_days": connection.access_valid_for_days,
        "expires_at": connection.expires_at,
        "last_sync_at": connection.last_sync_at,
        "last_sync_error": connection.last_sync_error,
        "linked_account_ids": connection.account_ids,
    }


def owns_requisition(requisition, user_id: str) -> bool:
    """Whether a requisition was started by ``user_id``.

    Link references are ``<user_id>-<hex>``; a requisition without a
    reference belongs to nobody.
    """
    return bool(requisition.reference) and requisition.reference.startswith(f"{user_id}-")
