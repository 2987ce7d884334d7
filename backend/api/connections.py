"""Connection API endpoints."""

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from api.dependencies import get_gocardless_client
from api.helpers import (
    connection_response_dict,
    get_current_user_id,
    http_error_for,
    owns_requisition,
)
from database import get_db
from integrations.exceptions import AggregatorError
from integrations.gocardless_client import GoCardlessClient
from schemas import CompleteConnectionRequest, ConnectionResponse, ConnectionStatusResponse
from services.connection_service import ConnectionService
from services.exceptions import NotFoundError, ValidationError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/connections", tags=["connections"])

# GoCardless requisition status for a completed bank authorization
REQUISITION_LINKED = "LN"


@router.get("", response_model=list[ConnectionResponse])
def list_connections(
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    """List the caller's connections, soonest expiry first."""
    connections = ConnectionService.list_for_user(db, user_id)
    return [connection_response_dict(c) for c in connections]


@router.get("/status", response_model=ConnectionStatusResponse)
def connection_status(
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    """Recompute connection statuses and return renewal alerts."""
    summary = ConnectionService.recompute_and_alert(db, user_id)
    db.commit()
    return {
        "total_connections": summary.total_connections,
        "active_connections": summary.active_connections,
        "expiring_soon_connections": summary.expiring_soon_connections,
        "expired_connections": summary.expired_connections,
        "error_connections": summary.error_connections,
        "disconnected_connections": summary.disconnected_connections,
        "alerts": [
            {
                "connection_id": a.connection_id,
                "institution_name": a.institution_name,
                "status": a.status.value,
                "expires_at": a.expires_at,
                "days_until_expiration": a.days_until_expiration,
                "linked_account_ids": a.linked_account_ids,
            }
            for a in summary.alerts
        ],
    }


@router.post("/complete", response_model=ConnectionResponse)
def complete_connection(
    body: CompleteConnectionRequest,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    client: GoCardlessClient = Depends(get_gocardless_client),
):
    """Record the consent once the user returns from the bank.

    The requisition is looked up by id or by the reference returned from
    the link call.  Completing the same requisition twice merges any new
    account ids into the existing connection.
    """
    if not body.requisition_id and not body.reference:
        raise HTTPException(status_code=400, detail="requisition_id or reference is required")

    try:
        if body.requisition_id:
            requisition = client.get_requisition(body.requisition_id)
        else:
            requisition = client.get_requisition_by_reference(body.reference)

        if not owns_requisition(requisition, user_id):
            raise NotFoundError("Requisition not found", entity="requisition")
        if requisition.status != REQUISITION_LINKED and not requisition.accounts:
            raise ValidationError(
                f"Requisition is not linked yet (status {requisition.status})"
            )

        existing = ConnectionService.find_by_requisition_id(db, requisition.id)
        if existing and existing.user_id == user_id:
            connection = ConnectionService.add_linked_account_ids(
                db, existing.id, requisition.accounts
            )
        elif existing:
            raise NotFoundError("Requisition not found", entity="requisition")
        else:
            connection = ConnectionService.create_connection(
                db,
                user_id=user_id,
                requisition_id=requisition.id,
                eua_id=requisition.agreement,
                institution_id=requisition.institution_id,
                institution_name=body.institution_name,
                institution_logo=body.institution_logo,
                access_valid_for_days=body.access_valid_for_days,
                linked_account_ids=requisition.accounts,
            )
        db.commit()
        db.refresh(connection)
        return connection_response_dict(connection)
    except (AggregatorError, NotFoundError, ValidationError) as e:
        db.rollback()
        raise http_error_for(e)


@router.post("/{connection_id}/disconnect", response_model=ConnectionResponse)
def disconnect_connection(
    connection_id: str,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    """Mark a connection DISCONNECTED (kept for history)."""
    try:
        connection = ConnectionService.disconnect(db, connection_id, user_id)
    except NotFoundError as e:
        raise http_error_for(e)
    db.commit()
    db.refresh(connection)
    return connection_response_dict(connection)
