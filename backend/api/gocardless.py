"""GoCardless linking flow endpoints."""

import logging
import uuid
from dataclasses import asdict

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from api.dependencies import get_gocardless_client, get_sync_service
from api.helpers import get_current_user_id, http_error_for, owns_requisition
from database import get_db
from integrations.exceptions import AggregatorError
from integrations.gocardless_client import GoCardlessClient
from schemas import (
    BalanceSyncResponse,
    ConnectedAccountsResponse,
    InstitutionResponse,
    LinkRequest,
    LinkResponse,
    RequisitionResponse,
)
from services.sync_service import SyncService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/gocardless", tags=["gocardless"])


@router.get("/institutions", response_model=list[InstitutionResponse])
def list_institutions(
    country: str = Query(..., min_length=2, max_length=2, description="ISO 3166 alpha-2 code"),
    user_id: str = Depends(get_current_user_id),
    client: GoCardlessClient = Depends(get_gocardless_client),
):
    """List banks available in a country."""
    try:
        return client.get_institutions(country)
    except AggregatorError as e:
        raise http_error_for(e)


@router.post("/link", response_model=LinkResponse)
def create_link(
    body: LinkRequest,
    user_id: str = Depends(get_current_user_id),
    client: GoCardlessClient = Depends(get_gocardless_client),
):
    """Start a linking session and return the bank authorization URL.

    Creates the end-user agreement first so the consent terms (history
    depth, validity) are explicit, then the requisition bound to it.  The
    reference is prefixed with the user id so completion can verify
    ownership.
    """
    reference = f"{user_id}-{uuid.uuid4().hex}"
    try:
        agreement = client.create_end_user_agreement(
            body.institution_id,
            max_historical_days=body.max_historical_days,
            access_valid_for_days=body.access_valid_for_days,
        )
        requisition = client.create_requisition(
            body.institution_id,
            redirect=body.redirect_url,
            reference=reference,
            agreement=agreement.id,
            user_language=body.user_language,
        )
    except AggregatorError as e:
        raise http_error_for(e)

    if not requisition.link:
        raise HTTPException(status_code=502, detail="GoCardless did not return an authorization link")

    logger.info("Link started for user %s with %s", user_id, body.institution_id)
    return LinkResponse(
        requisition_id=requisition.id,
        reference=reference,
        link=requisition.link,
        agreement_id=agreement.id,
    )


@router.get("/requisitions/{requisition_id}", response_model=RequisitionResponse)
def get_requisition(
    requisition_id: str,
    user_id: str = Depends(get_current_user_id),
    client: GoCardlessClient = Depends(get_gocardless_client),
):
    """Fetch a requisition's status and linked account ids."""
    try:
        requisition = client.get_requisition(requisition_id)
    except AggregatorError as e:
        raise http_error_for(e)
    if not owns_requisition(requisition, user_id):
        raise HTTPException(status_code=404, detail="Requisition not found")
    return requisition


@router.get("/connected-accounts", response_model=ConnectedAccountsResponse)
def connected_accounts(
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    sync_service: SyncService = Depends(get_sync_service),
):
    """The caller's linked accounts with live GoCardless details and balances."""
    try:
        accounts = sync_service.get_connected_accounts(db, user_id)
    except AggregatorError as e:
        raise http_error_for(e)
    return ConnectedAccountsResponse(
        connected_accounts=[asdict(a) for a in accounts],
        total_accounts=len(accounts),
    )


@router.post("/sync-balances", response_model=BalanceSyncResponse)
def sync_balances(
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    sync_service: SyncService = Depends(get_sync_service),
):
    """Refresh balances of the caller's linked accounts without importing transactions."""
    result = sync_service.sync_account_balances(db, user_id)
    db.commit()
    return {
        "sync_results": [
            {
                "account_type": r.account_type,
                "account_name": r.account_name,
                "gocardless_account_id": r.gocardless_account_id,
                "status": "success" if r.success else "failed",
                "new_balance": r.new_balance,
                "error": r.error,
            }
            for r in result.results
        ],
        "summary": {
            "total_accounts": result.total_accounts,
            "successful_syncs": result.successful,
            "failed_syncs": result.failed,
        },
    }
