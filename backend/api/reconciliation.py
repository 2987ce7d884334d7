"""Reconciliation API endpoints."""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from api.dependencies import get_reconciliation_service
from api.helpers import get_current_user_id, http_error_for
from database import get_db
from schemas import (
    ManualReconcileRequest,
    PaymentActivityResponse,
    ReconciliationRunResponse,
    ReconciliationStatsResponse,
)
from services.exceptions import NotFoundError, ValidationError
from services.reconciliation_service import ReconciliationService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/reconciliation", tags=["reconciliation"])


@router.post("/run", response_model=ReconciliationRunResponse)
def run_reconciliation(
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    service: ReconciliationService = Depends(get_reconciliation_service),
):
    """Match the caller's pending payment activities against bank transactions."""
    result = service.process_for_user(db, user_id)
    return ReconciliationRunResponse(
        reconciled_count=result.reconciled_count,
        unreconciled_count=result.unreconciled_count,
        unreconciled=result.unreconciled,
    )


@router.get("/stats", response_model=ReconciliationStatsResponse)
def reconciliation_stats(
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    service: ReconciliationService = Depends(get_reconciliation_service),
):
    return service.get_stats(db, user_id)


@router.post("/manual", response_model=PaymentActivityResponse)
def manual_reconcile(
    body: ManualReconcileRequest,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    service: ReconciliationService = Depends(get_reconciliation_service),
):
    """Link a payment activity to a transaction chosen by the user."""
    try:
        activity = service.manual_reconcile(db, body.activity_id, body.transaction_id, user_id)
    except (NotFoundError, ValidationError) as e:
        db.rollback()
        raise http_error_for(e)
    db.commit()
    db.refresh(activity)
    return activity


@router.post("/{activity_id}/fail", response_model=PaymentActivityResponse)
def mark_failed(
    activity_id: str,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    service: ReconciliationService = Depends(get_reconciliation_service),
):
    """Flag a pending activity for manual review."""
    try:
        activity = service.mark_failed(db, activity_id, user_id)
    except (NotFoundError, ValidationError) as e:
        db.rollback()
        raise http_error_for(e)
    db.commit()
    db.refresh(activity)
    return activity
