"""Pydantic schemas for the GoCardless linking flow."""

from datetime import date, datetime
from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, Field


class InstitutionResponse(BaseModel):
    id: str
    name: str
    bic: Optional[str] = None
    transaction_total_days: Optional[int] = None
    countries: list[str] = []
    logo: Optional[str] = None

    model_config = {"from_attributes": True}


class LinkRequest(BaseModel):
    """Body for starting a linking session with an institution."""

    institution_id: str = Field(min_length=1)
    redirect_url: str = Field(min_length=1)
    max_historical_days: int = Field(default=90, gt=0, le=730)
    access_valid_for_days: int = Field(default=90, gt=0, le=730)
    user_language: str = "EN"


class LinkResponse(BaseModel):
    requisition_id: str
    reference: str
    link: Optional[str] = None
    agreement_id: Optional[str] = None


class RequisitionResponse(BaseModel):
    id: str
    institution_id: str
    status: str
    link: Optional[str] = None
    reference: Optional[str] = None
    agreement: Optional[str] = None
    accounts: list[str] = []
    created: Optional[datetime] = None

    model_config = {"from_attributes": True}


class AccountDetailsResponse(BaseModel):
    account_id: str
    iban: Optional[str] = None
    name: Optional[str] = None
    owner_name: Optional[str] = None
    currency: Optional[str] = None
    product: Optional[str] = None

    model_config = {"from_attributes": True}


class AccountBalanceResponse(BaseModel):
    amount: Decimal
    currency: str
    balance_type: str
    reference_date: Optional[date] = None

    model_config = {"from_attributes": True}


class ConnectedAccountResponse(BaseModel):
    """A linked local account with its live GoCardless details."""

    account_type: str
    local_id: str
    local_name: str
    gocardless_account_id: str
    details: AccountDetailsResponse
    balances: list[AccountBalanceResponse] = []

    model_config = {"from_attributes": True}


class ConnectedAccountsResponse(BaseModel):
    connected_accounts: list[ConnectedAccountResponse]
    total_accounts: int


class BalanceSyncItemResponse(BaseModel):
    account_type: str
    account_name: str
    gocardless_account_id: str
    status: Literal["success", "failed"]
    new_balance: Optional[Decimal] = None
    error: Optional[str] = None


class BalanceSyncSummary(BaseModel):
    total_accounts: int
    successful_syncs: int
    failed_syncs: int


class BalanceSyncResponse(BaseModel):
    sync_results: list[BalanceSyncItemResponse]
    summary: BalanceSyncSummary
