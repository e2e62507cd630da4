"""Pydantic schemas for bank link requests and responses."""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict

from schemas.account import AccountResponse


class InitiateLinkRequest(BaseModel):
    """Schema for starting a link flow.

    ``details`` carries provider-specific input, e.g.
    ``{"walletAddress": "0x...", "network": "ethereum"}`` for crypto wallets.
    """

    redirect_uri: Optional[str] = None
    details: Optional[dict[str, Any]] = None


class InitiateLinkResponse(BaseModel):
    link_url: Optional[str] = None
    expires_at: Optional[datetime] = None
    webhook_id: Optional[str] = None
    linked_immediately: bool = False


class BankLinkResponse(BaseModel):
    """Schema for BankLink API response. Authentication data is never returned."""

    id: str
    provider_name: str
    institution_id: Optional[str] = None
    institution_name: Optional[str] = None
    account_ids: list[str]
    status: str
    status_date: Optional[datetime] = None
    status_body: Optional[dict[str, Any]] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class WebhookResponse(BaseModel):
    received: bool = True
    outcome: str


class SyncResponse(BaseModel):
    accounts: list[AccountResponse]


class SyncAllResponse(BaseModel):
    accounts: list[AccountResponse]
    failures: dict[str, str]
