"""Bank link API endpoints.

Starts provider link flows, receives provider webhooks, and triggers
account syncs for the acting user's links.
"""

import json
import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from api.deps import get_bank_link_service, get_current_user_id
from api.helpers import commit_quietly, service_errors
from database import get_db
from models import BankLink
from schemas.account import AccountResponse
from schemas.bank_link import (
    BankLinkResponse,
    InitiateLinkRequest,
    InitiateLinkResponse,
    SyncAllResponse,
    SyncResponse,
    WebhookResponse,
)
from services.bank_link_service import BankLinkService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/bank-link", tags=["bank-link"])


async def _raw_body(request: Request) -> bytes:
    """Request body exactly as sent, for signature checks."""
    return await request.body()


@router.get("", response_model=list[BankLinkResponse])
def list_bank_links(
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    """List the user's bank links."""
    return (
        db.query(BankLink)
        .filter(BankLink.user_id == user_id)
        .order_by(BankLink.created_at)
        .all()
    )


@router.post("/initiate/{provider_name}", response_model=InitiateLinkResponse)
def initiate_linking(
    provider_name: str,
    body: InitiateLinkRequest | None = None,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    service: BankLinkService = Depends(get_bank_link_service),
):
    """Start a link flow with a provider."""
    body = body or InitiateLinkRequest()
    with service_errors():
        initiation = service.initiate_linking(
            db,
            provider_name,
            user_id,
            redirect_uri=body.redirect_uri,
            link_details=body.details,
        )
    db.commit()
    return InitiateLinkResponse(
        link_url=initiation.link_url,
        expires_at=initiation.expires_at,
        webhook_id=initiation.webhook_id,
        linked_immediately=bool(initiation.immediate_accounts),
    )


@router.post("/webhook/{provider_name}", response_model=WebhookResponse)
def receive_webhook(
    provider_name: str,
    request: Request,
    raw_body: bytes = Depends(_raw_body),
    db: Session = Depends(get_db),
    service: BankLinkService = Depends(get_bank_link_service),
):
    """Receive a provider webhook. Not user-authenticated; the signature is checked instead."""
    try:
        payload = json.loads(raw_body or b"{}")
    except ValueError as e:
        raise HTTPException(status_code=400, detail="Webhook body is not valid JSON") from e
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Webhook body must be a JSON object")

    try:
        with service_errors():
            outcome = service.handle_webhook(
                db, provider_name, raw_body, dict(request.headers), payload
            )
    except HTTPException:
        # Keep the FAILED record written for a failed link completion
        commit_quietly(db)
        raise

    db.commit()
    logger.info("%s webhook handled: %s", provider_name, outcome.value)
    return WebhookResponse(outcome=outcome.value)


@router.post("/sync-all", response_model=SyncAllResponse)
def sync_all(
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    service: BankLinkService = Depends(get_bank_link_service),
):
    """Sync all of the user's links; per-link failures are reported, not raised."""
    with service_errors():
        result = service.sync_all_accounts(db, user_id)
    db.commit()
    return SyncAllResponse(
        accounts=[AccountResponse.from_account(a) for a in result.accounts],
        failures=result.failures,
    )


@router.post("/{bank_link_id}/sync", response_model=SyncResponse)
def sync_bank_link(
    bank_link_id: str,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    service: BankLinkService = Depends(get_bank_link_service),
):
    """Sync one link's accounts from its provider."""
    with service_errors():
        accounts = service.sync_accounts(db, bank_link_id, user_id)
    db.commit()
    return SyncResponse(accounts=[AccountResponse.from_account(a) for a in accounts])
