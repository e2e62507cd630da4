"""Accounts API endpoints."""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from api.deps import get_current_user_id
from api.helpers import service_errors
from database import get_db
from schemas.account import AccountResponse, BalanceSnapshotResponse
from services.account_service import AccountService
from services.balance_snapshot_service import BalanceSnapshotService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/accounts", tags=["accounts"])


@router.get("", response_model=list[AccountResponse])
def list_accounts(
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    """List the user's accounts with the time each was last synced."""
    accounts = AccountService.list_accounts(db, user_id)
    last_sync = BalanceSnapshotService.get_last_sync_times(db, user_id)
    return [AccountResponse.from_account(a, last_sync.get(a.id)) for a in accounts]


@router.get("/{account_id}", response_model=AccountResponse)
def get_account(
    account_id: str,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    """Get one of the user's accounts."""
    with service_errors():
        account = AccountService.get_account(db, account_id, user_id)
    last_sync = BalanceSnapshotService.get_last_sync_times(db, user_id)
    return AccountResponse.from_account(account, last_sync.get(account.id))


@router.get("/{account_id}/snapshots", response_model=list[BalanceSnapshotResponse])
def list_snapshots(
    account_id: str,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    """Daily balance history for an account, newest first."""
    with service_errors():
        snapshots = BalanceSnapshotService.list_for_account(db, account_id, user_id)
    return [BalanceSnapshotResponse.from_snapshot(s) for s in snapshots]
