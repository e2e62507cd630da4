"""Transactions API endpoints."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from api.deps import get_current_user_id, get_transaction_service
from api.helpers import service_errors
from database import get_db
from schemas.transaction import TransactionCreate, TransactionResponse, TransactionUpdate
from services.transaction_service import TransactionService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/transactions", tags=["transactions"])


@router.get("", response_model=list[TransactionResponse])
def list_transactions(
    account_id: Optional[str] = Query(default=None),
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    """List the user's transactions, optionally for one account."""
    transactions = TransactionService.list_transactions(db, user_id, account_id=account_id)
    return [TransactionResponse.from_transaction(t) for t in transactions]


@router.post("", response_model=TransactionResponse, status_code=201)
def create_transaction(
    body: TransactionCreate,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    service: TransactionService = Depends(get_transaction_service),
):
    """Record a transaction; the account balance and snapshots follow."""
    with service_errors():
        txn = service.create_transaction(
            db,
            user_id,
            body.account_id,
            body.amount.to_money(),
            body.date,
            merchant_name=body.merchant_name,
            pending=body.pending,
            external_transaction_id=body.external_transaction_id,
            category_id=body.category_id,
        )
    db.commit()
    db.refresh(txn)
    return TransactionResponse.from_transaction(txn)


@router.get("/{transaction_id}", response_model=TransactionResponse)
def get_transaction(
    transaction_id: str,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
):
    with service_errors():
        txn = TransactionService.get_transaction(db, transaction_id, user_id)
    return TransactionResponse.from_transaction(txn)


@router.patch("/{transaction_id}", response_model=TransactionResponse)
def update_transaction(
    transaction_id: str,
    body: TransactionUpdate,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    service: TransactionService = Depends(get_transaction_service),
):
    """Update a transaction; balance changes are applied as a delta."""
    changes = body.model_dump(exclude_unset=True, exclude={"amount"})
    amount = body.amount.to_money() if body.amount is not None else None
    with service_errors():
        txn = service.update_transaction(
            db, transaction_id, user_id, amount=amount, **changes
        )
    db.commit()
    db.refresh(txn)
    return TransactionResponse.from_transaction(txn)


@router.delete("/{transaction_id}", status_code=204)
def delete_transaction(
    transaction_id: str,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    service: TransactionService = Depends(get_transaction_service),
):
    """Delete a transaction and reverse its effect on balances."""
    with service_errors():
        service.delete_transaction(db, transaction_id, user_id)
    db.commit()
    return Response(status_code=204)
