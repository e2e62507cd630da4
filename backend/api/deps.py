"""Shared FastAPI dependencies (overridable in tests)."""

from functools import lru_cache
from typing import Optional

from fastapi import Depends, Header, HTTPException

from integrations.provider_registry import ProviderRegistry, build_default_registry
from services.bank_link_service import BankLinkService
from services.event_dispatcher import EventDispatcher, build_default_dispatcher
from services.transaction_service import TransactionService


def get_current_user_id(x_user_id: Optional[str] = Header(default=None)) -> str:
    """Acting user, taken from the ``X-User-Id`` header."""
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Missing X-User-Id header")
    return x_user_id


@lru_cache
def get_registry() -> ProviderRegistry:
    """Provider registry, built once per process."""
    return build_default_registry()


@lru_cache
def get_dispatcher() -> EventDispatcher:
    """Event dispatcher with the balance ledger and snapshot listeners attached."""
    return build_default_dispatcher()


def get_bank_link_service(
    registry: ProviderRegistry = Depends(get_registry),
    dispatcher: EventDispatcher = Depends(get_dispatcher),
) -> BankLinkService:
    return BankLinkService(registry, dispatcher=dispatcher)


def get_transaction_service(
    dispatcher: EventDispatcher = Depends(get_dispatcher),
) -> TransactionService:
    return TransactionService(dispatcher)
