"""Provider protocol definitions for bank-link providers.

This module defines the normalized data shapes and the common interface
that every bank-link provider (Plaid, crypto wallets, ...) implements.
Callers only ever talk to a provider through :class:`BankLinkProvider`;
vendor wire formats, signature schemes and token formats stay inside the
provider module.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol, runtime_checkable

from utils.money import MoneyWithSign


@dataclass
class Institution:
    """Financial institution a link belongs to."""

    id: str | None = None
    name: str | None = None


@dataclass
class ProviderAccount:
    """Normalized account data from any provider.

    All providers must map their account data to this format.
    """

    account_id: str  # Provider's external ID for the account
    name: str
    current_balance: MoneyWithSign
    available_balance: MoneyWithSign
    mask: str | None = None
    type: str | None = None  # e.g., "depository", "credit", "crypto_wallet"
    sub_type: str | None = None  # e.g., "checking"
    raw: dict | None = None  # Raw provider response for debugging


@dataclass
class AccountsResult:
    """Accounts and institution returned by ``get_accounts``."""

    accounts: list[ProviderAccount]
    institution: Institution | None = None


@dataclass
class LinkCompletion:
    """One credential set produced by a finished link flow.

    Each completion becomes one BankLink.
    """

    authentication: dict[str, Any]
    accounts: list[ProviderAccount]
    institution: Institution | None = None


@dataclass
class LinkInitiation:
    """Result of starting a link flow, returned to the caller verbatim.

    ``webhook_id`` is the correlation token to register as pending.
    Providers that can link synchronously return ``immediate_accounts``
    instead and never send a completion webhook.
    """

    link_url: str | None = None
    expires_at: datetime | None = None
    webhook_id: str | None = None
    updated_provider_user_details: dict[str, Any] | None = None
    immediate_accounts: list[LinkCompletion] = field(default_factory=list)


@dataclass
class UpdateWebhookInfo:
    """A provider says data for an existing item changed and should be re-synced."""

    item_id: str
    type: str  # e.g., "TRANSACTIONS", "INVESTMENTS"


@dataclass
class StatusWebhookInfo:
    """A provider reports a connection status change for an existing item."""

    item_id: str
    webhook_code: str
    status: str  # BankLinkStatus value
    status_body: dict[str, Any] | None
    should_sync: bool


@runtime_checkable
class BankLinkProvider(Protocol):
    """Protocol that all bank-link providers must implement.

    Optional capabilities are not part of the protocol; callers test for
    them with ``getattr(provider, name, None)`` before calling:

    - ``parse_update_webhook(payload) -> UpdateWebhookInfo | None``
    - ``parse_status_webhook(payload) -> StatusWebhookInfo | None``
    - ``get_item_id(authentication) -> str``
    """

    @property
    def provider_name(self) -> str:
        """Registry key for this provider (e.g., 'plaid')."""
        ...

    def is_configured(self) -> bool:
        """Check if the provider has the credentials it needs."""
        ...

    def initiate_linking(
        self,
        user_id: str,
        redirect_uri: str | None = None,
        provider_user_details: dict[str, Any] | None = None,
    ) -> LinkInitiation:
        """Start a link flow for a user."""
        ...

    def verify_webhook(self, raw_body: str | bytes, headers: dict[str, str]) -> bool:
        """Return True only if the webhook is authentic."""
        ...

    def get_accounts(self, authentication: dict[str, Any]) -> AccountsResult:
        """Fetch current accounts and institution for a stored credential set."""
        ...

    def should_process_webhook(self, payload: dict[str, Any]) -> str | None:
        """Return the correlation id if the payload finishes a link flow."""
        ...

    def process_webhook(self, payload: dict[str, Any]) -> list[LinkCompletion] | None:
        """Turn a link-completion webhook into credential sets and accounts."""
        ...
