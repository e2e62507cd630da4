"""External API integrations.

This package contains:
- Provider protocol: Common interface for bank-link providers
- Provider registry: Immutable name -> provider lookup
- Plaid provider: Hosted Link flow, item webhooks and balances
- Crypto provider: On-chain wallet balances through the Tatum API
"""

from integrations.provider_protocol import (
    BankLinkProvider,
    LinkCompletion,
    LinkInitiation,
    ProviderAccount,
)
from integrations.provider_registry import ProviderRegistry, build_default_registry

__all__ = [
    "BankLinkProvider",
    "LinkCompletion",
    "LinkInitiation",
    "ProviderAccount",
    "ProviderRegistry",
    "build_default_registry",
]
