"""Provider registry for bank-link providers.

The registry is responsible for:
- Building the name -> provider map once, at process start
- Resolving providers by exact name, failing closed for unknown names
- Listing the configured providers
"""

import importlib
import logging
from types import MappingProxyType
from typing import Iterable

from errors import NotFoundError
from integrations.provider_protocol import BankLinkProvider

logger = logging.getLogger(__name__)

# Each tuple is (provider_name, module_path, class_name).
# Adding a new provider only requires appending one entry here.
PROVIDER_DEFINITIONS: list[tuple[str, str, str]] = [
    ("plaid", "integrations.plaid_provider", "PlaidProvider"),
    ("crypto", "integrations.crypto_provider", "CryptoProvider"),
]

ALL_PROVIDER_NAMES: list[str] = [name for name, _, _ in PROVIDER_DEFINITIONS]

# Providers whose syncs are driven by webhooks rather than scheduled polling.
WEBHOOK_PROVIDERS: frozenset[str] = frozenset({"plaid"})


class ProviderRegistry:
    """Immutable name -> provider lookup.

    Built once from a fixed list of providers and injected into the
    services that need it.

    Example:
        registry = ProviderRegistry([PlaidProvider(), CryptoProvider()])
        provider = registry.get_provider("plaid")
    """

    def __init__(self, providers: Iterable[BankLinkProvider] = ()):
        """Build the registry.

        Args:
            providers: Provider instances; each is keyed by its provider_name.

        Raises:
            ValueError: If two providers share a name.
        """
        mapping: dict[str, BankLinkProvider] = {}
        for provider in providers:
            name = provider.provider_name
            if name in mapping:
                raise ValueError(f"Duplicate provider name: {name}")
            mapping[name] = provider
        self._providers = MappingProxyType(mapping)

    def get_provider(self, name: str) -> BankLinkProvider:
        """Get a provider by exact name.

        Raises:
            NotFoundError: If no provider with that name is registered.
        """
        provider = self._providers.get(name)
        if provider is None:
            available = ", ".join(sorted(self._providers)) or "none"
            raise NotFoundError(
                f"Provider '{name}' not found. Available providers: {available}"
            )
        return provider

    def list_providers(self) -> list[str]:
        """List all registered provider names."""
        return list(self._providers.keys())

    def is_configured(self, name: str) -> bool:
        """Check if a provider is registered."""
        return name in self._providers


def _load_provider(name: str, module_path: str, class_name: str) -> BankLinkProvider | None:
    """Import and instantiate one provider, returning None if it can't be used."""
    try:
        module = importlib.import_module(module_path)
        instance = getattr(module, class_name)()
    except Exception:
        logger.warning("Provider failed to initialize: %s", name, exc_info=True)
        return None

    if not instance.is_configured():
        logger.debug("Provider skipped (not configured): %s", name)
        return None

    logger.info("Provider registered: %s", name)
    return instance


def build_default_registry() -> ProviderRegistry:
    """Create a registry containing every configured provider.

    One provider failing to initialize never prevents the rest from
    registering.
    """
    providers = []
    for name, module_path, class_name in PROVIDER_DEFINITIONS:
        instance = _load_provider(name, module_path, class_name)
        if instance is not None:
            providers.append(instance)

    registry = ProviderRegistry(providers)
    names = registry.list_providers()
    if names:
        logger.info("Active providers: %s", ", ".join(names))
    else:
        logger.warning("No providers configured")
    return registry
