"""Crypto wallet provider.

Links a single on-chain address (Ethereum or Bitcoin) and reports its
balance as an account. There is no hosted flow and no webhook: linking
validates the address, reads the balance and completes immediately.
"""

import logging
import re
from typing import Any

from config import settings
from integrations.exceptions import ProviderDataError
from integrations.provider_protocol import (
    AccountsResult,
    Institution,
    LinkCompletion,
    LinkInitiation,
    ProviderAccount,
)
from integrations.tatum_client import TatumClient
from utils.money import MoneyWithSign

logger = logging.getLogger(__name__)

PROVIDER_NAME = "crypto"
ACCOUNT_TYPE = "crypto_wallet"

# network -> (currency, display name, address patterns)
NETWORKS: dict[str, tuple[str, str, tuple[re.Pattern, ...]]] = {
    "ethereum": (
        "ETH",
        "Ethereum",
        (re.compile(r"^0x[a-fA-F0-9]{40}$"),),
    ),
    "bitcoin": (
        "BTC",
        "Bitcoin",
        (
            re.compile(r"^[13][a-km-zA-HJ-NP-Z1-9]{25,34}$"),
            re.compile(r"^bc1[a-zA-HJ-NP-Z0-9]{39,59}$"),
        ),
    ),
}


def is_valid_address(network: str, address: str) -> bool:
    """Check an address against the format rules for its network."""
    rules = NETWORKS.get(network)
    if rules is None:
        return False
    return any(pattern.match(address) for pattern in rules[2])


class CryptoProvider:
    """Bank-link provider for on-chain wallet balances via Tatum.

    Authentication blobs look like ``{"walletAddress": "...", "network": "ethereum"}``.
    """

    def __init__(self, client: TatumClient | None = None, api_key: str | None = None):
        self._api_key = api_key if api_key is not None else settings.TATUM_API_KEY
        self._client = client

    def _get_client(self) -> TatumClient:
        if self._client is None:
            self._client = TatumClient(api_key=self._api_key)
        return self._client

    @property
    def provider_name(self) -> str:
        return PROVIDER_NAME

    def is_configured(self) -> bool:
        return bool(self._api_key) or self._client is not None

    @staticmethod
    def _parse_authentication(authentication: dict[str, Any] | None) -> tuple[str, str]:
        """Validate and return ``(network, address)``."""
        authentication = authentication or {}
        address = authentication.get("walletAddress")
        network = authentication.get("network")
        if not isinstance(address, str) or not address.strip():
            raise ProviderDataError("walletAddress is required", provider_name=PROVIDER_NAME)
        if not isinstance(network, str) or network.lower() not in NETWORKS:
            raise ProviderDataError(
                f"Unsupported network: {network!r}. Supported networks: "
                f"{', '.join(sorted(NETWORKS))}",
                provider_name=PROVIDER_NAME,
            )
        network = network.lower()
        address = address.strip()
        if not is_valid_address(network, address):
            raise ProviderDataError(
                f"Invalid {network} address: {address}", provider_name=PROVIDER_NAME
            )
        return network, address

    def initiate_linking(
        self,
        user_id: str,
        redirect_uri: str | None = None,
        provider_user_details: dict[str, Any] | None = None,
    ) -> LinkInitiation:
        """Validate the wallet and link it right away.

        ``provider_user_details`` carries ``walletAddress`` and ``network``.
        """
        network, address = self._parse_authentication(provider_user_details)
        authentication = {"walletAddress": address, "network": network}
        result = self.get_accounts(authentication)
        logger.info("Crypto wallet linked for %s on %s", user_id, network)
        return LinkInitiation(
            immediate_accounts=[
                LinkCompletion(
                    authentication=authentication,
                    accounts=result.accounts,
                    institution=result.institution,
                )
            ]
        )

    def verify_webhook(self, raw_body: str | bytes, headers: dict[str, str]) -> bool:
        # No webhooks exist for wallet links, so nothing can be authentic
        return False

    def should_process_webhook(self, payload: dict[str, Any]) -> str | None:
        return None

    def process_webhook(self, payload: dict[str, Any]) -> list[LinkCompletion] | None:
        return None

    def get_accounts(self, authentication: dict[str, Any]) -> AccountsResult:
        """Fetch the wallet balance as a single account."""
        network, address = self._parse_authentication(authentication)
        currency, display_name, _ = NETWORKS[network]

        client = self._get_client()
        if network == "ethereum":
            balance = client.get_ethereum_balance(address)
        else:
            balance = client.get_bitcoin_balance(address)

        money = MoneyWithSign.from_float(currency, balance)
        account = ProviderAccount(
            account_id=f"{network}:{address}",
            name=f"{display_name} Wallet",
            mask=address[-4:],
            type=ACCOUNT_TYPE,
            sub_type=network,
            current_balance=money,
            available_balance=money,
            raw={"network": network, "address": address, "balance": str(balance)},
        )
        return AccountsResult(
            accounts=[account],
            institution=Institution(id=network, name=f"{display_name} Wallet"),
        )
