"""Tatum blockchain API client for on-chain wallet balances."""

import logging
from decimal import Decimal, InvalidOperation
from typing import Optional

import httpx

from config import settings
from integrations.exceptions import (
    ProviderAuthError,
    ProviderConnectionError,
    ProviderDataError,
    error_for_status,
)

logger = logging.getLogger(__name__)

PROVIDER_NAME = "crypto"


class TatumClient:
    """Thin wrapper over the Tatum v3 REST API.

    Balances come back as decimal strings in the coin's major unit
    (ETH, BTC); callers convert them to minor units.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self._api_key = api_key if api_key is not None else settings.TATUM_API_KEY
        headers: dict[str, str] = {"accept": "application/json"}
        if self._api_key:
            headers["x-api-key"] = self._api_key
        self._client = httpx.Client(
            base_url=base_url or settings.TATUM_BASE_URL,
            headers=headers,
            timeout=timeout if timeout is not None else settings.PROVIDER_TIMEOUT_SECONDS,
            transport=transport,
        )

    def close(self) -> None:
        """Close the underlying HTTP client."""
        self._client.close()

    def _get_json(self, path: str) -> dict:
        if not self._api_key:
            raise ProviderAuthError("Tatum API key is not configured", provider_name=PROVIDER_NAME)

        try:
            response = self._client.get(path)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            raise error_for_status(
                status, f"Tatum API error (HTTP {status})", PROVIDER_NAME
            ) from exc
        except httpx.TimeoutException as exc:
            raise ProviderConnectionError(
                f"Tatum request timed out: {exc}", provider_name=PROVIDER_NAME
            ) from exc
        except httpx.RequestError as exc:
            raise ProviderConnectionError(
                f"Tatum connection failed: {exc}", provider_name=PROVIDER_NAME
            ) from exc

        try:
            data = response.json()
        except ValueError as exc:
            raise ProviderDataError(
                "Tatum returned a non-JSON response", provider_name=PROVIDER_NAME
            ) from exc
        if not isinstance(data, dict):
            raise ProviderDataError(
                "Tatum returned an unexpected response shape", provider_name=PROVIDER_NAME
            )
        return data

    def get_ethereum_balance(self, address: str) -> Decimal:
        """Ether balance of an address."""
        data = self._get_json(f"/ethereum/account/balance/{address}")
        balance = _to_decimal(data.get("balance"), "balance")
        logger.debug("Tatum: ethereum balance for %s is %s", address, balance)
        return balance

    def get_bitcoin_balance(self, address: str) -> Decimal:
        """Bitcoin balance of an address (total received minus total spent)."""
        data = self._get_json(f"/bitcoin/address/balance/{address}")
        incoming = _to_decimal(data.get("incoming", "0"), "incoming")
        outgoing = _to_decimal(data.get("outgoing", "0"), "outgoing")
        balance = incoming - outgoing
        logger.debug("Tatum: bitcoin balance for %s is %s", address, balance)
        return balance


def _to_decimal(value, field: str) -> Decimal:
    if value is None:
        raise ProviderDataError(f"Tatum response missing '{field}'", provider_name=PROVIDER_NAME)
    try:
        return Decimal(str(value))
    except InvalidOperation as exc:
        raise ProviderDataError(
            f"Tatum returned a non-numeric '{field}': {value!r}", provider_name=PROVIDER_NAME
        ) from exc
