"""Plaid bank-link provider.

Implements :class:`~integrations.provider_protocol.BankLinkProvider` on top
of the plaid-python SDK:

- Hosted Plaid Link with multi-item linking and a per-user ``user_token``
- ``SESSION_FINISHED`` webhooks complete the link (public token exchange)
- ``DEFAULT_UPDATE`` webhooks trigger a re-sync of an existing item
- ``ITEM`` webhooks update the connection status of a link
- Webhook authenticity is checked with Plaid's ES256 JWT scheme
"""

import hashlib
import hmac
import json
import logging
import threading
import time
from datetime import datetime, timezone
from typing import Any, Callable

import jwt
import urllib3
from jwt.algorithms import ECAlgorithm
from plaid import ApiException, Environment
from plaid.api.plaid_api import PlaidApi
from plaid.api_client import ApiClient
from plaid.configuration import Configuration
from plaid.model.accounts_get_request import AccountsGetRequest
from plaid.model.country_code import CountryCode
from plaid.model.item_get_request import ItemGetRequest
from plaid.model.item_public_token_exchange_request import ItemPublicTokenExchangeRequest
from plaid.model.link_token_create_hosted_link import LinkTokenCreateHostedLink
from plaid.model.link_token_create_request import LinkTokenCreateRequest
from plaid.model.link_token_create_request_user import LinkTokenCreateRequestUser
from plaid.model.products import Products
from plaid.model.user_create_request import UserCreateRequest
from plaid.model.webhook_verification_key_get_request import WebhookVerificationKeyGetRequest

from config import settings
from integrations.exceptions import (
    ProviderAuthError,
    ProviderConnectionError,
    ProviderDataError,
    ProviderError,
    error_for_status,
)
from integrations.provider_protocol import (
    AccountsResult,
    Institution,
    LinkCompletion,
    LinkInitiation,
    ProviderAccount,
    StatusWebhookInfo,
    UpdateWebhookInfo,
)
from models.bank_link import BankLinkStatus
from utils.money import MoneyWithSign

logger = logging.getLogger(__name__)

PROVIDER_NAME = "plaid"

# Plaid's Development environment is deprecated; only sandbox and production
# are supported.
_ENVIRONMENT_MAP: dict[str, str] = {
    "sandbox": Environment.Sandbox,
    "production": Environment.Production,
}

# Error codes that mean the stored credentials are no longer usable.
_AUTH_ERROR_CODES = frozenset({"INVALID_ACCESS_TOKEN", "ITEM_LOGIN_REQUIRED"})

JWK_CACHE_TTL_SECONDS = 24 * 60 * 60
WEBHOOK_MAX_AGE_SECONDS = 5 * 60


def _value(obj: Any) -> Any:
    """Unwrap SDK enum models (AccountType, ...) to their plain value."""
    return getattr(obj, "value", obj)


def _as_dict(obj: Any) -> dict:
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    return dict(obj)


def _header(headers: dict[str, str], name: str) -> str | None:
    """Case-insensitive header lookup."""
    wanted = name.lower()
    for key, value in headers.items():
        if key.lower() == wanted:
            return value
    return None


class PlaidProvider:
    """Bank-link provider backed by Plaid.

    Authentication blobs stored on a BankLink look like
    ``{"accessToken": "...", "itemId": "..."}``.
    """

    def __init__(
        self,
        client_id: str | None = None,
        secret: str | None = None,
        environment: str | None = None,
        api: PlaidApi | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self._client_id = client_id or settings.PLAID_CLIENT_ID
        self._secret = secret or settings.PLAID_SECRET
        self._environment = environment or settings.PLAID_ENVIRONMENT
        self._clock = clock

        # Lazily created on first use unless injected
        self._api: PlaidApi | None = api

        # kid -> (jwk dict, expired_at epoch seconds or None, cached_at)
        self._jwk_cache: dict[str, tuple[dict, float | None, float]] = {}
        self._jwk_lock = threading.Lock()

    def _get_api(self) -> PlaidApi:
        """Return (and cache) a PlaidApi instance."""
        if self._api is None:
            host = _ENVIRONMENT_MAP.get(self._environment.lower(), Environment.Sandbox)
            logger.info(
                "Plaid API client: environment=%s, host=%s, client_id=<configured>",
                self._environment,
                host,
            )
            configuration = Configuration(
                host=host,
                api_key={
                    "clientId": self._client_id,
                    "secret": self._secret,
                },
            )
            self._api = PlaidApi(ApiClient(configuration))
        return self._api

    @property
    def provider_name(self) -> str:
        return PROVIDER_NAME

    def is_configured(self) -> bool:
        """Check if Plaid credentials are configured."""
        return bool(self._client_id) and bool(self._secret)

    # ------------------------------------------------------------------
    # SDK call wrapper
    # ------------------------------------------------------------------

    def _call(self, operation: str, request: Any) -> Any:
        """Invoke a PlaidApi method, mapping failures to ProviderError types."""
        method = getattr(self._get_api(), operation)
        try:
            return method(request, _request_timeout=settings.PROVIDER_TIMEOUT_SECONDS)
        except ApiException as e:
            raise self._map_plaid_error(e, operation) from e
        except urllib3.exceptions.HTTPError as e:
            raise ProviderConnectionError(
                f"Plaid {operation} failed: {e}", provider_name=PROVIDER_NAME
            ) from e

    @staticmethod
    def _map_plaid_error(exc: ApiException, operation: str) -> ProviderError:
        """Map a Plaid ApiException to the provider exception hierarchy."""
        status = exc.status or 0
        message = f"Plaid {operation} failed: {exc.reason or exc}"

        error_code = ""
        try:
            body = json.loads(exc.body) if exc.body else {}
        except (TypeError, ValueError):
            body = {}
        if isinstance(body, dict):
            error_code = body.get("error_code") or ""
            if body.get("error_message"):
                message = f"Plaid error ({error_code}): {body['error_message']}"

        if error_code in _AUTH_ERROR_CODES:
            return ProviderAuthError(message, provider_name=PROVIDER_NAME)
        return error_for_status(status, message, PROVIDER_NAME)

    # ------------------------------------------------------------------
    # Linking
    # ------------------------------------------------------------------

    def _create_user_token(self, client_user_id: str) -> str:
        """Create a Plaid user for multi-item link and return its user_token."""
        response = self._call(
            "user_create", UserCreateRequest(client_user_id=client_user_id)
        )
        user_token = response.get("user_token")
        if not user_token:
            raise ProviderDataError(
                "Plaid user creation did not return a user_token",
                provider_name=PROVIDER_NAME,
            )
        logger.info("Created Plaid user for %s", client_user_id)
        return user_token

    def initiate_linking(
        self,
        user_id: str,
        redirect_uri: str | None = None,
        provider_user_details: dict[str, Any] | None = None,
    ) -> LinkInitiation:
        """Create a hosted Link session.

        The returned ``webhook_id`` is the link_token; Plaid echoes it back
        in the ``SESSION_FINISHED`` webhook.
        """
        details = provider_user_details or {}
        user_token = details.get("userToken") if isinstance(details.get("userToken"), str) else None
        updated_details = None
        if user_token:
            logger.info("Reusing existing Plaid user token for %s", user_id)
        else:
            user_token = self._create_user_token(user_id)
            updated_details = {"userToken": user_token}

        kwargs: dict[str, Any] = {
            "user": LinkTokenCreateRequestUser(client_user_id=user_id),
            "client_name": settings.PLAID_CLIENT_NAME,
            "language": "en",
            "country_codes": [CountryCode("US")],
            "products": [Products("transactions")],
            "optional_products": [Products("investments")],
            "enable_multi_item_link": True,
            "user_token": user_token,
            "webhook": f"{settings.API_DOMAIN.rstrip('/')}/api/bank-link/webhook/plaid",
        }
        if redirect_uri:
            kwargs["redirect_uri"] = redirect_uri
            kwargs["hosted_link"] = LinkTokenCreateHostedLink(
                completion_redirect_uri=redirect_uri
            )
        else:
            kwargs["hosted_link"] = LinkTokenCreateHostedLink()

        response = self._call("link_token_create", LinkTokenCreateRequest(**kwargs))

        expires_at = response.get("expiration")
        if isinstance(expires_at, datetime) and expires_at.tzinfo is not None:
            expires_at = expires_at.astimezone(timezone.utc)

        logger.info(
            "Plaid link token created (expires %s, new user token: %s)",
            expires_at, updated_details is not None,
        )
        return LinkInitiation(
            link_url=response.get("hosted_link_url"),
            expires_at=expires_at,
            webhook_id=response["link_token"],
            updated_provider_user_details=updated_details,
        )

    def should_process_webhook(self, payload: dict[str, Any]) -> str | None:
        """Return the link_token for a successful ``SESSION_FINISHED`` webhook."""
        link_token = payload.get("link_token")
        status = payload.get("status")
        webhook_code = payload.get("webhook_code")
        if not webhook_code or not isinstance(link_token, str) or not isinstance(status, str):
            logger.debug("Not a Plaid link completion: missing webhook_code, link_token or status")
            return None
        if webhook_code != "SESSION_FINISHED":
            logger.debug("Not processing Plaid webhook code %s", webhook_code)
            return None
        if status.lower() != "success":
            logger.info("Not processing Plaid link session with status %s", status)
            return None
        return link_token

    def process_webhook(self, payload: dict[str, Any]) -> list[LinkCompletion] | None:
        """Exchange each public token and fetch the accounts behind it."""
        public_tokens = payload.get("public_tokens") or []
        logger.info("Processing Plaid link completion with %d public tokens", len(public_tokens))
        if not public_tokens:
            return None

        completions = []
        for public_token in public_tokens:
            exchanged = self._call(
                "item_public_token_exchange",
                ItemPublicTokenExchangeRequest(public_token=public_token),
            )
            authentication = {
                "accessToken": exchanged["access_token"],
                "itemId": exchanged["item_id"],
            }
            result = self.get_accounts(authentication)
            completions.append(
                LinkCompletion(
                    authentication=authentication,
                    accounts=result.accounts,
                    institution=result.institution,
                )
            )
        return completions

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    def get_accounts(self, authentication: dict[str, Any]) -> AccountsResult:
        """Fetch accounts and institution via /accounts/get."""
        access_token = authentication.get("accessToken")
        if not access_token:
            raise ProviderDataError(
                "Missing accessToken in authentication data", provider_name=PROVIDER_NAME
            )

        response = self._call("accounts_get", AccountsGetRequest(access_token=access_token))
        item = response.get("item") or {}
        institution = Institution(
            id=item.get("institution_id"),
            name=item.get("institution_name"),
        )
        accounts = [self._map_account(acct) for acct in response.get("accounts") or []]
        logger.info("Plaid: %d accounts fetched for %s", len(accounts), institution.name)
        return AccountsResult(accounts=accounts, institution=institution)

    @staticmethod
    def _map_account(acct: Any) -> ProviderAccount:
        balances = acct.get("balances") or {}
        currency = (
            balances.get("iso_currency_code")
            or balances.get("unofficial_currency_code")
            or "USD"
        )
        current = balances.get("current")
        available = balances.get("available")
        sub_type = acct.get("subtype")
        return ProviderAccount(
            account_id=acct["account_id"],
            name=acct.get("official_name") or acct.get("name") or "Plaid Account",
            mask=acct.get("mask"),
            type=str(_value(acct.get("type"))) if acct.get("type") is not None else None,
            sub_type=str(_value(sub_type)) if sub_type is not None else None,
            current_balance=MoneyWithSign.from_float(currency, current if current is not None else 0),
            available_balance=MoneyWithSign.from_float(currency, available if available is not None else 0),
            raw=_as_dict(acct),
        )

    def get_item_id(self, authentication: dict[str, Any]) -> str:
        """Look up the item_id for an access token (used to backfill old links)."""
        access_token = authentication.get("accessToken")
        if not access_token:
            raise ProviderDataError(
                "Missing accessToken in authentication data", provider_name=PROVIDER_NAME
            )
        response = self._call("item_get", ItemGetRequest(access_token=access_token))
        return response["item"]["item_id"]

    # ------------------------------------------------------------------
    # Webhook parsing
    # ------------------------------------------------------------------

    def parse_update_webhook(self, payload: dict[str, Any]) -> UpdateWebhookInfo | None:
        """Recognize TRANSACTIONS/INVESTMENTS ``DEFAULT_UPDATE`` webhooks."""
        webhook_type = payload.get("webhook_type")
        item_id = payload.get("item_id")
        if (
            webhook_type in ("TRANSACTIONS", "INVESTMENTS")
            and payload.get("webhook_code") == "DEFAULT_UPDATE"
            and isinstance(item_id, str)
        ):
            return UpdateWebhookInfo(item_id=item_id, type=webhook_type)
        return None

    def parse_status_webhook(self, payload: dict[str, Any]) -> StatusWebhookInfo | None:
        """Recognize ``ITEM`` webhooks that change a link's connection status."""
        if payload.get("webhook_type") != "ITEM":
            return None
        item_id = payload.get("item_id")
        if not isinstance(item_id, str):
            return None

        code = payload.get("webhook_code")
        received_at = datetime.now(timezone.utc).isoformat()

        if code == "ERROR":
            error = payload.get("error")
            body = None
            if error:
                body = {
                    "error_type": error.get("error_type"),
                    "error_code": error.get("error_code"),
                    "error_message": error.get("error_message"),
                    "display_message": error.get("display_message"),
                    "suggested_action": error.get("suggested_action"),
                    "receivedAt": received_at,
                }
            return StatusWebhookInfo(item_id, code, BankLinkStatus.ERROR.value, body, False)

        if code == "LOGIN_REPAIRED":
            # Repair clears the stored error and pulls fresh balances
            return StatusWebhookInfo(item_id, code, BankLinkStatus.OK.value, None, True)

        if code == "PENDING_DISCONNECT":
            body = {
                "reason": payload.get("reason"),
                "environment": payload.get("environment"),
                "receivedAt": received_at,
            }
            return StatusWebhookInfo(item_id, code, BankLinkStatus.PENDING_REAUTH.value, body, False)

        if code == "PENDING_EXPIRATION":
            body = {
                "consent_expiration_time": payload.get("consent_expiration_time"),
                "environment": payload.get("environment"),
                "receivedAt": received_at,
            }
            return StatusWebhookInfo(item_id, code, BankLinkStatus.PENDING_REAUTH.value, body, False)

        return None

    # ------------------------------------------------------------------
    # Webhook verification
    # ------------------------------------------------------------------

    def _get_verification_key(self, kid: str) -> dict:
        """Return the JWK for ``kid``, from cache when still valid."""
        now = self._clock()
        with self._jwk_lock:
            cached = self._jwk_cache.get(kid)
            if cached is not None:
                key, expired_at, cached_at = cached
                if (expired_at is None or expired_at > now) and now - cached_at < JWK_CACHE_TTL_SECONDS:
                    return key

        response = self._call(
            "webhook_verification_key_get", WebhookVerificationKeyGetRequest(key_id=kid)
        )
        key = _as_dict(response["key"])
        expired_at = key.get("expired_at")
        with self._jwk_lock:
            self._jwk_cache[kid] = (key, float(expired_at) if expired_at else None, now)
        logger.info("Fetched and cached Plaid webhook key %s", kid)
        return key

    def verify_webhook(self, raw_body: str | bytes, headers: dict[str, str]) -> bool:
        """Verify a webhook per Plaid's JWT scheme.

        Steps: ES256 header with a kid, signature against Plaid's published
        key, token issued no more than 5 minutes ago, and a
        ``request_body_sha256`` claim matching the raw body. Never raises.
        """
        signed_jwt = _header(headers, "Plaid-Verification")
        if not signed_jwt:
            logger.warning("Webhook verification failed: missing Plaid-Verification header")
            return False

        try:
            header = jwt.get_unverified_header(signed_jwt)
        except jwt.PyJWTError as e:
            logger.warning("Webhook verification failed: unreadable JWT header: %s", e)
            return False

        if header.get("alg") != "ES256":
            logger.warning("Webhook verification failed: algorithm %s", header.get("alg"))
            return False
        kid = header.get("kid")
        if not kid:
            logger.warning("Webhook verification failed: missing kid")
            return False

        try:
            jwk = self._get_verification_key(kid)
            public_key = ECAlgorithm.from_jwk(json.dumps(jwk))
        except (ProviderError, jwt.PyJWTError, KeyError, ValueError) as e:
            logger.warning("Webhook verification failed: no usable key for %s: %s", kid, e)
            return False

        try:
            claims = jwt.decode(
                signed_jwt,
                key=public_key,
                algorithms=["ES256"],
                options={"require": ["iat"]},
            )
        except jwt.PyJWTError as e:
            logger.warning("Webhook verification failed: %s", e)
            return False

        if self._clock() - float(claims["iat"]) > WEBHOOK_MAX_AGE_SECONDS:
            logger.warning("Webhook verification failed: token older than 5 minutes")
            return False

        claimed = claims.get("request_body_sha256")
        if not isinstance(claimed, str):
            logger.warning("Webhook verification failed: missing request_body_sha256")
            return False

        body_bytes = raw_body.encode("utf-8") if isinstance(raw_body, str) else raw_body
        computed = hashlib.sha256(body_bytes).hexdigest()
        if not hmac.compare_digest(claimed.encode("utf-8"), computed.encode("utf-8")):
            logger.warning("Webhook verification failed: body hash mismatch")
            return False

        return True
