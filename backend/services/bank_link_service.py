"""Bank link service - starts link flows, handles provider webhooks and syncs accounts."""

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Iterable, Optional

from sqlalchemy.orm import Session

from config import settings
from errors import NotFoundError, WebhookVerificationError
from integrations.provider_protocol import (
    AccountsResult,
    BankLinkProvider,
    LinkCompletion,
    LinkInitiation,
    StatusWebhookInfo,
    UpdateWebhookInfo,
)
from integrations.provider_registry import (
    WEBHOOK_PROVIDERS,
    ProviderRegistry,
    build_default_registry,
)
from models import Account, BankLink
from services.account_reconciler import upsert_accounts_from_api
from services.event_dispatcher import EventDispatcher
from services.user_service import UserService
from services.webhook_event_service import WebhookEventService

logger = logging.getLogger(__name__)

LINK_FAILED_NO_RESPONSES = "No link completion responses from provider"


class WebhookOutcome(str, Enum):
    """What ``handle_webhook`` did with a payload."""

    STATUS = "status"
    UPDATE = "update"
    LINKED = "linked"
    DUPLICATE = "duplicate"
    IGNORED = "ignored"
    NOT_FOUND = "not_found"
    FAILED = "failed"


@dataclass
class SyncAllResult:
    """Accounts from the links that synced, and an error message per link that didn't."""

    accounts: list[Account] = field(default_factory=list)
    failures: dict[str, str] = field(default_factory=dict)


class BankLinkService:
    """Orchestrates link flows, webhooks and account syncs across providers."""

    def __init__(
        self,
        provider_registry: Optional[ProviderRegistry] = None,
        webhook_events: Optional[WebhookEventService] = None,
        dispatcher: Optional[EventDispatcher] = None,
        max_workers: Optional[int] = None,
    ):
        """Initialize with injectable collaborators.

        Args:
            provider_registry: Registry of configured providers. If None,
                              the default registry is built on first use.
            webhook_events: Webhook idempotency ledger.
            dispatcher: Receives linked-account events; None publishes nothing.
            max_workers: Thread pool size for fan-out provider fetches.
        """
        self._registry = provider_registry
        self.webhook_events = webhook_events or WebhookEventService()
        self.dispatcher = dispatcher
        self.max_workers = max_workers or settings.SYNC_MAX_WORKERS

    @property
    def registry(self) -> ProviderRegistry:
        """Get the provider registry, creating default if not provided."""
        if self._registry is None:
            self._registry = build_default_registry()
        return self._registry

    # ------------------------------------------------------------------
    # Linking
    # ------------------------------------------------------------------

    def initiate_linking(
        self,
        db: Session,
        provider_name: str,
        user_id: str,
        redirect_uri: str | None = None,
        link_details: dict[str, Any] | None = None,
    ) -> LinkInitiation:
        """Start a link flow for ``user_id`` with ``provider_name``.

        ``link_details`` are per-request inputs (e.g. a wallet address)
        layered over the provider details stored on the user.

        Returns:
            The provider's LinkInitiation, unchanged.

        Raises:
            NotFoundError: Unknown provider or user
            ProviderError: The provider call failed
        """
        provider = self.registry.get_provider(provider_name)
        stored = UserService.get_provider_details(db, user_id, provider_name)
        details = {**(stored or {}), **(link_details or {})} or None

        initiation = provider.initiate_linking(
            user_id, redirect_uri=redirect_uri, provider_user_details=details
        )

        if initiation.updated_provider_user_details:
            UserService.update_provider_details(
                db, user_id, provider_name, initiation.updated_provider_user_details
            )

        if initiation.webhook_id:
            self.webhook_events.create_pending(
                db,
                webhook_id=initiation.webhook_id,
                provider_name=provider_name,
                user_id=user_id,
                expires_at=initiation.expires_at,
            )

        if initiation.immediate_accounts:
            accounts = self._complete_link(
                db, provider_name, user_id, initiation.immediate_accounts
            )
            logger.info(
                "%s link completed immediately for user %s (%d accounts)",
                provider_name, user_id, len(accounts),
            )

        return initiation

    def _complete_link(
        self,
        db: Session,
        provider_name: str,
        user_id: str,
        completions: list[LinkCompletion],
    ) -> list[Account]:
        """Create one BankLink per distinct credential set and reconcile its accounts."""
        links: list[tuple[BankLink, list]] = []
        for completion in completions:
            existing = next(
                (pair for pair in links if pair[0].authentication == completion.authentication),
                None,
            )
            if existing is not None:
                existing[1].extend(completion.accounts)
                existing[0].account_ids = [a.account_id for a in existing[1]]
                continue

            institution = completion.institution
            link = BankLink(
                user_id=user_id,
                provider_name=provider_name,
                authentication=completion.authentication,
                account_ids=[a.account_id for a in completion.accounts],
                institution_id=institution.id if institution else None,
                institution_name=institution.name if institution else None,
            )
            db.add(link)
            links.append((link, list(completion.accounts)))
        db.flush()

        bank_link_ids: dict[str, str] = {}
        provider_accounts = []
        for link, accounts in links:
            logger.info(
                "BankLink created: %s (%s, %s, %d accounts)",
                link.id, provider_name, link.institution_name, len(accounts),
            )
            for account in accounts:
                bank_link_ids[account.account_id] = link.id
                provider_accounts.append(account)

        return upsert_accounts_from_api(
            db, user_id, provider_accounts, bank_link_ids, self.dispatcher
        )

    # ------------------------------------------------------------------
    # Webhooks
    # ------------------------------------------------------------------

    def handle_webhook(
        self,
        db: Session,
        provider_name: str,
        raw_body: str | bytes,
        headers: dict[str, str],
        payload: dict[str, Any],
    ) -> WebhookOutcome:
        """Verify a provider webhook and act on it.

        Checked in order, and only the first match is acted on: status
        change, data update, link completion. Anything else is ignored.

        Raises:
            NotFoundError: Unknown provider
            WebhookVerificationError: Signature check failed (nothing is written)
            Exception: Any error while completing a link, after the pending
                record has been marked FAILED
        """
        provider = self.registry.get_provider(provider_name)
        if not provider.verify_webhook(raw_body, headers):
            logger.warning("Rejected %s webhook: verification failed", provider_name)
            raise WebhookVerificationError(provider_name)

        parse_status = getattr(provider, "parse_status_webhook", None)
        status_info = parse_status(payload) if parse_status else None
        if status_info is not None:
            return self._handle_status_webhook(db, provider, status_info)

        parse_update = getattr(provider, "parse_update_webhook", None)
        update_info = parse_update(payload) if parse_update else None
        if update_info is not None:
            return self._handle_update_webhook(db, provider, update_info)

        webhook_id = provider.should_process_webhook(payload)
        if webhook_id:
            return self._handle_link_completion(db, provider, webhook_id, payload)

        logger.info(
            "Ignoring %s webhook (type=%s, code=%s)",
            provider_name, payload.get("webhook_type"), payload.get("webhook_code"),
        )
        return WebhookOutcome.IGNORED

    def _handle_status_webhook(
        self, db: Session, provider: BankLinkProvider, info: StatusWebhookInfo
    ) -> WebhookOutcome:
        dedup = self.webhook_events.check_and_record(
            db, provider.provider_name, f"STATUS_{info.webhook_code}", info.item_id
        )
        if dedup.is_duplicate:
            return WebhookOutcome.DUPLICATE

        link = self.find_by_item_id(db, info.item_id, provider.provider_name)
        if link is None:
            logger.warning(
                "Status webhook %s for unknown item %s", info.webhook_code, info.item_id
            )
            return WebhookOutcome.NOT_FOUND

        link.status = info.status
        link.status_body = info.status_body
        link.status_date = datetime.now(timezone.utc)
        db.flush()
        logger.info("BankLink %s status set to %s (%s)", link.id, info.status, info.webhook_code)

        if info.should_sync and not self._sync_after_webhook(db, link):
            return WebhookOutcome.FAILED
        return WebhookOutcome.STATUS

    def _handle_update_webhook(
        self, db: Session, provider: BankLinkProvider, info: UpdateWebhookInfo
    ) -> WebhookOutcome:
        dedup = self.webhook_events.check_and_record(
            db, provider.provider_name, f"UPDATE_{info.type}", info.item_id
        )
        if dedup.is_duplicate:
            return WebhookOutcome.DUPLICATE

        link = self.find_by_item_id(db, info.item_id, provider.provider_name)
        if link is None:
            logger.warning("Update webhook %s for unknown item %s", info.type, info.item_id)
            return WebhookOutcome.NOT_FOUND

        if not self._sync_after_webhook(db, link):
            return WebhookOutcome.FAILED
        return WebhookOutcome.UPDATE

    def _sync_after_webhook(self, db: Session, link: BankLink) -> bool:
        """Sync a link on behalf of a webhook; a failure is logged, not raised."""
        try:
            with db.begin_nested():
                self.sync_accounts(db, link.id, link.user_id)
        except Exception:
            logger.warning("Webhook-triggered sync failed for BankLink %s", link.id, exc_info=True)
            return False
        return True

    def _handle_link_completion(
        self,
        db: Session,
        provider: BankLinkProvider,
        webhook_id: str,
        payload: dict[str, Any],
    ) -> WebhookOutcome:
        pending = self.webhook_events.find_pending_by_webhook_id(db, webhook_id)
        if pending is None:
            logger.warning(
                "No pending %s link for webhook %s (unknown, expired or already handled)",
                provider.provider_name, webhook_id,
            )
            return WebhookOutcome.NOT_FOUND

        try:
            completions = provider.process_webhook(payload)
            if completions is None:
                logger.warning("Webhook %s produced no link completions", webhook_id)
                self.webhook_events.mark_failed(
                    db, webhook_id, LINK_FAILED_NO_RESPONSES, content=payload
                )
                return WebhookOutcome.FAILED

            with db.begin_nested():
                accounts = self._complete_link(
                    db, provider.provider_name, pending.user_id, completions
                )
                self.webhook_events.mark_completed(db, webhook_id, payload)
        except Exception as e:
            logger.error("Link completion failed for webhook %s", webhook_id, exc_info=True)
            self.webhook_events.mark_failed(db, webhook_id, str(e), content=payload)
            raise

        logger.info(
            "Link completed for webhook %s: %d links, %d accounts",
            webhook_id, len(completions), len(accounts),
        )
        return WebhookOutcome.LINKED

    # ------------------------------------------------------------------
    # Syncing
    # ------------------------------------------------------------------

    def _get_link(self, db: Session, bank_link_id: str, user_id: str) -> BankLink:
        link = (
            db.query(BankLink)
            .filter(BankLink.id == bank_link_id, BankLink.user_id == user_id)
            .first()
        )
        if link is None:
            raise NotFoundError(f"BankLink {bank_link_id} not found")
        return link

    def _apply_accounts_result(
        self, db: Session, link: BankLink, result: AccountsResult
    ) -> list[Account]:
        """Write fetched institution metadata and accounts for one link."""
        institution = result.institution
        if institution is not None and (
            institution.id != link.institution_id or institution.name != link.institution_name
        ):
            logger.info(
                "BankLink %s institution changed: %s -> %s",
                link.id, link.institution_name, institution.name,
            )
            link.institution_id = institution.id
            link.institution_name = institution.name

        account_ids = [a.account_id for a in result.accounts]
        if account_ids and account_ids != list(link.account_ids or []):
            link.account_ids = account_ids

        return upsert_accounts_from_api(
            db,
            link.user_id,
            result.accounts,
            {account_id: link.id for account_id in account_ids},
            self.dispatcher,
        )

    def sync_accounts(self, db: Session, bank_link_id: str, user_id: str) -> list[Account]:
        """Fetch and reconcile the accounts of one of the user's links.

        Raises:
            NotFoundError: The link doesn't exist for this user
            ProviderError: The provider call failed
        """
        link = self._get_link(db, bank_link_id, user_id)
        provider = self.registry.get_provider(link.provider_name)
        result = provider.get_accounts(link.authentication)
        accounts = self._apply_accounts_result(db, link, result)
        logger.info("BankLink %s synced: %d accounts", link.id, len(accounts))
        return accounts

    def _fetch_accounts(self, provider_name: str, authentication: dict) -> AccountsResult:
        """Worker-thread body: provider I/O only, no database access."""
        return self.registry.get_provider(provider_name).get_accounts(authentication)

    def _sync_links(self, db: Session, links: Iterable[BankLink]) -> SyncAllResult:
        """Fetch every link concurrently, then reconcile each in its own savepoint.

        One link failing is logged once and recorded in ``failures``; it
        never stops the others.
        """
        links_by_id = {link.id: link for link in links}
        result = SyncAllResult()
        if not links_by_id:
            return result

        with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
            futures = {
                pool.submit(
                    self._fetch_accounts, link.provider_name, dict(link.authentication or {})
                ): link.id
                for link in links_by_id.values()
            }
            for future in as_completed(futures):
                link = links_by_id[futures[future]]
                try:
                    fetched = future.result()
                    with db.begin_nested():
                        result.accounts.extend(self._apply_accounts_result(db, link, fetched))
                except Exception as e:
                    result.failures[link.id] = str(e)
                    logger.warning(
                        "Sync failed for BankLink %s (%s)",
                        link.id, link.provider_name, exc_info=True,
                    )

        logger.info(
            "Synced %d links: %d accounts, %d failures",
            len(links_by_id), len(result.accounts), len(result.failures),
        )
        return result

    def sync_all_accounts(self, db: Session, user_id: str) -> SyncAllResult:
        """Sync every link the user owns."""
        links = (
            db.query(BankLink)
            .filter(BankLink.user_id == user_id)
            .order_by(BankLink.created_at)
            .all()
        )
        return self._sync_links(db, links)

    def sync_all_accounts_system(
        self,
        db: Session,
        exclude_providers: Iterable[str] = WEBHOOK_PROVIDERS,
        include_providers: Iterable[str] | None = None,
    ) -> SyncAllResult:
        """Sync every link in the system, skipping webhook-driven providers by default."""
        query = db.query(BankLink)
        excluded = list(exclude_providers or [])
        if excluded:
            query = query.filter(BankLink.provider_name.notin_(excluded))
        if include_providers is not None:
            query = query.filter(BankLink.provider_name.in_(list(include_providers)))
        return self._sync_links(db, query.order_by(BankLink.created_at).all())

    # ------------------------------------------------------------------
    # Item ids
    # ------------------------------------------------------------------

    @staticmethod
    def find_by_item_id(db: Session, item_id: str, provider_name: str = "plaid") -> BankLink | None:
        """Find the link whose stored ``itemId`` matches a webhook's item id."""
        return (
            db.query(BankLink)
            .filter(
                BankLink.provider_name == provider_name,
                BankLink.authentication["itemId"].as_string() == item_id,
            )
            .first()
        )

    def backfill_item_ids(self, db: Session) -> dict[str, int]:
        """Store the provider item id on links created before it was recorded.

        Links whose provider isn't registered or can't look up item ids
        are counted as skipped.
        """
        stats = {"updated": 0, "failed": 0, "skipped": 0}
        for link in db.query(BankLink).order_by(BankLink.created_at).all():
            authentication = dict(link.authentication or {})
            if authentication.get("itemId"):
                continue

            if not self.registry.is_configured(link.provider_name):
                stats["skipped"] += 1
                continue
            get_item_id = getattr(self.registry.get_provider(link.provider_name), "get_item_id", None)
            if get_item_id is None:
                stats["skipped"] += 1
                continue

            try:
                with db.begin_nested():
                    authentication["itemId"] = get_item_id(authentication)
                    link.authentication = authentication
                    db.flush()
                stats["updated"] += 1
            except Exception:
                stats["failed"] += 1
                logger.warning("Item id backfill failed for BankLink %s", link.id, exc_info=True)

        logger.info(
            "Item id backfill: %d updated, %d failed, %d skipped",
            stats["updated"], stats["failed"], stats["skipped"],
        )
        return stats
