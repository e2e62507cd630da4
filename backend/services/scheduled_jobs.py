"""Scheduled jobs run by an external scheduler (cron) through ``scripts/run_job.py``.

Each job owns its session: it commits once on success and rolls back on
failure.
"""

import logging
from typing import Any, Callable

from sqlalchemy.orm import Session

from database import get_session_local
from integrations.provider_registry import ProviderRegistry, build_default_registry
from services.balance_snapshot_service import BalanceSnapshotService
from services.bank_link_service import BankLinkService
from services.event_dispatcher import EventDispatcher, build_default_dispatcher

logger = logging.getLogger(__name__)

# Webhook-driven and frequently polled providers are left out of the daily run
DAILY_SYNC_EXCLUDED = frozenset({"plaid", "crypto"})
FREQUENT_SYNC_PROVIDERS = frozenset({"crypto"})


def _daily_sync(db: Session, service: BankLinkService) -> dict[str, Any]:
    result = service.sync_all_accounts_system(db, exclude_providers=DAILY_SYNC_EXCLUDED)
    return {"accounts": len(result.accounts), "failures": len(result.failures)}


def _frequent_sync(db: Session, service: BankLinkService) -> dict[str, Any]:
    result = service.sync_all_accounts_system(
        db, exclude_providers=(), include_providers=FREQUENT_SYNC_PROVIDERS
    )
    return {"accounts": len(result.accounts), "failures": len(result.failures)}


def _forward_fill(db: Session, service: BankLinkService) -> dict[str, Any]:
    result = BalanceSnapshotService.forward_fill_missing_snapshots(db)
    return {"created": result.created, "skipped": result.skipped}


def _backfill_item_ids(db: Session, service: BankLinkService) -> dict[str, Any]:
    return service.backfill_item_ids(db)


JOBS: dict[str, Callable[[Session, BankLinkService], dict[str, Any]]] = {
    "daily-sync": _daily_sync,
    "frequent-sync": _frequent_sync,
    "forward-fill": _forward_fill,
    "backfill-item-ids": _backfill_item_ids,
}


def run_job(
    name: str,
    session_factory: Callable[[], Session] | None = None,
    registry: ProviderRegistry | None = None,
    dispatcher: EventDispatcher | None = None,
) -> dict[str, Any]:
    """Run one job by name and return its summary.

    Raises:
        KeyError: Unknown job name
    """
    if name not in JOBS:
        raise KeyError(f"Unknown job: {name}. Available jobs: {', '.join(JOBS)}")

    session_factory = session_factory or get_session_local()
    service = BankLinkService(
        registry or build_default_registry(),
        dispatcher=dispatcher or build_default_dispatcher(),
    )

    logger.info("Job %s started", name)
    db = session_factory()
    try:
        summary = JOBS[name](db, service)
        db.commit()
    except Exception:
        db.rollback()
        logger.error("Job %s failed", name, exc_info=True)
        raise
    finally:
        db.close()

    logger.info("Job %s finished: %s", name, summary)
    return summary
