"""Entry points shared by the cron endpoint and the Celery beat tasks."""

import logging
import uuid
from datetime import datetime, timezone

from sqlalchemy.ext.asyncio import AsyncSession

from app.config import Settings
from app.metrics import digest_runs_total
from app.services.crypto_service import get_crypto_service
from app.services.digest_dispatcher import BatchSummary, DigestDispatcher, get_digest_dispatcher
from app.services.due_selector import compute_due_window, select_due
from app.services.quota_service import QuotaService
from app.services.stores import SqlScheduleStore, SqlUserStore

logger = logging.getLogger(__name__)


async def run_scheduled_digests(
    db: AsyncSession,
    settings: Settings,
    now: datetime | None = None,
    trigger: str = "cron",
    dispatcher: DigestDispatcher | None = None,
) -> BatchSummary:
    """Select the schedules due at ``now`` and dispatch each of them."""
    now = now or datetime.now(timezone.utc)
    lookback = settings.digest_lookback_minutes
    wrap = settings.due_window_wrap_midnight

    candidates = await SqlScheduleStore(db).list_due_candidates()
    due = select_due(now, candidates, lookback, wrap_midnight=wrap)
    window = compute_due_window(now, lookback, wrap_midnight=wrap)
    logger.info(
        "Digest run (%s): %d due of %d active, window %s-%s",
        trigger, len(due), len(candidates), window.start, window.end,
    )

    digest_runs_total.labels(trigger=trigger).inc()
    dispatcher = dispatcher or get_digest_dispatcher(settings, db)
    return await dispatcher.run_batch(due, window=window)


async def reconcile_all_owners(db: AsyncSession, settings: Settings) -> dict[uuid.UUID, list[uuid.UUID]]:
    """Bring every owner with active schedules back within their tier limit.

    Returns the paused schedule ids per owner (owners with nothing to pause
    are omitted). One owner's failure does not stop the sweep.
    """
    schedules = SqlScheduleStore(db)
    quota = QuotaService(db, schedules, SqlUserStore(db, get_crypto_service(settings)))
    paused: dict[uuid.UUID, list[uuid.UUID]] = {}
    for owner_id in await schedules.list_owners_with_active():
        try:
            # Savepoint per owner so one failure does not abort the whole sweep
            async with db.begin_nested():
                ids = await quota.reconcile_owner(owner_id, reason="sweep")
        except Exception as e:
            logger.error("Quota reconciliation failed for user %s: %s", owner_id, e)
            continue
        if ids:
            paused[owner_id] = ids
    return paused
