"""Celery tasks for scheduled digest delivery and quota upkeep."""

import asyncio
import logging

from celery import shared_task
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from app.config import get_settings
from app.services import digest_runner

logger = logging.getLogger(__name__)


def _get_async_session() -> async_sessionmaker:
    settings = get_settings()
    engine = create_async_engine(settings.database_url, echo=False)
    return async_sessionmaker(engine, expire_on_commit=False)


async def _run_digests() -> dict:
    settings = get_settings()
    session_factory = _get_async_session()
    async with session_factory() as db:
        summary = await digest_runner.run_scheduled_digests(db, settings, trigger="beat")
        await db.commit()
    return summary.as_dict()


async def _reconcile_quotas() -> int:
    settings = get_settings()
    session_factory = _get_async_session()
    async with session_factory() as db:
        try:
            paused = await digest_runner.reconcile_all_owners(db, settings)
            await db.commit()
        except Exception:
            await db.rollback()
            raise
    return sum(len(ids) for ids in paused.values())


@shared_task(name="app.tasks.digest_tasks.run_scheduled_digests")
def run_scheduled_digests():
    """Periodic task: send every digest due in the current window.

    Per-schedule failures are reported in the summary and picked up again by
    a later run while the schedule stays due; the task itself is not retried.
    """
    summary = asyncio.run(_run_digests())
    logger.info("Scheduled digest run: %s", summary)
    return summary


@shared_task(name="app.tasks.digest_tasks.reconcile_schedule_quotas")
def reconcile_schedule_quotas():
    """Periodic task: pause schedules that exceed their owner's tier limit."""
    total = asyncio.run(_reconcile_quotas())
    logger.info("Quota sweep paused %d schedule(s)", total)
    return total
