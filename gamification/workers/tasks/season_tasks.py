"""Celery tasks driving season rollovers."""

from datetime import datetime

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from gamification.core.exceptions import SeasonArchiveIncomplete
from gamification.services.season_service import SeasonService
from gamification.workers.celery_app import celery_app
from gamification.workers.tasks import run_async

logger = structlog.get_logger()


async def find_due_tenants(
    session_maker: async_sessionmaker[AsyncSession],
    now: datetime | None = None,
) -> list[str]:
    async with session_maker() as db:
        return await SeasonService(db).rollover_due_tenants(now)


async def rollover_pending_seasons(
    session_maker: async_sessionmaker[AsyncSession],
    tenant_id: str,
    now: datetime | None = None,
) -> list[dict]:
    """Roll over every finished, unarchived season of a tenant, oldest first.

    Each season is committed on its own. When a season cannot be fully
    archived its partial archive is committed and ``SeasonArchiveIncomplete``
    propagates; later seasons wait for the retry.
    """
    results = []
    async with session_maker() as db:
        seasons = SeasonService(db)
        for season_start in await seasons.pending_seasons(tenant_id, now):
            try:
                result = await seasons.rollover(tenant_id, season_start=season_start, now=now)
            except SeasonArchiveIncomplete:
                await db.commit()
                raise
            except Exception:
                await db.rollback()
                raise
            await db.commit()
            results.append(result.model_dump(mode="json"))
    return results


@celery_app.task
def check_season_rollovers() -> dict:
    """Dispatch a rollover task per tenant with a finished, unarchived season."""
    from gamification.db.database import create_worker_session_maker

    tenants = run_async(find_due_tenants(create_worker_session_maker()))
    for tenant_id in tenants:
        rollover_tenant_season.delay(tenant_id)

    logger.info("Season rollover check completed", tenants_due=len(tenants))
    return {"status": "completed", "tenants_due": tenants}


@celery_app.task(bind=True, max_retries=5)
def rollover_tenant_season(self, tenant_id: str) -> dict:
    """
    Archive and reset the finished seasons of one tenant.

    Safe to run more than once: seasons already archived are skipped, and a
    duplicate concurrent run loses the claim on the season marker.
    """
    from gamification.db.database import create_worker_session_maker

    logger.info("Rolling over seasons", tenant_id=tenant_id, task_id=self.request.id)

    try:
        results = run_async(rollover_pending_seasons(create_worker_session_maker(), tenant_id))
    except SeasonArchiveIncomplete as exc:
        logger.error(
            "Season archive incomplete, retrying",
            tenant_id=tenant_id,
            season=exc.season_period,
            failed_categories=exc.failed_categories,
            retries=self.request.retries,
        )
        raise self.retry(exc=exc, countdown=60 * (self.request.retries + 1)) from exc

    return {"status": "completed", "tenant_id": tenant_id, "seasons": results}
