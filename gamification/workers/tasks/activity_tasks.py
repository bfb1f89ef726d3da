"""Celery tasks scoring activity events and evaluating achievements."""

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from gamification.core.config import settings
from gamification.core.exceptions import LedgerWriteFailure, UnknownActivityType
from gamification.schemas.activity import ActivityEvent
from gamification.services.achievement_service import AchievementService
from gamification.services.activity_service import ActivityScoringEngine
from gamification.workers.celery_app import celery_app
from gamification.workers.tasks import run_async

logger = structlog.get_logger()


async def handle_activity_event(
    session_maker: async_sessionmaker[AsyncSession],
    event: ActivityEvent,
    only_keys: set[tuple[str, str]] | None = None,
) -> dict:
    """Score an event, then evaluate the achievements it can unlock.

    On ``LedgerWriteFailure`` the increments that did succeed are committed
    before the error propagates, so a retry must only resend the failed keys.
    Notifications are sent after the grants are committed.
    """
    async with session_maker() as db:
        engine = ActivityScoringEngine(db)
        try:
            scoring = await engine.process_event(event, only_keys=only_keys)
        except LedgerWriteFailure:
            await db.commit()
            raise
        except Exception:
            await db.rollback()
            raise

        achievements = AchievementService(db)
        evaluation = await achievements.evaluate_user(
            event.user_id,
            event.tenant_id,
            event=event,
            notify=False,
        )
        await db.commit()

    await achievements.notify(evaluation)

    return {
        "status": "completed",
        "event_id": event.event_id,
        "user_id": event.user_id,
        "tenant_id": event.tenant_id,
        "direct_points": scoring.direct_points,
        "activity_points": scoring.activity_points,
        "skipped": scoring.skipped,
        "achievements_granted": [g.code for g in evaluation.granted],
        "achievement_failures": [f.achievement_code for f in evaluation.failures],
    }


async def backfill_user_achievements(
    session_maker: async_sessionmaker[AsyncSession],
    user_id: str,
    tenant_id: str,
) -> dict:
    """Re-evaluate every achievement from ledger and activity history."""
    async with session_maker() as db:
        achievements = AchievementService(db)
        evaluation = await achievements.evaluate_user(user_id, tenant_id, notify=False)
        await db.commit()

    await achievements.notify(evaluation)

    return {
        "status": "completed",
        "user_id": user_id,
        "tenant_id": tenant_id,
        "evaluated": evaluation.evaluated,
        "achievements_granted": [g.code for g in evaluation.granted],
        "achievement_failures": [f.achievement_code for f in evaluation.failures],
    }


@celery_app.task(bind=True, max_retries=settings.job_max_retries)
def process_activity_event(self, payload: dict, only_keys: list[list[str]] | None = None) -> dict:
    """
    Score one activity event.

    Events must be de-duplicated by the caller: re-running this task for an
    event that was already scored adds its points again.

    Args:
        payload: ActivityEvent fields
        only_keys: ``[score_type, time_period]`` pairs left over from a
            previous partially failed attempt
    """
    from gamification.db.database import create_worker_session_maker

    event = ActivityEvent.model_validate(payload)
    keys = {tuple(k) for k in only_keys} if only_keys else None

    logger.info(
        "Processing activity event",
        event_id=event.event_id,
        user_id=event.user_id,
        activity_type=event.activity_type,
        task_id=self.request.id,
        retry_keys=only_keys,
    )

    try:
        return run_async(handle_activity_event(create_worker_session_maker(), event, keys))
    except UnknownActivityType as exc:
        logger.warning(
            "Rejected activity event",
            event_id=event.event_id,
            activity_type=exc.activity_type,
        )
        return {"status": "rejected", "event_id": event.event_id, "error": str(exc)}
    except LedgerWriteFailure as exc:
        logger.error(
            "Ledger write failed, retrying failed periods",
            event_id=event.event_id,
            failed_keys=exc.failed_keys,
            retries=self.request.retries,
        )
        raise self.retry(
            exc=exc,
            kwargs={"payload": payload, "only_keys": [list(k) for k in exc.failed_keys]},
            countdown=5 * (2**self.request.retries),
        ) from exc


@celery_app.task(bind=True, max_retries=3)
def evaluate_user_achievements(self, user_id: str, tenant_id: str) -> dict:
    """Full achievement re-evaluation for one user (backfill)."""
    from gamification.db.database import create_worker_session_maker

    logger.info("Backfilling achievements", user_id=user_id, tenant_id=tenant_id)

    try:
        return run_async(backfill_user_achievements(create_worker_session_maker(), user_id, tenant_id))
    except Exception as exc:
        logger.error(
            "Achievement backfill failed",
            user_id=user_id,
            tenant_id=tenant_id,
            error=str(exc),
        )
        raise self.retry(exc=exc, countdown=60 * (self.request.retries + 1)) from exc
