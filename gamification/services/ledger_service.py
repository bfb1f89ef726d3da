from datetime import datetime

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from gamification.core.config import settings
from gamification.core.periods import TimePeriod
from gamification.db.models.score import ScoreRecord
from gamification.db.upsert import dialect_insert

logger = structlog.get_logger()

SCORE_KEY = ["user_id", "tenant_id", "score_type", "time_period", "period_start"]


class ScoreLedger:
    """Keyed atomic counters over ``score_records``.

    Every write is a single ``INSERT .. ON CONFLICT DO UPDATE`` adding to the
    stored value, so concurrent increments for the same key never lose
    updates. Increments are not idempotent: callers must not re-send one that
    already succeeded.
    """

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    @retry(
        retry=retry_if_exception_type(OperationalError),
        stop=stop_after_attempt(settings.ledger_max_attempts),
        wait=wait_exponential(
            multiplier=settings.ledger_retry_min_wait,
            min=settings.ledger_retry_min_wait,
            max=settings.ledger_retry_max_wait,
        ),
        reraise=True,
    )
    async def increment(
        self,
        user_id: str,
        tenant_id: str,
        score_type: str,
        time_period: TimePeriod,
        period_start: datetime,
        period_end: datetime | None,
        points: int,
    ) -> None:
        """Atomically add ``points`` to a score record, creating it if absent.

        Runs inside a savepoint so a failed attempt leaves the surrounding
        transaction (and increments already applied in it) intact.
        """
        stmt = dialect_insert(self.db, ScoreRecord).values(
            user_id=user_id,
            tenant_id=tenant_id,
            score_type=score_type,
            time_period=time_period.value,
            period_start=period_start,
            period_end=period_end,
            score_value=points,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=SCORE_KEY,
            set_={
                "score_value": ScoreRecord.score_value + stmt.excluded.score_value,
                "updated_at": func.now(),
            },
        )

        async with self.db.begin_nested():
            await self.db.execute(stmt)

    async def get_score(
        self,
        user_id: str,
        tenant_id: str,
        score_type: str,
        time_period: TimePeriod,
        period_start: datetime,
    ) -> int:
        """Current value of a score record, ``0`` when it does not exist yet."""
        result = await self.db.execute(
            select(ScoreRecord.score_value).where(
                ScoreRecord.user_id == user_id,
                ScoreRecord.tenant_id == tenant_id,
                ScoreRecord.score_type == score_type,
                ScoreRecord.time_period == time_period.value,
                ScoreRecord.period_start == period_start,
            )
        )
        return result.scalar_one_or_none() or 0

    async def reset_period(
        self,
        tenant_id: str,
        time_period: TimePeriod,
        ended_after: datetime,
        ended_by: datetime,
    ) -> int:
        """Zero every record of ``time_period`` whose period ends in ``(ended_after, ended_by]``.

        Periods still open at ``ended_by`` are left alone, so a week running
        into the next month is reset by that month's rollover instead. Rows
        are kept so the key history survives; all-time records are never reset.
        """
        if time_period == TimePeriod.ALL_TIME:
            raise ValueError("all_time score records are never reset")

        result = await self.db.execute(
            update(ScoreRecord)
            .where(
                ScoreRecord.tenant_id == tenant_id,
                ScoreRecord.time_period == time_period.value,
                ScoreRecord.period_end > ended_after,
                ScoreRecord.period_end <= ended_by,
            )
            .values(score_value=0, updated_at=func.now())
            .execution_options(synchronize_session=False)
        )
        logger.info(
            "Reset period score records",
            tenant_id=tenant_id,
            time_period=time_period.value,
            ended_by=ended_by.isoformat(),
            records=result.rowcount,
        )
        return result.rowcount
