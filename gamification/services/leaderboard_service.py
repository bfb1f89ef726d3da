from collections import defaultdict
from datetime import datetime

import structlog
from sqlalchemy import and_, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from gamification.core.config import settings
from gamification.core.periods import TimePeriod, period_bounds, utcnow
from gamification.db.models.activity import ScoreType
from gamification.db.models.score import ScoreRecord
from gamification.schemas.leaderboard import LeaderboardEntry, UserRank

logger = structlog.get_logger()


class LeaderboardService:
    """Ranked views over the score ledger.

    Ordering is ``score_value`` descending with ties broken by ascending
    ``user_id``, so the same ledger snapshot always ranks identically. Users
    without a positive score are not ranked. All methods are read-only.
    """

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    def _totals_query(
        self,
        time_period: TimePeriod,
        period_start: datetime,
        tenant_id: str | None,
    ):
        total = func.sum(ScoreRecord.score_value).label("total")
        query = (
            select(ScoreRecord.score_type, ScoreRecord.user_id, total)
            .where(
                ScoreRecord.time_period == time_period.value,
                ScoreRecord.period_start == period_start,
            )
            .group_by(ScoreRecord.score_type, ScoreRecord.user_id)
            .having(total > 0)
        )
        if tenant_id is not None:
            query = query.where(ScoreRecord.tenant_id == tenant_id)
        return query, total

    async def rank_period(
        self,
        time_period: TimePeriod,
        period_start: datetime,
        tenant_id: str | None = None,
        limit: int | None = None,
        score_types: list[str] | None = None,
    ) -> dict[str, list[LeaderboardEntry]]:
        """Rank every category for a specific period instance."""
        limit = limit or settings.leaderboard_default_limit
        query, total = self._totals_query(time_period, period_start, tenant_id)
        if score_types is not None:
            query = query.where(ScoreRecord.score_type.in_(score_types))
        query = query.order_by(ScoreRecord.score_type, total.desc(), ScoreRecord.user_id.asc())

        result = await self.db.execute(query)

        boards: dict[str, list[LeaderboardEntry]] = defaultdict(list)
        for score_type, user_id, score_value in result.all():
            board = boards[score_type]
            if len(board) >= limit:
                continue
            board.append(
                LeaderboardEntry(
                    user_id=user_id,
                    score_value=int(score_value),
                    rank=len(board) + 1,
                )
            )

        categories = score_types if score_types is not None else [s.value for s in ScoreType]
        return {category: boards.get(category, []) for category in categories}

    async def get_leaderboards(
        self,
        time_period: TimePeriod,
        tenant_id: str | None = None,
        limit: int | None = None,
        now: datetime | None = None,
    ) -> dict[str, list[LeaderboardEntry]]:
        """Top ``limit`` users per category for the current ``time_period``."""
        period_start, _ = period_bounds(time_period, now or utcnow())
        boards = await self.rank_period(time_period, period_start, tenant_id, limit)
        logger.debug(
            "Leaderboards ranked",
            time_period=time_period.value,
            tenant_id=tenant_id,
            period_start=period_start.isoformat(),
        )
        return boards

    async def get_leaderboard(
        self,
        score_type: ScoreType,
        time_period: TimePeriod,
        tenant_id: str | None = None,
        limit: int | None = None,
        now: datetime | None = None,
    ) -> list[LeaderboardEntry]:
        """Top ``limit`` users of a single category for the current period."""
        period_start, _ = period_bounds(time_period, now or utcnow())
        boards = await self.rank_period(
            time_period,
            period_start,
            tenant_id,
            limit,
            score_types=[score_type.value],
        )
        return boards[score_type.value]

    async def get_user_rank(
        self,
        user_id: str,
        tenant_id: str,
        score_type: ScoreType,
        time_period: TimePeriod,
        now: datetime | None = None,
    ) -> UserRank:
        """Position of one user in a category, without a top-N cut-off."""
        period_start, _ = period_bounds(time_period, now or utcnow())
        query, total = self._totals_query(time_period, period_start, tenant_id)
        totals = query.where(ScoreRecord.score_type == score_type.value).subquery()

        result = await self.db.execute(
            select(totals.c.total).where(totals.c.user_id == user_id)
        )
        score_value = result.scalar_one_or_none()

        count_result = await self.db.execute(select(func.count()).select_from(totals))
        total_ranked = count_result.scalar() or 0

        rank = None
        if score_value is not None:
            ahead_result = await self.db.execute(
                select(func.count())
                .select_from(totals)
                .where(
                    or_(
                        totals.c.total > score_value,
                        and_(totals.c.total == score_value, totals.c.user_id < user_id),
                    )
                )
            )
            rank = (ahead_result.scalar() or 0) + 1

        return UserRank(
            user_id=user_id,
            score_type=score_type.value,
            time_period=time_period.value,
            score_value=int(score_value or 0),
            rank=rank,
            total_ranked=total_ranked,
        )
