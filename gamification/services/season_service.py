from datetime import datetime, timedelta

import structlog
from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from gamification.core.config import settings
from gamification.core.exceptions import RolloverAlreadyArchived, SeasonArchiveIncomplete
from gamification.core.periods import (
    TimePeriod,
    as_utc,
    next_month_start,
    previous_season_start,
    season_bounds,
    season_label,
    utcnow,
)
from gamification.db.models.score import ScoreRecord
from gamification.db.models.season import MEDALS_BY_RANK, SeasonRollover, SeasonState, SeasonWinner
from gamification.db.upsert import dialect_insert
from gamification.schemas.leaderboard import LeaderboardEntry
from gamification.schemas.season import RolloverResult, RolloverStatus, SeasonWinnerResponse
from gamification.services.leaderboard_service import LeaderboardService
from gamification.services.ledger_service import ScoreLedger

logger = structlog.get_logger()


class SeasonService:
    """Archives a finished season's podium and resets period-scoped scores.

    A season is a calendar month. Each ``(tenant, season)`` has a persisted
    ``SeasonRollover`` marker moving ``active -> rolling_over -> archived``;
    claiming it with a conditional update makes duplicate or racing triggers
    no-ops.
    """

    def __init__(self, db: AsyncSession) -> None:
        self.db = db
        self.leaderboards = LeaderboardService(db)
        self.ledger = ScoreLedger(db)

    async def rollover(
        self,
        tenant_id: str,
        season_start: datetime | None = None,
        now: datetime | None = None,
    ) -> RolloverResult:
        """Archive and reset one tenant's season.

        Defaults to the season that ended most recently before ``now``.
        Raises ``SeasonArchiveIncomplete`` when some categories could not be
        archived; winners written for the other categories are kept in the
        session and the ledger is left untouched, so the caller should commit
        and retry.
        """
        now = as_utc(now or utcnow())
        start, end = season_bounds(season_start or previous_season_start(now))
        label = season_label(start)

        if end > now:
            raise ValueError(f"Season {label!r} has not ended yet")

        try:
            marker = await self._claim(tenant_id, label, start, end, now)
        except RolloverAlreadyArchived:
            logger.info("Season already archived", tenant_id=tenant_id, season=label)
            return RolloverResult(
                tenant_id=tenant_id,
                season_period=label,
                status=RolloverStatus.ALREADY_ARCHIVED,
            )

        logger.info("Season rollover started", tenant_id=tenant_id, season=label)

        boards = await self.leaderboards.rank_period(
            TimePeriod.MONTH,
            start,
            tenant_id=tenant_id,
            limit=settings.season_medal_places,
        )

        failed_categories = []
        for category, entries in boards.items():
            try:
                async with self.db.begin_nested():
                    await self._archive_category(tenant_id, label, category, entries)
            except Exception as exc:
                logger.error(
                    "Failed to archive season category",
                    tenant_id=tenant_id,
                    season=label,
                    category=category,
                    error=str(exc),
                )
                failed_categories.append(category)

        if failed_categories:
            marker.state = SeasonState.ACTIVE.value
            marker.error_message = "Archive failed for: " + ", ".join(failed_categories)
            await self.db.flush()
            raise SeasonArchiveIncomplete(tenant_id, label, failed_categories)

        records_reset = 0
        for period in (TimePeriod.MONTH, TimePeriod.WEEK):
            records_reset += await self.ledger.reset_period(tenant_id, period, start, end)

        winners = await self.get_season_history(tenant_id, label)

        marker.state = SeasonState.ARCHIVED.value
        marker.completed_at = now
        marker.winners_archived = len(winners)
        marker.records_reset = records_reset
        marker.error_message = None
        await self.db.flush()

        logger.info(
            "Season rollover completed",
            tenant_id=tenant_id,
            season=label,
            winners=len(winners),
            records_reset=records_reset,
        )

        return RolloverResult(
            tenant_id=tenant_id,
            season_period=label,
            status=RolloverStatus.COMPLETED,
            winners=winners,
            records_reset=records_reset,
            completed_at=now,
        )

    async def _claim(
        self,
        tenant_id: str,
        label: str,
        start: datetime,
        end: datetime,
        now: datetime,
    ) -> SeasonRollover:
        """Move the season's marker to ``rolling_over`` or raise ``RolloverAlreadyArchived``."""
        marker = await self._get_marker(tenant_id, label)
        if marker is None and await self._has_winners(tenant_id, label):
            # Archived before markers were recorded.
            raise RolloverAlreadyArchived(tenant_id, label)
        if marker is not None and marker.state == SeasonState.ARCHIVED.value:
            raise RolloverAlreadyArchived(tenant_id, label)

        await self.db.execute(
            dialect_insert(self.db, SeasonRollover)
            .values(
                tenant_id=tenant_id,
                season_period=label,
                season_start=start,
                season_end=end,
                state=SeasonState.ACTIVE.value,
            )
            .on_conflict_do_nothing(index_elements=["tenant_id", "season_period"])
        )

        stale_before = now - timedelta(seconds=settings.season_claim_timeout_seconds)
        result = await self.db.execute(
            update(SeasonRollover)
            .where(
                SeasonRollover.tenant_id == tenant_id,
                SeasonRollover.season_period == label,
                or_(
                    SeasonRollover.state == SeasonState.ACTIVE.value,
                    and_(
                        SeasonRollover.state == SeasonState.ROLLING_OVER.value,
                        SeasonRollover.started_at < stale_before,
                    ),
                ),
            )
            .values(
                state=SeasonState.ROLLING_OVER.value,
                started_at=now,
                updated_at=func.now(),
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise RolloverAlreadyArchived(tenant_id, label)

        marker = await self._get_marker(tenant_id, label)
        return marker

    async def _archive_category(
        self,
        tenant_id: str,
        label: str,
        category: str,
        entries: list[LeaderboardEntry],
    ) -> None:
        for entry in entries:
            medal = MEDALS_BY_RANK.get(entry.rank)
            if medal is None:
                continue
            await self.db.execute(
                dialect_insert(self.db, SeasonWinner)
                .values(
                    season_period=label,
                    tenant_id=tenant_id,
                    user_id=entry.user_id,
                    category=category,
                    score_value=entry.score_value,
                    rank=entry.rank,
                    medal=medal.value,
                )
                .on_conflict_do_nothing(
                    index_elements=["tenant_id", "season_period", "category", "rank"]
                )
            )

    async def _get_marker(self, tenant_id: str, label: str) -> SeasonRollover | None:
        result = await self.db.execute(
            select(SeasonRollover)
            .where(
                SeasonRollover.tenant_id == tenant_id,
                SeasonRollover.season_period == label,
            )
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def _has_winners(self, tenant_id: str, label: str) -> bool:
        result = await self.db.execute(
            select(func.count(SeasonWinner.id)).where(
                SeasonWinner.tenant_id == tenant_id,
                SeasonWinner.season_period == label,
            )
        )
        return (result.scalar() or 0) > 0

    async def get_last_archived(self, tenant_id: str) -> SeasonRollover | None:
        result = await self.db.execute(
            select(SeasonRollover)
            .where(
                SeasonRollover.tenant_id == tenant_id,
                SeasonRollover.state == SeasonState.ARCHIVED.value,
            )
            .order_by(SeasonRollover.season_start.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def pending_seasons(self, tenant_id: str, now: datetime | None = None) -> list[datetime]:
        """Starts of finished seasons not yet archived, oldest first.

        Without any archived season only the most recently finished one is
        pending.
        """
        now = as_utc(now or utcnow())
        latest = previous_season_start(now)

        last = await self.get_last_archived(tenant_id)
        if last is None:
            candidate = latest
        else:
            candidate = next_month_start(as_utc(last.season_start))

        pending = []
        while candidate <= latest:
            pending.append(candidate)
            candidate = next_month_start(candidate)
        return pending

    async def is_rollover_due(self, tenant_id: str, now: datetime | None = None) -> bool:
        return bool(await self.pending_seasons(tenant_id, now))

    async def rollover_due_tenants(self, now: datetime | None = None) -> list[str]:
        """Tenants with ledger activity whose finished seasons are not archived."""
        result = await self.db.execute(
            select(ScoreRecord.tenant_id).distinct().order_by(ScoreRecord.tenant_id)
        )
        due = []
        for tenant_id in result.scalars().all():
            if await self.is_rollover_due(tenant_id, now):
                due.append(tenant_id)
        return due

    async def get_season_history(
        self,
        tenant_id: str,
        season_period: str | None = None,
    ) -> list[SeasonWinnerResponse]:
        query = select(SeasonWinner).where(SeasonWinner.tenant_id == tenant_id)
        if season_period is not None:
            query = query.where(SeasonWinner.season_period == season_period).order_by(
                SeasonWinner.category, SeasonWinner.rank
            )
        else:
            query = query.order_by(SeasonWinner.id.desc())

        result = await self.db.execute(query)
        return [SeasonWinnerResponse.model_validate(w) for w in result.scalars().all()]
