from datetime import date, datetime, timedelta

import structlog
from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from gamification.core.periods import TimePeriod, as_utc, period_bounds, utcnow
from gamification.db.models.points import UserPoints
from gamification.db.upsert import dialect_insert
from gamification.schemas.points import PointsSummary

logger = structlog.get_logger()

USER_KEY = ["user_id", "tenant_id"]


def _period_counter(stored, stored_start, credited, credited_start):
    return case(
        (stored_start == credited_start, stored + credited),
        (stored_start > credited_start, stored),
        else_=credited,
    )


def _latest(stored_start, credited_start):
    return case((stored_start > credited_start, stored_start), else_=credited_start)


class PointsService:
    """Per-user profile totals kept as atomic counters."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def credit(
        self, user_id: str, tenant_id: str, points: int, at: datetime | None = None
    ) -> None:
        """Atomically add ``points`` to the user's total and to the week and
        month containing ``at``.

        A credit for a week or month older than the stored one only moves the
        total.
        """
        if points < 0:
            raise ValueError("points credited must not be negative")

        at = as_utc(at or utcnow())
        week_start, _ = period_bounds(TimePeriod.WEEK, at)
        month_start, _ = period_bounds(TimePeriod.MONTH, at)

        stmt = dialect_insert(self.db, UserPoints).values(
            user_id=user_id,
            tenant_id=tenant_id,
            total_points=points,
            points_this_week=points,
            points_this_month=points,
            week_start=week_start,
            month_start=month_start,
        )
        excluded = stmt.excluded
        stmt = stmt.on_conflict_do_update(
            index_elements=USER_KEY,
            set_={
                "total_points": UserPoints.total_points + excluded.total_points,
                "points_this_week": _period_counter(
                    UserPoints.points_this_week, UserPoints.week_start,
                    excluded.points_this_week, excluded.week_start,
                ),
                "week_start": _latest(UserPoints.week_start, excluded.week_start),
                "points_this_month": _period_counter(
                    UserPoints.points_this_month, UserPoints.month_start,
                    excluded.points_this_month, excluded.month_start,
                ),
                "month_start": _latest(UserPoints.month_start, excluded.month_start),
                "updated_at": func.now(),
            },
        )
        await self.db.execute(stmt)

    async def record_activity_day(self, user_id: str, tenant_id: str, day: date) -> None:
        """Extend, restart or keep the user's daily activity streak.

        Events for a day before the last recorded one leave the streak as is.
        """
        yesterday = day - timedelta(days=1)

        stmt = dialect_insert(self.db, UserPoints).values(
            user_id=user_id,
            tenant_id=tenant_id,
            total_points=0,
            current_streak=1,
            longest_streak=1,
            last_activity_date=day,
        )
        new_streak = case(
            (UserPoints.last_activity_date >= day, UserPoints.current_streak),
            (UserPoints.last_activity_date == yesterday, UserPoints.current_streak + 1),
            else_=1,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=USER_KEY,
            set_={
                "current_streak": new_streak,
                "longest_streak": case(
                    (new_streak > UserPoints.longest_streak, new_streak),
                    else_=UserPoints.longest_streak,
                ),
                "last_activity_date": case(
                    (UserPoints.last_activity_date > day, UserPoints.last_activity_date),
                    else_=day,
                ),
                "updated_at": func.now(),
            },
        )
        await self.db.execute(stmt)

    async def get_points(self, user_id: str, tenant_id: str) -> UserPoints | None:
        result = await self.db.execute(
            select(UserPoints).where(
                UserPoints.user_id == user_id,
                UserPoints.tenant_id == tenant_id,
            ).execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_total_points(self, user_id: str, tenant_id: str) -> int:
        result = await self.db.execute(
            select(UserPoints.total_points).where(
                UserPoints.user_id == user_id,
                UserPoints.tenant_id == tenant_id,
            )
        )
        return result.scalar_one_or_none() or 0

    async def get_summary(
        self, user_id: str, tenant_id: str, now: datetime | None = None
    ) -> PointsSummary:
        """Profile totals as of ``now``; users without a row read as zero."""
        summary = PointsSummary(user_id=user_id, tenant_id=tenant_id)
        points = await self.get_points(user_id, tenant_id)
        if points is None:
            return summary

        now = as_utc(now or utcnow())
        week_start, _ = period_bounds(TimePeriod.WEEK, now)
        month_start, _ = period_bounds(TimePeriod.MONTH, now)

        summary.total_points = points.total_points
        summary.current_streak = points.current_streak
        summary.longest_streak = points.longest_streak
        summary.last_activity_date = points.last_activity_date
        if points.week_start is not None and as_utc(points.week_start) == week_start:
            summary.points_this_week = points.points_this_week
        if points.month_start is not None and as_utc(points.month_start) == month_start:
            summary.points_this_month = points.points_this_month
        return summary
