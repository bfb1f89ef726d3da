"""Achievement criterion evaluators.

Each achievement definition carries a criterion ``{"type": ..., "target":
...}``. The type selects an evaluator from ``CRITERIA``; new criterion types
are added by registering another evaluator, without touching the award
protocol in ``AchievementService``.
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from gamification.core.periods import TimePeriod, period_bounds, start_of_day
from gamification.db.models.activity import ActivityLog, ActivityType, ScoreType
from gamification.db.models.points import UserPoints
from gamification.db.models.score import ScoreRecord


@dataclass(frozen=True)
class CriterionContext:
    user_id: str
    tenant_id: str
    now: datetime


@dataclass(frozen=True)
class CriterionResult:
    satisfied: bool
    progress: int


Evaluator = Callable[[AsyncSession, CriterionContext, int], Awaitable[CriterionResult]]


@dataclass(frozen=True)
class Criterion:
    type: str
    evaluate: Evaluator
    # Activity types whose events can move this criterion; empty means any.
    activity_types: frozenset[ActivityType] = field(default_factory=frozenset)
    # Reads points credited by grants, so it runs after the other criteria of a batch.
    after_awards: bool = False

    def is_relevant(self, activity_type: ActivityType | None) -> bool:
        if activity_type is None or not self.activity_types:
            return True
        return activity_type in self.activity_types


CRITERIA: dict[str, Criterion] = {}


def register_criterion(
    criterion_type: str, *activity_types: ActivityType, after_awards: bool = False
):
    """Register an evaluator for ``criterion_type``."""

    def decorator(func: Evaluator) -> Evaluator:
        if criterion_type in CRITERIA:
            raise ValueError(f"Criterion type {criterion_type!r} is already registered")
        CRITERIA[criterion_type] = Criterion(
            type=criterion_type,
            evaluate=func,
            activity_types=frozenset(activity_types),
            after_awards=after_awards,
        )
        return func

    return decorator


def get_criterion(criterion_type: str) -> Criterion:
    try:
        return CRITERIA[criterion_type]
    except KeyError:
        raise KeyError(f"No evaluator registered for criterion type {criterion_type!r}") from None


def threshold(progress: int, target: int) -> CriterionResult:
    return CriterionResult(satisfied=progress >= target, progress=progress)


async def count_activities(
    db: AsyncSession,
    ctx: CriterionContext,
    activity_type: ActivityType,
    since: datetime | None = None,
) -> int:
    """Count log rows in ``[since, ctx.now]``; rows after ``ctx.now`` never count."""
    query = select(func.count(ActivityLog.id)).where(
        ActivityLog.user_id == ctx.user_id,
        ActivityLog.tenant_id == ctx.tenant_id,
        ActivityLog.activity_type == activity_type.value,
        ActivityLog.occurred_at <= ctx.now,
    )
    if since is not None:
        query = query.where(ActivityLog.occurred_at >= since)

    result = await db.execute(query)
    return result.scalar() or 0


async def all_time_score(db: AsyncSession, ctx: CriterionContext, score_type: ScoreType) -> int:
    period_start, _ = period_bounds(TimePeriod.ALL_TIME, ctx.now)
    result = await db.execute(
        select(ScoreRecord.score_value).where(
            ScoreRecord.user_id == ctx.user_id,
            ScoreRecord.tenant_id == ctx.tenant_id,
            ScoreRecord.score_type == score_type.value,
            ScoreRecord.time_period == TimePeriod.ALL_TIME.value,
            ScoreRecord.period_start == period_start,
        )
    )
    return result.scalar_one_or_none() or 0


@register_criterion("spin_completions", ActivityType.SPIN_COMPLETION)
async def spin_completions(db: AsyncSession, ctx: CriterionContext, target: int) -> CriterionResult:
    count = await count_activities(db, ctx, ActivityType.SPIN_COMPLETION)
    return threshold(count, target)


@register_criterion("weekly_tasks", ActivityType.TASK_COMPLETED)
async def weekly_tasks(db: AsyncSession, ctx: CriterionContext, target: int) -> CriterionResult:
    count = await count_activities(
        db, ctx, ActivityType.TASK_COMPLETED, since=ctx.now - timedelta(days=7)
    )
    return threshold(count, target)


@register_criterion("daily_opportunities", ActivityType.OPPORTUNITY_CREATED)
async def daily_opportunities(
    db: AsyncSession, ctx: CriterionContext, target: int
) -> CriterionResult:
    count = await count_activities(
        db, ctx, ActivityType.OPPORTUNITY_CREATED, since=start_of_day(ctx.now)
    )
    return threshold(count, target)


@register_criterion("weekly_proposals", ActivityType.PROPOSAL_SIGNED)
async def weekly_proposals(db: AsyncSession, ctx: CriterionContext, target: int) -> CriterionResult:
    count = await count_activities(
        db, ctx, ActivityType.PROPOSAL_SIGNED, since=ctx.now - timedelta(days=7)
    )
    return threshold(count, target)


@register_criterion("pipeline_value", ActivityType.DEAL_CLOSED)
async def pipeline_value(db: AsyncSession, ctx: CriterionContext, target: int) -> CriterionResult:
    value = await all_time_score(db, ctx, ScoreType.PIPELINE_VALUE)
    return threshold(value, target)


@register_criterion("activity_score")
async def activity_score(db: AsyncSession, ctx: CriterionContext, target: int) -> CriterionResult:
    value = await all_time_score(db, ctx, ScoreType.ACTIVITY_SCORE)
    return threshold(value, target)


@register_criterion("total_points", after_awards=True)
async def total_points(db: AsyncSession, ctx: CriterionContext, target: int) -> CriterionResult:
    result = await db.execute(
        select(UserPoints.total_points).where(
            UserPoints.user_id == ctx.user_id,
            UserPoints.tenant_id == ctx.tenant_id,
        )
    )
    return threshold(result.scalar_one_or_none() or 0, target)
