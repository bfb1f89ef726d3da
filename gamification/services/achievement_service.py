from datetime import datetime

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload

from gamification.core.exceptions import CriterionEvaluationFailure, DuplicateAwardAttempt
from gamification.core.periods import as_utc, utcnow
from gamification.db.models.achievement import AchievementDefinition, UserAchievement
from gamification.db.models.activity import ActivityType
from gamification.db.upsert import dialect_insert
from gamification.schemas.achievement import (
    AchievementEvaluation,
    AchievementGranted,
    CriterionFailure,
    UserAchievementResponse,
)
from gamification.schemas.activity import ActivityEvent
from gamification.services.criteria import (
    CRITERIA,
    CriterionContext,
    CriterionResult,
    get_criterion,
)
from gamification.services.notifier import AchievementNotifier, LoggingNotifier
from gamification.services.points_service import PointsService

logger = structlog.get_logger()


def _evaluation_order(definition: AchievementDefinition) -> tuple[bool, int]:
    """Criteria that read awarded points run after the grants of the same batch."""
    criterion = CRITERIA.get(definition.criterion_type)
    return (criterion.after_awards if criterion else False, definition.id)


class AchievementService:
    """Evaluates achievement criteria and grants achievements at most once.

    Grants are insert-if-absent on ``(user_id, achievement_id)``: when two
    evaluations race, the loser's insert is a no-op and no points are
    credited twice.
    """

    def __init__(self, db: AsyncSession, notifier: AchievementNotifier | None = None) -> None:
        self.db = db
        self.notifier = notifier or LoggingNotifier()
        self.points = PointsService(db)

    async def get_active_definitions(self) -> list[AchievementDefinition]:
        result = await self.db.execute(
            select(AchievementDefinition)
            .where(AchievementDefinition.is_active.is_(True))
            .order_by(AchievementDefinition.id)
        )
        return list(result.scalars().all())

    async def get_earned_ids(self, user_id: str) -> set[int]:
        result = await self.db.execute(
            select(UserAchievement.achievement_id).where(UserAchievement.user_id == user_id)
        )
        return set(result.scalars().all())

    async def evaluate_user(
        self,
        user_id: str,
        tenant_id: str,
        event: ActivityEvent | None = None,
        now: datetime | None = None,
        notify: bool = True,
    ) -> AchievementEvaluation:
        """Evaluate every active, unearned achievement for a user.

        With ``event`` only criteria that the event's activity type can move
        are checked; without it (backfill) all of them are. Time windows end
        at ``now``, the current time by default, also for late events. A
        failure in one criterion is recorded in the result and does not stop
        the others.
        """
        activity_type = None
        if event is not None:
            try:
                activity_type = ActivityType(event.activity_type)
            except ValueError:
                activity_type = None

        ctx = CriterionContext(user_id=user_id, tenant_id=tenant_id, now=as_utc(now or utcnow()))

        evaluation = AchievementEvaluation(user_id=user_id, tenant_id=tenant_id)
        earned = await self.get_earned_ids(user_id)

        definitions = sorted(await self.get_active_definitions(), key=_evaluation_order)
        for definition in definitions:
            if definition.id in earned:
                continue

            try:
                async with self.db.begin_nested():
                    evaluated, grant = await self._evaluate_and_award(
                        definition, ctx, activity_type
                    )
            except CriterionEvaluationFailure as exc:
                self._record_failure(evaluation, definition, exc.reason)
                continue
            except Exception as exc:
                self._record_failure(evaluation, definition, str(exc))
                continue

            if evaluated:
                evaluation.evaluated += 1
            if grant is not None:
                evaluation.granted.append(grant)

        if notify:
            await self.notify(evaluation)

        return evaluation

    async def _evaluate_and_award(
        self,
        definition: AchievementDefinition,
        ctx: CriterionContext,
        activity_type: ActivityType | None,
    ) -> tuple[bool, AchievementGranted | None]:
        """Returns ``(evaluated, grant)``; irrelevant criteria are not evaluated."""
        criterion_type = definition.criterion_type
        target = definition.criterion_target

        try:
            criterion = get_criterion(criterion_type)
        except KeyError:
            raise CriterionEvaluationFailure(
                definition.code, f"unknown criterion type {criterion_type!r}"
            ) from None

        if not criterion.is_relevant(activity_type):
            return False, None

        if isinstance(target, bool) or not isinstance(target, int) or target < 0:
            raise CriterionEvaluationFailure(definition.code, f"invalid target {target!r}")

        result: CriterionResult = await criterion.evaluate(self.db, ctx, target)
        if not result.satisfied:
            return True, None

        grant = await self.award(
            definition,
            ctx.user_id,
            ctx.tenant_id,
            progress=result.progress,
            earned_at=ctx.now,
        )
        return True, grant

    async def award(
        self,
        definition: AchievementDefinition,
        user_id: str,
        tenant_id: str,
        progress: int = 0,
        earned_at: datetime | None = None,
    ) -> AchievementGranted | None:
        """Grant an achievement and credit its points.

        Returns ``None`` without writing anything when the user already holds
        the achievement, e.g. because a concurrent evaluation granted it first.
        """
        earned_at = earned_at or utcnow()

        try:
            await self._insert_user_achievement(definition, user_id, tenant_id, progress, earned_at)
        except DuplicateAwardAttempt:
            logger.debug(
                "Achievement already granted",
                user_id=user_id,
                achievement=definition.code,
            )
            return None

        if definition.points:
            await self.points.credit(user_id, tenant_id, definition.points, at=earned_at)

        logger.info(
            "Achievement unlocked",
            user_id=user_id,
            tenant_id=tenant_id,
            achievement=definition.code,
            points=definition.points,
        )
        return AchievementGranted(
            user_id=user_id,
            tenant_id=tenant_id,
            achievement_id=definition.id,
            code=definition.code,
            name=definition.name,
            description=definition.description,
            icon=definition.icon,
            badge_color=definition.badge_color,
            points=definition.points,
            progress=progress,
            earned_at=earned_at,
        )

    async def _insert_user_achievement(
        self,
        definition: AchievementDefinition,
        user_id: str,
        tenant_id: str,
        progress: int,
        earned_at: datetime,
    ) -> None:
        stmt = (
            dialect_insert(self.db, UserAchievement)
            .values(
                user_id=user_id,
                tenant_id=tenant_id,
                achievement_id=definition.id,
                earned_at=earned_at,
                progress=progress,
            )
            .on_conflict_do_nothing(index_elements=["user_id", "achievement_id"])
        )
        result = await self.db.execute(stmt)
        if result.rowcount == 0:
            raise DuplicateAwardAttempt(user_id, definition.id)

    async def notify(self, evaluation: AchievementEvaluation) -> None:
        for grant in evaluation.granted:
            await self.notifier.achievement_granted(grant)

    async def list_user_achievements(
        self,
        user_id: str,
        tenant_id: str,
    ) -> list[UserAchievementResponse]:
        result = await self.db.execute(
            select(UserAchievement)
            .options(joinedload(UserAchievement.achievement))
            .where(
                UserAchievement.user_id == user_id,
                UserAchievement.tenant_id == tenant_id,
            )
            .order_by(UserAchievement.earned_at.desc())
        )

        formatted = []
        for entry in result.scalars().all():
            formatted.append(
                UserAchievementResponse(
                    achievement_id=entry.achievement_id,
                    code=entry.achievement.code,
                    name=entry.achievement.name,
                    description=entry.achievement.description,
                    icon=entry.achievement.icon,
                    badge_color=entry.achievement.badge_color,
                    points=entry.achievement.points,
                    progress=entry.progress,
                    earned_at=entry.earned_at,
                )
            )
        return formatted

    def _record_failure(
        self,
        evaluation: AchievementEvaluation,
        definition: AchievementDefinition,
        reason: str,
    ) -> None:
        logger.error(
            "Achievement criterion evaluation failed",
            user_id=evaluation.user_id,
            tenant_id=evaluation.tenant_id,
            achievement=definition.code,
            error=reason,
        )
        evaluation.failures.append(CriterionFailure(achievement_code=definition.code, reason=reason))
