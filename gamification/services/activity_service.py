import structlog
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from gamification.core.exceptions import LedgerWriteFailure, UnknownActivityType
from gamification.core.periods import TimePeriod, as_utc, period_bounds
from gamification.db.models.activity import ACTIVITY_SCORE_TYPES, ActivityType, ScoreType
from gamification.schemas.activity import ActivityEvent, ScoreIncrement, ScoringResult
from gamification.services.ledger_service import ScoreLedger
from gamification.services.points_service import PointsService
from gamification.services.scoring_service import ScoringService

logger = structlog.get_logger()

SCORED_PERIODS = (TimePeriod.WEEK, TimePeriod.MONTH, TimePeriod.ALL_TIME)


def parse_activity_type(activity_type: str) -> ActivityType:
    try:
        return ActivityType(activity_type)
    except ValueError:
        raise UnknownActivityType(activity_type) from None


class ActivityScoringEngine:
    """Turns activity events into weighted score ledger increments.

    For each event the direct category (if the activity type has one) and
    the synthetic ``activity_score`` are incremented in the week, month and
    all-time periods containing ``occurred_at``.

    The engine does not de-duplicate events. Callers that may deliver an
    event twice must dedupe on ``event_id`` before calling it.
    """

    def __init__(self, db: AsyncSession) -> None:
        self.db = db
        self.ledger = ScoreLedger(db)
        self.scoring = ScoringService(db)
        self.points = PointsService(db)

    async def process_event(
        self,
        event: ActivityEvent,
        only_keys: set[tuple[str, str]] | None = None,
    ) -> ScoringResult:
        """Score a single activity event.

        ``only_keys`` restricts the writes to the given ``(score_type,
        time_period)`` pairs. It is used to retry the keys reported by a
        previous ``LedgerWriteFailure`` without re-applying the others.
        """
        activity_type = parse_activity_type(event.activity_type)
        weight = await self.scoring.get_weight(event.tenant_id, activity_type.value)

        result = ScoringResult(
            user_id=event.user_id,
            tenant_id=event.tenant_id,
            activity_type=activity_type.value,
        )
        if not weight.is_enabled:
            logger.info(
                "Activity type disabled for tenant, skipping",
                tenant_id=event.tenant_id,
                activity_type=activity_type.value,
            )
            result.skipped = True
            return result

        direct_points, activity_points = self.scoring.calculate_points(
            activity_type, event.value, weight
        )
        result.direct_points = direct_points
        result.activity_points = activity_points

        contributions: list[tuple[str, int]] = []
        direct_type = ACTIVITY_SCORE_TYPES[activity_type]
        if direct_type is not None:
            contributions.append((direct_type.value, direct_points))
        contributions.append((ScoreType.ACTIVITY_SCORE.value, activity_points))

        occurred_at = as_utc(event.occurred_at)
        failed_keys: list[tuple[str, str]] = []
        last_error: Exception | None = None

        for score_type, points in contributions:
            for period in SCORED_PERIODS:
                if only_keys is not None and (score_type, period.value) not in only_keys:
                    continue

                period_start, period_end = period_bounds(period, occurred_at)
                try:
                    await self.ledger.increment(
                        user_id=event.user_id,
                        tenant_id=event.tenant_id,
                        score_type=score_type,
                        time_period=period,
                        period_start=period_start,
                        period_end=period_end,
                        points=points,
                    )
                except OperationalError as exc:
                    logger.error(
                        "Score increment failed",
                        user_id=event.user_id,
                        tenant_id=event.tenant_id,
                        score_type=score_type,
                        time_period=period.value,
                        error=str(exc),
                    )
                    failed_keys.append((score_type, period.value))
                    last_error = exc
                    continue

                result.increments.append(
                    ScoreIncrement(
                        score_type=score_type,
                        time_period=period.value,
                        period_start=period_start,
                        points=points,
                    )
                )

        if only_keys is None:
            await self.points.record_activity_day(
                event.user_id, event.tenant_id, occurred_at.date()
            )

        if failed_keys:
            raise LedgerWriteFailure(failed_keys, cause=last_error)

        logger.info(
            "Scored activity event",
            event_id=event.event_id,
            user_id=event.user_id,
            tenant_id=event.tenant_id,
            activity_type=activity_type.value,
            direct_points=direct_points,
            activity_points=activity_points,
        )
        return result
