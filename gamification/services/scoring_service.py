import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from gamification.core.config import settings
from gamification.db.models.activity import VALUE_CARRYING_TYPES, ActivityType
from gamification.db.models.scoring import ScoringWeight
from gamification.schemas.scoring import ActivityWeight

logger = structlog.get_logger()


DEFAULT_WEIGHTS = {
    ActivityType.SPIN_COMPLETION.value: (settings.default_spin_completion_points, None),
    ActivityType.PROPOSAL_SENT.value: (settings.default_proposal_sent_points, None),
    ActivityType.PROPOSAL_SIGNED.value: (settings.default_proposal_signed_points, None),
    ActivityType.OPPORTUNITY_CREATED.value: (settings.default_opportunity_created_points, None),
    ActivityType.TASK_COMPLETED.value: (settings.default_task_completed_points, None),
    ActivityType.DEAL_CLOSED.value: (
        settings.default_deal_closed_points,
        settings.default_deal_closed_activity_points,
    ),
    ActivityType.AI_USAGE.value: (settings.default_ai_usage_points, None),
}


def default_weight(activity_type: str) -> ActivityWeight:
    weight, activity_weight = DEFAULT_WEIGHTS[activity_type]
    return ActivityWeight(
        activity_type=activity_type,
        weight=weight,
        activity_weight=activity_weight or weight,
    )


class ScoringService:
    """Read-only access to per-tenant scoring weights.

    Weights are edited by the admin settings UI; the engine reads them fresh
    for every scoring operation and falls back to the configured defaults for
    activity types a tenant has not overridden.
    """

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def get_weights_for_tenant(self, tenant_id: str) -> dict[str, ActivityWeight]:
        """Get the effective weight of every activity type for a tenant."""
        result = await self.db.execute(
            select(ScoringWeight).where(ScoringWeight.tenant_id == tenant_id)
        )
        overrides = {w.activity_type: w for w in result.scalars().all()}

        weights = {}
        for activity_type in DEFAULT_WEIGHTS:
            override = overrides.get(activity_type)
            if override is None:
                weights[activity_type] = default_weight(activity_type)
                continue
            weights[activity_type] = ActivityWeight(
                activity_type=activity_type,
                weight=override.weight,
                activity_weight=override.activity_weight or override.weight,
                is_enabled=override.is_enabled,
            )

        unknown = set(overrides) - set(DEFAULT_WEIGHTS)
        if unknown:
            logger.warning(
                "Ignoring scoring weights for unknown activity types",
                tenant_id=tenant_id,
                activity_types=sorted(unknown),
            )

        return weights

    async def get_weight(self, tenant_id: str, activity_type: str) -> ActivityWeight:
        """Get the effective weight for a single activity type."""
        weights = await self.get_weights_for_tenant(tenant_id)
        return weights[activity_type]

    def calculate_points(
        self,
        activity_type: ActivityType,
        value: int,
        weight: ActivityWeight,
    ) -> tuple[int, int]:
        """Calculate ``(direct_points, activity_points)`` for a single event."""
        direct_points = value * weight.weight

        # Amount-carrying events count once towards activity_score.
        if activity_type in VALUE_CARRYING_TYPES:
            activity_points = weight.activity_weight
        else:
            activity_points = value * weight.activity_weight

        return direct_points, activity_points
