from typing import Protocol

import structlog

from gamification.schemas.achievement import AchievementGranted

logger = structlog.get_logger()


class AchievementNotifier(Protocol):
    """Receives newly granted achievements (toast/notification layer)."""

    async def achievement_granted(self, grant: AchievementGranted) -> None: ...


class LoggingNotifier:
    """Default notifier: emits a structured log event per grant."""

    async def achievement_granted(self, grant: AchievementGranted) -> None:
        logger.info(
            "Achievement granted",
            user_id=grant.user_id,
            tenant_id=grant.tenant_id,
            achievement=grant.code,
            name=grant.name,
            points=grant.points,
        )
