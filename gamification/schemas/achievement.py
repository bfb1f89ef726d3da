from datetime import datetime

from pydantic import BaseModel, Field


class AchievementGranted(BaseModel):
    """Notification payload for a newly unlocked achievement."""

    user_id: str
    tenant_id: str
    achievement_id: int
    code: str
    name: str
    description: str | None
    icon: str | None
    badge_color: str | None
    points: int
    progress: int
    earned_at: datetime


class CriterionFailure(BaseModel):
    achievement_code: str
    reason: str


class AchievementEvaluation(BaseModel):
    user_id: str
    tenant_id: str
    evaluated: int = 0
    granted: list[AchievementGranted] = Field(default_factory=list)
    failures: list[CriterionFailure] = Field(default_factory=list)


class UserAchievementResponse(BaseModel):
    achievement_id: int
    code: str
    name: str
    description: str | None
    icon: str | None
    badge_color: str | None
    points: int
    progress: int
    earned_at: datetime
