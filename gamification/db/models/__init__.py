from gamification.db.models.achievement import AchievementDefinition, UserAchievement
from gamification.db.models.activity import ActivityLog, ActivityType, ScoreType
from gamification.db.models.base import Base
from gamification.db.models.points import UserPoints
from gamification.db.models.score import ScoreRecord
from gamification.db.models.scoring import ScoringWeight
from gamification.db.models.season import SeasonRollover, SeasonWinner

__all__ = [
    "Base",
    "ActivityType",
    "ScoreType",
    "ActivityLog",
    "ScoringWeight",
    "ScoreRecord",
    "AchievementDefinition",
    "UserAchievement",
    "UserPoints",
    "SeasonWinner",
    "SeasonRollover",
]
