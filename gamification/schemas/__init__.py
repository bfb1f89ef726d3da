from gamification.schemas.achievement import (
    AchievementEvaluation,
    AchievementGranted,
    CriterionFailure,
    UserAchievementResponse,
)
from gamification.schemas.activity import ActivityEvent, ScoreIncrement, ScoringResult
from gamification.schemas.leaderboard import LeaderboardEntry, UserRank
from gamification.schemas.points import PointsSummary
from gamification.schemas.scoring import ActivityWeight
from gamification.schemas.season import RolloverResult, RolloverStatus, SeasonWinnerResponse

__all__ = [
    "ActivityEvent",
    "ScoreIncrement",
    "ScoringResult",
    "ActivityWeight",
    "LeaderboardEntry",
    "UserRank",
    "PointsSummary",
    "AchievementGranted",
    "AchievementEvaluation",
    "CriterionFailure",
    "UserAchievementResponse",
    "RolloverResult",
    "RolloverStatus",
    "SeasonWinnerResponse",
]
