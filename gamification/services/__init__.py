from gamification.services.achievement_service import AchievementService
from gamification.services.activity_service import ActivityScoringEngine
from gamification.services.leaderboard_service import LeaderboardService
from gamification.services.ledger_service import ScoreLedger
from gamification.services.points_service import PointsService
from gamification.services.scoring_service import ScoringService
from gamification.services.season_service import SeasonService

__all__ = [
    "ActivityScoringEngine",
    "AchievementService",
    "LeaderboardService",
    "PointsService",
    "ScoreLedger",
    "ScoringService",
    "SeasonService",
]
