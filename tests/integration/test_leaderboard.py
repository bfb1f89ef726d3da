from datetime import datetime, timezone

import pytest

from gamification.core.periods import TimePeriod
from gamification.db.models.activity import ScoreType
from gamification.services.leaderboard_service import LeaderboardService
from tests.factories import NOW, TENANT, seed_score

pytestmark = pytest.mark.integration

UTC = timezone.utc


class TestGetLeaderboards:
    """Tests for ranking the current period."""

    async def test_orders_by_score_descending(self, db_session) -> None:
        await seed_score(db_session, "user-c", 120)
        await seed_score(db_session, "user-a", 300)
        await seed_score(db_session, "user-b", 250)

        boards = await LeaderboardService(db_session).get_leaderboards(
            TimePeriod.MONTH, tenant_id=TENANT, now=NOW
        )

        assert [(e.user_id, e.score_value, e.rank) for e in boards["activity_score"]] == [
            ("user-a", 300, 1),
            ("user-b", 250, 2),
            ("user-c", 120, 3),
        ]

    async def test_ties_break_by_ascending_user_id(self, db_session) -> None:
        await seed_score(db_session, "user-z", 500)
        await seed_score(db_session, "user-m", 500)
        await seed_score(db_session, "user-top", 900)

        service = LeaderboardService(db_session)
        first = await service.get_leaderboards(TimePeriod.MONTH, tenant_id=TENANT, now=NOW)
        second = await service.get_leaderboards(TimePeriod.MONTH, tenant_id=TENANT, now=NOW)

        assert [e.user_id for e in first["activity_score"]] == ["user-top", "user-m", "user-z"]
        assert [e.rank for e in first["activity_score"]] == [1, 2, 3]
        assert first == second

    async def test_groups_by_score_type(self, db_session) -> None:
        await seed_score(db_session, "user-a", 100, score_type="proposals_signed")
        await seed_score(db_session, "user-b", 40, score_type="tasks_completed")

        boards = await LeaderboardService(db_session).get_leaderboards(
            TimePeriod.MONTH, tenant_id=TENANT, now=NOW
        )

        assert set(boards) == {s.value for s in ScoreType}
        assert [e.user_id for e in boards["proposals_signed"]] == ["user-a"]
        assert [e.user_id for e in boards["tasks_completed"]] == ["user-b"]
        assert boards["pipeline_value"] == []

    async def test_limits_to_top_n(self, db_session) -> None:
        for i in range(15):
            await seed_score(db_session, f"user-{i:02d}", 10 * (i + 1))

        service = LeaderboardService(db_session)
        default = await service.get_leaderboards(TimePeriod.MONTH, tenant_id=TENANT, now=NOW)
        top_three = await service.get_leaderboards(TimePeriod.MONTH, tenant_id=TENANT, limit=3, now=NOW)

        assert len(default["activity_score"]) == 10
        assert default["activity_score"][0].user_id == "user-14"
        assert [e.rank for e in top_three["activity_score"]] == [1, 2, 3]

    async def test_only_the_current_period_is_ranked(self, db_session) -> None:
        last_week = datetime(2025, 3, 5, tzinfo=UTC)
        await seed_score(db_session, "user-old", 1000, period=TimePeriod.WEEK, at=last_week)
        await seed_score(db_session, "user-new", 10, period=TimePeriod.WEEK)

        boards = await LeaderboardService(db_session).get_leaderboards(
            TimePeriod.WEEK, tenant_id=TENANT, now=NOW
        )

        assert [e.user_id for e in boards["activity_score"]] == ["user-new"]

    async def test_only_the_requested_period_type_is_ranked(self, db_session) -> None:
        await seed_score(db_session, "user-a", 1000, period=TimePeriod.ALL_TIME)
        await seed_score(db_session, "user-b", 10, period=TimePeriod.MONTH)

        service = LeaderboardService(db_session)
        monthly = await service.get_leaderboards(TimePeriod.MONTH, tenant_id=TENANT, now=NOW)
        all_time = await service.get_leaderboards(TimePeriod.ALL_TIME, tenant_id=TENANT, now=NOW)

        assert [e.user_id for e in monthly["activity_score"]] == ["user-b"]
        assert [e.user_id for e in all_time["activity_score"]] == ["user-a"]

    async def test_tenants_are_isolated(self, db_session) -> None:
        await seed_score(db_session, "user-a", 100, tenant_id="acme")
        await seed_score(db_session, "user-b", 900, tenant_id="globex")

        boards = await LeaderboardService(db_session).get_leaderboards(
            TimePeriod.MONTH, tenant_id="acme", now=NOW
        )

        assert [e.user_id for e in boards["activity_score"]] == ["user-a"]

    async def test_without_tenant_scores_are_summed_per_user(self, db_session) -> None:
        await seed_score(db_session, "user-a", 100, tenant_id="acme")
        await seed_score(db_session, "user-a", 150, tenant_id="globex")
        await seed_score(db_session, "user-b", 200, tenant_id="globex")

        boards = await LeaderboardService(db_session).get_leaderboards(TimePeriod.MONTH, now=NOW)

        assert [(e.user_id, e.score_value) for e in boards["activity_score"]] == [
            ("user-a", 250),
            ("user-b", 200),
        ]

    async def test_zero_scores_are_not_ranked(self, db_session) -> None:
        await seed_score(db_session, "user-a", 0)
        await seed_score(db_session, "user-b", 5)

        board = await LeaderboardService(db_session).get_leaderboard(
            ScoreType.ACTIVITY_SCORE, TimePeriod.MONTH, tenant_id=TENANT, now=NOW
        )

        assert [e.user_id for e in board] == ["user-b"]


class TestGetUserRank:
    """Tests for a single user's position."""

    async def test_rank_matches_leaderboard_order(self, db_session) -> None:
        await seed_score(db_session, "user-a", 500)
        await seed_score(db_session, "user-b", 500)
        await seed_score(db_session, "user-c", 700)

        rank = await LeaderboardService(db_session).get_user_rank(
            "user-b", TENANT, ScoreType.ACTIVITY_SCORE, TimePeriod.MONTH, now=NOW
        )

        assert rank.rank == 3
        assert rank.score_value == 500
        assert rank.total_ranked == 3

    async def test_unranked_user(self, db_session) -> None:
        await seed_score(db_session, "user-a", 500)

        rank = await LeaderboardService(db_session).get_user_rank(
            "user-x", TENANT, ScoreType.ACTIVITY_SCORE, TimePeriod.MONTH, now=NOW
        )

        assert rank.rank is None
        assert rank.score_value == 0
        assert rank.total_ranked == 1
