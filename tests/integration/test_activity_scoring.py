import asyncio
from datetime import date, datetime, timezone

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.sql.dml import Insert

from gamification.core.exceptions import LedgerWriteFailure, UnknownActivityType
from gamification.core.periods import TimePeriod, period_bounds
from gamification.db.models.score import ScoreRecord
from gamification.db.models.scoring import ScoringWeight
from gamification.services.activity_service import ActivityScoringEngine
from gamification.services.ledger_service import ScoreLedger
from gamification.services.points_service import PointsService
from tests.factories import NOW, TENANT, make_event

pytestmark = pytest.mark.integration

UTC = timezone.utc


async def score_of(db, score_type: str, period: TimePeriod, user_id: str = "user-a", at=NOW) -> int:
    period_start, _ = period_bounds(period, at)
    return await ScoreLedger(db).get_score(user_id, TENANT, score_type, period, period_start)


class TestProcessEvent:
    """Tests for scoring single events into the ledger."""

    async def test_three_spin_completions_score_300_in_every_period(self, db_session) -> None:
        engine = ActivityScoringEngine(db_session)
        for _ in range(3):
            await engine.process_event(make_event(activity_type="spin_completion"))

        for period in TimePeriod:
            assert await score_of(db_session, "spin_completions", period) == 300
            assert await score_of(db_session, "activity_score", period) == 300

    async def test_result_describes_increments(self, db_session) -> None:
        result = await ActivityScoringEngine(db_session).process_event(
            make_event(activity_type="proposal_signed")
        )

        assert result.direct_points == 50
        assert result.activity_points == 50
        assert not result.skipped
        keys = {(i.score_type, i.time_period) for i in result.increments}
        assert keys == {
            ("proposals_signed", "week"),
            ("proposals_signed", "month"),
            ("proposals_signed", "all_time"),
            ("activity_score", "week"),
            ("activity_score", "month"),
            ("activity_score", "all_time"),
        }

    async def test_ai_usage_only_feeds_activity_score(self, db_session) -> None:
        await ActivityScoringEngine(db_session).process_event(
            make_event(activity_type="ai_usage", value=2)
        )

        result = await db_session.execute(select(ScoreRecord.score_type).distinct())
        assert set(result.scalars().all()) == {"activity_score"}
        assert await score_of(db_session, "activity_score", TimePeriod.ALL_TIME) == 10

    async def test_closed_deal_feeds_pipeline_value(self, db_session) -> None:
        engine = ActivityScoringEngine(db_session)
        await engine.process_event(make_event(activity_type="deal_closed", value=40000))
        await engine.process_event(make_event(activity_type="deal_closed", value=2500))

        assert await score_of(db_session, "pipeline_value", TimePeriod.ALL_TIME) == 42500
        assert await score_of(db_session, "activity_score", TimePeriod.ALL_TIME) == 150

    async def test_unknown_activity_type_writes_nothing(self, db_session) -> None:
        with pytest.raises(UnknownActivityType):
            await ActivityScoringEngine(db_session).process_event(
                make_event(activity_type="coffee_break")
            )

        count = await db_session.execute(select(func.count(ScoreRecord.id)))
        assert count.scalar() == 0
        assert await PointsService(db_session).get_points("user-a", TENANT) is None

    async def test_events_land_in_the_period_they_occurred(self, db_session) -> None:
        engine = ActivityScoringEngine(db_session)
        february = datetime(2025, 2, 20, 9, 0, tzinfo=UTC)
        await engine.process_event(make_event(activity_type="task_completed", occurred_at=february))
        await engine.process_event(make_event(activity_type="task_completed"))

        assert await score_of(db_session, "tasks_completed", TimePeriod.MONTH, at=february) == 10
        assert await score_of(db_session, "tasks_completed", TimePeriod.MONTH) == 10
        assert await score_of(db_session, "tasks_completed", TimePeriod.ALL_TIME) == 20

    async def test_all_time_record_has_no_period_end(self, db_session) -> None:
        await ActivityScoringEngine(db_session).process_event(make_event())

        result = await db_session.execute(
            select(ScoreRecord).where(ScoreRecord.time_period == TimePeriod.ALL_TIME.value)
        )
        for record in result.scalars().all():
            assert record.period_end is None


class TestTenantWeights:
    """Tests for per-tenant weight overrides."""

    async def test_override_is_read_fresh(self, db_session) -> None:
        engine = ActivityScoringEngine(db_session)
        await engine.process_event(make_event(activity_type="task_completed"))

        db_session.add(
            ScoringWeight(tenant_id=TENANT, activity_type="task_completed", weight=30, activity_weight=3)
        )
        await db_session.flush()
        await engine.process_event(make_event(activity_type="task_completed"))

        assert await score_of(db_session, "tasks_completed", TimePeriod.ALL_TIME) == 40
        assert await score_of(db_session, "activity_score", TimePeriod.ALL_TIME) == 13

    async def test_override_only_applies_to_its_tenant(self, db_session) -> None:
        db_session.add(ScoringWeight(tenant_id="other", activity_type="task_completed", weight=99))
        await db_session.flush()

        await ActivityScoringEngine(db_session).process_event(make_event(activity_type="task_completed"))

        assert await score_of(db_session, "tasks_completed", TimePeriod.ALL_TIME) == 10

    async def test_disabled_activity_type_is_skipped(self, db_session) -> None:
        db_session.add(
            ScoringWeight(tenant_id=TENANT, activity_type="ai_usage", weight=5, is_enabled=False)
        )
        await db_session.flush()

        result = await ActivityScoringEngine(db_session).process_event(make_event(activity_type="ai_usage"))

        assert result.skipped
        assert result.increments == []
        count = await db_session.execute(select(func.count(ScoreRecord.id)))
        assert count.scalar() == 0


class TestConcurrentScoring:
    """Additive updates must not lose increments under concurrency."""

    async def test_concurrent_events_for_the_same_user(self, session_maker) -> None:
        events = 10

        async def score_one() -> None:
            async with session_maker() as db:
                await ActivityScoringEngine(db).process_event(
                    make_event(activity_type="spin_completion", value=2)
                )
                await db.commit()

        await asyncio.gather(*(score_one() for _ in range(events)))

        async with session_maker() as db:
            assert await score_of(db, "spin_completions", TimePeriod.ALL_TIME) == events * 2 * 100
            assert await score_of(db, "spin_completions", TimePeriod.WEEK) == events * 2 * 100
            count = await db.execute(
                select(func.count(ScoreRecord.id)).where(ScoreRecord.score_type == "spin_completions")
            )
            assert count.scalar() == 3


class TestLedgerRetry:
    """Transient write errors are retried, other database errors are not."""

    def _fail_first_insert(self, db, monkeypatch, error: Exception) -> list:
        calls = []
        execute = db.execute

        async def flaky_execute(statement, *args, **kwargs):
            if isinstance(statement, Insert):
                calls.append(statement)
                if len(calls) == 1:
                    raise error
            return await execute(statement, *args, **kwargs)

        monkeypatch.setattr(db, "execute", flaky_execute)
        return calls

    async def test_operational_error_is_retried(self, db_session, monkeypatch) -> None:
        calls = self._fail_first_insert(
            db_session, monkeypatch, OperationalError("INSERT", {}, Exception("database is locked"))
        )
        period_start, period_end = period_bounds(TimePeriod.MONTH, NOW)

        await ScoreLedger(db_session).increment(
            user_id="user-a",
            tenant_id=TENANT,
            score_type="spin_completions",
            time_period=TimePeriod.MONTH,
            period_start=period_start,
            period_end=period_end,
            points=100,
        )

        assert len(calls) == 2
        assert await score_of(db_session, "spin_completions", TimePeriod.MONTH) == 100

    async def test_integrity_error_is_not_retried(self, db_session, monkeypatch) -> None:
        calls = self._fail_first_insert(
            db_session, monkeypatch, IntegrityError("INSERT", {}, Exception("constraint failed"))
        )
        period_start, period_end = period_bounds(TimePeriod.MONTH, NOW)

        with pytest.raises(IntegrityError):
            await ScoreLedger(db_session).increment(
                user_id="user-a",
                tenant_id=TENANT,
                score_type="spin_completions",
                time_period=TimePeriod.MONTH,
                period_start=period_start,
                period_end=period_end,
                points=100,
            )

        assert len(calls) == 1


class TestPartialFailure:
    """A failed period write is reported without undoing the others."""

    async def test_failed_period_is_reported_and_retried_alone(self, db_session, monkeypatch) -> None:
        original = ScoreLedger.increment

        async def flaky_increment(self, **kwargs):
            if kwargs["score_type"] == "spin_completions" and kwargs["time_period"] == TimePeriod.MONTH:
                raise OperationalError("INSERT", {}, Exception("database is locked"))
            return await original(self, **kwargs)

        monkeypatch.setattr(ScoreLedger, "increment", flaky_increment)
        engine = ActivityScoringEngine(db_session)
        event = make_event(activity_type="spin_completion")

        with pytest.raises(LedgerWriteFailure) as exc_info:
            await engine.process_event(event)

        assert exc_info.value.failed_keys == [("spin_completions", "month")]
        assert await score_of(db_session, "spin_completions", TimePeriod.WEEK) == 100
        assert await score_of(db_session, "spin_completions", TimePeriod.MONTH) == 0
        assert await score_of(db_session, "activity_score", TimePeriod.MONTH) == 100

        monkeypatch.undo()
        result = await engine.process_event(event, only_keys=set(exc_info.value.failed_keys))

        assert [(i.score_type, i.time_period) for i in result.increments] == [
            ("spin_completions", "month")
        ]
        assert await score_of(db_session, "spin_completions", TimePeriod.MONTH) == 100
        assert await score_of(db_session, "spin_completions", TimePeriod.WEEK) == 100
        assert await score_of(db_session, "activity_score", TimePeriod.MONTH) == 100


class TestStreaks:
    """Daily activity streaks kept on the user's points record."""

    async def _score_on(self, db, day: date) -> None:
        occurred_at = datetime(day.year, day.month, day.day, 10, 0, tzinfo=UTC)
        await ActivityScoringEngine(db).process_event(
            make_event(activity_type="task_completed", occurred_at=occurred_at)
        )

    async def test_consecutive_days_extend_the_streak(self, db_session) -> None:
        for day in (date(2025, 3, 10), date(2025, 3, 11), date(2025, 3, 11), date(2025, 3, 12)):
            await self._score_on(db_session, day)

        points = await PointsService(db_session).get_points("user-a", TENANT)
        assert points.current_streak == 3
        assert points.longest_streak == 3
        assert points.last_activity_date == date(2025, 3, 12)

    async def test_gap_restarts_the_streak(self, db_session) -> None:
        for day in (date(2025, 3, 10), date(2025, 3, 11), date(2025, 3, 14)):
            await self._score_on(db_session, day)

        points = await PointsService(db_session).get_points("user-a", TENANT)
        assert points.current_streak == 1
        assert points.longest_streak == 2

    async def test_late_event_leaves_the_streak_alone(self, db_session) -> None:
        for day in (date(2025, 3, 11), date(2025, 3, 12), date(2025, 3, 5)):
            await self._score_on(db_session, day)

        points = await PointsService(db_session).get_points("user-a", TENANT)
        assert points.current_streak == 2
        assert points.last_activity_date == date(2025, 3, 12)
