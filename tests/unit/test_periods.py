from datetime import datetime, timedelta, timezone

from gamification.core.periods import (
    ALL_TIME_START,
    TimePeriod,
    as_utc,
    next_month_start,
    period_bounds,
    previous_season_start,
    season_bounds,
    season_label,
)

UTC = timezone.utc


class TestPeriodBounds:
    """Tests for week/month/all-time boundaries."""

    def test_week_starts_on_monday(self) -> None:
        start, end = period_bounds(TimePeriod.WEEK, datetime(2025, 3, 12, 15, 30, tzinfo=UTC))
        assert start == datetime(2025, 3, 10, tzinfo=UTC)
        assert end == start + timedelta(days=7)

    def test_monday_midnight_is_in_its_own_week(self) -> None:
        start, _ = period_bounds(TimePeriod.WEEK, datetime(2025, 3, 10, tzinfo=UTC))
        assert start == datetime(2025, 3, 10, tzinfo=UTC)

    def test_month_bounds(self) -> None:
        start, end = period_bounds(TimePeriod.MONTH, datetime(2025, 3, 31, 23, 59, tzinfo=UTC))
        assert start == datetime(2025, 3, 1, tzinfo=UTC)
        assert end == datetime(2025, 4, 1, tzinfo=UTC)

    def test_december_rolls_into_next_year(self) -> None:
        assert next_month_start(datetime(2024, 12, 15, tzinfo=UTC)) == datetime(2025, 1, 1, tzinfo=UTC)

    def test_all_time_is_unbounded(self) -> None:
        start, end = period_bounds(TimePeriod.ALL_TIME, datetime(2025, 3, 12, tzinfo=UTC))
        assert start == ALL_TIME_START
        assert end is None

    def test_naive_datetimes_are_treated_as_utc(self) -> None:
        assert as_utc(datetime(2025, 3, 12, 8)) == datetime(2025, 3, 12, 8, tzinfo=UTC)

    def test_aware_datetimes_are_converted_to_utc(self) -> None:
        plus_two = timezone(timedelta(hours=2))
        start, _ = period_bounds(TimePeriod.MONTH, datetime(2025, 4, 1, 1, 0, tzinfo=plus_two))
        # 2025-03-31 23:00 UTC
        assert start == datetime(2025, 3, 1, tzinfo=UTC)


class TestSeasons:
    """Tests for season labels and boundaries."""

    def test_season_label(self) -> None:
        assert season_label(datetime(2025, 3, 1, tzinfo=UTC)) == "March 2025"

    def test_previous_season(self) -> None:
        assert previous_season_start(datetime(2025, 4, 2, tzinfo=UTC)) == datetime(
            2025, 3, 1, tzinfo=UTC
        )

    def test_previous_season_across_year(self) -> None:
        assert previous_season_start(datetime(2025, 1, 1, 0, 5, tzinfo=UTC)) == datetime(
            2024, 12, 1, tzinfo=UTC
        )

    def test_season_bounds(self) -> None:
        start, end = season_bounds(datetime(2024, 2, 10, tzinfo=UTC))
        assert start == datetime(2024, 2, 1, tzinfo=UTC)
        assert end == datetime(2024, 3, 1, tzinfo=UTC)
