# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for next-execution computation."""

from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from notiflow.domains.scheduling.recurrence import compute_next
from notiflow.models.schedule import ScheduleConfig

UTC = timezone.utc


def utc(*args: int) -> datetime:
    return datetime(*args, tzinfo=UTC)


def recurring(**kwargs) -> ScheduleConfig:
    kwargs.setdefault("start_date", utc(2024, 6, 1, 0, 0))
    return ScheduleConfig(type="recurring", **kwargs)


class TestDaily:
    """Tests for daily series."""

    def test_monday_run_moves_to_tuesday(self) -> None:
        schedule = recurring(frequency="daily", time="09:00")

        # Monday 10:00, after today's 09:00 run
        assert compute_next(schedule, utc(2024, 6, 3, 10, 0)) == utc(2024, 6, 4, 9, 0)

    def test_same_day_when_time_not_reached(self) -> None:
        schedule = recurring(frequency="daily", time="09:00")

        assert compute_next(schedule, utc(2024, 6, 3, 8, 59)) == utc(2024, 6, 3, 9, 0)

    def test_exactly_at_execution_moves_on(self) -> None:
        schedule = recurring(frequency="daily", time="09:00")

        assert compute_next(schedule, utc(2024, 6, 3, 9, 0)) == utc(2024, 6, 4, 9, 0)

    def test_interval_is_anchored_at_start(self) -> None:
        schedule = recurring(frequency="daily", interval=2, start_date=utc(2024, 6, 3, 9, 0))

        assert compute_next(schedule, utc(2024, 6, 4, 10, 0)) == utc(2024, 6, 5, 9, 0)
        assert compute_next(schedule, utc(2024, 6, 5, 10, 0)) == utc(2024, 6, 7, 9, 0)

    def test_future_start_skips_earlier_slot(self) -> None:
        schedule = recurring(frequency="daily", start_date=utc(2024, 6, 10, 12, 0))

        assert compute_next(schedule, utc(2024, 6, 3, 10, 0)) == utc(2024, 6, 11, 9, 0)

    def test_end_date_finishes_series(self) -> None:
        schedule = recurring(frequency="daily", end_date=utc(2024, 6, 4, 8, 0))

        assert compute_next(schedule, utc(2024, 6, 3, 8, 0)) == utc(2024, 6, 3, 9, 0)
        assert compute_next(schedule, utc(2024, 6, 3, 10, 0)) is None


class TestWeekly:
    """Tests for weekly series with Sunday-based day numbers."""

    def test_thursday_moves_to_friday(self) -> None:
        schedule = recurring(frequency="weekly", days_of_week=[1, 3, 5], time="08:00")

        assert compute_next(schedule, utc(2024, 6, 6, 10, 0)) == utc(2024, 6, 7, 8, 0)

    def test_saturday_wraps_to_monday(self) -> None:
        schedule = recurring(frequency="weekly", days_of_week=[5, 1, 3], time="08:00")

        assert compute_next(schedule, utc(2024, 6, 8, 10, 0)) == utc(2024, 6, 10, 8, 0)

    def test_defaults_to_start_weekday(self) -> None:
        # 2024-06-04 is a Tuesday
        schedule = recurring(frequency="weekly", start_date=utc(2024, 6, 4, 0, 0))

        assert compute_next(schedule, utc(2024, 6, 5, 0, 0)) == utc(2024, 6, 11, 9, 0)

    def test_every_other_week(self) -> None:
        schedule = recurring(
            frequency="weekly", interval=2, days_of_week=[1], start_date=utc(2024, 6, 3, 0, 0)
        )

        assert compute_next(schedule, utc(2024, 6, 3, 10, 0)) == utc(2024, 6, 17, 9, 0)

    def test_day_numbers_validated(self) -> None:
        with pytest.raises(ValidationError):
            recurring(frequency="weekly", days_of_week=[7])


class TestMonthly:
    """Tests for monthly series, including end-of-month clamping."""

    def test_31st_clamps_to_short_month_end(self) -> None:
        schedule = recurring(frequency="monthly", day_of_month=31, start_date=utc(2024, 1, 31, 0, 0))

        assert compute_next(schedule, utc(2024, 4, 1, 0, 0)) == utc(2024, 4, 30, 9, 0)
        assert compute_next(schedule, utc(2024, 4, 30, 10, 0)) == utc(2024, 5, 31, 9, 0)

    def test_31st_in_leap_february(self) -> None:
        schedule = recurring(frequency="monthly", day_of_month=31, start_date=utc(2024, 1, 31, 0, 0))

        assert compute_next(schedule, utc(2024, 2, 1, 0, 0)) == utc(2024, 2, 29, 9, 0)

    def test_defaults_to_start_day(self) -> None:
        schedule = recurring(frequency="monthly", start_date=utc(2024, 6, 15, 0, 0))

        assert compute_next(schedule, utc(2024, 6, 20, 0, 0)) == utc(2024, 7, 15, 9, 0)

    def test_quarterly_interval_crosses_year(self) -> None:
        schedule = recurring(
            frequency="monthly", interval=3, day_of_month=1, start_date=utc(2024, 11, 1, 0, 0)
        )

        assert compute_next(schedule, utc(2024, 11, 2, 0, 0)) == utc(2025, 2, 1, 9, 0)


class TestYearly:
    """Tests for yearly series."""

    def test_leap_day_clamps_in_common_year(self) -> None:
        schedule = recurring(frequency="yearly", start_date=utc(2024, 2, 29, 0, 0))

        assert compute_next(schedule, utc(2024, 3, 1, 0, 0)) == utc(2025, 2, 28, 9, 0)

    def test_explicit_month_and_day(self) -> None:
        schedule = recurring(frequency="yearly", month=12, day_of_month=24, time="18:30")

        assert compute_next(schedule, utc(2024, 6, 3, 0, 0)) == utc(2024, 12, 24, 18, 30)


class TestTimezones:
    """Tests for wall-clock arithmetic in a schedule's timezone."""

    def test_local_time_converted_to_utc(self) -> None:
        schedule = ScheduleConfig(
            type="recurring",
            frequency="daily",
            start_date=datetime(2024, 6, 1, 0, 0),
            timezone="America/Argentina/Buenos_Aires",
        )

        assert compute_next(schedule, utc(2024, 6, 3, 10, 0)) == utc(2024, 6, 3, 12, 0)

    def test_wall_clock_kept_across_dst_change(self) -> None:
        schedule = ScheduleConfig(
            type="recurring",
            frequency="daily",
            start_date=datetime(2024, 3, 1, 0, 0),
            timezone="America/New_York",
        )

        # 09:00 EST is 14:00 UTC; after the switch 09:00 EDT is 13:00 UTC
        assert compute_next(schedule, utc(2024, 3, 8, 15, 0)) == utc(2024, 3, 9, 14, 0)
        assert compute_next(schedule, utc(2024, 3, 9, 15, 0)) == utc(2024, 3, 10, 13, 0)

    def test_unknown_timezone_rejected(self) -> None:
        with pytest.raises(ValidationError, match="Unknown timezone"):
            recurring(frequency="daily", timezone="Mars/Olympus_Mons")


class TestOnce:
    """Tests for one-off schedules."""

    def test_past_start_returns_none(self) -> None:
        schedule = ScheduleConfig(type="once", start_date=utc(2024, 6, 1, 9, 0))

        assert compute_next(schedule, utc(2024, 6, 3, 10, 0)) is None

    def test_future_start_is_next(self) -> None:
        schedule = ScheduleConfig(type="once", start_date=utc(2024, 6, 5, 9, 0))

        assert compute_next(schedule, utc(2024, 6, 3, 10, 0)) == utc(2024, 6, 5, 9, 0)

    def test_naive_reference_read_as_utc(self) -> None:
        schedule = ScheduleConfig(type="once", start_date=utc(2024, 6, 5, 9, 0))

        assert compute_next(schedule, datetime(2024, 6, 5, 8, 0)) == utc(2024, 6, 5, 9, 0)


class TestValidation:
    """Tests for ScheduleConfig validation."""

    def test_recurring_requires_frequency(self) -> None:
        with pytest.raises(ValidationError, match="require a frequency"):
            ScheduleConfig(type="recurring", start_date=utc(2024, 6, 1))

    def test_end_must_follow_start(self) -> None:
        with pytest.raises(ValidationError, match="end_date must be after start_date"):
            recurring(frequency="daily", end_date=utc(2024, 5, 1))

    @pytest.mark.parametrize("value", ["9:00", "24:00", "12:60", "noon"])
    def test_time_format(self, value: str) -> None:
        with pytest.raises(ValidationError):
            recurring(frequency="daily", time=value)
