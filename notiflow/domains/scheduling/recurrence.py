# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Next-execution computation for schedule definitions.

Recurring series are evaluated on the wall clock of the schedule's
timezone and counted from the start date: "every 2 weeks" means weeks
0, 2, 4... after the week containing start_date, whatever instant the
computation starts from. Results are returned in UTC.

A day of month that does not exist in a target month is clamped to that
month's last day, so a monthly series on the 31st runs on 30 April and
28 (or 29) February.
"""

import calendar
from datetime import date, datetime, time, timedelta, timezone
from typing import Iterator

from notiflow.models.schedule import ScheduleConfig
from notiflow.utils.datetime import ensure_utc


def _sunday_index(day: date) -> int:
    """Weekday with 0 = Sunday through 6 = Saturday."""
    return (day.weekday() + 1) % 7


def _clamped(year: int, month: int, day: int) -> date:
    return date(year, month, min(day, calendar.monthrange(year, month)[1]))


def _daily(schedule: ScheduleConfig, anchor: date, since: date) -> Iterator[date]:
    step = schedule.interval
    k = max(0, (since - anchor).days // step)
    while True:
        yield anchor + timedelta(days=k * step)
        k += 1


def _weekly(schedule: ScheduleConfig, anchor: date, since: date) -> Iterator[date]:
    days = schedule.days_of_week or [_sunday_index(anchor)]
    first_week = anchor - timedelta(days=_sunday_index(anchor))
    step = 7 * schedule.interval
    k = max(0, (since - first_week).days // step)
    while True:
        week = first_week + timedelta(days=k * step)
        for offset in days:
            yield week + timedelta(days=offset)
        k += 1


def _monthly(schedule: ScheduleConfig, anchor: date, since: date) -> Iterator[date]:
    day = schedule.day_of_month or anchor.day
    first = anchor.year * 12 + anchor.month - 1
    k = max(0, (since.year * 12 + since.month - 1 - first) // schedule.interval)
    while True:
        year, month = divmod(first + k * schedule.interval, 12)
        yield _clamped(year, month + 1, day)
        k += 1


def _yearly(schedule: ScheduleConfig, anchor: date, since: date) -> Iterator[date]:
    month = schedule.month or anchor.month
    day = schedule.day_of_month or anchor.day
    k = max(0, (since.year - anchor.year) // schedule.interval)
    while True:
        yield _clamped(anchor.year + k * schedule.interval, month, day)
        k += 1


_GENERATORS = {
    "daily": _daily,
    "weekly": _weekly,
    "monthly": _monthly,
    "yearly": _yearly,
}


def compute_next(schedule: ScheduleConfig, from_: datetime) -> datetime | None:
    """Compute the first execution strictly after ``from_``.

    Args:
        schedule: Schedule timing.
        from_: Reference instant; naive values are read as UTC.

    Returns:
        Next execution in UTC, or None when the series is over: a one-off
        schedule whose start has passed, or a recurring schedule whose
        next occurrence would fall after end_date.
    """
    from_ = ensure_utc(from_)

    if schedule.type == "once":
        return schedule.start_date if schedule.start_date > from_ else None

    zone = schedule.zone
    anchor = schedule.start_date.astimezone(zone).date()
    since = max(from_, schedule.start_date).astimezone(zone).date()
    at = time(schedule.hour, schedule.minute)

    for day in _GENERATORS[schedule.frequency](schedule, anchor, since):
        candidate = datetime.combine(day, at, tzinfo=zone).astimezone(timezone.utc)
        if candidate <= from_ or candidate < schedule.start_date:
            continue
        if schedule.end_date is not None and candidate > schedule.end_date:
            return None
        return candidate

    return None
