"""Yearly birthday recurrence arithmetic.

A birth date is a one-time date; the notification engine needs the concrete
date on which that birthday falls in a given year. Feb 29 birthdays fall on
Feb 28 in non-leap years. Generation, dispatch and the upcoming/past views all
go through :func:`occurrence_date` so they never disagree on that choice.
"""

from __future__ import annotations

import calendar
from datetime import date, timedelta


def occurrence_date(birth_date: date, year: int) -> date:
    """Return the date of the birthday of *birth_date* within *year*."""
    if birth_date.month == 2 and birth_date.day == 29 and not calendar.isleap(year):
        return date(year, 2, 28)
    return date(year, birth_date.month, birth_date.day)


def age_at(birth_date: date, year: int) -> int:
    """Age reached on the occurrence in *year*."""
    return year - birth_date.year


def next_occurrence(birth_date: date, today: date, days_ahead: int) -> tuple[date, int] | None:
    """Return ``(occurrence, days_until)`` if the birthday falls in ``[today, today + days_ahead]``.

    The window may cross 31 Dec, in which case the following year's
    occurrence is considered as well.
    """
    if days_ahead < 0:
        raise ValueError("days_ahead must be non-negative")

    window_end = today + timedelta(days=days_ahead)
    for year in range(today.year, window_end.year + 1):
        candidate = occurrence_date(birth_date, year)
        if today <= candidate <= window_end:
            return candidate, (candidate - today).days
    return None


def previous_occurrence(birth_date: date, today: date, days_back: int) -> tuple[date, int] | None:
    """Return ``(occurrence, days_since)`` if the birthday fell in ``[today - days_back, today)``.

    Today's birthday is not "past"; it belongs to :func:`next_occurrence`.
    """
    if days_back < 0:
        raise ValueError("days_back must be non-negative")

    window_start = today - timedelta(days=days_back)
    for year in range(today.year, window_start.year - 1, -1):
        candidate = occurrence_date(birth_date, year)
        if window_start <= candidate < today:
            return candidate, (today - candidate).days
    return None
