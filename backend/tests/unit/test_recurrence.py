"""Unit tests for shared/recurrence.py"""

from datetime import date

import pytest

from shared.recurrence import age_at, next_occurrence, occurrence_date, previous_occurrence


class TestOccurrenceDate:
    def test_maps_month_and_day_into_year(self):
        assert occurrence_date(date(1990, 6, 15), 2025) == date(2025, 6, 15)

    def test_leap_day_in_non_leap_year_is_feb_28(self):
        assert occurrence_date(date(2000, 2, 29), 2025) == date(2025, 2, 28)

    def test_leap_day_in_leap_year_is_kept(self):
        assert occurrence_date(date(2000, 2, 29), 2024) == date(2024, 2, 29)

    def test_leap_day_mapping_is_stable(self):
        results = {occurrence_date(date(2000, 2, 29), 2025) for _ in range(5)}
        assert results == {date(2025, 2, 28)}

    def test_century_non_leap_year(self):
        assert occurrence_date(date(1996, 2, 29), 2100) == date(2100, 2, 28)


def test_age_at_is_year_difference():
    assert age_at(date(1990, 6, 15), 2025) == 35
    assert age_at(date(2000, 2, 29), 2025) == 25


class TestNextOccurrence:
    def test_today_counts_as_upcoming(self):
        assert next_occurrence(date(1990, 6, 15), date(2025, 6, 15), 0) == (date(2025, 6, 15), 0)

    def test_within_window(self):
        assert next_occurrence(date(1990, 6, 20), date(2025, 6, 15), 7) == (date(2025, 6, 20), 5)

    def test_outside_window(self):
        assert next_occurrence(date(1990, 6, 30), date(2025, 6, 15), 7) is None

    def test_year_wrap_surfaces_january_birthday(self):
        today = date(2025, 12, 28)
        assert next_occurrence(date(1985, 1, 3), today, 10) == (date(2026, 1, 3), 6)

    def test_year_wrap_does_not_surface_already_past_birthday(self):
        assert next_occurrence(date(1985, 12, 20), date(2025, 12, 28), 10) is None

    def test_leap_day_person_across_wrap(self):
        # 2026 is not a leap year, so Feb 29 resolves to Feb 28
        hit = next_occurrence(date(2000, 2, 29), date(2026, 2, 20), 10)
        assert hit == (date(2026, 2, 28), 8)

    def test_negative_window_rejected(self):
        with pytest.raises(ValueError):
            next_occurrence(date(1990, 6, 15), date(2025, 6, 15), -1)


class TestPreviousOccurrence:
    def test_today_is_not_past(self):
        assert previous_occurrence(date(1990, 6, 15), date(2025, 6, 15), 7) is None

    def test_within_window(self):
        assert previous_occurrence(date(1990, 6, 10), date(2025, 6, 15), 7) == (
            date(2025, 6, 10),
            5,
        )

    def test_year_wrap_backwards(self):
        assert previous_occurrence(date(1980, 12, 30), date(2026, 1, 3), 7) == (
            date(2025, 12, 30),
            4,
        )

    def test_negative_window_rejected(self):
        with pytest.raises(ValueError):
            previous_occurrence(date(1990, 6, 15), date(2025, 6, 15), -3)
