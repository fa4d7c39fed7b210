from datetime import date

import pytest

from app.domain.scheduling.recurrence import (
    RecurrenceRule,
    first_weekday_of_month,
    iter_occurrences,
    next_occurrence,
    sunday_based_weekday,
)

MONDAY = 1
WEDNESDAY = 3


def test_days_are_counted_from_sunday():
    assert sunday_based_weekday(date(2026, 3, 1)) == 0
    assert sunday_based_weekday(date(2026, 3, 2)) == 1
    assert sunday_based_weekday(date(2026, 3, 7)) == 6


def test_weekly_starts_on_first_matching_weekday():
    rule = RecurrenceRule("weekly", WEDNESDAY, date(2026, 3, 2))
    assert next_occurrence(rule, date(2026, 3, 2)) == date(2026, 3, 4)
    assert next_occurrence(rule, date(2026, 3, 5)) == date(2026, 3, 11)


def test_weekly_never_before_start_date():
    rule = RecurrenceRule("weekly", MONDAY, date(2026, 3, 16))
    assert next_occurrence(rule, date(2026, 3, 1)) == date(2026, 3, 16)


def test_biweekly_skips_odd_weeks_from_anchor():
    rule = RecurrenceRule("biweekly", MONDAY, date(2026, 3, 2))
    assert next_occurrence(rule, date(2026, 3, 3)) == date(2026, 3, 16)
    occurrences = list(iter_occurrences(rule, None, date(2026, 4, 13)))
    assert occurrences == [date(2026, 3, 2), date(2026, 3, 16), date(2026, 3, 30), date(2026, 4, 13)]


def test_monthly_uses_first_matching_weekday_of_each_month():
    rule = RecurrenceRule("monthly", MONDAY, date(2026, 3, 2))
    occurrences = list(iter_occurrences(rule, None, date(2026, 5, 31)))
    assert occurrences == [date(2026, 3, 2), date(2026, 4, 6), date(2026, 5, 4)]


def test_monthly_rolls_to_next_month_when_start_is_past_first_weekday():
    rule = RecurrenceRule("monthly", MONDAY, date(2026, 3, 10))
    assert next_occurrence(rule, date(2026, 3, 10)) == date(2026, 4, 6)


def test_first_weekday_of_month_handles_year_end():
    assert first_weekday_of_month(2026, 12, MONDAY) == date(2026, 12, 7)
    rule = RecurrenceRule("monthly", MONDAY, date(2026, 12, 8))
    assert next_occurrence(rule, date(2026, 12, 8)) == date(2027, 1, 4)


def test_end_date_stops_occurrences():
    rule = RecurrenceRule("weekly", MONDAY, date(2026, 3, 2), end_date=date(2026, 3, 16))
    assert list(iter_occurrences(rule, None, date(2026, 12, 31))) == [
        date(2026, 3, 2),
        date(2026, 3, 9),
        date(2026, 3, 16),
    ]
    assert next_occurrence(rule, date(2026, 3, 17)) is None


def test_cursor_is_exclusive():
    rule = RecurrenceRule("weekly", MONDAY, date(2026, 3, 2))
    assert list(iter_occurrences(rule, date(2026, 3, 9), date(2026, 3, 23))) == [
        date(2026, 3, 16),
        date(2026, 3, 23),
    ]


def test_unknown_frequency_is_rejected():
    rule = RecurrenceRule("fortnightly", MONDAY, date(2026, 3, 2))
    with pytest.raises(ValueError):
        next_occurrence(rule, date(2026, 3, 2))
