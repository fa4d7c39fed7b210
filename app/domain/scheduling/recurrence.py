"""
Recurrence rule evaluation.

Pure date arithmetic: no database access and no clock. Days of week use
0=Sunday through 6=Saturday.
"""

from dataclasses import dataclass
from datetime import date, timedelta
from typing import Iterator, Optional

ONE_DAY = timedelta(days=1)


@dataclass(frozen=True)
class RecurrenceRule:
    frequency: str  # weekly, biweekly, monthly
    day_of_week: int
    start_date: date
    end_date: Optional[date] = None

    @classmethod
    def from_schedule(cls, schedule) -> "RecurrenceRule":
        return cls(
            frequency=schedule.frequency,
            day_of_week=schedule.day_of_week,
            start_date=schedule.start_date,
            end_date=schedule.end_date,
        )


def sunday_based_weekday(day: date) -> int:
    return (day.weekday() + 1) % 7


def first_weekday_on_or_after(day: date, day_of_week: int) -> date:
    return day + timedelta(days=(day_of_week - sunday_based_weekday(day)) % 7)


def first_weekday_of_month(year: int, month: int, day_of_week: int) -> date:
    return first_weekday_on_or_after(date(year, month, 1), day_of_week)


def _next_month(year: int, month: int) -> tuple[int, int]:
    return (year + 1, 1) if month == 12 else (year, month + 1)


def next_occurrence(rule: RecurrenceRule, on_or_after: date) -> Optional[date]:
    """
    First date >= on_or_after (and >= start_date) that the rule produces.

    weekly:   every matching weekday
    biweekly: every other matching weekday, counted from the first one on or
              after start_date
    monthly:  the first matching weekday of each calendar month

    Returns None once the rule's end_date is passed.
    """
    cursor = max(on_or_after, rule.start_date)

    if rule.frequency == "weekly":
        candidate = first_weekday_on_or_after(cursor, rule.day_of_week)
    elif rule.frequency == "biweekly":
        anchor = first_weekday_on_or_after(rule.start_date, rule.day_of_week)
        candidate = first_weekday_on_or_after(cursor, rule.day_of_week)
        if ((candidate - anchor).days // 7) % 2:
            candidate += timedelta(weeks=1)
    elif rule.frequency == "monthly":
        candidate = first_weekday_of_month(cursor.year, cursor.month, rule.day_of_week)
        if candidate < cursor:
            year, month = _next_month(cursor.year, cursor.month)
            candidate = first_weekday_of_month(year, month, rule.day_of_week)
    else:
        raise ValueError(f"Unsupported frequency: {rule.frequency}")

    if rule.end_date and candidate > rule.end_date:
        return None
    return candidate


def iter_occurrences(rule: RecurrenceRule, after: Optional[date], until: date) -> Iterator[date]:
    """
    Occurrences strictly after `after` (the generation cursor) up to and
    including `until`. With no cursor, start_date itself is eligible.
    """
    cursor = rule.start_date if after is None else after + ONE_DAY
    while True:
        occurrence = next_occurrence(rule, cursor)
        if occurrence is None or occurrence > until:
            return
        yield occurrence
        cursor = occurrence + ONE_DAY
